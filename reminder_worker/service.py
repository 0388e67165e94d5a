import logging
from typing import Callable, Optional

from sqlalchemy.orm import sessionmaker

from .clock import APSchedulerTimerSource, TimerSource
from .config import ReminderWorkerConfig, config as default_config
from .dispatcher import NotificationDispatcher
from .gateway import PushGateway, WebPushGateway
from .notifier import DesktopNotifier, LocalNotifier
from .registry import SubscriptionRegistry
from .scheduler import ReminderScheduler
from .settings_store import SettingsStore
from .task_store import TaskStore
from .timeline import get_timezone

logger = logging.getLogger(__name__)


class NotificationServices:
    """
    Every collaborator of the reminder engine, built once per process and
    handed to the API through app.state.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        *,
        cfg: Optional[ReminderWorkerConfig] = None,
        timer: Optional[TimerSource] = None,
        gateway: Optional[PushGateway] = None,
        notifier: Optional[LocalNotifier] = None,
        is_foreground: Optional[Callable[[], bool]] = None,
    ) -> None:
        self.cfg = cfg or default_config
        self.timezone = get_timezone(self.cfg.TIMEZONE)
        self.session_factory = session_factory

        self.timer = timer or APSchedulerTimerSource(self.timezone)
        self.registry = SubscriptionRegistry(session_factory)
        self.task_store = TaskStore(session_factory)
        self.settings_store = SettingsStore(session_factory)
        self.dispatcher = NotificationDispatcher(
            self.registry,
            gateway or WebPushGateway(self.cfg),
            max_workers=self.cfg.DISPATCH_MAX_WORKERS,
            attempt_timeout=self.cfg.PUSH_TIMEOUT_SECONDS,
        )
        if notifier is None and self.cfg.LOCAL_NOTIFICATIONS:
            notifier = DesktopNotifier()
        self.notifier = notifier
        # Host hook; without one the config decides
        self.is_foreground = is_foreground or (lambda: self.cfg.show_local_notifications)
        self.scheduler = ReminderScheduler(
            self.timer,
            self.task_store,
            self.settings_store,
            self.dispatcher,
            self.notifier,
            tenant_id=self.cfg.DEFAULT_TENANT,
            timezone=self.timezone,
            is_foreground=self.is_foreground,
            check_interval=self.cfg.SCHEDULER_CHECK_INTERVAL,
        )

    @property
    def default_tenant(self) -> str:
        return self.cfg.DEFAULT_TENANT

    @property
    def vapid_public_key(self) -> str:
        return self.cfg.VAPID_PUBLIC_KEY

    def start(self) -> None:
        self.cfg.log_missing()
        self.scheduler.start()

    def stop(self) -> None:
        self.scheduler.stop()
        self.dispatcher.shutdown()
