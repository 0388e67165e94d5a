"""
Task Reminder Scheduler

Keeps, for every incomplete task with a start time, at most two pending
timers (reminder and start) and delivers each event at most once.

The armed timer set is never persisted. It is re-derived from the task list
and the user's settings on every reconcile pass; the only durable state is
the per-task delivered flags, flipped before anything is dispatched.
"""
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Hashable, Iterable, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from server.enums import EventKind
from . import payloads, timeline
from .clock import TimerSource
from .dispatcher import NotificationDispatcher
from .metrics import REMINDER_EVENTS
from .notifier import LocalNotifier
from .payloads import NotificationRequest
from .scheduler_config import (
    ARMING_HORIZON_HOURS,
    CATCH_UP_WINDOW_MINUTES,
    EVENING_SUMMARY_HOUR,
    EVENING_SUMMARY_MINUTE,
    MORNING_SUMMARY_HOUR,
    MORNING_SUMMARY_MINUTE,
    SCHEDULER_CHECK_INTERVAL,
    UPCOMING_WINDOW_MINUTES,
)
from .settings_store import Settings, SettingsStore
from .task_store import TaskStore

logger = logging.getLogger(__name__)

TimerKey = Tuple[str, EventKind]


@dataclass(frozen=True)
class ArmedTimer:
    task_id: str
    kind: EventKind
    fire_at: datetime
    handle: Hashable


@dataclass
class SchedulerStats:
    armed: int = 0
    cancelled: int = 0
    fired: int = 0
    suppressed: int = 0
    caught_up: int = 0
    skipped_cycles: int = 0


class ReminderScheduler:
    def __init__(
        self,
        timer: TimerSource,
        task_store: TaskStore,
        settings_store: SettingsStore,
        dispatcher: NotificationDispatcher,
        notifier: Optional[LocalNotifier] = None,
        *,
        tenant_id: str,
        timezone,
        is_foreground: Optional[Callable[[], bool]] = None,
        horizon: timedelta = timedelta(hours=ARMING_HORIZON_HOURS),
        catch_up_window: timedelta = timedelta(minutes=CATCH_UP_WINDOW_MINUTES),
        check_interval: int = SCHEDULER_CHECK_INTERVAL,
    ) -> None:
        self.tenant_id = tenant_id
        self._timer = timer
        self._task_store = task_store
        self._settings_store = settings_store
        self._dispatcher = dispatcher
        self._notifier = notifier
        self._tz = timezone
        self._is_foreground = is_foreground or (lambda: False)
        self._horizon = horizon
        self._catch_up_window = catch_up_window
        self._check_interval = check_interval

        self._timers: Dict[TimerKey, ArmedTimer] = {}
        self._lock = threading.Lock()
        # Only one reconcile pass touches the timer set at a time
        self._reconcile_lock = threading.Lock()
        self.stats = SchedulerStats()

    # =========================================================
    # LIFECYCLE
    # =========================================================
    def start(self) -> None:
        """Register recurring jobs, start the timer source and recover from the task list."""
        self._timer.every(self._check_interval, self.refresh, key="reminder_reconcile_job")
        self._timer.daily(
            MORNING_SUMMARY_HOUR, MORNING_SUMMARY_MINUTE, self.send_morning_summary, key="daily_morning_job"
        )
        self._timer.daily(
            EVENING_SUMMARY_HOUR, EVENING_SUMMARY_MINUTE, self.send_evening_summary, key="daily_evening_job"
        )
        self._timer.start()
        # No timer state survives a restart; delivered flags prevent repeats.
        self.refresh()
        logger.info(
            f"🚀 Reminder scheduler started for {self.tenant_id}: reconcile every {self._check_interval}s, "
            f"{len(self.pending())} timers armed"
        )

    def stop(self) -> None:
        with self._lock:
            for armed in self._timers.values():
                self._timer.cancel(armed.handle)
            self._timers.clear()
        self._timer.shutdown()
        logger.info("🛑 Reminder scheduler stopped")

    def pending(self) -> List[ArmedTimer]:
        with self._lock:
            return sorted(self._timers.values(), key=lambda t: (t.fire_at, t.task_id))

    # =========================================================
    # RECONCILE
    # =========================================================
    def refresh(self) -> bool:
        """
        Reconcile against a fresh snapshot from the task store.

        A storage failure skips this cycle; the next trigger tries again.
        """
        try:
            tasks = self._task_store.list(self.tenant_id)
            self.reconcile(tasks)
        except SQLAlchemyError:
            self.stats.skipped_cycles += 1
            logger.exception(f"Reconcile skipped for {self.tenant_id}: task or settings store unavailable")
            return False
        return True

    def reconcile(self, tasks: Iterable) -> None:
        """
        Bring the armed timer set in line with `tasks`.

        Timers whose event is no longer wanted (task gone, completed, moved,
        delivered, or reminders switched off) are cancelled; newly eligible
        events within the horizon are armed; unchanged timers are left alone.
        Undelivered events that matured while nothing was armed are delivered
        right away.
        """
        with self._reconcile_lock:
            settings = self._settings_store.get(self.tenant_id)
            now = self._timer.now()
            desired, due = self._plan(tasks, settings, now)

            with self._lock:
                for key, armed in list(self._timers.items()):
                    if desired.get(key) != armed.fire_at:
                        self._disarm(key)
                for key, fire_at in desired.items():
                    if key not in self._timers:
                        self._arm(key, fire_at)

            for task_id, kind in due:
                if self.on_fire(task_id, kind):
                    self.stats.caught_up += 1
                    REMINDER_EVENTS.labels(kind=kind.value, outcome="caught_up").inc()

    def _plan(self, tasks, settings: Settings, now: datetime):
        desired: Dict[TimerKey, datetime] = {}
        due: List[TimerKey] = []
        if not (settings.enabled and settings.task_reminders):
            return desired, due

        for task in tasks:
            if task.completed:
                continue
            events = timeline.fire_times(task, settings.reminder_minutes, self._tz)
            if not events:
                continue
            start_at = events[-1][1]
            for kind, fire_at in events:
                if task.is_delivered(kind):
                    continue
                if fire_at > now:
                    if fire_at - now <= self._horizon:
                        desired[(task.id, kind)] = fire_at
                elif self._should_catch_up(kind, start_at, now):
                    due.append((task.id, kind))
        return desired, due

    def _should_catch_up(self, kind: EventKind, start_at: datetime, now: datetime) -> bool:
        if kind == EventKind.reminder:
            # "Starts in N minutes" is only worth sending before the start
            return start_at > now
        return now - start_at <= self._catch_up_window

    def _arm(self, key: TimerKey, fire_at: datetime) -> None:
        task_id, kind = key
        handle = self._timer.call_at(
            fire_at, self._on_timer, task_id, kind.value, fire_at, key=f"{task_id}:{kind.value}"
        )
        self._timers[key] = ArmedTimer(task_id, kind, fire_at, handle)
        self.stats.armed += 1
        REMINDER_EVENTS.labels(kind=kind.value, outcome="armed").inc()
        logger.info(f"Armed {kind.value} for task {task_id} at {fire_at.isoformat()}")

    def _disarm(self, key: TimerKey) -> None:
        armed = self._timers.pop(key)
        self._timer.cancel(armed.handle)
        self.stats.cancelled += 1
        REMINDER_EVENTS.labels(kind=armed.kind.value, outcome="cancelled").inc()
        logger.info(f"Cancelled {armed.kind.value} for task {armed.task_id}")

    def cancel(self, task_id: str) -> int:
        """Cancel every pending timer of a task. Unknown tasks are a no-op."""
        with self._lock:
            keys = [key for key in self._timers if key[0] == task_id]
            for key in keys:
                self._disarm(key)
        return len(keys)

    # =========================================================
    # FIRING
    # =========================================================
    def _on_timer(self, task_id: str, kind: str, fire_at: datetime) -> None:
        with self._lock:
            self._timers.pop((task_id, EventKind(kind)), None)
        self.on_fire(task_id, kind, fire_at)

    def on_fire(self, task_id: str, kind, fire_at: Optional[datetime] = None) -> bool:
        """
        Deliver one (task, kind) event.

        The event is re-validated against the current row and settings:
        reminders switched off, a completed task, or (for a timer armed at
        `fire_at`) a task whose schedule no longer yields that instant all
        suppress it. The delivered flag is then claimed with a conditional
        update pinned to the validated schedule, so of any number of
        concurrent callers exactly one dispatches. A dispatch failure after
        the claim is logged and not retried.
        """
        kind = EventKind(kind)
        try:
            settings = self._settings_store.get(self.tenant_id)
            reason = None
            task = None
            if not (settings.enabled and settings.task_reminders):
                reason = "task reminders are off"
            else:
                current = self._task_store.get(task_id)
                if current is None:
                    reason = "task gone"
                elif current.completed:
                    reason = "task completed"
                elif fire_at is not None and dict(
                    timeline.fire_times(current, settings.reminder_minutes, self._tz)
                ).get(kind) != fire_at:
                    reason = "timer is stale"
                else:
                    task = self._task_store.mark_delivered(task_id, kind, schedule=(current.date, current.time))
                    if task is None:
                        reason = "already delivered or task changed"
        except SQLAlchemyError:
            logger.exception(f"Could not claim {kind.value} for task {task_id}")
            REMINDER_EVENTS.labels(kind=kind.value, outcome="error").inc()
            return False

        if task is None:
            self.stats.suppressed += 1
            REMINDER_EVENTS.labels(kind=kind.value, outcome="suppressed").inc()
            logger.info(f"Skipping {kind.value} for task {task_id}: {reason}")
            return False

        if kind == EventKind.reminder:
            request = payloads.task_reminder(task.id, task.title, settings.reminder_minutes)
        else:
            request = payloads.task_start(task.id, task.title)

        self.stats.fired += 1
        REMINDER_EVENTS.labels(kind=kind.value, outcome="fired").inc()
        logger.info(f"🔔 Firing {kind.value} for task {task_id} ({task.title})")
        self._deliver(request)
        return True

    def _deliver(self, request: NotificationRequest) -> None:
        """Both channels on every event; each client dedupes by tag."""
        try:
            outcome = self._dispatcher.dispatch(request, tenant_id=self.tenant_id)
            logger.info(f"✅ {request.tag}: {outcome.succeeded}/{outcome.attempted} push deliveries succeeded")
        except Exception:
            logger.exception(f"❌ Push dispatch failed for {request.tag}")

        if self._notifier is not None and self._is_foreground():
            self._notifier.show(request.title, request.body, request.local_options())

    # =========================================================
    # OTHER NOTIFICATIONS
    # =========================================================
    def notify_completed(self, task) -> bool:
        settings = self._settings_store.get(self.tenant_id)
        if not (settings.enabled and settings.completion_notifications):
            return False
        self._deliver(payloads.task_completed(task.id, task.title))
        return True

    def _today(self):
        return self._timer.now().astimezone(self._tz).date()

    def _daily_enabled(self) -> bool:
        settings = self._settings_store.get(self.tenant_id)
        return settings.enabled and settings.daily_reminders

    def send_morning_summary(self) -> bool:
        try:
            if not self._daily_enabled():
                return False
            open_tasks = [t for t in self._task_store.list(self.tenant_id, self._today()) if not t.completed]
        except SQLAlchemyError:
            logger.exception("Morning summary skipped: store unavailable")
            return False

        if not open_tasks:
            logger.info("No open tasks today; skipping morning summary")
            return False
        self._deliver(payloads.morning_summary(len(open_tasks)))
        return True

    def send_evening_summary(self) -> bool:
        try:
            if not self._daily_enabled():
                return False
            today_tasks = self._task_store.list(self.tenant_id, self._today())
        except SQLAlchemyError:
            logger.exception("Evening summary skipped: store unavailable")
            return False

        if not today_tasks:
            return False
        remaining = sum(1 for t in today_tasks if not t.completed)
        self._deliver(payloads.evening_summary(remaining))
        return True

    def upcoming_tasks(self, window_minutes: int = UPCOMING_WINDOW_MINUTES, tenant_id: Optional[str] = None) -> list:
        """Read-only view: today's tasks starting within the window. Never triggers delivery."""
        now = self._timer.now()
        tasks = self._task_store.list(tenant_id or self.tenant_id, self._today())
        return timeline.select_upcoming(tasks, now, window_minutes, self._tz)
