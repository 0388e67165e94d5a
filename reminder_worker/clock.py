"""
Clock / timer source.

Everything time-related the worker does goes through a TimerSource so the
scheduler can be driven by a manual clock in tests. The production source
wraps an APScheduler BackgroundScheduler.
"""
import logging
from datetime import datetime
from typing import Any, Callable, Hashable

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler

logger = logging.getLogger(__name__)


class TimerSource:
    """Interface: current wall time plus one-shot and recurring callbacks."""

    def now(self) -> datetime:
        raise NotImplementedError

    def call_at(self, when: datetime, func: Callable[..., Any], *args: Any, key: str) -> Hashable:
        """Run func(*args) at `when`. Re-using a key replaces the earlier timer."""
        raise NotImplementedError

    def cancel(self, handle: Hashable) -> None:
        """Cancel a pending timer. Unknown or already-fired handles are ignored."""
        raise NotImplementedError

    def every(self, seconds: int, func: Callable[[], Any], *, key: str) -> None:
        raise NotImplementedError

    def daily(self, hour: int, minute: int, func: Callable[[], Any], *, key: str) -> None:
        raise NotImplementedError

    def start(self) -> None:
        pass

    def shutdown(self) -> None:
        pass


class APSchedulerTimerSource(TimerSource):
    def __init__(self, timezone) -> None:
        self.timezone = timezone
        self.scheduler = BackgroundScheduler(timezone=timezone)

    def now(self) -> datetime:
        return datetime.now(self.timezone)

    def call_at(self, when, func, *args, key):
        self.scheduler.add_job(
            func,
            "date",
            run_date=when,
            args=list(args),
            id=key,
            replace_existing=True,
            # A timer that matures while the process is busy still runs
            misfire_grace_time=None,
        )
        return key

    def cancel(self, handle):
        try:
            self.scheduler.remove_job(handle)
        except JobLookupError:
            pass

    def every(self, seconds, func, *, key):
        self.scheduler.add_job(func, "interval", seconds=seconds, id=key, replace_existing=True)

    def daily(self, hour, minute, func, *, key):
        self.scheduler.add_job(func, "cron", hour=hour, minute=minute, id=key, replace_existing=True)

    def start(self):
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("🚀 Timer source started")

    def shutdown(self):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("🛑 Timer source stopped")
