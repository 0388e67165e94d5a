"""
Local in-process notifications.

Shown on the machine running the worker when the host application is in the
foreground. Fire-and-forget: failures are logged and never reach the caller.
"""
import logging
from typing import Any, Mapping, Optional

from plyer import notification as plyer_notification

logger = logging.getLogger(__name__)

APP_NAME = "Study Tracker"


class LocalNotifier:
    """Interface for the local notification surface."""

    def show(self, title: str, body: str, options: Optional[Mapping[str, Any]] = None) -> None:
        raise NotImplementedError


class DesktopNotifier(LocalNotifier):
    """Desktop notifications via plyer (Windows/Linux/Mac)."""

    def __init__(self, app_name: str = APP_NAME, timeout: int = 10) -> None:
        self.app_name = app_name
        self.timeout = timeout

    def show(self, title, body, options=None):
        options = options or {}
        # requireInteraction keeps the toast up until the user reacts
        timeout = 0 if options.get("requireInteraction") else self.timeout
        try:
            plyer_notification.notify(
                title=title,
                message=body,
                app_name=self.app_name,
                timeout=timeout,
            )
            logger.debug(f"Local notification shown: {options.get('tag')}")
        except Exception as e:
            logger.error(f"Error showing local notification {options.get('tag')!r}: {e}")
