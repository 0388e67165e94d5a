import os
import logging
from pathlib import Path
from dotenv import load_dotenv

from .scheduler_config import SCHEDULER_CHECK_INTERVAL

logger = logging.getLogger(__name__)

current_file_path = Path(__file__).resolve()
root_dir = current_file_path.parent.parent
env_path = root_dir / ".env"

if env_path.exists():
    load_dotenv(dotenv_path=env_path, override=False)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


class ReminderWorkerConfig:
    def __init__(self) -> None:
        self.VAPID_PUBLIC_KEY = os.getenv("VAPID_PUBLIC_KEY", "")
        self.VAPID_PRIVATE_KEY = os.getenv("VAPID_PRIVATE_KEY", "")
        self.VAPID_SUBJECT = os.getenv("VAPID_SUBJECT", "mailto:admin@example.com")
        self.PUSH_TTL_SECONDS = int(os.getenv("PUSH_TTL_SECONDS", "86400"))
        self.PUSH_TIMEOUT_SECONDS = float(os.getenv("PUSH_TIMEOUT_SECONDS", "10"))
        self.DISPATCH_MAX_WORKERS = int(os.getenv("DISPATCH_MAX_WORKERS", "8"))
        self.TIMEZONE = os.getenv("TIMEZONE", "UTC")
        self.DEFAULT_TENANT = os.getenv("DEFAULT_TENANT", "default")
        self.LOCAL_NOTIFICATIONS = _env_bool("LOCAL_NOTIFICATIONS", False)
        # Whether this process runs in the foreground of the desktop session
        self.HOST_FOREGROUND = _env_bool("HOST_FOREGROUND", True)
        self.SCHEDULER_CHECK_INTERVAL = int(os.getenv("SCHEDULER_CHECK_INTERVAL", str(SCHEDULER_CHECK_INTERVAL)))

    @property
    def vapid_configured(self) -> bool:
        return bool(self.VAPID_PUBLIC_KEY and self.VAPID_PRIVATE_KEY)

    @property
    def show_local_notifications(self) -> bool:
        return self.LOCAL_NOTIFICATIONS and self.HOST_FOREGROUND

    def log_missing(self) -> None:
        if not self.vapid_configured:
            logger.error(
                "VAPID keys not found in environment (public=%s, private=%s); push delivery will fail. Run generate-vapid-keys to create them",
                "set" if self.VAPID_PUBLIC_KEY else "missing",
                "set" if self.VAPID_PRIVATE_KEY else "missing",
            )


config = ReminderWorkerConfig()
