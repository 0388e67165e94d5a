import logging
from dataclasses import dataclass, fields

from sqlalchemy.orm import sessionmaker

from server.models import NotificationSettings
from .scheduler_config import DEFAULT_REMINDER_MINUTES

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Settings:
    enabled: bool = False
    daily_reminders: bool = True
    task_reminders: bool = True
    completion_notifications: bool = True
    reminder_minutes: int = DEFAULT_REMINDER_MINUTES


SETTING_NAMES = tuple(f.name for f in fields(Settings))


class SettingsStore:
    """Per-tenant notification toggles, read synchronously before every arm decision."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def get(self, tenant_id: str) -> Settings:
        with self._session_factory() as db:
            row = db.query(NotificationSettings).filter(NotificationSettings.user_id == tenant_id).first()
            if row is None:
                return Settings()
            return Settings(**{name: getattr(row, name) for name in SETTING_NAMES})

    def update(self, tenant_id: str, **changes) -> Settings:
        unknown = set(changes) - set(SETTING_NAMES)
        if unknown:
            raise ValueError(f"Unknown settings: {', '.join(sorted(unknown))}")
        if "reminder_minutes" in changes and int(changes["reminder_minutes"]) < 0:
            raise ValueError("reminder_minutes must be >= 0")

        with self._session_factory() as db:
            row = db.query(NotificationSettings).filter(NotificationSettings.user_id == tenant_id).first()
            if row is None:
                current = Settings()
                row = NotificationSettings(user_id=tenant_id, **{n: getattr(current, n) for n in SETTING_NAMES})
                db.add(row)
            for name, value in changes.items():
                setattr(row, name, value)
            db.commit()
            updated = Settings(**{name: getattr(row, name) for name in SETTING_NAMES})

        logger.info(f"Settings updated for {tenant_id}: {changes}")
        return updated


