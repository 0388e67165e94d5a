import uuid
from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, Boolean, Date, DateTime, Index, Enum as SQLEnum
from server.database import Base
from server.enums import TaskCategory, TaskPriority, EventKind

# =========================================================
# DATABASE MODELS
# =========================================================
def _new_task_id() -> str:
    return uuid.uuid4().hex


class CalendarTask(Base):
    __tablename__ = "calendar_tasks"
    id = Column(String(64), primary_key=True, default=_new_task_id)
    user_id = Column(String(100), nullable=False, default="default")
    title = Column(String(200), nullable=False)
    description = Column(Text, default="")
    category = Column(SQLEnum(TaskCategory), nullable=False, default=TaskCategory.study)
    date = Column(Date, nullable=False)
    time = Column(String(5), nullable=False)          # HH:MM, local clock
    end_time = Column(String(5), default="")
    priority = Column(SQLEnum(TaskPriority), nullable=False, default=TaskPriority.medium)
    completed = Column(Boolean, nullable=False, default=False)
    # Delivery-state map, one flag per EventKind
    reminder_sent = Column(Boolean, nullable=False, default=False)
    start_sent = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (Index("ix_calendar_tasks_user_date", "user_id", "date"),)

    @property
    def delivery_state(self) -> dict:
        return {
            EventKind.reminder: bool(self.reminder_sent),
            EventKind.start: bool(self.start_sent),
        }

    def is_delivered(self, kind: EventKind) -> bool:
        return self.delivery_state[EventKind(kind)]


class PushSubscription(Base):
    __tablename__ = "push_subscriptions"
    id = Column(Integer, primary_key=True)
    endpoint = Column(Text, unique=True, nullable=False)
    p256dh = Column(Text, nullable=False)
    auth = Column(Text, nullable=False)
    user_id = Column(String(100), nullable=False, default="default")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    last_used_at = Column(DateTime, default=datetime.utcnow)

    @property
    def subscription_info(self) -> dict:
        return {"endpoint": self.endpoint, "keys": {"p256dh": self.p256dh, "auth": self.auth}}


class NotificationSettings(Base):
    __tablename__ = "notification_settings"
    user_id = Column(String(100), primary_key=True)
    enabled = Column(Boolean, nullable=False, default=False)
    daily_reminders = Column(Boolean, nullable=False, default=True)
    task_reminders = Column(Boolean, nullable=False, default=True)
    completion_notifications = Column(Boolean, nullable=False, default=True)
    reminder_minutes = Column(Integer, nullable=False, default=5)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
