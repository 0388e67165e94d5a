from typing import Any, Dict, List, Optional, Union
import datetime as dt
from pydantic import BaseModel, Field, field_validator
from server.enums import TaskCategory, TaskPriority

# =========================================================
# PYDANTIC SCHEMAS
# =========================================================
def _check_time_of_day(value: Optional[str]) -> Optional[str]:
    if value in (None, ""):
        return value
    parts = value.split(":")
    if len(parts) != 2 or not all(p.isdigit() for p in parts):
        raise ValueError("time must be HH:MM")
    hours, minutes = int(parts[0]), int(parts[1])
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        raise ValueError("time must be HH:MM")
    return f"{hours:02d}:{minutes:02d}"


# Push Schemas
class PushKeys(BaseModel):
    p256dh: Optional[str] = None
    auth: Optional[str] = None

class SubscribeRequest(BaseModel):
    endpoint: Optional[str] = None
    keys: Optional[PushKeys] = None
    userId: Optional[str] = None

class UnsubscribeRequest(BaseModel):
    endpoint: Optional[str] = None

class NotifyRequest(BaseModel):
    title: Optional[str] = None
    body: Optional[str] = None
    icon: Optional[str] = None
    tag: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
    actions: Optional[List[Dict[str, Any]]] = None
    userId: Optional[str] = None

class TaskReminderRequest(BaseModel):
    taskId: Optional[Union[str, int]] = None
    taskTitle: Optional[str] = None
    reminderMinutes: int = 5

class TaskCompletedRequest(BaseModel):
    taskId: Optional[Union[str, int]] = None
    taskTitle: Optional[str] = None

class SubscribeResponse(BaseModel):
    success: bool
    message: str
    subscriptionId: int

class PushStatusResponse(BaseModel):
    success: bool = True
    activeSubscriptions: int
    totalSubscriptions: int
    vapidPublicKey: Optional[str]


# Calendar Task Schemas
class CalendarTaskCreate(BaseModel):
    id: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = ""
    category: TaskCategory = TaskCategory.study
    date: Optional[dt.date] = None
    time: Optional[str] = None
    end_time: Optional[str] = Field(default="", alias="endTime")
    priority: TaskPriority = TaskPriority.medium
    user_id: Optional[str] = Field(default=None, alias="userId")

    @field_validator("time", "end_time")
    @classmethod
    def check_time(cls, value):
        return _check_time_of_day(value)

    class Config:
        populate_by_name = True

class CalendarTaskUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[TaskCategory] = None
    date: Optional[dt.date] = None
    time: Optional[str] = None
    end_time: Optional[str] = Field(default=None, alias="endTime")
    priority: Optional[TaskPriority] = None
    completed: Optional[bool] = None

    @field_validator("time", "end_time")
    @classmethod
    def check_time(cls, value):
        return _check_time_of_day(value)

    class Config:
        populate_by_name = True

class CalendarTaskResponse(BaseModel):
    id: str
    user_id: str = Field(alias="userId")
    title: str
    description: Optional[str]
    category: TaskCategory
    date: dt.date
    time: str
    end_time: Optional[str] = Field(alias="endTime")
    priority: TaskPriority
    completed: bool
    reminder_sent: bool = Field(alias="reminderSent")
    start_sent: bool = Field(alias="startSent")
    created_at: Optional[dt.datetime] = Field(alias="createdAt")
    updated_at: Optional[dt.datetime] = Field(alias="updatedAt")

    class Config:
        from_attributes = True
        populate_by_name = True


# Settings Schemas
class SettingsUpdate(BaseModel):
    enabled: Optional[bool] = None
    daily_reminders: Optional[bool] = Field(default=None, alias="dailyReminders")
    task_reminders: Optional[bool] = Field(default=None, alias="taskReminders")
    completion_notifications: Optional[bool] = Field(default=None, alias="completionNotifications")
    reminder_minutes: Optional[int] = Field(default=None, ge=0, le=1440, alias="reminderMinutes")

    class Config:
        populate_by_name = True

class SettingsResponse(BaseModel):
    enabled: bool
    daily_reminders: bool = Field(alias="dailyReminders")
    task_reminders: bool = Field(alias="taskReminders")
    completion_notifications: bool = Field(alias="completionNotifications")
    reminder_minutes: int = Field(alias="reminderMinutes")

    class Config:
        from_attributes = True
        populate_by_name = True
