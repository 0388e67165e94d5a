import json
import random
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

DEFAULT_ICON = "/manifest-icon-192.png"
DEFAULT_TAG = "study-tracker-notification"
DEFAULT_ACTIONS = [
    {"action": "view", "title": "💖 View"},
    {"action": "dismiss", "title": "💤 Dismiss"},
]

COMPLETION_MESSAGES = [
    "Amazing work! You're absolutely crushing it! 💖✨",
    "Fantastic! You're doing incredible! 💕🌟",
    "Outstanding! Keep up the amazing work! 💖🎉",
    "Brilliant! You're unstoppable! 💕💪",
    "Incredible! You're on fire! 💖🔥",
    "Spectacular! You're a superstar! 💕⭐",
    "Wonderful! You're doing great! 💖🌈",
    "Magnificent! You're awesome! 💕🚀",
    "You're such a star! Keep shining! 💖✨",
    "Absolutely adorable work! 💕🌸",
    "You're doing beautifully! 💖🦋",
    "Sweet success! You're amazing! 💕🍯",
]


@dataclass
class NotificationRequest:
    """One logical notification, fanned out to every active subscriber."""

    title: str
    body: str
    tag: str = DEFAULT_TAG
    icon: str = DEFAULT_ICON
    data: Dict[str, Any] = field(default_factory=dict)
    actions: Optional[List[Dict[str, str]]] = None
    require_interaction: bool = False

    def to_payload(self) -> str:
        return json.dumps(
            {
                "title": self.title,
                "body": self.body,
                "icon": self.icon or DEFAULT_ICON,
                "tag": self.tag or DEFAULT_TAG,
                "data": self.data or {},
                "actions": self.actions or DEFAULT_ACTIONS,
                "requireInteraction": self.require_interaction,
            }
        )

    def local_options(self) -> Dict[str, Any]:
        return {
            "tag": self.tag,
            "requireInteraction": self.require_interaction,
            "actions": self.actions or DEFAULT_ACTIONS,
            "icon": self.icon,
            "data": self.data,
        }


# =========================================================
# TASK EVENTS
# =========================================================
def task_reminder(task_id: str, title: str, lead_minutes: int) -> NotificationRequest:
    """Fired `lead_minutes` before a task starts."""
    return NotificationRequest(
        title="💖 Task Reminder",
        body=f"{title} starts in {lead_minutes} minutes! 💕",
        tag=f"reminder-{task_id}",
        data={"type": "task-reminder", "taskId": task_id, "reminderMinutes": lead_minutes},
        actions=[
            {"action": "view", "title": "💖 View Task"},
            {"action": "dismiss", "title": "💤 Dismiss"},
        ],
        require_interaction=True,
    )


def task_start(task_id: str, title: str) -> NotificationRequest:
    return NotificationRequest(
        title="💕 Task Time!",
        body=f"Time for: {title} 💖",
        tag=f"task-{task_id}",
        data={"type": "task-start", "taskId": task_id},
        actions=[
            {"action": "start", "title": "💖 Start Task"},
            {"action": "snooze", "title": "💤 Snooze 5min"},
        ],
        require_interaction=True,
    )


def manual_task_reminder(task_id: str, title: str, reminder_minutes: int) -> NotificationRequest:
    """Reminder triggered through the HTTP surface rather than a timer."""
    return NotificationRequest(
        title="💖 Task Reminder",
        body=f"{title} starts in {reminder_minutes} minutes! 💕",
        tag=f"task-reminder-{task_id}",
        data={"type": "task-reminder", "taskId": task_id, "reminderMinutes": reminder_minutes},
        actions=[
            {"action": "view", "title": "💖 View Task"},
            {"action": "dismiss", "title": "💤 Snooze"},
        ],
    )


def task_completed(task_id: str, title: str, rng: Optional[random.Random] = None) -> NotificationRequest:
    message = (rng or random).choice(COMPLETION_MESSAGES)
    return NotificationRequest(
        title="💖 Task Completed!",
        body=f"{title} - {message}",
        tag=f"task-completed-{task_id}",
        data={"type": "task-completed", "taskId": task_id},
        actions=[
            {"action": "view", "title": "💖 Celebrate!"},
            {"action": "dismiss", "title": "💕 Next Task"},
        ],
    )


def water_reminder() -> NotificationRequest:
    return NotificationRequest(
        title="💧 Water Reminder 💖",
        body="Time to hydrate! Your body needs some love 💕",
        tag="water-reminder",
        data={"type": "water-reminder"},
        actions=[
            {"action": "view", "title": "💖 Drink Water"},
            {"action": "dismiss", "title": "💤 Later"},
        ],
    )


# =========================================================
# DAILY SUMMARIES
# =========================================================
def morning_summary(task_count: int) -> NotificationRequest:
    return NotificationRequest(
        title="💖 Good Morning!",
        body=f"You have {task_count} tasks scheduled for today. Let's make it a productive day! 💕",
        tag="daily-morning",
        data={"type": "daily-morning", "taskCount": task_count},
    )


def evening_summary(remaining: int) -> NotificationRequest:
    if remaining > 0:
        return NotificationRequest(
            title="💕 Evening Check-in",
            body=f"You still have {remaining} tasks to complete today. You've got this! 💖",
            tag="daily-evening",
            data={"type": "daily-evening", "remaining": remaining},
        )
    return NotificationRequest(
        title="💖 Great Job!",
        body="All tasks completed for today! Time to relax and celebrate! 💕🎉",
        tag="daily-evening",
        data={"type": "daily-evening", "remaining": 0},
    )
