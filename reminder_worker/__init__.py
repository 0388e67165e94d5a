from .config import ReminderWorkerConfig
from .dispatcher import NotificationDispatcher, DispatchOutcome
from .payloads import NotificationRequest
from .registry import SubscriptionRegistry
from .scheduler import ReminderScheduler
from .service import NotificationServices
