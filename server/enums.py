import enum
# =========================================================
# ENUMS
# =========================================================
class TaskCategory(str, enum.Enum):
    study = "study"
    food = "food"
    chores = "chores"
    exercise = "exercise"
    other = "other"

class TaskPriority(str, enum.Enum):
    high = "high"
    medium = "medium"
    low = "low"

class EventKind(str, enum.Enum):
    reminder = "reminder"
    start = "start"

class DeliveryStatus(str, enum.Enum):
    delivered = "delivered"
    transient_failure = "transient_failure"
    permanent_failure = "permanent_failure"
