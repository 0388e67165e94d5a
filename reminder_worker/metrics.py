from prometheus_client import Counter

PUSH_DELIVERIES = Counter(
    "push_deliveries_total",
    "Push delivery attempts by outcome",
    ["outcome"]
)

REMINDER_EVENTS = Counter(
    "reminder_events_total",
    "Scheduler events by kind and outcome",
    ["kind", "outcome"]
)
