"""
Scheduler Configuration for Task Reminders

Defines reminder lead times, arming bounds and daily summary times.
"""

# Minutes before a task's start at which the reminder fires (user-overridable)
DEFAULT_REMINDER_MINUTES = 5

# Timers are only armed this far ahead; later tasks wait for a later pass
ARMING_HORIZON_HOURS = 24

# A missed start event is still delivered if it is at most this late
CATCH_UP_WINDOW_MINUTES = 60

# Read-only "upcoming tasks" view window
UPCOMING_WINDOW_MINUTES = 60

# How often the scheduler re-reads the task list (in seconds)
SCHEDULER_CHECK_INTERVAL = 60  # Every 1 minute

# Daily summary times (hour in 24h format, local clock)
MORNING_SUMMARY_HOUR = 9
MORNING_SUMMARY_MINUTE = 0
EVENING_SUMMARY_HOUR = 18
EVENING_SUMMARY_MINUTE = 0
