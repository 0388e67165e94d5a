import threading
from datetime import timedelta

import pytest
import pytz
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from server.database import Base
from server.enums import EventKind
from server.models import CalendarTask
from reminder_worker.scheduler import ReminderScheduler
from reminder_worker.settings_store import SettingsStore
from reminder_worker.task_store import TaskStore
from tests.fakes import TENANT, TODAY, at

def test_reconcile_arms_reminder_before_start(scheduler, add_task, enabled, clock):
    add_task("t1", "14:00")

    assert scheduler.refresh() is True

    pending = scheduler.pending()
    assert [(t.task_id, t.kind, t.fire_at) for t in pending] == [
        ("t1", EventKind.reminder, at(13, 55)),
        ("t1", EventKind.start, at(14, 0)),
    ]
    assert pending[0].fire_at < pending[1].fire_at
    assert set(clock.jobs) == {"t1:reminder", "t1:start"}

def test_reconcile_is_idempotent(scheduler, add_task, enabled):
    add_task("t1", "14:00")
    add_task("t2", "15:30")

    scheduler.refresh()
    armed, cancelled = scheduler.stats.armed, scheduler.stats.cancelled
    scheduler.refresh()
    scheduler.refresh()

    assert scheduler.stats.armed == armed == 4
    assert scheduler.stats.cancelled == cancelled == 0

def test_nothing_armed_until_notifications_enabled(scheduler, add_task, settings_store):
    add_task("t1", "14:00")

    scheduler.refresh()
    assert scheduler.pending() == []

    settings_store.update(TENANT, enabled=True)
    scheduler.refresh()
    assert len(scheduler.pending()) == 2

    settings_store.update(TENANT, task_reminders=False)
    scheduler.refresh()
    assert scheduler.pending() == []
    assert scheduler.stats.cancelled == 2

def test_zero_lead_arms_start_only(scheduler, add_task, settings_store):
    settings_store.update(TENANT, enabled=True, reminder_minutes=0)
    add_task("t1", "14:00")

    scheduler.refresh()

    assert [t.kind for t in scheduler.pending()] == [EventKind.start]

def test_lead_change_rearms_reminder(scheduler, add_task, settings_store, enabled):
    add_task("t1", "14:30")
    scheduler.refresh()

    settings_store.update(TENANT, reminder_minutes=15)
    scheduler.refresh()

    reminder = [t for t in scheduler.pending() if t.kind == EventKind.reminder]
    assert reminder[0].fire_at == at(14, 15)
    assert scheduler.stats.cancelled == 1

def test_horizon_defers_far_tasks(scheduler, add_task, enabled, clock):
    tomorrow = TODAY + timedelta(days=1)
    add_task("near", "10:00", day=tomorrow)
    add_task("far", "16:00", day=tomorrow)

    scheduler.refresh()
    assert {t.task_id for t in scheduler.pending()} == {"near"}

    clock.advance_to(at(13, 0, day=tomorrow))
    scheduler.refresh()
    assert {t.task_id for t in scheduler.pending()} == {"far"}

def test_completed_and_invalid_tasks_are_skipped(scheduler, add_task, enabled):
    add_task("done", "14:00", completed=True)
    add_task("broken", "soon")

    scheduler.refresh()

    assert scheduler.pending() == []

def test_end_to_end_reminder_start_and_completion(scheduler, add_task, edit_task, enabled, clock, dispatcher_spy):
    add_task("t1", "14:00")
    scheduler.refresh()

    clock.advance_to(at(13, 55))
    assert dispatcher_spy.tags == ["reminder-t1"]

    clock.advance_to(at(13, 57))
    edit_task("t1", completed=True)
    scheduler.refresh()
    assert scheduler.pending() == []

    clock.advance_to(at(14, 0))
    assert dispatcher_spy.tags == ["reminder-t1"]
    assert scheduler.stats.fired == 1

def test_start_fires_once_at_start_time(scheduler, add_task, enabled, clock, dispatcher_spy, task_store):
    add_task("t1", "14:00")
    scheduler.refresh()

    clock.advance_to(at(14, 0))
    scheduler.refresh()
    clock.advance_to(at(14, 5))

    assert dispatcher_spy.tags == ["reminder-t1", "task-t1"]
    task = task_store.get("t1")
    assert task.reminder_sent and task.start_sent
    reminder, start = dispatcher_spy.requests[0][0], dispatcher_spy.requests[1][0]
    assert reminder.body == "Task t1 starts in 5 minutes! 💕"
    assert start.title == "💕 Task Time!"
    assert dispatcher_spy.requests[0][1] == TENANT

def test_double_fire_dispatches_once(scheduler, add_task, enabled, dispatcher_spy):
    add_task("t1", "14:00")

    assert scheduler.on_fire("t1", "reminder") is True
    assert scheduler.on_fire("t1", "reminder") is False

    assert dispatcher_spy.tags == ["reminder-t1"]
    assert scheduler.stats.suppressed == 1

def test_fire_for_deleted_task_is_suppressed(scheduler, enabled, dispatcher_spy):
    assert scheduler.on_fire("missing", EventKind.start) is False
    assert dispatcher_spy.requests == []

def test_completed_after_arming_suppresses_start(scheduler, add_task, edit_task, enabled, clock, dispatcher_spy, task_store):
    add_task("t1", "14:00")
    scheduler.refresh()

    clock.advance_to(at(13, 55))
    edit_task("t1", completed=True)
    clock.advance_to(at(14, 0))

    assert dispatcher_spy.tags == ["reminder-t1"]
    assert task_store.get("t1").start_sent is False

def test_stale_timer_keeps_new_epoch_reminder(scheduler, add_task, edit_task, enabled, clock, dispatcher_spy, task_store):
    add_task("t1", "14:00")
    scheduler.refresh()

    edit_task("t1", time="15:00", reminder_sent=False, start_sent=False)
    clock.advance_to(at(13, 55))

    assert dispatcher_spy.tags == []
    assert task_store.get("t1").reminder_sent is False

    scheduler.refresh()
    clock.advance_to(at(14, 55))
    assert dispatcher_spy.tags == ["reminder-t1"]

def test_timer_armed_before_lead_change_is_stale(scheduler, add_task, settings_store, enabled, clock, dispatcher_spy):
    add_task("t1", "14:30")
    scheduler.refresh()

    settings_store.update(TENANT, reminder_minutes=15)
    clock.advance_to(at(14, 25))

    assert dispatcher_spy.tags == []

def test_timer_fired_after_disabling_is_suppressed(scheduler, add_task, settings_store, enabled, clock, dispatcher_spy):
    add_task("t1", "14:00")
    scheduler.refresh()

    settings_store.update(TENANT, enabled=False)
    clock.advance_to(at(14, 0))

    assert dispatcher_spy.tags == []
    assert scheduler.stats.suppressed == 2

def test_concurrent_fires_dispatch_once(tmp_path, clock, dispatcher_spy):
    # A file database gives every thread its own connection
    engine = create_engine(f"sqlite:///{tmp_path / 'tasks.db'}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
    task_store, settings_store = TaskStore(factory), SettingsStore(factory)
    settings_store.update(TENANT, enabled=True)
    with factory() as db:
        db.add(CalendarTask(id="t1", user_id=TENANT, title="Task t1", date=TODAY, time="14:00"))
        db.commit()

    scheduler = ReminderScheduler(
        clock, task_store, settings_store, dispatcher_spy, tenant_id=TENANT, timezone=pytz.utc
    )
    barrier = threading.Barrier(8)
    results = []

    def fire():
        barrier.wait()
        results.append(scheduler.on_fire("t1", "reminder"))

    threads = [threading.Thread(target=fire) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    engine.dispose()

    assert results.count(True) == 1
    assert dispatcher_spy.tags == ["reminder-t1"]

def test_cancel_prevents_future_fires(scheduler, add_task, enabled, clock, dispatcher_spy):
    add_task("t1", "14:00")
    add_task("t2", "14:10")
    scheduler.refresh()

    assert scheduler.cancel("t1") == 2
    assert scheduler.cancel("t1") == 0
    assert scheduler.cancel("never-armed") == 0

    clock.advance_to(at(14, 30))
    assert dispatcher_spy.tags == ["reminder-t2", "task-t2"]

def test_catch_up_delivers_recent_start_only(clock, task_store, settings_store, dispatcher_spy, add_task, enabled):
    add_task("recent", "13:20")
    add_task("stale", "11:00")
    clock.advance_to(at(13, 50))
    scheduler = ReminderScheduler(
        clock, task_store, settings_store, dispatcher_spy, tenant_id=TENANT, timezone=pytz.utc
    )

    scheduler.refresh()

    # The reminder for a task already started is pointless; the stale start is past the window
    assert dispatcher_spy.tags == ["task-recent"]
    assert scheduler.stats.caught_up == 1
    assert task_store.get("stale").start_sent is False

def test_catch_up_reminder_while_start_is_ahead(scheduler, add_task, enabled, clock, dispatcher_spy):
    add_task("t1", "13:53")

    scheduler.refresh()

    assert dispatcher_spy.tags == ["reminder-t1"]
    assert [t.kind for t in scheduler.pending()] == [EventKind.start]

def test_restart_does_not_redeliver(clock, task_store, settings_store, dispatcher_spy, add_task, enabled):
    add_task("t1", "14:00")
    first = ReminderScheduler(clock, task_store, settings_store, dispatcher_spy, tenant_id=TENANT, timezone=pytz.utc)
    first.refresh()
    clock.advance_to(at(13, 56))
    first.stop()

    second = ReminderScheduler(clock, task_store, settings_store, dispatcher_spy, tenant_id=TENANT, timezone=pytz.utc)
    second.start()

    assert [t.kind for t in second.pending()] == [EventKind.start]
    assert dispatcher_spy.tags == ["reminder-t1"]

def test_start_registers_recurring_jobs(scheduler, add_task, enabled, clock):
    add_task("t1", "14:00")

    scheduler.start()

    assert clock.running
    assert clock.recurring["reminder_reconcile_job"][:2] == ("interval", 60)
    assert clock.recurring["daily_morning_job"][1] == (9, 0)
    assert clock.recurring["daily_evening_job"][1] == (18, 0)
    assert len(scheduler.pending()) == 2

    scheduler.stop()
    assert clock.jobs == {}
    assert not clock.running

class UnavailableTaskStore:
    def list(self, tenant_id, date_filter=None):
        raise OperationalError("SELECT calendar_tasks", {}, Exception("database is locked"))

def test_storage_failure_skips_cycle(clock, settings_store, dispatcher_spy):
    scheduler = ReminderScheduler(
        clock, UnavailableTaskStore(), settings_store, dispatcher_spy, tenant_id=TENANT, timezone=pytz.utc
    )

    assert scheduler.refresh() is False
    scheduler.start()

    assert scheduler.stats.skipped_cycles == 2
    assert scheduler.pending() == []

def test_local_notification_when_foreground(clock, task_store, settings_store, dispatcher_spy, notifier, add_task, enabled):
    scheduler = ReminderScheduler(
        clock,
        task_store,
        settings_store,
        dispatcher_spy,
        notifier,
        tenant_id=TENANT,
        timezone=pytz.utc,
        is_foreground=lambda: True,
    )
    add_task("t1", "14:00")
    scheduler.refresh()

    clock.advance_to(at(13, 55))

    # Both channels carry the same tag so the client collapses duplicates
    assert notifier.tags == dispatcher_spy.tags == ["reminder-t1"]
    assert notifier.shown[0][2]["requireInteraction"] is True

def test_no_local_notification_in_background(clock, task_store, settings_store, dispatcher_spy, notifier, add_task, enabled):
    scheduler = ReminderScheduler(
        clock, task_store, settings_store, dispatcher_spy, notifier, tenant_id=TENANT, timezone=pytz.utc
    )
    add_task("t1", "14:00")

    scheduler.on_fire("t1", "start")

    assert notifier.shown == []
    assert dispatcher_spy.tags == ["task-t1"]

class ExplodingDispatcher:
    def dispatch(self, request, tenant_id=None):
        raise RuntimeError("push service down")

def test_dispatch_failure_keeps_event_delivered(clock, task_store, settings_store, add_task, enabled):
    scheduler = ReminderScheduler(
        clock, task_store, settings_store, ExplodingDispatcher(), tenant_id=TENANT, timezone=pytz.utc
    )
    add_task("t1", "14:00")

    assert scheduler.on_fire("t1", "start") is True
    assert task_store.get("t1").start_sent is True
    assert scheduler.on_fire("t1", "start") is False

@pytest.mark.parametrize(
    "completed_flags, expected_body",
    [
        ((False, True), "You still have 1 tasks to complete today. You've got this! 💖"),
        ((True, True), "All tasks completed for today! Time to relax and celebrate! 💕🎉"),
    ],
)
def test_evening_summary(scheduler, add_task, enabled, dispatcher_spy, completed_flags, expected_body):
    add_task("a", "10:00", completed=completed_flags[0])
    add_task("b", "12:00", completed=completed_flags[1])

    assert scheduler.send_evening_summary() is True

    request = dispatcher_spy.requests[0][0]
    assert request.tag == "daily-evening"
    assert request.body == expected_body

def test_morning_summary_counts_open_tasks(scheduler, add_task, enabled, dispatcher_spy):
    add_task("a", "10:00")
    add_task("b", "12:00", completed=True)
    add_task("other-day", "12:00", day=TODAY + timedelta(days=1))

    assert scheduler.send_morning_summary() is True

    assert dispatcher_spy.requests[0][0].data == {"type": "daily-morning", "taskCount": 1}

def test_daily_summaries_respect_settings(scheduler, add_task, settings_store, dispatcher_spy):
    add_task("a", "10:00")
    settings_store.update(TENANT, enabled=True, daily_reminders=False)

    assert scheduler.send_morning_summary() is False
    assert scheduler.send_evening_summary() is False
    assert dispatcher_spy.requests == []

def test_completion_notification_respects_settings(scheduler, add_task, settings_store, dispatcher_spy):
    task = add_task("t1", "14:00")
    settings_store.update(TENANT, enabled=True, completion_notifications=False)
    assert scheduler.notify_completed(task) is False

    settings_store.update(TENANT, completion_notifications=True)
    assert scheduler.notify_completed(task) is True
    assert dispatcher_spy.tags == ["task-completed-t1"]

def test_upcoming_is_read_only(scheduler, add_task, enabled, dispatcher_spy):
    add_task("soon", "14:30")
    add_task("later", "16:00")
    add_task("past", "13:00")

    upcoming = scheduler.upcoming_tasks()

    assert [t.id for t in upcoming] == ["soon"]
    assert dispatcher_spy.requests == []
