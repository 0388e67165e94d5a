import pytest
import pytz
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from server.database import Base
from server.models import CalendarTask
from reminder_worker.registry import SubscriptionRegistry
from reminder_worker.scheduler import ReminderScheduler
from reminder_worker.settings_store import SettingsStore
from reminder_worker.task_store import TaskStore
from tests.fakes import (
    TENANT, TODAY, at, FakeGateway, FakeTimerSource, RecordingDispatcher, RecordingNotifier
)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


@pytest.fixture
def clock():
    return FakeTimerSource(at(13, 50))


@pytest.fixture
def task_store(session_factory):
    return TaskStore(session_factory)


@pytest.fixture
def settings_store(session_factory):
    return SettingsStore(session_factory)


@pytest.fixture
def registry(session_factory):
    return SubscriptionRegistry(session_factory)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def dispatcher_spy():
    return RecordingDispatcher()


@pytest.fixture
def enabled(settings_store):
    return settings_store.update(TENANT, enabled=True)


@pytest.fixture
def scheduler(clock, task_store, settings_store, dispatcher_spy):
    return ReminderScheduler(
        clock,
        task_store,
        settings_store,
        dispatcher_spy,
        tenant_id=TENANT,
        timezone=pytz.utc,
    )


@pytest.fixture
def add_task(session_factory):
    def _add_task(task_id, time, day=TODAY, **fields):
        fields.setdefault("title", f"Task {task_id}")
        fields.setdefault("user_id", TENANT)
        with session_factory() as db:
            task = CalendarTask(id=task_id, date=day, time=time, **fields)
            db.add(task)
            db.commit()
            return task
    return _add_task


@pytest.fixture
def edit_task(session_factory):
    def _edit_task(task_id, **fields):
        with session_factory() as db:
            task = db.query(CalendarTask).filter(CalendarTask.id == task_id).first()
            for key, value in fields.items():
                setattr(task, key, value)
            db.commit()
            return task
    return _edit_task
