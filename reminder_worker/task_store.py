import logging
from datetime import date
from typing import List, Optional, Tuple

from sqlalchemy.orm import sessionmaker

from server.enums import EventKind
from server.models import CalendarTask

logger = logging.getLogger(__name__)

_DELIVERY_COLUMNS = {
    EventKind.reminder: CalendarTask.reminder_sent,
    EventKind.start: CalendarTask.start_sent,
}


class TaskStore:
    """
    Read side of the calendar tasks table as seen by the scheduler.

    Each method opens its own session, so the store is safe to call from
    timer threads. Returned rows are detached snapshots.
    """

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def list(self, tenant_id: str, date_filter: Optional[date] = None) -> List[CalendarTask]:
        with self._session_factory() as db:
            query = db.query(CalendarTask).filter(CalendarTask.user_id == tenant_id)
            if date_filter is not None:
                query = query.filter(CalendarTask.date == date_filter)
            return query.order_by(CalendarTask.date, CalendarTask.time, CalendarTask.created_at).all()

    def list_range(self, tenant_id: str, start: date, end: date) -> List[CalendarTask]:
        with self._session_factory() as db:
            return (
                db.query(CalendarTask)
                .filter(
                    CalendarTask.user_id == tenant_id,
                    CalendarTask.date >= start,
                    CalendarTask.date <= end,
                )
                .order_by(CalendarTask.date, CalendarTask.time)
                .all()
            )

    def get(self, task_id: str) -> Optional[CalendarTask]:
        with self._session_factory() as db:
            return db.query(CalendarTask).filter(CalendarTask.id == task_id).first()

    def mark_delivered(
        self,
        task_id: str,
        kind: EventKind,
        schedule: Optional[Tuple[date, str]] = None,
    ) -> Optional[CalendarTask]:
        """
        Atomically flip the delivered flag for (task, kind).

        The row only matches while the task is incomplete and, when
        `schedule` is given, still starts at that (date, time). Returns the
        task only to the caller whose UPDATE changed the row; every other
        caller (already delivered, completed, moved, or gone) gets None.
        """
        column = _DELIVERY_COLUMNS[EventKind(kind)]
        conditions = [CalendarTask.id == task_id, column.is_(False), CalendarTask.completed.is_(False)]
        if schedule is not None:
            conditions += [CalendarTask.date == schedule[0], CalendarTask.time == schedule[1]]
        with self._session_factory() as db:
            updated = (
                db.query(CalendarTask)
                .filter(*conditions)
                .update({column: True}, synchronize_session=False)
            )
            db.commit()
            if updated != 1:
                return None
            return db.query(CalendarTask).filter(CalendarTask.id == task_id).first()

    def reset_delivery(self, task_id: str) -> None:
        """Start a new scheduling epoch: both events may be delivered again."""
        with self._session_factory() as db:
            db.query(CalendarTask).filter(CalendarTask.id == task_id).update(
                {CalendarTask.reminder_sent: False, CalendarTask.start_sent: False},
                synchronize_session=False,
            )
            db.commit()
