from typing import List, Optional
import datetime as dt
import logging
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from server.schemas import CalendarTaskCreate, CalendarTaskUpdate, CalendarTaskResponse
from server.models import CalendarTask
from server.dependencies import get_db, get_services
from reminder_worker.service import NotificationServices

router = APIRouter()
logger = logging.getLogger(__name__)

# Editing either of these starts a new scheduling epoch
SCHEDULE_FIELDS = ("date", "time")


def _get_task_or_404(db: Session, task_id: str, tenant_id: str) -> CalendarTask:
    task = db.query(CalendarTask).filter(
        CalendarTask.id == task_id,
        CalendarTask.user_id == tenant_id
    ).first()
    if not task:
        raise HTTPException(status_code=404, detail="Calendar task not found")
    return task


def _reschedule(services: NotificationServices) -> None:
    # The write is already committed; a failed reconcile is retried by the periodic job
    services.scheduler.refresh()


# =========================================================
# QUERIES
# =========================================================
@router.get("/", response_model=List[CalendarTaskResponse])
def get_calendar_tasks(
    date: Optional[dt.date] = Query(None),
    userId: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    services: NotificationServices = Depends(get_services)
):
    try:
        query = db.query(CalendarTask).filter(CalendarTask.user_id == (userId or services.default_tenant))
        if date:
            query = query.filter(CalendarTask.date == date)
        return query.order_by(CalendarTask.time, CalendarTask.created_at).all()
    except SQLAlchemyError:
        logger.exception("Failed to fetch calendar tasks")
        raise HTTPException(status_code=500, detail="Failed to fetch calendar tasks")


@router.get("/range", response_model=List[CalendarTaskResponse])
def get_calendar_tasks_in_range(
    startDate: Optional[dt.date] = Query(None),
    endDate: Optional[dt.date] = Query(None),
    userId: Optional[str] = Query(None),
    services: NotificationServices = Depends(get_services)
):
    if not startDate or not endDate:
        raise HTTPException(status_code=400, detail="startDate and endDate are required")

    try:
        return services.task_store.list_range(userId or services.default_tenant, startDate, endDate)
    except SQLAlchemyError:
        logger.exception("Failed to fetch calendar tasks for date range")
        raise HTTPException(status_code=500, detail="Failed to fetch calendar tasks for date range")


@router.get("/upcoming", response_model=List[CalendarTaskResponse])
def get_upcoming_tasks(
    userId: Optional[str] = Query(None),
    services: NotificationServices = Depends(get_services)
):
    """Tasks of today starting within the next hour. Reporting only; nothing is sent."""
    try:
        return services.scheduler.upcoming_tasks(tenant_id=userId)
    except SQLAlchemyError:
        logger.exception("Failed to fetch upcoming tasks")
        raise HTTPException(status_code=500, detail="Failed to fetch upcoming tasks")


# =========================================================
# MUTATIONS
# =========================================================
@router.post("/", response_model=CalendarTaskResponse, status_code=status.HTTP_201_CREATED)
def create_calendar_task(
    task_data: CalendarTaskCreate,
    db: Session = Depends(get_db),
    services: NotificationServices = Depends(get_services)
):
    if not task_data.title or not task_data.date or not task_data.time:
        raise HTTPException(status_code=400, detail="title, date, and time are required")

    fields = task_data.model_dump(exclude={"id", "user_id"}, exclude_none=True)
    task = CalendarTask(**fields, user_id=task_data.user_id or services.default_tenant)
    if task_data.id:
        if db.query(CalendarTask).filter(CalendarTask.id == task_data.id).first():
            raise HTTPException(status_code=400, detail="Calendar task id already exists")
        task.id = task_data.id

    try:
        db.add(task)
        db.commit()
        db.refresh(task)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to create calendar task")
        raise HTTPException(status_code=500, detail="Failed to create calendar task")

    logger.info(f"Created calendar task {task.id} on {task.date} at {task.time}")
    _reschedule(services)
    return task


@router.put("/{task_id}", response_model=CalendarTaskResponse)
def update_calendar_task(
    task_id: str,
    task_data: CalendarTaskUpdate,
    userId: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    services: NotificationServices = Depends(get_services)
):
    task = _get_task_or_404(db, task_id, userId or services.default_tenant)
    changes = task_data.model_dump(exclude_unset=True, exclude_none=True)
    for required in ("title", "date", "time"):
        if required in changes and not changes[required]:
            raise HTTPException(status_code=400, detail=f"{required} cannot be empty")

    was_completed = bool(task.completed)
    moved = any(name in changes and changes[name] != getattr(task, name) for name in SCHEDULE_FIELDS)

    for key, value in changes.items():
        setattr(task, key, value)
    if moved:
        task.reminder_sent = False
        task.start_sent = False

    try:
        db.commit()
        db.refresh(task)
    except SQLAlchemyError:
        db.rollback()
        logger.exception(f"Failed to update calendar task {task_id}")
        raise HTTPException(status_code=500, detail="Failed to update calendar task")

    if moved:
        logger.info(f"Calendar task {task_id} moved to {task.date} {task.time}; reminders re-armed")
    _reschedule(services)

    if task.completed and not was_completed:
        try:
            services.scheduler.notify_completed(task)
        except SQLAlchemyError:
            logger.exception(f"Completion notification skipped for task {task_id}")
    return task


@router.delete("/{task_id}")
def delete_calendar_task(
    task_id: str,
    userId: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    services: NotificationServices = Depends(get_services)
):
    task = _get_task_or_404(db, task_id, userId or services.default_tenant)
    try:
        db.delete(task)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception(f"Failed to delete calendar task {task_id}")
        raise HTTPException(status_code=500, detail="Failed to delete calendar task")

    cancelled = services.scheduler.cancel(task_id)
    logger.info(f"Deleted calendar task {task_id}, {cancelled} pending timers cancelled")
    _reschedule(services)
    return {"ok": True}
