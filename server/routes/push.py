import logging
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from server.schemas import (
    SubscribeRequest, SubscribeResponse, UnsubscribeRequest, NotifyRequest,
    TaskReminderRequest, TaskCompletedRequest, PushStatusResponse
)
from server.dependencies import get_services
from reminder_worker import payloads
from reminder_worker.payloads import NotificationRequest
from reminder_worker.service import NotificationServices

router = APIRouter()
logger = logging.getLogger(__name__)


def _send(services: NotificationServices, request: NotificationRequest, tenant_id=None) -> dict:
    try:
        outcome = services.dispatcher.dispatch(request, tenant_id=tenant_id)
    except SQLAlchemyError:
        logger.exception(f"Failed to load subscriptions for {request.tag!r}")
        raise HTTPException(status_code=500, detail="Failed to send notifications")

    if outcome.attempted == 0:
        return {"success": True, "message": "No active subscriptions found", **outcome.to_dict()}
    return {
        "success": True,
        "message": f"Notifications sent: {outcome.succeeded} successful, {outcome.failed} failed",
        **outcome.to_dict(),
    }


# =========================================================
# SUBSCRIPTIONS
# =========================================================
@router.post("/subscribe", response_model=SubscribeResponse, status_code=status.HTTP_201_CREATED)
def subscribe(
    payload: SubscribeRequest,
    services: NotificationServices = Depends(get_services)
):
    keys = payload.keys
    if not payload.endpoint or keys is None or not keys.p256dh or not keys.auth:
        raise HTTPException(status_code=400, detail="Invalid subscription data")

    try:
        subscription = services.registry.upsert(
            payload.endpoint,
            keys.p256dh,
            keys.auth,
            payload.userId or services.default_tenant,
        )
    except SQLAlchemyError:
        logger.exception("Failed to save push subscription")
        raise HTTPException(status_code=500, detail="Failed to save subscription")

    return {
        "success": True,
        "message": "Subscription saved successfully",
        "subscriptionId": subscription.id,
    }


@router.post("/unsubscribe")
def unsubscribe(
    payload: UnsubscribeRequest,
    services: NotificationServices = Depends(get_services)
):
    if not payload.endpoint:
        raise HTTPException(status_code=400, detail="Endpoint is required")

    try:
        found = services.registry.deactivate(payload.endpoint)
    except SQLAlchemyError:
        logger.exception("Failed to deactivate push subscription")
        raise HTTPException(status_code=500, detail="Failed to unsubscribe")

    if not found:
        logger.info(f"Unsubscribe for unknown endpoint {payload.endpoint[:60]}")
    return {"success": True, "message": "Unsubscribed successfully"}


# =========================================================
# NOTIFY
# =========================================================
@router.post("/notify")
def notify(
    payload: NotifyRequest,
    services: NotificationServices = Depends(get_services)
):
    if not payload.title or not payload.body:
        raise HTTPException(status_code=400, detail="Title and body are required")

    request = NotificationRequest(
        title=payload.title,
        body=payload.body,
        tag=payload.tag or payloads.DEFAULT_TAG,
        icon=payload.icon or payloads.DEFAULT_ICON,
        data=payload.data or {},
        actions=payload.actions,
    )
    return _send(services, request, tenant_id=payload.userId)


@router.post("/notify/task-reminder")
def notify_task_reminder(
    payload: TaskReminderRequest,
    services: NotificationServices = Depends(get_services)
):
    if payload.taskId in (None, "") or not payload.taskTitle:
        raise HTTPException(status_code=400, detail="Task ID and title are required")

    request = payloads.manual_task_reminder(str(payload.taskId), payload.taskTitle, payload.reminderMinutes)
    return _send(services, request)


@router.post("/notify/task-completed")
def notify_task_completed(
    payload: TaskCompletedRequest,
    services: NotificationServices = Depends(get_services)
):
    if payload.taskId in (None, "") or not payload.taskTitle:
        raise HTTPException(status_code=400, detail="Task ID and title are required")

    return _send(services, payloads.task_completed(str(payload.taskId), payload.taskTitle))


@router.post("/notify/water-reminder")
def notify_water_reminder(services: NotificationServices = Depends(get_services)):
    return _send(services, payloads.water_reminder())


@router.get("/status", response_model=PushStatusResponse)
def push_status(services: NotificationServices = Depends(get_services)):
    try:
        active = services.registry.count_active()
        total = services.registry.count_total()
    except SQLAlchemyError:
        logger.exception("Failed to count push subscriptions")
        raise HTTPException(status_code=500, detail="Failed to get subscription status")

    return {
        "success": True,
        "activeSubscriptions": active,
        "totalSubscriptions": total,
        "vapidPublicKey": services.vapid_public_key or None,
    }
