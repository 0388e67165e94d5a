from typing import Optional
import logging
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.exc import SQLAlchemyError
from server.schemas import SettingsUpdate, SettingsResponse
from server.dependencies import get_services
from reminder_worker.service import NotificationServices

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/", response_model=SettingsResponse)
def get_settings(
    userId: Optional[str] = Query(None),
    services: NotificationServices = Depends(get_services)
):
    try:
        return services.settings_store.get(userId or services.default_tenant)
    except SQLAlchemyError:
        logger.exception("Failed to load notification settings")
        raise HTTPException(status_code=500, detail="Failed to load settings")


@router.put("/", response_model=SettingsResponse)
def update_settings(
    settings_data: SettingsUpdate,
    userId: Optional[str] = Query(None),
    services: NotificationServices = Depends(get_services)
):
    changes = settings_data.model_dump(exclude_unset=True, exclude_none=True)
    try:
        updated = services.settings_store.update(userId or services.default_tenant, **changes)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SQLAlchemyError:
        logger.exception("Failed to save notification settings")
        raise HTTPException(status_code=500, detail="Failed to save settings")

    # Switching reminders off cancels everything armed; switching on arms what is due
    services.scheduler.refresh()
    return updated
