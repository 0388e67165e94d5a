from fastapi import APIRouter
from . import push, calendar_tasks, settings, prometheus

router = APIRouter()

router.include_router(push.router, prefix="/push", tags=["Push Notifications"])
router.include_router(calendar_tasks.router, prefix="/calendar-tasks", tags=["Calendar Tasks"])
router.include_router(settings.router, prefix="/settings", tags=["Settings"])
router.include_router(prometheus.router, prefix="/metrics", tags=["Metrics"])
