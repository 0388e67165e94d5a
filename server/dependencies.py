from fastapi import Request
from server.database import SessionLocal
from reminder_worker.service import NotificationServices


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_services(request: Request) -> NotificationServices:
    """The reminder engine built in the app lifespan."""
    return request.app.state.services
