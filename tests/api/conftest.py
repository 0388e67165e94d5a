import pytest
from fastapi.testclient import TestClient

from server.dependencies import get_db
from server.main import create_app
from reminder_worker.config import ReminderWorkerConfig
from reminder_worker.service import NotificationServices


@pytest.fixture
def services(session_factory, clock, gateway):
    cfg = ReminderWorkerConfig()
    cfg.VAPID_PUBLIC_KEY = "test-public-key"
    cfg.VAPID_PRIVATE_KEY = "test-private-key"
    cfg.TIMEZONE = "UTC"
    cfg.DEFAULT_TENANT = "default"
    cfg.LOCAL_NOTIFICATIONS = False
    return NotificationServices(session_factory, cfg=cfg, timer=clock, gateway=gateway)


@pytest.fixture
def api_client(engine, session_factory, services):
    app = create_app(services=services, db_engine=engine)

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as client:
        yield client


@pytest.fixture
def subscribe(api_client):
    def _subscribe(endpoint, p256dh="p256dh-key", auth="auth-key"):
        response = api_client.post(
            "/push/subscribe",
            json={"endpoint": endpoint, "keys": {"p256dh": p256dh, "auth": auth}},
        )
        assert response.status_code == 201
        return response.json()
    return _subscribe


@pytest.fixture
def notifications_on(api_client):
    response = api_client.put("/settings/", json={"enabled": True})
    assert response.status_code == 200
    return response.json()
