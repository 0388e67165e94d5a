import logging
from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.engine import Engine
from server.config import config
from server.database import engine as default_engine, Base, SessionLocal
from server.routes import router
from server.routes.prometheus import metrics_middleware
from reminder_worker.service import NotificationServices

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


# =========================================================
# FASTAPI APP
# =========================================================
def create_app(services: Optional[NotificationServices] = None, db_engine: Optional[Engine] = None) -> FastAPI:
    """
    Build the API. Without `services` the lifespan wires the reminder engine
    against the configured database; tests pass their own.
    """
    bind = db_engine or default_engine

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("🔄 Creating database tables if not exist...")
        Base.metadata.create_all(bind=bind)

        if getattr(app.state, "services", None) is None:
            app.state.services = NotificationServices(SessionLocal)
        app.state.services.start()
        try:
            yield
        finally:
            app.state.services.stop()

    app = FastAPI(title="Study Tracker Notifications API", lifespan=lifespan)
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],      # IMPORTANT – allows OPTIONS
        allow_headers=["*"],
    )

    # Register Prometheus middleware
    app.middleware("http")(metrics_middleware)

    # Include API Router
    app.include_router(router)

    @app.get("/health")
    def health():
        return {"ok": True}

    return app


app = create_app()
