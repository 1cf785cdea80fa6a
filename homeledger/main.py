import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import (
    admin,
    auth,
    homes,
    invitations,
    messages,
    notifications,
    pro,
    records,
    reminders,
    service_requests,
    transfers,
    uploads,
)
from .config import Base, Settings, get_settings
from .core.errors import register_exception_handlers
from .core.logging import configure_logging
from .core.rate_limit import RateLimiter
from .core.request_context import RequestIdMiddleware
from .core.security import SecurityHeadersMiddleware, log_security_warnings
from .db import build_engine, build_session_factory
from .models import models  # noqa: F401  registers tables on Base.metadata
from .services.email import EmailService
from .services.storage import StorageService

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the API with its own engine, storage client and rate limiter.

    Run with ``uvicorn homeledger.main:create_app --factory``.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level, settings.log_format)

    app = FastAPI(title="HomeLedger")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(SecurityHeadersMiddleware, enable_hsts=settings.is_production)
    app.add_middleware(RequestIdMiddleware)
    register_exception_handlers(app)

    # Storage is built first so a missing S3 setting stops startup before any table is touched.
    storage = StorageService(settings)

    engine = build_engine(settings)
    Base.metadata.create_all(bind=engine)

    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)
    app.state.storage = storage
    app.state.email = EmailService(settings)
    app.state.rate_limiter = RateLimiter()

    log_security_warnings(settings)
    app.state.email.log_configuration()

    app.include_router(auth.router, prefix="/auth", tags=["auth"])
    app.include_router(pro.router, prefix="/pro", tags=["pro"])
    app.include_router(homes.router, prefix="/homes", tags=["homes"])
    app.include_router(records.router, prefix="/homes", tags=["records"])
    app.include_router(invitations.router, prefix="/invitations", tags=["invitations"])
    app.include_router(service_requests.router, tags=["service-requests"])
    app.include_router(reminders.router, tags=["reminders"])
    app.include_router(uploads.router, tags=["uploads"])
    app.include_router(messages.router, prefix="/messages", tags=["messages"])
    app.include_router(notifications.router, prefix="/notifications", tags=["notifications"])
    app.include_router(transfers.router, tags=["transfers"])
    app.include_router(admin.router, prefix="/admin", tags=["admin"])

    @app.get("/health", tags=["system"])
    def health() -> dict:
        return {"status": "ok", "env": settings.app_env}

    logger.info("HomeLedger API configured for %s", settings.app_env)
    return app
