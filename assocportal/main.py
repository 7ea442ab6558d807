import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from .api import (
    associations,
    audit_logs,
    billing,
    documents,
    leads,
    meetings,
    members,
    platform,
    system,
    units,
    voting,
    webhooks,
)
from .config import Base, SessionLocal, engine, settings
from .core.errors import register_exception_handlers
from .core.logging import configure_logging
from .core.request_context import RequestIdMiddleware
from .core.security import SecurityHeadersMiddleware, log_security_warnings
from .services.billing import ensure_subscription_tiers
from .services.storage import StorageBackend, storage_service

configure_logging(settings.log_level, settings.log_format)
logger = logging.getLogger(__name__)

app = FastAPI(title="Association Portal")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestIdMiddleware)
register_exception_handlers(app)

uploads_route = "/" + settings.uploads_public_prefix.strip("/")
if storage_service.backend == StorageBackend.LOCAL:
    uploads_dir = settings.uploads_root_path
    uploads_dir.mkdir(parents=True, exist_ok=True)
    app.mount(uploads_route, StaticFiles(directory=str(uploads_dir)), name="uploads")


@app.on_event("startup")
def startup() -> None:
    # In dev we make sure tables exist. Alembic migrations should be used for real schema evolution.
    Base.metadata.create_all(bind=engine)
    with SessionLocal() as session:
        ensure_subscription_tiers(session)
    log_security_warnings(
        settings.auth_jwt_secret,
        settings.email_backend,
        settings.stripe_api_key,
        settings.stripe_webhook_secret,
    )
    logger.info("Association portal started (storage=%s).", storage_service.backend.value)


app.include_router(associations.router)
app.include_router(associations.me_router)
app.include_router(members.router)
app.include_router(units.router)
app.include_router(documents.router)
app.include_router(documents.storage_router)
app.include_router(voting.router)
app.include_router(meetings.router)
app.include_router(audit_logs.router)
app.include_router(billing.router)
app.include_router(webhooks.router)
app.include_router(platform.router)
app.include_router(leads.router)
app.include_router(system.router)
