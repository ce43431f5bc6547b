import logging

import httpx
from fastapi import FastAPI

from entitlement_gateway.core.clock import Clock, utc_now
from entitlement_gateway.core.config import Settings, settings as default_settings
from entitlement_gateway.core.logging_config import configure_logging
from entitlement_gateway.db.base import Base
from entitlement_gateway.db.profile_store import ProfileStore
from entitlement_gateway.db.session import build_engine, build_session_factory

# Import routers
from entitlement_gateway.api.billing import router as billing_router
from entitlement_gateway.api.error_handlers import register_error_handlers
from entitlement_gateway.api.revenuecat_webhook import router as revenuecat_webhook_router
from entitlement_gateway.api.stripe_webhook import router as stripe_webhook_router

logger = logging.getLogger(__name__)

def _warn_on_weak_config(settings: Settings) -> None:
    if not settings.stripe_webhook_secret:
        logger.error("STRIPE_WEBHOOK_SECRET is not set: every Stripe webhook will be rejected")
    if not settings.revenuecat_webhook_secret:
        if settings.revenuecat_allow_unauthenticated:
            logger.warning(
                "REVENUECAT_WEBHOOK_SECRET is not set and REVENUECAT_ALLOW_UNAUTHENTICATED is on: "
                "RevenueCat webhooks are accepted without authentication"
            )
        else:
            logger.error("REVENUECAT_WEBHOOK_SECRET is not set: every RevenueCat webhook will be rejected")

def create_app(
    settings: Settings | None = None,
    profile_store: ProfileStore | None = None,
    clock: Clock = utc_now,
    stripe_transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    settings = settings or default_settings
    configure_logging(settings.log_level)
    _warn_on_weak_config(settings)

    if profile_store is None:
        engine = build_engine(settings.database_url, echo=settings.db_echo)
        if settings.db_auto_create:
            Base.metadata.create_all(bind=engine)
        profile_store = ProfileStore(build_session_factory(engine), clock=clock)

    app = FastAPI(title=settings.app_name)
    app.state.settings = settings
    app.state.profile_store = profile_store
    app.state.clock = clock
    app.state.stripe_transport = stripe_transport

    @app.get("/health")
    def health():
        return {"status" : "ok", "env" : settings.app_env}

    register_error_handlers(app)

    # Stripe webhook (card payments)
    app.include_router(stripe_webhook_router)
    # RevenueCat webhook (App Store / Play Store purchases)
    app.include_router(revenuecat_webhook_router)
    # Billing portal
    app.include_router(billing_router)

    return app

def run() -> None:
    import uvicorn

    uvicorn.run(
        "entitlement_gateway.main:app",
        host=default_settings.app_host,
        port=default_settings.app_port,
        log_level=default_settings.log_level.lower(),
    )

app = create_app()
