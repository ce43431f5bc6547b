import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Request

from entitlement_gateway.api.cors import preflight
from entitlement_gateway.api.deps import get_profile_store, get_received_at, get_settings
from entitlement_gateway.api.webhook_flow import WebhookStage, audit, process_verified, reject, trace
from entitlement_gateway.core.config import Settings
from entitlement_gateway.db.profile_store import ProfileStore
from entitlement_gateway.integrations.webhook_signatures import verify_aggregator_token
from entitlement_gateway.schemas.entitlement import EventSource

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/revenuecat", tags=["revenuecat"])


@router.options("/webhook")
def revenuecat_webhook_preflight():
    return preflight()


@router.post("/webhook")
async def revenuecat_webhook(
    request: Request,
    settings: Settings = Depends(get_settings),
    store: ProfileStore = Depends(get_profile_store),
    received_at: datetime = Depends(get_received_at),
):
    source = EventSource.iap_aggregator
    trace(source, WebhookStage.received)

    authorization = request.headers.get("authorization")
    secret = settings.revenuecat_webhook_secret
    allow_unauthenticated = settings.revenuecat_allow_unauthenticated

    if not verify_aggregator_token(authorization, secret, allow_unauthenticated):
        if secret:
            logger.warning(
                "RevenueCat authorization mismatch (header %s)", "present" if authorization else "missing"
            )
        else:
            logger.error(
                "REVENUECAT_WEBHOOK_SECRET is not set and unauthenticated mode is off; rejecting"
            )
        audit(source, None, None, WebhookStage.rejected_signature)
        return reject(401, "unauthorized")

    if not secret:
        logger.warning("RevenueCat webhook accepted WITHOUT authentication (no secret configured)")

    trace(source, WebhookStage.verified)
    body = await request.body()
    return await process_verified(source, body, store, received_at)
