import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Request

from entitlement_gateway.api.cors import preflight
from entitlement_gateway.api.deps import get_profile_store, get_received_at, get_settings
from entitlement_gateway.api.webhook_flow import WebhookStage, audit, process_verified, reject, trace
from entitlement_gateway.core.config import Settings
from entitlement_gateway.db.profile_store import ProfileStore
from entitlement_gateway.integrations.webhook_signatures import (
    signature_prefix,
    verify_card_processor_signature,
)
from entitlement_gateway.schemas.entitlement import EventSource

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/stripe", tags=["stripe"])

SIGNATURE_HEADER = "stripe-signature"


@router.options("/webhook")
def stripe_webhook_preflight():
    return preflight()


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    settings: Settings = Depends(get_settings),
    store: ProfileStore = Depends(get_profile_store),
    received_at: datetime = Depends(get_received_at),
):
    source = EventSource.card_processor
    trace(source, WebhookStage.received)

    signature = request.headers.get(SIGNATURE_HEADER)
    if not signature:
        audit(source, None, None, WebhookStage.rejected_signature)
        return reject(400, "missing_signature")

    # HMAC is over the exact bytes Stripe sent, so read the raw body
    body = await request.body()

    ok = verify_card_processor_signature(
        body,
        signature,
        settings.stripe_webhook_secret,
        tolerance_seconds=settings.stripe_signature_tolerance_seconds,
        now=received_at.timestamp(),
    )
    if not ok:
        logger.warning("Stripe signature verification failed (sig=%s)", signature_prefix(signature))
        audit(source, None, None, WebhookStage.rejected_signature)
        return reject(400, "invalid_signature")

    trace(source, WebhookStage.verified)
    return await process_verified(source, body, store, received_at)
