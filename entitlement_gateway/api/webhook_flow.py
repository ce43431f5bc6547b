"""Request flow shared by both webhook endpoints.

    RECEIVED -> VERIFIED -> CLASSIFIED -> RECONCILED -> ACKNOWLEDGED

Early exits: REJECTED_SIGNATURE, REJECTED_MALFORMED. IGNORED, UNRESOLVED_USER
and STALE are acknowledged no-ops: a 2xx keeps the provider from redelivering
events we deliberately do not act on. Nothing is retried here; redelivery is
the provider's job and every step is safe to run again.
"""

import logging
from datetime import datetime
from enum import Enum

from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from entitlement_gateway.db.profile_store import ProfileStore
from entitlement_gateway.schemas.entitlement import EntitlementEvent, EventSource
from entitlement_gateway.schemas.webhook import WebhookAck
from entitlement_gateway.services.classifier import ClassificationError, Ignored, classify
from entitlement_gateway.services.reconciler import is_stale, reconcile

logger = logging.getLogger(__name__)


class WebhookStage(str, Enum):
    received = "RECEIVED"
    verified = "VERIFIED"
    classified = "CLASSIFIED"
    reconciled = "RECONCILED"
    acknowledged = "ACKNOWLEDGED"
    rejected_signature = "REJECTED_SIGNATURE"
    rejected_malformed = "REJECTED_MALFORMED"
    ignored = "IGNORED"
    unresolved_user = "UNRESOLVED_USER"
    stale = "STALE"


def audit(source: EventSource, event_type: str | None, user_id: str | None, stage: WebhookStage) -> None:
    logger.info(
        "WEBHOOK_AUDIT provider=%s event=%s user=%s stage=%s",
        source.value,
        event_type or "unknown",
        user_id or "-",
        stage.value,
    )


def trace(source: EventSource, stage: WebhookStage) -> None:
    logger.debug("WEBHOOK_STAGE provider=%s stage=%s", source.value, stage.value)


def ack() -> JSONResponse:
    return JSONResponse(WebhookAck().model_dump(), status_code=200)


def reject(status_code: int, error: str) -> JSONResponse:
    return JSONResponse({"error": error}, status_code=status_code)


async def apply_event(store: ProfileStore, event: EntitlementEvent) -> WebhookStage:
    """Reconcile and persist as one atomic step per user. Returns the terminal stage."""
    before, after = await run_in_threadpool(
        store.update, event.user_id, lambda current: reconcile(current, event)
    )
    if is_stale(before, event):
        logger.info(
            "Stale %s/%s for user=%s: occurred_at=%s < last_event_at=%s",
            event.source.value,
            event.raw_event_type,
            event.user_id,
            event.occurred_at.isoformat(),
            before.last_event_at.isoformat(),
        )
        return WebhookStage.stale

    trace(event.source, WebhookStage.reconciled)
    logger.debug(
        "Reconciled user=%s entitled=%s renewal_at=%s",
        after.user_id,
        after.is_entitled,
        after.renewal_at,
    )
    return WebhookStage.acknowledged


async def process_verified(
    source: EventSource,
    body: bytes,
    store: ProfileStore,
    received_at: datetime,
) -> JSONResponse:
    """Classify an authenticated body and fold it into the user's record."""
    result = classify(source, body, received_at)

    if isinstance(result, ClassificationError):
        if result.is_malformed:
            audit(source, result.raw_event_type, None, WebhookStage.rejected_malformed)
            return reject(400, result.code.value)
        logger.warning("Dropping %s event %s: %s", source.value, result.raw_event_type, result.code.value)
        audit(source, result.raw_event_type, None, WebhookStage.unresolved_user)
        return ack()

    if isinstance(result, Ignored):
        audit(source, result.raw_event_type, None, WebhookStage.ignored)
        return ack()

    trace(source, WebhookStage.classified)
    stage = await apply_event(store, result)
    audit(source, result.raw_event_type, result.user_id, stage)
    return ack()
