import json
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from entitlement_gateway.schemas.entitlement import EntitlementEvent, EventKind, EventSource
from entitlement_gateway.utils.dt import from_epoch_millis, from_epoch_seconds


class CardRule(str, Enum):
    activate = "activate"
    deactivate = "deactivate"
    # kind depends on data.object.status
    subscription_status = "subscription_status"


CARD_PROCESSOR_EVENTS: dict[str, CardRule] = {
    "checkout.session.completed": CardRule.activate,
    "customer.subscription.created": CardRule.subscription_status,
    "customer.subscription.updated": CardRule.subscription_status,
    "customer.subscription.deleted": CardRule.deactivate,
}

ACTIVE_SUBSCRIPTION_STATUSES = frozenset({"active", "trialing"})

IAP_AGGREGATOR_EVENTS: dict[str, EventKind] = {
    "INITIAL_PURCHASE": EventKind.activate,
    "RENEWAL": EventKind.activate,
    "PRODUCT_CHANGE": EventKind.activate,
    "REACTIVATION": EventKind.activate,
    "UNCANCELLATION": EventKind.activate,
    "CANCELLATION": EventKind.deactivate,
    "EXPIRATION": EventKind.deactivate,
    "BILLING_ISSUE": EventKind.deactivate,
}

# RevenueCat ids handed out before Purchases.logIn(); they never match a profile
ANONYMOUS_APP_USER_PREFIX = "$RCAnonymousID:"


class ClassificationErrorCode(str, Enum):
    invalid_json = "invalid_json"
    invalid_payload = "invalid_payload"
    missing_event_type = "missing_event_type"
    missing_user = "missing_user"


@dataclass(frozen=True)
class ClassificationError:
    code: ClassificationErrorCode
    source: EventSource
    raw_event_type: str | None = None

    @property
    def is_malformed(self) -> bool:
        """Malformed payloads are client errors; the rest are acknowledged no-ops."""
        return self.code in (ClassificationErrorCode.invalid_json, ClassificationErrorCode.invalid_payload)


@dataclass(frozen=True)
class Ignored:
    source: EventSource
    raw_event_type: str


Classification = EntitlementEvent | Ignored | ClassificationError


def _load(payload: bytes | str | dict) -> dict | None:
    if isinstance(payload, dict):
        return payload
    return json.loads(payload)


def _as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def classify(
    source: EventSource,
    payload: bytes | str | dict,
    received_at: datetime,
) -> Classification:
    """
    Map one verified payload onto an EntitlementEvent, Ignored, or a
    ClassificationError. Bad input is returned as an error value, never raised;
    event types outside the provider's table come back as Ignored.

    occurred_at is the provider's own assertion time (Stripe envelope
    `created`, RevenueCat `event_timestamp_ms`). Only when that is absent does
    it fall back to the period end / expiration, then to received_at: period
    ends are not ordered like the events that set them, so a resubscription
    with an earlier period end would otherwise look stale.
    """
    try:
        body = _load(payload)
    except (ValueError, RecursionError):
        # RecursionError: nesting deeper than the decoder's stack
        return ClassificationError(ClassificationErrorCode.invalid_json, source)

    if not isinstance(body, dict):
        return ClassificationError(ClassificationErrorCode.invalid_payload, source)

    if source == EventSource.card_processor:
        return _classify_card_processor(body, received_at)
    return _classify_iap_aggregator(body, received_at)


def _settle(kind: EventKind, renewal_at: datetime | None, received_at: datetime) -> tuple[EventKind, datetime | None]:
    # Deactivations carry no renewal; an activation whose renewal is already
    # behind received_at describes a lapsed period and lands as a deactivation
    if kind == EventKind.deactivate:
        return kind, None
    if renewal_at is not None and renewal_at < received_at:
        return EventKind.deactivate, None
    return kind, renewal_at


# ---------------------------
# Stripe
# ---------------------------

def _stripe_customer_ref(obj: dict) -> str | None:
    customer = obj.get("customer")
    if isinstance(customer, dict):
        # expanded customer object
        return _as_str(customer.get("id"))
    return _as_str(customer)


def _stripe_period_end(obj: dict) -> datetime | None:
    period_end = from_epoch_seconds(obj.get("current_period_end"))
    if period_end:
        return period_end
    # newer API versions moved the period onto subscription items
    items = _as_dict(obj.get("items")).get("data")
    if not isinstance(items, list):
        return None
    ends = [from_epoch_seconds(_as_dict(i).get("current_period_end")) for i in items]
    ends = [e for e in ends if e]
    return max(ends) if ends else None


def _stripe_user_id(event_type: str, obj: dict) -> str | None:
    user_id = _as_str(_as_dict(obj.get("metadata")).get("user_id"))
    if user_id:
        return user_id
    if event_type == "checkout.session.completed":
        return _as_str(obj.get("client_reference_id"))
    return None


def _classify_card_processor(body: dict, received_at: datetime) -> Classification:
    source = EventSource.card_processor
    event_type = _as_str(body.get("type"))
    if not event_type:
        return ClassificationError(ClassificationErrorCode.missing_event_type, source)

    rule = CARD_PROCESSOR_EVENTS.get(event_type)
    if rule is None:
        return Ignored(source, event_type)

    obj = _as_dict(_as_dict(body.get("data")).get("object"))
    user_id = _stripe_user_id(event_type, obj)
    if not user_id:
        return ClassificationError(ClassificationErrorCode.missing_user, source, event_type)

    if rule == CardRule.activate:
        kind = EventKind.activate
    elif rule == CardRule.deactivate:
        kind = EventKind.deactivate
    else:
        status = obj.get("status")
        kind = EventKind.activate if status in ACTIVE_SUBSCRIPTION_STATUSES else EventKind.deactivate

    period_end = _stripe_period_end(obj)
    occurred_at = from_epoch_seconds(body.get("created")) or period_end or received_at
    kind, renewal_at = _settle(kind, period_end, received_at)

    return EntitlementEvent(
        user_id=user_id,
        source=source,
        kind=kind,
        occurred_at=occurred_at,
        renewal_at=renewal_at,
        customer_ref=_stripe_customer_ref(obj),
        raw_event_type=event_type,
    )


# ---------------------------
# RevenueCat
# ---------------------------

def _classify_iap_aggregator(body: dict, received_at: datetime) -> Classification:
    source = EventSource.iap_aggregator
    event = _as_dict(body.get("event"))
    event_type = _as_str(event.get("type"))
    if not event_type:
        return ClassificationError(ClassificationErrorCode.missing_event_type, source)

    kind = IAP_AGGREGATOR_EVENTS.get(event_type)
    if kind is None:
        return Ignored(source, event_type)

    user_id = _as_str(event.get("app_user_id"))
    if not user_id or user_id.startswith(ANONYMOUS_APP_USER_PREFIX):
        return ClassificationError(ClassificationErrorCode.missing_user, source, event_type)

    expiration = from_epoch_millis(event.get("expiration_at_ms"))
    occurred_at = from_epoch_millis(event.get("event_timestamp_ms")) or expiration or received_at
    kind, renewal_at = _settle(kind, expiration, received_at)

    return EntitlementEvent(
        user_id=user_id,
        source=source,
        kind=kind,
        occurred_at=occurred_at,
        renewal_at=renewal_at,
        raw_event_type=event_type,
    )
