from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, field_validator

from entitlement_gateway.utils.dt import as_utc_aware


class EventSource(str, Enum):
    card_processor = "card_processor"
    iap_aggregator = "iap_aggregator"


class EventKind(str, Enum):
    activate = "activate"
    deactivate = "deactivate"


class EntitlementEvent(BaseModel):
    """One normalized entitlement assertion from either provider."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    source: EventSource
    kind: EventKind
    occurred_at: datetime
    renewal_at: datetime | None = None
    customer_ref: str | None = None
    raw_event_type: str

    @field_validator("occurred_at", "renewal_at")
    @classmethod
    def to_utc(cls, value: datetime | None) -> datetime | None:
        return as_utc_aware(value)


class EntitlementRecord(BaseModel):
    """Persisted entitlement state for one user."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    is_entitled: bool = False
    renewal_at: datetime | None = None
    billing_customer_ref: str | None = None
    # None means "no event applied yet", ordered before any real instant
    last_event_at: datetime | None = None

    @field_validator("renewal_at", "last_event_at")
    @classmethod
    def to_utc(cls, value: datetime | None) -> datetime | None:
        return as_utc_aware(value)
