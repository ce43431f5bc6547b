from datetime import datetime
from sqlalchemy import Boolean, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column
from entitlement_gateway.db.base import Base

class Profile(Base):
    __tablename__ = "profiles"

    # Same id the auth backend puts in the token "sub" and the apps send as user_id
    id: Mapped[str] = mapped_column(String(64), primary_key=True)

    # Column names follow the existing profile store; attributes use our names
    is_entitled: Mapped[bool] = mapped_column("is_plus", Boolean, default=False, nullable=False)
    renewal_at: Mapped[datetime | None] = mapped_column(
        "subscription_renewal_date", DateTime(timezone=True), nullable=True
    )

    # Stripe customer handle, needed later to open a billing portal session
    billing_customer_ref: Mapped[str | None] = mapped_column(
        "stripe_customer_id", String(64), nullable=True
    )

    # Asserted time of the event that produced the current values
    last_event_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
