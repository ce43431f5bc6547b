"""Shared fixtures: in-memory profile store, fixed clock, configured app."""

from __future__ import annotations

import hashlib
import hmac
import json
import os
from datetime import datetime, timedelta, timezone

# Keep the module-level app in entitlement_gateway.main off the local disk
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from entitlement_gateway.core.config import Settings
from entitlement_gateway.db.base import Base
from entitlement_gateway.db.profile_store import ProfileStore
from entitlement_gateway.main import create_app
from entitlement_gateway.models.profile import Profile  # noqa: F401  (registers the table)

STRIPE_WEBHOOK_SECRET = "whsec_test_secret"
REVENUECAT_SECRET = "rc-shared-secret"
NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


class FixedClock:
    """Clock pinned to one instant; `advance` moves it forward."""

    def __init__(self, at: datetime):
        self.at = at

    def __call__(self) -> datetime:
        return self.at

    def advance(self, seconds: float) -> None:
        self.at = self.at + timedelta(seconds=seconds)


@pytest.fixture()
def clock() -> FixedClock:
    return FixedClock(NOW)


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        _env_file=None,
        database_url="sqlite://",
        stripe_secret_key="sk_test_123",
        stripe_webhook_secret=STRIPE_WEBHOOK_SECRET,
        revenuecat_webhook_secret=REVENUECAT_SECRET,
        jwt_secret="jwt-test-secret",
        app_base_url="https://app.example.test",
    )


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    engine.dispose()


@pytest.fixture()
def store(session_factory, clock) -> ProfileStore:
    return ProfileStore(session_factory, clock=clock)


@pytest.fixture()
def make_client(settings, store, clock):
    """Build a TestClient; keyword overrides go straight to create_app."""

    def _make(**overrides) -> TestClient:
        kwargs = {"settings": settings, "profile_store": store, "clock": clock}
        kwargs.update(overrides)
        return TestClient(create_app(**kwargs))

    return _make


@pytest.fixture()
def client(make_client) -> TestClient:
    return make_client()


@pytest.fixture()
def stripe_signature(clock):
    """Compute a valid Stripe-Signature header for a raw body."""

    def _sign(body: bytes, timestamp: int | None = None, secret: str = STRIPE_WEBHOOK_SECRET) -> str:
        ts = int(clock().timestamp()) if timestamp is None else timestamp
        digest = hmac.new(secret.encode(), f"{ts}.".encode() + body, hashlib.sha256).hexdigest()
        return f"t={ts},v1={digest}"

    return _sign


def stripe_event(event_type: str, obj: dict, created: int | None = None) -> bytes:
    envelope = {"id": "evt_test", "object": "event", "type": event_type, "data": {"object": obj}}
    if created is not None:
        envelope["created"] = created
    return json.dumps(envelope).encode()


def revenuecat_event(event_type: str, app_user_id: str | None = "u1", **fields) -> bytes:
    event = {"type": event_type, **fields}
    if app_user_id is not None:
        event["app_user_id"] = app_user_id
    return json.dumps({"api_version": "1.0", "event": event}).encode()


@pytest.fixture()
def build_stripe_event():
    return stripe_event


@pytest.fixture()
def build_revenuecat_event():
    return revenuecat_event


@pytest.fixture()
def issue_token(settings):
    """Mint an access token the way the auth backend does (HS256, sub = user id)."""

    def _issue(subject: str, secret: str | None = None, ttl_minutes: int = 60) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": subject,
            "aud": "authenticated",
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(minutes=ttl_minutes)).timestamp()),
        }
        return jwt.encode(payload, secret or settings.jwt_secret, algorithm=settings.jwt_alg)

    return _issue
