import hmac
import hashlib
import time
from typing import Optional

DEFAULT_TOLERANCE_SECONDS = 300

def _parse_stripe_signature(header_value: str) -> tuple[Optional[str], list[str]]:
    """
    Stripe-Signature looks like: "t=1700000000,v1=abcdef...,v0=..."
    Several v1 entries show up while a signing secret is being rolled.
    """
    ts = None
    v1: list[str] = []
    for part in header_value.split(","):
        k, sep, v = part.strip().partition("=")
        if not sep:
            continue
        if k == "t":
            ts = v
        elif k == "v1" and v:
            v1.append(v)
    return ts, v1

def verify_card_processor_signature(
    raw_body: bytes,
    header_value: str | None,
    secret: str,
    tolerance_seconds: int = DEFAULT_TOLERANCE_SECONDS,
    now: float | None = None,
) -> bool:
    """
    Signed payload is "{t}.{raw_body}", HMAC SHA256 with the endpoint secret,
    hex digest, compared to each v1. Any parse problem is a failed verification.
    """
    if not secret or not header_value:
        return False

    ts, v1 = _parse_stripe_signature(header_value)
    if not ts or not v1:
        return False

    try:
        timestamp = int(ts)
    except ValueError:
        return False

    current = time.time() if now is None else now
    if abs(current - timestamp) > tolerance_seconds:
        return False

    signed_payload = f"{timestamp}.".encode("utf-8") + raw_body
    digest = hmac.new(secret.encode("utf-8"), signed_payload, hashlib.sha256).hexdigest().encode("ascii")
    # bytes on both sides: compare_digest rejects non-ASCII str input with TypeError
    return any(hmac.compare_digest(digest, candidate.encode("utf-8")) for candidate in v1)

def verify_aggregator_token(
    header_value: str | None,
    secret: str,
    allow_unauthenticated: bool = False,
) -> bool:
    """
    RevenueCat sends the dashboard-configured Authorization value verbatim.
    With no secret configured the answer is `allow_unauthenticated`: callers
    opt in to trusting the network explicitly.
    """
    if not secret:
        return allow_unauthenticated
    if not header_value:
        return False
    expected = f"Bearer {secret}"
    return hmac.compare_digest(header_value.encode("utf-8"), expected.encode("utf-8"))

def signature_prefix(header_value: str | None, length: int = 12) -> str:
    # For logs: never more than a short prefix of what the caller sent
    if not header_value:
        return "<missing>"
    return header_value[:length] + "..."
