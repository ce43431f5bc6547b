import httpx
from entitlement_gateway.core.config import Settings

async def stripe_create_portal_session(
    settings: Settings,
    customer_id: str,
    return_url: str,
    transport: httpx.AsyncBaseTransport | None = None,
) -> tuple[int, dict]:
    """
    Creates a Billing Portal session and returns (status_code, json).
    Docs: POST /v1/billing_portal/sessions (form encoded)
    """
    headers = {"Authorization": f"Bearer {settings.stripe_secret_key}"}
    data = {"customer": customer_id, "return_url": return_url}
    async with httpx.AsyncClient(base_url=settings.stripe_api_base, timeout=20, transport=transport) as client:
        r = await client.post("/v1/billing_portal/sessions", data=data, headers=headers)
    try:
        body = r.json() if r.content else {}
    except ValueError:
        # keep body as text to avoid json decode surprises
        body = {"raw": r.text}
    return r.status_code, body
