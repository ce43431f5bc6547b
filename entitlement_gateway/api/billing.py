import logging

import httpx
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from entitlement_gateway.api.cors import CORS_HEADERS, preflight
from entitlement_gateway.api.deps import get_current_user_id, get_profile_store, get_settings
from entitlement_gateway.core.config import Settings
from entitlement_gateway.core.errors import BillingProviderError
from entitlement_gateway.db.profile_store import ProfileStore
from entitlement_gateway.integrations.stripe_client import stripe_create_portal_session
from entitlement_gateway.schemas.billing import PortalSessionOut

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/billing", tags=["billing"])

@router.options("/portal")
def billing_portal_preflight():
    return preflight()

# Open a Stripe Customer Portal session (update card, cancel, invoices)
@router.post("/portal", response_model=PortalSessionOut)
async def create_billing_portal_session(
    request: Request,
    user_id: str = Depends(get_current_user_id),
    settings: Settings = Depends(get_settings),
    store: ProfileStore = Depends(get_profile_store),
):
    if not settings.stripe_secret_key:
        logger.error("STRIPE_SECRET_KEY is not set; cannot open portal session")
        raise HTTPException(status_code=500, detail="Billing is not configured")

    record = await run_in_threadpool(store.get, user_id)
    if not record or not record.billing_customer_ref:
        raise HTTPException(status_code=404, detail="No Stripe customer found for this user")

    try:
        status, resp = await stripe_create_portal_session(
            settings,
            customer_id=record.billing_customer_ref,
            return_url=settings.app_base_url,
            transport=request.app.state.stripe_transport,
        )
    except httpx.HTTPError as exc:
        logger.error("Stripe portal request failed: %s", exc.__class__.__name__)
        raise BillingProviderError("stripe unreachable") from exc

    if status not in (200, 201):
        logger.error("Stripe portal session returned %s for user=%s", status, user_id)
        raise BillingProviderError("portal session rejected", provider_status=status)

    url = resp.get("url")
    if not url:
        raise BillingProviderError("portal session without url", provider_status=status)

    return JSONResponse(PortalSessionOut(url=url).model_dump(), headers=CORS_HEADERS)
