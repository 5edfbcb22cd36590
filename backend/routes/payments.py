"""
Payment API Routes: Stripe checkout, webhook, balances and purchase history
"""
import logging

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse
from typing import Optional

from core.dependencies import get_current_user, get_ledger_store, get_event_store
from core.exceptions import InvitationServiceError
from models.billing import BalanceList, CheckoutSessionCreate, PurchaseList, VerifySessionRequest
from services import payments
from services.balances import list_balances
from stores.interfaces import LedgerStore, EventStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["payments"])


@router.get("/stripe/products")
async def get_products():
    return payments.list_products()


@router.post("/stripe/checkout-session")
async def create_checkout_session(
    data: CheckoutSessionCreate,
    current_user: dict = Depends(get_current_user),
    events: EventStore = Depends(get_event_store)
):
    return await payments.create_checkout_session(events, current_user["id"], data)


@router.post("/stripe/verify-session")
async def verify_checkout_session(
    data: VerifySessionRequest,
    current_user: dict = Depends(get_current_user)
):
    return payments.verify_session(data.session_id, current_user["id"])


@router.post("/stripe/webhook")
async def stripe_webhook(
    request: Request,
    ledger: LedgerStore = Depends(get_ledger_store),
    events: EventStore = Depends(get_event_store),
    stripe_signature: Optional[str] = Header(None, alias="stripe-signature")
):
    """
    Handle Stripe webhook events.

    Only checkout.session.completed is processed. Any failure to record the
    purchase answers 500 so Stripe redelivers; redelivery of an already
    recorded session is acknowledged without changes.
    """
    payload = await request.body()
    event = payments.construct_webhook_event(payload, stripe_signature)

    try:
        result = await payments.handle_webhook_event(ledger, events, event)
    except InvitationServiceError as e:
        logger.error(f"[Stripe Webhook] Failed to process purchase for event {event.get('id')}: {e}")
        return JSONResponse(status_code=500, content={"error": "Failed to process purchase"})

    response = {"received": True}
    if result is not None:
        response["already_processed"] = result.already_processed
    return response


@router.get("/invitation-balances", response_model=BalanceList)
async def get_invitation_balances(
    current_user: dict = Depends(get_current_user),
    ledger: LedgerStore = Depends(get_ledger_store),
    events: EventStore = Depends(get_event_store)
):
    """Balances per product type with the capacity reserved by published events"""
    return {"balances": await list_balances(ledger, events, current_user["id"])}


@router.get("/payments", response_model=PurchaseList)
async def get_payments(
    current_user: dict = Depends(get_current_user),
    ledger: LedgerStore = Depends(get_ledger_store)
):
    return {"payments": await ledger.list_purchases(current_user["id"])}
