"""
Stripe integration: invitation packs, checkout sessions and webhooks.

Stripe calls are synchronous SDK calls made directly from the async handlers.
"""
import logging
from typing import Optional

import stripe

from core.config import (
    CHECKOUT_COMPLETED, DEFAULT_CURRENCY, DEFAULT_PRODUCT_TYPE, FRONTEND_PUBLIC_URL,
    STRIPE_SECRET_KEY, STRIPE_WEBHOOK_SECRET
)
from core.exceptions import PaymentProviderError, OwnershipError, SignatureVerificationError
from models.billing import CheckoutSessionCreate, FinalizeResult
from stores.interfaces import LedgerStore, EventStore
from .publish_guard import load_owned_event
from .purchases import finalize_purchase

logger = logging.getLogger(__name__)

if STRIPE_SECRET_KEY:
    stripe.api_key = STRIPE_SECRET_KEY


def to_plain_dict(obj) -> dict:
    """Stripe objects (or plain dicts in tests) as nested plain dicts"""
    if obj is None:
        return {}
    to_dict = getattr(obj, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    return dict(obj)


def format_product(product: dict) -> dict:
    price = product.get("default_price") or None
    if not isinstance(price, dict):
        price = None
    return {
        "id": product.get("id"),
        "name": product.get("name"),
        "description": product.get("description"),
        "image": (product.get("images") or [None])[0],
        "priceId": price.get("id") if price else None,
        "amount": (price.get("unit_amount") or 0) / 100 if price else 0,
        "currency": price.get("currency") if price else DEFAULT_CURRENCY,
        "metadata": product.get("metadata") or {},
    }


def list_products() -> list[dict]:
    """Active invitation packs with their default price"""
    try:
        products = stripe.Product.list(active=True, expand=["data.default_price"])
    except stripe.StripeError as e:
        logger.error(f"Error fetching products from Stripe: {e}")
        raise PaymentProviderError("list_products", "Error fetching products")
    return [format_product(p) for p in to_plain_dict(products).get("data", [])]


def build_session_metadata(user_id: str, product: dict, data: CheckoutSessionCreate) -> dict:
    """Metadata read back by the purchase finalizer. Stripe metadata values are strings."""
    product_meta = product.get("metadata") or {}
    return {
        "userId": str(user_id or ""),
        "productType": str(product_meta.get("type") or DEFAULT_PRODUCT_TYPE),
        "invitations": str(product_meta.get("invitations") or "0"),
        "packName": str(product.get("name") or ""),
        "eventId": str(data.event_id) if data.event_id else "",
        "targetMaxGuests": str(data.target_max_guests) if data.target_max_guests else "",
        "publishAfterPayment": "true" if data.publish_after_payment else "false",
    }


async def create_checkout_session(events: EventStore, user_id: str, data: CheckoutSessionCreate) -> dict:
    """Create a Checkout session for one pack; a linked draft event moves to pending"""
    if data.event_id:
        await load_owned_event(events, data.event_id, user_id)

    try:
        price = to_plain_dict(stripe.Price.retrieve(data.price_id, expand=["product"]))
    except stripe.StripeError as e:
        logger.error(f"Error retrieving Stripe price {data.price_id}: {e}")
        raise PaymentProviderError("retrieve_price", "Error creating checkout session")

    product = price.get("product") if isinstance(price.get("product"), dict) else {}
    metadata = build_session_metadata(user_id, product, data)

    if data.event_id:
        return_url = f"{FRONTEND_PUBLIC_URL}/dashboard/events/{data.event_id}"
    else:
        return_url = f"{FRONTEND_PUBLIC_URL}/dashboard"

    try:
        session = to_plain_dict(stripe.checkout.Session.create(
            payment_method_types=["card"],
            line_items=[{"price": data.price_id, "quantity": 1}],
            mode="payment",
            success_url=f"{return_url}?payment=success&session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{return_url}?payment=cancel",
            metadata=metadata,
            payment_intent_data={"metadata": metadata},
        ))
    except stripe.StripeError as e:
        logger.error(f"Error creating Stripe checkout session: {e}")
        raise PaymentProviderError("create_checkout_session", "Error creating checkout session")

    if data.event_id and await events.mark_pending_if_draft(data.event_id):
        logger.info(f"Event {data.event_id} pending payment")

    logger.info(f"Checkout session {session['id']} created for user {user_id} ({metadata['productType']})")
    return {"url": session["url"], "id": session["id"]}


def verify_session(session_id: str, user_id: str) -> dict:
    try:
        session = to_plain_dict(stripe.checkout.Session.retrieve(session_id))
    except stripe.StripeError as e:
        logger.error(f"[Stripe] Error verifying session {session_id}: {e}")
        raise PaymentProviderError("retrieve_session", "Error verifying checkout session")

    metadata = session.get("metadata") or {}
    if str(metadata.get("userId")) != str(user_id):
        raise OwnershipError("You are not allowed to verify this session")

    return {
        "ok": True,
        "payment_status": session.get("payment_status"),
        "status": session.get("status"),
        "metadata": metadata,
    }


def construct_webhook_event(payload: bytes, signature: Optional[str]) -> dict:
    """Verify the stripe-signature header and parse the event"""
    if not signature:
        raise SignatureVerificationError("Missing stripe-signature header")
    try:
        event = stripe.Webhook.construct_event(payload, signature, STRIPE_WEBHOOK_SECRET)
    except ValueError:
        logger.error("[Stripe Webhook] Invalid payload")
        raise SignatureVerificationError("Invalid payload")
    except stripe.SignatureVerificationError as e:
        logger.error(f"[Stripe Webhook] Signature verification failed: {e}")
        raise SignatureVerificationError()
    return to_plain_dict(event)


async def handle_webhook_event(ledger: LedgerStore, events: EventStore, event: dict) -> Optional[FinalizeResult]:
    """Dispatch a verified webhook event; other event types are acknowledged and ignored"""
    event_type = event.get("type")
    if event_type != CHECKOUT_COMPLETED:
        logger.info(f"[Stripe Webhook] Ignoring event type {event_type}")
        return None

    session = (event.get("data") or {}).get("object") or {}
    logger.info(f"[Stripe Webhook] Received event for session {session.get('id')}")
    return await finalize_purchase(ledger, events, session, event.get("id"))
