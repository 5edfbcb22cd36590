"""
Purchase finalizer.

Turns a completed checkout session into a ledger credit and, when the session
is linked to an event, an event patch (capacity bump and optional publish).

Flow: record purchase -> credit balance -> patch event.

The purchase insert is keyed by checkout_session_id and is the only guard
against duplicate webhook deliveries. The balance and event steps each carry a
flag on the purchase record (``balance_applied`` / ``event_applied``) that is
set only after the step succeeds. The credit itself is recorded per session on
the balance row, so a step interrupted at any point is re-driven by
``reconcile_pending_purchases`` or a redelivery without ever crediting twice.
"""
import logging
from typing import Optional

from core.config import (
    DEFAULT_CURRENCY, EVENT_PUBLISHED, STEP_BALANCE, STEP_EVENT
)
from core.exceptions import DuplicateDeliveryError, ExternalStoreError, ValidationError
from models.billing import FinalizeResult
from stores.interfaces import LedgerStore, EventStore
from utils.helpers import now_iso, parse_int

logger = logging.getLogger(__name__)


def _linked_event_id(raw: Optional[str]) -> Optional[str]:
    if not raw or raw == "null":
        return None
    return str(raw)


def build_purchase_record(session: dict, stripe_event_id: Optional[str] = None) -> dict:
    """Validate session metadata and build the purchase document"""
    session_id = session.get("id")
    meta = session.get("metadata") or {}
    user_id = meta.get("userId")
    product_type = meta.get("productType")

    if not session_id or not user_id or not product_type:
        raise ValidationError("Missing critical metadata in Stripe session")

    event_id = _linked_event_id(meta.get("eventId"))

    return {
        "checkout_session_id": session_id,
        "stripe_event_id": stripe_event_id or session_id,
        "user_id": str(user_id),
        "product_type": str(product_type).strip().lower(),
        "pack_name": meta.get("packName") or None,
        "quantity": parse_int(meta.get("invitations")) or 0,
        "price": (session.get("amount_total") or 0) / 100,
        "currency": session.get("currency") or DEFAULT_CURRENCY,
        "payment_status": "paid",
        "unit_type": "invitation",
        "event_id": event_id,
        "target_max_guests": parse_int(meta.get("targetMaxGuests")),
        "publish_after_payment": meta.get("publishAfterPayment") == "true",
        STEP_BALANCE: False,
        STEP_EVENT: event_id is None,
        "created_at": now_iso(),
    }


async def record_purchase(ledger: LedgerStore, record: dict) -> dict:
    """Idempotent insert keyed by checkout session id"""
    inserted = await ledger.insert_purchase_if_absent(record["checkout_session_id"], record)
    if inserted is None:
        raise DuplicateDeliveryError(record["checkout_session_id"])
    return inserted


async def _apply_balance_step(ledger: LedgerStore, record: dict) -> bool:
    session_id = record["checkout_session_id"]
    try:
        credited = await ledger.credit_purchase(
            record["user_id"], record["product_type"], session_id, record.get("quantity") or 0
        )
        await ledger.mark_purchase_step(session_id, STEP_BALANCE, True)
    except ExternalStoreError as e:
        logger.error(f"[Stripe Webhook] Balance credit failed for {session_id}, will retry: {e}")
        return False

    if credited:
        logger.info(
            f"[Stripe Webhook] Credited {record.get('quantity')} '{record['product_type']}' "
            f"invitations to user {record['user_id']}"
        )
    else:
        logger.info(f"[Stripe Webhook] Session {session_id} was already credited")
    return True


async def _apply_event_step(ledger: LedgerStore, events: EventStore, record: dict) -> bool:
    session_id = record["checkout_session_id"]
    event_id = record.get("event_id")
    if not event_id:
        return False

    patch = {"updated_at": now_iso()}
    if record.get("target_max_guests") is not None:
        patch["max_guests"] = record["target_max_guests"]
    if record.get("publish_after_payment"):
        patch["status"] = EVENT_PUBLISHED

    try:
        updated = await events.update_event(event_id, record["user_id"], patch)
        await ledger.mark_purchase_step(session_id, STEP_EVENT, True)
    except ExternalStoreError as e:
        logger.error(f"[Stripe Webhook] Error updating event {event_id}, will retry: {e}")
        return False

    if updated is None:
        # Event deleted or not owned by the buyer: nothing left to apply
        logger.warning(f"[Stripe Webhook] Event {event_id} not found for user {record['user_id']}")
    return True


async def apply_purchase_steps(ledger: LedgerStore, events: EventStore, record: dict) -> tuple[bool, bool]:
    """Run the balance and event steps that have not applied yet.

    Both steps are safe to repeat: the credit is recorded against the session
    on the balance row and the event patch only sets values. A step's flag is
    set after its work succeeds, so anything that interrupts a step leaves it
    pending for reconciliation. Store failures are logged and never undo the
    recorded purchase.
    """
    balance_done = bool(record.get(STEP_BALANCE))
    event_done = bool(record.get(STEP_EVENT))

    if not balance_done:
        balance_done = await _apply_balance_step(ledger, record)
    if not event_done:
        event_done = await _apply_event_step(ledger, events, record)

    return balance_done, event_done


async def finalize_purchase(
    ledger: LedgerStore,
    events: EventStore,
    session: dict,
    stripe_event_id: Optional[str] = None
) -> FinalizeResult:
    """Idempotently finalize a completed checkout session.

    Raises ValidationError on missing metadata and ExternalStoreError when the
    purchase cannot be recorded, so the webhook answers with a failure and
    Stripe redelivers.
    """
    record = build_purchase_record(session, stripe_event_id)
    session_id = record["checkout_session_id"]
    logger.info(f"[Stripe Webhook] Processing session {session_id}")

    try:
        inserted = await record_purchase(ledger, record)
    except DuplicateDeliveryError:
        logger.info(f"[Stripe Webhook] Session already processed: {session_id}")
        existing = await ledger.get_purchase(session_id)
        if existing and not (existing.get(STEP_BALANCE) and existing.get(STEP_EVENT)):
            await apply_purchase_steps(ledger, events, existing)
        return FinalizeResult(ok=True, already_processed=True)

    balance_done, event_done = await apply_purchase_steps(ledger, events, inserted)

    if balance_done and (event_done or not record["event_id"]):
        logger.info(f"[Stripe Webhook] Purchase finalized: {session_id}")
    else:
        logger.warning(f"[Stripe Webhook] Purchase {session_id} recorded with pending steps")

    return FinalizeResult(
        ok=True,
        already_processed=False,
        balance_applied=balance_done,
        event_applied=event_done,
    )


async def reconcile_pending_purchases(ledger: LedgerStore, events: EventStore, limit: int = 100) -> int:
    """Re-drive purchases whose balance or event step has not applied.

    Returns the number of steps applied in this pass.
    """
    pending = await ledger.list_unreconciled_purchases(limit)
    applied = 0
    for record in pending:
        before_balance = bool(record.get(STEP_BALANCE))
        before_event = bool(record.get(STEP_EVENT))
        balance_done, event_done = await apply_purchase_steps(ledger, events, record)
        applied += int(balance_done and not before_balance) + int(event_done and not before_event)
    if applied:
        logger.info(f"Reconciliation applied {applied} pending purchase steps")
    return applied
