"""
Guest invitation dispatch (single and bulk) for email-type events
"""
import asyncio
import logging

from core.config import (
    BULK_SEND_DELAY, BULK_SEND_THROTTLE_AFTER, EMAIL_QUEUED, EMAIL_SENT, EMAIL_FAILED,
    FRONTEND_PUBLIC_URL, PUBLIC_API_URL, PRODUCT_EMAIL
)
from core.exceptions import (
    ExternalStoreError, InsufficientBalanceError, NotFoundError, ValidationError
)
from stores.interfaces import LedgerStore, GuestStore
from utils.helpers import now_iso, product_type_of
from .balances import get_counters
from .email import send_invitation_email
from .email_status import sources_for
from .usage import CHARGE_ON_ATTEMPT, charge_send, send_needs_credit

logger = logging.getLogger(__name__)


def invitation_url(event_id: str, guest_id: str) -> str:
    return f"{FRONTEND_PUBLIC_URL}/invitation/{event_id}/{guest_id}"


def tracking_url(guest_id: str) -> str:
    return f"{PUBLIC_API_URL}/api/public/track/{guest_id}.gif"


def require_email_event(event: dict) -> None:
    if product_type_of(event.get("invitation_type")) != PRODUCT_EMAIL:
        raise ValidationError("This event does not support email invitations")


async def process_email_send(guests: GuestStore, event: dict, guest: dict) -> dict:
    """Deliver one invitation and record the outcome on the guest"""
    variables = {
        "guest_name": guest.get("full_name"),
        "event_name": event.get("title_text"),
        "event_date": event.get("event_date") or "To be confirmed",
        "event_time": event.get("event_time") or "",
        "event_location": event.get("location") or "To be confirmed",
        "invitation_url": invitation_url(event["id"], guest["id"]),
        "tracking_url": tracking_url(guest["id"]),
    }
    result = await send_invitation_email(guest["email"], variables)

    if result["success"]:
        extra = {"email_message_id": result.get("message_id"), "email_error": None, "email_sent_at": now_iso()}
        updated = await guests.transition_email_status(guest["id"], sources_for(EMAIL_SENT), EMAIL_SENT, extra)
        if updated is None:
            # Already opened or completed; keep the later status
            await guests.update_guest(guest["id"], extra)
    else:
        logger.warning(f"Invitation to guest {guest['id']} failed: {result.get('error')}")
        extra = {"email_message_id": None, "email_error": result.get("error")}
        updated = await guests.transition_email_status(guest["id"], sources_for(EMAIL_FAILED), EMAIL_FAILED, extra)
        if updated is None:
            await guests.update_guest(guest["id"], {"email_error": result.get("error")})

    return result


def _insufficient_email_balance(purchased: int, used: int) -> InsufficientBalanceError:
    return InsufficientBalanceError(
        needed=1,
        available=max(0, purchased - used),
        product_type=PRODUCT_EMAIL,
        message="Insufficient balance to send invitations of this type",
    )


async def send_guest_invitation(ledger: LedgerStore, guests: GuestStore, event: dict, guest_id: str) -> dict:
    """Send (or resend) the invitation of one guest.

    The first send of each guest costs one email credit. With
    ``CHARGE_ON_ATTEMPT`` the credit is taken before delivery and stays
    consumed if delivery fails; otherwise the balance is only checked up front
    and the credit is taken once delivery succeeds.
    """
    require_email_event(event)

    guest = await guests.get_guest(guest_id, event["id"])
    if not guest:
        raise NotFoundError("Guest", guest_id)
    if not (guest.get("email") or "").strip():
        raise ValidationError("Guest has no email address")

    if CHARGE_ON_ATTEMPT:
        if not await charge_send(ledger, event, guest):
            purchased, used = await get_counters(ledger, event["user_id"], PRODUCT_EMAIL)
            raise _insufficient_email_balance(purchased, used)
        result = await process_email_send(guests, event, guest)
    else:
        needs_credit = send_needs_credit(event, guest)
        if needs_credit:
            purchased, used = await get_counters(ledger, event["user_id"], PRODUCT_EMAIL)
            if purchased - used < 1:
                raise _insufficient_email_balance(purchased, used)
        result = await process_email_send(guests, event, guest)
        if result["success"] and needs_credit:
            if not await ledger.consume_up_to(event["user_id"], PRODUCT_EMAIL, 1):
                logger.warning(f"Invitation to guest {guest_id} delivered after the '{PRODUCT_EMAIL}' balance ran out")

    return {**result, "invitation_url": invitation_url(event["id"], guest_id)}


async def send_all_invitations(
    ledger: LedgerStore,
    guests: GuestStore,
    event: dict,
    pending_only: bool = False
) -> dict:
    """Send invitations to every guest with an email address.

    The balance is read once and tracked locally; guests needing a credit are
    skipped once it runs out. Successful first sends are debited in one
    update at the end.
    """
    require_email_event(event)

    recipients = [g for g in await guests.list_guests(event["id"]) if (g.get("email") or "").strip()]
    if pending_only:
        recipients = [g for g in recipients if g.get("email_status") == EMAIL_QUEUED]
    if not recipients:
        raise ValidationError(
            "No pending guests to send to" if pending_only else "No guests with a valid email address"
        )

    purchased, used = await get_counters(ledger, event["user_id"], PRODUCT_EMAIL)
    remaining = purchased - used
    results = []
    total_deducted = 0

    for guest in recipients:
        needs_credit = send_needs_credit(event, guest)
        if needs_credit and remaining <= 0:
            results.append({"id": guest["id"], "ok": False, "err": "Insufficient balance"})
            continue

        try:
            result = await process_email_send(guests, event, guest)
        except ExternalStoreError as e:
            logger.error(f"Could not record invitation for guest {guest['id']}: {e}")
            results.append({"id": guest["id"], "ok": False, "err": "Internal server error"})
            continue

        results.append({"id": guest["id"], "ok": result["success"], "err": result.get("error")})
        if result["success"] and needs_credit:
            remaining -= 1
            total_deducted += 1

        if len(recipients) > BULK_SEND_THROTTLE_AFTER:
            await asyncio.sleep(BULK_SEND_DELAY)

    if total_deducted:
        debited = await ledger.consume_up_to(event["user_id"], PRODUCT_EMAIL, total_deducted)
        if debited < total_deducted:
            logger.warning(
                f"Bulk send for event {event['id']} debited {debited} of {total_deducted} credits"
            )

    sent = sum(1 for r in results if r["ok"])
    logger.info(f"Bulk invitations for event {event['id']}: {sent}/{len(recipients)} sent")
    return {
        "success": True,
        "total": len(recipients),
        "sent": sent,
        "failed": len(recipients) - sent,
        "details": results,
    }
