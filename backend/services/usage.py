"""
Usage debitor: turns RSVPs and invitation sends into ledger usage.

- url products are metered when guests confirm attendance.
- email products are metered per first send to a guest.
"""
import logging

from core.config import PRODUCT_EMAIL, PRODUCT_URL
from core.exceptions import NotFoundError
from stores.interfaces import LedgerStore, EventStore, GuestStore
from utils.helpers import product_type_of
from .email_status import is_first_send

logger = logging.getLogger(__name__)

# Single sends take the email credit before delivery and a failed send keeps
# its debit. When False the credit is taken only after delivery succeeds.
CHARGE_ON_ATTEMPT = True


def send_needs_credit(event: dict, guest: dict) -> bool:
    """First send of an email-type invitation consumes one credit"""
    return (
        product_type_of(event.get("invitation_type")) == PRODUCT_EMAIL
        and is_first_send(guest.get("email_status"))
    )


async def debit_rsvp(ledger: LedgerStore, event: dict, attending_count: int) -> int:
    """Debit newly attending guests of a url-type event. Returns the amount debited."""
    product_type = product_type_of(event.get("invitation_type"))
    if attending_count <= 0 or product_type != PRODUCT_URL:
        return 0

    debited = await ledger.consume_up_to(event["user_id"], product_type, attending_count)
    if debited < attending_count:
        logger.warning(
            f"RSVP usage for event {event.get('id')} exceeded the '{product_type}' balance: "
            f"{attending_count} attending, {debited} debited"
        )
    return debited


async def debit_usage_on_rsvp(ledger: LedgerStore, events: EventStore, event_id: str, attending_count: int) -> int:
    event = await events.get_event(event_id)
    if not event:
        raise NotFoundError("Event", event_id)
    return await debit_rsvp(ledger, event, attending_count)


async def charge_send(ledger: LedgerStore, event: dict, guest: dict) -> bool:
    """Take one email credit before a send. False when the balance is exhausted."""
    if not send_needs_credit(event, guest):
        return True

    balance = await ledger.try_consume(event["user_id"], PRODUCT_EMAIL, 1)
    if balance is None:
        logger.warning(f"No '{PRODUCT_EMAIL}' credits left to invite guest {guest.get('id')}")
        return False
    return True


async def debit_usage_on_send(
    ledger: LedgerStore,
    events: EventStore,
    guests: GuestStore,
    event_id: str,
    guest_id: str
) -> bool:
    event = await events.get_event(event_id)
    if not event:
        raise NotFoundError("Event", event_id)
    guest = await guests.get_guest(guest_id, event_id)
    if not guest:
        raise NotFoundError("Guest", guest_id)
    return await charge_send(ledger, event, guest)
