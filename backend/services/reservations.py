"""
Reservation calculator.

A published event reserves its ``max_guests`` against its owner's balance for
the product type named by the ``invitation_type`` prefix. Reservations are
never stored; they are recomputed from the events collection so deleting or
unpublishing an event releases its capacity.
"""
from typing import Optional

from core.config import EVENT_PUBLISHED
from stores.interfaces import EventStore
from utils.helpers import as_count, product_type_of


async def total_reserved(events: EventStore, user_id: str, product_type: str) -> int:
    """Sum of max_guests over the user's published events of this product type"""
    published = await events.list_published_events(user_id, product_type)
    return sum(as_count(ev.get("max_guests")) for ev in published)


def own_reservation(event: Optional[dict], product_type: str) -> int:
    """Capacity the event itself currently holds for product_type (0 unless published)"""
    if not event or event.get("status") != EVENT_PUBLISHED:
        return 0
    if product_type_of(event.get("invitation_type")) != product_type:
        return 0
    return as_count(event.get("max_guests"))


async def reserved_by_others(
    events: EventStore,
    user_id: str,
    product_type: str,
    event: Optional[dict] = None
) -> int:
    """Reservation held by every published event except ``event``"""
    reserved = await total_reserved(events, user_id, product_type)
    return reserved - own_reservation(event, product_type)
