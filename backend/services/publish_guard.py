"""
Publish guard: capacity gate for event publish and capacity edits.

Runs when a patch publishes an event, or changes max_guests / invitation_type
of an event that is already published. The event's own current reservation is
excluded so re-patching a published event is not counted against itself.
"""
import logging
from typing import Optional

from core.config import EVENT_PUBLISHED
from core.exceptions import InsufficientBalanceError, NotFoundError, OwnershipError
from models.billing import CapacityCheck
from stores.interfaces import LedgerStore, EventStore
from utils.helpers import as_count, now_iso, product_type_of
from .balances import get_counters
from .locks import balance_locks
from .reservations import reserved_by_others

logger = logging.getLogger(__name__)


def guard_applies(event: dict, patch: dict) -> bool:
    """True when the patch can change how much capacity the event reserves"""
    if event.get("status") == EVENT_PUBLISHED:
        return "max_guests" in patch or "invitation_type" in patch
    return patch.get("status") == EVENT_PUBLISHED


def next_capacity(event: dict, patch: dict) -> tuple[int, str]:
    """(prospective max_guests, prospective product type) after the patch"""
    next_max = patch["max_guests"] if patch.get("max_guests") is not None else event.get("max_guests")
    next_type = product_type_of(patch.get("invitation_type") or event.get("invitation_type"))
    return as_count(next_max), next_type


async def load_owned_event(events: EventStore, event_id: str, user_id: str) -> dict:
    event = await events.get_event(event_id)
    if not event:
        raise NotFoundError("Event", event_id)
    if event.get("user_id") != user_id:
        raise OwnershipError()
    return event


async def evaluate_capacity(
    ledger: LedgerStore,
    events: EventStore,
    event: dict,
    user_id: str,
    patch: dict
) -> CapacityCheck:
    if not guard_applies(event, patch):
        return CapacityCheck(ok=True)

    next_max, next_type = next_capacity(event, patch)
    purchased, _ = await get_counters(ledger, user_id, next_type)
    usage_others = await reserved_by_others(events, user_id, next_type, event)
    available_for_event = purchased - usage_others

    if next_max > available_for_event:
        return CapacityCheck(
            ok=False,
            needed=next_max,
            available=available_for_event,
            product_type=next_type,
            message=(
                f"Not enough '{next_type}' invitations: this event needs {next_max}, "
                f"{max(0, available_for_event)} available"
            ),
        )
    return CapacityCheck(ok=True, needed=next_max, available=available_for_event, product_type=next_type)


async def check_publish_capacity(
    ledger: LedgerStore,
    events: EventStore,
    event_id: str,
    user_id: str,
    patch: dict
) -> CapacityCheck:
    """Read-only capacity check for a prospective event patch"""
    event = await load_owned_event(events, event_id, user_id)
    return await evaluate_capacity(ledger, events, event, user_id, patch)


async def _write_patch(events: EventStore, event_id: str, user_id: str, patch: dict) -> dict:
    updated = await events.update_event(event_id, user_id, {**patch, "updated_at": now_iso()})
    if updated is None:
        # Deleted between the read and the write
        raise NotFoundError("Event", event_id)
    return updated


async def apply_event_patch(
    ledger: LedgerStore,
    events: EventStore,
    event_id: str,
    user_id: str,
    patch: dict
) -> dict:
    """Gate and apply an owner's event patch.

    Capacity-changing patches are checked and written while holding the
    (user, product type) balance lock, so two concurrent publishes cannot
    both pass against the same credits. The product type is recomputed from
    the event read under the lock; if it moved while waiting, the patch is
    retried under the lock of the new type.
    """
    event = await load_owned_event(events, event_id, user_id)
    if not guard_applies(event, patch):
        return await _write_patch(events, event_id, user_id, patch)

    _, lock_type = next_capacity(event, patch)
    while True:
        async with balance_locks.hold(user_id, lock_type):
            # Re-read under the lock; the event may have changed while waiting
            event = await load_owned_event(events, event_id, user_id)
            _, next_type = next_capacity(event, patch)
            if next_type == lock_type:
                check = await evaluate_capacity(ledger, events, event, user_id, patch)
                if not check.ok:
                    logger.warning(
                        f"Publish rejected for event {event_id}: needed {check.needed}, "
                        f"available {check.available} ({check.product_type})"
                    )
                    raise InsufficientBalanceError(
                        needed=check.needed,
                        available=check.available,
                        product_type=check.product_type,
                        message=check.message,
                    )
                updated = await _write_patch(events, event_id, user_id, patch)
                break
        logger.info(f"Event {event_id} moved from '{lock_type}' to '{next_type}' while waiting, retrying")
        lock_type = next_type

    published = patch.get("status") == EVENT_PUBLISHED and event.get("status") != EVENT_PUBLISHED
    if published and check.needed is not None:
        logger.info(f"Event {event_id} published with {check.needed} '{check.product_type}' invitations")
    return updated


async def publish_event(
    ledger: LedgerStore,
    events: EventStore,
    event_id: str,
    user_id: str,
    max_guests: Optional[int] = None
) -> dict:
    patch = {"status": EVENT_PUBLISHED}
    if max_guests is not None:
        patch["max_guests"] = max_guests
    return await apply_event_patch(ledger, events, event_id, user_id, patch)
