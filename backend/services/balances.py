"""
Balance service: available invitation credits per (user, product type).

Two accountings exist:
- reservation: purchased - reserved by published events. Used for publish
  checks and the balance listing.
- usage: purchased - used. Used to meter per-send email credits.

``available`` returns the raw (possibly negative) difference for gating;
``clamp`` it only for display.
"""
import logging

from core.config import ACCOUNTING_RESERVATION, ACCOUNTING_USAGE
from core.exceptions import ValidationError
from stores.interfaces import LedgerStore, EventStore
from utils.helpers import as_count
from .reservations import total_reserved

logger = logging.getLogger(__name__)


def clamp(value: int) -> int:
    return max(0, value)


async def get_counters(ledger: LedgerStore, user_id: str, product_type: str) -> tuple[int, int]:
    """(total_purchased, total_used), zero when there is no balance row"""
    balance = await ledger.get_balance(user_id, product_type)
    if not balance:
        return 0, 0
    return as_count(balance.get("total_purchased")), as_count(balance.get("total_used"))


async def available(
    ledger: LedgerStore,
    events: EventStore,
    user_id: str,
    product_type: str,
    mode: str = ACCOUNTING_RESERVATION
) -> int:
    purchased, used = await get_counters(ledger, user_id, product_type)
    if mode == ACCOUNTING_USAGE:
        return purchased - used
    if mode == ACCOUNTING_RESERVATION:
        return purchased - await total_reserved(events, user_id, product_type)
    raise ValidationError(f"Unknown accounting mode: {mode}")


async def list_balances(ledger: LedgerStore, events: EventStore, user_id: str) -> list[dict]:
    """Every balance of the user with its live reservation and display availability"""
    rows = await ledger.list_balances(user_id)
    enriched = []
    for row in rows:
        product_type = row.get("product_type")
        purchased = as_count(row.get("total_purchased"))
        reserved = await total_reserved(events, user_id, product_type)
        enriched.append({
            "product_type": product_type,
            "total_purchased": purchased,
            "total_used": as_count(row.get("total_used")),
            "total_reserved": reserved,
            "available": clamp(purchased - reserved),
            "updated_at": row.get("updated_at"),
        })
    return enriched
