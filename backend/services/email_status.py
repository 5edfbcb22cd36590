"""
Guest email_status state machine.

    None -> queued -> sent -> opened -> completed
                  \\-> failed

``failed`` may be retried into ``sent``. Nothing moves back from ``opened``
or ``completed`` to ``queued`` or ``sent``.
"""
from typing import Optional

from core.config import (
    EMAIL_QUEUED, EMAIL_SENT, EMAIL_OPENED, EMAIL_COMPLETED, EMAIL_FAILED, PRODUCT_EMAIL
)

TRANSITIONS = {
    None: {EMAIL_QUEUED, EMAIL_SENT, EMAIL_FAILED},
    EMAIL_QUEUED: {EMAIL_SENT, EMAIL_FAILED, EMAIL_OPENED, EMAIL_COMPLETED},
    EMAIL_SENT: {EMAIL_SENT, EMAIL_FAILED, EMAIL_OPENED, EMAIL_COMPLETED},
    EMAIL_FAILED: {EMAIL_SENT, EMAIL_FAILED, EMAIL_COMPLETED},
    EMAIL_OPENED: {EMAIL_COMPLETED},
    EMAIL_COMPLETED: set(),
}

# A send to a guest in one of these states is not a first send and is not
# charged. opened and completed count too: both imply an earlier delivery.
DELIVERED_STATUSES = {EMAIL_SENT, EMAIL_OPENED, EMAIL_COMPLETED}


def can_transition(current: Optional[str], target: str) -> bool:
    return target in TRANSITIONS.get(current, set())


def sources_for(target: str) -> list:
    """Every status from which ``target`` may be entered"""
    return [status for status, targets in TRANSITIONS.items() if target in targets]


def is_first_send(current: Optional[str]) -> bool:
    return current not in DELIVERED_STATUSES


def initial_status(product_type: str, email: Optional[str]) -> Optional[str]:
    """Guests created with an address under an email-type event start queued"""
    if product_type == PRODUCT_EMAIL and email:
        return EMAIL_QUEUED
    return None
