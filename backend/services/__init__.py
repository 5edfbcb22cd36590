# Services module exports
from .locks import KeyedLocks, balance_locks, guest_locks
from .reservations import total_reserved, own_reservation, reserved_by_others
from .balances import clamp, get_counters, available, list_balances
from .purchases import (
    build_purchase_record, apply_purchase_steps, finalize_purchase, reconcile_pending_purchases
)
from .publish_guard import (
    guard_applies, next_capacity, load_owned_event, check_publish_capacity,
    apply_event_patch, publish_event
)
from .usage import CHARGE_ON_ATTEMPT, debit_usage_on_rsvp, debit_usage_on_send
from .email_status import TRANSITIONS, can_transition, is_first_send
from .email import send_email, send_invitation_email
