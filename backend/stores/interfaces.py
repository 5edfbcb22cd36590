"""Store interfaces (repository pattern).

Stores must be swappable and return plain documents (dicts without the
Mongo ``_id``). Services depend only on these interfaces.
"""

from abc import ABC, abstractmethod
from typing import Iterable, Optional


class LedgerStore(ABC):
    """Per-(user, product type) credit counters and the purchase table."""

    @abstractmethod
    async def get_balance(self, user_id: str, product_type: str) -> Optional[dict]:
        """Return ``{total_purchased, total_used, updated_at, ...}`` or None."""
        ...

    @abstractmethod
    async def list_balances(self, user_id: str) -> list[dict]:
        """Return every balance row of a user ordered by product type."""
        ...

    @abstractmethod
    async def upsert_balance(self, user_id: str, product_type: str, patch: dict) -> dict:
        """Set fields on the balance row, creating it if absent."""
        ...

    @abstractmethod
    async def credit_purchase(self, user_id: str, product_type: str, session_id: str, quantity: int) -> bool:
        """Add ``quantity`` to total_purchased once per checkout session.

        Creates the row when absent. True if this call applied the credit,
        False if the session was already credited.
        """
        ...

    @abstractmethod
    async def try_consume(self, user_id: str, product_type: str, amount: int) -> Optional[dict]:
        """Atomically add ``amount`` to total_used only if
        ``total_purchased - total_used >= amount``. Returns the updated row or None."""
        ...

    @abstractmethod
    async def consume_up_to(self, user_id: str, product_type: str, amount: int) -> int:
        """Atomically add at most ``amount`` to total_used without passing
        total_purchased. Returns how much was actually added."""
        ...

    @abstractmethod
    async def insert_purchase_if_absent(self, session_id: str, record: dict) -> Optional[dict]:
        """Insert a purchase keyed by checkout session id.

        Returns the inserted row, or None if a row with that session id
        already exists.
        """
        ...

    @abstractmethod
    async def get_purchase(self, session_id: str) -> Optional[dict]:
        ...

    @abstractmethod
    async def list_purchases(self, user_id: str) -> list[dict]:
        """Return the user's purchases, newest first."""
        ...

    @abstractmethod
    async def mark_purchase_step(self, session_id: str, step: str, applied: bool) -> None:
        ...

    @abstractmethod
    async def list_unreconciled_purchases(self, limit: int) -> list[dict]:
        """Return purchases whose balance or event step has not applied."""
        ...


class EventStore(ABC):
    """Interface for event persistence operations."""

    @abstractmethod
    async def get_event(self, event_id: str) -> Optional[dict]:
        ...

    @abstractmethod
    async def list_events(self, user_id: str) -> list[dict]:
        """Return the user's events, newest first."""
        ...

    @abstractmethod
    async def list_published_events(self, user_id: str, product_type_prefix: str) -> list[dict]:
        """Return the user's published events whose invitation_type starts
        with ``product_type_prefix`` (case-insensitive)."""
        ...

    @abstractmethod
    async def create_event(self, event: dict) -> dict:
        ...

    @abstractmethod
    async def update_event(self, event_id: str, user_id: str, patch: dict) -> Optional[dict]:
        """Apply ``patch`` scoped to (id, user_id). Returns the updated event or None."""
        ...

    @abstractmethod
    async def delete_event(self, event_id: str, user_id: str) -> Optional[dict]:
        ...

    @abstractmethod
    async def mark_pending_if_draft(self, event_id: str) -> bool:
        """Move a draft event to pending. True if the event was a draft."""
        ...


class GuestStore(ABC):
    """Groups, guests, questions and answers of an event."""

    @abstractmethod
    async def create_group(self, group: dict) -> dict:
        ...

    @abstractmethod
    async def list_groups(self, event_id: str) -> list[dict]:
        ...

    @abstractmethod
    async def create_guests(self, guests: list[dict]) -> list[dict]:
        ...

    @abstractmethod
    async def get_guest(self, guest_id: str, event_id: Optional[str] = None) -> Optional[dict]:
        ...

    @abstractmethod
    async def list_guests(self, event_id: str) -> list[dict]:
        """Return the event's guests ordered by creation time."""
        ...

    @abstractmethod
    async def update_guest(self, guest_id: str, patch: dict) -> Optional[dict]:
        ...

    @abstractmethod
    async def transition_email_status(
        self,
        guest_id: str,
        from_statuses: Iterable[Optional[str]],
        to_status: str,
        extra: Optional[dict] = None,
    ) -> Optional[dict]:
        """Set ``email_status`` only if the current value is one of
        ``from_statuses``. Returns the updated guest or None."""
        ...

    @abstractmethod
    async def list_questions(self, event_id: str) -> list[dict]:
        """Return the event's questions ordered by sort_order."""
        ...

    @abstractmethod
    async def list_answers(self, event_id: str) -> list[dict]:
        ...

    @abstractmethod
    async def upsert_answers(self, answers: list[dict]) -> list[dict]:
        """Insert or replace answers keyed by (guest_id, question_id)."""
        ...
