"""
Shared fixtures for the invitation API tests

Stores are replaced by in-memory implementations of the store interfaces and
the current user by a fixed identity, so the API runs in-process without
MongoDB, Stripe or Resend.
"""
import os

os.environ.setdefault("MONGO_URL", "mongodb://localhost:27017")
os.environ.setdefault("DB_NAME", "invitations_test")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test")

import copy
import uuid

import pytest
from starlette.testclient import TestClient

from core.exceptions import ExternalStoreError
from stores.interfaces import LedgerStore, EventStore, GuestStore
from utils.helpers import now_iso

TEST_USER = {"id": "user-1", "email": "owner@example.com"}
OTHER_USER = {"id": "user-2", "email": "other@example.com"}


class FailureInjection:
    """Operations listed in ``fail_on`` raise ExternalStoreError, those in
    ``fail_with`` raise the mapped exception"""

    def __init__(self):
        self.fail_on = set()
        self.fail_with = {}

    def _check(self, operation):
        if operation in self.fail_with:
            raise self.fail_with[operation]
        if operation in self.fail_on:
            raise ExternalStoreError(operation, RuntimeError("injected failure"))


class InMemoryLedgerStore(FailureInjection, LedgerStore):
    def __init__(self):
        super().__init__()
        self.balances = {}
        self.purchases = {}
        self.credited_sessions = set()

    async def get_balance(self, user_id, product_type):
        self._check("get_balance")
        row = self.balances.get((user_id, product_type))
        return copy.deepcopy(row) if row else None

    async def list_balances(self, user_id):
        self._check("list_balances")
        rows = [r for (uid, _), r in self.balances.items() if uid == user_id]
        return [copy.deepcopy(r) for r in sorted(rows, key=lambda r: r["product_type"])]

    async def upsert_balance(self, user_id, product_type, patch):
        self._check("upsert_balance")
        row = self.balances.setdefault((user_id, product_type), {
            "user_id": user_id, "product_type": product_type, "total_purchased": 0, "total_used": 0
        })
        row.update(patch)
        row["updated_at"] = now_iso()
        return copy.deepcopy(row)

    async def credit_purchase(self, user_id, product_type, session_id, quantity):
        self._check("credit_purchase")
        key = (user_id, product_type)
        if (key, session_id) in self.credited_sessions:
            return False
        row = self.balances.setdefault(key, {
            "user_id": user_id, "product_type": product_type, "total_purchased": 0, "total_used": 0
        })
        row["total_purchased"] += quantity
        row["updated_at"] = now_iso()
        self.credited_sessions.add((key, session_id))
        return True

    async def try_consume(self, user_id, product_type, amount):
        self._check("try_consume")
        row = self.balances.get((user_id, product_type))
        if not row or row["total_purchased"] - row["total_used"] < amount:
            return None
        row["total_used"] += amount
        row["updated_at"] = now_iso()
        return copy.deepcopy(row)

    async def consume_up_to(self, user_id, product_type, amount):
        self._check("consume_up_to")
        row = self.balances.get((user_id, product_type))
        if not row or amount <= 0:
            return 0
        prev = row["total_used"]
        row["total_used"] = min(prev + amount, max(row["total_purchased"], prev))
        row["updated_at"] = now_iso()
        return row["total_used"] - prev

    async def insert_purchase_if_absent(self, session_id, record):
        self._check("insert_purchase_if_absent")
        if session_id in self.purchases:
            return None
        self.purchases[session_id] = {**copy.deepcopy(record), "checkout_session_id": session_id}
        return copy.deepcopy(self.purchases[session_id])

    async def get_purchase(self, session_id):
        self._check("get_purchase")
        row = self.purchases.get(session_id)
        return copy.deepcopy(row) if row else None

    async def list_purchases(self, user_id):
        self._check("list_purchases")
        rows = [p for p in self.purchases.values() if p["user_id"] == user_id]
        return [copy.deepcopy(p) for p in sorted(rows, key=lambda p: p["created_at"], reverse=True)]

    async def mark_purchase_step(self, session_id, step, applied):
        self._check("mark_purchase_step")
        if session_id in self.purchases:
            self.purchases[session_id][step] = applied

    async def list_unreconciled_purchases(self, limit):
        self._check("list_unreconciled_purchases")
        rows = [
            p for p in self.purchases.values()
            if p.get("balance_applied") is False or p.get("event_applied") is False
        ]
        return [copy.deepcopy(p) for p in rows[:limit]]


class InMemoryEventStore(FailureInjection, EventStore):
    def __init__(self):
        super().__init__()
        self.events = {}

    async def get_event(self, event_id):
        self._check("get_event")
        event = self.events.get(event_id)
        return copy.deepcopy(event) if event else None

    async def list_events(self, user_id):
        self._check("list_events")
        rows = [e for e in self.events.values() if e["user_id"] == user_id]
        return [copy.deepcopy(e) for e in reversed(rows)]

    async def list_published_events(self, user_id, product_type_prefix):
        self._check("list_published_events")
        prefix = product_type_prefix.lower()
        return [
            copy.deepcopy(e) for e in self.events.values()
            if e["user_id"] == user_id
            and e.get("status") == "published"
            and (e.get("invitation_type") or "").lower().startswith(prefix)
        ]

    async def create_event(self, event):
        self._check("create_event")
        self.events[event["id"]] = copy.deepcopy(event)
        return copy.deepcopy(event)

    async def update_event(self, event_id, user_id, patch):
        self._check("update_event")
        event = self.events.get(event_id)
        if not event or event["user_id"] != user_id:
            return None
        event.update(copy.deepcopy(patch))
        return copy.deepcopy(event)

    async def delete_event(self, event_id, user_id):
        self._check("delete_event")
        event = self.events.get(event_id)
        if not event or event["user_id"] != user_id:
            return None
        return self.events.pop(event_id)

    async def mark_pending_if_draft(self, event_id):
        self._check("mark_pending_if_draft")
        event = self.events.get(event_id)
        if not event or event.get("status") != "draft":
            return False
        event["status"] = "pending"
        return True


class InMemoryGuestStore(FailureInjection, GuestStore):
    def __init__(self):
        super().__init__()
        self.groups = {}
        self.guests = {}
        self.questions = []
        self.answers = {}

    async def create_group(self, group):
        self._check("create_group")
        self.groups[group["id"]] = copy.deepcopy(group)
        return copy.deepcopy(group)

    async def list_groups(self, event_id):
        self._check("list_groups")
        return [copy.deepcopy(g) for g in self.groups.values() if g["event_id"] == event_id]

    async def create_guests(self, guests):
        self._check("create_guests")
        for guest in guests:
            self.guests[guest["id"]] = copy.deepcopy(guest)
        return [copy.deepcopy(g) for g in guests]

    async def get_guest(self, guest_id, event_id=None):
        self._check("get_guest")
        guest = self.guests.get(guest_id)
        if not guest or (event_id is not None and guest["event_id"] != event_id):
            return None
        return copy.deepcopy(guest)

    async def list_guests(self, event_id):
        self._check("list_guests")
        return [copy.deepcopy(g) for g in self.guests.values() if g["event_id"] == event_id]

    async def update_guest(self, guest_id, patch):
        self._check("update_guest")
        guest = self.guests.get(guest_id)
        if not guest:
            return None
        guest.update(copy.deepcopy(patch))
        return copy.deepcopy(guest)

    async def transition_email_status(self, guest_id, from_statuses, to_status, extra=None):
        self._check("transition_email_status")
        guest = self.guests.get(guest_id)
        if not guest or guest.get("email_status") not in list(from_statuses):
            return None
        guest.update(copy.deepcopy(extra or {}))
        guest["email_status"] = to_status
        return copy.deepcopy(guest)

    async def list_questions(self, event_id):
        self._check("list_questions")
        rows = [q for q in self.questions if q["event_id"] == event_id]
        return [copy.deepcopy(q) for q in sorted(rows, key=lambda q: q.get("sort_order", 0))]

    async def list_answers(self, event_id):
        self._check("list_answers")
        return [copy.deepcopy(a) for a in self.answers.values() if a["event_id"] == event_id]

    async def upsert_answers(self, answers):
        self._check("upsert_answers")
        saved = []
        for answer in answers:
            key = (answer["guest_id"], answer["question_id"])
            row = self.answers.setdefault(key, {"id": str(uuid.uuid4()), "created_at": now_iso()})
            row.update(copy.deepcopy(answer))
            saved.append(copy.deepcopy(row))
        return saved


# ============ Store fixtures ============

@pytest.fixture
def ledger():
    return InMemoryLedgerStore()


@pytest.fixture
def events():
    return InMemoryEventStore()


@pytest.fixture
def guests():
    return InMemoryGuestStore()


@pytest.fixture
def make_event(events):
    """Factory inserting an event owned by the test user"""
    def create(**fields):
        event = {
            "id": str(uuid.uuid4()),
            "user_id": TEST_USER["id"],
            "status": "draft",
            "title_text": "Summer Party",
            "max_guests": 0,
            "invitation_type": "url:classic",
            "created_at": now_iso(),
        }
        event.update(fields)
        events.events[event["id"]] = event
        return copy.deepcopy(event)
    return create


@pytest.fixture
def make_guest(guests):
    """Factory inserting a guest (and its group) directly into the store"""
    def create(event_id, **fields):
        group_id = fields.pop("group_id", None) or str(uuid.uuid4())
        guests.groups.setdefault(group_id, {
            "id": group_id, "event_id": event_id, "group_name": "Family",
            "contact_email": None, "contact_phone": None, "created_at": now_iso()
        })
        guest = {
            "id": str(uuid.uuid4()),
            "event_id": event_id,
            "group_id": group_id,
            "full_name": "Ana Guest",
            "email": "ana@example.com",
            "phone": None,
            "attending": None,
            "email_status": None,
            "created_at": now_iso(),
        }
        guest.update(fields)
        guests.guests[guest["id"]] = guest
        return copy.deepcopy(guest)
    return create


def set_balance(ledger, product_type, purchased, used=0, user_id=TEST_USER["id"]):
    ledger.balances[(user_id, product_type)] = {
        "user_id": user_id,
        "product_type": product_type,
        "total_purchased": purchased,
        "total_used": used,
        "updated_at": now_iso(),
    }


@pytest.fixture
def balance(ledger):
    """Seed a balance row: balance("url", 100, used=0)"""
    def seed(product_type, purchased, used=0, user_id=TEST_USER["id"]):
        set_balance(ledger, product_type, purchased, used, user_id)
    return seed


# ============ API fixtures ============

@pytest.fixture
def app(ledger, events, guests):
    from server import app as fastapi_app
    from core.dependencies import (
        get_current_user, get_ledger_store, get_event_store, get_guest_store
    )

    fastapi_app.dependency_overrides[get_ledger_store] = lambda: ledger
    fastapi_app.dependency_overrides[get_event_store] = lambda: events
    fastapi_app.dependency_overrides[get_guest_store] = lambda: guests
    fastapi_app.dependency_overrides[get_current_user] = lambda: TEST_USER
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    """In-process client; lifespan (index creation, background tasks) does not run"""
    return TestClient(app)


@pytest.fixture
def anonymous_client(app):
    """Client with the real auth dependency"""
    from core.dependencies import get_current_user
    app.dependency_overrides.pop(get_current_user, None)
    return TestClient(app)
