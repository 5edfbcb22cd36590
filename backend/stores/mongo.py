"""MongoDB (motor) implementations of the store interfaces."""
import logging
import re
import uuid
from contextlib import asynccontextmanager
from typing import Iterable, Optional

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from core.config import EVENT_DRAFT, EVENT_PENDING, EVENT_PUBLISHED, STEP_BALANCE, STEP_EVENT
from core.exceptions import ExternalStoreError
from utils.helpers import now_iso
from .interfaces import LedgerStore, EventStore, GuestStore

logger = logging.getLogger(__name__)

NO_ID = {"_id": 0}
# Balance rows keep the credited checkout sessions out of every read
BALANCE_FIELDS = {"_id": 0, "applied_sessions": 0}


@asynccontextmanager
async def store_call(operation: str):
    """Translate driver failures into ExternalStoreError"""
    try:
        yield
    except PyMongoError as e:
        logger.error(f"Store operation {operation} failed: {e}")
        raise ExternalStoreError(operation, e) from e


def _strip_id(doc: dict) -> dict:
    doc.pop("_id", None)
    return doc


class MongoLedgerStore(LedgerStore):
    def __init__(self, db):
        self.balances = db.invitation_balances
        self.purchases = db.invitation_purchases

    async def get_balance(self, user_id: str, product_type: str) -> Optional[dict]:
        async with store_call("get_balance"):
            return await self.balances.find_one(
                {"user_id": user_id, "product_type": product_type}, BALANCE_FIELDS
            )

    async def list_balances(self, user_id: str) -> list[dict]:
        async with store_call("list_balances"):
            return await self.balances.find(
                {"user_id": user_id}, BALANCE_FIELDS
            ).sort("product_type", 1).to_list(None)

    async def upsert_balance(self, user_id: str, product_type: str, patch: dict) -> dict:
        defaults = {k: v for k, v in {"total_purchased": 0, "total_used": 0}.items() if k not in patch}
        update = {"$set": {**patch, "updated_at": now_iso()}}
        if defaults:
            update["$setOnInsert"] = defaults
        async with store_call("upsert_balance"):
            return await self.balances.find_one_and_update(
                {"user_id": user_id, "product_type": product_type},
                update,
                projection=BALANCE_FIELDS,
                upsert=True,
                return_document=ReturnDocument.AFTER
            )

    async def credit_purchase(self, user_id: str, product_type: str, session_id: str, quantity: int) -> bool:
        query = {"user_id": user_id, "product_type": product_type, "applied_sessions": {"$ne": session_id}}
        update = {
            "$inc": {"total_purchased": quantity},
            "$addToSet": {"applied_sessions": session_id},
            "$set": {"updated_at": now_iso()},
            "$setOnInsert": {"total_used": 0},
        }
        async with store_call("credit_purchase"):
            try:
                result = await self.balances.update_one(query, update, upsert=True)
            except DuplicateKeyError:
                # Row exists: already credited for this session, or a concurrent first credit won the insert
                result = await self.balances.update_one(query, update)
        return result.modified_count == 1 or result.upserted_id is not None

    async def try_consume(self, user_id: str, product_type: str, amount: int) -> Optional[dict]:
        async with store_call("try_consume"):
            return await self.balances.find_one_and_update(
                {
                    "user_id": user_id,
                    "product_type": product_type,
                    "$expr": {"$gte": [
                        {"$subtract": [
                            {"$ifNull": ["$total_purchased", 0]},
                            {"$ifNull": ["$total_used", 0]}
                        ]},
                        amount
                    ]}
                },
                {"$inc": {"total_used": amount}, "$set": {"updated_at": now_iso()}},
                projection=BALANCE_FIELDS,
                return_document=ReturnDocument.AFTER
            )

    async def consume_up_to(self, user_id: str, product_type: str, amount: int) -> int:
        if amount <= 0:
            return 0
        used = {"$ifNull": ["$total_used", 0]}
        purchased = {"$ifNull": ["$total_purchased", 0]}
        async with store_call("consume_up_to"):
            before = await self.balances.find_one_and_update(
                {"user_id": user_id, "product_type": product_type},
                [{"$set": {
                    "total_used": {"$min": [{"$add": [used, amount]}, {"$max": [purchased, used]}]},
                    "updated_at": now_iso()
                }}],
                projection=BALANCE_FIELDS,
                return_document=ReturnDocument.BEFORE
            )
        if not before:
            return 0
        prev_used = int(before.get("total_used") or 0)
        cap = max(int(before.get("total_purchased") or 0), prev_used)
        return min(prev_used + amount, cap) - prev_used

    async def insert_purchase_if_absent(self, session_id: str, record: dict) -> Optional[dict]:
        doc = {**record, "checkout_session_id": session_id}
        async with store_call("insert_purchase_if_absent"):
            try:
                await self.purchases.insert_one(doc)
            except DuplicateKeyError:
                return None
        return _strip_id(doc)

    async def get_purchase(self, session_id: str) -> Optional[dict]:
        async with store_call("get_purchase"):
            return await self.purchases.find_one({"checkout_session_id": session_id}, NO_ID)

    async def list_purchases(self, user_id: str) -> list[dict]:
        async with store_call("list_purchases"):
            return await self.purchases.find(
                {"user_id": user_id}, NO_ID
            ).sort("created_at", -1).to_list(None)

    async def mark_purchase_step(self, session_id: str, step: str, applied: bool) -> None:
        async with store_call("mark_purchase_step"):
            await self.purchases.update_one(
                {"checkout_session_id": session_id},
                {"$set": {step: applied, f"{step}_at": now_iso() if applied else None}}
            )

    async def list_unreconciled_purchases(self, limit: int) -> list[dict]:
        async with store_call("list_unreconciled_purchases"):
            return await self.purchases.find(
                {"$or": [{STEP_BALANCE: False}, {STEP_EVENT: False}]}, NO_ID
            ).sort("created_at", 1).limit(limit).to_list(None)


class MongoEventStore(EventStore):
    def __init__(self, db):
        self.events = db.events

    async def get_event(self, event_id: str) -> Optional[dict]:
        async with store_call("get_event"):
            return await self.events.find_one({"id": event_id}, NO_ID)

    async def list_events(self, user_id: str) -> list[dict]:
        async with store_call("list_events"):
            return await self.events.find(
                {"user_id": user_id}, NO_ID
            ).sort("created_at", -1).to_list(None)

    async def list_published_events(self, user_id: str, product_type_prefix: str) -> list[dict]:
        async with store_call("list_published_events"):
            return await self.events.find(
                {
                    "user_id": user_id,
                    "status": EVENT_PUBLISHED,
                    "invitation_type": {
                        "$regex": f"^{re.escape(product_type_prefix)}",
                        "$options": "i"
                    }
                },
                {"_id": 0, "id": 1, "max_guests": 1, "status": 1, "invitation_type": 1}
            ).to_list(None)

    async def create_event(self, event: dict) -> dict:
        doc = dict(event)
        async with store_call("create_event"):
            await self.events.insert_one(doc)
        return _strip_id(doc)

    async def update_event(self, event_id: str, user_id: str, patch: dict) -> Optional[dict]:
        async with store_call("update_event"):
            return await self.events.find_one_and_update(
                {"id": event_id, "user_id": user_id},
                {"$set": patch},
                projection=NO_ID,
                return_document=ReturnDocument.AFTER
            )

    async def delete_event(self, event_id: str, user_id: str) -> Optional[dict]:
        async with store_call("delete_event"):
            return await self.events.find_one_and_delete(
                {"id": event_id, "user_id": user_id}, projection=NO_ID
            )

    async def mark_pending_if_draft(self, event_id: str) -> bool:
        async with store_call("mark_pending_if_draft"):
            result = await self.events.update_one(
                {"id": event_id, "status": EVENT_DRAFT},
                {"$set": {"status": EVENT_PENDING, "updated_at": now_iso()}}
            )
        return result.modified_count == 1


class MongoGuestStore(GuestStore):
    def __init__(self, db):
        self.groups = db.groups
        self.guests = db.guests
        self.questions = db.questions
        self.answers = db.answer_questions

    async def create_group(self, group: dict) -> dict:
        doc = dict(group)
        async with store_call("create_group"):
            await self.groups.insert_one(doc)
        return _strip_id(doc)

    async def list_groups(self, event_id: str) -> list[dict]:
        async with store_call("list_groups"):
            return await self.groups.find(
                {"event_id": event_id}, NO_ID
            ).sort("created_at", 1).to_list(None)

    async def create_guests(self, guests: list[dict]) -> list[dict]:
        docs = [dict(g) for g in guests]
        if not docs:
            return []
        async with store_call("create_guests"):
            await self.guests.insert_many(docs)
        return [_strip_id(d) for d in docs]

    async def get_guest(self, guest_id: str, event_id: Optional[str] = None) -> Optional[dict]:
        query = {"id": guest_id}
        if event_id is not None:
            query["event_id"] = event_id
        async with store_call("get_guest"):
            return await self.guests.find_one(query, NO_ID)

    async def list_guests(self, event_id: str) -> list[dict]:
        async with store_call("list_guests"):
            return await self.guests.find(
                {"event_id": event_id}, NO_ID
            ).sort("created_at", 1).to_list(None)

    async def update_guest(self, guest_id: str, patch: dict) -> Optional[dict]:
        async with store_call("update_guest"):
            return await self.guests.find_one_and_update(
                {"id": guest_id},
                {"$set": patch},
                projection=NO_ID,
                return_document=ReturnDocument.AFTER
            )

    async def transition_email_status(
        self,
        guest_id: str,
        from_statuses: Iterable[Optional[str]],
        to_status: str,
        extra: Optional[dict] = None,
    ) -> Optional[dict]:
        async with store_call("transition_email_status"):
            return await self.guests.find_one_and_update(
                {"id": guest_id, "email_status": {"$in": list(from_statuses)}},
                {"$set": {**(extra or {}), "email_status": to_status}},
                projection=NO_ID,
                return_document=ReturnDocument.AFTER
            )

    async def list_questions(self, event_id: str) -> list[dict]:
        async with store_call("list_questions"):
            return await self.questions.find(
                {"event_id": event_id}, NO_ID
            ).sort("sort_order", 1).to_list(None)

    async def list_answers(self, event_id: str) -> list[dict]:
        async with store_call("list_answers"):
            return await self.answers.find({"event_id": event_id}, NO_ID).to_list(None)

    async def upsert_answers(self, answers: list[dict]) -> list[dict]:
        saved = []
        async with store_call("upsert_answers"):
            for answer in answers:
                doc = await self.answers.find_one_and_update(
                    {"guest_id": answer["guest_id"], "question_id": answer["question_id"]},
                    {
                        "$set": answer,
                        "$setOnInsert": {"id": str(uuid.uuid4()), "created_at": now_iso()}
                    },
                    projection=NO_ID,
                    upsert=True,
                    return_document=ReturnDocument.AFTER
                )
                saved.append(doc)
        return saved
