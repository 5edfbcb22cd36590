"""
RSVP services: public submissions, personalized responses, owner imports,
open tracking and the guest export.
"""
import csv
import io
import json
import logging
import uuid
from typing import Optional

from core.config import EMAIL_COMPLETED, EMAIL_OPENED
from core.exceptions import NotFoundError
from models.rsvp import GroupIn, GuestIn, AnswerIn, PersonalizedRSVP
from stores.interfaces import LedgerStore, EventStore, GuestStore
from utils.helpers import now_iso, product_type_of, slugify
from .email_status import initial_status, sources_for
from .locks import guest_locks
from .usage import debit_rsvp

logger = logging.getLogger(__name__)


def _group_doc(event_id: str, group: Optional[GroupIn]) -> dict:
    group = group or GroupIn()
    return {
        "id": str(uuid.uuid4()),
        "event_id": event_id,
        "group_name": group.group_name or None,
        "contact_email": group.contact_email or None,
        "contact_phone": group.contact_phone or None,
        "created_at": now_iso(),
    }


def _guest_doc(event: dict, group_id: str, guest: GuestIn) -> dict:
    email = (guest.email or "").strip() or None
    return {
        "id": str(uuid.uuid4()),
        "event_id": event["id"],
        "group_id": group_id,
        "full_name": guest.full_name,
        "email": email,
        "phone": guest.phone or None,
        "attending": guest.attending,
        "email_status": initial_status(product_type_of(event.get("invitation_type")), email),
        "created_at": now_iso(),
    }


def _answer_rows(event_id: str, guest: dict, answers: list[AnswerIn], allowed: set) -> list[dict]:
    """Answers to questions of this event only; others are dropped"""
    return [
        {
            "event_id": event_id,
            "group_id": guest["group_id"],
            "guest_id": guest["id"],
            "question_id": a.question_id,
            "answer": "" if a.answer is None else str(a.answer),
        }
        for a in answers
        if a.question_id and a.question_id in allowed
    ]


async def _question_ids(guests: GuestStore, event_id: str) -> set:
    return {q["id"] for q in await guests.list_questions(event_id)}


async def _get_event(events: EventStore, event_id: str) -> dict:
    event = await events.get_event(event_id)
    if not event:
        raise NotFoundError("Event", event_id)
    return event


async def _create_group_with_guests(
    guests: GuestStore,
    event: dict,
    group: Optional[GroupIn],
    incoming: list[GuestIn]
) -> tuple[dict, list[dict], list[dict]]:
    allowed = await _question_ids(guests, event["id"])
    created_group = await guests.create_group(_group_doc(event["id"], group))
    created = await guests.create_guests([_guest_doc(event, created_group["id"], g) for g in incoming])

    rows = []
    for created_guest, incoming_guest in zip(created, incoming):
        rows.extend(_answer_rows(event["id"], created_guest, incoming_guest.answers, allowed))
    answers = await guests.upsert_answers(rows) if rows else []
    return created_group, created, answers


async def submit_public_rsvp(
    ledger: LedgerStore,
    events: EventStore,
    guests: GuestStore,
    event_id: str,
    group: Optional[GroupIn],
    incoming: list[GuestIn]
) -> dict:
    """Create a group and its guests from a public RSVP form"""
    event = await _get_event(events, event_id)
    created_group, created, answers = await _create_group_with_guests(guests, event, group, incoming)

    attending_count = sum(1 for g in created if g.get("attending") is True)
    await debit_rsvp(ledger, event, attending_count)

    logger.info(f"RSVP for event {event_id}: {len(created)} guests, {attending_count} attending")
    return {
        "ok": True,
        "event_id": event_id,
        "group": created_group,
        "guests": created,
        "answers": answers,
    }


async def import_guests(
    guests: GuestStore,
    event: dict,
    group: Optional[GroupIn],
    incoming: list[GuestIn]
) -> dict:
    """Owner-side guest creation; no usage is debited"""
    created_group, created, answers = await _create_group_with_guests(guests, event, group, incoming)
    return {"group": created_group, "guests": created, "answers": answers}


async def submit_personalized_rsvp(
    ledger: LedgerStore,
    events: EventStore,
    guests: GuestStore,
    event_id: str,
    guest_id: str,
    data: PersonalizedRSVP
) -> dict:
    """RSVP from a guest's personal invitation link"""
    event = await _get_event(events, event_id)

    async with guest_locks.hold(guest_id):
        guest = await guests.get_guest(guest_id, event_id)
        if not guest:
            raise NotFoundError("Guest", guest_id)

        patch = {"attending": data.attending, "responded_at": now_iso()}
        if data.full_name:
            patch["full_name"] = data.full_name
        if data.phone is not None:
            patch["phone"] = data.phone or None
        updated = await guests.update_guest(guest_id, patch)
        if updated is None:
            raise NotFoundError("Guest", guest_id)

        if guest.get("email_status") is not None:
            completed = await guests.transition_email_status(
                guest_id, sources_for(EMAIL_COMPLETED), EMAIL_COMPLETED
            )
            if completed is not None:
                updated = completed

        newly_attending = 1 if data.attending and guest.get("attending") is not True else 0
        await debit_rsvp(ledger, event, newly_attending)

    rows = _answer_rows(event_id, updated, data.answers, await _question_ids(guests, event_id))
    answers = await guests.upsert_answers(rows) if rows else []
    return {"guest": updated, "answers": answers}


async def get_public_guest(guests: GuestStore, event_id: str, guest_id: str) -> dict:
    guest = await guests.get_guest(guest_id, event_id)
    if not guest:
        raise NotFoundError("Guest", guest_id)
    return {key: guest.get(key) for key in ("id", "full_name", "email", "phone")}


async def track_open(guests: GuestStore, guest_id: str) -> bool:
    """Tracking pixel hit. Only queued or sent guests move to opened."""
    updated = await guests.transition_email_status(
        guest_id, sources_for(EMAIL_OPENED), EMAIL_OPENED, {"email_opened_at": now_iso()}
    )
    return updated is not None


async def build_rsvp_tree(guests: GuestStore, event_id: str) -> dict:
    """Groups of the event with their guests and each guest's answers"""
    groups = await guests.list_groups(event_id)
    guest_rows = await guests.list_guests(event_id)
    questions = {q["id"]: q for q in await guests.list_questions(event_id)}

    answers_by_guest = {}
    for row in await guests.list_answers(event_id):
        answers_by_guest.setdefault(row.get("guest_id"), []).append({
            **row, "question": questions.get(row.get("question_id"))
        })

    guests_by_group = {}
    for guest in guest_rows:
        guests_by_group.setdefault(guest.get("group_id"), []).append({
            **guest, "answers": answers_by_guest.get(guest["id"], [])
        })

    return {
        "event_id": event_id,
        "groups": [{**g, "guests": guests_by_group.get(g["id"], [])} for g in groups],
    }


# ============ CSV Export ============

def _attending_label(attending) -> str:
    if attending is True:
        return "YES"
    if attending is False:
        return "NO"
    return "PENDING"


def _option_labels(question: dict) -> dict:
    return {o["id"]: o.get("label") or o["id"] for o in question.get("options") or [] if o.get("id")}


def humanize_answer(raw, question: dict) -> str:
    """Render a stored answer with option labels instead of option ids"""
    q_type = question.get("type") or "text"

    if q_type == "single_choice":
        return _option_labels(question).get(str(raw or ""), "") if raw else ""

    if q_type == "multi_choice":
        ids = raw
        if isinstance(raw, str):
            try:
                ids = json.loads(raw) if raw.strip() else []
            except ValueError:
                ids = []
        if not isinstance(ids, list):
            return ""
        labels = _option_labels(question)
        return ", ".join(labels[i] for i in ids if i in labels)

    if q_type == "number":
        if raw is None or raw == "":
            return ""
        try:
            n = float(raw)
        except (TypeError, ValueError):
            return ""
        return str(int(n)) if n.is_integer() else str(n)

    return "" if raw is None else str(raw)


async def export_guests_csv(guests: GuestStore, event: dict) -> tuple[str, str]:
    """(filename, csv text) with one row per guest and one column per question"""
    event_id = event["id"]
    questions = await guests.list_questions(event_id)
    groups = {g["id"]: g for g in await guests.list_groups(event_id)}
    guest_rows = await guests.list_guests(event_id)

    answers_by_guest = {}
    for a in await guests.list_answers(event_id):
        answers_by_guest.setdefault(a.get("guest_id"), {})[a.get("question_id")] = a.get("answer")

    base_fields = [
        "full_name", "email", "phone", "group_name", "contact_email",
        "contact_phone", "attending", "responded",
    ]
    question_fields = [f"Q: {q.get('label') or q['id']}" for q in questions]

    output = io.StringIO()
    output.write("\ufeff")
    writer = csv.DictWriter(output, fieldnames=base_fields + question_fields, lineterminator="\r\n")
    writer.writeheader()

    for guest in guest_rows:
        group = groups.get(guest.get("group_id")) or {}
        guest_answers = answers_by_guest.get(guest["id"], {})
        responded = guest.get("attending") in (True, False) or bool(guest_answers)

        row = {
            "full_name": guest.get("full_name") or "",
            "email": guest.get("email") or "",
            "phone": guest.get("phone") or "",
            "group_name": group.get("group_name") or "",
            "contact_email": group.get("contact_email") or "",
            "contact_phone": group.get("contact_phone") or "",
            "attending": _attending_label(guest.get("attending")),
            "responded": "YES" if responded else "NO",
        }
        for field, question in zip(question_fields, questions):
            row[field] = humanize_answer(guest_answers.get(question["id"]), question)
        writer.writerow(row)

    filename = f"guests-{slugify(event.get('title_text') or '') or event_id}.csv"
    return filename, output.getvalue()
