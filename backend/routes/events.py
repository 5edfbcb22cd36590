"""
Event API Routes: owner CRUD, guarded publish, guest export and invitation sends
"""
import uuid

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse, StreamingResponse

from core.config import EVENT_ALLOWED_FIELDS, EVENT_DRAFT, EVENT_PUBLIC_FIELDS, EVENT_PUBLISHED
from core.dependencies import get_current_user, get_ledger_store, get_event_store, get_guest_store
from core.exceptions import NotFoundError, ValidationError
from models.billing import CapacityCheck
from models.event import EventCreate, EventList, EventResponse, EventUpdate
from models.rsvp import GuestImport, GuestImportResult
from services.invitations import send_guest_invitation, send_all_invitations
from services.publish_guard import (
    apply_event_patch, check_publish_capacity, load_owned_event, publish_event
)
from services.rsvp import build_rsvp_tree, export_guests_csv, import_guests
from stores.interfaces import LedgerStore, EventStore, GuestStore
from utils.helpers import now_iso, pick

router = APIRouter(tags=["events"])


def _event_patch(data: EventUpdate) -> dict:
    body = data.model_dump(exclude_unset=True)
    patch = pick(body, EVENT_ALLOWED_FIELDS)
    if body.get("status") == EVENT_PUBLISHED:
        patch["status"] = EVENT_PUBLISHED
    return patch


# ============================================
# PUBLIC
# ============================================

@router.get("/public/events/{event_id}")
async def get_event_public(event_id: str, events: EventStore = Depends(get_event_store)):
    """Published events only, public fields only. Drafts are reported as missing."""
    event = await events.get_event(event_id)
    if not event or event.get("status") != EVENT_PUBLISHED:
        raise NotFoundError("Event", event_id)
    return {"event": pick(event, EVENT_PUBLIC_FIELDS)}


# ============================================
# OWNER
# ============================================

@router.get("/events", response_model=EventList)
async def list_events(
    current_user: dict = Depends(get_current_user),
    events: EventStore = Depends(get_event_store)
):
    return {"events": await events.list_events(current_user["id"])}


@router.get("/events/{event_id}", response_model=EventResponse)
async def get_event(
    event_id: str,
    current_user: dict = Depends(get_current_user),
    events: EventStore = Depends(get_event_store)
):
    return {"event": await load_owned_event(events, event_id, current_user["id"])}


@router.post("/events", response_model=EventResponse, status_code=status.HTTP_201_CREATED)
async def create_event(
    data: EventCreate,
    current_user: dict = Depends(get_current_user),
    events: EventStore = Depends(get_event_store)
):
    """Create an event. New events start as drafts and reserve nothing."""
    now = now_iso()
    event = {
        "id": str(uuid.uuid4()),
        "user_id": current_user["id"],
        **pick(data.model_dump(exclude_unset=True), EVENT_ALLOWED_FIELDS),
        "status": EVENT_DRAFT,
        "created_at": now,
        "updated_at": now,
    }
    return {"event": await events.create_event(event)}


@router.patch("/events/{event_id}", response_model=EventResponse)
async def patch_event(
    event_id: str,
    data: EventUpdate,
    current_user: dict = Depends(get_current_user),
    ledger: LedgerStore = Depends(get_ledger_store),
    events: EventStore = Depends(get_event_store)
):
    """Patch an event; publish and capacity changes go through the balance check"""
    patch = _event_patch(data)
    if not patch:
        raise ValidationError("No fields to update")
    return {"event": await apply_event_patch(ledger, events, event_id, current_user["id"], patch)}


@router.post("/events/{event_id}/capacity-check", response_model=CapacityCheck)
async def capacity_check(
    event_id: str,
    data: EventUpdate,
    current_user: dict = Depends(get_current_user),
    ledger: LedgerStore = Depends(get_ledger_store),
    events: EventStore = Depends(get_event_store)
):
    """Dry run of a patch against the available balance"""
    return await check_publish_capacity(ledger, events, event_id, current_user["id"], _event_patch(data))


@router.post("/events/{event_id}/publish", response_model=EventResponse)
async def publish(
    event_id: str,
    current_user: dict = Depends(get_current_user),
    ledger: LedgerStore = Depends(get_ledger_store),
    events: EventStore = Depends(get_event_store)
):
    return {"event": await publish_event(ledger, events, event_id, current_user["id"])}


@router.delete("/events/{event_id}")
async def delete_event(
    event_id: str,
    current_user: dict = Depends(get_current_user),
    events: EventStore = Depends(get_event_store)
):
    """Delete an event; a published event's reservation is released with it"""
    deleted = await events.delete_event(event_id, current_user["id"])
    if not deleted:
        raise NotFoundError("Event", event_id)
    return {"deleted": True}


# ============================================
# GUESTS
# ============================================

@router.get("/events/{event_id}/rsvp-tree")
async def get_rsvp_tree(
    event_id: str,
    current_user: dict = Depends(get_current_user),
    events: EventStore = Depends(get_event_store),
    guests: GuestStore = Depends(get_guest_store)
):
    await load_owned_event(events, event_id, current_user["id"])
    return await build_rsvp_tree(guests, event_id)


@router.post(
    "/events/{event_id}/guests/import",
    response_model=GuestImportResult,
    status_code=status.HTTP_201_CREATED
)
async def import_event_guests(
    event_id: str,
    data: GuestImport,
    current_user: dict = Depends(get_current_user),
    events: EventStore = Depends(get_event_store),
    guests: GuestStore = Depends(get_guest_store)
):
    event = await load_owned_event(events, event_id, current_user["id"])
    return await import_guests(guests, event, data.group, data.guests)


@router.get("/events/{event_id}/export")
async def export_guests(
    event_id: str,
    format: str = "csv",
    current_user: dict = Depends(get_current_user),
    events: EventStore = Depends(get_event_store),
    guests: GuestStore = Depends(get_guest_store)
):
    """Export guests, attendance and answers as CSV"""
    if format.lower() != "csv":
        raise ValidationError("Only format=csv is supported")

    event = await load_owned_event(events, event_id, current_user["id"])
    filename, content = await export_guests_csv(guests, event)
    return StreamingResponse(
        iter([content]),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'}
    )


@router.post("/events/{event_id}/guests/{guest_id}/send-invitation")
async def send_invitation(
    event_id: str,
    guest_id: str,
    current_user: dict = Depends(get_current_user),
    ledger: LedgerStore = Depends(get_ledger_store),
    events: EventStore = Depends(get_event_store),
    guests: GuestStore = Depends(get_guest_store)
):
    event = await load_owned_event(events, event_id, current_user["id"])
    result = await send_guest_invitation(ledger, guests, event, guest_id)
    if not result["success"]:
        return _send_failed(result)
    return {"success": True, "messageId": result.get("message_id"), "invitationUrl": result["invitation_url"]}


@router.post("/events/{event_id}/send-invitations")
async def send_all(
    event_id: str,
    pending_only: bool = Query(False, alias="pendingOnly"),
    current_user: dict = Depends(get_current_user),
    ledger: LedgerStore = Depends(get_ledger_store),
    events: EventStore = Depends(get_event_store),
    guests: GuestStore = Depends(get_guest_store)
):
    event = await load_owned_event(events, event_id, current_user["id"])
    return await send_all_invitations(ledger, guests, event, pending_only)


def _send_failed(result: dict):
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={"error": "Failed to send email", "details": result.get("error")}
    )
