"""
Public RSVP API Routes (no auth): submissions, personalized responses,
guest lookup and the open-tracking pixel
"""
import base64

from fastapi import APIRouter, Depends, Response, status

from core.dependencies import get_ledger_store, get_event_store, get_guest_store
from models.rsvp import RSVPSubmission, PersonalizedRSVP
from services.rsvp import (
    submit_public_rsvp, submit_personalized_rsvp, get_public_guest, track_open
)
from stores.interfaces import LedgerStore, EventStore, GuestStore

router = APIRouter(prefix="/public", tags=["rsvp"])

# 1x1 transparent GIF
TRACKING_PIXEL = base64.b64decode("R0lGODlhAQABAIAAAAAAAP///yH5BAEAAAAALAAAAAABAAEAAAIBRAA7")


@router.post("/events/{event_id}/rsvp", status_code=status.HTTP_201_CREATED)
async def post_public_rsvp(
    event_id: str,
    data: RSVPSubmission,
    ledger: LedgerStore = Depends(get_ledger_store),
    events: EventStore = Depends(get_event_store),
    guests: GuestStore = Depends(get_guest_store)
):
    """Anyone with the invitation link can RSVP: creates a group and its guests"""
    return await submit_public_rsvp(ledger, events, guests, event_id, data.group, data.guests)


@router.get("/events/{event_id}/guests/{guest_id}")
async def get_guest(event_id: str, guest_id: str, guests: GuestStore = Depends(get_guest_store)):
    """Basic guest data to pre-fill a personalized RSVP form"""
    return {"guest": await get_public_guest(guests, event_id, guest_id)}


@router.post("/events/{event_id}/guests/{guest_id}/rsvp")
async def post_personalized_rsvp(
    event_id: str,
    guest_id: str,
    data: PersonalizedRSVP,
    ledger: LedgerStore = Depends(get_ledger_store),
    events: EventStore = Depends(get_event_store),
    guests: GuestStore = Depends(get_guest_store)
):
    return await submit_personalized_rsvp(ledger, events, guests, event_id, guest_id, data)


@router.get("/track/{guest_id}.gif")
async def tracking_pixel(guest_id: str, guests: GuestStore = Depends(get_guest_store)):
    await track_open(guests, guest_id)
    return Response(
        content=TRACKING_PIXEL,
        media_type="image/gif",
        headers={"Cache-Control": "no-store, no-cache, must-revalidate, max-age=0"}
    )
