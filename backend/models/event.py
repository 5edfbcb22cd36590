"""
Event Pydantic models
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional, Literal


class EventCreate(BaseModel):
    """Create event request (all fields optional; status starts as draft)"""
    title_text: Optional[str] = None
    event_date: Optional[str] = None
    event_time: Optional[str] = None
    location: Optional[str] = None
    notes: Optional[str] = None
    design_json: Optional[dict] = None
    max_guests: Optional[int] = Field(default=None, ge=0)
    invitation_type: Optional[str] = None


class EventUpdate(BaseModel):
    """Patch event request. Only "published" may be requested as a status."""
    title_text: Optional[str] = None
    event_date: Optional[str] = None
    event_time: Optional[str] = None
    location: Optional[str] = None
    notes: Optional[str] = None
    design_json: Optional[dict] = None
    max_guests: Optional[int] = Field(default=None, ge=0)
    invitation_type: Optional[str] = None
    status: Optional[Literal["published"]] = None


class Event(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: str
    user_id: str
    status: str = "draft"
    title_text: Optional[str] = None
    event_date: Optional[str] = None
    event_time: Optional[str] = None
    location: Optional[str] = None
    notes: Optional[str] = None
    design_json: Optional[dict] = None
    max_guests: Optional[int] = None
    invitation_type: Optional[str] = None
    created_at: str
    updated_at: Optional[str] = None


class EventResponse(BaseModel):
    event: Event


class EventList(BaseModel):
    events: List[Event]
