"""
RSVP, guest and group Pydantic models
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Any


class GroupIn(BaseModel):
    """Contact-level wrapper for one RSVP submission"""
    group_name: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None


class AnswerIn(BaseModel):
    question_id: Optional[str] = None
    answer: Any = None


class GuestIn(BaseModel):
    full_name: str = Field(min_length=1)
    email: Optional[str] = None
    phone: Optional[str] = None
    attending: Optional[bool] = None
    answers: List[AnswerIn] = []


class RSVPSubmission(BaseModel):
    """Public RSVP: creates one group and its guests"""
    group: Optional[GroupIn] = None
    guests: List[GuestIn] = Field(min_length=1)


class PersonalizedRSVP(BaseModel):
    """RSVP from a personalized invitation link for an existing guest"""
    attending: bool
    full_name: Optional[str] = None
    phone: Optional[str] = None
    answers: List[AnswerIn] = []


class GuestImport(BaseModel):
    """Owner-side bulk creation of guests under one group"""
    group: Optional[GroupIn] = None
    guests: List[GuestIn] = Field(min_length=1)


class Guest(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: str
    event_id: str
    group_id: str
    full_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    attending: Optional[bool] = None
    email_status: Optional[str] = None
    email_message_id: Optional[str] = None
    email_error: Optional[str] = None
    email_sent_at: Optional[str] = None
    email_opened_at: Optional[str] = None
    responded_at: Optional[str] = None
    created_at: str


class GuestImportResult(BaseModel):
    """Group, guests and answers created by an owner-side import"""
    group: dict
    guests: List[Guest]
    answers: List[dict] = []
