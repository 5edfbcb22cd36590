"""
Invitation credit (balance / purchase / checkout) Pydantic models
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional


class InvitationBalance(BaseModel):
    """Balance row enriched with the live reservation"""
    model_config = ConfigDict(extra="ignore")
    product_type: str
    total_purchased: int = 0
    total_used: int = 0
    total_reserved: int = 0
    available: int = 0
    updated_at: Optional[str] = None


class PurchaseRecord(BaseModel):
    """One completed checkout session. Immutable apart from the saga flags."""
    model_config = ConfigDict(extra="ignore")
    checkout_session_id: str
    stripe_event_id: str
    user_id: str
    product_type: str
    pack_name: Optional[str] = None
    quantity: int = 0
    price: float = 0
    currency: str = "eur"
    payment_status: str = "paid"
    unit_type: str = "invitation"
    event_id: Optional[str] = None
    target_max_guests: Optional[int] = None
    publish_after_payment: bool = False
    balance_applied: bool = False
    event_applied: bool = True
    created_at: str


class BalanceList(BaseModel):
    balances: List[InvitationBalance]


class PurchaseList(BaseModel):
    payments: List[PurchaseRecord]

class CheckoutSessionCreate(BaseModel):
    """Create checkout session request (camelCase body, as sent by the frontend)"""
    model_config = ConfigDict(populate_by_name=True)
    price_id: str = Field(alias="priceId", min_length=1)
    event_id: Optional[str] = Field(default=None, alias="eventId")
    target_max_guests: Optional[int] = Field(default=None, alias="targetMaxGuests", ge=0)
    publish_after_payment: bool = Field(default=False, alias="publishAfterPayment")


class VerifySessionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    session_id: str = Field(alias="sessionId", min_length=1)


class CapacityCheck(BaseModel):
    """Outcome of the publish capacity gate"""
    ok: bool
    needed: Optional[int] = None
    available: Optional[int] = None
    product_type: Optional[str] = None
    message: Optional[str] = None


class FinalizeResult(BaseModel):
    ok: bool = True
    already_processed: bool = False
    balance_applied: bool = False
    event_applied: bool = False
