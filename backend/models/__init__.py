# Models package
from .billing import (
    InvitationBalance, PurchaseRecord, BalanceList, PurchaseList, CheckoutSessionCreate,
    VerifySessionRequest, CapacityCheck, FinalizeResult
)
from .event import Event, EventCreate, EventUpdate, EventResponse, EventList
from .rsvp import (
    GroupIn, AnswerIn, GuestIn, RSVPSubmission, PersonalizedRSVP, GuestImport, Guest,
    GuestImportResult
)
