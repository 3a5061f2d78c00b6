from pydantic import BaseModel, field_validator, model_validator
from datetime import datetime, timezone
from typing import Optional, List, Literal


def _clean_email(v: str) -> str:
    v = v.strip().lower()
    if "@" not in v or "." not in v.split("@")[-1]:
        raise ValueError("Invalid email address")
    return v


def _not_blank(v):
    if v is not None and not v.strip():
        raise ValueError("Field cannot be empty")
    return v.strip() if v else v


def _naive_utc(v):
    """Aware datetimes are converted to naive UTC; naive ones are taken as UTC."""
    if isinstance(v, datetime) and v.tzinfo is not None:
        return v.astimezone(timezone.utc).replace(tzinfo=None)
    return v


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------

class ParticipantSignup(BaseModel):
    first_name: str
    last_name: str
    email: str
    password: str
    participant_type: Literal["iiit", "non-iiit"] = "non-iiit"
    college: Optional[str] = None
    contact_number: Optional[str] = None

    @field_validator("first_name", "last_name")
    @classmethod
    def must_not_be_empty(cls, v: str) -> str:
        return _not_blank(v)

    @field_validator("email")
    @classmethod
    def email_must_be_valid(cls, v: str) -> str:
        return _clean_email(v)

    @field_validator("password")
    @classmethod
    def password_long_enough(cls, v: str) -> str:
        if len(v) < 6:
            raise ValueError("Password must be at least 6 characters")
        return v


class LoginRequest(BaseModel):
    email: str
    password: str
    role: Literal["participant", "organizer", "admin"] = "participant"

    @field_validator("email")
    @classmethod
    def email_lower(cls, v: str) -> str:
        return v.strip().lower()


class SessionResponse(BaseModel):
    id: Optional[int] = None
    email: str
    role: str
    name: str


# ---------------------------------------------------------------------------
# Participants
# ---------------------------------------------------------------------------

class ParticipantResponse(BaseModel):
    id: int
    first_name: str
    last_name: str
    email: str
    participant_type: str
    college: Optional[str] = None
    contact_number: Optional[str] = None
    interests: List[str] = []
    followed_organizers: List[int] = []
    onboarded: bool

    model_config = {"from_attributes": True}


class ParticipantUpdate(BaseModel):
    """All fields optional — only supplied fields are updated."""
    first_name:     Optional[str] = None
    last_name:      Optional[str] = None
    college:        Optional[str] = None
    contact_number: Optional[str] = None
    interests:      Optional[List[str]] = None

    @field_validator("first_name", "last_name")
    @classmethod
    def must_not_be_blank(cls, v):
        return _not_blank(v)


class PreferencesUpdate(BaseModel):
    interests: List[str] = []
    followed_organizers: List[int] = []


# ---------------------------------------------------------------------------
# Organizers
# ---------------------------------------------------------------------------

class OrganizerResponse(BaseModel):
    id: int
    name: str
    category: str
    description: Optional[str] = None
    contact_email: Optional[str] = None
    is_active: bool

    model_config = {"from_attributes": True}


class OrganizerAdminResponse(OrganizerResponse):
    email: str
    created_at: Optional[datetime] = None


class OrganizerCreate(BaseModel):
    name: str
    email: str
    category: str = "General"
    description: Optional[str] = None
    contact_email: Optional[str] = None

    @field_validator("name", "category")
    @classmethod
    def must_not_be_empty(cls, v: str) -> str:
        return _not_blank(v)

    @field_validator("email")
    @classmethod
    def email_must_be_valid(cls, v: str) -> str:
        return _clean_email(v)


class OrganizerCredentials(BaseModel):
    """Returned once, when the admin creates or resets an organizer account."""
    organizer: OrganizerAdminResponse
    password: str


class OrganizerUpdate(BaseModel):
    name:          Optional[str] = None
    category:      Optional[str] = None
    description:   Optional[str] = None
    contact_email: Optional[str] = None

    @field_validator("name", "category")
    @classmethod
    def must_not_be_blank(cls, v):
        return _not_blank(v)

    @field_validator("contact_email")
    @classmethod
    def email_must_be_valid(cls, v):
        return _clean_email(v) if v is not None else v


class OrganizerActiveUpdate(BaseModel):
    is_active: bool


class PasswordResetCreate(BaseModel):
    reason: str

    @field_validator("reason")
    @classmethod
    def must_not_be_empty(cls, v: str) -> str:
        return _not_blank(v)


class PasswordResetResponse(BaseModel):
    id: int
    organizer_id: int
    reason: str
    status: str
    created_at: datetime
    resolved_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# Events & merchandise
# ---------------------------------------------------------------------------

class MerchandiseItemCreate(BaseModel):
    name: str
    price: float = 0.0
    quantity: int = 0
    max_purchase_per_participant: int = 1
    sizes: List[str] = []
    colors: List[str] = []

    @field_validator("name")
    @classmethod
    def must_not_be_empty(cls, v: str) -> str:
        return _not_blank(v)

    @field_validator("price", "quantity")
    @classmethod
    def not_negative(cls, v):
        if v < 0:
            raise ValueError("Must not be negative")
        return v

    @field_validator("max_purchase_per_participant")
    @classmethod
    def cap_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Maximum per participant must be at least 1")
        return v


class MerchandiseItemUpdate(BaseModel):
    """Restock / re-cap / re-price an item (PATCH semantics)."""
    price:                        Optional[float] = None
    quantity:                     Optional[int] = None
    max_purchase_per_participant: Optional[int] = None

    @field_validator("price", "quantity")
    @classmethod
    def not_negative(cls, v):
        if v is not None and v < 0:
            raise ValueError("Must not be negative")
        return v

    @field_validator("max_purchase_per_participant")
    @classmethod
    def cap_positive(cls, v):
        if v is not None and v < 1:
            raise ValueError("Maximum per participant must be at least 1")
        return v


class MerchandiseItemResponse(BaseModel):
    id: int
    name: str
    price: float
    quantity: int
    max_purchase_per_participant: int
    sizes: List[str] = []
    colors: List[str] = []

    model_config = {"from_attributes": True}


class EventCreate(BaseModel):
    name: str
    description: Optional[str] = None
    event_type: Literal["normal", "merchandise"] = "normal"
    eligibility: Optional[str] = None
    venue: Optional[str] = None
    start_date: datetime
    end_date: datetime
    registration_deadline: Optional[datetime] = None
    registration_limit: Optional[int] = None
    registration_fee: float = 0.0
    tags: List[str] = []
    merchandise_items: List[MerchandiseItemCreate] = []

    @field_validator("name")
    @classmethod
    def must_not_be_empty(cls, v: str) -> str:
        return _not_blank(v)

    @field_validator("start_date", "end_date", "registration_deadline")
    @classmethod
    def to_naive_utc(cls, v):
        return _naive_utc(v)

    @field_validator("registration_limit")
    @classmethod
    def limit_positive(cls, v):
        if v is not None and v < 1:
            raise ValueError("Registration limit must be at least 1")
        return v

    @model_validator(mode="after")
    def check_schedule(self):
        if self.end_date < self.start_date:
            raise ValueError("End date must not be before start date")
        if self.merchandise_items and self.event_type != "merchandise":
            raise ValueError("Only merchandise events can carry merchandise items")
        return self


class EventUpdate(BaseModel):
    """All fields optional. Once an event leaves draft, only description,
    registration_deadline and registration_limit may change."""
    name:                  Optional[str] = None
    description:           Optional[str] = None
    eligibility:           Optional[str] = None
    venue:                 Optional[str] = None
    start_date:            Optional[datetime] = None
    end_date:              Optional[datetime] = None
    registration_deadline: Optional[datetime] = None
    registration_limit:    Optional[int] = None
    registration_fee:      Optional[float] = None
    tags:                  Optional[List[str]] = None

    @field_validator("name")
    @classmethod
    def must_not_be_blank(cls, v):
        return _not_blank(v)

    @field_validator("start_date", "end_date", "registration_deadline")
    @classmethod
    def to_naive_utc(cls, v):
        return _naive_utc(v)

    @field_validator("registration_limit")
    @classmethod
    def limit_positive(cls, v):
        if v is not None and v < 1:
            raise ValueError("Registration limit must be at least 1")
        return v


class EventStatusUpdate(BaseModel):
    status: Literal["draft", "published", "ongoing", "completed"]


class EventResponse(BaseModel):
    id: int
    organizer_id: int
    name: str
    description: Optional[str] = None
    event_type: str
    eligibility: Optional[str] = None
    venue: Optional[str] = None
    start_date: datetime
    end_date: datetime
    registration_deadline: Optional[datetime] = None
    registration_limit: Optional[int] = None
    registration_fee: float
    tags: List[str] = []
    status: str
    items: List[MerchandiseItemResponse] = []

    model_config = {"from_attributes": True}


class OrganizerDetail(OrganizerResponse):
    events: List[EventResponse] = []


# ---------------------------------------------------------------------------
# Registrations, tickets & merchandise purchases
# ---------------------------------------------------------------------------

class OrderItemResponse(BaseModel):
    item_id: int
    item_name: str
    quantity: int
    selected_size: Optional[str] = None
    selected_color: Optional[str] = None
    unit_price: float

    model_config = {"from_attributes": True}


class MerchandisePurchaseResponse(BaseModel):
    items: List[OrderItemResponse]
    total_amount: float
    payment_status: str

    model_config = {"from_attributes": True}


class RegistrationResponse(BaseModel):
    id: int
    ticket_id: str
    participant_id: int
    event_id: int
    team_id: Optional[int] = None
    registration_date: datetime
    status: str
    attended: bool
    attended_at: Optional[datetime] = None
    merchandise_purchase: Optional[MerchandisePurchaseResponse] = None

    model_config = {"from_attributes": True}


class RegistrationWithEvent(RegistrationResponse):
    event: EventResponse


class RegisterRequest(BaseModel):
    team_id: Optional[int] = None


class PurchaseItem(BaseModel):
    item_id: int
    quantity: int
    selected_size: Optional[str] = None
    selected_color: Optional[str] = None

    @field_validator("quantity")
    @classmethod
    def quantity_must_be_valid(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Quantity must be at least 1")
        return v


class MerchandisePurchaseRequest(BaseModel):
    items: List[PurchaseItem]

    @field_validator("items")
    @classmethod
    def not_empty(cls, v):
        if not v:
            raise ValueError("At least one item is required")
        return v


class PurchaseResult(BaseModel):
    message: str
    registration: RegistrationResponse
    total_amount: float


class PaymentUpdate(BaseModel):
    payment_status: Literal["pending", "paid"]


class TicketView(BaseModel):
    ticket_id: str
    event_name: str
    event_date: datetime
    venue: Optional[str] = None
    participant_name: str
    status: str
    qr_code: str


class TicketLookup(BaseModel):
    ticket_id: str

    @field_validator("ticket_id")
    @classmethod
    def must_not_be_empty(cls, v: str) -> str:
        return _not_blank(v)


class TicketSummary(BaseModel):
    ticket_id: str
    participant_id: int
    participant_name: str
    event_name: str
    status: str
    attended: bool


class VerifyResponse(BaseModel):
    valid: bool
    ticket: TicketSummary


class CheckinResponse(BaseModel):
    success: bool
    message: str
    ticket: TicketSummary


# ---------------------------------------------------------------------------
# Teams & chat
# ---------------------------------------------------------------------------

class TeamCreate(BaseModel):
    name: str
    event_id: int
    max_size: int = 4

    @field_validator("name")
    @classmethod
    def must_not_be_empty(cls, v: str) -> str:
        return _not_blank(v)

    @field_validator("max_size")
    @classmethod
    def size_in_range(cls, v: int) -> int:
        if v < 2 or v > 10:
            raise ValueError("Team size must be between 2 and 10")
        return v


class TeamMemberResponse(BaseModel):
    participant_id: int
    name: str
    email: str
    joined_at: datetime


class TeamResponse(BaseModel):
    id: int
    name: str
    event_id: int
    leader_id: int
    invite_code: str
    max_size: int
    members: List[TeamMemberResponse]


class ChatMessageCreate(BaseModel):
    content: str

    @field_validator("content")
    @classmethod
    def must_not_be_empty(cls, v: str) -> str:
        v = _not_blank(v)
        if len(v) > 2000:
            raise ValueError("Message too long")
        return v


class ChatMessageResponse(BaseModel):
    id: int
    team_id: int
    sender_id: int
    sender_name: str
    content: str
    created_at: datetime


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------

class AuditLogResponse(BaseModel):
    id: int
    timestamp: datetime
    role: str
    action: str
    detail: str

    model_config = {"from_attributes": True}


class StatsResponse(BaseModel):
    participants: int
    organizers: int
    active_organizers: int
    events: int
    events_by_status: dict
    registrations: int
    pending_password_resets: int
