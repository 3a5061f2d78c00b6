from datetime import datetime, timezone

from sqlalchemy import (
    Column, String, Boolean, DateTime, Integer, Float, Text, JSON,
    ForeignKey, UniqueConstraint, CheckConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from database import Base


def utcnow() -> datetime:
    """Naive UTC timestamp; every DateTime column stores naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ── Enumerations (stored as plain strings) ──────────────────────────────────
EVENT_TYPES      = ("normal", "merchandise")
EVENT_STATUSES   = ("draft", "published", "ongoing", "completed")
# Forward-only lifecycle
EVENT_TRANSITIONS = {
    "draft":     "published",
    "published": "ongoing",
    "ongoing":   "completed",
}
REGISTRATION_STATUSES = ("pending", "confirmed", "cancelled")
PAYMENT_STATUSES      = ("pending", "paid")


# ── Identities ───────────────────────────────────────────────────────────────
class Participant(Base):
    __tablename__ = "participants"

    id               = Column(Integer,     primary_key=True, autoincrement=True)
    first_name       = Column(String(100), nullable=False)
    last_name        = Column(String(100), nullable=False)
    email            = Column(String(255), nullable=False, unique=True, index=True)
    password_hash    = Column(String(255), nullable=False)
    # 'iiit' | 'non-iiit'
    participant_type = Column(String(20),  nullable=False, default="non-iiit")
    college          = Column(String(200), nullable=True)
    contact_number   = Column(String(20),  nullable=True)
    interests        = Column(JSON,        nullable=False, default=list)
    # Organizer ids the participant follows (set during onboarding)
    followed_organizers = Column(JSON,     nullable=False, default=list)
    onboarded        = Column(Boolean,     default=False, nullable=False)
    created_at       = Column(DateTime, server_default=func.now(), nullable=False)

    registrations = relationship("Registration", back_populates="participant")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class Organizer(Base):
    """A club or society that owns events. Accounts are created by the admin."""
    __tablename__ = "organizers"

    id            = Column(Integer,     primary_key=True, autoincrement=True)
    name          = Column(String(150), nullable=False)
    category      = Column(String(60),  nullable=False, default="General")
    description   = Column(Text,        nullable=True)
    contact_email = Column(String(255), nullable=True)
    email         = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    is_active     = Column(Boolean,     default=True, nullable=False)
    created_at    = Column(DateTime, server_default=func.now(), nullable=False)

    events = relationship("Event", back_populates="organizer")


# ── Events and their merchandise ─────────────────────────────────────────────
class Event(Base):
    __tablename__ = "events"

    id                    = Column(Integer,     primary_key=True, autoincrement=True)
    organizer_id          = Column(Integer,     ForeignKey("organizers.id"), nullable=False, index=True)
    name                  = Column(String(200), nullable=False)
    description           = Column(Text,        nullable=True)
    event_type            = Column(String(20),  nullable=False, default="normal")
    eligibility           = Column(String(100), nullable=True)
    venue                 = Column(String(200), nullable=True)
    start_date            = Column(DateTime,    nullable=False)
    end_date              = Column(DateTime,    nullable=False)
    registration_deadline = Column(DateTime,    nullable=True)
    # None means unlimited
    registration_limit    = Column(Integer,     nullable=True)
    registration_fee      = Column(Float,       nullable=False, default=0.0)
    tags                  = Column(JSON,        nullable=False, default=list)
    status                = Column(String(20),  nullable=False, default="draft", index=True)
    created_at            = Column(DateTime, server_default=func.now(), nullable=False)

    organizer     = relationship("Organizer", back_populates="events")
    items         = relationship(
        "MerchandiseItem",
        back_populates="event",
        order_by="MerchandiseItem.id",
        cascade="all, delete-orphan",
    )
    registrations = relationship("Registration", back_populates="event")


class MerchandiseItem(Base):
    __tablename__ = "merchandise_items"
    __table_args__ = (CheckConstraint("quantity >= 0", name="ck_merch_quantity_non_negative"),)

    id                          = Column(Integer,     primary_key=True, autoincrement=True)
    event_id                    = Column(Integer,     ForeignKey("events.id"), nullable=False, index=True)
    name                        = Column(String(150), nullable=False)
    price                       = Column(Float,       nullable=False, default=0.0)
    # Quantity on hand; never negative
    quantity                    = Column(Integer,     nullable=False, default=0)
    max_purchase_per_participant = Column(Integer,    nullable=False, default=1)
    sizes                       = Column(JSON,        nullable=False, default=list)
    colors                      = Column(JSON,        nullable=False, default=list)

    event = relationship("Event", back_populates="items")


# ── Registrations (tickets) ──────────────────────────────────────────────────
class Registration(Base):
    __tablename__ = "registrations"

    id                = Column(Integer,    primary_key=True, autoincrement=True)
    ticket_id         = Column(String(32), nullable=False, unique=True, index=True)
    participant_id    = Column(Integer,    ForeignKey("participants.id"), nullable=False, index=True)
    event_id          = Column(Integer,    ForeignKey("events.id"), nullable=False, index=True)
    team_id           = Column(Integer,    ForeignKey("teams.id"), nullable=True)
    registration_date = Column(DateTime,   nullable=False, default=utcnow)
    # 'pending' | 'confirmed' | 'cancelled'
    status            = Column(String(20), nullable=False, default="confirmed")
    # data:image/png;base64,..., generated on first ticket view
    qr_code           = Column(Text,       nullable=True)
    attended          = Column(Boolean,    default=False, nullable=False)
    attended_at       = Column(DateTime,   nullable=True)
    # Merchandise purchase record; both None until the first purchase
    merch_total_amount   = Column(Float,      nullable=True)
    merch_payment_status = Column(String(20), nullable=True)

    participant    = relationship("Participant", back_populates="registrations")
    event          = relationship("Event", back_populates="registrations")
    team           = relationship("Team")
    purchase_items = relationship(
        "MerchandiseOrderItem",
        back_populates="registration",
        order_by="MerchandiseOrderItem.id",
        cascade="all, delete-orphan",
    )

    @property
    def merchandise_purchase(self):
        if self.merch_total_amount is None:
            return None
        return {
            "items":          list(self.purchase_items),
            "total_amount":   self.merch_total_amount,
            "payment_status": self.merch_payment_status,
        }


class MerchandiseOrderItem(Base):
    """One line of a registration's merchandise purchase, in purchase order."""
    __tablename__ = "merchandise_order_items"

    id              = Column(Integer,     primary_key=True, autoincrement=True)
    registration_id = Column(Integer,     ForeignKey("registrations.id"), nullable=False, index=True)
    item_id         = Column(Integer,     ForeignKey("merchandise_items.id"), nullable=False)
    item_name       = Column(String(150), nullable=False)
    quantity        = Column(Integer,     nullable=False)
    selected_size   = Column(String(20),  nullable=True)
    selected_color  = Column(String(30),  nullable=True)
    unit_price      = Column(Float,       nullable=False)
    created_at      = Column(DateTime,    nullable=False, default=utcnow)

    registration = relationship("Registration", back_populates="purchase_items")


# ── Teams and chat ───────────────────────────────────────────────────────────
class Team(Base):
    __tablename__ = "teams"

    id          = Column(Integer,     primary_key=True, autoincrement=True)
    name        = Column(String(100), nullable=False)
    event_id    = Column(Integer,     ForeignKey("events.id"), nullable=False, index=True)
    leader_id   = Column(Integer,     ForeignKey("participants.id"), nullable=False)
    invite_code = Column(String(16),  nullable=False, unique=True, index=True)
    max_size    = Column(Integer,     nullable=False, default=4)
    created_at  = Column(DateTime, server_default=func.now(), nullable=False)

    event   = relationship("Event")
    members = relationship(
        "TeamMember",
        back_populates="team",
        order_by="TeamMember.id",
        cascade="all, delete-orphan",
    )

    def has_member(self, participant_id: int) -> bool:
        return any(m.participant_id == participant_id for m in self.members)


class TeamMember(Base):
    __tablename__ = "team_members"
    __table_args__ = (UniqueConstraint("team_id", "participant_id"),)

    id             = Column(Integer, primary_key=True, autoincrement=True)
    team_id        = Column(Integer, ForeignKey("teams.id"), nullable=False, index=True)
    participant_id = Column(Integer, ForeignKey("participants.id"), nullable=False)
    joined_at      = Column(DateTime, nullable=False, default=utcnow)

    team        = relationship("Team", back_populates="members")
    participant = relationship("Participant")


class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id         = Column(Integer, primary_key=True, autoincrement=True)
    team_id    = Column(Integer, ForeignKey("teams.id"), nullable=False, index=True)
    sender_id  = Column(Integer, ForeignKey("participants.id"), nullable=False)
    content    = Column(Text,    nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    sender = relationship("Participant")


# ── Admin workflow ───────────────────────────────────────────────────────────
class PasswordResetRequest(Base):
    __tablename__ = "password_reset_requests"

    id           = Column(Integer,    primary_key=True, autoincrement=True)
    organizer_id = Column(Integer,    ForeignKey("organizers.id"), nullable=False, index=True)
    reason       = Column(Text,       nullable=False)
    # 'pending' | 'approved' | 'rejected'
    status       = Column(String(20), nullable=False, default="pending")
    created_at   = Column(DateTime,   nullable=False, default=utcnow)
    resolved_at  = Column(DateTime,   nullable=True)

    organizer = relationship("Organizer")


# ── Audit log ────────────────────────────────────────────────────────────────
class AuditLog(Base):
    """Records every significant admin/organizer action."""
    __tablename__ = "audit_logs"

    id        = Column(Integer,  primary_key=True, autoincrement=True)
    timestamp = Column(DateTime, nullable=False, default=utcnow)
    role      = Column(String(20),  nullable=False)   # admin | organizer
    action    = Column(String(50),  nullable=False)   # create_organizer | status_change | stock_update | checkin ...
    detail    = Column(Text,        nullable=False)


def record_audit(db, role: str, action: str, detail: str) -> None:
    """Stage an audit row on the session; committed with the caller's transaction."""
    db.add(AuditLog(role=role, action=action, detail=detail))
