import logging
import secrets
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

import models
import schemas
from database import get_db
from email_service import send_ticket_email
from security import CurrentUser, get_optional_user, verify_organizer, verify_participant

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/events", tags=["events"])

# Fields an organizer may still change once an event has left draft
EDITABLE_AFTER_PUBLISH = {"description", "registration_deadline", "registration_limit"}
OPEN_FOR_REGISTRATION  = ("published", "ongoing")
REQUIRED_FIELDS        = {"name", "start_date", "end_date", "registration_fee", "tags"}


def get_owned_event(db: Session, event_id: int, user: CurrentUser) -> models.Event:
    event = db.get(models.Event, event_id)
    if not event:
        raise HTTPException(status_code=404, detail="Event not found.")
    if event.organizer_id != user.id:
        raise HTTPException(status_code=403, detail="Unauthorized")
    return event


def active_registration_count(db: Session, event_id: int) -> int:
    return (
        db.query(func.count(models.Registration.id))
        .filter(
            models.Registration.event_id == event_id,
            models.Registration.status != "cancelled",
        )
        .scalar()
    ) or 0


def _new_ticket_id(db: Session) -> str:
    while True:
        ticket_id = "TKT-" + secrets.token_hex(5).upper()
        taken = (
            db.query(models.Registration.id)
            .filter(models.Registration.ticket_id == ticket_id)
            .first()
        )
        if not taken:
            return ticket_id


# ---------------------------------------------------------------------------
# Public routes
# ---------------------------------------------------------------------------

@router.get("", response_model=List[schemas.EventResponse])
def browse_events(
    search: Optional[str] = None,
    event_type: Optional[str] = None,
    status: Optional[str] = None,
    organizer_id: Optional[int] = None,
    db: Session = Depends(get_db),
):
    """Public — every non-draft event, soonest first."""
    query = db.query(models.Event).filter(models.Event.status != "draft")
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(
            models.Event.name.ilike(pattern),
            models.Event.description.ilike(pattern),
        ))
    if event_type:
        query = query.filter(models.Event.event_type == event_type)
    if status:
        query = query.filter(models.Event.status == status)
    if organizer_id:
        query = query.filter(models.Event.organizer_id == organizer_id)
    return query.order_by(models.Event.start_date.asc()).all()


@router.get("/{event_id}", response_model=schemas.EventResponse)
def get_event(
    event_id: int,
    user: Optional[CurrentUser] = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    event = db.get(models.Event, event_id)
    # Drafts are only visible to their owner
    if not event or (
        event.status == "draft"
        and not (user and user.role == "organizer" and user.id == event.organizer_id)
    ):
        raise HTTPException(status_code=404, detail="Event not found.")
    return event


# ---------------------------------------------------------------------------
# Organizer routes
# ---------------------------------------------------------------------------

@router.post("", response_model=schemas.EventResponse, status_code=201)
def create_event(
    payload: schemas.EventCreate,
    user: CurrentUser = Depends(verify_organizer),
    db: Session = Depends(get_db),
):
    data = payload.model_dump(exclude={"merchandise_items"})
    event = models.Event(organizer_id=user.id, status="draft", **data)
    for item in payload.merchandise_items:
        event.items.append(models.MerchandiseItem(**item.model_dump()))
    db.add(event)
    db.commit()
    db.refresh(event)
    logger.info("Organizer %s created event %s (%s)", user.id, event.id, event.event_type)
    return event


@router.put("/{event_id}", response_model=schemas.EventResponse)
def update_event(
    event_id: int,
    update: schemas.EventUpdate,
    user: CurrentUser = Depends(verify_organizer),
    db: Session = Depends(get_db),
):
    """Edit an event. Drafts are fully editable; published and ongoing events
    only accept a new description, a new deadline, or a higher limit."""
    event = get_owned_event(db, event_id, user)
    changes = update.model_dump(exclude_unset=True)

    if event.status == "completed":
        raise HTTPException(status_code=400, detail="Completed events cannot be edited")

    if event.status != "draft":
        locked = set(changes) - EDITABLE_AFTER_PUBLISH
        if locked:
            raise HTTPException(
                status_code=400,
                detail=(
                    "Only description, registration deadline and registration "
                    "limit can be changed after publishing"
                ),
            )
        new_limit = changes.get("registration_limit")
        # None means unlimited, so any concrete limit would be a decrease
        if new_limit is not None and (
            event.registration_limit is None or new_limit < event.registration_limit
        ):
            raise HTTPException(status_code=400, detail="Registration limit can only be increased")
        if new_limit is not None and new_limit < active_registration_count(db, event.id):
            raise HTTPException(
                status_code=400,
                detail="Registration limit cannot be below the current registration count",
            )

    for field, value in changes.items():
        if value is None and field in REQUIRED_FIELDS:
            continue
        setattr(event, field, value)

    if event.end_date < event.start_date:
        raise HTTPException(status_code=400, detail="End date must not be before start date")

    db.commit()
    db.refresh(event)
    return event


@router.patch("/{event_id}/status", response_model=schemas.EventResponse)
def change_status(
    event_id: int,
    payload: schemas.EventStatusUpdate,
    user: CurrentUser = Depends(verify_organizer),
    db: Session = Depends(get_db),
):
    """Advance the event lifecycle: draft → published → ongoing → completed."""
    event = get_owned_event(db, event_id, user)
    allowed = models.EVENT_TRANSITIONS.get(event.status)
    if payload.status != allowed:
        raise HTTPException(
            status_code=400,
            detail=f"Cannot change status from {event.status} to {payload.status}",
        )
    previous = event.status
    event.status = payload.status
    models.record_audit(
        db, "organizer", "status_change",
        f"event {event.id}: {previous} -> {payload.status}",
    )
    db.commit()
    db.refresh(event)
    logger.info("Event %s status %s -> %s", event.id, previous, event.status)
    return event


@router.post(
    "/{event_id}/merchandise",
    response_model=schemas.MerchandiseItemResponse,
    status_code=201,
)
def add_merchandise_item(
    event_id: int,
    payload: schemas.MerchandiseItemCreate,
    user: CurrentUser = Depends(verify_organizer),
    db: Session = Depends(get_db),
):
    event = get_owned_event(db, event_id, user)
    if event.event_type != "merchandise":
        raise HTTPException(status_code=400, detail="This is not a merchandise event")
    if event.status == "completed":
        raise HTTPException(status_code=400, detail="Event has already completed")
    item = models.MerchandiseItem(**payload.model_dump())
    event.items.append(item)
    db.commit()
    db.refresh(item)
    return item


@router.patch(
    "/{event_id}/merchandise/{item_id}",
    response_model=schemas.MerchandiseItemResponse,
)
def update_merchandise_item(
    event_id: int,
    item_id: int,
    update: schemas.MerchandiseItemUpdate,
    user: CurrentUser = Depends(verify_organizer),
    db: Session = Depends(get_db),
):
    """Restock, re-cap or re-price one item."""
    event = get_owned_event(db, event_id, user)
    if event.status == "completed":
        raise HTTPException(status_code=400, detail="Event has already completed")
    item = db.get(models.MerchandiseItem, item_id)
    if not item or item.event_id != event.id:
        raise HTTPException(status_code=404, detail="Merchandise item not found.")

    changes = update.model_dump(exclude_none=True)
    for field, value in changes.items():
        setattr(item, field, value)
    if changes:
        models.record_audit(
            db, "organizer", "stock_update",
            f"event {event.id} item {item.id}: "
            + ", ".join(f"{k}={v}" for k, v in sorted(changes.items())),
        )
    db.commit()
    db.refresh(item)
    return item


@router.get("/{event_id}/registrations", response_model=List[schemas.RegistrationResponse])
def list_registrations(
    event_id: int,
    user: CurrentUser = Depends(verify_organizer),
    db: Session = Depends(get_db),
):
    get_owned_event(db, event_id, user)
    return (
        db.query(models.Registration)
        .filter(models.Registration.event_id == event_id)
        .order_by(models.Registration.registration_date.asc())
        .all()
    )


# ---------------------------------------------------------------------------
# Participant routes
# ---------------------------------------------------------------------------

@router.post(
    "/{event_id}/register",
    response_model=schemas.RegistrationResponse,
    status_code=201,
)
def register_for_event(
    event_id: int,
    payload: Optional[schemas.RegisterRequest] = None,
    user: CurrentUser = Depends(verify_participant),
    db: Session = Depends(get_db),
):
    event = db.get(models.Event, event_id)
    if not event or event.status == "draft":
        raise HTTPException(status_code=404, detail="Event not found.")
    if event.status not in OPEN_FOR_REGISTRATION:
        raise HTTPException(status_code=400, detail="Registration is closed for this event")
    if event.registration_deadline and models.utcnow() > event.registration_deadline:
        raise HTTPException(status_code=400, detail="Registration deadline has passed")

    duplicate = (
        db.query(models.Registration)
        .filter(
            models.Registration.event_id == event.id,
            models.Registration.participant_id == user.id,
            models.Registration.status != "cancelled",
        )
        .first()
    )
    if duplicate:
        raise HTTPException(status_code=409, detail="Already registered for this event")

    if event.registration_limit is not None:
        if active_registration_count(db, event.id) >= event.registration_limit:
            raise HTTPException(status_code=400, detail="Registration limit reached")

    team_id = payload.team_id if payload else None
    if team_id is not None:
        team = db.get(models.Team, team_id)
        if not team or team.event_id != event.id or not team.has_member(user.id):
            raise HTTPException(status_code=400, detail="You are not a member of that team")

    registration = models.Registration(
        ticket_id      = _new_ticket_id(db),
        participant_id = user.id,
        event_id       = event.id,
        team_id        = team_id,
        status         = "confirmed",
    )
    db.add(registration)
    db.commit()
    db.refresh(registration)
    logger.info("Participant %s registered for event %s (%s)", user.id, event.id, registration.ticket_id)

    # ── Send ticket email (optional side effect) ─────────────────────────────
    send_ticket_email(user.record, event, registration)

    return registration
