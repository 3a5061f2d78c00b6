import logging

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.orm import Session

import models
import schemas
from database import get_db
from email_service import send_merchandise_email
from merchandise import add_merchandise
from routers.events import get_owned_event
from security import CurrentUser, verify_organizer, verify_participant
from tickets import ensure_qr_code, registrations_csv

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/registrations", tags=["registrations"])


def _own_registration(db: Session, registration_id: int, user: CurrentUser) -> models.Registration:
    registration = db.get(models.Registration, registration_id)
    if not registration:
        raise HTTPException(status_code=404, detail="Registration not found")
    if registration.participant_id != user.id:
        raise HTTPException(status_code=403, detail="Access denied")
    return registration


def _ticket_for_organizer(db: Session, ticket_id: str, user: CurrentUser) -> models.Registration:
    registration = (
        db.query(models.Registration)
        .filter(models.Registration.ticket_id == ticket_id)
        .first()
    )
    if not registration:
        raise HTTPException(status_code=404, detail="Invalid ticket")
    if registration.event.organizer_id != user.id:
        raise HTTPException(status_code=403, detail="Unauthorized")
    return registration


def _summary(registration: models.Registration) -> schemas.TicketSummary:
    return schemas.TicketSummary(
        ticket_id        = registration.ticket_id,
        participant_id   = registration.participant_id,
        participant_name = registration.participant.full_name,
        event_name       = registration.event.name,
        status           = registration.status,
        attended         = registration.attended,
    )


# ---------------------------------------------------------------------------
# Participant routes
# ---------------------------------------------------------------------------

@router.get("/{registration_id}/ticket", response_model=schemas.TicketView)
def get_ticket(
    registration_id: int,
    user: CurrentUser = Depends(verify_participant),
    db: Session = Depends(get_db),
):
    """Return the ticket, generating its QR code on first view."""
    registration = _own_registration(db, registration_id, user)

    if ensure_qr_code(registration):
        db.commit()
        db.refresh(registration)

    event = registration.event
    return schemas.TicketView(
        ticket_id        = registration.ticket_id,
        event_name       = event.name,
        event_date       = event.start_date,
        venue            = event.venue,
        participant_name = user.name,
        status           = registration.status,
        qr_code          = registration.qr_code,
    )


@router.post("/{registration_id}/cancel", response_model=schemas.RegistrationResponse)
def cancel_registration(
    registration_id: int,
    user: CurrentUser = Depends(verify_participant),
    db: Session = Depends(get_db),
):
    registration = _own_registration(db, registration_id, user)
    if registration.status == "cancelled":
        raise HTTPException(status_code=400, detail="Registration is already cancelled")
    if registration.event.status == "completed":
        raise HTTPException(status_code=400, detail="Event has already completed")
    if registration.merch_total_amount is not None:
        raise HTTPException(
            status_code=400,
            detail="Registrations with merchandise orders cannot be cancelled",
        )
    registration.status = "cancelled"
    db.commit()
    db.refresh(registration)
    return registration


@router.post("/{registration_id}/add-merchandise", response_model=schemas.PurchaseResult)
def add_merchandise_to_registration(
    registration_id: int,
    payload: schemas.MerchandisePurchaseRequest,
    user: CurrentUser = Depends(verify_participant),
    db: Session = Depends(get_db),
):
    registration, new_lines, amount = add_merchandise(
        db, registration_id, user.id, payload.items
    )

    send_merchandise_email(
        user.record, registration.event, registration, new_lines, amount
    )

    return schemas.PurchaseResult(
        message      = "Merchandise added to order successfully",
        registration = schemas.RegistrationResponse.model_validate(registration),
        total_amount = registration.merch_total_amount,
    )


# ---------------------------------------------------------------------------
# Organizer routes
# ---------------------------------------------------------------------------

@router.get("/event/{event_id}/csv")
def export_csv(
    event_id: int,
    user: CurrentUser = Depends(verify_organizer),
    db: Session = Depends(get_db),
):
    """Download every registration of an event as CSV."""
    get_owned_event(db, event_id, user)
    registrations = (
        db.query(models.Registration)
        .filter(models.Registration.event_id == event_id)
        .order_by(models.Registration.registration_date.asc(), models.Registration.id.asc())
        .all()
    )
    return Response(
        content=registrations_csv(registrations),
        media_type="text/csv",
        headers={
            "Content-Disposition": f'attachment; filename="registrations-{event_id}.csv"',
        },
    )


@router.post("/verify-qr", response_model=schemas.VerifyResponse)
def verify_ticket(
    lookup: schemas.TicketLookup,
    user: CurrentUser = Depends(verify_organizer),
    db: Session = Depends(get_db),
):
    registration = _ticket_for_organizer(db, lookup.ticket_id, user)
    return schemas.VerifyResponse(valid=True, ticket=_summary(registration))


@router.post("/checkin", response_model=schemas.CheckinResponse)
def checkin(
    lookup: schemas.TicketLookup,
    user: CurrentUser = Depends(verify_organizer),
    db: Session = Depends(get_db),
):
    """Mark attendance for a scanned ticket."""
    registration = _ticket_for_organizer(db, lookup.ticket_id, user)

    if registration.status == "cancelled":
        raise HTTPException(status_code=400, detail="Registration has been cancelled")

    if registration.attended:
        time_str = (
            registration.attended_at.strftime("%H:%M:%S")
            if registration.attended_at
            else "unknown time"
        )
        raise HTTPException(
            status_code=409,
            detail=f"Ticket already checked in at {time_str}.",
        )

    registration.attended    = True
    registration.attended_at = models.utcnow()
    models.record_audit(db, "organizer", "checkin", f"ticket {registration.ticket_id}")
    db.commit()
    db.refresh(registration)

    return schemas.CheckinResponse(
        success=True,
        message=f"Welcome, {registration.participant.full_name}!",
        ticket=_summary(registration),
    )


@router.patch("/{registration_id}/payment", response_model=schemas.RegistrationResponse)
def update_payment(
    registration_id: int,
    payload: schemas.PaymentUpdate,
    user: CurrentUser = Depends(verify_organizer),
    db: Session = Depends(get_db),
):
    """Set the payment status of a registration's merchandise order."""
    registration = db.get(models.Registration, registration_id)
    if not registration:
        raise HTTPException(status_code=404, detail="Registration not found")
    if registration.event.organizer_id != user.id:
        raise HTTPException(status_code=403, detail="Unauthorized")
    if registration.merch_total_amount is None:
        raise HTTPException(status_code=400, detail="No merchandise order on this registration")

    registration.merch_payment_status = payload.payment_status
    models.record_audit(
        db, "organizer", "payment_update",
        f"ticket {registration.ticket_id}: {payload.payment_status}",
    )
    db.commit()
    db.refresh(registration)
    return registration
