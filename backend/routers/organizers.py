import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

import models
import schemas
from database import get_db
from security import CurrentUser, verify_organizer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/organizers", tags=["organizers"])

PUBLIC_STATUSES = ("published", "ongoing", "completed")


@router.get("", response_model=List[schemas.OrganizerResponse])
def list_organizers(db: Session = Depends(get_db)):
    """Public — active clubs and societies."""
    return (
        db.query(models.Organizer)
        .filter(models.Organizer.is_active.is_(True))
        .order_by(models.Organizer.name)
        .all()
    )


@router.get("/me", response_model=schemas.OrganizerAdminResponse)
def get_profile(user: CurrentUser = Depends(verify_organizer)):
    return user.record


@router.put("/me", response_model=schemas.OrganizerAdminResponse)
def update_profile(
    update: schemas.OrganizerUpdate,
    user: CurrentUser = Depends(verify_organizer),
    db: Session = Depends(get_db),
):
    organizer = user.record
    for field, value in update.model_dump(exclude_none=True).items():
        setattr(organizer, field, value)
    db.commit()
    db.refresh(organizer)
    return organizer


@router.get("/me/events", response_model=List[schemas.EventResponse])
def my_events(user: CurrentUser = Depends(verify_organizer), db: Session = Depends(get_db)):
    """Every event the organizer owns, drafts included."""
    return (
        db.query(models.Event)
        .filter(models.Event.organizer_id == user.id)
        .order_by(models.Event.start_date.desc())
        .all()
    )


@router.post("/me/password-reset", response_model=schemas.PasswordResetResponse, status_code=201)
def request_password_reset(
    payload: schemas.PasswordResetCreate,
    user: CurrentUser = Depends(verify_organizer),
    db: Session = Depends(get_db),
):
    """Ask the admin for a new password. Only one request may be pending."""
    pending = (
        db.query(models.PasswordResetRequest)
        .filter(
            models.PasswordResetRequest.organizer_id == user.id,
            models.PasswordResetRequest.status == "pending",
        )
        .first()
    )
    if pending:
        raise HTTPException(status_code=409, detail="A password reset request is already pending")

    req = models.PasswordResetRequest(organizer_id=user.id, reason=payload.reason)
    db.add(req)
    db.commit()
    db.refresh(req)
    logger.info("Organizer %s requested a password reset", user.id)
    return req


@router.get("/{organizer_id}", response_model=schemas.OrganizerDetail)
def get_organizer(organizer_id: int, db: Session = Depends(get_db)):
    """Public — organizer profile with its non-draft events."""
    organizer = db.get(models.Organizer, organizer_id)
    if not organizer or not organizer.is_active:
        raise HTTPException(status_code=404, detail="Organizer not found.")
    events = (
        db.query(models.Event)
        .filter(
            models.Event.organizer_id == organizer_id,
            models.Event.status.in_(PUBLIC_STATUSES),
        )
        .order_by(models.Event.start_date.desc())
        .all()
    )
    detail = schemas.OrganizerDetail.model_validate(organizer, from_attributes=True)
    detail.events = [schemas.EventResponse.model_validate(e) for e in events]
    return detail
