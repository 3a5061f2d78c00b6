from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

import models
import schemas
from database import get_db
from security import CurrentUser, verify_participant

router = APIRouter(prefix="/api/participants", tags=["participants"])


@router.get("/me", response_model=schemas.ParticipantResponse)
def get_profile(user: CurrentUser = Depends(verify_participant)):
    return user.record


@router.put("/me", response_model=schemas.ParticipantResponse)
def update_profile(
    update: schemas.ParticipantUpdate,
    user: CurrentUser = Depends(verify_participant),
    db: Session = Depends(get_db),
):
    participant = user.record
    for field, value in update.model_dump(exclude_none=True).items():
        setattr(participant, field, value)
    db.commit()
    db.refresh(participant)
    return participant


@router.put("/me/preferences", response_model=schemas.ParticipantResponse)
def update_preferences(
    prefs: schemas.PreferencesUpdate,
    user: CurrentUser = Depends(verify_participant),
    db: Session = Depends(get_db),
):
    """Onboarding: areas of interest and organizers to follow."""
    followed = sorted(set(prefs.followed_organizers))
    if followed:
        found = (
            db.query(models.Organizer.id)
            .filter(models.Organizer.id.in_(followed))
            .count()
        )
        if found != len(followed):
            raise HTTPException(status_code=400, detail="Unknown organizer in follow list")

    participant = user.record
    participant.interests = [i.strip() for i in prefs.interests if i.strip()]
    participant.followed_organizers = followed
    participant.onboarded = True
    db.commit()
    db.refresh(participant)
    return participant


@router.get("/me/registrations", response_model=List[schemas.RegistrationWithEvent])
def my_registrations(
    user: CurrentUser = Depends(verify_participant),
    db: Session = Depends(get_db),
):
    return (
        db.query(models.Registration)
        .filter(models.Registration.participant_id == user.id)
        .order_by(models.Registration.registration_date.desc())
        .all()
    )
