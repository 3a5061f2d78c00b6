import logging
import secrets

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

import config
import models
import schemas
from database import get_db
from security import (
    CurrentUser, get_current_user, hash_password, verify_password,
    login_session, logout_session,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _session_response(user: CurrentUser) -> schemas.SessionResponse:
    return schemas.SessionResponse(id=user.id, email=user.email, role=user.role, name=user.name)


@router.post("/signup", response_model=schemas.SessionResponse, status_code=201)
def signup(payload: schemas.ParticipantSignup, request: Request, db: Session = Depends(get_db)):
    """Participant self-registration. Organizer accounts are created by the admin."""
    exists = (
        db.query(models.Participant)
        .filter(models.Participant.email == payload.email)
        .first()
    )
    if exists:
        raise HTTPException(status_code=409, detail="Email already registered")

    participant = models.Participant(
        first_name       = payload.first_name,
        last_name        = payload.last_name,
        email            = payload.email,
        password_hash    = hash_password(payload.password),
        participant_type = payload.participant_type,
        college          = payload.college,
        contact_number   = payload.contact_number,
        interests        = [],
        followed_organizers = [],
    )
    db.add(participant)
    db.commit()
    db.refresh(participant)

    login_session(request, participant.id, "participant")
    logger.info("Participant %s signed up", participant.id)
    return schemas.SessionResponse(
        id=participant.id, email=participant.email,
        role="participant", name=participant.full_name,
    )


@router.post("/login", response_model=schemas.SessionResponse)
def login(payload: schemas.LoginRequest, request: Request, db: Session = Depends(get_db)):
    if payload.role == "admin":
        ok = (
            secrets.compare_digest(payload.email.encode(), config.ADMIN_EMAIL.encode())
            and secrets.compare_digest(payload.password.encode(), config.ADMIN_PASSWORD.encode())
        )
        if not ok:
            raise HTTPException(status_code=401, detail="Invalid credentials")
        login_session(request, None, "admin")
        return schemas.SessionResponse(email=config.ADMIN_EMAIL, role="admin", name="Admin")

    model = models.Participant if payload.role == "participant" else models.Organizer
    account = db.query(model).filter(model.email == payload.email).first()
    if not account or not verify_password(payload.password, account.password_hash):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if payload.role == "organizer" and not account.is_active:
        raise HTTPException(status_code=403, detail="Account has been disabled")

    login_session(request, account.id, payload.role)
    name = account.full_name if payload.role == "participant" else account.name
    return schemas.SessionResponse(id=account.id, email=account.email, role=payload.role, name=name)


@router.post("/logout")
def logout(request: Request):
    logout_session(request)
    return {"message": "Logged out"}


@router.get("/me", response_model=schemas.SessionResponse)
def me(user: CurrentUser = Depends(get_current_user)):
    return _session_response(user)
