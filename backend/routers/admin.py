import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func
from sqlalchemy.orm import Session

import models
import schemas
from database import get_db
from security import generate_password, hash_password, verify_admin

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/admin",
    tags=["admin"],
    dependencies=[Depends(verify_admin)],
)


def _get_organizer(db: Session, organizer_id: int) -> models.Organizer:
    organizer = db.get(models.Organizer, organizer_id)
    if not organizer:
        raise HTTPException(status_code=404, detail="Organizer not found.")
    return organizer


def _pending_reset(db: Session, request_id: int) -> models.PasswordResetRequest:
    req = db.get(models.PasswordResetRequest, request_id)
    if not req:
        raise HTTPException(status_code=404, detail="Request not found.")
    if req.status != "pending":
        raise HTTPException(status_code=400, detail=f"Request already {req.status}")
    return req


# ---------------------------------------------------------------------------
# Organizer accounts
# ---------------------------------------------------------------------------

@router.post("/organizers", response_model=schemas.OrganizerCredentials, status_code=201)
def create_organizer(payload: schemas.OrganizerCreate, db: Session = Depends(get_db)):
    """Create a club account. The generated password is only shown here."""
    exists = db.query(models.Organizer).filter(models.Organizer.email == payload.email).first()
    if exists:
        raise HTTPException(status_code=409, detail="Email already registered")

    password = generate_password()
    organizer = models.Organizer(
        name          = payload.name,
        email         = payload.email,
        category      = payload.category,
        description   = payload.description,
        contact_email = payload.contact_email or payload.email,
        password_hash = hash_password(password),
    )
    db.add(organizer)
    db.flush()
    models.record_audit(db, "admin", "create_organizer", f"organizer {organizer.id} ({organizer.email})")
    db.commit()
    db.refresh(organizer)
    logger.info("Admin created organizer %s", organizer.id)
    return schemas.OrganizerCredentials(
        organizer=schemas.OrganizerAdminResponse.model_validate(organizer),
        password=password,
    )


@router.get("/organizers", response_model=List[schemas.OrganizerAdminResponse])
def list_organizers(db: Session = Depends(get_db)):
    return db.query(models.Organizer).order_by(models.Organizer.id).all()


@router.patch("/organizers/{organizer_id}/active", response_model=schemas.OrganizerAdminResponse)
def set_organizer_active(
    organizer_id: int,
    payload: schemas.OrganizerActiveUpdate,
    db: Session = Depends(get_db),
):
    """Disable (archive) or re-enable an organizer. Disabled accounts cannot log in."""
    organizer = _get_organizer(db, organizer_id)
    organizer.is_active = payload.is_active
    models.record_audit(
        db, "admin", "enable_organizer" if payload.is_active else "disable_organizer",
        f"organizer {organizer.id}",
    )
    db.commit()
    db.refresh(organizer)
    return organizer


# ---------------------------------------------------------------------------
# Password resets
# ---------------------------------------------------------------------------

@router.get("/password-resets", response_model=List[schemas.PasswordResetResponse])
def list_password_resets(status: Optional[str] = None, db: Session = Depends(get_db)):
    query = db.query(models.PasswordResetRequest)
    if status:
        query = query.filter(models.PasswordResetRequest.status == status)
    return query.order_by(models.PasswordResetRequest.created_at.desc()).all()


@router.post("/password-resets/{request_id}/approve", response_model=schemas.OrganizerCredentials)
def approve_password_reset(request_id: int, db: Session = Depends(get_db)):
    req = _pending_reset(db, request_id)
    organizer = req.organizer
    password = generate_password()
    organizer.password_hash = hash_password(password)
    req.status = "approved"
    req.resolved_at = models.utcnow()
    models.record_audit(db, "admin", "approve_reset", f"organizer {organizer.id}")
    db.commit()
    db.refresh(organizer)
    return schemas.OrganizerCredentials(
        organizer=schemas.OrganizerAdminResponse.model_validate(organizer),
        password=password,
    )


@router.post("/password-resets/{request_id}/reject", response_model=schemas.PasswordResetResponse)
def reject_password_reset(request_id: int, db: Session = Depends(get_db)):
    req = _pending_reset(db, request_id)
    req.status = "rejected"
    req.resolved_at = models.utcnow()
    models.record_audit(db, "admin", "reject_reset", f"organizer {req.organizer_id}")
    db.commit()
    db.refresh(req)
    return req


# ---------------------------------------------------------------------------
# Overview
# ---------------------------------------------------------------------------

@router.get("/stats", response_model=schemas.StatsResponse)
def stats(db: Session = Depends(get_db)):
    by_status = dict(
        db.query(models.Event.status, func.count(models.Event.id))
        .group_by(models.Event.status)
        .all()
    )
    return schemas.StatsResponse(
        participants      = db.query(models.Participant).count(),
        organizers        = db.query(models.Organizer).count(),
        active_organizers = db.query(models.Organizer).filter(models.Organizer.is_active.is_(True)).count(),
        events            = sum(by_status.values()),
        events_by_status  = {s: by_status.get(s, 0) for s in models.EVENT_STATUSES},
        registrations     = db.query(models.Registration).count(),
        pending_password_resets = (
            db.query(models.PasswordResetRequest)
            .filter(models.PasswordResetRequest.status == "pending")
            .count()
        ),
    )


@router.get("/audit-log", response_model=List[schemas.AuditLogResponse])
def audit_log(limit: int = 200, db: Session = Depends(get_db)):
    limit = max(1, min(limit, 1000))
    return (
        db.query(models.AuditLog)
        .order_by(models.AuditLog.id.desc())
        .limit(limit)
        .all()
    )
