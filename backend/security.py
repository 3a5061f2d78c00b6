"""Password hashing and session-cookie identity dependencies."""
import secrets

from fastapi import Depends, HTTPException, Request
from passlib.context import CryptContext
from sqlalchemy.orm import Session

import config
import models
from database import get_db

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    return pwd_context.verify(password, hashed)


def generate_password() -> str:
    """Random password handed to an organizer by the admin."""
    return secrets.token_urlsafe(9)


class CurrentUser:
    """Identity resolved from the session cookie."""

    def __init__(self, id, role: str, email: str, name: str, record=None):
        self.id = id
        self.role = role
        self.email = email
        self.name = name
        self.record = record


def login_session(request: Request, user_id, role: str) -> None:
    request.session.clear()
    request.session["user_id"] = user_id
    request.session["role"] = role


def logout_session(request: Request) -> None:
    request.session.clear()


def resolve_session(session: dict, db: Session):
    """Look up the identity stored in a session dict. Returns None when the
    session is empty or the account no longer exists or was disabled."""
    role = session.get("role")
    user_id = session.get("user_id")
    if role == "admin":
        return CurrentUser(None, "admin", config.ADMIN_EMAIL, "Admin")
    if role == "participant" and user_id is not None:
        p = db.get(models.Participant, user_id)
        if p:
            return CurrentUser(p.id, role, p.email, p.full_name, p)
    if role == "organizer" and user_id is not None:
        o = db.get(models.Organizer, user_id)
        if o and o.is_active:
            return CurrentUser(o.id, role, o.email, o.name, o)
    return None


# ---------------------------------------------------------------------------
# Auth dependencies
# ---------------------------------------------------------------------------

def get_current_user(request: Request, db: Session = Depends(get_db)) -> CurrentUser:
    user = resolve_session(request.session, db)
    if user is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user


def get_optional_user(request: Request, db: Session = Depends(get_db)):
    """Like get_current_user, but anonymous callers get None instead of 401."""
    return resolve_session(request.session, db)


def verify_participant(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if user.role != "participant":
        raise HTTPException(status_code=403, detail="Participant access required")
    return user


def verify_organizer(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if user.role != "organizer":
        raise HTTPException(status_code=403, detail="Organizer access required")
    return user


def verify_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if user.role != "admin":
        raise HTTPException(status_code=403, detail="Admin access required")
    return user
