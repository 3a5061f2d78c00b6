import logging
import secrets
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

import models
import schemas
from database import get_db
from security import CurrentUser, verify_participant

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/teams", tags=["teams"])


def team_response(team: models.Team) -> schemas.TeamResponse:
    return schemas.TeamResponse(
        id          = team.id,
        name        = team.name,
        event_id    = team.event_id,
        leader_id   = team.leader_id,
        invite_code = team.invite_code,
        max_size    = team.max_size,
        members     = [
            schemas.TeamMemberResponse(
                participant_id = m.participant_id,
                name           = m.participant.full_name,
                email          = m.participant.email,
                joined_at      = m.joined_at,
            )
            for m in team.members
        ],
    )


def get_member_team(db: Session, team_id: int, participant_id: int) -> models.Team:
    """Team lookup restricted to its members (404 / 403)."""
    team = db.get(models.Team, team_id)
    if not team:
        raise HTTPException(status_code=404, detail="Team not found.")
    if not team.has_member(participant_id):
        raise HTTPException(status_code=403, detail="Not a member of this team")
    return team


def _in_team_for_event(db: Session, event_id: int, participant_id: int) -> bool:
    return (
        db.query(models.TeamMember.id)
        .join(models.Team)
        .filter(
            models.Team.event_id == event_id,
            models.TeamMember.participant_id == participant_id,
        )
        .first()
    ) is not None


def _new_invite_code(db: Session) -> str:
    while True:
        code = secrets.token_hex(4).upper()
        if not db.query(models.Team.id).filter(models.Team.invite_code == code).first():
            return code


@router.post("", response_model=schemas.TeamResponse, status_code=201)
def create_team(
    payload: schemas.TeamCreate,
    user: CurrentUser = Depends(verify_participant),
    db: Session = Depends(get_db),
):
    event = db.get(models.Event, payload.event_id)
    if not event or event.status == "draft":
        raise HTTPException(status_code=404, detail="Event not found.")
    if event.status == "completed":
        raise HTTPException(status_code=400, detail="Event has already completed")
    if _in_team_for_event(db, event.id, user.id):
        raise HTTPException(status_code=409, detail="Already in a team for this event")

    team = models.Team(
        name        = payload.name,
        event_id    = event.id,
        leader_id   = user.id,
        invite_code = _new_invite_code(db),
        max_size    = payload.max_size,
    )
    team.members.append(models.TeamMember(participant_id=user.id))
    db.add(team)
    db.commit()
    db.refresh(team)
    logger.info("Team %s created for event %s by %s", team.id, event.id, user.id)
    return team_response(team)


@router.post("/join/{invite_code}", response_model=schemas.TeamResponse)
def join_team(
    invite_code: str,
    user: CurrentUser = Depends(verify_participant),
    db: Session = Depends(get_db),
):
    team = (
        db.query(models.Team)
        .filter(models.Team.invite_code == invite_code.strip().upper())
        .first()
    )
    if not team:
        raise HTTPException(status_code=404, detail="Invalid invite code")
    if _in_team_for_event(db, team.event_id, user.id):
        raise HTTPException(status_code=409, detail="Already in a team for this event")
    if len(team.members) >= team.max_size:
        raise HTTPException(status_code=409, detail="Team is full")

    team.members.append(models.TeamMember(participant_id=user.id))
    db.commit()
    db.refresh(team)
    return team_response(team)


@router.get("/mine", response_model=List[schemas.TeamResponse])
def my_teams(user: CurrentUser = Depends(verify_participant), db: Session = Depends(get_db)):
    teams = (
        db.query(models.Team)
        .join(models.TeamMember)
        .filter(models.TeamMember.participant_id == user.id)
        .order_by(models.Team.id)
        .all()
    )
    return [team_response(t) for t in teams]


@router.get("/{team_id}", response_model=schemas.TeamResponse)
def get_team(
    team_id: int,
    user: CurrentUser = Depends(verify_participant),
    db: Session = Depends(get_db),
):
    return team_response(get_member_team(db, team_id, user.id))
