import logging
from typing import Dict, List

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

import config
import database
import models
import schemas
from database import get_db
from routers.teams import get_member_team
from security import CurrentUser, resolve_session, verify_participant

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chat", tags=["chat"])


class ConnectionManager:
    """Open chat sockets, grouped by team."""

    def __init__(self):
        self.active_connections: Dict[int, List[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, team_id: int):
        await websocket.accept()
        self.active_connections.setdefault(team_id, []).append(websocket)

    def disconnect(self, websocket: WebSocket, team_id: int):
        connections = self.active_connections.get(team_id, [])
        if websocket in connections:
            connections.remove(websocket)
        if not connections:
            self.active_connections.pop(team_id, None)

    async def broadcast(self, message: dict, team_id: int):
        for connection in list(self.active_connections.get(team_id, [])):
            try:
                await connection.send_json(message)
            except (RuntimeError, WebSocketDisconnect) as exc:
                logger.warning("Dropping chat socket for team %s: %s", team_id, exc)
                self.disconnect(connection, team_id)


manager = ConnectionManager()


def message_response(msg: models.ChatMessage) -> schemas.ChatMessageResponse:
    return schemas.ChatMessageResponse(
        id          = msg.id,
        team_id     = msg.team_id,
        sender_id   = msg.sender_id,
        sender_name = msg.sender.full_name,
        content     = msg.content,
        created_at  = msg.created_at,
    )


def save_message(db: Session, team_id: int, sender_id: int, content: str) -> models.ChatMessage:
    msg = models.ChatMessage(team_id=team_id, sender_id=sender_id, content=content)
    db.add(msg)
    db.commit()
    db.refresh(msg)
    return msg


@router.get("/{team_id}/messages", response_model=List[schemas.ChatMessageResponse])
def list_messages(
    team_id: int,
    limit: int = 100,
    user: CurrentUser = Depends(verify_participant),
    db: Session = Depends(get_db),
):
    """Most recent messages of a team, oldest first."""
    get_member_team(db, team_id, user.id)
    limit = max(1, min(limit, 500))
    recent = (
        db.query(models.ChatMessage)
        .filter(models.ChatMessage.team_id == team_id)
        .order_by(models.ChatMessage.id.desc())
        .limit(limit)
        .all()
    )
    return [message_response(m) for m in reversed(recent)]


def _post_message(db: Session, team_id: int, user_id: int, content: str) -> schemas.ChatMessageResponse:
    get_member_team(db, team_id, user_id)
    return message_response(save_message(db, team_id, user_id, content))


@router.post("/{team_id}/messages", response_model=schemas.ChatMessageResponse, status_code=201)
async def post_message(
    team_id: int,
    payload: schemas.ChatMessageCreate,
    user: CurrentUser = Depends(verify_participant),
    db: Session = Depends(get_db),
):
    out = await run_in_threadpool(_post_message, db, team_id, user.id, payload.content)
    await manager.broadcast(out.model_dump(mode="json"), team_id)
    return out


# Sockets live for minutes, so they never hold a pooled connection between
# frames: each lookup opens and closes its own session.

def socket_member(session_data: dict, team_id: int):
    """Participant id allowed on this team's socket, or None."""
    db = database.SessionLocal()
    try:
        user = resolve_session(session_data, db)
        team = db.get(models.Team, team_id)
        if user is None or user.role != "participant" or not team or not team.has_member(user.id):
            return None
        return user.id
    finally:
        db.close()


def store_socket_message(team_id: int, sender_id: int, content: str) -> dict:
    db = database.SessionLocal()
    try:
        return message_response(save_message(db, team_id, sender_id, content)).model_dump(mode="json")
    finally:
        db.close()


@router.websocket("/ws/{team_id}")
async def chat_socket(websocket: WebSocket, team_id: int):
    """Team chat: every text frame is stored and relayed to the team."""
    if not config.is_origin_allowed(websocket.headers.get("origin")):
        await websocket.close(code=1008)
        return

    user_id = await run_in_threadpool(socket_member, dict(websocket.session), team_id)
    if user_id is None:
        await websocket.close(code=1008)
        return

    await manager.connect(websocket, team_id)
    try:
        while True:
            text = await websocket.receive_text()
            try:
                payload = schemas.ChatMessageCreate(content=text)
            except ValidationError:
                await websocket.send_json({"error": "Invalid message"})
                continue
            try:
                out = await run_in_threadpool(store_socket_message, team_id, user_id, payload.content)
            except SQLAlchemyError as exc:
                logger.error("Chat message for team %s not saved: %s", team_id, exc)
                await websocket.send_json({"error": "Message could not be saved"})
                continue
            await manager.broadcast(out, team_id)
    except WebSocketDisconnect:
        pass
    finally:
        manager.disconnect(websocket, team_id)
