import json
from typing import Optional

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect
from sqlalchemy import update

from app.core.auth import get_user_from_token
from app.core.errors import AppError
from app.core.notifier import TYPING_START, TYPING_STOP, WebSocketNotifier, notify_users
from app.core.websocket import manager
from app.db.session import SessionLocal
from app.models.conversation import Conversation
from app.models.user import User
from app.services.validation import parse_uuid
from app.utils.dates import utcnow
from app.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()

# Application-defined close code for a missing or rejected token
WS_CLOSE_UNAUTHORIZED = 4401


def _authenticate(token: Optional[str]) -> Optional[User]:
    if not token:
        return None
    db = SessionLocal()
    try:
        return get_user_from_token(db, token)
    except AppError as exc:
        logger.info("WebSocket rejected: %s", exc.message)
        return None
    finally:
        db.close()


def _touch_last_seen(user_id):
    db = SessionLocal()
    try:
        db.execute(update(User).where(User.id == user_id).values(last_seen=utcnow()))
        db.commit()
    finally:
        db.close()


def _typing_recipients(user_id, conversation_id) -> list:
    """Other participants of the conversation, or nothing if the sender is not one"""
    parsed = parse_uuid(conversation_id, "conversationId")
    if not parsed.ok:
        return []
    db = SessionLocal()
    try:
        conversation = db.query(Conversation).filter(Conversation.id == parsed.value).first()
        if conversation is None or not conversation.has_participant(user_id):
            return []
        return [pid for pid in conversation.participant_ids if pid != user_id]
    finally:
        db.close()


async def handle_typing(user: User, event: str, data: dict):
    conversation_id = data.get("conversationId") or data.get("conversation_id")
    if not conversation_id:
        return
    if event == TYPING_START and not manager.should_relay_typing(str(user.id), str(conversation_id)):
        return
    recipients = _typing_recipients(user.id, conversation_id)
    await notify_users(
        WebSocketNotifier(manager),
        recipients,
        event,
        {"conversationId": str(conversation_id), "userId": str(user.id)},
    )


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, token: Optional[str] = Query(None)):
    """WebSocket endpoint for real-time events; authenticate with ``?token=<access token>``"""
    user = _authenticate(token)
    if user is None:
        await websocket.close(code=WS_CLOSE_UNAUTHORIZED)
        return

    user_id = str(user.id)
    await manager.connect(websocket, user_id)
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                frame = json.loads(raw)
            except json.JSONDecodeError:
                await websocket.send_text(json.dumps({"type": "error", "data": {"message": "Invalid JSON"}}))
                continue
            if not isinstance(frame, dict):
                continue

            event = frame.get("type")
            data = frame.get("data") if isinstance(frame.get("data"), dict) else frame

            if event == "ping":
                await websocket.send_text(json.dumps({"type": "pong", "data": {}}))
            elif event in (TYPING_START, TYPING_STOP):
                await handle_typing(user, event, data)
            else:
                logger.debug("Ignoring websocket frame %r from %s", event, user_id)
    except WebSocketDisconnect:
        pass
    finally:
        await manager.disconnect(websocket, user_id)
        _touch_last_seen(user.id)
