from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, Query, UploadFile, status
from sqlalchemy.orm import Session

from app.core.auth import get_current_user
from app.core.notifier import MESSAGE_NEW, Notifier, get_notifier, notify_users
from app.core.responses import success_response
from app.db.session import get_db
from app.models.message import Message
from app.models.user import User
from app.services import message_service

router = APIRouter()


def new_message_event(message: Message, sender: User) -> dict:
    """Payload of the ``message:new`` event pushed to the other participants"""
    return {
        "conversationId": str(message.conversation_id),
        "messageId": str(message.id),
        "content": message.content,
        "image": message.image,
        "senderId": str(sender.id),
        "senderName": sender.display_name or sender.username,
        "timestamp": message.created_at.isoformat() if message.created_at else None,
    }


@router.get("/{conversation_id}/messages")
async def get_messages(
    conversation_id: str,
    cursor: Optional[str] = Query(None),
    limit: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Get a page of messages, newest first.

    Pass the returned ``cursor`` back to fetch the next (older) page.
    """
    page = message_service.list_messages(db, current_user, conversation_id, cursor, limit)
    return success_response(page)


@router.post("/{conversation_id}/messages")
async def send_message(
    conversation_id: str,
    background_tasks: BackgroundTasks,
    content: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    notifier: Notifier = Depends(get_notifier),
):
    """Send a text and/or image message (multipart form)"""
    message, recipients = message_service.send_message(db, current_user, conversation_id, content, image)
    background_tasks.add_task(
        notify_users, notifier, recipients, MESSAGE_NEW, new_message_event(message, current_user)
    )
    return success_response(
        message_service.format_message(message),
        "Message sent successfully",
        status.HTTP_201_CREATED,
    )
