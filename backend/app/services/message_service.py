"""Sending and paging through the messages of a conversation."""
from typing import List, Optional, Tuple
from uuid import UUID

from fastapi import UploadFile
from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from app.core.config import settings
from app.core.errors import ForbiddenError
from app.models.conversation import ConversationParticipant
from app.models.message import Message, MessageStatus
from app.models.user import User
from app.schemas.message import MessagePage, MessageResponse, SeenEntry
from app.services.conversation_service import (
    block_reason,
    format_user,
    get_conversation_or_404,
    require_participant,
)
from app.services.validation import parse_cursor, parse_limit, parse_uuid, validate_message_body
from app.utils.dates import utcnow
from app.utils.file_upload import FOLDER_MESSAGE, delete_image, upload_image
from app.utils.logger import get_logger, safe_repr

logger = get_logger(__name__)

IMAGE_PREVIEW = "📷 Image"


def format_message(message: Message) -> MessageResponse:
    return MessageResponse(
        id=message.id,
        conversation=message.conversation_id,
        sender=format_user(message.sender),
        content=message.content,
        image=message.image,
        status=message.status,
        seen_by=[SeenEntry(user_id=entry.user_id, seen_at=entry.seen_at) for entry in message.seen_by],
        created_at=message.created_at,
        updated_at=message.updated_at,
    )


def _message_query(db: Session):
    return db.query(Message).options(
        selectinload(Message.sender),
        selectinload(Message.seen_by),
    )


def send_message(db: Session, current_user: User, conversation_id, content: Optional[str] = None,
                 image_file: Optional[UploadFile] = None) -> Tuple[Message, List[UUID]]:
    """
    Store a new message and bump every other participant's unread counter.

    The message row, the conversation's last-message snapshot and the counter
    increments are committed together. Returns the stored message and the ids
    of the participants to notify.
    """
    conversation_uuid = parse_uuid(conversation_id, "conversationId").unwrap()
    content = validate_message_body(content, image_file is not None).unwrap()

    conversation = get_conversation_or_404(db, conversation_uuid)
    require_participant(conversation, current_user.id)

    others = [pid for pid in conversation.participant_ids if pid != current_user.id]
    if not conversation.is_group:
        for other_id in others:
            if block_reason(db, current_user.id, other_id):
                raise ForbiddenError("Cannot send message - blocked", code="BLOCKED")

    upload = upload_image(image_file, FOLDER_MESSAGE) if image_file is not None else None
    image = upload["secure_url"] if upload else None

    try:
        now = utcnow()
        message = Message(
            conversation_id=conversation.id,
            sender_id=current_user.id,
            content=content,
            image=image,
            status=MessageStatus.sent,
            created_at=now,
            updated_at=now,
        )
        db.add(message)
        db.flush()

        conversation.last_message_content = content if content else IMAGE_PREVIEW
        conversation.last_message_sender_id = current_user.id
        conversation.last_message_at = now
        conversation.updated_at = now

        if others:
            db.execute(
                update(ConversationParticipant)
                .where(
                    ConversationParticipant.conversation_id == conversation.id,
                    ConversationParticipant.user_id != current_user.id,
                )
                .values(unread_count=ConversationParticipant.unread_count + 1)
                .execution_options(synchronize_session=False)
            )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        if upload:
            delete_image(upload["public_id"])
        raise

    logger.info(
        "User %s sent message %s to %s: %s",
        current_user.id, message.id, conversation.id, safe_repr(content or image, 60),
    )
    stored = _message_query(db).filter(Message.id == message.id).one()
    return stored, others


def list_messages(db: Session, current_user: User, conversation_id, cursor: Optional[str] = None,
                  limit=None) -> MessagePage:
    """
    Newest-first page of messages.

    ``cursor`` is an exclusive upper bound on message ids; the returned
    ``cursor`` points at the oldest message of the page when more remain.
    """
    conversation = get_conversation_or_404(db, conversation_id)
    require_participant(conversation, current_user.id)

    before = parse_cursor(cursor).unwrap()
    page_size = parse_limit(limit, settings.DEFAULT_MESSAGES_LIMIT, settings.MAX_MESSAGES_LIMIT)

    total = (
        db.query(func.count(Message.id))
        .filter(Message.conversation_id == conversation.id)
        .scalar()
    )

    query = _message_query(db).filter(Message.conversation_id == conversation.id)
    if before is not None:
        query = query.filter(Message.id < before)
    rows = query.order_by(Message.id.desc()).limit(page_size + 1).all()

    has_more = len(rows) > page_size
    rows = rows[:page_size]
    next_cursor = str(rows[-1].id) if has_more and rows else None

    return MessagePage(
        messages=[format_message(message) for message in rows],
        total=total,
        has_more=has_more,
        cursor=next_cursor,
    )
