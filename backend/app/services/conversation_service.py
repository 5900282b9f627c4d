"""
Conversation lifecycle: creation, membership, group details and read state.

Functions here work on a SQLAlchemy session and raise ``app.core.errors``
exceptions. Real-time delivery is left to the caller, which receives the ids
that should be told about a change.
"""
import math
from datetime import timedelta
from typing import List, Optional, Tuple
from uuid import UUID

from fastapi import UploadFile
from sqlalchemy import and_, exists, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from app.core.config import settings
from app.core.errors import AppError, ForbiddenError, NotFoundError, ValidationError
from app.core.websocket import manager
from app.models.blocked_user import BlockedUser
from app.models.conversation import Conversation, ConversationParticipant, ConversationType
from app.models.message import Message, MessageSeen, MessageStatus
from app.models.user import User
from app.schemas.conversation import ConversationListResponse, ConversationResponse, LastMessage, Pagination
from app.schemas.user import UserSummary
from app.services.validation import (
    ConversationShape,
    Result,
    check_conversation_invariants,
    parse_uuid,
    validate_group_name,
    validate_group_participant_ids,
    validate_image_url,
    validate_participant_count,
)
from app.utils.dates import utcnow
from app.utils.file_upload import FOLDER_GROUP, delete_image, upload_image
from app.utils.logger import get_logger

logger = get_logger(__name__)


# --- formatting -------------------------------------------------------------

def format_user(user: User) -> UserSummary:
    online = manager.is_online(str(user.id))
    if not online and user.last_seen is not None:
        online = utcnow() - user.last_seen < timedelta(seconds=settings.ONLINE_WINDOW_SECONDS)
    return UserSummary(
        id=user.id,
        username=user.username,
        full_name=user.display_name,
        profile_picture=user.avatar_url,
        last_seen=user.last_seen,
        is_online=online,
    )


def format_conversation(conversation: Conversation, current_user_id: UUID) -> ConversationResponse:
    unread = conversation.unread_counts.get(current_user_id, 0)
    response = ConversationResponse(
        id=conversation.id,
        type=conversation.type.value,
        participants=[format_user(link.user) for link in conversation.participant_links],
        unread_count=unread,
        created_at=conversation.created_at,
        updated_at=conversation.updated_at,
    )
    if conversation.is_group:
        response.name = conversation.name
        response.image = conversation.image
        response.admin = format_user(conversation.admin) if conversation.admin else None
    if conversation.last_message_at is not None:
        response.last_message = LastMessage(
            content=conversation.last_message_content,
            sender_id=conversation.last_message_sender_id,
            timestamp=conversation.last_message_at,
        )
    return response


# --- lookups and access checks ---------------------------------------------

def _conversation_query(db: Session):
    return db.query(Conversation).options(
        selectinload(Conversation.participant_links).selectinload(ConversationParticipant.user),
        selectinload(Conversation.admin),
    )


def get_conversation_or_404(db: Session, conversation_id) -> Conversation:
    conversation_uuid = parse_uuid(conversation_id, "conversationId").unwrap()
    conversation = _conversation_query(db).filter(Conversation.id == conversation_uuid).first()
    if conversation is None:
        raise NotFoundError("Conversation")
    return conversation


def require_participant(conversation: Conversation, user_id: UUID):
    if not conversation.has_participant(user_id):
        raise ForbiddenError("You are not a participant in this conversation", code="NOT_PARTICIPANT")


def require_group(conversation: Conversation, message: str):
    if not conversation.is_group:
        raise ValidationError(message)


def require_admin(conversation: Conversation, user_id: UUID, message: str):
    if conversation.admin_id != user_id:
        raise ForbiddenError(message, code="NOT_ADMIN")


def block_reason(db: Session, sender_id: UUID, recipient_id: UUID) -> Optional[str]:
    """Why ``sender_id`` may not message ``recipient_id`` one-to-one, if blocked either way."""
    entries = db.query(BlockedUser).filter(
        or_(
            and_(BlockedUser.blocker_id == sender_id, BlockedUser.blocked_user_id == recipient_id),
            and_(BlockedUser.blocker_id == recipient_id, BlockedUser.blocked_user_id == sender_id),
        )
    ).all()
    for entry in entries:
        if entry.blocker_id == sender_id:
            return "You have blocked this user"
    if entries:
        return "User has blocked you"
    return None


def _ensure_valid(shape: ConversationShape):
    result: Result = check_conversation_invariants(shape)
    result.unwrap()


def _touch(conversation: Conversation):
    conversation.updated_at = utcnow()


# --- creation ---------------------------------------------------------------

def pair_key(first: UUID, second: UUID) -> str:
    low, high = sorted((str(first), str(second)))
    return f"{low}:{high}"


def create_individual(db: Session, current_user: User, participant_id) -> Tuple[Conversation, bool]:
    """
    Return the one-to-one conversation between the caller and another user,
    creating it on first use.

    Returns ``(conversation, created)``.
    """
    if participant_id is None or participant_id == "":
        raise ValidationError("participantId is required", {"participantId": "required"})
    other_id = parse_uuid(participant_id, "participantId").unwrap()
    if other_id == current_user.id:
        raise ValidationError("Cannot create conversation with yourself")

    other = db.query(User).filter(User.id == other_id).first()
    if other is None:
        raise NotFoundError("User")
    if block_reason(db, current_user.id, other_id):
        raise ForbiddenError("Cannot create conversation - blocked", code="BLOCKED")

    key = pair_key(current_user.id, other_id)
    existing = _conversation_query(db).filter(Conversation.pair_key == key).first()
    if existing is not None:
        return existing, False

    participants = sorted([current_user.id, other_id], key=str)
    _ensure_valid(ConversationShape(is_group=False, participant_ids=participants))

    now = utcnow()
    conversation = Conversation(type=ConversationType.individual, pair_key=key)
    conversation.participant_links = [
        ConversationParticipant(user_id=user_id, unread_count=0, joined_at=now) for user_id in participants
    ]
    db.add(conversation)
    try:
        db.commit()
    except IntegrityError:
        # Another request created the pair first
        db.rollback()
        existing = _conversation_query(db).filter(Conversation.pair_key == key).first()
        if existing is None:
            raise
        return existing, False

    logger.info("Created individual conversation %s for %s", conversation.id, key)
    return get_conversation_or_404(db, conversation.id), True


def create_group(db: Session, current_user: User, name, participant_ids, image: Optional[str] = None) -> Conversation:
    name = validate_group_name(name).unwrap()
    others = validate_group_participant_ids(current_user.id, participant_ids).unwrap()
    found = db.query(func.count(User.id)).filter(User.id.in_(others)).scalar()
    if found != len(others):
        raise NotFoundError("Participant", "One or more participants not found")
    image = validate_image_url(image).unwrap()

    participants = sorted(set([current_user.id, *others]), key=str)
    _ensure_valid(ConversationShape(
        is_group=True, participant_ids=participants, admin_id=current_user.id, name=name, image=image,
    ))

    now = utcnow()
    conversation = Conversation(
        type=ConversationType.group,
        name=name,
        image=image,
        admin_id=current_user.id,
    )
    conversation.participant_links = [
        ConversationParticipant(user_id=user_id, unread_count=0, joined_at=now) for user_id in participants
    ]
    db.add(conversation)
    db.commit()
    logger.info("User %s created group %s with %d participants", current_user.id, conversation.id, len(participants))
    return get_conversation_or_404(db, conversation.id)


# --- reading ----------------------------------------------------------------

def get_conversation(db: Session, current_user: User, conversation_id) -> Conversation:
    conversation = get_conversation_or_404(db, conversation_id)
    require_participant(conversation, current_user.id)
    return conversation


def list_conversations(db: Session, current_user: User, page: int, limit: int) -> ConversationListResponse:
    """Caller's conversations, most recently active first."""
    membership = (
        select(ConversationParticipant.conversation_id)
        .where(ConversationParticipant.user_id == current_user.id)
    )
    base = db.query(Conversation).filter(Conversation.id.in_(membership))
    total = base.count()
    conversations = (
        _conversation_query(db)
        .filter(Conversation.id.in_(membership))
        .order_by(Conversation.updated_at.desc(), Conversation.id)
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    total_pages = math.ceil(total / limit) if total else 0
    return ConversationListResponse(
        conversations=[format_conversation(c, current_user.id) for c in conversations],
        pagination=Pagination(
            page=page,
            limit=limit,
            total=total,
            total_pages=total_pages,
            has_next_page=page < total_pages,
            has_prev_page=page > 1,
        ),
    )


def count_unread_conversations(db: Session, current_user: User) -> int:
    """Number of conversations with at least one unread message for the caller."""
    return (
        db.query(func.count(ConversationParticipant.conversation_id))
        .filter(
            ConversationParticipant.user_id == current_user.id,
            ConversationParticipant.unread_count > 0,
        )
        .scalar()
    )


# --- group membership -------------------------------------------------------

def _parse_member_id(user_id) -> UUID:
    if user_id is None or user_id == "":
        raise ValidationError("userId is required", {"userId": "required"})
    return parse_uuid(user_id, "userId").unwrap()


def add_member(db: Session, current_user: User, conversation_id, user_id) -> Conversation:
    conversation_uuid = parse_uuid(conversation_id, "conversationId").unwrap()
    member_id = _parse_member_id(user_id)
    conversation = get_conversation_or_404(db, conversation_uuid)
    require_group(conversation, "Can only add members to group conversations")
    require_admin(conversation, current_user.id, "Only group admin can add members")

    if db.query(User).filter(User.id == member_id).first() is None:
        raise NotFoundError("User")
    if conversation.has_participant(member_id):
        raise ValidationError("User is already a member of this group")
    if len(conversation.participant_links) >= settings.MAX_GROUP_PARTICIPANTS:
        raise ValidationError(
            f"Group has reached maximum capacity of {settings.MAX_GROUP_PARTICIPANTS} members"
        )

    _ensure_valid(ConversationShape(
        is_group=True,
        participant_ids=[*conversation.participant_ids, member_id],
        admin_id=conversation.admin_id,
        name=conversation.name,
        image=conversation.image,
    ))
    conversation.participant_links.append(
        ConversationParticipant(user_id=member_id, unread_count=0, joined_at=utcnow())
    )
    _touch(conversation)
    db.commit()
    logger.info("User %s added %s to group %s", current_user.id, member_id, conversation.id)
    db.expire_all()
    return get_conversation_or_404(db, conversation.id)


def _remove_link(conversation: Conversation, user_id: UUID):
    for link in list(conversation.participant_links):
        if link.user_id == user_id:
            conversation.participant_links.remove(link)


def remove_member(db: Session, current_user: User, conversation_id, user_id) -> Conversation:
    conversation_uuid = parse_uuid(conversation_id, "conversationId").unwrap()
    member_id = _parse_member_id(user_id)
    conversation = get_conversation_or_404(db, conversation_uuid)
    require_group(conversation, "Can only remove members from group conversations")
    require_admin(conversation, current_user.id, "Only group admin can remove members")

    if not conversation.has_participant(member_id):
        raise ValidationError("User is not a member of this group")
    if member_id == conversation.admin_id:
        raise ValidationError("Group admin cannot remove themselves, leave the group instead")

    remaining = [pid for pid in conversation.participant_ids if pid != member_id]
    validate_participant_count(len(remaining)).unwrap()

    _remove_link(conversation, member_id)
    _touch(conversation)
    db.commit()
    logger.info("User %s removed %s from group %s", current_user.id, member_id, conversation.id)
    db.expire_all()
    return get_conversation_or_404(db, conversation.id)


def leave_group(db: Session, current_user: User, conversation_id) -> Conversation:
    """
    Remove the caller from a group.

    When the admin leaves, the role passes to the first remaining participant
    in canonical order.
    """
    conversation = get_conversation_or_404(db, conversation_id)
    require_group(conversation, "Can only leave group conversations")
    if not conversation.has_participant(current_user.id):
        raise ForbiddenError("You are not a member of this group", code="NOT_PARTICIPANT")

    remaining = [pid for pid in conversation.participant_ids if pid != current_user.id]
    if len(remaining) < settings.MIN_GROUP_PARTICIPANTS:
        raise ValidationError(
            f"Cannot leave: group must have at least {settings.MIN_GROUP_PARTICIPANTS} participants"
        )

    new_admin_id = conversation.admin_id
    if conversation.admin_id == current_user.id:
        new_admin_id = remaining[0]

    _ensure_valid(ConversationShape(
        is_group=True,
        participant_ids=remaining,
        admin_id=new_admin_id,
        name=conversation.name,
        image=conversation.image,
    ))

    if new_admin_id != conversation.admin_id:
        logger.info("Admin of group %s passes from %s to %s", conversation.id, current_user.id, new_admin_id)
        conversation.admin_id = new_admin_id
    _remove_link(conversation, current_user.id)
    _touch(conversation)
    db.commit()
    db.expire_all()
    return get_conversation_or_404(db, conversation.id)


def update_group(db: Session, current_user: User, conversation_id, name: Optional[str] = None,
                 image_file: Optional[UploadFile] = None) -> Conversation:
    conversation_uuid = parse_uuid(conversation_id, "conversationId").unwrap()
    if not name and image_file is None:
        raise ValidationError("Provide name or image to update")
    if name:
        name = validate_group_name(name).unwrap()

    conversation = get_conversation_or_404(db, conversation_uuid)
    require_group(conversation, "Can only update group conversations")
    require_admin(conversation, current_user.id, "Only group admin can update group details")

    upload = upload_image(image_file, FOLDER_GROUP) if image_file is not None else None
    image = upload["secure_url"] if upload else conversation.image

    new_name = name or conversation.name
    try:
        _ensure_valid(ConversationShape(
            is_group=True,
            participant_ids=conversation.participant_ids,
            admin_id=conversation.admin_id,
            name=new_name,
            image=image,
        ))
        conversation.name = new_name
        conversation.image = image
        _touch(conversation)
        db.commit()
    except (AppError, SQLAlchemyError):
        db.rollback()
        if upload:
            delete_image(upload["public_id"])
        raise
    db.expire_all()
    return get_conversation_or_404(db, conversation.id)


# --- read state -------------------------------------------------------------

def mark_seen(db: Session, current_user: User, conversation_id) -> Tuple[UUID, int, List[UUID]]:
    """
    Reset the caller's unread counter and add them to ``seenBy`` of every
    message from others they have not seen yet.

    Returns ``(conversation_id, marked_count, other_participant_ids)`` where the
    id is the stored one, whatever casing the caller used. Calling it again
    marks nothing new.
    """
    conversation = get_conversation_or_404(db, conversation_id)
    require_participant(conversation, current_user.id)

    db.execute(
        update(ConversationParticipant)
        .where(
            ConversationParticipant.conversation_id == conversation.id,
            ConversationParticipant.user_id == current_user.id,
        )
        .values(unread_count=0)
    )

    already_seen = exists().where(
        MessageSeen.message_id == Message.id,
        MessageSeen.user_id == current_user.id,
    )
    unseen = (
        db.query(Message)
        .filter(
            Message.conversation_id == conversation.id,
            Message.sender_id != current_user.id,
            ~already_seen,
        )
        .order_by(Message.id)
        .all()
    )

    now = utcnow()
    for message in unseen:
        db.add(MessageSeen(message_id=message.id, user_id=current_user.id, seen_at=now))
        message.status = MessageStatus.seen
    db.commit()

    if unseen:
        logger.info("User %s marked %d messages seen in %s", current_user.id, len(unseen), conversation.id)
    others = [pid for pid in conversation.participant_ids if pid != current_user.id]
    return conversation.id, len(unseen), others
