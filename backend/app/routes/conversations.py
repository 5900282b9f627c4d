from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, Query, UploadFile, status
from sqlalchemy.orm import Session

from app.core.auth import get_current_user
from app.core.config import settings
from app.core.notifier import MESSAGE_SEEN, Notifier, get_notifier, notify_users
from app.core.responses import success_response
from app.db.session import get_db
from app.models.user import User
from app.schemas.conversation import AddMemberRequest, CreateConversationRequest, CreateGroupRequest, MarkSeenResponse
from app.services import conversation_service
from app.services.validation import parse_limit, parse_page
from app.utils.dates import utcnow

router = APIRouter()


@router.post("")
async def create_conversation(
    payload: CreateConversationRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Create a one-to-one conversation, or return the existing one for the pair"""
    conversation, created = conversation_service.create_individual(db, current_user, payload.participant_id)
    data = conversation_service.format_conversation(conversation, current_user.id)
    if not created:
        return success_response(data, "Conversation already exists")
    return success_response(data, "Conversation created successfully", status.HTTP_201_CREATED)


@router.post("/group")
async def create_group_conversation(
    payload: CreateGroupRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Create a group with the caller as admin"""
    conversation = conversation_service.create_group(
        db, current_user, payload.name, payload.participant_ids, payload.image
    )
    return success_response(
        conversation_service.format_conversation(conversation, current_user.id),
        "Group conversation created successfully",
        status.HTTP_201_CREATED,
    )


@router.get("")
async def get_conversations(
    page: Optional[str] = Query(None),
    limit: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Get the caller's conversations, most recent activity first"""
    result = conversation_service.list_conversations(
        db,
        current_user,
        parse_page(page),
        parse_limit(limit, settings.DEFAULT_CONVERSATIONS_LIMIT, settings.MAX_CONVERSATIONS_LIMIT),
    )
    return success_response(result)


@router.get("/unread/count")
async def get_unread_count(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Number of conversations with unread messages (not the number of messages)"""
    count = conversation_service.count_unread_conversations(db, current_user)
    return success_response({"unreadCount": count})


@router.get("/{conversation_id}")
async def get_conversation(
    conversation_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    conversation = conversation_service.get_conversation(db, current_user, conversation_id)
    return success_response(conversation_service.format_conversation(conversation, current_user.id))


@router.post("/{conversation_id}/members")
async def add_group_member(
    conversation_id: str,
    payload: AddMemberRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    conversation = conversation_service.add_member(db, current_user, conversation_id, payload.user_id)
    return success_response(
        conversation_service.format_conversation(conversation, current_user.id),
        "Member added to group successfully",
    )


@router.delete("/{conversation_id}/members/{user_id}")
async def remove_group_member(
    conversation_id: str,
    user_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    conversation = conversation_service.remove_member(db, current_user, conversation_id, user_id)
    return success_response(
        conversation_service.format_conversation(conversation, current_user.id),
        "Member removed from group successfully",
    )


@router.post("/{conversation_id}/leave")
async def leave_group(
    conversation_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Leave a group; the admin role passes on if the admin leaves"""
    conversation = conversation_service.leave_group(db, current_user, conversation_id)
    return success_response(
        {"conversationId": str(conversation.id), "newAdmin": str(conversation.admin_id)},
        "You have left the group successfully",
    )


@router.patch("/{conversation_id}")
async def update_group(
    conversation_id: str,
    name: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Rename a group and/or replace its image (multipart form)"""
    conversation = conversation_service.update_group(db, current_user, conversation_id, name, image)
    return success_response(
        conversation_service.format_conversation(conversation, current_user.id),
        "Group updated successfully",
    )


@router.put("/{conversation_id}/seen")
async def mark_conversation_seen(
    conversation_id: str,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    notifier: Notifier = Depends(get_notifier),
):
    """Reset the caller's unread counter and mark messages from others as seen"""
    seen_id, marked, others = conversation_service.mark_seen(db, current_user, conversation_id)
    background_tasks.add_task(
        notify_users,
        notifier,
        others,
        MESSAGE_SEEN,
        {
            "conversationId": str(seen_id),
            "userId": str(current_user.id),
            "timestamp": utcnow().isoformat(),
        },
    )
    return success_response(
        MarkSeenResponse(unread_count=0, marked_count=marked),
        "Conversation marked as seen",
    )
