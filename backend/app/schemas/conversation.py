from typing import Any, List, Optional
from uuid import UUID
from datetime import datetime

from app.schemas.base import CamelModel
from app.schemas.user import UserSummary


class CreateConversationRequest(CamelModel):
    # Left loosely typed so malformed ids surface as our own validation messages
    participant_id: Optional[Any] = None


class CreateGroupRequest(CamelModel):
    name: Optional[Any] = None
    participant_ids: Optional[Any] = None
    image: Optional[str] = None


class AddMemberRequest(CamelModel):
    user_id: Optional[Any] = None


class LastMessage(CamelModel):
    content: Optional[str] = None
    sender_id: Optional[UUID] = None
    timestamp: Optional[datetime] = None


class ConversationResponse(CamelModel):
    id: UUID
    type: str
    participants: List[UserSummary]
    unread_count: int = 0
    name: Optional[str] = None
    image: Optional[str] = None
    admin: Optional[UserSummary] = None
    last_message: Optional[LastMessage] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool


class ConversationListResponse(CamelModel):
    conversations: List[ConversationResponse]
    pagination: Pagination


class MarkSeenResponse(CamelModel):
    unread_count: int = 0
    marked_count: int
