from typing import List, Optional
from uuid import UUID
from datetime import datetime

from app.models.message import MessageStatus
from app.schemas.base import CamelModel
from app.schemas.user import UserSummary


class SeenEntry(CamelModel):
    user_id: UUID
    seen_at: datetime


class MessageResponse(CamelModel):
    id: int
    conversation: UUID
    sender: UserSummary
    content: Optional[str] = None
    image: Optional[str] = None
    status: MessageStatus
    seen_by: List[SeenEntry] = []
    created_at: datetime
    updated_at: Optional[datetime] = None


class MessagePage(CamelModel):
    messages: List[MessageResponse]
    total: int
    has_more: bool
    # Stringified so clients treat it as opaque
    cursor: Optional[str] = None
