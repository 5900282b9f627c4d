from app.models.user import User
from app.models.blocked_user import BlockedUser
from app.models.conversation import Conversation, ConversationParticipant, ConversationType
from app.models.message import Message, MessageSeen, MessageStatus

__all__ = [
    "User",
    "BlockedUser",
    "Conversation",
    "ConversationParticipant",
    "ConversationType",
    "Message",
    "MessageSeen",
    "MessageStatus",
]
