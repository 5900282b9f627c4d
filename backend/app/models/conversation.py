from sqlalchemy import Column, String, DateTime, Text, Integer, ForeignKey, Uuid, Enum as SAEnum, CheckConstraint
from sqlalchemy.orm import relationship
from app.db.session import Base
from app.utils.dates import utcnow
from enum import Enum
import uuid


class ConversationType(str, Enum):
    individual = "individual"
    group = "group"


class Conversation(Base):
    __tablename__ = "conversations"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    type = Column(SAEnum(ConversationType, name="conversation_type"), nullable=False)
    # "<smaller id>:<larger id>" for individual conversations, NULL for groups
    pair_key = Column(String(73), unique=True, nullable=True)
    name = Column(String(100), nullable=True)
    image = Column(String, nullable=True)
    admin_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=True)

    # Denormalized snapshot of the latest message for list views
    last_message_content = Column(Text, nullable=True)
    last_message_sender_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=True)
    last_message_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, index=True)

    participant_links = relationship(
        "ConversationParticipant",
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="[ConversationParticipant.joined_at, ConversationParticipant.user_id]",
    )
    messages = relationship(
        "Message",
        back_populates="conversation",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    admin = relationship("User", foreign_keys=[admin_id])

    @property
    def is_group(self) -> bool:
        return self.type == ConversationType.group

    @property
    def participant_ids(self):
        """Participant ids in canonical order."""
        return [link.user_id for link in self.participant_links]

    @property
    def unread_counts(self):
        """Mapping of participant id to that participant's unread counter."""
        return {link.user_id: link.unread_count for link in self.participant_links}

    def has_participant(self, user_id) -> bool:
        return any(link.user_id == user_id for link in self.participant_links)

    def __repr__(self):
        return f"<Conversation id={self.id} type={self.type}>"


class ConversationParticipant(Base):
    """Membership row; also carries the member's unread counter."""

    __tablename__ = "conversation_participants"

    conversation_id = Column(Uuid(as_uuid=True), ForeignKey("conversations.id", ondelete="CASCADE"), primary_key=True)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True, index=True)
    unread_count = Column(Integer, nullable=False, default=0)
    joined_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("unread_count >= 0", name="unread_count_non_negative"),
    )

    conversation = relationship("Conversation", back_populates="participant_links")
    user = relationship("User")
