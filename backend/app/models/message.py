from sqlalchemy import Column, String, DateTime, ForeignKey, Integer, BigInteger, Uuid, Text, UniqueConstraint, Index
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import relationship
from app.db.session import Base
from app.utils.dates import utcnow
from enum import Enum

# Autoincrementing ids double as the pagination cursor; SQLite only
# autoincrements INTEGER primary keys.
MessageId = BigInteger().with_variant(Integer, "sqlite")


class MessageStatus(str, Enum):
    sent = 'sent'
    seen = 'seen'


class Message(Base):
    __tablename__ = "messages"

    id = Column(MessageId, primary_key=True, autoincrement=True)
    conversation_id = Column(Uuid(as_uuid=True), ForeignKey('conversations.id', ondelete="CASCADE"), nullable=False)
    sender_id = Column(Uuid(as_uuid=True), ForeignKey('users.id'), nullable=False)
    content = Column(Text, nullable=True)
    image = Column(String, nullable=True)
    status = Column(SAEnum(MessageStatus, name='message_status'), nullable=False, default=MessageStatus.sent)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_messages_conversation_id_id", "conversation_id", "id"),
    )

    conversation = relationship("Conversation", back_populates="messages")
    sender = relationship("User")
    seen_by = relationship(
        "MessageSeen",
        back_populates="message",
        cascade="all, delete-orphan",
        order_by="[MessageSeen.seen_at, MessageSeen.id]",
    )


class MessageSeen(Base):
    """One entry of a message's ``seenBy`` list."""

    __tablename__ = "message_seen"

    id = Column(MessageId, primary_key=True, autoincrement=True)
    message_id = Column(MessageId, ForeignKey('messages.id', ondelete="CASCADE"), nullable=False)
    user_id = Column(Uuid(as_uuid=True), ForeignKey('users.id', ondelete="CASCADE"), nullable=False)
    seen_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint('message_id', 'user_id', name='unique_message_seen_user'),
    )

    message = relationship("Message", back_populates="seen_by")
