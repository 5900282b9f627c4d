from sqlalchemy import Column, DateTime, ForeignKey, UniqueConstraint, Uuid
from app.db.session import Base
from app.utils.dates import utcnow
import uuid

class BlockedUser(Base):
    """A one-directional block: ``blocker_id`` has blocked ``blocked_user_id``."""

    __tablename__ = "blocked_users"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    blocker_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    blocked_user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, default=utcnow)

    __table_args__ = (
        UniqueConstraint('blocker_id', 'blocked_user_id', name='unique_blocker_blocked'),
    )

    def __repr__(self):
        return f"<BlockedUser blocker_id={self.blocker_id} blocked_user_id={self.blocked_user_id}>"
