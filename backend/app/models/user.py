from sqlalchemy import Column, String, DateTime, Uuid
from app.db.session import Base
from app.utils.dates import utcnow
import uuid

class User(Base):
    __tablename__ = "users"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String, unique=True, nullable=True)
    username = Column(String, unique=True, nullable=False)
    password_hash = Column(String, nullable=True)
    display_name = Column(String, nullable=True)
    avatar_url = Column(String, nullable=True)
    last_seen = Column(DateTime, default=utcnow)
    created_at = Column(DateTime, default=utcnow)

    def __repr__(self):
        return f"<User id={self.id} username={self.username}>"
