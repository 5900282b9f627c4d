from pydantic import BaseModel, Field, field_validator, EmailStr
from typing import Optional
from datetime import datetime
from uuid import UUID
import re

from app.schemas.base import CamelModel

class UserCreate(BaseModel):
    email: EmailStr
    username: str = Field(..., min_length=3, max_length=30)
    password: str = Field(..., min_length=8)
    display_name: Optional[str] = Field(default=None, max_length=100)

    @field_validator('username')
    @classmethod
    def validate_username(cls, v):
        if not re.match(r'^[a-zA-Z0-9_]+$', v):
            raise ValueError('Username can only contain letters, numbers, and underscores')
        if v.startswith('_') or v.endswith('_'):
            raise ValueError('Username cannot start or end with underscore')
        return v.lower()

    @field_validator('password')
    @classmethod
    def validate_password(cls, v):
        if not re.search(r'[A-Za-z]', v):
            raise ValueError('Password must contain at least one letter')
        if not re.search(r'\d', v):
            raise ValueError('Password must contain at least one number')
        return v

class UserLogin(BaseModel):
    email: EmailStr
    password: str

class RefreshRequest(CamelModel):
    refresh_token: str

class UserSummary(CamelModel):
    """Public user fields embedded in conversations and messages."""
    id: UUID
    username: str
    full_name: Optional[str] = None
    profile_picture: Optional[str] = None
    last_seen: Optional[datetime] = None
    is_online: bool = False

class UserResponse(CamelModel):
    id: UUID
    email: Optional[str] = None
    username: str
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    last_seen: Optional[datetime] = None
    created_at: Optional[datetime] = None

class TokenResponse(CamelModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    access_token_expires: int
    refresh_token_expires: int
