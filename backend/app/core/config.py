from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
    DATABASE_URL: str = Field(..., description="Database connection string")
    SECRET_KEY: str = Field(default="your-secret-key-change-this-in-production", description="JWT secret key")
    ALGORITHM: str = Field(default="HS256", description="Algorithm for JWT (e.g., HS256)")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(default=60, description="How long (in minutes) an access token is valid")
    REFRESH_TOKEN_EXPIRE_MINUTES: int = Field(default=43200, description="How long (in minutes) a refresh token is valid (default 30 days)")
    DEBUG: bool = Field(default=False, description="Expose internal error details in error responses")
    LOG_LEVEL: str = Field(default="INFO")

    CORS_ORIGINS: List[str] = Field(default=["http://localhost:3000", "http://localhost:5173"])

    # Image storage
    UPLOADS_DIR: str = Field(default="uploads", description="Directory where uploaded images are written")
    MEDIA_BASE_URL: str = Field(default="http://localhost:8000", description="Public base URL that serves /uploads")
    MAX_IMAGE_SIZE_MB: int = Field(default=5)

    # Real-time
    REALTIME_ENABLED: bool = Field(default=True, description="Push events to connected websockets")
    ONLINE_WINDOW_SECONDS: int = Field(default=300, description="A user seen within this window is reported online")

    # Conversations
    MIN_GROUP_PARTICIPANTS: int = 3
    MAX_GROUP_PARTICIPANTS: int = 100
    MIN_GROUP_NAME_LENGTH: int = 3
    MAX_GROUP_NAME_LENGTH: int = 100
    DEFAULT_CONVERSATIONS_LIMIT: int = 20
    MAX_CONVERSATIONS_LIMIT: int = 100

    # Messages
    MAX_MESSAGE_CONTENT_LENGTH: int = 5000
    DEFAULT_MESSAGES_LIMIT: int = 50
    MAX_MESSAGES_LIMIT: int = 100

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()
