from fastapi import APIRouter, Depends, status
from sqlalchemy import update
from sqlalchemy.orm import Session

from app.core.auth import (
    REFRESH_TOKEN_TYPE,
    authenticate_user,
    create_access_token,
    create_refresh_token,
    decode_token,
    get_current_user,
    get_password_hash,
)
from app.core.config import settings
from app.core.errors import ConflictError, UnauthorizedError
from app.core.responses import success_response
from app.db.session import get_db
from app.models.user import User
from app.schemas.user import RefreshRequest, TokenResponse, UserCreate, UserLogin, UserResponse
from app.utils.dates import utcnow
from app.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()


def issue_tokens(user_id) -> TokenResponse:
    return TokenResponse(
        access_token=create_access_token(data={"sub": str(user_id)}),
        refresh_token=create_refresh_token(data={"sub": str(user_id)}),
        access_token_expires=settings.ACCESS_TOKEN_EXPIRE_MINUTES,
        refresh_token_expires=settings.REFRESH_TOKEN_EXPIRE_MINUTES,
    )


@router.post("/register")
async def register(credentials: UserCreate, db: Session = Depends(get_db)):
    """Register a new user and return access token."""
    if db.query(User).filter(User.email == credentials.email).first():
        raise ConflictError("Email already registered", code="EMAIL_TAKEN")
    if db.query(User).filter(User.username == credentials.username).first():
        raise ConflictError("Username already taken", code="USERNAME_TAKEN")

    db_user = User(
        email=credentials.email,
        username=credentials.username,
        password_hash=get_password_hash(credentials.password),
        display_name=credentials.display_name,
    )
    db.add(db_user)
    db.commit()
    db.refresh(db_user)
    logger.info("Registered user %s (%s)", db_user.id, db_user.username)

    return success_response(
        {"user": UserResponse.model_validate(db_user), "tokens": issue_tokens(db_user.id)},
        "User registered successfully",
        status.HTTP_201_CREATED,
    )


@router.post("/login")
async def login(credentials: UserLogin, db: Session = Depends(get_db)):
    """Login user and return access token."""
    user = authenticate_user(db, credentials.email, credentials.password)
    if not user:
        raise UnauthorizedError("Incorrect email or password", code="INVALID_CREDENTIALS")

    db.execute(update(User).where(User.id == user.id).values(last_seen=utcnow()))
    db.commit()
    db.refresh(user)

    return success_response(
        {"user": UserResponse.model_validate(user), "tokens": issue_tokens(user.id)},
        "Login successful",
    )


@router.post("/refresh")
async def refresh_token(payload: RefreshRequest, db: Session = Depends(get_db)):
    """Exchange a refresh token for a new token pair (the refresh token rotates)."""
    user_id = decode_token(payload.refresh_token, REFRESH_TOKEN_TYPE)
    if db.query(User).filter(User.id == user_id).first() is None:
        raise UnauthorizedError("User not found", code="TOKEN_INVALID")
    return success_response(issue_tokens(user_id))


@router.get("/me")
async def get_current_user_info(current_user: User = Depends(get_current_user)):
    """Get current user information."""
    return success_response(UserResponse.model_validate(current_user))
