"""
Input and invariant checks for conversations and messages.

Every check returns a ``Result`` instead of raising, so checks can be composed
and tested without a database. Services call ``unwrap()`` at the point where
a failure should become a ``ValidationError`` for the caller.
"""
import re
import uuid
from dataclasses import dataclass
from typing import Any, Generic, Iterable, List, Optional, Sequence, TypeVar

from app.core.config import settings
from app.core.errors import ValidationError

T = TypeVar("T")

IMAGE_URL_PATTERN = re.compile(r"^https?://.+")


@dataclass(frozen=True)
class Result(Generic[T]):
    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None
    field: Optional[str] = None

    @classmethod
    def success(cls, value: Any = None) -> "Result":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: str, field: Optional[str] = None) -> "Result":
        return cls(ok=False, error=error, field=field)

    def unwrap(self) -> T:
        if not self.ok:
            raise ValidationError(self.error, {self.field: self.error} if self.field else None)
        return self.value


def first_failure(results: Iterable[Result]) -> Result:
    """Return the first failed result, or an empty success if all passed."""
    for result in results:
        if not result.ok:
            return result
    return Result.success()


def parse_uuid(value: Any, field_name: str, label: Optional[str] = None) -> Result[uuid.UUID]:
    if isinstance(value, uuid.UUID):
        return Result.success(value)
    if isinstance(value, str):
        try:
            return Result.success(uuid.UUID(value))
        except ValueError:
            pass
    return Result.failure(f"Invalid {label or field_name}", field_name)


def validate_group_name(name: Any) -> Result[str]:
    if not isinstance(name, str) or not name.strip():
        return Result.failure("Group name is required", "name")
    name = name.strip()
    if len(name) < settings.MIN_GROUP_NAME_LENGTH:
        return Result.failure(
            f"Group name must be at least {settings.MIN_GROUP_NAME_LENGTH} characters", "name"
        )
    if len(name) > settings.MAX_GROUP_NAME_LENGTH:
        return Result.failure(
            f"Group name cannot exceed {settings.MAX_GROUP_NAME_LENGTH} characters", "name"
        )
    return Result.success(name)


def validate_participant_count(count: int) -> Result[int]:
    """Group size bounds, creator included."""
    if count < settings.MIN_GROUP_PARTICIPANTS:
        return Result.failure(
            f"Group must have at least {settings.MIN_GROUP_PARTICIPANTS} participants", "participantIds"
        )
    if count > settings.MAX_GROUP_PARTICIPANTS:
        return Result.failure(
            f"Group cannot exceed {settings.MAX_GROUP_PARTICIPANTS} participants", "participantIds"
        )
    return Result.success(count)


def validate_group_participant_ids(creator_id: uuid.UUID, participant_ids: Any) -> Result[List[uuid.UUID]]:
    """
    Check the explicit member list of a new group.

    The creator is added automatically, so the list must not contain them, and
    it must not repeat anyone. On success the parsed ids are returned in the
    order given.
    """
    if participant_ids is None:
        return Result.failure("participantIds is required", "participantIds")
    if not isinstance(participant_ids, (list, tuple)):
        return Result.failure("participantIds must be an array", "participantIds")

    count = validate_participant_count(len(participant_ids) + 1)
    if not count.ok:
        return count

    parsed = []
    for raw in participant_ids:
        result = parse_uuid(raw, "participantIds", "participantId format")
        if not result.ok:
            return result
        parsed.append(result.value)

    if creator_id in parsed:
        return Result.failure("Creator is automatically added to the group", "participantIds")
    if len(set(parsed)) != len(parsed):
        return Result.failure("Cannot have duplicate participants", "participantIds")
    return Result.success(parsed)


def validate_image_url(url: Optional[str]) -> Result[Optional[str]]:
    if url is None or url == "":
        return Result.success(None)
    if not isinstance(url, str) or not IMAGE_URL_PATTERN.match(url):
        return Result.failure("Invalid image URL format", "image")
    return Result.success(url)


def validate_message_body(content: Optional[str], has_image: bool) -> Result[Optional[str]]:
    """Returns the trimmed content (or None when only an image is sent)."""
    content = content.strip() if isinstance(content, str) else None
    if not content and not has_image:
        return Result.failure("Message must have content or image", "content")
    if content and len(content) > settings.MAX_MESSAGE_CONTENT_LENGTH:
        return Result.failure(
            f"Message content cannot exceed {settings.MAX_MESSAGE_CONTENT_LENGTH} characters", "content"
        )
    return Result.success(content or None)


# Message ids are BIGINT on PostgreSQL
MAX_CURSOR = 2 ** 63 - 1


def parse_cursor(cursor: Optional[str]) -> Result[Optional[int]]:
    if cursor is None or cursor == "":
        return Result.success(None)
    if not (cursor.isascii() and cursor.isdigit()) or not 1 <= int(cursor) <= MAX_CURSOR:
        return Result.failure("Invalid cursor format", "cursor")
    return Result.success(int(cursor))


def parse_limit(raw: Any, default: int, maximum: int) -> int:
    """Lenient page size: junk or values below 1 fall back to the default."""
    try:
        limit = int(raw)
    except (TypeError, ValueError):
        return default
    if limit < 1:
        return default
    return min(limit, maximum)


@dataclass(frozen=True)
class ConversationShape:
    """The parts of a conversation its invariants are stated over."""

    is_group: bool
    participant_ids: Sequence[uuid.UUID]
    admin_id: Optional[uuid.UUID] = None
    name: Optional[str] = None
    image: Optional[str] = None


def check_conversation_invariants(shape: ConversationShape) -> Result[ConversationShape]:
    """
    Membership invariants that must hold before any conversation is written.

    Individual conversations have exactly two distinct participants and no
    group fields; groups stay within the configured size bounds and have one
    admin who is a member.
    """
    ids = list(shape.participant_ids)
    if len(set(ids)) != len(ids):
        return Result.failure("Conversation participants must be unique", "participants")

    if not shape.is_group:
        if len(ids) != 2:
            return Result.failure("Individual conversations must have exactly 2 participants", "participants")
        if shape.name or shape.admin_id:
            return Result.failure("Individual conversations cannot have a name or admin", "type")
        return Result.success(shape)

    failure = first_failure([
        validate_participant_count(len(ids)),
        validate_group_name(shape.name),
        validate_image_url(shape.image),
        Result.success() if shape.admin_id is not None else Result.failure("Group admin is required", "admin"),
        Result.success() if shape.admin_id in ids else Result.failure("Group admin must be a participant", "admin"),
    ])
    return failure if not failure.ok else Result.success(shape)


def parse_page(raw: Any) -> int:
    """1-based page number; anything unusable means the first page."""
    try:
        page = int(raw)
    except (TypeError, ValueError):
        return 1
    return page if page >= 1 else 1
