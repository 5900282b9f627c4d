"""Image storage for message attachments and group pictures."""
import shutil
import uuid
from pathlib import Path
from typing import Dict

from fastapi import UploadFile

from app.core.config import settings
from app.core.errors import InternalError, ValidationError
from app.utils.logger import get_logger

logger = get_logger(__name__)

UPLOADS_DIR = Path(settings.UPLOADS_DIR)

# Folder names under the uploads directory
FOLDER_MESSAGE = 'message-images'
FOLDER_GROUP = 'group-images'

ALLOWED_IMAGE_MIME_TYPES = {
    'image/jpeg': '.jpg',
    'image/png': '.png',
    'image/webp': '.webp',
}


def initialize_directories():
    """Create all necessary upload directories."""
    for folder in (FOLDER_MESSAGE, FOLDER_GROUP):
        (UPLOADS_DIR / folder).mkdir(parents=True, exist_ok=True)


def _file_size(file: UploadFile) -> int:
    if file.size is not None:
        return file.size
    position = file.file.tell()
    file.file.seek(0, 2)
    size = file.file.tell()
    file.file.seek(position)
    return size


def upload_image(file: UploadFile, folder: str) -> Dict[str, str]:
    """
    Store an uploaded image and return its public location.

    The return value mirrors what an object-storage service hands back:
    ``{"secure_url": ..., "public_id": ...}``.

    Raises:
        ValidationError: unsupported content type or file too large
        InternalError: the file could not be written
    """
    extension = ALLOWED_IMAGE_MIME_TYPES.get(file.content_type or "")
    if extension is None:
        raise ValidationError(
            "Only JPEG, PNG and WebP images are allowed", {"image": "unsupported content type"}
        )
    max_bytes = settings.MAX_IMAGE_SIZE_MB * 1024 * 1024
    if _file_size(file) > max_bytes:
        raise ValidationError(
            f"Image cannot exceed {settings.MAX_IMAGE_SIZE_MB} MB", {"image": "file too large"}
        )

    public_id = f"{folder}/{uuid.uuid4()}"
    file_path = UPLOADS_DIR / f"{public_id}{extension}"
    try:
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file.file.seek(0)
        with file_path.open("wb") as buffer:
            shutil.copyfileobj(file.file, buffer)
    except OSError:
        logger.exception("Image upload to %s failed", file_path)
        raise InternalError("Failed to upload image", code="UPLOAD_FAILED")

    secure_url = f"{settings.MEDIA_BASE_URL.rstrip('/')}/uploads/{public_id}{extension}"
    logger.info("Stored image %s (%s)", public_id, file.filename)
    return {"secure_url": secure_url, "public_id": public_id}


def delete_image(public_id: str) -> None:
    """Remove a stored image by the ``public_id`` that ``upload_image`` returned."""
    for path in UPLOADS_DIR.glob(f"{public_id}.*"):
        try:
            path.unlink()
        except OSError:
            logger.warning("Could not remove image %s", path)
            continue
        logger.info("Removed image %s", public_id)
