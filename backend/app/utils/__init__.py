"""Utility modules for the application."""
from app.utils.file_upload import (
    upload_image,
    initialize_directories
)
from app.utils.logger import get_logger, safe_repr

__all__ = [
    'upload_image',
    'initialize_directories',
    'get_logger',
    'safe_repr'
]
