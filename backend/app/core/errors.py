"""Typed application errors.

Business logic raises these; the exception handlers registered in ``main.py``
turn every one of them into the JSON error envelope::

    {"success": false, "error": {"code": ..., "message": ..., "details": ...}}
"""
from typing import Any, Dict, Optional


class AppError(Exception):
    """Base class for errors the API reports to the caller on purpose."""

    status_code = 500
    default_code = "INTERNAL_ERROR"

    def __init__(self, code: Optional[str] = None, message: str = "An unexpected error occurred",
                 status_code: Optional[int] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.code = code or self.default_code
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        error = {"code": self.code, "message": self.message}
        if self.details:
            error["details"] = self.details
        return {"success": False, "error": error}


class ValidationError(AppError):
    """Malformed input or a violated business rule (400)."""

    status_code = 400
    default_code = "VALIDATION_ERROR"

    def __init__(self, message: str, fields: Optional[Dict[str, str]] = None):
        super().__init__(message=message, details={"fields": fields} if fields else None)


class UnauthorizedError(AppError):
    status_code = 401
    default_code = "UNAUTHORIZED"

    def __init__(self, message: str = "Authentication required", code: Optional[str] = None):
        super().__init__(code=code, message=message)


class ForbiddenError(AppError):
    """Caller is authenticated but not allowed to do this (403)."""

    status_code = 403
    default_code = "FORBIDDEN"

    def __init__(self, message: str = "Access denied", code: Optional[str] = None):
        super().__init__(code=code, message=message)


class NotFoundError(AppError):
    status_code = 404

    def __init__(self, resource: str = "Resource", message: Optional[str] = None):
        code = "_".join(resource.upper().split()) + "_NOT_FOUND"
        super().__init__(code=code, message=message or f"{resource} not found")


class ConflictError(AppError):
    status_code = 409
    default_code = "CONFLICT"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(code=code, message=message)


class InternalError(AppError):
    """Upstream failure (image storage) or an unexpected condition (500)."""

    status_code = 500
    default_code = "INTERNAL_ERROR"

    def __init__(self, message: str = "An unexpected error occurred", code: Optional[str] = None):
        super().__init__(code=code, message=message)
