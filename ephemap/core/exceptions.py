"""Custom exception classes for the application.

This module defines application-specific exceptions that map
to appropriate HTTP status codes and error responses.
"""

from typing import Any, Dict, Optional


class AppException(Exception):
    """Base exception for all application errors.

    Attributes:
        message: Human-readable error message.
        status_code: HTTP status code to return.
        details: Additional error context.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error message.
            status_code: HTTP status code to return.
            details: Additional error context.
        """
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class NotFoundException(AppException):
    """Raised when a requested resource is not found."""

    def __init__(
        self,
        message: str = "Resource not found",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, status_code=404, details=details)


class ValidationException(AppException):
    """Raised when input validation fails, e.g. coordinates off the globe."""

    def __init__(
        self,
        message: str = "Validation error",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, status_code=422, details=details)


class ForbiddenException(AppException):
    """Raised when the actor is not allowed to perform the action."""

    def __init__(
        self,
        message: str = "Permission denied",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, status_code=403, details=details)


class DislikeNotAllowedException(ForbiddenException):
    """Raised when an actor's likes do not exceed their dislikes."""

    def __init__(
        self,
        message: str = "You must like a photo before disliking",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, details=details)


class ConflictException(AppException):
    """Raised when a concurrent write invalidated the one being applied.

    Distinct from a generic failure so callers can re-read and retry.
    """

    def __init__(
        self,
        message: str = "Concurrent update conflict",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, status_code=409, details=details)


class AlreadyInteractedException(ConflictException):
    """Raised on a second like/dislike by the same actor on the same photo."""

    def __init__(
        self,
        message: str = "You have already interacted with this photo",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, details=details)


class PhotoExpiredException(AppException):
    """Raised when interacting with a photo whose lifetime has run out."""

    def __init__(
        self,
        message: str = "Photo has expired",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, status_code=410, details=details)


class DatabaseException(AppException):
    """Raised when a database operation fails."""

    def __init__(
        self,
        message: str = "Database operation failed",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, status_code=500, details=details)


class ReaperError(DatabaseException):
    """Raised when a reaper sweep cannot read or delete expired photos."""

    def __init__(
        self,
        message: str = "Reaper sweep failed",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, details=details)
