"""
Domain exceptions for PrintHub.

Services raise these; the application-level handler in main.py turns them
into JSON error responses with the matching status code.
"""
from typing import Any, Dict, Optional
from fastapi import status


class PrintHubError(Exception):
    """Base class for errors that map onto an HTTP status."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class NotFoundError(PrintHubError):
    def __init__(self, resource: str, identifier: Any):
        super().__init__(
            message=f"{resource} '{identifier}' not found",
            status_code=status.HTTP_404_NOT_FOUND
        )


class ValidationError(PrintHubError):
    def __init__(self, message: str, field: str = None):
        super().__init__(
            message=message,
            status_code=422,
            details={"field": field} if field else None
        )


class AuthenticationError(PrintHubError):
    def __init__(self, message: str = "Authentication required"):
        super().__init__(message=message, status_code=status.HTTP_401_UNAUTHORIZED)


class PermissionDeniedError(PrintHubError):
    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(message=message, status_code=status.HTTP_403_FORBIDDEN)


class ConflictError(PrintHubError):
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, status_code=status.HTTP_409_CONFLICT, details=details)


class SlotUnavailableError(ConflictError):
    def __init__(self, slot_id: Any):
        super().__init__(
            message="Selected time slot is fully booked or unavailable",
            details={"time_slot_id": str(slot_id)}
        )


class InvalidTransitionError(ConflictError):
    def __init__(self, current: str, requested: str):
        super().__init__(
            message=f"Cannot move job from {current} to {requested}",
            details={"current": current, "requested": requested}
        )


class FileExpiredError(PrintHubError):
    """The 24-hour retention window has passed for this file."""

    def __init__(self, file_name: Optional[str] = None):
        super().__init__(
            message="File has expired",
            status_code=status.HTTP_410_GONE,
            details={"file_name": file_name} if file_name else None
        )
