"""Custom exception hierarchy for tabforum."""

from enum import Enum
from typing import Optional, Dict, Any


class ErrorCode(str, Enum):
    """Standardized error codes for API responses."""

    # Content errors
    CONTENT_NOT_FOUND = "CONTENT_NOT_FOUND"

    # Validation errors
    VALIDATION_ERROR = "VALIDATION_ERROR"

    # Auth errors
    FORBIDDEN = "FORBIDDEN"


class TabforumError(Exception):
    """
    Base exception for all tabforum errors.

    Provides structured error responses with:
    - Human-readable message and suggested action
    - Machine-readable error code and error location code
    - HTTP status code
    - Offending input key, when there is one
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
        action: Optional[str] = None,
        error_location_code: Optional[str] = None,
        key: Optional[str] = None,
    ):
        """
        Initialize exception.

        Args:
            message: Human-readable error message
            error_code: Machine-readable error code
            status_code: HTTP status code to return
            details: Optional additional context/details
            action: Optional hint telling the caller how to fix the request
            error_location_code: Where in the code the error was raised,
                e.g. ``MODEL:CONTENT:CHECK_ROOT_CONTENT_TITLE:MISSING_TITLE``
            key: Input field the error refers to
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        self.action = action
        self.error_location_code = error_location_code
        self.key = key

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert exception to dictionary for JSON response.

        Returns:
            Dictionary with error, message, action, location, key and details fields
        """
        return {
            "error": self.error_code.value,
            "message": self.message,
            "action": self.action,
            "error_location_code": self.error_location_code,
            "key": self.key,
            "status_code": self.status_code,
            "details": self.details,
        }


class ValidationError(TabforumError):
    """Validation failed for user input or for a status transition."""

    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        action: Optional[str] = None,
        error_location_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message,
            ErrorCode.VALIDATION_ERROR,
            status_code=400,
            details=details,
            action=action or "Adjust the submitted data and try again.",
            error_location_code=error_location_code,
            key=key,
        )


class NotFoundError(TabforumError):
    """Referenced content does not exist or is not visible."""

    def __init__(
        self,
        message: str = "The requested content was not found.",
        action: Optional[str] = None,
        error_location_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message,
            ErrorCode.CONTENT_NOT_FOUND,
            status_code=404,
            details=details,
            action=action or "Check that the data was typed correctly.",
            error_location_code=error_location_code,
        )


class ForbiddenError(TabforumError):
    """The owner is not allowed to perform the requested transition."""

    def __init__(
        self,
        message: str = "You do not have permission to perform this action",
        action: Optional[str] = None,
        error_location_code: Optional[str] = None,
    ):
        super().__init__(
            message,
            ErrorCode.FORBIDDEN,
            status_code=403,
            action=action,
            error_location_code=error_location_code,
        )
