"""
Error Handling Module

Defines domain exceptions and error categories for the application.
Domain exceptions are pure and have no external dependencies.
Application exceptions carry the user-facing message for API responses.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCategory(Enum):
    """Error category enumeration for structured error handling."""

    FILE_NOT_FOUND = "file_not_found"
    FILE_EXPIRED = "file_expired"
    FILE_CONSUMED = "file_consumed"
    DOWNLOAD_LIMIT_REACHED = "download_limit_reached"
    PASSWORD_REQUIRED = "password_required"
    INVALID_PASSWORD = "invalid_password"
    FILE_TOO_LARGE = "file_too_large"
    PART_TOO_LARGE = "part_too_large"
    INCOMPLETE_PART_SET = "incomplete_part_set"
    SESSION_NOT_FOUND = "session_not_found"
    INVALID_REQUEST = "invalid_request"
    UNAUTHORIZED = "unauthorized"
    SYSTEM_ERROR = "system_error"


# User-friendly error messages with actionable guidance
ERROR_MESSAGES: Dict[ErrorCategory, Dict[str, str]] = {
    ErrorCategory.FILE_NOT_FOUND: {
        "title": "File Not Found",
        "message": "The requested file could not be found or has been deleted.",
        "action": "Ask the sender for a new link.",
    },
    ErrorCategory.FILE_EXPIRED: {
        "title": "File Expired",
        "message": "This link has expired and the file is no longer available.",
        "action": "Ask the sender to upload the file again.",
    },
    ErrorCategory.FILE_CONSUMED: {
        "title": "File Already Downloaded",
        "message": "This was a one-time file and it has already been downloaded.",
        "action": "Ask the sender to upload the file again.",
    },
    ErrorCategory.DOWNLOAD_LIMIT_REACHED: {
        "title": "Download Limit Reached",
        "message": "This file has reached its maximum number of downloads.",
        "action": "Ask the sender to upload the file again.",
    },
    ErrorCategory.PASSWORD_REQUIRED: {
        "title": "Password Required",
        "message": "This file is protected by a password.",
        "action": "Enter the password you received from the sender.",
    },
    ErrorCategory.INVALID_PASSWORD: {
        "title": "Invalid Password",
        "message": "The password you entered is not correct.",
        "action": "Check the password and try again.",
    },
    ErrorCategory.FILE_TOO_LARGE: {
        "title": "File Too Large",
        "message": "The file exceeds the maximum size allowed for this upload.",
        "action": "Use the chunked upload for large files or pick a smaller file.",
    },
    ErrorCategory.PART_TOO_LARGE: {
        "title": "Chunk Too Large",
        "message": "The uploaded chunk exceeds the maximum part size.",
        "action": "Split the file into smaller chunks and retry.",
    },
    ErrorCategory.INCOMPLETE_PART_SET: {
        "title": "Upload Incomplete",
        "message": "Some chunks of this upload are missing.",
        "action": "Upload the missing chunks and complete the upload again.",
    },
    ErrorCategory.SESSION_NOT_FOUND: {
        "title": "Upload Session Not Found",
        "message": "The upload session does not exist or was already finished.",
        "action": "Start a new upload.",
    },
    ErrorCategory.INVALID_REQUEST: {
        "title": "Invalid Request",
        "message": "The request is missing required information or contains invalid data.",
        "action": "Please check your input and try again.",
    },
    ErrorCategory.UNAUTHORIZED: {
        "title": "Unauthorized",
        "message": "Valid credentials are required for this operation.",
        "action": "Provide the maintenance token.",
    },
    ErrorCategory.SYSTEM_ERROR: {
        "title": "System Error",
        "message": "An unexpected error occurred while processing your request.",
        "action": "Please try again later. If the problem persists, contact support.",
    },
}


# ============================================================================
# Domain Exceptions (Pure - No External Dependencies)
# ============================================================================

class DomainError(Exception):
    """
    Base exception for all domain errors.

    Domain exceptions can optionally wrap original errors for context.
    """

    category = ErrorCategory.SYSTEM_ERROR

    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.original_error = original_error


class FileTooLargeError(DomainError):
    """Raised when a payload exceeds the simple-upload threshold or the size limit."""

    category = ErrorCategory.FILE_TOO_LARGE


class UnsupportedRequestError(DomainError):
    """Raised when upload options or arguments fail validation."""

    category = ErrorCategory.INVALID_REQUEST


class PartTooLargeError(DomainError):
    """Raised when a single chunk exceeds the maximum part size."""

    category = ErrorCategory.PART_TOO_LARGE


class IncompletePartSetError(DomainError):
    """
    Raised when a completion request does not cover every part.

    Attributes:
        missing: Part numbers absent from the request
        duplicates: Part numbers submitted more than once
    """

    category = ErrorCategory.INCOMPLETE_PART_SET

    def __init__(self, message: str, missing=None, duplicates=None):
        super().__init__(message)
        self.missing = sorted(missing or [])
        self.duplicates = sorted(duplicates or [])


class SessionNotFoundError(DomainError):
    """Raised when a chunked upload session is unknown or no longer open."""

    category = ErrorCategory.SESSION_NOT_FOUND


class DownloadLimitReachedError(DomainError):
    """Raised when the conditional download increment affects no record."""

    category = ErrorCategory.DOWNLOAD_LIMIT_REACHED


class InvalidStateTransitionError(DomainError):
    """Raised when an upload session is moved to a state it cannot reach."""

    category = ErrorCategory.INVALID_REQUEST


# ----------------------------------------------------------------------------
# Infrastructure-class errors: logged with detail, never shown verbatim
# ----------------------------------------------------------------------------

class StorageError(DomainError):
    """Raised when the object store fails an operation."""


class MetadataError(DomainError):
    """Raised when the metadata store fails an operation."""


# ============================================================================
# Application Layer Exceptions
# ============================================================================

class ApplicationError(Exception):
    """
    Base application error with category and user-friendly messaging.

    Bridges domain errors with user-facing error messages and HTTP responses.
    """

    def __init__(
        self,
        category: ErrorCategory,
        technical_message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize application error.

        Args:
            category: Error category
            technical_message: Technical error details for logging
            context: Additional context information
        """
        self.category = category
        self.technical_message = technical_message or ""
        self.context = context or {}

        error_info = ERROR_MESSAGES.get(
            category, ERROR_MESSAGES[ErrorCategory.SYSTEM_ERROR]
        )
        self.title = error_info["title"]
        self.message = error_info["message"]
        self.action = error_info["action"]

        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert error to dictionary for API response.

        Returns:
            Dictionary with error information
        """
        payload = {
            "error": self.category.value,
            "title": self.title,
            "message": self.message,
            "action": self.action,
        }
        if self.context:
            payload["details"] = self.context
        return payload


def create_error_response(
    category: ErrorCategory,
    technical_message: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None,
    status_code: int = 400,
) -> tuple[Dict[str, Any], int]:
    """
    Create a structured error response for API endpoints.

    The technical message is never included in the payload.

    Args:
        category: Error category
        technical_message: Technical error details for logging
        context: Additional safe-to-expose context information
        status_code: HTTP status code

    Returns:
        Tuple of (error_dict, status_code)
    """
    error = ApplicationError(category, technical_message, context)
    return error.to_dict(), status_code
