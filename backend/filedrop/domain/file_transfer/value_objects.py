"""
File Transfer Value Objects

Immutable value objects for upload options, upload state and retry policy.
"""

from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Dict, Optional, Tuple

from filedrop.domain.errors import InvalidStateTransitionError, UnsupportedRequestError


LIFETIME_DAYS = (1, 7, 30)
MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_LENGTH = 128
MAX_DOWNLOADS_LIMIT = 1000
MAX_ORIGINAL_NAME_LENGTH = 255


class UploadStatus(Enum):
    """Persisted upload status of a file record."""
    UPLOADING = "uploading"
    COMPLETED = "completed"
    FAILED = "failed"

    def is_pending(self) -> bool:
        """Check if the record still belongs to an open chunked upload."""
        return self in (UploadStatus.UPLOADING, UploadStatus.FAILED)


class UploadSessionState(Enum):
    """
    Lifecycle of a chunked upload session.

    INITIATED -> UPLOADING -> COMPLETING -> COMPLETED, with ABORTED and
    FAILED reachable from any non-terminal state. FAILED may be completed
    again or aborted.
    """
    INITIATED = "initiated"
    UPLOADING = "uploading"
    COMPLETING = "completing"
    COMPLETED = "completed"
    ABORTED = "aborted"
    FAILED = "failed"

    def is_terminal(self) -> bool:
        """Check if no further transition is possible."""
        return self in (UploadSessionState.COMPLETED, UploadSessionState.ABORTED)

    def can_transition_to(self, target: "UploadSessionState") -> bool:
        """Check whether moving to *target* is allowed."""
        return target in _SESSION_TRANSITIONS[self]

    def transition_to(self, target: "UploadSessionState") -> "UploadSessionState":
        """
        Validate and return the next state.

        Raises:
            InvalidStateTransitionError: If the transition is not allowed
        """
        if not self.can_transition_to(target):
            raise InvalidStateTransitionError(
                f"Cannot move upload session from {self.value} to {target.value}"
            )
        return target

    @classmethod
    def from_status(cls, status: UploadStatus) -> "UploadSessionState":
        """
        Derive the session state from a persisted record status.

        Received parts are tracked by the object store, not here, so an
        open session is rebuilt as INITIATED.
        """
        if status == UploadStatus.COMPLETED:
            return cls.COMPLETED
        if status == UploadStatus.FAILED:
            return cls.FAILED
        return cls.INITIATED


_SESSION_TRANSITIONS = {
    UploadSessionState.INITIATED: {
        UploadSessionState.UPLOADING,
        UploadSessionState.COMPLETING,
        UploadSessionState.ABORTED,
        UploadSessionState.FAILED,
    },
    UploadSessionState.UPLOADING: {
        UploadSessionState.UPLOADING,
        UploadSessionState.COMPLETING,
        UploadSessionState.ABORTED,
        UploadSessionState.FAILED,
    },
    UploadSessionState.COMPLETING: {
        UploadSessionState.COMPLETED,
        UploadSessionState.FAILED,
        UploadSessionState.ABORTED,
    },
    UploadSessionState.FAILED: {
        UploadSessionState.COMPLETING,
        UploadSessionState.ABORTED,
    },
    UploadSessionState.COMPLETED: set(),
    UploadSessionState.ABORTED: set(),
}


class AccessOutcome(Enum):
    """Every possible answer of the access gate."""
    GRANTED = "granted"
    PASSWORD_REQUIRED = "password_required"
    INVALID_PASSWORD = "invalid_password"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    CONSUMED = "consumed"
    LIMIT_REACHED = "limit_reached"

    def is_terminal(self) -> bool:
        """File-unavailable outcomes; retrying never helps."""
        return self in (
            AccessOutcome.NOT_FOUND,
            AccessOutcome.EXPIRED,
            AccessOutcome.CONSUMED,
            AccessOutcome.LIMIT_REACHED,
        )

    def is_retryable(self) -> bool:
        """Outcomes the caller can fix by supplying another credential."""
        return self in (AccessOutcome.PASSWORD_REQUIRED, AccessOutcome.INVALID_PASSWORD)


@dataclass(frozen=True)
class FileMetadata:
    """Descriptive fields supplied by the uploader."""
    original_name: str
    content_type: str = "application/octet-stream"

    def __post_init__(self):
        if not self.original_name or not self.original_name.strip():
            raise UnsupportedRequestError("original_name is required")
        if len(self.original_name) > MAX_ORIGINAL_NAME_LENGTH:
            raise UnsupportedRequestError(
                f"original_name exceeds {MAX_ORIGINAL_NAME_LENGTH} characters"
            )
        if not self.content_type:
            object.__setattr__(self, "content_type", "application/octet-stream")


@dataclass(frozen=True)
class UploadOptions:
    """
    Validated upload options.

    Attributes:
        lifetime_days: One of 1, 7 or 30
        password: Optional password (8-128 characters)
        max_downloads: Optional download cap (1-1000)
        one_time: Revoke access after the first download
    """
    lifetime_days: int = 7
    password: Optional[str] = None
    max_downloads: Optional[int] = None
    one_time: bool = False

    def __post_init__(self):
        if self.lifetime_days not in LIFETIME_DAYS:
            raise UnsupportedRequestError(
                f"lifetime_days must be one of {LIFETIME_DAYS}, got {self.lifetime_days}"
            )
        if self.password is not None:
            if len(self.password) < MIN_PASSWORD_LENGTH:
                raise UnsupportedRequestError(
                    f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
                )
            if len(self.password) > MAX_PASSWORD_LENGTH:
                raise UnsupportedRequestError("Password too long")
        if self.max_downloads is not None:
            if isinstance(self.max_downloads, bool) or not isinstance(self.max_downloads, int):
                raise UnsupportedRequestError("max_downloads must be an integer")
            if not 1 <= self.max_downloads <= MAX_DOWNLOADS_LIMIT:
                raise UnsupportedRequestError(
                    f"max_downloads must be between 1 and {MAX_DOWNLOADS_LIMIT}"
                )

    @property
    def lifetime(self) -> timedelta:
        return timedelta(days=self.lifetime_days)

    @property
    def has_password(self) -> bool:
        return bool(self.password)

    def resolve_max_downloads(self, default: int) -> int:
        """One-time files always allow exactly one download."""
        if self.one_time:
            return 1
        return self.max_downloads if self.max_downloads is not None else default

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> "UploadOptions":
        """
        Build options from a request payload.

        Accepts ``lifetime_days`` or the legacy ``lifetime`` string key.
        """
        data = data or {}
        lifetime = data.get("lifetime_days", data.get("lifetime", 7))
        try:
            lifetime = int(lifetime)
        except (TypeError, ValueError):
            raise UnsupportedRequestError(f"Invalid lifetime value: {lifetime!r}")
        max_downloads = data.get("max_downloads")
        if max_downloads is not None and not isinstance(max_downloads, bool):
            try:
                max_downloads = int(max_downloads)
            except (TypeError, ValueError):
                raise UnsupportedRequestError("max_downloads must be an integer")
        return cls(
            lifetime_days=lifetime,
            password=data.get("password") or None,
            max_downloads=max_downloads,
            one_time=bool(data.get("one_time", False)),
        )


@dataclass(frozen=True)
class ChunkPlan:
    """Chunk size the client intends to use for a multipart upload."""
    chunk_size: int

    def __post_init__(self):
        if self.chunk_size <= 0:
            raise UnsupportedRequestError("chunk_size must be positive")

    def total_chunks(self, total_size: int) -> int:
        """Number of parts needed for *total_size* bytes (at least one)."""
        return max(1, -(-total_size // self.chunk_size))


@dataclass(frozen=True)
class SessionHandle:
    """Opaque handle a client resubmits for every chunked upload call."""
    file_id: str
    upload_id: str

    def to_dict(self) -> Dict[str, str]:
        return {"file_id": self.file_id, "upload_id": self.upload_id}


@dataclass(frozen=True)
class PartReceipt:
    """A received part and the etag the object store returned for it."""
    part_number: int
    etag: str

    def to_dict(self) -> Dict[str, object]:
        return {"part_number": self.part_number, "etag": self.etag}

    @classmethod
    def from_dict(cls, data: Dict) -> "PartReceipt":
        try:
            return cls(part_number=int(data["part_number"]), etag=str(data["etag"]))
        except (KeyError, TypeError, ValueError):
            raise UnsupportedRequestError(f"Invalid part entry: {data!r}")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Client-side retry policy for chunk uploads.

    Attributes:
        max_attempts: Total attempts per chunk, first try included
        backoff_schedule: Delay in seconds before each retry; the last value
            is reused when there are more retries than entries
        request_timeout: Per-request timeout in seconds
    """
    max_attempts: int = 4
    backoff_schedule: Tuple[float, ...] = (1.0, 2.0, 4.0)
    request_timeout: float = 120.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.request_timeout <= 0:
            raise ValueError("request_timeout must be positive")

    def delay_for(self, retry_number: int) -> float:
        """Delay before retry *retry_number* (1-based)."""
        if not self.backoff_schedule:
            return 0.0
        index = min(retry_number, len(self.backoff_schedule)) - 1
        return self.backoff_schedule[max(index, 0)]

    @classmethod
    def exponential(
        cls,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 5.0,
        request_timeout: float = 120.0,
    ) -> "RetryPolicy":
        """Doubling backoff (1s, 2s, 4s, ...) capped at *max_delay*."""
        schedule = tuple(min(base_delay * 2 ** i, max_delay) for i in range(max_retries))
        return cls(
            max_attempts=max_retries + 1,
            backoff_schedule=schedule,
            request_timeout=request_timeout,
        )
