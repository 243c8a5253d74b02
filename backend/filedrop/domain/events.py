"""
Domain Events

Immutable records of significant state changes in the domain.
Events decouple side effects (logging) from core business logic.
"""

from abc import ABC
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict


@dataclass(frozen=True)
class DomainEvent(ABC):
    """
    Base class for all domain events.

    Attributes:
        aggregate_id: ID of the aggregate that generated the event (e.g., file_id)
        occurred_at: Timestamp when the event occurred
    """
    aggregate_id: str
    occurred_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert event to dictionary for serialization.

        Returns:
            Dictionary representation of the event
        """
        return {
            "event_type": self.__class__.__name__,
            "aggregate_id": self.aggregate_id,
            "occurred_at": self.occurred_at.isoformat(),
        }


@dataclass(frozen=True)
class FileUploadedEvent(DomainEvent):
    """
    Event emitted when a file becomes available (simple or chunked upload).

    Attributes:
        aggregate_id: File ID
        occurred_at: When the record was completed
        size_bytes: Stored size
        expires_at: Assigned expiry
        chunked: True for multipart uploads
    """
    size_bytes: int
    expires_at: datetime
    chunked: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary for serialization."""
        base_dict = super().to_dict()
        base_dict.update({
            "size_bytes": self.size_bytes,
            "expires_at": self.expires_at.isoformat(),
            "chunked": self.chunked,
        })
        return base_dict


@dataclass(frozen=True)
class ChunkedUploadAbortedEvent(DomainEvent):
    """
    Event emitted when a chunked upload is aborted by the client or the collector.

    Attributes:
        aggregate_id: File ID
        occurred_at: When the session was aborted
        upload_id: Multipart upload ID
        reason: Who or what aborted it
    """
    upload_id: str
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary for serialization."""
        base_dict = super().to_dict()
        base_dict.update({
            "upload_id": self.upload_id,
            "reason": self.reason,
        })
        return base_dict


@dataclass(frozen=True)
class FileDownloadedEvent(DomainEvent):
    """
    Event emitted after a download was counted.

    Attributes:
        aggregate_id: File ID
        occurred_at: When the download was recorded
        download_count: Counter value after the increment
        max_downloads: Configured limit
    """
    download_count: int
    max_downloads: int

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary for serialization."""
        base_dict = super().to_dict()
        base_dict.update({
            "download_count": self.download_count,
            "max_downloads": self.max_downloads,
        })
        return base_dict


@dataclass(frozen=True)
class OrphanedRecordRemovedEvent(DomainEvent):
    """
    Event emitted when a record whose object vanished is deleted.

    Attributes:
        aggregate_id: File ID
        occurred_at: When the record was removed
        storage_key: Key of the missing object
    """
    storage_key: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary for serialization."""
        base_dict = super().to_dict()
        base_dict["storage_key"] = self.storage_key
        return base_dict


@dataclass(frozen=True)
class SweepCompletedEvent(DomainEvent):
    """
    Event emitted at the end of every collector run.

    Attributes:
        aggregate_id: Sweep identifier
        occurred_at: When the sweep finished
        success: True when no error was counted
        stats: Sweep statistics as a dictionary
    """
    success: bool
    stats: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary for serialization."""
        base_dict = super().to_dict()
        base_dict.update({
            "success": self.success,
            "stats": dict(self.stats),
        })
        return base_dict
