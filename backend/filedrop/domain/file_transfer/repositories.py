"""
File Transfer Repositories

Metadata store interfaces. Concrete implementations live in the
infrastructure layer.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from .entities import FileRecord


class FileRecordRepository(ABC):
    """
    Abstract repository for file records.

    State changes after insertion go through the named conditional
    operations below; there is no generic save. Every conditional
    operation must be atomic with respect to concurrent callers.

    Failures of the underlying store raise ``MetadataError``.
    """

    @abstractmethod
    def insert(self, record: FileRecord) -> None:
        """
        Insert a new record.

        Args:
            record: Record to persist (completed or uploading)

        Raises:
            MetadataError: If the record could not be written
        """
        pass  # pragma: no cover

    @abstractmethod
    def get(self, file_id: str) -> Optional[FileRecord]:
        """
        Retrieve a record by file id.

        Returns:
            FileRecord if found, None otherwise
        """
        pass  # pragma: no cover

    @abstractmethod
    def mark_completed(self, file_id: str, upload_id: str, expires_at: datetime) -> bool:
        """
        Complete a chunked upload in one conditional update.

        Applies only if the record is ``uploading`` or ``failed`` and still
        carries *upload_id*. Sets ``upload_status=completed``, assigns
        ``expires_at`` and clears the multipart upload id.

        Returns:
            True if the update was applied, False otherwise
        """
        pass  # pragma: no cover

    @abstractmethod
    def mark_failed(self, file_id: str, upload_id: str) -> bool:
        """
        Flag a chunked upload whose completion was rejected.

        Applies only if the record is not completed and still carries
        *upload_id*.

        Returns:
            True if the update was applied, False otherwise
        """
        pass  # pragma: no cover

    @abstractmethod
    def record_download(self, file_id: str, now: datetime) -> bool:
        """
        Increment ``download_count`` in one conditional update.

        The increment applies only when the record is completed,
        ``download_count < max_downloads`` and, for one-time files,
        ``download_count == 0``.

        Returns:
            True if the counter was incremented, False if no record matched
        """
        pass  # pragma: no cover

    @abstractmethod
    def delete(self, file_id: str) -> bool:
        """
        Delete a record and its index entries.

        Returns:
            True if a record was deleted, False if none existed
        """
        pass  # pragma: no cover

    @abstractmethod
    def delete_many(self, file_ids: Iterable[str]) -> int:
        """
        Delete several records in one batched operation.

        Returns:
            Number of records actually deleted
        """
        pass  # pragma: no cover

    @abstractmethod
    def find_cleanup_candidates(self, now: datetime, limit: int) -> List[FileRecord]:
        """
        Find completed records eligible for removal.

        Eligible means ``expires_at < now`` or a consumed one-time file or
        ``download_count >= max_downloads``.

        Returns:
            At most *limit* records ordered by ``expires_at`` ascending
        """
        pass  # pragma: no cover

    @abstractmethod
    def find_stale_uploads(self, older_than: datetime, limit: int) -> List[FileRecord]:
        """
        Find chunked uploads (``uploading`` or ``failed``) started before
        *older_than*, oldest first.
        """
        pass  # pragma: no cover

    @abstractmethod
    def get_statistics(self, now: datetime) -> Dict[str, int]:
        """
        Count records for monitoring.

        Returns:
            Dictionary with ``total_files``, ``expired_files``,
            ``consumed_files`` and ``pending_uploads``
        """
        pass  # pragma: no cover


class MaintenanceRepository(ABC):
    """Abstract repository for collector bookkeeping and store maintenance."""

    @abstractmethod
    def delete_rate_limit_entries_before(self, cutoff: datetime) -> int:
        """
        Delete rate-limit rows last touched before *cutoff*.

        Returns:
            Number of rows deleted
        """
        pass  # pragma: no cover

    @abstractmethod
    def count_rate_limit_entries(self) -> int:
        pass  # pragma: no cover

    @abstractmethod
    def get_last_maintenance(self) -> Optional[datetime]:
        """Timestamp of the last completed maintenance, None if never run."""
        pass  # pragma: no cover

    @abstractmethod
    def set_last_maintenance(self, timestamp: datetime) -> None:
        pass  # pragma: no cover

    @abstractmethod
    def run_maintenance(self) -> Dict[str, int]:
        """
        Reclaim space in the metadata store.

        Returns:
            Counters describing the work done
        """
        pass  # pragma: no cover

    @abstractmethod
    def get_last_sweep(self) -> Optional[datetime]:
        pass  # pragma: no cover

    @abstractmethod
    def set_last_sweep(self, timestamp: datetime) -> None:
        pass  # pragma: no cover
