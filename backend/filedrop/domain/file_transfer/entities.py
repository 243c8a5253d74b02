"""
File Transfer Entities

FileRecord is the persisted description of one uploaded file.
UploadSession is the ephemeral view of an open chunked upload.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from filedrop.domain.errors import IncompletePartSetError, UnsupportedRequestError

from .value_objects import (
    FileMetadata,
    PartReceipt,
    SessionHandle,
    UploadOptions,
    UploadSessionState,
    UploadStatus,
)


def utc_now() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(timezone.utc)


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _format_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class FileRecord:
    """
    Entity representing one uploaded file.

    The descriptive fields are immutable after creation. ``download_count``
    and ``upload_status`` change only through the metadata store's named
    conditional operations.
    """
    file_id: str
    storage_key: str
    original_name: str
    size_bytes: int
    content_type: str
    max_downloads: int
    uploaded_at: datetime
    expires_at: Optional[datetime] = None
    download_count: int = 0
    is_one_time: bool = False
    has_password: bool = False
    password_hash: Optional[str] = None
    salt: Optional[str] = None
    upload_status: UploadStatus = UploadStatus.COMPLETED
    multipart_upload_id: Optional[str] = None
    total_chunks: Optional[int] = None
    chunk_size: Optional[int] = None
    lifetime_days: int = 7
    last_download_at: Optional[datetime] = None

    @classmethod
    def create(
        cls,
        file_id: str,
        storage_key: str,
        metadata: FileMetadata,
        size_bytes: int,
        options: UploadOptions,
        max_downloads: int,
        now: datetime,
        password_hash: Optional[str] = None,
        salt: Optional[str] = None,
    ) -> "FileRecord":
        """
        Create a completed record after the bytes have been stored.

        ``expires_at`` is derived from *now*, which must be taken after the
        object write returned. A record allowing a single download is
        stored as one-time.
        """
        return cls(
            file_id=file_id,
            storage_key=storage_key,
            original_name=metadata.original_name,
            size_bytes=size_bytes,
            content_type=metadata.content_type,
            max_downloads=max_downloads,
            uploaded_at=now,
            expires_at=now + options.lifetime,
            is_one_time=options.one_time or max_downloads == 1,
            has_password=password_hash is not None,
            password_hash=password_hash,
            salt=salt,
            upload_status=UploadStatus.COMPLETED,
            lifetime_days=options.lifetime_days,
        )

    @classmethod
    def create_pending(
        cls,
        file_id: str,
        storage_key: str,
        metadata: FileMetadata,
        size_bytes: int,
        options: UploadOptions,
        max_downloads: int,
        upload_id: str,
        total_chunks: int,
        chunk_size: int,
        now: datetime,
        password_hash: Optional[str] = None,
        salt: Optional[str] = None,
    ) -> "FileRecord":
        """Create an ``uploading`` record for a chunked upload; no expiry yet."""
        return cls(
            file_id=file_id,
            storage_key=storage_key,
            original_name=metadata.original_name,
            size_bytes=size_bytes,
            content_type=metadata.content_type,
            max_downloads=max_downloads,
            uploaded_at=now,
            expires_at=None,
            is_one_time=options.one_time or max_downloads == 1,
            has_password=password_hash is not None,
            password_hash=password_hash,
            salt=salt,
            upload_status=UploadStatus.UPLOADING,
            multipart_upload_id=upload_id,
            total_chunks=total_chunks,
            chunk_size=chunk_size,
            lifetime_days=options.lifetime_days,
        )

    def is_completed(self) -> bool:
        return self.upload_status == UploadStatus.COMPLETED

    def is_expired(self, now: datetime) -> bool:
        """A record without an expiry (upload in flight) never expires."""
        return self.expires_at is not None and self.expires_at < now

    def is_consumed(self) -> bool:
        return self.is_one_time and self.download_count > 0

    def is_limit_reached(self) -> bool:
        return self.download_count >= self.max_downloads

    def is_cleanup_candidate(self, now: datetime) -> bool:
        """Check the collector's eligibility predicate."""
        if not self.is_completed():
            return False
        return self.is_expired(now) or self.is_consumed() or self.is_limit_reached()

    def remaining_downloads(self) -> int:
        if self.is_one_time:
            return 0 if self.download_count > 0 else 1
        return max(0, self.max_downloads - self.download_count)

    def to_dict(self) -> Dict[str, Any]:
        """Full serialization, including the password hash and salt."""
        return {
            "file_id": self.file_id,
            "storage_key": self.storage_key,
            "original_name": self.original_name,
            "size_bytes": self.size_bytes,
            "content_type": self.content_type,
            "max_downloads": self.max_downloads,
            "uploaded_at": _format_datetime(self.uploaded_at),
            "expires_at": _format_datetime(self.expires_at),
            "download_count": self.download_count,
            "is_one_time": self.is_one_time,
            "has_password": self.has_password,
            "password_hash": self.password_hash,
            "salt": self.salt,
            "upload_status": self.upload_status.value,
            "multipart_upload_id": self.multipart_upload_id,
            "total_chunks": self.total_chunks,
            "chunk_size": self.chunk_size,
            "lifetime_days": self.lifetime_days,
            "last_download_at": _format_datetime(self.last_download_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FileRecord":
        """Rebuild a record from :meth:`to_dict` output."""
        def _optional_int(key: str) -> Optional[int]:
            value = data.get(key)
            return int(value) if value not in (None, "") else None

        return cls(
            file_id=data["file_id"],
            storage_key=data["storage_key"],
            original_name=data["original_name"],
            size_bytes=int(data["size_bytes"]),
            content_type=data.get("content_type") or "application/octet-stream",
            max_downloads=int(data["max_downloads"]),
            uploaded_at=_parse_datetime(data.get("uploaded_at")) or utc_now(),
            expires_at=_parse_datetime(data.get("expires_at")),
            download_count=int(data.get("download_count") or 0),
            is_one_time=bool(data.get("is_one_time", False)),
            has_password=bool(data.get("has_password", False)),
            password_hash=data.get("password_hash") or None,
            salt=data.get("salt") or None,
            upload_status=UploadStatus(data.get("upload_status", "completed")),
            multipart_upload_id=data.get("multipart_upload_id") or None,
            total_chunks=_optional_int("total_chunks"),
            chunk_size=_optional_int("chunk_size"),
            lifetime_days=int(data.get("lifetime_days") or 7),
            last_download_at=_parse_datetime(data.get("last_download_at")),
        )

    def to_public_dict(self) -> Dict[str, Any]:
        """Metadata safe to show to any link holder; never the hash or salt."""
        return {
            "file_id": self.file_id,
            "original_name": self.original_name,
            "size_bytes": self.size_bytes,
            "content_type": self.content_type,
            "expires_at": _format_datetime(self.expires_at),
            "uploaded_at": _format_datetime(self.uploaded_at),
            "has_password": self.has_password,
            "is_one_time": self.is_one_time,
            "download_count": self.download_count,
            "max_downloads": self.max_downloads,
            "remaining_downloads": self.remaining_downloads(),
        }


@dataclass
class UploadSession:
    """
    Open chunked upload, rebuilt from its ``uploading``/``failed`` record.

    Received parts are kept by the object store; the client resubmits
    the receipts it collected when completing.
    """
    upload_id: str
    file_id: str
    storage_key: str
    total_chunks: int
    chunk_size: int
    state: UploadSessionState = UploadSessionState.INITIATED

    @classmethod
    def from_record(cls, record: FileRecord) -> "UploadSession":
        return cls(
            upload_id=record.multipart_upload_id,
            file_id=record.file_id,
            storage_key=record.storage_key,
            total_chunks=record.total_chunks or 1,
            chunk_size=record.chunk_size or record.size_bytes,
            state=UploadSessionState.from_status(record.upload_status),
        )

    @property
    def handle(self) -> SessionHandle:
        return SessionHandle(file_id=self.file_id, upload_id=self.upload_id)

    def check_part_number(self, part_number: int) -> None:
        """
        Raises:
            UnsupportedRequestError: If the part is outside 1..total_chunks
        """
        if not 1 <= part_number <= self.total_chunks:
            raise UnsupportedRequestError(
                f"part_number must be between 1 and {self.total_chunks}, got {part_number}"
            )

    def validate_parts(self, parts: Iterable[PartReceipt]) -> List[PartReceipt]:
        """
        Check that *parts* covers 1..total_chunks exactly once each.

        Returns:
            The parts sorted by ascending part number

        Raises:
            IncompletePartSetError: On gaps, duplicates or unknown part numbers
        """
        parts = list(parts)
        seen = set()
        duplicates = set()
        for part in parts:
            if part.part_number in seen:
                duplicates.add(part.part_number)
            seen.add(part.part_number)

        expected = set(range(1, self.total_chunks + 1))
        missing = expected - seen
        unexpected = seen - expected

        if missing or duplicates or unexpected:
            details = []
            if missing:
                details.append(f"missing parts {sorted(missing)}")
            if duplicates:
                details.append(f"duplicate parts {sorted(duplicates)}")
            if unexpected:
                details.append(f"unknown parts {sorted(unexpected)}")
            raise IncompletePartSetError(
                f"Upload {self.upload_id}: " + ", ".join(details),
                missing=missing,
                duplicates=duplicates,
            )

        return sorted(parts, key=lambda p: p.part_number)
