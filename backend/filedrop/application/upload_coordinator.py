"""
Upload Coordinator

Owns the lifecycle of a single upload: simple uploads in one request,
chunked uploads through the object store's multipart API. Bytes are
always written before the record becomes visible, and a failed record
write never leaves an orphaned object behind.
"""

import logging
import os
from datetime import datetime, timedelta
from typing import BinaryIO, Callable, Iterable, Optional, Tuple

from filedrop.config.transfer_config import TransferConfig
from filedrop.domain.errors import (
    FileTooLargeError,
    MetadataError,
    PartTooLargeError,
    SessionNotFoundError,
    StorageError,
    UnsupportedRequestError,
)
from filedrop.domain.events import ChunkedUploadAbortedEvent, FileUploadedEvent
from filedrop.domain.file_transfer.entities import FileRecord, UploadSession, utc_now
from filedrop.domain.file_transfer.repositories import FileRecordRepository
from filedrop.domain.file_transfer.security import (
    generate_file_id,
    generate_salt,
    generate_storage_key,
    hash_password,
)
from filedrop.domain.file_transfer.storage_repository import IObjectStorageRepository
from filedrop.domain.file_transfer.value_objects import (
    ChunkPlan,
    FileMetadata,
    PartReceipt,
    SessionHandle,
    UploadOptions,
    UploadSessionState,
)

logger = logging.getLogger(__name__)


def _measure(content: BinaryIO) -> int:
    """Size of a seekable stream; the position is reset to the start."""
    content.seek(0, os.SEEK_END)
    size = content.tell()
    content.seek(0)
    return size


class UploadCoordinator:
    """
    Application service for simple and chunked uploads.

    Args:
        file_repository: Metadata store for file records
        storage: Object store holding the bytes
        config: Size limits and defaults
        event_publisher: Optional publisher for upload events
        clock: Source of the current time
    """

    def __init__(
        self,
        file_repository: FileRecordRepository,
        storage: IObjectStorageRepository,
        config: Optional[TransferConfig] = None,
        event_publisher=None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.file_repository = file_repository
        self.storage = storage
        self.config = config or TransferConfig()
        self.event_publisher = event_publisher
        self.clock = clock

    # Simple upload

    def upload_simple(
        self,
        content: BinaryIO,
        metadata: FileMetadata,
        options: UploadOptions,
    ) -> FileRecord:
        """
        Store a small file in one request.

        Raises:
            FileTooLargeError: If the payload exceeds the simple-upload
                threshold or the maximum file size
            UnsupportedRequestError: If the payload is empty
            StorageError: If the object write failed
            MetadataError: If the record write failed (object already removed)
        """
        size = _measure(content)
        if size > self.config.max_file_size:
            raise FileTooLargeError(
                f"File size {size} exceeds the maximum of {self.config.max_file_size} bytes"
            )
        if size > self.config.simple_upload_threshold:
            raise FileTooLargeError(
                f"File size {size} exceeds the simple upload limit of "
                f"{self.config.simple_upload_threshold} bytes; use the chunked upload"
            )
        if size == 0:
            raise UnsupportedRequestError("File is empty")

        password_hash, salt = self._hash_password(options)
        file_id = generate_file_id()
        storage_key = generate_storage_key()

        self.storage.save(storage_key, content, metadata.content_type)

        # Expiry counts from the end of the byte transfer
        record = FileRecord.create(
            file_id=file_id,
            storage_key=storage_key,
            metadata=metadata,
            size_bytes=size,
            options=options,
            max_downloads=options.resolve_max_downloads(self.config.default_max_downloads),
            now=self.clock(),
            password_hash=password_hash,
            salt=salt,
        )
        try:
            self.file_repository.insert(record)
        except Exception:
            self._discard_object(storage_key)
            raise

        self._publish(FileUploadedEvent(
            aggregate_id=file_id,
            occurred_at=record.uploaded_at,
            size_bytes=size,
            expires_at=record.expires_at,
        ))
        return record

    # Chunked upload

    def initiate_chunked(
        self,
        metadata: FileMetadata,
        total_size: int,
        chunk_plan: Optional[ChunkPlan] = None,
        options: Optional[UploadOptions] = None,
    ) -> UploadSession:
        """
        Open a multipart session and insert an ``uploading`` record.

        Returns:
            The new session: handle, total chunk count and chunk size hint

        Raises:
            FileTooLargeError: If *total_size* exceeds the maximum file size
            PartTooLargeError: If the planned chunk size exceeds the part limit
        """
        options = options or UploadOptions()
        if total_size > self.config.max_file_size:
            raise FileTooLargeError(
                f"File size {total_size} exceeds the maximum of {self.config.max_file_size} bytes"
            )
        if total_size <= 0:
            raise UnsupportedRequestError("total_size must be positive")

        chunk_plan = chunk_plan or ChunkPlan(self.config.chunk_size)
        if chunk_plan.chunk_size > self.config.max_part_size:
            raise PartTooLargeError(
                f"Chunk size {chunk_plan.chunk_size} exceeds the part limit of "
                f"{self.config.max_part_size} bytes"
            )
        total_chunks = chunk_plan.total_chunks(total_size)

        password_hash, salt = self._hash_password(options)
        file_id = generate_file_id()
        storage_key = generate_storage_key()

        upload_id = self.storage.create_multipart_upload(storage_key, metadata.content_type)

        record = FileRecord.create_pending(
            file_id=file_id,
            storage_key=storage_key,
            metadata=metadata,
            size_bytes=total_size,
            options=options,
            max_downloads=options.resolve_max_downloads(
                self.config.default_chunked_max_downloads
            ),
            upload_id=upload_id,
            total_chunks=total_chunks,
            chunk_size=chunk_plan.chunk_size,
            now=self.clock(),
            password_hash=password_hash,
            salt=salt,
        )
        try:
            self.file_repository.insert(record)
        except Exception:
            self._discard_multipart(upload_id)
            raise

        logger.info(
            f"Chunked upload initiated: file_id={file_id}, upload_id={upload_id}, "
            f"chunks={total_chunks}"
        )
        return UploadSession.from_record(record)

    def upload_chunk(self, handle: SessionHandle, part_number: int, content: bytes) -> PartReceipt:
        """
        Forward one chunk to the multipart API.

        Re-sending a part number replaces the earlier attempt.

        Raises:
            SessionNotFoundError: If the session is unknown or finished
            UnsupportedRequestError: If the part number is out of range
            PartTooLargeError: If the chunk exceeds the part limit
        """
        _, session = self._open_session(handle)
        session.check_part_number(part_number)
        if len(content) > self.config.max_part_size:
            raise PartTooLargeError(
                f"Chunk of {len(content)} bytes exceeds the part limit of "
                f"{self.config.max_part_size} bytes"
            )
        if not content:
            raise UnsupportedRequestError("Chunk is empty")
        session.state = session.state.transition_to(UploadSessionState.UPLOADING)

        etag = self.storage.upload_part(handle.upload_id, part_number, content)
        receipt = PartReceipt(part_number=part_number, etag=etag)
        logger.debug(f"Part {part_number}/{session.total_chunks} stored for {handle.file_id}")
        return receipt

    def complete_chunked(self, handle: SessionHandle, parts: Iterable[PartReceipt]) -> FileRecord:
        """
        Assemble the parts and make the file available.

        The record is marked completed and its expiry assigned only after
        the object store accepted the part list. A rejected completion
        leaves the record ``failed``; it can be completed again or aborted.

        Raises:
            SessionNotFoundError: If the session is unknown or finished
            IncompletePartSetError: If parts do not cover 1..total_chunks
            StorageError: If the object store rejected the completion
        """
        record, session = self._open_session(handle)
        session.state = session.state.transition_to(UploadSessionState.COMPLETING)
        ordered_parts = session.validate_parts(parts)

        try:
            self.storage.complete_multipart_upload(handle.upload_id, ordered_parts)
        except StorageError:
            session.state = session.state.transition_to(UploadSessionState.FAILED)
            self.file_repository.mark_failed(handle.file_id, handle.upload_id)
            logger.error(f"Completion of upload {handle.upload_id} failed", exc_info=True)
            raise

        expires_at = self.clock() + timedelta(days=record.lifetime_days)
        try:
            marked = self.file_repository.mark_completed(handle.file_id, handle.upload_id, expires_at)
        except MetadataError:
            self._discard_object(record.storage_key)
            raise
        if not marked:
            current = self.file_repository.get(handle.file_id)
            if current is not None and current.is_completed():
                # A concurrent completion of the same session won
                return current
            self._discard_object(record.storage_key)
            raise SessionNotFoundError(
                f"Upload {handle.upload_id} was aborted during completion"
            )
        session.state = session.state.transition_to(UploadSessionState.COMPLETED)

        completed = self.file_repository.get(handle.file_id)
        if completed is None:
            raise SessionNotFoundError(f"File {handle.file_id} vanished after completion")
        self._publish(FileUploadedEvent(
            aggregate_id=handle.file_id,
            occurred_at=self.clock(),
            size_bytes=completed.size_bytes,
            expires_at=completed.expires_at,
            chunked=True,
        ))
        return completed

    def abort_chunked(self, handle: SessionHandle, reason: str = "client") -> None:
        """
        Abort a chunked upload and delete its record.

        Idempotent: a missing record is acknowledged without error. A
        completed file is never touched. Any target object a failed
        completion left behind is deleted with the staging area.
        """
        record = self.file_repository.get(handle.file_id)
        if record is None:
            self.storage.abort_multipart_upload(handle.upload_id)
            return
        if record.is_completed() or record.multipart_upload_id != handle.upload_id:
            logger.warning(
                f"Ignoring abort of {handle.upload_id}: not an open session of {handle.file_id}"
            )
            return

        self.storage.abort_multipart_upload(handle.upload_id)
        self.storage.delete(record.storage_key)
        self.file_repository.delete(handle.file_id)
        self._publish(ChunkedUploadAbortedEvent(
            aggregate_id=handle.file_id,
            occurred_at=self.clock(),
            upload_id=handle.upload_id,
            reason=reason,
        ))

    # Helpers

    def _open_session(self, handle: SessionHandle) -> Tuple[FileRecord, UploadSession]:
        record = self.file_repository.get(handle.file_id)
        if (
            record is None
            or record.is_completed()
            or record.multipart_upload_id != handle.upload_id
        ):
            raise SessionNotFoundError(
                f"No open upload session {handle.upload_id} for file {handle.file_id}"
            )
        return record, UploadSession.from_record(record)

    def _hash_password(self, options: UploadOptions) -> Tuple[Optional[str], Optional[str]]:
        if not options.has_password:
            return None, None
        salt = generate_salt(self.config.password_hash_rounds)
        return hash_password(options.password, salt), salt

    def _discard_object(self, storage_key: str) -> None:
        try:
            self.storage.delete(storage_key)
            logger.info(f"Removed orphaned object {storage_key}")
        except StorageError:
            logger.error(f"Could not remove orphaned object {storage_key}", exc_info=True)

    def _discard_multipart(self, upload_id: str) -> None:
        try:
            self.storage.abort_multipart_upload(upload_id)
        except StorageError:
            logger.error(f"Could not abort multipart upload {upload_id}", exc_info=True)

    def _publish(self, event) -> None:
        if self.event_publisher is not None:
            self.event_publisher.publish(event)
