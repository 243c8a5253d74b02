"""
Logging Event Handler

Infrastructure event handler for logging domain events.
Domain layer remains unaware of logging infrastructure.
"""

import logging

from filedrop.domain.events import (
    ChunkedUploadAbortedEvent,
    DomainEvent,
    FileDownloadedEvent,
    FileUploadedEvent,
    OrphanedRecordRemovedEvent,
    SweepCompletedEvent,
)


class LoggingEventHandler:
    """
    Infrastructure event handler for logging domain events.
    """

    def __init__(self, logger: logging.Logger):
        """
        Initialize with logger instance.

        Args:
            logger: Python logging.Logger instance
        """
        self.logger = logger

    def handle(self, event: DomainEvent) -> None:
        """
        Handle domain event by logging it.

        Args:
            event: Domain event to log
        """
        try:
            if isinstance(event, FileUploadedEvent):
                self._handle_file_uploaded(event)
            elif isinstance(event, ChunkedUploadAbortedEvent):
                self._handle_upload_aborted(event)
            elif isinstance(event, FileDownloadedEvent):
                self._handle_file_downloaded(event)
            elif isinstance(event, OrphanedRecordRemovedEvent):
                self._handle_orphan_removed(event)
            elif isinstance(event, SweepCompletedEvent):
                self._handle_sweep_completed(event)
            else:
                self.logger.debug(
                    f"Unhandled event: {event.__class__.__name__} "
                    f"(aggregate_id={event.aggregate_id})"
                )
        except Exception as e:
            # Log handler errors but don't fail the operation
            self.logger.error(
                f"Error in logging event handler for {event.__class__.__name__}: {e}",
                exc_info=True,
            )

    def _handle_file_uploaded(self, event: FileUploadedEvent) -> None:
        kind = "chunked" if event.chunked else "simple"
        self.logger.info(
            f"File uploaded ({kind}): file_id={event.aggregate_id}, "
            f"size={event.size_bytes} bytes, expires_at={event.expires_at.isoformat()}"
        )

    def _handle_upload_aborted(self, event: ChunkedUploadAbortedEvent) -> None:
        self.logger.info(
            f"Chunked upload aborted: file_id={event.aggregate_id}, "
            f"upload_id={event.upload_id}, reason={event.reason}"
        )

    def _handle_file_downloaded(self, event: FileDownloadedEvent) -> None:
        self.logger.info(
            f"File downloaded: file_id={event.aggregate_id}, "
            f"count={event.download_count}/{event.max_downloads}"
        )

    def _handle_orphan_removed(self, event: OrphanedRecordRemovedEvent) -> None:
        self.logger.warning(
            f"Removed record with missing object: file_id={event.aggregate_id}, "
            f"storage_key={event.storage_key}"
        )

    def _handle_sweep_completed(self, event: SweepCompletedEvent) -> None:
        log = self.logger.info if event.success else self.logger.warning
        stats = event.stats
        log(
            f"Sweep completed: success={event.success}, "
            f"processed={stats.get('files_processed', 0)}, "
            f"deleted={stats.get('files_deleted', 0)}, "
            f"freed={stats.get('storage_space_freed', 0)} bytes, "
            f"errors={stats.get('errors', 0)}, "
            f"time={stats.get('execution_time_ms', 0)}ms"
        )
