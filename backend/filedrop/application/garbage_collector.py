"""
Garbage Collector

Periodic sweep keeping the object store and the metadata store
consistent: removes expired, consumed and exhausted files, abandoned
chunked uploads and stale rate-limit rows, and runs store maintenance
at most once per interval.
"""

import logging
import time
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from filedrop.domain.errors import DomainError, MetadataError, StorageError
from filedrop.domain.events import (
    ChunkedUploadAbortedEvent,
    OrphanedRecordRemovedEvent,
    SweepCompletedEvent,
)
from filedrop.domain.file_transfer.entities import FileRecord, utc_now
from filedrop.domain.file_transfer.repositories import (
    FileRecordRepository,
    MaintenanceRepository,
)
from filedrop.domain.file_transfer.storage_repository import IObjectStorageRepository

from .sweep_result import SweepConfig, SweepResult, SweepStats

logger = logging.getLogger(__name__)


class GarbageCollector:
    """
    Batched, time-bounded cleanup of eligible records.

    Each run is a function of store state only; records left over when
    the time budget runs out still match the query on the next run.
    """

    def __init__(
        self,
        file_repository: FileRecordRepository,
        maintenance_repository: MaintenanceRepository,
        storage: IObjectStorageRepository,
        event_publisher=None,
        clock: Callable[[], datetime] = utc_now,
        timer: Callable[[], float] = time.monotonic,
    ):
        self.file_repository = file_repository
        self.maintenance_repository = maintenance_repository
        self.storage = storage
        self.event_publisher = event_publisher
        self.clock = clock
        self.timer = timer

    def run_sweep(self, config: Optional[SweepConfig] = None) -> SweepResult:
        """
        Run one sweep.

        Never raises: unexpected failures are reported through
        ``success=False`` and the error list.
        """
        config = config or SweepConfig.from_env()
        started = self.timer()
        now = self.clock()
        stats = SweepStats()
        errors: List[str] = []

        logger.info(
            f"Starting sweep (batch_size={config.batch_size}, "
            f"max_execution_time={config.max_execution_time_ms}ms)"
        )

        try:
            self._sweep_files(config, now, started, stats, errors)
            self._sweep_stale_uploads(config, now, started, stats, errors)
            self._cleanup_rate_limits(config, now, stats, errors)
            self._maybe_run_maintenance(config, now, stats)
        except Exception as e:
            stats.errors += 1
            errors.append(f"Sweep aborted: {e}")
            logger.error(f"Sweep aborted by unexpected error: {e}", exc_info=True)

        stats.execution_time_ms = self._elapsed_ms(started)

        try:
            self.maintenance_repository.set_last_sweep(now)
        except DomainError as e:
            logger.warning(f"Could not persist last sweep time: {e}")

        result = SweepResult(
            success=stats.errors == 0,
            stats=stats,
            timestamp=now,
            errors=errors,
        )
        self._publish(SweepCompletedEvent(
            aggregate_id=uuid.uuid4().hex,
            occurred_at=self.clock(),
            success=result.success,
            stats=stats.to_dict(),
        ))
        return result

    def collect_stats(self) -> Dict[str, Any]:
        """Record counts and collector bookkeeping for monitoring."""
        now = self.clock()
        database = dict(self.file_repository.get_statistics(now))
        database["rate_limit_entries"] = self.maintenance_repository.count_rate_limit_entries()
        last_sweep = self.maintenance_repository.get_last_sweep()
        last_maintenance = self.maintenance_repository.get_last_maintenance()
        return {
            "timestamp": now.isoformat(),
            "database": database,
            "cleanup": {
                "last_run": last_sweep.isoformat() if last_sweep else None,
                "last_maintenance": last_maintenance.isoformat() if last_maintenance else None,
            },
        }

    # Steps

    def _sweep_files(self, config, now, started, stats, errors) -> None:
        candidates = self.file_repository.find_cleanup_candidates(now, config.batch_size * 2)
        logger.debug(f"Found {len(candidates)} cleanup candidates")

        for offset in range(0, len(candidates), config.batch_size):
            if self._budget_exhausted(config, started):
                logger.info(
                    f"Time budget reached after {stats.files_processed} records, "
                    f"{len(candidates) - offset} left for the next run"
                )
                return
            batch = candidates[offset:offset + config.batch_size]
            stats.files_processed += len(batch)
            self._process_batch(batch, stats, errors)

    def _process_batch(self, batch: List[FileRecord], stats: SweepStats, errors: List[str]) -> None:
        to_delete = []
        for record in batch:
            try:
                existed = self.storage.delete(record.storage_key)
                stats.files_deleted += 1
                if existed:
                    stats.storage_space_freed += record.size_bytes
                else:
                    self._publish(OrphanedRecordRemovedEvent(
                        aggregate_id=record.file_id,
                        occurred_at=self.clock(),
                        storage_key=record.storage_key,
                    ))
            except StorageError as e:
                stats.errors += 1
                errors.append(f"Failed to delete object {record.storage_key}: {e}")
                logger.warning(f"Failed to delete object for {record.file_id}: {e}")
            # The row goes even when the object delete failed
            to_delete.append(record.file_id)

        self._delete_rows(to_delete, stats, errors)

    def _sweep_stale_uploads(self, config, now, started, stats, errors) -> None:
        if self._budget_exhausted(config, started):
            return
        cutoff = now - timedelta(seconds=config.stale_upload_age_seconds)
        stale = self.file_repository.find_stale_uploads(cutoff, config.batch_size)
        if not stale:
            return

        stats.files_processed += len(stale)
        to_delete = []
        for record in stale:
            try:
                if record.multipart_upload_id:
                    self.storage.abort_multipart_upload(record.multipart_upload_id)
                # Left behind when the object store assembled it but the record update failed
                self.storage.delete(record.storage_key)
                stats.files_deleted += 1
                self._publish(ChunkedUploadAbortedEvent(
                    aggregate_id=record.file_id,
                    occurred_at=self.clock(),
                    upload_id=record.multipart_upload_id or "",
                    reason="stale",
                ))
            except StorageError as e:
                stats.errors += 1
                errors.append(f"Failed to abort upload {record.multipart_upload_id}: {e}")
                logger.warning(f"Failed to abort stale upload of {record.file_id}: {e}")
            to_delete.append(record.file_id)

        self._delete_rows(to_delete, stats, errors)

    def _delete_rows(self, file_ids: List[str], stats: SweepStats, errors: List[str]) -> None:
        if not file_ids:
            return
        try:
            deleted = self.file_repository.delete_many(file_ids)
            logger.debug(f"Deleted {deleted} records")
        except MetadataError as e:
            stats.errors += 1
            errors.append(f"Database cleanup error: {e}")
            logger.error(f"Failed to delete {len(file_ids)} records: {e}")

    def _cleanup_rate_limits(self, config, now, stats, errors) -> None:
        cutoff = now - timedelta(seconds=config.rate_limit_retention_seconds)
        try:
            stats.rate_limit_entries_deleted = (
                self.maintenance_repository.delete_rate_limit_entries_before(cutoff)
            )
        except MetadataError as e:
            stats.errors += 1
            errors.append(f"Rate limit cleanup error: {e}")
            logger.error(f"Rate limit cleanup failed: {e}")

    def _maybe_run_maintenance(self, config, now, stats) -> None:
        try:
            last = self.maintenance_repository.get_last_maintenance()
            if last is not None and (now - last).total_seconds() < config.vacuum_interval_seconds:
                logger.debug(f"Skipping maintenance, last run at {last.isoformat()}")
                return
            result = self.maintenance_repository.run_maintenance()
            self.maintenance_repository.set_last_maintenance(now)
            stats.maintenance_performed = True
            logger.info(f"Store maintenance completed: {result}")
        except MetadataError as e:
            logger.error(f"Store maintenance failed: {e}", exc_info=True)

    # Helpers

    def _elapsed_ms(self, started: float) -> int:
        return int((self.timer() - started) * 1000)

    def _budget_exhausted(self, config: SweepConfig, started: float) -> bool:
        return self._elapsed_ms(started) >= config.max_execution_time_ms

    def _publish(self, event) -> None:
        if self.event_publisher is not None:
            self.event_publisher.publish(event)
