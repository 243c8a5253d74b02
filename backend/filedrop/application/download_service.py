"""
Download Service

Orchestrates a download: authorize, verify the object, count the
download atomically, then hand out the bytes. The download is counted
before any byte is streamed, so a caller that loses a race for the last
allowed download never receives content.
"""

import logging
from typing import Callable, Optional

from filedrop.domain.errors import DownloadLimitReachedError
from filedrop.domain.events import FileDownloadedEvent, OrphanedRecordRemovedEvent
from filedrop.domain.file_transfer.access_gate import AccessDecision, AccessGate
from filedrop.domain.file_transfer.entities import FileRecord, utc_now
from filedrop.domain.file_transfer.repositories import FileRecordRepository
from filedrop.domain.file_transfer.storage_repository import IObjectStorageRepository
from filedrop.domain.file_transfer.value_objects import AccessOutcome

from .download_result import DownloadResult

logger = logging.getLogger(__name__)

# Outcomes reached only after every availability check passed
_AVAILABLE_OUTCOMES = (
    AccessOutcome.GRANTED,
    AccessOutcome.PASSWORD_REQUIRED,
    AccessOutcome.INVALID_PASSWORD,
)


class DownloadService:
    """
    Application service for authorizing and serving downloads.

    Records whose object is missing are deleted on sight.
    """

    def __init__(
        self,
        access_gate: AccessGate,
        file_repository: FileRecordRepository,
        storage: IObjectStorageRepository,
        event_publisher=None,
        clock: Callable = utc_now,
    ):
        self.access_gate = access_gate
        self.file_repository = file_repository
        self.storage = storage
        self.event_publisher = event_publisher
        self.clock = clock

    def check_access(self, file_id: str, credential: Optional[str] = None) -> AccessDecision:
        """
        Authorize without counting a download.

        A decision on an available file, password denials included, is
        downgraded to NOT_FOUND when the object is gone, and the stale
        record is removed.
        """
        return self._verify_object(self.access_gate.authorize(file_id, credential))

    def describe(self, file_id: str) -> AccessDecision:
        """Public file info with the same self-healing as check_access."""
        return self._verify_object(self.access_gate.describe(file_id))

    def download(self, file_id: str, credential: Optional[str] = None) -> DownloadResult:
        """
        Authorize, count and open a download.

        Returns:
            DownloadResult with an open stream on success, or the denial
        """
        decision = self.check_access(file_id, credential)
        if not decision.granted:
            return DownloadResult.create_failure(decision.outcome, decision.error_category)

        record = decision.record
        try:
            self.access_gate.record_download(file_id)
        except DownloadLimitReachedError:
            # Lost the race; report what the record looks like now
            current = self.access_gate.describe(file_id)
            outcome = AccessOutcome.LIMIT_REACHED if current.granted else current.outcome
            if outcome == AccessOutcome.LIMIT_REACHED and record.is_one_time:
                outcome = AccessOutcome.CONSUMED
            logger.info(f"Download of {file_id} rejected after authorize: {outcome.value}")
            denied = AccessDecision.deny(outcome)
            return DownloadResult.create_failure(outcome, denied.error_category)

        content = self.storage.get(record.storage_key)
        if content is None:
            self._remove_orphan(record)
            denied = AccessDecision.deny(AccessOutcome.NOT_FOUND)
            return DownloadResult.create_failure(denied.outcome, denied.error_category)

        self._publish(FileDownloadedEvent(
            aggregate_id=file_id,
            occurred_at=self.clock(),
            download_count=record.download_count + 1,
            max_downloads=record.max_downloads,
        ))
        return DownloadResult.create_success(record, content)

    def _verify_object(self, decision: AccessDecision) -> AccessDecision:
        if decision.outcome not in _AVAILABLE_OUTCOMES or decision.record is None:
            return decision
        if not self._object_present(decision.record):
            return AccessDecision.deny(AccessOutcome.NOT_FOUND)
        return decision

    def _object_present(self, record: FileRecord) -> bool:
        if self.storage.exists(record.storage_key):
            return True
        self._remove_orphan(record)
        return False

    def _remove_orphan(self, record: FileRecord) -> None:
        self.file_repository.delete(record.file_id)
        self._publish(OrphanedRecordRemovedEvent(
            aggregate_id=record.file_id,
            occurred_at=self.clock(),
            storage_key=record.storage_key,
        ))

    def _publish(self, event) -> None:
        if self.event_publisher is not None:
            self.event_publisher.publish(event)
