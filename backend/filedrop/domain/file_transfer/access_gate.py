"""
Access Control Gate

Decides whether a link holder may download a file and atomically
records consumed downloads.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from filedrop.domain.errors import DownloadLimitReachedError, ErrorCategory

from .entities import FileRecord, utc_now
from .repositories import FileRecordRepository
from .security import verify_password
from .value_objects import AccessOutcome

logger = logging.getLogger(__name__)


_OUTCOME_CATEGORIES = {
    AccessOutcome.PASSWORD_REQUIRED: ErrorCategory.PASSWORD_REQUIRED,
    AccessOutcome.INVALID_PASSWORD: ErrorCategory.INVALID_PASSWORD,
    AccessOutcome.NOT_FOUND: ErrorCategory.FILE_NOT_FOUND,
    AccessOutcome.EXPIRED: ErrorCategory.FILE_EXPIRED,
    AccessOutcome.CONSUMED: ErrorCategory.FILE_CONSUMED,
    AccessOutcome.LIMIT_REACHED: ErrorCategory.DOWNLOAD_LIMIT_REACHED,
}


@dataclass(frozen=True)
class AccessDecision:
    """
    Result of an access check.

    ``record`` is set for GRANTED, and for denials where the record
    exists, so callers can log context. It is never exposed for denials.
    """
    outcome: AccessOutcome
    record: Optional[FileRecord] = None

    @property
    def granted(self) -> bool:
        return self.outcome == AccessOutcome.GRANTED

    @property
    def error_category(self) -> Optional[ErrorCategory]:
        return _OUTCOME_CATEGORIES.get(self.outcome)

    @classmethod
    def grant(cls, record: FileRecord) -> "AccessDecision":
        return cls(AccessOutcome.GRANTED, record)

    @classmethod
    def deny(cls, outcome: AccessOutcome, record: Optional[FileRecord] = None) -> "AccessDecision":
        return cls(outcome, record)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"outcome": self.outcome.value}
        if self.granted and self.record is not None:
            payload["file"] = self.record.to_public_dict()
        return payload


class AccessGate:
    """
    Evaluates a file record against the current time and a credential.

    Checks run in a fixed order and short-circuit on the first failure:
    existence and completion, expiry, one-time consumption, download
    limit, password presence, password match.
    """

    def __init__(
        self,
        repository: FileRecordRepository,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.repository = repository
        self.clock = clock

    def authorize(self, file_id: str, credential: Optional[str] = None) -> AccessDecision:
        """
        Decide whether *file_id* may be downloaded.

        Args:
            file_id: Public file identifier
            credential: Password supplied by the caller, if any

        Returns:
            AccessDecision with one of the AccessOutcome values
        """
        decision = self._check_availability(file_id)
        if not decision.granted:
            return decision

        record = decision.record
        if record.has_password:
            if not credential:
                return AccessDecision.deny(AccessOutcome.PASSWORD_REQUIRED, record)
            if not verify_password(credential, record.salt, record.password_hash):
                logger.info(f"Invalid password attempt for file {file_id}")
                return AccessDecision.deny(AccessOutcome.INVALID_PASSWORD, record)

        return AccessDecision.grant(record)

    def describe(self, file_id: str) -> AccessDecision:
        """
        Public info view: availability checks only, no password check.

        A granted decision carries the record so the caller can render
        its public fields, ``has_password`` included.
        """
        return self._check_availability(file_id)

    def record_download(self, file_id: str) -> None:
        """
        Atomically count one download.

        Raises:
            DownloadLimitReachedError: If the conditional increment matched
                no record (limit reached, consumed, or gone)
        """
        if not self.repository.record_download(file_id, self.clock()):
            raise DownloadLimitReachedError(
                f"Download of {file_id} rejected: limit reached or file unavailable"
            )

    def _check_availability(self, file_id: str) -> AccessDecision:
        record = self.repository.get(file_id)
        if record is None or not record.is_completed():
            return AccessDecision.deny(AccessOutcome.NOT_FOUND)

        if record.is_expired(self.clock()):
            return AccessDecision.deny(AccessOutcome.EXPIRED, record)

        if record.is_consumed():
            return AccessDecision.deny(AccessOutcome.CONSUMED, record)

        if record.is_limit_reached():
            return AccessDecision.deny(AccessOutcome.LIMIT_REACHED, record)

        return AccessDecision.grant(record)
