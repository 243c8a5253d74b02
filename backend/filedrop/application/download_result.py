"""
Download Result Value Object

Encapsulates the outcome of a download attempt.
"""

from dataclasses import dataclass
from typing import Any, BinaryIO, Dict, Optional

from filedrop.domain.errors import ErrorCategory
from filedrop.domain.file_transfer.entities import FileRecord
from filedrop.domain.file_transfer.value_objects import AccessOutcome


@dataclass
class DownloadResult:
    """
    Value object representing the result of a download attempt.

    On success ``content`` is an open stream positioned at the start;
    the download has already been counted.
    """

    success: bool
    outcome: AccessOutcome
    record: Optional[FileRecord] = None
    content: Optional[BinaryIO] = None
    error_category: Optional[ErrorCategory] = None

    @classmethod
    def create_success(cls, record: FileRecord, content: BinaryIO) -> 'DownloadResult':
        """
        Create a successful download result.

        Args:
            record: Record of the downloaded file
            content: Stream with the file bytes
        """
        return cls(
            success=True,
            outcome=AccessOutcome.GRANTED,
            record=record,
            content=content,
        )

    @classmethod
    def create_failure(
        cls,
        outcome: AccessOutcome,
        error_category: ErrorCategory,
    ) -> 'DownloadResult':
        """
        Create a failed download result.

        Args:
            outcome: Denial reported by the access gate
            error_category: Category used for the error response
        """
        return cls(
            success=False,
            outcome=outcome,
            error_category=error_category,
        )

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert result to dictionary for serialization (never the bytes).
        """
        result = {
            'status': 'granted' if self.success else 'denied',
            'outcome': self.outcome.value,
        }
        if self.success and self.record is not None:
            result['file'] = self.record.to_public_dict()
        if self.error_category:
            result['error_category'] = self.error_category.value
        return result
