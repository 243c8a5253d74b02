"""
Object Storage Repository Interface

Abstract interface for object storage, including the multipart API used
by chunked uploads. Keeps the domain independent of the concrete backend
(local filesystem or Google Cloud Storage).
"""

from abc import ABC, abstractmethod
from typing import BinaryIO, List, Optional

from .value_objects import PartReceipt


class IObjectStorageRepository(ABC):
    """
    Unified interface for object storage operations.

    Contract Guarantees:
    - Keys are opaque strings chosen by the caller (never user input)
    - get() returns None for missing objects instead of raising
    - delete() and abort_multipart_upload() are idempotent
    - upload_part() overwrites an earlier part with the same number
    - Backend failures raise StorageError wrapping the original exception

    Implementation Requirements:
    - complete_multipart_upload() must assemble parts in the given order
      and must fail if a part is missing or its etag does not match
    - A completed or aborted multipart upload leaves no staging data behind
    """

    @abstractmethod
    def save(self, key: str, content: BinaryIO, content_type: Optional[str] = None) -> None:
        """
        Store an object, replacing any existing object under *key*.

        Args:
            key: Object key (e.g. 'files/3f2a...')
            content: Binary content as a file-like object
            content_type: Optional MIME type recorded with the object

        Raises:
            StorageError: If the write failed
        """
        pass  # pragma: no cover

    @abstractmethod
    def get(self, key: str) -> Optional[BinaryIO]:
        """
        Open an object for reading.

        Returns:
            File-like object positioned at the start, or None if missing

        Raises:
            StorageError: If the backend failed for another reason
        """
        pass  # pragma: no cover

    @abstractmethod
    def delete(self, key: str) -> bool:
        """
        Delete an object.

        Returns:
            True if the object existed and was deleted, False if it was
            already absent

        Raises:
            StorageError: If the backend failed
        """
        pass  # pragma: no cover

    @abstractmethod
    def exists(self, key: str) -> bool:
        """Check whether an object exists."""
        pass  # pragma: no cover

    @abstractmethod
    def create_multipart_upload(self, key: str, content_type: Optional[str] = None) -> str:
        """
        Open a multipart upload targeting *key*.

        Returns:
            Opaque upload id
        """
        pass  # pragma: no cover

    @abstractmethod
    def upload_part(self, upload_id: str, part_number: int, content: bytes) -> str:
        """
        Store one part of a multipart upload.

        Returns:
            Etag identifying the stored part

        Raises:
            StorageError: If the upload id is unknown or the write failed
        """
        pass  # pragma: no cover

    @abstractmethod
    def complete_multipart_upload(self, upload_id: str, parts: List[PartReceipt]) -> None:
        """
        Assemble the parts, in the given order, into the target object.

        Raises:
            StorageError: If a part is missing, an etag does not match or
                the backend failed
        """
        pass  # pragma: no cover

    @abstractmethod
    def abort_multipart_upload(self, upload_id: str) -> None:
        """Discard every staged part. Unknown upload ids are a no-op."""
        pass  # pragma: no cover

    def health_check(self) -> bool:
        """Check whether the backend is reachable."""
        return True
