"""
Google Cloud Storage Repository Implementation

Concrete implementation of IObjectStorageRepository for Google Cloud Storage.
Multipart uploads are staged as individual part blobs under
``_multipart/<upload_id>/`` and assembled with blob composition.
"""

import json
import logging
import uuid
from io import BytesIO
from typing import BinaryIO, List, Optional

from google.cloud import storage
from google.cloud.exceptions import GoogleCloudError, NotFound

from filedrop.domain.errors import StorageError
from filedrop.domain.file_transfer.storage_repository import IObjectStorageRepository
from filedrop.domain.file_transfer.value_objects import PartReceipt

logger = logging.getLogger(__name__)

MULTIPART_PREFIX = "_multipart"
MAX_COMPOSE_SOURCES = 32


class GCSStorageRepository(IObjectStorageRepository):
    """
    Google Cloud Storage implementation of IObjectStorageRepository.

    Thread Safety:
        The GCS client handles concurrent operations safely.

    Attributes:
        bucket_name: Name of the GCS bucket for file storage
        bucket: GCS bucket object
        timeout: Per-call timeout in seconds passed to every GCS request
    """

    def __init__(
        self,
        bucket_name: Optional[str] = None,
        bucket: Optional[storage.Bucket] = None,
        client: Optional[storage.Client] = None,
        timeout: float = 60.0,
    ):
        """
        Initialize the GCS storage repository.

        Args:
            bucket_name: Name of the GCS bucket to use for storage
            bucket: Pre-built bucket (takes precedence over bucket_name)
            client: Optional client used to build the bucket
            timeout: Per-call timeout in seconds

        Raises:
            ValueError: If neither a bucket nor a bucket name is given
        """
        if bucket is None:
            if not bucket_name or not bucket_name.strip():
                raise ValueError("bucket_name cannot be empty")
            client = client or storage.Client()
            bucket = client.bucket(bucket_name)
        self.bucket = bucket
        self.bucket_name = bucket_name or getattr(bucket, "name", None)
        self.timeout = timeout

    def save(self, key: str, content: BinaryIO, content_type: Optional[str] = None) -> None:
        if not key or not key.strip():
            raise ValueError("key cannot be empty")
        try:
            blob = self.bucket.blob(key)
            if hasattr(content, "seek"):
                content.seek(0)
            blob.upload_from_file(content, content_type=content_type, timeout=self.timeout)
        except GoogleCloudError as e:
            raise StorageError(f"Failed to save {key} to GCS", original_error=e) from e

    def get(self, key: str) -> Optional[BinaryIO]:
        if not key or not key.strip():
            return None
        try:
            content = BytesIO()
            self.bucket.blob(key).download_to_file(content, timeout=self.timeout)
            content.seek(0)
            return content
        except NotFound:
            return None
        except GoogleCloudError as e:
            raise StorageError(f"Failed to read {key} from GCS", original_error=e) from e

    def delete(self, key: str) -> bool:
        """
        Delete a blob.

        Returns:
            True if deleted, False if the blob did not exist
        """
        try:
            self.bucket.blob(key).delete(timeout=self.timeout)
            return True
        except NotFound:
            return False
        except GoogleCloudError as e:
            raise StorageError(f"Failed to delete {key} from GCS", original_error=e) from e

    def exists(self, key: str) -> bool:
        try:
            return bool(self.bucket.blob(key).exists(timeout=self.timeout))
        except GoogleCloudError as e:
            raise StorageError(f"Failed to check {key} in GCS", original_error=e) from e

    # Multipart upload

    def _staging_prefix(self, upload_id: str) -> str:
        return f"{MULTIPART_PREFIX}/{upload_id}/"

    def _manifest_name(self, upload_id: str) -> str:
        return f"{self._staging_prefix(upload_id)}manifest.json"

    def _part_name(self, upload_id: str, part_number: int) -> str:
        return f"{self._staging_prefix(upload_id)}part-{part_number:05d}"

    def _load_manifest(self, upload_id: str) -> dict:
        try:
            data = self.bucket.blob(self._manifest_name(upload_id)).download_as_bytes(
                timeout=self.timeout
            )
        except NotFound as e:
            raise StorageError(f"Unknown multipart upload {upload_id}", original_error=e) from e
        except GoogleCloudError as e:
            raise StorageError("Failed to read multipart manifest", original_error=e) from e
        return json.loads(data)

    def create_multipart_upload(self, key: str, content_type: Optional[str] = None) -> str:
        upload_id = uuid.uuid4().hex
        manifest = {"key": key, "content_type": content_type}
        try:
            self.bucket.blob(self._manifest_name(upload_id)).upload_from_string(
                json.dumps(manifest),
                content_type="application/json",
                timeout=self.timeout,
            )
        except GoogleCloudError as e:
            raise StorageError(f"Failed to start multipart upload for {key}", original_error=e) from e
        logger.debug(f"Multipart upload {upload_id} created for {key}")
        return upload_id

    def upload_part(self, upload_id: str, part_number: int, content: bytes) -> str:
        """
        Store a part as its own blob.

        Returns:
            The blob generation, which changes whenever the part is re-sent
        """
        self._load_manifest(upload_id)
        blob = self.bucket.blob(self._part_name(upload_id, part_number))
        try:
            blob.upload_from_string(content, timeout=self.timeout)
        except GoogleCloudError as e:
            raise StorageError(
                f"Failed to upload part {part_number} of {upload_id}", original_error=e
            ) from e
        return str(blob.generation)

    def complete_multipart_upload(self, upload_id: str, parts: List[PartReceipt]) -> None:
        manifest = self._load_manifest(upload_id)
        sources = []
        for part in parts:
            name = self._part_name(upload_id, part.part_number)
            try:
                blob = self.bucket.get_blob(name, timeout=self.timeout)
            except GoogleCloudError as e:
                raise StorageError(f"Failed to read part {part.part_number}", original_error=e) from e
            if blob is None:
                raise StorageError(f"Part {part.part_number} of {upload_id} was never uploaded")
            if str(blob.generation) != part.etag:
                raise StorageError(
                    f"Etag mismatch for part {part.part_number} of {upload_id}"
                )
            sources.append(blob)

        target = self.bucket.blob(manifest["key"])
        if manifest.get("content_type"):
            target.content_type = manifest["content_type"]
        try:
            # compose accepts at most 32 sources; fold the rest into the target
            target.compose(sources[:MAX_COMPOSE_SOURCES], timeout=self.timeout)
            remaining = sources[MAX_COMPOSE_SOURCES:]
            while remaining:
                batch = remaining[:MAX_COMPOSE_SOURCES - 1]
                remaining = remaining[MAX_COMPOSE_SOURCES - 1:]
                target.compose([target] + batch, timeout=self.timeout)
        except GoogleCloudError as e:
            raise StorageError(f"Failed to compose multipart upload {upload_id}", original_error=e) from e

        self._discard_staging(upload_id)
        logger.info(f"Multipart upload {upload_id} assembled into {manifest['key']} ({len(parts)} parts)")

    def abort_multipart_upload(self, upload_id: str) -> None:
        self._discard_staging(upload_id)

    def _discard_staging(self, upload_id: str) -> None:
        try:
            blobs = list(self.bucket.list_blobs(prefix=self._staging_prefix(upload_id), timeout=self.timeout))
        except GoogleCloudError as e:
            raise StorageError(f"Failed to list staging blobs of {upload_id}", original_error=e) from e
        for blob in blobs:
            try:
                blob.delete(timeout=self.timeout)
            except NotFound:
                continue
            except GoogleCloudError as e:
                raise StorageError(f"Failed to delete {blob.name}", original_error=e) from e

    def health_check(self) -> bool:
        try:
            return bool(self.bucket.exists(timeout=self.timeout))
        except GoogleCloudError as e:
            logger.warning(f"GCS health check failed: {e}")
            return False
