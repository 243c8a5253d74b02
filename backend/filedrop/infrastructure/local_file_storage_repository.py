"""
Local File Storage Repository Implementation

Concrete implementation of IObjectStorageRepository for the local
filesystem. Multipart uploads are staged under ``.multipart/<upload_id>/``
inside the storage root and concatenated on completion.
"""

import hashlib
import json
import logging
import os
import shutil
import uuid
from io import BytesIO
from pathlib import Path
from typing import BinaryIO, List, Optional

from filedrop.domain.errors import StorageError
from filedrop.domain.file_transfer.storage_repository import IObjectStorageRepository
from filedrop.domain.file_transfer.value_objects import PartReceipt

logger = logging.getLogger(__name__)

MULTIPART_DIR = ".multipart"
COPY_BUFFER_SIZE = 8192


class LocalFileStorageRepository(IObjectStorageRepository):
    """
    Local filesystem implementation of IObjectStorageRepository.

    Thread Safety:
        Completed objects are written to a temporary file and moved into
        place with os.replace, so readers never see a partial object.

    Attributes:
        base_path: Base directory path for file storage operations
    """

    def __init__(self, base_path: str = "/tmp/filedrop"):
        """
        Initialize the local file storage repository.

        Args:
            base_path: Base directory for file storage (default: /tmp/filedrop)
        """
        self.base_path = Path(base_path)
        self._ensure_base_directory()

    def _ensure_base_directory(self) -> None:
        """
        Ensure the base storage directory exists.

        Raises:
            StorageError: If the directory cannot be created
        """
        try:
            self.base_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(
                f"Failed to create storage directory: {self.base_path}", original_error=e
            ) from e

    def _resolve(self, key: str) -> Path:
        """
        Map a key to a path inside the storage root.

        Raises:
            ValueError: If the key is empty or escapes the storage root
        """
        if not key or not key.strip():
            raise ValueError("key cannot be empty")
        root = self.base_path.resolve()
        full_path = (self.base_path / key).resolve()
        if root not in full_path.parents:
            raise ValueError(f"key escapes storage root: {key}")
        return full_path

    def _write_atomically(self, target: Path, sources) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = target.with_name(f".{target.name}.{uuid.uuid4().hex}.tmp")
        try:
            with open(tmp_path, "wb") as out:
                for source in sources:
                    shutil.copyfileobj(source, out, COPY_BUFFER_SIZE)
            os.replace(tmp_path, target)
        finally:
            if tmp_path.exists():
                tmp_path.unlink()

    def save(self, key: str, content: BinaryIO, content_type: Optional[str] = None) -> None:
        full_path = self._resolve(key)
        if hasattr(content, "seek"):
            content.seek(0)
        try:
            self._write_atomically(full_path, [content])
        except OSError as e:
            raise StorageError(f"Failed to save {key}", original_error=e) from e

    def get(self, key: str) -> Optional[BinaryIO]:
        try:
            full_path = self._resolve(key)
        except ValueError:
            return None
        if not full_path.is_file():
            return None
        try:
            with open(full_path, "rb") as f:
                return BytesIO(f.read())
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"Failed to read {key}", original_error=e) from e

    def delete(self, key: str) -> bool:
        full_path = self._resolve(key)
        try:
            full_path.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(f"Failed to delete {key}", original_error=e) from e

    def exists(self, key: str) -> bool:
        try:
            return self._resolve(key).is_file()
        except (ValueError, OSError):
            return False

    # Multipart upload

    @staticmethod
    def _is_valid_upload_id(upload_id: str) -> bool:
        return bool(upload_id) and upload_id.isalnum()

    def _staging_dir(self, upload_id: str) -> Path:
        if not self._is_valid_upload_id(upload_id):
            raise StorageError(f"Invalid multipart upload id: {upload_id!r}")
        return self.base_path / MULTIPART_DIR / upload_id

    def _part_path(self, upload_id: str, part_number: int) -> Path:
        return self._staging_dir(upload_id) / f"part-{part_number:05d}"

    def _load_manifest(self, upload_id: str) -> dict:
        manifest_path = self._staging_dir(upload_id) / "manifest.json"
        try:
            return json.loads(manifest_path.read_text())
        except FileNotFoundError as e:
            raise StorageError(f"Unknown multipart upload {upload_id}", original_error=e) from e

    def create_multipart_upload(self, key: str, content_type: Optional[str] = None) -> str:
        self._resolve(key)
        upload_id = uuid.uuid4().hex
        staging = self._staging_dir(upload_id)
        try:
            staging.mkdir(parents=True)
            (staging / "manifest.json").write_text(
                json.dumps({"key": key, "content_type": content_type})
            )
        except OSError as e:
            raise StorageError(f"Failed to start multipart upload for {key}", original_error=e) from e
        return upload_id

    def upload_part(self, upload_id: str, part_number: int, content: bytes) -> str:
        """
        Store a part; the etag is the MD5 hex digest of its bytes.
        """
        self._load_manifest(upload_id)
        try:
            self._write_atomically(self._part_path(upload_id, part_number), [BytesIO(content)])
        except OSError as e:
            raise StorageError(
                f"Failed to store part {part_number} of {upload_id}", original_error=e
            ) from e
        return hashlib.md5(content).hexdigest()

    def complete_multipart_upload(self, upload_id: str, parts: List[PartReceipt]) -> None:
        manifest = self._load_manifest(upload_id)
        paths = []
        for part in parts:
            path = self._part_path(upload_id, part.part_number)
            if not path.is_file():
                raise StorageError(f"Part {part.part_number} of {upload_id} was never uploaded")
            if self._md5_of(path) != part.etag:
                raise StorageError(f"Etag mismatch for part {part.part_number} of {upload_id}")
            paths.append(path)

        target = self._resolve(manifest["key"])
        handles = []
        try:
            handles = [open(path, "rb") for path in paths]
            self._write_atomically(target, handles)
        except OSError as e:
            raise StorageError(f"Failed to assemble multipart upload {upload_id}", original_error=e) from e
        finally:
            for handle in handles:
                handle.close()

        shutil.rmtree(self._staging_dir(upload_id), ignore_errors=True)
        logger.info(f"Multipart upload {upload_id} assembled into {manifest['key']} ({len(parts)} parts)")

    def abort_multipart_upload(self, upload_id: str) -> None:
        # No staging area can exist for an id this store never issues
        if not self._is_valid_upload_id(upload_id):
            logger.debug(f"Ignoring abort of unknown multipart upload {upload_id!r}")
            return
        staging = self._staging_dir(upload_id)
        try:
            shutil.rmtree(staging)
        except FileNotFoundError:
            return
        except OSError as e:
            raise StorageError(f"Failed to abort multipart upload {upload_id}", original_error=e) from e

    @staticmethod
    def _md5_of(path: Path) -> str:
        digest = hashlib.md5()
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(COPY_BUFFER_SIZE), b""):
                digest.update(chunk)
        return digest.hexdigest()

    def health_check(self) -> bool:
        return self.base_path.is_dir() and os.access(self.base_path, os.W_OK)
