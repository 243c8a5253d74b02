"""
Storage Factory

Factory for creating the object storage implementation selected by the
environment. The application layer stays decoupled from the concrete
backend through the IObjectStorageRepository interface.
"""

import logging
import os

from filedrop.domain.file_transfer.storage_repository import IObjectStorageRepository
from .gcs_storage_repository import GCSStorageRepository
from .local_file_storage_repository import LocalFileStorageRepository

logger = logging.getLogger(__name__)


class StorageFactory:
    """Factory that returns the configured object storage repository."""

    @staticmethod
    def create_storage() -> IObjectStorageRepository:
        """
        Create the object storage repository.

        Returns:
            Local or GCS ``IObjectStorageRepository`` implementation.

        Environment Variables:
            STORAGE_BACKEND: ``local`` (default) or ``gcs``
            STORAGE_DIR: Base directory for local storage (default: /tmp/filedrop)
            GCS_BUCKET_NAME: Bucket used when STORAGE_BACKEND=gcs
        """
        backend = os.getenv("STORAGE_BACKEND", "local").lower()
        if backend == "gcs":
            return StorageFactory._create_gcs_storage()
        if backend != "local":
            raise RuntimeError(f"Unknown STORAGE_BACKEND: {backend}")
        return StorageFactory._create_local_storage()

    @staticmethod
    def _create_local_storage() -> IObjectStorageRepository:
        """
        Create local filesystem storage repository.

        Raises:
            RuntimeError: If local storage initialization fails
        """
        storage_dir = os.getenv("STORAGE_DIR", "/tmp/filedrop")
        try:
            storage = LocalFileStorageRepository(storage_dir)
        except Exception as e:
            raise RuntimeError(f"Failed to initialize local storage: {e}") from e
        logger.info(f"Storage factory: Using local filesystem storage at {storage_dir}")
        return storage

    @staticmethod
    def _create_gcs_storage() -> IObjectStorageRepository:
        """
        Create GCS storage repository from the initialized bucket.

        Raises:
            RuntimeError: If GCS is not configured
        """
        from filedrop.config.gcs_config import get_gcs_bucket, init_gcs

        bucket = get_gcs_bucket()
        if bucket is None and init_gcs():
            bucket = get_gcs_bucket()
        if bucket is None:
            raise RuntimeError("STORAGE_BACKEND=gcs but GCS could not be initialized")
        timeout = float(os.getenv("GCS_TIMEOUT", 60))
        logger.info(f"Storage factory: Using GCS bucket {bucket.name}")
        return GCSStorageRepository(bucket=bucket, timeout=timeout)
