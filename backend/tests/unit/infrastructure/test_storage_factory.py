"""Unit tests for StorageFactory backend selection."""

from unittest.mock import MagicMock, patch

import pytest

from filedrop.infrastructure.gcs_storage_repository import GCSStorageRepository
from filedrop.infrastructure.local_file_storage_repository import LocalFileStorageRepository
from filedrop.infrastructure.storage_factory import StorageFactory


def test_defaults_to_local(monkeypatch, tmp_path):
    monkeypatch.delenv("STORAGE_BACKEND", raising=False)
    monkeypatch.setenv("STORAGE_DIR", str(tmp_path))

    storage = StorageFactory.create_storage()

    assert isinstance(storage, LocalFileStorageRepository)
    assert storage.base_path == tmp_path


def test_unknown_backend(monkeypatch):
    monkeypatch.setenv("STORAGE_BACKEND", "ftp")

    with pytest.raises(RuntimeError, match="Unknown STORAGE_BACKEND"):
        StorageFactory.create_storage()


def test_gcs_backend_uses_initialized_bucket(monkeypatch):
    monkeypatch.setenv("STORAGE_BACKEND", "GCS")
    monkeypatch.setenv("GCS_TIMEOUT", "12")
    bucket = MagicMock()
    bucket.name = "files"

    with patch("filedrop.config.gcs_config.get_gcs_bucket", return_value=bucket):
        storage = StorageFactory.create_storage()

    assert isinstance(storage, GCSStorageRepository)
    assert storage.bucket is bucket
    assert storage.timeout == 12.0


def test_gcs_backend_fails_without_bucket(monkeypatch):
    monkeypatch.setenv("STORAGE_BACKEND", "gcs")

    with patch("filedrop.config.gcs_config.get_gcs_bucket", return_value=None), \
            patch("filedrop.config.gcs_config.init_gcs", return_value=False):
        with pytest.raises(RuntimeError, match="GCS could not be initialized"):
            StorageFactory.create_storage()


def test_local_backend_failure_is_runtime_error(monkeypatch, tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("not a directory")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("STORAGE_DIR", str(blocker / "sub"))

    with pytest.raises(RuntimeError, match="Failed to initialize local storage"):
        StorageFactory.create_storage()
