"""Unit tests for LocalFileStorageRepository specifics."""

import hashlib
from io import BytesIO

import pytest

from filedrop.domain.errors import StorageError
from filedrop.domain.file_transfer.value_objects import PartReceipt
from filedrop.infrastructure.local_file_storage_repository import (
    MULTIPART_DIR,
    LocalFileStorageRepository,
)


@pytest.fixture
def repo(tmp_path):
    return LocalFileStorageRepository(str(tmp_path / "store"))


def test_creates_base_directory(tmp_path):
    LocalFileStorageRepository(str(tmp_path / "a" / "b"))

    assert (tmp_path / "a" / "b").is_dir()


def test_rejects_keys_escaping_root(repo):
    with pytest.raises(ValueError):
        repo.save("../outside.txt", BytesIO(b"x"))
    assert repo.exists("../outside.txt") is False
    assert repo.get("../../etc/passwd") is None


def test_rejects_empty_key(repo):
    with pytest.raises(ValueError):
        repo.save("  ", BytesIO(b"x"))


def test_save_rewinds_stream(repo):
    content = BytesIO(b"hello")
    content.read()

    repo.save("files/a", content)

    assert repo.get("files/a").read() == b"hello"


def test_no_temporary_files_left(repo, tmp_path):
    repo.save("files/a", BytesIO(b"hello"))

    leftovers = [p.name for p in (tmp_path / "store" / "files").iterdir()]
    assert leftovers == ["a"]


def test_multipart_staging_is_removed_after_completion(repo, tmp_path):
    upload_id = repo.create_multipart_upload("files/big", "application/zip")
    etag = repo.upload_part(upload_id, 1, b"abc")

    repo.complete_multipart_upload(upload_id, [PartReceipt(1, etag)])

    assert etag == hashlib.md5(b"abc").hexdigest()
    assert not (tmp_path / "store" / MULTIPART_DIR / upload_id).exists()
    with repo.get("files/big") as assembled:
        assert assembled.read() == b"abc"


def test_missing_part_is_rejected(repo):
    upload_id = repo.create_multipart_upload("files/big")
    etag = repo.upload_part(upload_id, 1, b"abc")

    with pytest.raises(StorageError, match="never uploaded"):
        repo.complete_multipart_upload(upload_id, [PartReceipt(1, etag), PartReceipt(2, "x")])
    assert repo.exists("files/big") is False


def test_invalid_upload_id(repo):
    with pytest.raises(StorageError):
        repo.upload_part("../escape", 1, b"x")


def test_unknown_upload_id(repo):
    with pytest.raises(StorageError, match="Unknown multipart upload"):
        repo.upload_part("deadbeef", 1, b"x")


def test_health_check(repo):
    assert repo.health_check() is True
