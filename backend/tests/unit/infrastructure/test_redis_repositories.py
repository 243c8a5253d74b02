"""
Unit tests for the Redis repositories with a mocked client.

Full behaviour against a live server is covered by the integration
suite; these tests pin down key layout, encoding and error mapping.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
import redis

from filedrop.domain.errors import MetadataError
from filedrop.domain.file_transfer.entities import FileRecord
from filedrop.domain.file_transfer.value_objects import FileMetadata, UploadOptions
from filedrop.infrastructure.redis_file_record_repository import (
    MARK_COMPLETED_SCRIPT,
    RECORD_DOWNLOAD_SCRIPT,
    RedisFileRecordRepository,
)
from filedrop.infrastructure.redis_maintenance_repository import RedisMaintenanceRepository
from filedrop.infrastructure.redis_repository import from_timestamp, to_timestamp

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def completed_record(**overrides):
    record = FileRecord.create(
        file_id=overrides.pop("file_id", "f1"),
        storage_key="files/abc",
        metadata=FileMetadata("a.txt", "text/plain"),
        size_bytes=10,
        options=UploadOptions(lifetime_days=1),
        max_downloads=overrides.pop("max_downloads", 5),
        now=NOW,
    )
    for key, value in overrides.items():
        setattr(record, key, value)
    return record


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def pipe(client):
    pipe = MagicMock()
    client.pipeline.return_value = pipe
    return pipe


@pytest.fixture
def repository(client):
    return RedisFileRecordRepository(client, key_prefix="test")


class TestTimestamps:

    def test_round_trip(self):
        assert from_timestamp(repr(to_timestamp(NOW))) == NOW

    def test_naive_datetimes_are_utc(self):
        assert to_timestamp(NOW.replace(tzinfo=None)) == to_timestamp(NOW)

    def test_empty_values(self):
        assert from_timestamp(None) is None
        assert from_timestamp(b"") is None

    def test_bytes(self):
        assert from_timestamp(str(to_timestamp(NOW)).encode()) == NOW


class TestHashEncoding:

    def test_booleans_and_none(self, repository):
        record = completed_record(is_one_time=True)

        mapping = repository._to_hash(record)

        assert mapping["is_one_time"] == "1"
        assert mapping["has_password"] == "0"
        assert "password_hash" not in mapping
        assert float(mapping["expires_ts"]) == to_timestamp(record.expires_at)

    def test_decodes_back_to_record(self, repository):
        record = completed_record(download_count=3, password_hash="h", salt="s", has_password=True)
        raw = {k.encode(): v.encode() for k, v in repository._to_hash(record).items()}

        assert repository._from_hash(raw) == record

    def test_empty_hash_is_missing(self, repository):
        assert repository._from_hash({}) is None

    def test_corrupt_hash_is_skipped(self, repository):
        assert repository._from_hash({"file_id": "f1"}) is None


class TestFileRecordRepository:

    def test_insert_completed_indexes_by_expiry(self, repository, pipe):
        record = completed_record()

        repository.insert(record)

        pipe.hset.assert_called_once()
        assert pipe.hset.call_args[0][0] == "test:file:f1"
        pipe.zadd.assert_called_once_with("test:idx:expires", {"f1": to_timestamp(record.expires_at)})
        pipe.execute.assert_called_once()

    def test_insert_pending_indexes_upload(self, repository, pipe):
        record = FileRecord.create_pending(
            file_id="f2",
            storage_key="files/x",
            metadata=FileMetadata("b.bin"),
            size_bytes=30,
            options=UploadOptions(),
            max_downloads=10,
            upload_id="up9",
            total_chunks=3,
            chunk_size=10,
            now=NOW,
        )

        repository.insert(record)

        pipe.zadd.assert_called_once_with("test:idx:pending", {"f2": to_timestamp(NOW)})
        pipe.set.assert_not_called()

    def test_insert_failure_raises_metadata_error(self, repository, pipe):
        pipe.execute.side_effect = redis.ConnectionError("down")

        with pytest.raises(MetadataError) as exc_info:
            repository.insert(completed_record())

        assert isinstance(exc_info.value.original_error, redis.ConnectionError)

    def test_get_missing(self, repository, client):
        client.hgetall.return_value = {}

        assert repository.get("nope") is None
        client.hgetall.assert_called_once_with("test:file:nope")

    def test_record_download_runs_script(self, repository, client):
        client.eval.return_value = 1

        assert repository.record_download("f1", NOW) is True

        args = client.eval.call_args[0]
        assert args[0] == RECORD_DOWNLOAD_SCRIPT
        assert args[1:4] == (2, "test:file:f1", "test:idx:exhausted")
        assert args[4:] == (NOW.isoformat(), "f1", repr(to_timestamp(NOW)))

    def test_record_download_rejected(self, repository, client):
        client.eval.return_value = -1

        assert repository.record_download("f1", NOW) is False

    def test_script_failure_is_metadata_error(self, repository, client):
        client.eval.side_effect = redis.ResponseError("NOSCRIPT")

        with pytest.raises(MetadataError):
            repository.record_download("f1", NOW)

    def test_mark_completed(self, repository, client):
        client.eval.return_value = 1
        expires = NOW + timedelta(days=7)

        assert repository.mark_completed("f1", "up1", expires) is True

        args = client.eval.call_args[0]
        assert args[0] == MARK_COMPLETED_SCRIPT
        assert args[1:5] == (3, "test:file:f1", "test:idx:expires", "test:idx:pending")

    def test_delete_many_uses_one_transaction(self, repository, client):
        write_pipe = MagicMock()
        write_pipe.execute.return_value = [1, 0, 1, 1, 0]
        client.pipeline.return_value = write_pipe

        deleted = repository.delete_many(["a", "b", "a"])

        assert deleted == 1
        client.pipeline.assert_called_once_with(transaction=True)
        assert write_pipe.delete.call_count == 2
        write_pipe.zrem.assert_any_call("test:idx:pending", "a", "b")
        write_pipe.zrem.assert_any_call("test:idx:expires", "a", "b")

    def test_delete_many_empty(self, repository, client):
        assert repository.delete_many([]) == 0
        client.pipeline.assert_not_called()

    def test_cleanup_candidates_merge_indexes(self, repository, client, pipe):
        expired = completed_record(file_id="old")
        exhausted = completed_record(file_id="used", max_downloads=2, download_count=2)
        client.zrangebyscore.return_value = [("old", to_timestamp(expired.expires_at))]
        client.zrange.return_value = [("used", to_timestamp(exhausted.expires_at))]
        pipe.execute.return_value = [repository._to_hash(expired), repository._to_hash(exhausted)]

        later = NOW + timedelta(days=2)
        candidates = repository.find_cleanup_candidates(later, limit=10)

        assert {r.file_id for r in candidates} == {"old", "used"}

    def test_cleanup_candidates_zero_limit(self, repository, client):
        assert repository.find_cleanup_candidates(NOW, 0) == []
        client.zrangebyscore.assert_not_called()

    def test_statistics(self, repository, pipe):
        pipe.execute.return_value = [5, 2, 1, 3]

        assert repository.get_statistics(NOW) == {
            "total_files": 8,
            "expired_files": 2,
            "consumed_files": 1,
            "pending_uploads": 3,
        }


class TestMaintenanceRepository:

    @pytest.fixture
    def maintenance(self, client):
        return RedisMaintenanceRepository(client, key_prefix="test")

    def test_delete_rate_limit_entries(self, maintenance, client, pipe):
        client.zrangebyscore.return_value = ["ratelimit:1.2.3.4", "ratelimit:5.6.7.8"]

        assert maintenance.delete_rate_limit_entries_before(NOW) == 2

        pipe.delete.assert_called_once_with("ratelimit:1.2.3.4", "ratelimit:5.6.7.8")
        pipe.zrem.assert_called_once_with("ratelimit:index", "ratelimit:1.2.3.4", "ratelimit:5.6.7.8")

    def test_delete_nothing(self, maintenance, client):
        client.zrangebyscore.return_value = []

        assert maintenance.delete_rate_limit_entries_before(NOW) == 0
        client.pipeline.assert_not_called()

    def test_timestamps(self, maintenance, client):
        maintenance.set_last_sweep(NOW)
        key, value = client.set.call_args[0]
        assert key == "test:meta:last_sweep"

        client.get.return_value = value
        assert maintenance.get_last_sweep() == NOW

        client.get.return_value = None
        assert maintenance.get_last_maintenance() is None

    def test_errors_are_metadata_errors(self, maintenance, client):
        client.zcard.side_effect = redis.TimeoutError()

        with pytest.raises(MetadataError):
            maintenance.count_rate_limit_entries()

    def test_run_maintenance_removes_dangling_members(self, maintenance, client, pipe):
        client.zscan_iter.side_effect = [
            iter([("f1", 1.0), ("f2", 2.0)]),
            iter([]),
            iter([]),
            iter([("ratelimit:9.9.9.9", 3.0)]),
        ]
        pipe.execute.side_effect = [[1, 0], [0]]

        result = maintenance.run_maintenance()

        assert result == {"dangling_index_entries_removed": 2}
        client.zrem.assert_any_call("test:idx:expires", "f2")
        client.zrem.assert_any_call("ratelimit:index", "ratelimit:9.9.9.9")
