"""
Unit Tests for the Garbage Collector

Tests batching, the time budget, error accounting, rate-limit cleanup,
interval-gated maintenance, stale chunked uploads and statistics.
"""

from datetime import timedelta
from unittest.mock import Mock

import pytest

from filedrop.application.garbage_collector import GarbageCollector
from filedrop.application.sweep_result import SweepConfig
from filedrop.domain.errors import MetadataError
from filedrop.domain.events import (
    ChunkedUploadAbortedEvent,
    OrphanedRecordRemovedEvent,
    SweepCompletedEvent,
)
from filedrop.domain.file_transfer.value_objects import FileMetadata


class SteppingTimer:
    """Monotonic timer advancing a fixed step on every read."""

    def __init__(self, step_seconds: float = 0.0):
        self.value = 0.0
        self.step = step_seconds

    def __call__(self) -> float:
        current = self.value
        self.value += self.step
        return current


@pytest.fixture
def expired_files(upload_file, clock):
    """Three files, all past their one-day lifetime."""
    records = [upload_file(content=b"x" * (i + 1), lifetime_days=1) for i in range(3)]
    clock.advance(days=2)
    return records


class TestSweepFiles:

    def test_removes_expired_files(self, collector, expired_files, file_repository, storage):
        result = collector.run_sweep(SweepConfig())

        assert result.success is True
        assert result.stats.files_processed == 3
        assert result.stats.files_deleted == 3
        assert result.stats.storage_space_freed == 1 + 2 + 3
        assert file_repository.all() == []
        assert storage.objects == {}

    def test_keeps_live_files(self, collector, upload_file, file_repository):
        record = upload_file(lifetime_days=30)

        result = collector.run_sweep(SweepConfig())

        assert result.stats.files_processed == 0
        assert file_repository.get(record.file_id) is not None

    def test_removes_consumed_and_exhausted_files(self, collector, upload_file, file_repository, access_gate):
        one_time = upload_file(one_time=True)
        limited = upload_file(max_downloads=2)
        access_gate.record_download(one_time.file_id)
        access_gate.record_download(limited.file_id)
        access_gate.record_download(limited.file_id)

        result = collector.run_sweep(SweepConfig())

        assert result.stats.files_deleted == 2
        assert file_repository.all() == []

    def test_loads_at_most_two_batches(self, collector, upload_file, clock, file_repository):
        for _ in range(7):
            upload_file(lifetime_days=1)
        clock.advance(days=2)

        result = collector.run_sweep(SweepConfig(batch_size=3))

        assert result.stats.files_processed == 6
        assert len(file_repository.all()) == 1

        second = collector.run_sweep(SweepConfig(batch_size=3))
        assert second.stats.files_processed == 1
        assert file_repository.all() == []

    def test_zero_budget_processes_nothing(self, collector, expired_files, file_repository):
        result = collector.run_sweep(SweepConfig(max_execution_time_ms=0))

        assert result.stats.files_processed == 0
        assert result.success is True
        assert len(file_repository.all()) == 3

    def test_budget_checked_before_each_batch(self, file_repository, maintenance_repository, storage, clock, upload_file):
        for _ in range(4):
            upload_file(lifetime_days=1)
        clock.advance(days=2)
        collector = GarbageCollector(
            file_repository, maintenance_repository, storage,
            clock=clock, timer=SteppingTimer(step_seconds=0.6),
        )

        # Reads: start 0.0, first check 0.6, second check 1.2
        result = collector.run_sweep(SweepConfig(batch_size=2, max_execution_time_ms=1000))

        assert result.stats.files_processed == 2
        assert len(file_repository.all()) == 2

    def test_storage_error_counted_and_row_removed(self, collector, expired_files, storage, file_repository):
        storage.failing_keys.add(expired_files[0].storage_key)

        result = collector.run_sweep(SweepConfig())

        assert result.success is False
        assert result.stats.errors == 1
        assert result.stats.files_deleted == 2
        assert len(result.errors) == 1
        assert expired_files[0].storage_key in result.errors[0]
        assert file_repository.all() == []

    def test_missing_object_still_counts_as_deleted(self, collector, expired_files, storage, published_events):
        del storage.objects[expired_files[1].storage_key]

        result = collector.run_sweep(SweepConfig())

        assert result.stats.files_deleted == 3
        assert result.stats.storage_space_freed == 1 + 3
        orphans = [e for e in published_events if isinstance(e, OrphanedRecordRemovedEvent)]
        assert [e.aggregate_id for e in orphans] == [expired_files[1].file_id]

    def test_row_delete_failure_is_counted(self, maintenance_repository, storage, clock, upload_file):
        record = upload_file(lifetime_days=1)
        clock.advance(days=2)
        file_repository = Mock()
        file_repository.find_cleanup_candidates.return_value = [record]
        file_repository.find_stale_uploads.return_value = []
        file_repository.delete_many.side_effect = MetadataError("down")
        collector = GarbageCollector(file_repository, maintenance_repository, storage, clock=clock)

        result = collector.run_sweep(SweepConfig())

        assert result.success is False
        assert result.stats.errors == 1
        assert result.errors == ["Database cleanup error: down"]
        assert result.stats.files_deleted == 1


class TestStaleUploads:

    def test_aborts_abandoned_chunked_upload(self, collector, coordinator, storage, file_repository, clock, published_events):
        session = coordinator.initiate_chunked(FileMetadata("big.iso"), total_size=30)
        coordinator.upload_chunk(session.handle, 1, b"x" * 10)
        clock.advance(days=1, seconds=1)

        result = collector.run_sweep(SweepConfig())

        assert file_repository.get(session.file_id) is None
        assert session.upload_id in storage.aborted
        assert result.stats.files_deleted == 1
        aborted = [e for e in published_events if isinstance(e, ChunkedUploadAbortedEvent)]
        assert aborted[0].reason == "stale"

    def test_removes_object_assembled_for_stale_upload(self, collector, coordinator, storage, file_repository, clock, monkeypatch):
        session = coordinator.initiate_chunked(FileMetadata("big.iso"), total_size=10)
        receipt = coordinator.upload_chunk(session.handle, 1, b"x" * 10)
        storage_key = file_repository.get(session.file_id).storage_key
        # Simulate a crash between assembly and cleanup
        monkeypatch.setattr(coordinator, "_discard_object", Mock())
        monkeypatch.setattr(
            file_repository, "mark_completed", Mock(side_effect=MetadataError("redis down"))
        )
        with pytest.raises(MetadataError):
            coordinator.complete_chunked(session.handle, [receipt])
        assert storage_key in storage.objects
        monkeypatch.undo()
        clock.advance(days=2)

        result = collector.run_sweep(SweepConfig(stale_upload_age_seconds=3600))

        assert file_repository.all() == []
        assert storage.objects == {}
        assert result.stats.errors == 0

    def test_recent_upload_is_kept(self, collector, coordinator, file_repository, clock):
        session = coordinator.initiate_chunked(FileMetadata("big.iso"), total_size=30)
        clock.advance(hours=2)

        collector.run_sweep(SweepConfig())

        assert file_repository.get(session.file_id) is not None


class TestRateLimitsAndMaintenance:

    def test_deletes_old_rate_limit_entries(self, collector, maintenance_repository, clock):
        maintenance_repository.add_rate_limit_entry("old", clock.now - timedelta(days=2))
        maintenance_repository.add_rate_limit_entry("fresh", clock.now - timedelta(hours=1))

        result = collector.run_sweep(SweepConfig())

        assert result.stats.rate_limit_entries_deleted == 1
        assert list(maintenance_repository.rate_limit_entries) == ["fresh"]

    def test_rate_limit_failure_is_counted(self, file_repository, storage, clock):
        maintenance = Mock()
        maintenance.delete_rate_limit_entries_before.side_effect = MetadataError("down")
        maintenance.get_last_maintenance.return_value = clock.now
        collector = GarbageCollector(file_repository, maintenance, storage, clock=clock)

        result = collector.run_sweep(SweepConfig())

        assert result.success is False
        assert result.stats.errors == 1

    def test_maintenance_runs_once_per_interval(self, collector, maintenance_repository, clock):
        first = collector.run_sweep(SweepConfig())
        clock.advance(days=1)
        second = collector.run_sweep(SweepConfig())
        clock.advance(days=7)
        third = collector.run_sweep(SweepConfig())

        assert first.stats.maintenance_performed is True
        assert second.stats.maintenance_performed is False
        assert third.stats.maintenance_performed is True
        assert maintenance_repository.maintenance_runs == 2
        assert maintenance_repository.last_maintenance == clock.now

    def test_maintenance_failure_does_not_fail_sweep(self, file_repository, storage, clock):
        maintenance = Mock()
        maintenance.delete_rate_limit_entries_before.return_value = 0
        maintenance.get_last_maintenance.return_value = None
        maintenance.run_maintenance.side_effect = MetadataError("busy")
        collector = GarbageCollector(file_repository, maintenance, storage, clock=clock)

        result = collector.run_sweep(SweepConfig())

        assert result.success is True
        assert result.stats.maintenance_performed is False
        maintenance.set_last_maintenance.assert_not_called()


class TestSweepResult:

    def test_never_raises(self, maintenance_repository, storage, clock):
        file_repository = Mock()
        file_repository.find_cleanup_candidates.side_effect = RuntimeError("boom")
        collector = GarbageCollector(file_repository, maintenance_repository, storage, clock=clock)

        result = collector.run_sweep(SweepConfig())

        assert result.success is False
        assert result.stats.errors == 1
        assert "boom" in result.errors[0]

    def test_records_last_sweep_and_publishes(self, collector, maintenance_repository, clock, published_events):
        result = collector.run_sweep(SweepConfig())

        assert maintenance_repository.last_sweep == clock.now
        assert result.timestamp == clock.now
        assert isinstance(published_events[-1], SweepCompletedEvent)
        assert published_events[-1].stats == result.stats.to_dict()

    def test_to_dict(self, collector, expired_files):
        data = collector.run_sweep(SweepConfig()).to_dict()

        assert data["success"] is True
        assert set(data["stats"]) == {
            "files_processed",
            "files_deleted",
            "storage_space_freed",
            "rate_limit_entries_deleted",
            "errors",
            "execution_time_ms",
            "maintenance_performed",
        }
        assert data["errors"] == []


class TestCollectStats:

    def test_reports_counts_and_bookkeeping(self, collector, upload_file, coordinator, maintenance_repository, clock):
        upload_file(lifetime_days=1)
        upload_file(lifetime_days=30)
        coordinator.initiate_chunked(FileMetadata("big.iso"), total_size=30)
        maintenance_repository.add_rate_limit_entry("ip", clock.now)
        clock.advance(days=2)

        stats = collector.collect_stats()

        assert stats["database"] == {
            "total_files": 3,
            "expired_files": 1,
            "consumed_files": 0,
            "pending_uploads": 1,
            "rate_limit_entries": 1,
        }
        assert stats["cleanup"] == {"last_run": None, "last_maintenance": None}
        assert stats["timestamp"] == clock.now.isoformat()

    def test_reports_last_run_after_sweep(self, collector, clock):
        collector.run_sweep(SweepConfig())

        stats = collector.collect_stats()

        assert stats["cleanup"]["last_run"] == clock.now.isoformat()
        assert stats["cleanup"]["last_maintenance"] == clock.now.isoformat()


class TestSweepConfig:

    def test_defaults(self):
        config = SweepConfig()

        assert config.batch_size == 50
        assert config.max_execution_time_ms == 25000
        assert config.vacuum_interval_seconds == 604800

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("BATCH_SIZE", "10")
        monkeypatch.setenv("MAX_EXECUTION_TIME", "500")
        monkeypatch.setenv("VACUUM_INTERVAL", "60")

        config = SweepConfig.from_env()

        assert config.batch_size == 10
        assert config.max_execution_time_ms == 500
        assert config.vacuum_interval_seconds == 60

    @pytest.mark.parametrize("kwargs", [
        {"batch_size": 0},
        {"max_execution_time_ms": -1},
        {"vacuum_interval_seconds": -1},
        {"stale_upload_age_seconds": -5},
    ])
    def test_rejects_invalid_values(self, kwargs):
        with pytest.raises(ValueError):
            SweepConfig(**kwargs)
