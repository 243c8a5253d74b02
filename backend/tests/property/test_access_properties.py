"""
Property-based tests for the access gate and the download counter.

The in-memory repository performs the conditional increment under a
lock, mirroring the Lua script of the Redis store.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace

from hypothesis import given, strategies as st

from filedrop.domain.file_transfer.access_gate import AccessGate
from filedrop.domain.file_transfer.security import generate_salt, hash_password
from filedrop.domain.file_transfer.value_objects import AccessOutcome, UploadStatus
from tests.conftest import TEST_HASH_ROUNDS, FakeClock
from tests.fixtures.mock_repositories import InMemoryFileRecordRepository
from tests.property.strategies import REFERENCE_NOW, file_records, passwords


def make_gate(*records):
    repository = InMemoryFileRecordRepository()
    for record in records:
        repository.put(record)
    gate = AccessGate(repository, clock=FakeClock(REFERENCE_NOW))
    return gate, repository


class TestAccessProperties:

    @given(record=file_records())
    def test_granted_files_are_available(self, record):
        gate, _ = make_gate(record)

        decision = gate.authorize(record.file_id)

        if decision.granted:
            assert record.is_completed()
            assert not record.is_expired(REFERENCE_NOW)
            assert not record.is_consumed()
            assert record.download_count < record.max_downloads

    @given(record=file_records(status=UploadStatus.UPLOADING))
    def test_uploads_in_flight_are_never_granted(self, record):
        gate, _ = make_gate(record)

        assert gate.authorize(record.file_id).outcome == AccessOutcome.NOT_FOUND
        assert gate.describe(record.file_id).outcome == AccessOutcome.NOT_FOUND

    @given(record=file_records(status=UploadStatus.FAILED))
    def test_failed_uploads_are_never_granted(self, record):
        gate, _ = make_gate(record)

        assert gate.authorize(record.file_id).outcome == AccessOutcome.NOT_FOUND

    @given(record=file_records(status=UploadStatus.COMPLETED))
    def test_expiry_is_reported_first(self, record):
        gate, _ = make_gate(record)

        outcome = gate.authorize(record.file_id).outcome

        assert (outcome == AccessOutcome.EXPIRED) == record.is_expired(REFERENCE_NOW)

    @given(record=file_records(status=UploadStatus.COMPLETED))
    def test_consumption_is_reported_before_the_limit(self, record):
        record = replace(record, expires_at=REFERENCE_NOW)
        gate, _ = make_gate(record)

        outcome = gate.authorize(record.file_id).outcome

        if record.is_consumed():
            assert outcome == AccessOutcome.CONSUMED
        elif record.is_limit_reached():
            assert outcome == AccessOutcome.LIMIT_REACHED
        else:
            assert outcome == AccessOutcome.GRANTED

    @given(
        record=file_records(status=UploadStatus.COMPLETED),
        password=passwords(),
        credential=st.none() | st.text(max_size=20),
    )
    def test_password_checked_only_for_available_files(self, record, password, credential):
        salt = generate_salt(TEST_HASH_ROUNDS)
        record = replace(
            record,
            has_password=True,
            salt=salt,
            password_hash=hash_password(password, salt),
        )
        gate, _ = make_gate(record)

        outcome = gate.authorize(record.file_id, credential).outcome
        available = gate.describe(record.file_id).granted

        if not available:
            assert outcome.is_terminal()
        elif not credential:
            assert outcome == AccessOutcome.PASSWORD_REQUIRED
        elif credential == password:
            assert outcome == AccessOutcome.GRANTED
        else:
            assert outcome == AccessOutcome.INVALID_PASSWORD


class TestDownloadCounterProperties:

    @given(
        record=file_records(status=UploadStatus.COMPLETED),
        attempts=st.integers(min_value=1, max_value=60),
    )
    def test_count_never_exceeds_limit(self, record, attempts):
        record = replace(record, download_count=0, expires_at=REFERENCE_NOW)
        gate, repository = make_gate(record)

        successes = 0
        for _ in range(attempts):
            if gate.authorize(record.file_id).granted:
                gate.record_download(record.file_id)
                successes += 1

        allowed = 1 if record.is_one_time else record.max_downloads
        stored = repository.get(record.file_id)
        assert successes == min(attempts, allowed)
        assert 0 <= stored.download_count <= stored.max_downloads
        assert stored.download_count == successes


class TestConcurrentOneTimeDownload:
    """Many callers race for a one-time file; exactly one gets the bytes."""

    def test_exactly_one_download_succeeds(self, upload_file, download_service, file_repository):
        record = upload_file(content=b"secret", one_time=True)
        callers = 16
        barrier = threading.Barrier(callers)

        def attempt(_):
            barrier.wait()
            return download_service.download(record.file_id)

        with ThreadPoolExecutor(max_workers=callers) as pool:
            results = list(pool.map(attempt, range(callers)))

        winners = [r for r in results if r.success]
        assert len(winners) == 1
        assert winners[0].content.read() == b"secret"
        assert all(r.outcome == AccessOutcome.CONSUMED for r in results if not r.success)
        assert file_repository.get(record.file_id).download_count == 1

    def test_limit_holds_under_contention(self, upload_file, download_service, file_repository):
        record = upload_file(max_downloads=3)
        callers = 12
        barrier = threading.Barrier(callers)

        def attempt(_):
            barrier.wait()
            return download_service.download(record.file_id)

        with ThreadPoolExecutor(max_workers=callers) as pool:
            results = list(pool.map(attempt, range(callers)))

        assert sum(1 for r in results if r.success) == 3
        assert all(r.outcome == AccessOutcome.LIMIT_REACHED for r in results if not r.success)
        assert file_repository.get(record.file_id).download_count == 3

    def test_repository_increment_is_atomic(self, upload_file, file_repository, access_gate, clock):
        record = upload_file(one_time=True)
        callers = 8
        barrier = threading.Barrier(callers)

        def increment(_):
            barrier.wait()
            return file_repository.record_download(record.file_id, clock.now)

        with ThreadPoolExecutor(max_workers=callers) as pool:
            outcomes = list(pool.map(increment, range(callers)))

        assert outcomes.count(True) == 1
        assert access_gate.authorize(record.file_id).outcome == AccessOutcome.CONSUMED
