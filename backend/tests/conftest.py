"""
Shared pytest fixtures and configuration for the FileDrop backend test suite.

This module provides:
- Hypothesis configuration for property-based testing
- A controllable clock
- In-memory repositories and object storage
- Fully wired application services built on the in-memory fakes
"""

import io
from datetime import datetime, timedelta, timezone

import pytest
from hypothesis import HealthCheck, Phase, settings

from filedrop.application.download_service import DownloadService
from filedrop.application.event_publisher import EventPublisher
from filedrop.application.garbage_collector import GarbageCollector
from filedrop.application.upload_coordinator import UploadCoordinator
from filedrop.config.transfer_config import TransferConfig
from filedrop.domain.file_transfer.access_gate import AccessGate
from filedrop.domain.file_transfer.value_objects import FileMetadata, UploadOptions
from tests.fixtures.mock_repositories import (
    InMemoryFileRecordRepository,
    InMemoryMaintenanceRepository,
    InMemoryObjectStorage,
)

# Register Hypothesis profiles
settings.register_profile(
    "default",
    max_examples=100,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.target, Phase.shrink],
)
settings.register_profile(
    "ci",
    max_examples=200,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
)
settings.register_profile(
    "dev",
    max_examples=10,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
)
settings.load_profile("default")

# bcrypt minimum cost; tests only need hashing to be correct
TEST_HASH_ROUNDS = 4


class FakeClock:
    """Clock returning a fixed time that tests advance explicitly."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


# =============================================================================
# Clock and Configuration Fixtures
# =============================================================================

@pytest.fixture
def clock() -> FakeClock:
    """Provide a clock frozen at a known UTC time."""
    return FakeClock(datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def transfer_config() -> TransferConfig:
    """Small limits so size checks are easy to exercise."""
    config = TransferConfig()
    config.max_file_size = 1000
    config.simple_upload_threshold = 100
    config.chunk_size = 10
    config.max_part_size = 20
    config.default_max_downloads = 999999
    config.default_chunked_max_downloads = 10
    config.password_hash_rounds = TEST_HASH_ROUNDS
    return config


# =============================================================================
# In-Memory Infrastructure Fixtures
# =============================================================================

@pytest.fixture
def file_repository() -> InMemoryFileRecordRepository:
    return InMemoryFileRecordRepository()


@pytest.fixture
def maintenance_repository() -> InMemoryMaintenanceRepository:
    return InMemoryMaintenanceRepository()


@pytest.fixture
def storage() -> InMemoryObjectStorage:
    return InMemoryObjectStorage()


@pytest.fixture
def event_publisher() -> EventPublisher:
    return EventPublisher()


@pytest.fixture
def published_events(event_publisher):
    """Collect every event published during the test."""
    from filedrop.domain.events import DomainEvent

    events = []
    event_publisher.subscribe(DomainEvent, events.append)
    return events


# =============================================================================
# Application Service Fixtures
# =============================================================================

@pytest.fixture
def coordinator(file_repository, storage, transfer_config, event_publisher, clock):
    return UploadCoordinator(
        file_repository,
        storage,
        config=transfer_config,
        event_publisher=event_publisher,
        clock=clock,
    )


@pytest.fixture
def access_gate(file_repository, clock):
    return AccessGate(file_repository, clock=clock)


@pytest.fixture
def download_service(access_gate, file_repository, storage, event_publisher, clock):
    return DownloadService(
        access_gate, file_repository, storage, event_publisher=event_publisher, clock=clock
    )


@pytest.fixture
def collector(file_repository, maintenance_repository, storage, event_publisher, clock):
    return GarbageCollector(
        file_repository,
        maintenance_repository,
        storage,
        event_publisher=event_publisher,
        clock=clock,
    )


@pytest.fixture
def upload_file(coordinator):
    """Upload *content* through the simple flow and return the record."""

    def _upload(content: bytes = b"0123456789", name: str = "notes.txt", **options):
        return coordinator.upload_simple(
            io.BytesIO(content),
            FileMetadata(original_name=name, content_type="text/plain"),
            UploadOptions(**options),
        )

    return _upload


# =============================================================================
# Pytest Configuration Hooks
# =============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests (fast, no external dependencies)"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests (require external services)"
    )
    config.addinivalue_line(
        "markers", "contract: Contract tests (verify interface compliance)"
    )
    config.addinivalue_line(
        "markers", "e2e: End-to-end tests (full workflows)"
    )
    config.addinivalue_line(
        "markers", "property: Property-based tests using Hypothesis"
    )


def pytest_collection_modifyitems(config, items):
    """
    Automatically mark tests based on their location.

    - tests/unit/* -> @pytest.mark.unit
    - tests/integration/* -> @pytest.mark.integration
    - tests/contracts/* -> @pytest.mark.contract
    - tests/e2e/* -> @pytest.mark.e2e
    - tests/property/* -> @pytest.mark.property
    """
    for item in items:
        test_path = str(item.fspath)

        if "/unit/" in test_path or "\\unit\\" in test_path:
            item.add_marker(pytest.mark.unit)
        elif "/integration/" in test_path or "\\integration\\" in test_path:
            item.add_marker(pytest.mark.integration)
        elif "/contracts/" in test_path or "\\contracts\\" in test_path:
            item.add_marker(pytest.mark.contract)
        elif "/e2e/" in test_path or "\\e2e\\" in test_path:
            item.add_marker(pytest.mark.e2e)
        elif "/property/" in test_path or "\\property\\" in test_path:
            item.add_marker(pytest.mark.property)
