"""
Application Layer

Services orchestrating the domain: uploads, downloads and the sweep.
"""

from .chunked_upload_client import ChunkedUploadClient, ChunkedUploadResult
from .dependency_container import DependencyContainer, DependencyNotFoundError
from .download_result import DownloadResult
from .download_service import DownloadService
from .event_publisher import EventPublisher
from .garbage_collector import GarbageCollector
from .sweep_result import SweepConfig, SweepResult, SweepStats
from .upload_coordinator import UploadCoordinator

__all__ = [
    "ChunkedUploadClient",
    "ChunkedUploadResult",
    "DependencyContainer",
    "DependencyNotFoundError",
    "DownloadResult",
    "DownloadService",
    "EventPublisher",
    "GarbageCollector",
    "SweepConfig",
    "SweepResult",
    "SweepStats",
    "UploadCoordinator",
]
