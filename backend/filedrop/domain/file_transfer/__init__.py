"""
File Transfer Domain

Entities, value objects and interfaces for the file lifecycle.
"""

from .access_gate import AccessDecision, AccessGate
from .entities import FileRecord, UploadSession, utc_now
from .repositories import FileRecordRepository, MaintenanceRepository
from .storage_repository import IObjectStorageRepository
from .value_objects import (
    AccessOutcome,
    ChunkPlan,
    FileMetadata,
    PartReceipt,
    RetryPolicy,
    SessionHandle,
    UploadOptions,
    UploadSessionState,
    UploadStatus,
)

__all__ = [
    "AccessDecision",
    "AccessGate",
    "AccessOutcome",
    "ChunkPlan",
    "FileMetadata",
    "FileRecord",
    "FileRecordRepository",
    "IObjectStorageRepository",
    "MaintenanceRepository",
    "PartReceipt",
    "RetryPolicy",
    "SessionHandle",
    "UploadOptions",
    "UploadSession",
    "UploadSessionState",
    "UploadStatus",
    "utc_now",
]
