"""
Sweep Configuration and Result

Value objects passed into and returned from a garbage collector run.
"""

import os
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List


@dataclass(frozen=True)
class SweepConfig:
    """
    Tuning of one sweep.

    Attributes:
        batch_size: Records per batch; up to twice this many are loaded
        max_execution_time_ms: Soft deadline checked before every batch
        vacuum_interval_seconds: Minimum spacing of store maintenance runs
        rate_limit_retention_seconds: Age after which rate-limit rows go
        stale_upload_age_seconds: Age after which open chunked uploads go
    """
    batch_size: int = 50
    max_execution_time_ms: int = 25000
    vacuum_interval_seconds: int = 604800
    rate_limit_retention_seconds: int = 86400
    stale_upload_age_seconds: int = 86400

    def __post_init__(self):
        if self.batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if self.max_execution_time_ms < 0:
            raise ValueError("max_execution_time_ms cannot be negative")
        if self.vacuum_interval_seconds < 0 or self.rate_limit_retention_seconds < 0:
            raise ValueError("intervals cannot be negative")
        if self.stale_upload_age_seconds < 0:
            raise ValueError("stale_upload_age_seconds cannot be negative")

    @classmethod
    def from_env(cls) -> "SweepConfig":
        return cls(
            batch_size=int(os.getenv("BATCH_SIZE", 50)),
            max_execution_time_ms=int(os.getenv("MAX_EXECUTION_TIME", 25000)),
            vacuum_interval_seconds=int(os.getenv("VACUUM_INTERVAL", 604800)),
            rate_limit_retention_seconds=int(os.getenv("RATE_LIMIT_RETENTION", 86400)),
            stale_upload_age_seconds=int(os.getenv("STALE_UPLOAD_AGE", 86400)),
        )


@dataclass
class SweepStats:
    """Counters accumulated during one sweep."""
    files_processed: int = 0
    files_deleted: int = 0
    storage_space_freed: int = 0
    rate_limit_entries_deleted: int = 0
    errors: int = 0
    execution_time_ms: int = 0
    maintenance_performed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SweepResult:
    """Outcome of one sweep; ``success`` means no error was counted."""
    success: bool
    stats: SweepStats
    timestamp: datetime
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "stats": self.stats.to_dict(),
            "errors": list(self.errors),
            "timestamp": self.timestamp.isoformat(),
        }
