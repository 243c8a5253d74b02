"""
Redis Maintenance Repository

Collector bookkeeping: rate-limit row cleanup, last maintenance and last
sweep timestamps, and index compaction.
"""

import logging
from datetime import datetime
from typing import Dict, Optional

import redis

from filedrop.domain.errors import MetadataError
from filedrop.domain.file_transfer.repositories import MaintenanceRepository

from .redis_repository import RedisRepository, from_timestamp, to_timestamp

logger = logging.getLogger(__name__)

RATE_LIMIT_INDEX = "ratelimit:index"
SCAN_BATCH = 500


class RedisMaintenanceRepository(RedisRepository, MaintenanceRepository):
    """
    Redis-backed implementation of MaintenanceRepository.

    Rate-limit rows are the ``ratelimit:*`` keys written by the edge
    rate limiter; ``ratelimit:index`` maps each key to the time it was
    last touched.
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        key_prefix: str = "filedrop",
        rate_limit_index: str = RATE_LIMIT_INDEX,
    ):
        super().__init__(redis_client, key_prefix)
        self.rate_limit_index = rate_limit_index
        self.last_maintenance_key = self._make_key("meta:last_maintenance")
        self.last_sweep_key = self._make_key("meta:last_sweep")

    def delete_rate_limit_entries_before(self, cutoff: datetime) -> int:
        score = to_timestamp(cutoff)
        try:
            members = self._decode_list(
                self.redis.zrangebyscore(self.rate_limit_index, "-inf", f"({score}")
            )
            if not members:
                return 0
            pipe = self.redis.pipeline(transaction=True)
            pipe.delete(*members)
            pipe.zrem(self.rate_limit_index, *members)
            pipe.execute()
        except redis.RedisError as e:
            raise MetadataError("Failed to delete rate limit entries", original_error=e)
        logger.debug(f"Deleted {len(members)} rate limit entries older than {cutoff.isoformat()}")
        return len(members)

    def count_rate_limit_entries(self) -> int:
        try:
            return int(self.redis.zcard(self.rate_limit_index))
        except redis.RedisError as e:
            raise MetadataError("Failed to count rate limit entries", original_error=e)

    def get_last_maintenance(self) -> Optional[datetime]:
        return self._get_timestamp(self.last_maintenance_key)

    def set_last_maintenance(self, timestamp: datetime) -> None:
        self._set_timestamp(self.last_maintenance_key, timestamp)

    def get_last_sweep(self) -> Optional[datetime]:
        return self._get_timestamp(self.last_sweep_key)

    def set_last_sweep(self, timestamp: datetime) -> None:
        self._set_timestamp(self.last_sweep_key, timestamp)

    def run_maintenance(self) -> Dict[str, int]:
        """
        Compact the sorted-set indexes.

        Removes index members whose record or rate-limit key no longer
        exists, e.g. after a partial failure or a manual key deletion.
        """
        removed = 0
        file_indexes = [
            self._make_key("idx:expires"),
            self._make_key("idx:exhausted"),
            self._make_key("idx:pending"),
        ]
        try:
            for index in file_indexes:
                removed += self._compact(index, lambda member: self._make_key(f"file:{member}"))
            removed += self._compact(self.rate_limit_index, lambda member: member)
        except redis.RedisError as e:
            raise MetadataError("Index compaction failed", original_error=e)
        logger.info(f"Index compaction removed {removed} dangling entries")
        return {"dangling_index_entries_removed": removed}

    def _compact(self, index: str, key_for) -> int:
        removed = 0
        batch = []
        for member, _ in self.redis.zscan_iter(index, count=SCAN_BATCH):
            batch.append(self._decode(member))
            if len(batch) >= SCAN_BATCH:
                removed += self._remove_dangling(index, batch, key_for)
                batch = []
        if batch:
            removed += self._remove_dangling(index, batch, key_for)
        return removed

    def _remove_dangling(self, index: str, members, key_for) -> int:
        pipe = self.redis.pipeline(transaction=False)
        for member in members:
            pipe.exists(key_for(member))
        dangling = [m for m, present in zip(members, pipe.execute()) if not present]
        if dangling:
            self.redis.zrem(index, *dangling)
        return len(dangling)

    def _get_timestamp(self, key: str) -> Optional[datetime]:
        try:
            return from_timestamp(self.redis.get(key))
        except redis.RedisError as e:
            raise MetadataError(f"Failed to read {key}", original_error=e)

    def _set_timestamp(self, key: str, timestamp: datetime) -> None:
        try:
            self.redis.set(key, repr(to_timestamp(timestamp)))
        except redis.RedisError as e:
            raise MetadataError(f"Failed to write {key}", original_error=e)
