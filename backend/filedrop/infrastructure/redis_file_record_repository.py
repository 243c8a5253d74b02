"""
Redis File Record Repository

Stores each FileRecord as a hash and keeps sorted-set indexes for the
collector's queries. Conditional state changes run as Lua scripts so
they are atomic across all application and worker processes.

Layout (prefix ``filedrop``):
    file:<file_id>        hash with the record fields
    idx:expires           completed records, score = expires_at
    idx:exhausted         records that reached their limit, score = expires_at
    idx:pending           chunked uploads in flight, score = uploaded_at
"""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

import redis

from filedrop.domain.errors import MetadataError
from filedrop.domain.file_transfer.entities import FileRecord
from filedrop.domain.file_transfer.repositories import FileRecordRepository
from filedrop.domain.file_transfer.value_objects import UploadStatus

from .redis_repository import RedisRepository, to_timestamp

logger = logging.getLogger(__name__)

DEFAULT_KEY_PREFIX = "filedrop"

_BOOLEAN_FIELDS = ("is_one_time", "has_password")

# KEYS: file hash, exhausted index. ARGV: last_download_at, file_id, now ts
RECORD_DOWNLOAD_SCRIPT = """
local key = KEYS[1]
if redis.call('EXISTS', key) == 0 then
    return -1
end
if redis.call('HGET', key, 'upload_status') ~= 'completed' then
    return -1
end
if tonumber(redis.call('HGET', key, 'expires_ts') or '0') < tonumber(ARGV[3]) then
    return -1
end
local count = tonumber(redis.call('HGET', key, 'download_count') or '0')
local max = tonumber(redis.call('HGET', key, 'max_downloads') or '0')
local one_time = redis.call('HGET', key, 'is_one_time') == '1'
if count >= max then
    return -1
end
if one_time and count > 0 then
    return -1
end
count = redis.call('HINCRBY', key, 'download_count', 1)
redis.call('HSET', key, 'last_download_at', ARGV[1])
if count >= max or one_time then
    local score = redis.call('HGET', key, 'expires_ts') or '0'
    redis.call('ZADD', KEYS[2], score, ARGV[2])
end
return count
"""

# KEYS: file hash, expires index, pending index
# ARGV: upload_id, expires_at iso, expires_ts, file_id
MARK_COMPLETED_SCRIPT = """
local key = KEYS[1]
if redis.call('EXISTS', key) == 0 then
    return 0
end
local status = redis.call('HGET', key, 'upload_status')
if status ~= 'uploading' and status ~= 'failed' then
    return 0
end
if redis.call('HGET', key, 'multipart_upload_id') ~= ARGV[1] then
    return 0
end
redis.call('HSET', key, 'upload_status', 'completed', 'expires_at', ARGV[2], 'expires_ts', ARGV[3])
redis.call('HDEL', key, 'multipart_upload_id')
redis.call('ZREM', KEYS[3], ARGV[4])
redis.call('ZADD', KEYS[2], ARGV[3], ARGV[4])
return 1
"""

# KEYS: file hash. ARGV: upload_id
MARK_FAILED_SCRIPT = """
local key = KEYS[1]
if redis.call('EXISTS', key) == 0 then
    return 0
end
local status = redis.call('HGET', key, 'upload_status')
if status ~= 'uploading' and status ~= 'failed' then
    return 0
end
if redis.call('HGET', key, 'multipart_upload_id') ~= ARGV[1] then
    return 0
end
redis.call('HSET', key, 'upload_status', 'failed')
return 1
"""


class RedisFileRecordRepository(RedisRepository, FileRecordRepository):
    """Redis-backed implementation of FileRecordRepository."""

    def __init__(self, redis_client: redis.Redis, key_prefix: str = DEFAULT_KEY_PREFIX):
        super().__init__(redis_client, key_prefix)
        self.expires_index = self._make_key("idx:expires")
        self.exhausted_index = self._make_key("idx:exhausted")
        self.pending_index = self._make_key("idx:pending")

    def _file_key(self, file_id: str) -> str:
        return self._make_key(f"file:{file_id}")

    @staticmethod
    def _to_hash(record: FileRecord) -> Dict[str, str]:
        mapping = {}
        for name, value in record.to_dict().items():
            if value is None:
                continue
            if isinstance(value, bool):
                mapping[name] = "1" if value else "0"
            else:
                mapping[name] = str(value)
        if record.expires_at is not None:
            mapping["expires_ts"] = repr(to_timestamp(record.expires_at))
        return mapping

    def _from_hash(self, raw: Dict[Any, Any]) -> Optional[FileRecord]:
        data = self._decode_hash(raw)
        if not data:
            return None
        for name in _BOOLEAN_FIELDS:
            data[name] = data.get(name) == "1"
        data.pop("expires_ts", None)
        try:
            return FileRecord.from_dict(data)
        except (KeyError, ValueError) as e:
            logger.error(f"Corrupt file record {data.get('file_id')}: {e}")
            return None

    def insert(self, record: FileRecord) -> None:
        try:
            pipe = self.redis.pipeline(transaction=True)
            pipe.hset(self._file_key(record.file_id), mapping=self._to_hash(record))
            if record.is_completed():
                pipe.zadd(self.expires_index, {record.file_id: to_timestamp(record.expires_at)})
            else:
                pipe.zadd(self.pending_index, {record.file_id: to_timestamp(record.uploaded_at)})
            pipe.execute()
        except redis.RedisError as e:
            logger.error(f"Failed to insert file record {record.file_id}: {e}", exc_info=True)
            raise MetadataError("Failed to store file record", original_error=e)

    def get(self, file_id: str) -> Optional[FileRecord]:
        try:
            raw = self.redis.hgetall(self._file_key(file_id))
        except redis.RedisError as e:
            logger.error(f"Failed to read file record {file_id}: {e}", exc_info=True)
            raise MetadataError("Failed to read file record", original_error=e)
        return self._from_hash(raw)

    def mark_completed(self, file_id: str, upload_id: str, expires_at: datetime) -> bool:
        result = self._run_script(
            MARK_COMPLETED_SCRIPT,
            [
                self._file_key(file_id),
                self.expires_index,
                self.pending_index,
            ],
            [upload_id, expires_at.isoformat(), repr(to_timestamp(expires_at)), file_id],
        )
        return int(result) == 1

    def mark_failed(self, file_id: str, upload_id: str) -> bool:
        result = self._run_script(MARK_FAILED_SCRIPT, [self._file_key(file_id)], [upload_id])
        return int(result) == 1

    def record_download(self, file_id: str, now: datetime) -> bool:
        result = self._run_script(
            RECORD_DOWNLOAD_SCRIPT,
            [self._file_key(file_id), self.exhausted_index],
            [now.isoformat(), file_id, repr(to_timestamp(now))],
        )
        return int(result) > 0

    def delete(self, file_id: str) -> bool:
        return self.delete_many([file_id]) > 0

    def delete_many(self, file_ids: Iterable[str]) -> int:
        """Delete records and their index entries in a single MULTI/EXEC transaction."""
        file_ids = list(dict.fromkeys(file_ids))
        if not file_ids:
            return 0
        try:
            pipe = self.redis.pipeline(transaction=True)
            for file_id in file_ids:
                pipe.delete(self._file_key(file_id))
            pipe.zrem(self.expires_index, *file_ids)
            pipe.zrem(self.exhausted_index, *file_ids)
            pipe.zrem(self.pending_index, *file_ids)
            results = pipe.execute()
        except redis.RedisError as e:
            logger.error(f"Batch delete of {len(file_ids)} records failed: {e}", exc_info=True)
            raise MetadataError("Failed to delete file records", original_error=e)
        return sum(int(r) for r in results[:len(file_ids)])

    def find_cleanup_candidates(self, now: datetime, limit: int) -> List[FileRecord]:
        if limit <= 0:
            return []
        try:
            expired = self.redis.zrangebyscore(
                self.expires_index, "-inf", f"({to_timestamp(now)}",
                start=0, num=limit, withscores=True,
            )
            exhausted = self.redis.zrange(self.exhausted_index, 0, limit - 1, withscores=True)
        except redis.RedisError as e:
            logger.error(f"Cleanup candidate query failed: {e}", exc_info=True)
            raise MetadataError("Failed to query cleanup candidates", original_error=e)

        scores: Dict[str, float] = {}
        for member, score in list(expired) + list(exhausted):
            scores[self._decode(member)] = float(score)
        ordered = sorted(scores, key=lambda file_id: (scores[file_id], file_id))[:limit]

        records = [
            r for r in self._load_many(ordered)
            if r.is_cleanup_candidate(now)
        ]
        return sorted(records, key=lambda r: r.expires_at)

    def find_stale_uploads(self, older_than: datetime, limit: int) -> List[FileRecord]:
        if limit <= 0:
            return []
        try:
            members = self.redis.zrangebyscore(
                self.pending_index, "-inf", to_timestamp(older_than), start=0, num=limit,
            )
        except redis.RedisError as e:
            raise MetadataError("Failed to query stale uploads", original_error=e)
        return [
            r for r in self._load_many(self._decode_list(members))
            if r.upload_status.is_pending()
        ]

    def get_statistics(self, now: datetime) -> Dict[str, int]:
        try:
            pipe = self.redis.pipeline(transaction=False)
            pipe.zcard(self.expires_index)
            pipe.zcount(self.expires_index, "-inf", f"({to_timestamp(now)}")
            pipe.zcard(self.exhausted_index)
            pipe.zcard(self.pending_index)
            completed, expired, exhausted, pending = pipe.execute()
        except redis.RedisError as e:
            raise MetadataError("Failed to collect statistics", original_error=e)
        return {
            "total_files": int(completed) + int(pending),
            "expired_files": int(expired),
            "consumed_files": int(exhausted),
            "pending_uploads": int(pending),
        }

    def _load_many(self, file_ids: List[str]) -> List[FileRecord]:
        if not file_ids:
            return []
        try:
            pipe = self.redis.pipeline(transaction=False)
            for file_id in file_ids:
                pipe.hgetall(self._file_key(file_id))
            rows = pipe.execute()
        except redis.RedisError as e:
            raise MetadataError("Failed to load file records", original_error=e)
        records = []
        for raw in rows:
            record = self._from_hash(raw)
            if record is not None:
                records.append(record)
        return records
