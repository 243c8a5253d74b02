"""
Chunked Upload Client

HTTP client driving the multipart endpoints: initiate, send every chunk
with retry and backoff, complete, and abort the session when a chunk
exhausts its attempts or completion is rejected.
"""

import logging
import os
import time
from dataclasses import dataclass, field
from typing import Any, BinaryIO, Callable, Dict, List, Optional

import requests

from filedrop.domain.file_transfer.value_objects import PartReceipt, RetryPolicy

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = {408, 425, 429, 500, 502, 503, 504}


class ChunkUploadError(Exception):
    """Raised when a request fails in a way retrying cannot fix."""

    def __init__(self, message: str, status_code: Optional[int] = None, payload: Optional[Dict] = None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload or {}


@dataclass
class ChunkedUploadResult:
    """Outcome of a full chunked upload."""
    success: bool
    file_id: Optional[str] = None
    expires_at: Optional[str] = None
    error: Optional[str] = None
    parts: List[PartReceipt] = field(default_factory=list)


class ChunkedUploadClient:
    """
    Client for the ``/transfers/multipart`` endpoints.

    Args:
        base_url: API root, e.g. ``http://localhost:8000/api/v1``
        retry_policy: Attempts, backoff schedule and per-request timeout
        session: Optional requests session (shared connection pool)
        sleep: Sleep function, replaceable in tests
        on_progress: Called with (percent, stage) as the upload advances
    """

    def __init__(
        self,
        base_url: str,
        retry_policy: Optional[RetryPolicy] = None,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
        on_progress: Optional[Callable[[int, str], None]] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.retry_policy = retry_policy or RetryPolicy.exponential()
        self.session = session or requests.Session()
        self.sleep = sleep
        self.on_progress = on_progress

    def upload(
        self,
        content: BinaryIO,
        filename: str,
        content_type: str = "application/octet-stream",
        options: Optional[Dict[str, Any]] = None,
        chunk_size: Optional[int] = None,
    ) -> ChunkedUploadResult:
        """
        Upload a seekable stream through the multipart endpoints.

        Returns:
            ChunkedUploadResult; failures are reported, not raised
        """
        content.seek(0, os.SEEK_END)
        total_size = content.tell()
        content.seek(0)

        payload = {
            "original_name": filename,
            "content_type": content_type,
            "total_size": total_size,
            "options": options or {},
        }
        if chunk_size:
            payload["chunk_size"] = chunk_size

        self._progress(0, "Initializing upload...")
        try:
            session_info = self._post_json("/transfers/multipart/initiate", payload)
        except (ChunkUploadError, requests.RequestException) as e:
            return ChunkedUploadResult(success=False, error=f"Failed to initiate upload: {e}")

        file_id = session_info["file_id"]
        upload_id = session_info["upload_id"]
        total_chunks = int(session_info["total_chunks"])
        chunk_size = int(session_info["chunk_size"])

        parts = []
        for index in range(total_chunks):
            part_number = index + 1
            content.seek(index * chunk_size)
            chunk = content.read(chunk_size)
            # Reserve the last 10% for completion
            self._progress(
                round(part_number / total_chunks * 90),
                f"Uploading chunk {part_number} of {total_chunks}...",
            )
            try:
                parts.append(self._upload_chunk_with_retry(file_id, upload_id, part_number, chunk))
            except (ChunkUploadError, requests.RequestException) as e:
                self._abort(file_id, upload_id)
                return ChunkedUploadResult(
                    success=False,
                    file_id=file_id,
                    error=f"Chunk {part_number} failed: {e}",
                    parts=parts,
                )

        self._progress(95, "Finalizing upload...")
        try:
            completed = self._post_json("/transfers/multipart/complete", {
                "file_id": file_id,
                "upload_id": upload_id,
                "parts": [p.to_dict() for p in sorted(parts, key=lambda p: p.part_number)],
            })
        except (ChunkUploadError, requests.RequestException) as e:
            self._abort(file_id, upload_id)
            return ChunkedUploadResult(
                success=False, file_id=file_id, error=f"Failed to complete upload: {e}", parts=parts
            )

        self._progress(100, "Upload completed successfully!")
        return ChunkedUploadResult(
            success=True,
            file_id=completed.get("file_id", file_id),
            expires_at=completed.get("expires_at"),
            parts=parts,
        )

    def _upload_chunk_with_retry(
        self, file_id: str, upload_id: str, part_number: int, chunk: bytes
    ) -> PartReceipt:
        policy = self.retry_policy
        attempt = 0
        while True:
            attempt += 1
            try:
                response = self.session.post(
                    f"{self.base_url}/transfers/multipart/upload-chunk",
                    data={
                        "file_id": file_id,
                        "upload_id": upload_id,
                        "part_number": str(part_number),
                    },
                    files={"chunk": (f"chunk_{part_number}", chunk, "application/octet-stream")},
                    timeout=policy.request_timeout,
                )
                result = self._parse(response)
                return PartReceipt.from_dict(result)
            except (requests.RequestException, ChunkUploadError) as e:
                retryable = not isinstance(e, ChunkUploadError) or e.status_code in RETRYABLE_STATUS_CODES
                if not retryable or attempt >= policy.max_attempts:
                    raise
                delay = policy.delay_for(attempt)
                logger.warning(
                    f"Chunk {part_number} attempt {attempt}/{policy.max_attempts} failed: {e}; "
                    f"retrying in {delay}s"
                )
                self.sleep(delay)

    def _post_json(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        response = self.session.post(
            f"{self.base_url}{path}",
            json=payload,
            timeout=self.retry_policy.request_timeout,
        )
        return self._parse(response)

    @staticmethod
    def _parse(response: requests.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not response.ok:
            message = body.get("message") or response.text or f"HTTP {response.status_code}"
            raise ChunkUploadError(message, status_code=response.status_code, payload=body)
        return body

    def _abort(self, file_id: str, upload_id: str) -> None:
        try:
            self._post_json("/transfers/multipart/abort", {"file_id": file_id, "upload_id": upload_id})
        except (ChunkUploadError, requests.RequestException) as e:
            logger.error(f"Failed to abort upload {upload_id}: {e}")

    def _progress(self, percent: int, stage: str) -> None:
        if self.on_progress is not None:
            self.on_progress(percent, stage)
