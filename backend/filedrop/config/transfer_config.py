"""
Transfer Configuration

Upload limits and defaults read from the environment.
"""

import os

from filedrop.domain.file_transfer.security import DEFAULT_HASH_ROUNDS

MIB = 1024 * 1024
GIB = 1024 * MIB


class TransferConfig:
    """Upload size limits, chunking hints and option defaults."""

    def __init__(self):
        self.max_file_size = int(os.getenv("MAX_FILE_SIZE", 5 * GIB))
        self.simple_upload_threshold = int(os.getenv("SIMPLE_UPLOAD_THRESHOLD", 50 * MIB))
        self.chunk_size = int(os.getenv("CHUNK_SIZE", 50 * MIB))
        self.max_part_size = int(os.getenv("MAX_PART_SIZE", 100 * MIB))
        self.default_max_downloads = int(os.getenv("DEFAULT_MAX_DOWNLOADS", 999999))
        self.default_chunked_max_downloads = int(
            os.getenv("DEFAULT_CHUNKED_MAX_DOWNLOADS", 10)
        )
        self.password_hash_rounds = int(
            os.getenv("PASSWORD_HASH_ROUNDS", DEFAULT_HASH_ROUNDS)
        )

        if self.chunk_size > self.max_part_size:
            raise ValueError("CHUNK_SIZE cannot exceed MAX_PART_SIZE")
        if self.simple_upload_threshold > self.max_file_size:
            raise ValueError("SIMPLE_UPLOAD_THRESHOLD cannot exceed MAX_FILE_SIZE")
