"""
API Models for request/response validation and Swagger documentation
"""

from flask_restx import fields

from filedrop.api.v1 import api

# =============================================================================
# Request Models
# =============================================================================

upload_options = api.model(
    "UploadOptions",
    {
        "lifetime_days": fields.Integer(
            description="Days until the link expires (1, 7 or 30)",
            enum=[1, 7, 30],
            default=7,
        ),
        "password": fields.String(
            description="Optional password (8-128 characters)", required=False
        ),
        "max_downloads": fields.Integer(
            description="Optional download limit (1-1000)", min=1, max=1000, required=False
        ),
        "one_time": fields.Boolean(
            description="Revoke the link after the first download", default=False
        ),
    },
)

initiate_request = api.model(
    "InitiateMultipartRequest",
    {
        "original_name": fields.String(
            required=True, description="Original file name", example="holiday.mp4"
        ),
        "content_type": fields.String(
            description="MIME type", example="video/mp4", default="application/octet-stream"
        ),
        "total_size": fields.Integer(
            required=True, description="Total file size in bytes", min=1, example=157286400
        ),
        "chunk_size": fields.Integer(
            description="Chunk size the client will use, in bytes", required=False
        ),
        "options": fields.Nested(upload_options, required=False),
    },
)

part_model = api.model(
    "Part",
    {
        "part_number": fields.Integer(required=True, description="1-based part number", min=1),
        "etag": fields.String(required=True, description="ETag returned for the part"),
    },
)

complete_request = api.model(
    "CompleteMultipartRequest",
    {
        "file_id": fields.String(required=True, description="File identifier"),
        "upload_id": fields.String(required=True, description="Multipart upload identifier"),
        "parts": fields.List(fields.Nested(part_model), required=True),
    },
)

abort_request = api.model(
    "AbortMultipartRequest",
    {
        "file_id": fields.String(required=True, description="File identifier"),
        "upload_id": fields.String(required=True, description="Multipart upload identifier"),
    },
)

password_request = api.model(
    "PasswordRequest",
    {
        "password": fields.String(description="Password for protected files", required=False),
    },
)

# =============================================================================
# Response Models
# =============================================================================

upload_response = api.model(
    "UploadResponse",
    {
        "file_id": fields.String(description="File identifier"),
        "expires_at": fields.String(description="Expiry timestamp (ISO 8601, UTC)"),
        "size_bytes": fields.Integer(description="Stored size in bytes"),
        "download_url": fields.String(description="Relative link to the file"),
    },
)

initiate_response = api.model(
    "InitiateMultipartResponse",
    {
        "file_id": fields.String(description="File identifier"),
        "upload_id": fields.String(description="Multipart upload identifier"),
        "chunk_size": fields.Integer(description="Chunk size to use, in bytes"),
        "total_chunks": fields.Integer(description="Number of chunks to send"),
    },
)

complete_response = api.model(
    "CompleteMultipartResponse",
    {
        "file_id": fields.String(description="File identifier"),
        "expires_at": fields.String(description="Expiry timestamp (ISO 8601, UTC)"),
        "size_bytes": fields.Integer(description="Assembled size in bytes"),
    },
)

ack_response = api.model(
    "AckResponse",
    {
        "success": fields.Boolean(description="Always true"),
        "message": fields.String(description="Human readable acknowledgement"),
    },
)

file_info = api.model(
    "FileInfo",
    {
        "file_id": fields.String(description="File identifier"),
        "original_name": fields.String(description="Original file name"),
        "size_bytes": fields.Integer(description="File size in bytes"),
        "content_type": fields.String(description="MIME type"),
        "uploaded_at": fields.String(description="Upload timestamp"),
        "expires_at": fields.String(description="Expiry timestamp"),
        "download_count": fields.Integer(description="Downloads so far"),
        "max_downloads": fields.Integer(description="Download limit"),
        "remaining_downloads": fields.Integer(description="Downloads left"),
        "is_one_time": fields.Boolean(description="One-time download"),
        "has_password": fields.Boolean(description="Password protected"),
    },
)

sweep_stats = api.model(
    "SweepStats",
    {
        "files_processed": fields.Integer(description="Records handed to a batch"),
        "files_deleted": fields.Integer(description="Records whose object is gone"),
        "storage_space_freed": fields.Integer(description="Bytes freed"),
        "rate_limit_entries_deleted": fields.Integer(description="Stale rate-limit rows removed"),
        "errors": fields.Integer(description="Errors counted during the sweep"),
        "execution_time_ms": fields.Integer(description="Wall time of the sweep"),
        "maintenance_performed": fields.Boolean(description="Store maintenance ran"),
    },
)

sweep_response = api.model(
    "SweepResponse",
    {
        "success": fields.Boolean(description="True when no error was counted"),
        "stats": fields.Nested(sweep_stats),
        "errors": fields.List(fields.String, description="Error messages"),
        "timestamp": fields.String(description="Sweep timestamp"),
    },
)

error_response = api.model(
    "ErrorResponse",
    {
        "error": fields.String(description="Error category", example="file_not_found"),
        "title": fields.String(description="Short error title"),
        "message": fields.String(description="User-friendly error message"),
        "action": fields.String(description="Suggested next step"),
        "details": fields.Raw(description="Additional context", required=False),
    },
)

health_response = api.model(
    "HealthResponse",
    {
        "status": fields.String(description="Overall status (ok or degraded)"),
        "message": fields.String(description="Status message"),
        "redis": fields.String(description="Redis connection status"),
        "storage": fields.String(description="Object store status"),
        "celery": fields.String(description="Celery availability"),
    },
)
