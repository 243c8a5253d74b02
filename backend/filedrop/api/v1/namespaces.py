"""
API Namespaces - Organized endpoint groups

Thin adapters: parse the request, call one application service resolved
from the dependency container, map the outcome to a response.
"""

import hmac
import json

from flask import current_app, request, send_file
from flask_restx import Namespace, Resource

from filedrop.api.v1 import API_VERSION
from filedrop.api.v1.models import (
    abort_request,
    ack_response,
    complete_request,
    complete_response,
    error_response,
    file_info,
    initiate_request,
    initiate_response,
    password_request,
    sweep_response,
    upload_response,
)
from filedrop.application.download_service import DownloadService
from filedrop.application.garbage_collector import GarbageCollector
from filedrop.application.sweep_result import SweepConfig
from filedrop.application.upload_coordinator import UploadCoordinator
from filedrop.domain.errors import (
    DomainError,
    ErrorCategory,
    IncompletePartSetError,
    UnsupportedRequestError,
    create_error_response,
)
from filedrop.domain.file_transfer.value_objects import (
    AccessOutcome,
    ChunkPlan,
    FileMetadata,
    PartReceipt,
    SessionHandle,
    UploadOptions,
)

_STATUS_BY_CATEGORY = {
    ErrorCategory.FILE_NOT_FOUND: 404,
    ErrorCategory.SESSION_NOT_FOUND: 404,
    ErrorCategory.FILE_EXPIRED: 410,
    ErrorCategory.FILE_CONSUMED: 410,
    ErrorCategory.DOWNLOAD_LIMIT_REACHED: 410,
    ErrorCategory.PASSWORD_REQUIRED: 401,
    ErrorCategory.INVALID_PASSWORD: 401,
    ErrorCategory.UNAUTHORIZED: 401,
    ErrorCategory.FILE_TOO_LARGE: 413,
    ErrorCategory.PART_TOO_LARGE: 400,
    ErrorCategory.INCOMPLETE_PART_SET: 400,
    ErrorCategory.INVALID_REQUEST: 400,
    ErrorCategory.SYSTEM_ERROR: 500,
}

NO_CACHE_HEADERS = {"Cache-Control": "no-cache, no-store, must-revalidate"}


# =============================================================================
# Transfer Namespace - Uploads and downloads
# =============================================================================

transfer_ns = Namespace("transfers", description="File upload and download operations")


@transfer_ns.route("/upload")
class SimpleUpload(Resource):
    """Single-request upload for small files"""

    @transfer_ns.doc("upload_file")
    @transfer_ns.response(201, "Created", upload_response)
    @transfer_ns.response(400, "Bad Request", error_response)
    @transfer_ns.response(413, "File Too Large", error_response)
    @transfer_ns.response(500, "Internal Server Error", error_response)
    def post(self):
        """
        Upload a file in one request

        Multipart form with a ``file`` field and an optional ``options``
        JSON field. Files above the simple-upload threshold must use the
        multipart endpoints.
        """
        upload = request.files.get("file")
        if upload is None or not upload.filename:
            return create_error_response(
                ErrorCategory.INVALID_REQUEST, "Missing 'file' in form data", status_code=400
            )

        try:
            options = UploadOptions.from_dict(_parse_options(request.form.get("options")))
            metadata = FileMetadata(
                original_name=upload.filename,
                content_type=upload.mimetype or "application/octet-stream",
            )
            record = _resolve(UploadCoordinator).upload_simple(upload.stream, metadata, options)
        except DomainError as e:
            return _domain_error_response(e)
        except Exception as e:
            current_app.logger.exception(f"Unexpected error in /transfers/upload: {e}")
            return create_error_response(ErrorCategory.SYSTEM_ERROR, str(e), status_code=500)

        return {
            "file_id": record.file_id,
            "expires_at": record.expires_at.isoformat(),
            "size_bytes": record.size_bytes,
            "download_url": _download_url(record.file_id),
        }, 201


@transfer_ns.route("/multipart/initiate")
class MultipartInitiate(Resource):
    """Open a chunked upload session"""

    @transfer_ns.doc("initiate_multipart_upload")
    @transfer_ns.expect(initiate_request)
    @transfer_ns.response(201, "Created", initiate_response)
    @transfer_ns.response(400, "Bad Request", error_response)
    @transfer_ns.response(413, "File Too Large", error_response)
    def post(self):
        """
        Start a chunked upload

        Returns the session handle (file_id + upload_id), the chunk size to
        use and the number of chunks expected.
        """
        data = request.get_json(silent=True) or {}
        try:
            metadata = FileMetadata(
                original_name=data.get("original_name") or "",
                content_type=data.get("content_type") or "application/octet-stream",
            )
            total_size = _require_int(data, "total_size")
            chunk_plan = ChunkPlan(_require_int(data, "chunk_size")) if data.get("chunk_size") else None
            options = UploadOptions.from_dict(data.get("options"))
            session = _resolve(UploadCoordinator).initiate_chunked(
                metadata, total_size, chunk_plan, options
            )
        except DomainError as e:
            return _domain_error_response(e)
        except Exception as e:
            current_app.logger.exception(f"Unexpected error initiating multipart upload: {e}")
            return create_error_response(ErrorCategory.SYSTEM_ERROR, str(e), status_code=500)

        return {
            "file_id": session.file_id,
            "upload_id": session.upload_id,
            "chunk_size": session.chunk_size,
            "total_chunks": session.total_chunks,
        }, 201


@transfer_ns.route("/multipart/upload-chunk")
class MultipartUploadChunk(Resource):
    """Send one chunk of a chunked upload"""

    @transfer_ns.doc("upload_chunk")
    @transfer_ns.response(200, "Success")
    @transfer_ns.response(400, "Bad Request", error_response)
    @transfer_ns.response(404, "Session Not Found", error_response)
    def post(self):
        """
        Upload one chunk

        Multipart form with ``file_id``, ``upload_id``, ``part_number`` and
        the ``chunk`` bytes. Re-sending a part number replaces it.
        """
        chunk = request.files.get("chunk")
        if chunk is None:
            return create_error_response(
                ErrorCategory.INVALID_REQUEST, "Missing 'chunk' in form data", status_code=400
            )

        try:
            handle = _session_handle(request.form)
            part_number = _require_int(request.form, "part_number")
            receipt = _resolve(UploadCoordinator).upload_chunk(handle, part_number, chunk.read())
        except DomainError as e:
            return _domain_error_response(e)
        except Exception as e:
            current_app.logger.exception(f"Unexpected error uploading chunk: {e}")
            return create_error_response(ErrorCategory.SYSTEM_ERROR, str(e), status_code=500)

        return receipt.to_dict(), 200


@transfer_ns.route("/multipart/complete")
class MultipartComplete(Resource):
    """Assemble a chunked upload"""

    @transfer_ns.doc("complete_multipart_upload")
    @transfer_ns.expect(complete_request)
    @transfer_ns.response(200, "Success", complete_response)
    @transfer_ns.response(400, "Incomplete Part Set", error_response)
    @transfer_ns.response(404, "Session Not Found", error_response)
    @transfer_ns.response(500, "Internal Server Error", error_response)
    def post(self):
        """
        Complete a chunked upload

        The part list must cover every chunk exactly once. The link becomes
        valid and its expiry starts only after assembly succeeded.
        """
        data = request.get_json(silent=True) or {}
        try:
            handle = _session_handle(data)
            raw_parts = data.get("parts")
            if not isinstance(raw_parts, list):
                raise UnsupportedRequestError("'parts' must be a list")
            parts = [PartReceipt.from_dict(p) for p in raw_parts]
            record = _resolve(UploadCoordinator).complete_chunked(handle, parts)
        except DomainError as e:
            return _domain_error_response(e)
        except Exception as e:
            current_app.logger.exception(f"Unexpected error completing multipart upload: {e}")
            return create_error_response(ErrorCategory.SYSTEM_ERROR, str(e), status_code=500)

        return {
            "file_id": record.file_id,
            "expires_at": record.expires_at.isoformat() if record.expires_at else None,
            "size_bytes": record.size_bytes,
        }, 200


@transfer_ns.route("/multipart/abort")
class MultipartAbort(Resource):
    """Abandon a chunked upload"""

    @transfer_ns.doc("abort_multipart_upload")
    @transfer_ns.expect(abort_request)
    @transfer_ns.response(200, "Aborted", ack_response)
    @transfer_ns.response(400, "Bad Request", error_response)
    def post(self):
        """
        Abort a chunked upload

        Idempotent: aborting an unknown or already aborted session succeeds.
        """
        data = request.get_json(silent=True) or {}
        try:
            handle = _session_handle(data)
            _resolve(UploadCoordinator).abort_chunked(handle)
        except DomainError as e:
            return _domain_error_response(e)
        except Exception as e:
            current_app.logger.exception(f"Unexpected error aborting multipart upload: {e}")
            return create_error_response(ErrorCategory.SYSTEM_ERROR, str(e), status_code=500)

        return {"success": True, "message": "Upload aborted"}, 200


@transfer_ns.route("/<string:file_id>")
@transfer_ns.param("file_id", "The file identifier")
class TransferInfo(Resource):
    """Public file information"""

    @transfer_ns.doc("get_file_info")
    @transfer_ns.response(200, "Success", file_info)
    @transfer_ns.response(404, "File Not Found", error_response)
    @transfer_ns.response(410, "File Unavailable", error_response)
    def get(self, file_id):
        """
        Get public file information

        Never includes the password hash; tells whether a password is needed.
        """
        try:
            decision = _resolve(DownloadService).describe(file_id)
        except DomainError as e:
            return _domain_error_response(e)

        if not decision.granted:
            return _denial_response(decision.outcome, decision.error_category)
        return decision.record.to_public_dict(), 200


@transfer_ns.route("/<string:file_id>/authorize")
@transfer_ns.param("file_id", "The file identifier")
class TransferAuthorize(Resource):
    """Check access without downloading"""

    @transfer_ns.doc("authorize_download")
    @transfer_ns.expect(password_request)
    @transfer_ns.response(200, "Granted", file_info)
    @transfer_ns.response(401, "Password Required or Invalid", error_response)
    @transfer_ns.response(404, "File Not Found", error_response)
    @transfer_ns.response(410, "File Unavailable", error_response)
    def post(self, file_id):
        """
        Validate access to a file

        Runs every access check, password included, without counting a
        download.
        """
        data = request.get_json(silent=True) or {}
        try:
            decision = _resolve(DownloadService).check_access(file_id, data.get("password"))
        except DomainError as e:
            return _domain_error_response(e)

        if not decision.granted:
            return _denial_response(decision.outcome, decision.error_category)
        return decision.record.to_public_dict(), 200


@transfer_ns.route("/<string:file_id>/download")
@transfer_ns.param("file_id", "The file identifier")
class TransferDownload(Resource):
    """Download file content"""

    @transfer_ns.doc("download_file")
    @transfer_ns.expect(password_request)
    @transfer_ns.response(200, "File content")
    @transfer_ns.response(401, "Password Required or Invalid", error_response)
    @transfer_ns.response(404, "File Not Found", error_response)
    @transfer_ns.response(410, "File Unavailable", error_response)
    @transfer_ns.response(500, "Internal Server Error", error_response)
    def post(self, file_id):
        """
        Download a file

        The download is counted before any byte is sent; a caller losing the
        race for the last allowed download gets 410 and no content.
        """
        data = request.get_json(silent=True) or {}
        try:
            result = _resolve(DownloadService).download(file_id, data.get("password"))
        except DomainError as e:
            return _domain_error_response(e)
        except Exception as e:
            current_app.logger.exception(f"Unexpected error downloading {file_id}: {e}")
            return create_error_response(ErrorCategory.SYSTEM_ERROR, str(e), status_code=500)

        if not result.success:
            return _denial_response(result.outcome, result.error_category)

        record = result.record
        current_app.logger.info(f"Serving file {file_id} ({record.size_bytes} bytes)")
        response = send_file(
            result.content,
            mimetype=record.content_type,
            as_attachment=True,
            download_name=record.original_name,
            max_age=0,
        )
        response.headers.update(NO_CACHE_HEADERS)
        return response


# =============================================================================
# Maintenance Namespace - Garbage collection
# =============================================================================

maintenance_ns = Namespace("maintenance", description="Cleanup and statistics operations")


@maintenance_ns.route("/sweep")
class Sweep(Resource):
    """Manually triggered sweep"""

    @maintenance_ns.doc("run_sweep", security="bearer")
    @maintenance_ns.response(200, "Sweep finished", sweep_response)
    @maintenance_ns.response(401, "Unauthorized", error_response)
    def post(self):
        """
        Run the garbage collector now

        Requires ``Authorization: Bearer <CLEANUP_SECRET>``.
        """
        if not _is_authorized(request.headers.get("Authorization", "")):
            return create_error_response(
                ErrorCategory.UNAUTHORIZED, "Invalid or missing cleanup token", status_code=401
            )

        current_app.logger.info(
            f"Manual sweep triggered (user agent: {request.headers.get('User-Agent', 'unknown')})"
        )
        result = _resolve(GarbageCollector).run_sweep(SweepConfig.from_env())
        return result.to_dict(), 200, NO_CACHE_HEADERS


@maintenance_ns.route("/stats")
class Stats(Resource):
    """Collector statistics"""

    @maintenance_ns.doc("get_stats")
    @maintenance_ns.response(200, "Success")
    @maintenance_ns.response(500, "Internal Server Error", error_response)
    def get(self):
        """
        Get record counts and the last sweep time
        """
        try:
            stats = _resolve(GarbageCollector).collect_stats()
        except DomainError as e:
            current_app.logger.error(f"Failed to collect statistics: {e}")
            return create_error_response(ErrorCategory.SYSTEM_ERROR, str(e), status_code=500)
        return stats, 200, {"Cache-Control": "public, max-age=60"}


# =============================================================================
# Helper Functions
# =============================================================================

def _resolve(service_type):
    """Resolve an application service from the app's dependency container."""
    return current_app.container.resolve(service_type)


def _domain_error_response(error: DomainError):
    category = error.category
    status_code = _STATUS_BY_CATEGORY.get(category, 400)
    context = None
    if isinstance(error, IncompletePartSetError):
        context = {"missing": error.missing, "duplicates": error.duplicates}

    if status_code >= 500:
        current_app.logger.error(f"{type(error).__name__}: {error}", exc_info=True)
    else:
        current_app.logger.info(f"Rejected request ({category.value}): {error}")
    return create_error_response(category, str(error), context, status_code=status_code)


def _denial_response(outcome: AccessOutcome, category: ErrorCategory):
    return create_error_response(
        category,
        f"Access denied: {outcome.value}",
        status_code=_STATUS_BY_CATEGORY.get(category, 400),
    )


def _parse_options(raw):
    if not raw:
        return {}
    try:
        options = json.loads(raw)
    except ValueError:
        raise UnsupportedRequestError("'options' must be valid JSON")
    if not isinstance(options, dict):
        raise UnsupportedRequestError("'options' must be a JSON object")
    return options


def _require_int(data, key: str) -> int:
    value = data.get(key)
    if value is None or isinstance(value, bool):
        raise UnsupportedRequestError(f"Missing or invalid '{key}'")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise UnsupportedRequestError(f"'{key}' must be an integer")


def _session_handle(data) -> SessionHandle:
    file_id = data.get("file_id")
    upload_id = data.get("upload_id")
    if not file_id or not upload_id:
        raise UnsupportedRequestError("Missing 'file_id' or 'upload_id'")
    return SessionHandle(file_id=str(file_id), upload_id=str(upload_id))


def _download_url(file_id: str) -> str:
    return f"/api/{API_VERSION}/transfers/{file_id}"


def _is_authorized(header: str) -> bool:
    secret = current_app.config.get("CLEANUP_SECRET")
    if not secret or not header.startswith("Bearer "):
        return False
    return hmac.compare_digest(header[len("Bearer "):], secret)
