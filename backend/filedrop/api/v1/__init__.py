"""
API v1 - FileDrop REST API

Versioned endpoints with OpenAPI/Swagger documentation.
"""

import os

from flask import Blueprint
from flask_restx import Api
from werkzeug.exceptions import RequestEntityTooLarge

from filedrop.domain.errors import ErrorCategory, create_error_response

API_VERSION = os.getenv("API_VERSION", "v1")

api_v1_bp = Blueprint("api_v1", __name__, url_prefix=f"/api/{API_VERSION}")

api = Api(
    api_v1_bp,
    version="1.0",
    title="FileDrop API",
    description="Temporary file sharing with expiring, password-protected and download-limited links",
    doc="/docs",  # Swagger UI at /api/v1/docs
    contact="FileDrop Team",
    license="MIT",
)


@api.errorhandler(RequestEntityTooLarge)
def handle_request_too_large(error):
    """Body larger than MAX_CONTENT_LENGTH."""
    payload, status_code = create_error_response(
        ErrorCategory.FILE_TOO_LARGE, str(error), status_code=413
    )
    return payload, status_code


# Import namespaces after api is created to avoid circular imports
from .namespaces import maintenance_ns, transfer_ns  # noqa: E402

api.add_namespace(transfer_ns, path="/transfers")
api.add_namespace(maintenance_ns, path="/maintenance")
