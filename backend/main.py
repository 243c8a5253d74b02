"""
main.py

Flask backend for FileDrop: temporary file sharing with expiring,
password-protected and download-limited links.

Dependencies:
  - Python packages: Flask, flask-restx, redis, celery, google-cloud-storage
  - Infrastructure: Redis server; a GCS bucket when STORAGE_BACKEND=gcs

Notes:
  - API v1 endpoints available at /api/v1/ with Swagger docs at /api/v1/docs
  - The garbage collector runs from Celery beat (``tasks.run_sweep``)
"""

import os

from app_factory import create_app

app = create_app()

if __name__ == "__main__":
    host = os.getenv("FLASK_HOST", "0.0.0.0")
    port = int(os.getenv("FLASK_PORT", 8000))
    debug = os.getenv("FLASK_DEBUG", "false").lower() == "true"

    app.run(host=host, port=port, debug=debug)
