"""
Celery Application Instance

Creates the Celery app instance for use by workers and the beat scheduler.
Uses the app factory so the task resolves services from the same
dependency container as the API.
"""

from app_factory import create_app

# Flask app with all services initialized (including the dependency container)
flask_app = create_app()

celery_app = flask_app.celery

# Task modules are registered by name; the worker imports them once
# `celery_app` exists, avoiding a circular import at module load.
celery_app.conf.imports = (
    "filedrop.tasks.cleanup_task",
)
