"""
Application Factory

Creates and configures the Flask application with all dependencies.
The factory pattern allows dependency injection and configuration
overrides in tests.
"""

import logging
import os
from typing import Optional

from flask import Flask, jsonify

from filedrop.application.dependency_container import DependencyContainer
from filedrop.application.download_service import DownloadService
from filedrop.application.event_publisher import EventPublisher
from filedrop.application.garbage_collector import GarbageCollector
from filedrop.application.upload_coordinator import UploadCoordinator
from filedrop.config.celery_config import make_celery
from filedrop.config.logging_config import configure_logging
from filedrop.config.redis_config import get_redis_client, init_redis, redis_health_check
from filedrop.config.transfer_config import MIB, TransferConfig
from filedrop.domain.file_transfer.access_gate import AccessGate
from filedrop.domain.file_transfer.repositories import (
    FileRecordRepository,
    MaintenanceRepository,
)
from filedrop.domain.file_transfer.storage_repository import IObjectStorageRepository
from filedrop.infrastructure.redis_file_record_repository import RedisFileRecordRepository
from filedrop.infrastructure.redis_maintenance_repository import RedisMaintenanceRepository
from filedrop.infrastructure.storage_factory import StorageFactory

logger = logging.getLogger(__name__)


class AppConfig:
    """Application configuration."""

    def __init__(self):
        self.api_version = os.getenv("API_VERSION", "v1")
        self.flask_env = os.getenv("FLASK_ENV", "development")
        self.is_production = self.flask_env == "production"
        self.cleanup_secret = os.getenv("CLEANUP_SECRET")
        self.log_level = os.getenv("LOG_LEVEL", "info")
        self.key_prefix = os.getenv("REDIS_KEY_PREFIX", "filedrop")


def create_app(
    config: Optional[AppConfig] = None,
    container: Optional[DependencyContainer] = None,
) -> Flask:
    """
    Create and configure Flask application.

    Args:
        config: Application configuration, uses default if None
        container: Pre-built dependency container; when given, Redis and
            storage are not initialized from the environment

    Returns:
        Configured Flask application
    """
    if config is None:
        config = AppConfig()

    configure_logging(config.log_level)

    app = Flask(__name__)
    app.config["CLEANUP_SECRET"] = config.cleanup_secret
    app.config["API_VERSION"] = config.api_version

    transfer_config = TransferConfig()
    # Largest single request body: a simple upload or one chunk, plus form overhead
    app.config["MAX_CONTENT_LENGTH"] = (
        max(transfer_config.simple_upload_threshold, transfer_config.max_part_size) + MIB
    )

    _initialize_infrastructure(app, use_redis=container is None)

    if container is None:
        _initialize_services(app, config, transfer_config)
    else:
        app.container = container

    _register_blueprints(app, config)
    _register_health_endpoint(app)

    return app


def _initialize_infrastructure(app: Flask, use_redis: bool = True) -> None:
    """
    Initialize infrastructure components (Redis, Celery).

    Args:
        app: Flask application
        use_redis: Whether to connect to Redis from the environment
    """
    try:
        if use_redis:
            init_redis()
            logger.info("Redis initialized successfully")

        app.celery = make_celery(app)
        logger.info("Celery initialized successfully")

    except Exception as e:
        logger.warning(f"Could not initialize infrastructure: {e}")
        app.celery = None


def _initialize_services(app: Flask, config: AppConfig, transfer_config: TransferConfig) -> None:
    """
    Build the dependency container and attach it to the app.

    All services are registered as singletons and resolved through
    ``container.resolve()`` in API handlers and tasks.

    Args:
        app: Flask application
        config: Application configuration
        transfer_config: Upload limits shared by the services
    """
    try:
        container = DependencyContainer()

        redis_client = get_redis_client()
        file_repository = RedisFileRecordRepository(redis_client, key_prefix=config.key_prefix)
        maintenance_repository = RedisMaintenanceRepository(
            redis_client, key_prefix=config.key_prefix
        )
        storage = StorageFactory.create_storage()

        container.register_singleton(FileRecordRepository, file_repository)
        container.register_singleton(MaintenanceRepository, maintenance_repository)
        container.register_singleton(IObjectStorageRepository, storage)
        container.register_singleton(TransferConfig, transfer_config)

        event_publisher = EventPublisher()
        container.setup_event_handlers(event_publisher)
        container.register_singleton(EventPublisher, event_publisher)

        access_gate = AccessGate(file_repository)
        container.register_singleton(AccessGate, access_gate)

        container.register_singleton(UploadCoordinator, UploadCoordinator(
            file_repository,
            storage,
            config=transfer_config,
            event_publisher=event_publisher,
        ))
        container.register_singleton(DownloadService, DownloadService(
            access_gate,
            file_repository,
            storage,
            event_publisher=event_publisher,
        ))
        container.register_singleton(GarbageCollector, GarbageCollector(
            file_repository,
            maintenance_repository,
            storage,
            event_publisher=event_publisher,
        ))

        app.container = container
        logger.info(
            f"Application services initialized with DependencyContainer "
            f"({len(container._singletons)} singletons)"
        )

    except Exception as e:
        logger.warning(f"Could not initialize services: {e}", exc_info=True)
        app.container = None


def _register_blueprints(app: Flask, config: AppConfig) -> None:
    """
    Register API blueprints.

    Args:
        app: Flask application
        config: Application configuration
    """
    from filedrop.api.v1 import api_v1_bp

    app.register_blueprint(api_v1_bp)

    logger.info(
        f"API {config.api_version} registered at /api/{config.api_version} "
        f"with Swagger UI at /api/{config.api_version}/docs"
    )


def _get_health_status(app: Flask) -> tuple[dict, int]:
    """
    Get health status of all system components.

    Redis and the object store are required; Celery is reported but a
    missing worker integration only degrades scheduled sweeps.

    Returns:
        Tuple of (health_status_dict, http_status_code)
    """
    health_status = {
        "status": "ok",
        "message": "backend ready",
        "redis": "unknown",
        "storage": "unknown",
        "celery": "unknown",
    }

    try:
        if redis_health_check():
            health_status["redis"] = "connected"
        else:
            health_status["redis"] = "disconnected"
            health_status["status"] = "degraded"
    except Exception as e:
        health_status["redis"] = f"error: {str(e)}"
        health_status["status"] = "degraded"

    container = getattr(app, "container", None)
    try:
        if container is None or not container.is_registered(IObjectStorageRepository):
            health_status["storage"] = "not_configured"
            health_status["status"] = "degraded"
        elif container.resolve(IObjectStorageRepository).health_check():
            health_status["storage"] = "available"
        else:
            health_status["storage"] = "unavailable"
            health_status["status"] = "degraded"
    except Exception as e:
        health_status["storage"] = f"error: {str(e)}"
        health_status["status"] = "degraded"

    if getattr(app, "celery", None) is not None:
        health_status["celery"] = "available"
    else:
        health_status["celery"] = "unavailable"
        health_status["status"] = "degraded"

    status_code = 200 if health_status["status"] == "ok" else 503
    return health_status, status_code


def _register_health_endpoint(app: Flask) -> None:
    """
    Register health check endpoint.

    Args:
        app: Flask application
    """

    @app.route("/health", methods=["GET"])
    def health():
        """Overall health of the application and its dependencies."""
        health_status, status_code = _get_health_status(app)
        return jsonify(health_status), status_code
