"""
Cleanup Task

Celery beat task running the garbage collector sweep.
Thin wrapper that delegates to the GarbageCollector application service.
"""

import logging

from celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, name="tasks.run_sweep")
def run_sweep(self):
    """
    Periodic sweep removing expired, consumed and exhausted files.

    The collector is resolved from the DependencyContainer; the task never
    touches infrastructure directly. The sweep bounds its own running time
    and leaves unprocessed records for the next run, so the task is never
    retried.

    Returns:
        dict: Serialized SweepResult
    """
    logger.info("Starting scheduled sweep")

    try:
        from celery_app import flask_app
        from filedrop.application.garbage_collector import GarbageCollector
        from filedrop.application.sweep_result import SweepConfig

        collector = flask_app.container.resolve(GarbageCollector)
        result = collector.run_sweep(SweepConfig.from_env())

        stats = result.stats
        logger.info(
            f"Scheduled sweep completed - Processed: {stats.files_processed}, "
            f"Deleted: {stats.files_deleted}, Freed: {stats.storage_space_freed} bytes, "
            f"Errors: {stats.errors}"
        )
        if result.errors:
            logger.warning(f"Sweep errors: {result.errors}")

        return result.to_dict()

    except Exception as e:
        error_msg = f"Sweep task failed: {e}"
        logger.error(error_msg, exc_info=True)
        return {
            "success": False,
            "stats": None,
            "errors": [error_msg],
            "timestamp": None,
        }
