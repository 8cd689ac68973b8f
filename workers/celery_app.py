# =============================================================================
# workers/celery_app.py - Celery Application Configuration
# =============================================================================
# Creates the Celery app that runs the transformation pipeline.
#
# Usage:
#   # Start worker
#   celery -A workers.celery_app worker --loglevel=info -Q transformations,default
#
#   # Check status
#   celery -A workers.celery_app status
# =============================================================================

import logging
import os

from celery import Celery
from celery.signals import task_failure, task_postrun, task_prerun
from dotenv import load_dotenv

# Worker processes don't go through app.main, so load .env here
load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def redact_url(url: str) -> str:
    """
    Drop credentials from a broker URL before logging it.

    Example: "redis://:secret@cache:6379/0" -> "cache:6379/0"
    """
    return url.split("@")[-1] if "@" in url else url


def create_celery_app() -> Celery:
    """
    Create and configure the Celery application.

    Returns:
        Configured Celery app instance
    """
    redis_url = os.getenv("REDIS_URL", "redis://localhost:6379/0")

    app = Celery(
        "portrait_studio_worker",
        broker=redis_url,
        backend=redis_url,
        include=["workers.tasks"],
    )
    app.config_from_object("workers.config:CeleryConfig")

    logger.info(f"Celery app created with broker: {redact_url(redis_url)}")
    return app


celery_app = create_celery_app()


@celery_app.task(name="workers.healthcheck")
def healthcheck() -> str:
    """Round-trip check: healthcheck.delay().get(timeout=5) == "OK"."""
    return "OK"


# =============================================================================
# Task Lifecycle Logging
# =============================================================================

def _operation_of(args) -> str:
    # process_transformation takes the operation id first
    return str(args[0]) if args else "-"


@task_prerun.connect
def task_prerun_handler(sender=None, task_id=None, task=None, args=None, **extra):
    logger.info(f"Task started: {task.name} [{task_id}] operation={_operation_of(args)}")


@task_postrun.connect
def task_postrun_handler(sender=None, task_id=None, task=None, args=None, state=None, **extra):
    logger.info(f"Task finished: {task.name} [{task_id}] operation={_operation_of(args)} state={state}")


@task_failure.connect
def task_failure_handler(sender=None, task_id=None, exception=None, args=None, **extra):
    logger.error(f"Task failed: {sender.name} [{task_id}] operation={_operation_of(args)} error={exception}")


if __name__ == "__main__":
    celery_app.start()
