# =============================================================================
# workers/ - Celery Background Task Workers
# =============================================================================
# This package contains the Celery configuration and the transformation
# pipeline that runs after a job is submitted.
#
# Components:
# - celery_app.py: Celery application configuration
# - tasks.py: process_transformation and its helpers
# - config.py: Worker-specific settings
#
# Usage:
#   # Start worker
#   celery -A workers.celery_app worker --loglevel=info -Q transformations,default
#
#   # Submit task (from API)
#   from workers.tasks import process_transformation
#   process_transformation.delay(operation_id, user_id, provider_input, base_url)
# =============================================================================

from .celery_app import celery_app
from . import tasks

__all__ = [
    "celery_app",
    "tasks",
]
