# =============================================================================
# workers/tasks.py - Celery Task Definitions
# =============================================================================
# Runs the transformation pipeline for a created prediction and reports every
# step to the owner through Redis (see app/websocket/broadcast.py).
#
# Tasks:
# - process_transformation: poll provider -> store outputs -> completed/error
#
# Progress while the provider runs is estimated from elapsed time:
#   progress = min(90, 10 + elapsed / estimated * 80)
# =============================================================================

import logging
import time
from typing import Any, Callable

from celery import shared_task, current_task

from app.config import settings
from app.websocket.broadcast import (
    publish_completed,
    publish_error,
    publish_preview,
    publish_progress,
)
from core.models.transform import TransformationInput
from core.services.storage_service import StorageService
from lib.replicate_client import Prediction, ReplicateClient

logger = logging.getLogger(__name__)

INITIAL_PROGRESS = 10
MAX_RUNNING_PROGRESS = 90
SAVING_PROGRESS = 95

TIMEOUT_ERROR = "Request timed out. Please try again."
INVALID_OUTPUT_ERROR = "Invalid output format from AI service"
INTERNAL_ERROR = "Internal server error during transformation"
DEFAULT_PROVIDER_ERROR = "Transformation failed"


class InvalidOutputError(ValueError):
    """Provider output is neither a URL nor a list of URLs."""


# =============================================================================
# Progress Helpers
# =============================================================================

def estimate_progress(elapsed_seconds: float, estimated_seconds: float | None = None) -> int:
    """
    Estimate progress while the provider is running.

    Args:
        elapsed_seconds: Time since polling started
        estimated_seconds: Expected total duration (TRANSFORM_ESTIMATED_SECONDS)

    Returns:
        int: Whole percentage between 10 and 90
    """
    estimated = estimated_seconds or settings.TRANSFORM_ESTIMATED_SECONDS
    progress = INITIAL_PROGRESS + (max(0.0, elapsed_seconds) / estimated) * 80
    return int(min(MAX_RUNNING_PROGRESS, progress))


def progress_message(progress: float) -> str:
    if progress > 80:
        return "Finalizing results..."
    if progress > 60:
        return "Generating variations..."
    if progress > 30:
        return "Applying transformations..."
    return "Processing image..."


def extract_output_urls(output: Any) -> list[str]:
    """
    Normalize a prediction output to a list of URLs.

    Non-string list entries are dropped.

    Raises:
        InvalidOutputError: If the output is neither a list nor a non-empty string
    """
    if isinstance(output, list):
        return [url for url in output if isinstance(url, str)]
    if isinstance(output, str) and output:
        return [output]
    raise InvalidOutputError(f"Unexpected prediction output: {output!r}")


def preview_progress(index: int, total: int) -> float:
    return SAVING_PROGRESS + (index / total) * 5


def report_progress(user_id: int, operation_id: str, progress: float, message: str) -> None:
    """Publish progress to the owner and mirror it in the Celery task state."""
    publish_progress(user_id, operation_id, progress, message)
    if current_task:
        current_task.update_state(
            state="PROGRESS",
            meta={"operation_id": operation_id, "percent": progress, "message": message},
        )


# =============================================================================
# Pipeline
# =============================================================================

def wait_for_prediction(
    replicate: ReplicateClient,
    user_id: int,
    operation_id: str,
    *,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> Prediction | None:
    """
    Poll the provider until the prediction leaves starting/processing.

    Returns:
        The settled prediction, or None if TRANSFORM_TIMEOUT_SECONDS elapsed
        (the timeout error has already been published)
    """
    prediction = replicate.get_prediction(operation_id)
    start = clock()

    while prediction.is_running:
        elapsed = clock() - start
        if elapsed > settings.TRANSFORM_TIMEOUT_SECONDS:
            logger.warning(f"Prediction {operation_id} timed out after {elapsed:.0f}s")
            publish_error(user_id, operation_id, TIMEOUT_ERROR)
            return None

        progress = estimate_progress(elapsed)
        report_progress(user_id, operation_id, progress, progress_message(progress))

        sleep(settings.TRANSFORM_POLL_INTERVAL_SECONDS)
        prediction = replicate.get_prediction(operation_id)
        logger.debug(f"Prediction {operation_id} status: {prediction.status}")

    return prediction


def store_outputs(
    replicate: ReplicateClient,
    user_id: int,
    operation_id: str,
    urls: list[str],
    transformation: TransformationInput,
    public_base_url: str,
) -> list[str]:
    """
    Download every output, store it locally and send a preview for each.

    An output that cannot be downloaded or stored keeps its provider URL.
    """
    results: list[str] = []
    for index, url in enumerate(urls):
        try:
            content = replicate.download(url)
            path = StorageService.save_file(
                content,
                f"transformed_{operation_id}_{index}.{transformation.file_extension}",
                user_id,
            )
            result_url = f"{public_base_url.rstrip('/')}{path}"
        except Exception as e:
            logger.warning(f"Could not persist output {url}, falling back to remote URL: {e}")
            result_url = url

        results.append(result_url)
        publish_preview(user_id, operation_id, result_url, preview_progress(index, len(urls)))

    return results


def run_transformation(
    operation_id: str,
    user_id: int,
    provider_input: dict[str, Any],
    public_base_url: str,
    *,
    replicate: ReplicateClient | None = None,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> dict[str, Any]:
    """
    Drive one operation from created prediction to completed or failed.

    Exactly one terminal update (completed or error) is published.

    Returns:
        Dict with success and either results or error
    """
    replicate = replicate or ReplicateClient()

    try:
        transformation = TransformationInput.model_validate(provider_input)

        report_progress(user_id, operation_id, INITIAL_PROGRESS, "Initializing AI model...")

        prediction = wait_for_prediction(replicate, user_id, operation_id, clock=clock, sleep=sleep)
        if prediction is None:
            return {"success": False, "error": TIMEOUT_ERROR}

        if not prediction.succeeded:
            error = prediction.error or DEFAULT_PROVIDER_ERROR
            logger.error(f"Transformation {operation_id} failed: {error}")
            publish_error(user_id, operation_id, error)
            return {"success": False, "error": error}

        report_progress(user_id, operation_id, SAVING_PROGRESS, "Saving results...")

        try:
            urls = extract_output_urls(prediction.output)
        except InvalidOutputError as e:
            logger.error(f"Transformation {operation_id}: {e}")
            publish_error(user_id, operation_id, INVALID_OUTPUT_ERROR)
            return {"success": False, "error": INVALID_OUTPUT_ERROR}

        results = store_outputs(replicate, user_id, operation_id, urls, transformation, public_base_url)

        publish_completed(user_id, operation_id, results)
        logger.info(f"Transformation {operation_id} completed with {len(results)} result(s)")
        return {"success": True, "results": results}

    except Exception as e:
        logger.exception(f"Error processing transformation {operation_id}: {e}")
        publish_error(user_id, operation_id, INTERNAL_ERROR)
        return {"success": False, "error": INTERNAL_ERROR}


# =============================================================================
# Celery Tasks
# =============================================================================

@shared_task(bind=True, name="workers.tasks.process_transformation")
def process_transformation(
    self,
    operation_id: str,
    user_id: int,
    provider_input: dict[str, Any],
    public_base_url: str,
) -> dict[str, Any]:
    """
    Process a created prediction with real-time updates.

    Steps:
    1. Publish progress 10 "Initializing AI model..."
    2. Poll the provider every TRANSFORM_POLL_INTERVAL_SECONDS, publishing
       estimated progress, until it settles or times out
    3. Publish progress 95 "Saving results..."
    4. Store each output locally and publish a preview per output
    5. Publish completed with all result URLs

    Args:
        operation_id: Prediction id returned at submission
        user_id: Owner of the operation
        provider_input: Model input (TransformationInput.to_provider_input())
        public_base_url: Base URL stored files are served from

    Returns:
        Dict with success and either results or error
    """
    logger.info(f"Processing transformation {operation_id} for user {user_id}")

    with ReplicateClient() as replicate:
        return run_transformation(operation_id, user_id, provider_input, public_base_url, replicate=replicate)
