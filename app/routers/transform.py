# =============================================================================
# app/routers/transform.py - Transformation Submission & Status
# =============================================================================
# POST /api/transform-realtime : validate upload, create prediction, enqueue
#                                the worker, return the operationId at once
# GET  /api/status/{operation_id} : latest snapshot (polling fallback)
#
# Progress after submission is pushed over /api/realtime.
# =============================================================================

import base64
import logging
from typing import Annotated, Any, Optional

from fastapi import APIRouter, Depends, File, Form, Path, Request, UploadFile
from fastapi.concurrency import run_in_threadpool

from app.auth import AuthUser, get_current_user
from app.config import settings
from app.exceptions import (
    FileTooLargeError,
    InvalidFileTypeError,
    MissingInputImageError,
    OperationNotFoundError,
)
from app.websocket import realtime_service
from core.models.transform import StatusResponse, SubmissionResponse, TransformationInput
from lib.replicate_client import ReplicateClient

logger = logging.getLogger(__name__)

router = APIRouter()

SUBMITTED_MESSAGE = "Transformation started. Connect to WebSocket for real-time updates."

_IMAGE_CONTENT_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
}


# =============================================================================
# Dependencies & Helpers
# =============================================================================

def get_replicate_client() -> ReplicateClient:
    """FastAPI dependency for the provider client."""
    return ReplicateClient()


def _parse_bool(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


def _parse_seed(value: Optional[str]) -> int | None:
    try:
        return int(value) if value not in (None, "") else None
    except ValueError:
        return None


def _to_data_url(content: bytes, file_ext: str) -> str:
    content_type = _IMAGE_CONTENT_TYPES.get(file_ext, "image/png")
    return f"data:{content_type};base64,{base64.b64encode(content).decode('ascii')}"


def _dispatch_transformation(
    operation_id: str,
    user_id: int,
    provider_input: dict[str, Any],
    public_base_url: str,
) -> None:
    """Queue the background pipeline for a created prediction."""
    from workers.tasks import process_transformation

    process_transformation.delay(operation_id, user_id, provider_input, public_base_url)


async def _read_image(image: UploadFile) -> str:
    """Validate an uploaded image and return it as a data URL."""
    filename = image.filename or "image.png"
    file_ext = "." + filename.split(".")[-1].lower() if "." in filename else ""

    if file_ext not in settings.allowed_extensions_list:
        raise InvalidFileTypeError(filename, settings.allowed_extensions_list)

    content = await image.read()
    file_size_bytes = len(content)
    file_size_mb = file_size_bytes / (1024 * 1024)

    if file_size_bytes > settings.max_upload_size_bytes:
        raise FileTooLargeError(file_size_mb, settings.MAX_UPLOAD_SIZE_MB)

    if not content:
        raise MissingInputImageError()

    logger.info(f"Received image: {filename} ({file_size_mb:.2f}MB)")
    return _to_data_url(content, file_ext)


# =============================================================================
# Endpoints
# =============================================================================

@router.post("/transform-realtime", response_model=SubmissionResponse, response_model_exclude_none=True)
async def transform_realtime(
    request: Request,
    image: Annotated[Optional[UploadFile], File(description="Portrait to transform")] = None,
    input_image: Annotated[Optional[str], Form(description="Image URL, used when no file is uploaded")] = None,
    style: Annotated[Optional[str], Form()] = None,
    persona: Annotated[Optional[str], Form()] = None,
    num_images: Annotated[Optional[str], Form()] = None,
    aspect_ratio: Annotated[Optional[str], Form()] = None,
    output_format: Annotated[Optional[str], Form()] = None,
    preserve_outfit: Annotated[Optional[str], Form()] = None,
    preserve_background: Annotated[Optional[str], Form()] = None,
    safety_tolerance: Annotated[Optional[str], Form()] = None,
    seed: Annotated[Optional[str], Form()] = None,
    user: AuthUser = Depends(get_current_user),
    replicate: ReplicateClient = Depends(get_replicate_client),
):
    """
    Start a portrait transformation with real-time updates.

    This endpoint:
    1. Validates the image (extension, size)
    2. Builds the model input from the form fields
    3. Creates the provider prediction (its id becomes the operationId)
    4. Registers the operation and sends a 'starting' status
    5. Queues the worker that reports progress over the websocket

    Returns immediately; progress arrives over /api/realtime.
    """
    # =========================================================================
    # 1. Validate Input Image
    # =========================================================================

    if image is not None and image.filename:
        source = await _read_image(image)
    elif input_image:
        source = input_image
    else:
        raise MissingInputImageError()

    # =========================================================================
    # 2. Build Provider Input
    # =========================================================================

    transformation = TransformationInput(
        input_image=source,
        style=style,
        persona=persona,
        num_images=num_images if num_images is not None else 1,
        aspect_ratio=aspect_ratio,
        output_format=output_format,
        preserve_outfit=_parse_bool(preserve_outfit),
        preserve_background=_parse_bool(preserve_background),
        safety_tolerance=safety_tolerance,
        seed=_parse_seed(seed),
    )
    logger.info(f"Real-time transformation requested by user {user.id}: {transformation.summary()}")

    # =========================================================================
    # 3. Create Prediction
    # =========================================================================

    provider_input = transformation.to_provider_input()
    prediction = await run_in_threadpool(replicate.create_prediction, provider_input)
    operation_id = prediction.id

    # =========================================================================
    # 4. Register & Announce
    # =========================================================================

    realtime_service.register_operation(operation_id, user.id)
    await realtime_service.update_status(
        operation_id,
        user.id,
        "starting",
        message="Transformation started",
        input=transformation.summary(),
    )

    # =========================================================================
    # 5. Queue Background Processing
    # =========================================================================

    _dispatch_transformation(operation_id, user.id, provider_input, str(request.base_url).rstrip("/"))

    return SubmissionResponse(success=True, operation_id=operation_id, message=SUBMITTED_MESSAGE)


@router.get("/status/{operation_id}", response_model=StatusResponse, response_model_exclude_none=True)
async def get_operation_status(
    operation_id: Annotated[str, Path(description="Operation id returned at submission")],
    user: AuthUser = Depends(get_current_user),
):
    """
    Get the latest snapshot of an operation.

    Used by clients whose websocket gave up. Operations owned by another
    user are reported as not found.
    """
    operation = realtime_service.get_operation(operation_id, user_id=user.id)
    if operation is None:
        raise OperationNotFoundError(operation_id)

    return StatusResponse(success=True, operation=operation)
