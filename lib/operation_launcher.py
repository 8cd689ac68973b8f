# =============================================================================
# lib/operation_launcher.py - Transformation Job Submission (client side)
# =============================================================================
# Submits a transformation job as a multipart upload and wires the returned
# operation id into tracking:
# 1. POST /api/transform-realtime (session cookies included)
# 2. Subscribe the id on the ConnectionManager
# 3. Seed the registry with a 'starting' snapshot
#
# Usage:
#   launcher = OperationLauncher(http_client, connection, registry)
#   operation_id = await launcher.start_transformation(
#       data={"style": "Anime"},
#       files={"image": ("me.png", image_bytes, "image/png")},
#   )
# =============================================================================

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from core.models.transform import SubmissionResponse
from core.services.operation_registry import OperationRegistry
from lib.realtime_client import ConnectionManager, RealtimeClientError
from lib.realtime_config import client_settings

logger = logging.getLogger(__name__)

UNKNOWN_SUBMISSION_ERROR = "Unknown error occurred"


class SubmissionError(RealtimeClientError):
    """
    Job submission failed, either at the HTTP layer or logically.

    status_code/reason are set for HTTP failures and left None when the
    server answered 2xx without an operation id.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        reason: str | None = None,
    ):
        super().__init__(
            message=message,
            code="SUBMISSION_ERROR",
            suggestion="Check the upload and try again" if status_code is None or status_code < 500 else None,
            details={"status_code": status_code, "reason": reason},
        )
        self.status_code = status_code
        self.reason = reason

    @classmethod
    def from_response(cls, response: httpx.Response) -> "SubmissionError":
        reason = response.reason_phrase
        return cls(
            f"HTTP {response.status_code}: {reason}",
            status_code=response.status_code,
            reason=reason,
        )


class OperationLauncher:
    """
    Starts transformation jobs and registers them for tracking.

    The http client is expected to carry the base URL of the server and
    the session cookies (credentials are always included).
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        connection: ConnectionManager,
        registry: OperationRegistry,
        transform_path: str | None = None,
    ):
        self.http_client = http_client
        self.connection = connection
        self.registry = registry
        self.transform_path = transform_path or client_settings.TRANSFORM_PATH

    async def start_transformation(
        self,
        data: dict[str, Any] | None = None,
        files: dict[str, Any] | None = None,
    ) -> str:
        """
        Submit a job and start tracking it.

        Args:
            data: Form fields (style, persona, num_images, ...)
            files: Multipart files in httpx format, e.g.
                {"image": ("photo.png", b"...", "image/png")}

        Returns:
            str: The server-assigned operation id

        Raises:
            SubmissionError: On transport failure, non-2xx status, or a body
                without success/operationId
        """
        try:
            response = await self.http_client.post(
                self.transform_path,
                data=data or {},
                files=files or None,
            )
        except httpx.HTTPError as e:
            logger.error(f"Failed to start transformation: {e}")
            raise SubmissionError(f"Request failed: {e}") from e

        if not response.is_success:
            error = SubmissionError.from_response(response)
            logger.error(f"Failed to start transformation: {error.message}")
            raise error

        operation_id = self._parse_operation_id(response)

        await self.connection.subscribe_to_operation(operation_id)
        self.registry.seed_operation(operation_id)

        logger.info(f"Transformation started: {operation_id}")
        return operation_id

    @staticmethod
    def _parse_operation_id(response: httpx.Response) -> str:
        try:
            body = SubmissionResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.error(f"Invalid submission response: {e}")
            raise SubmissionError(UNKNOWN_SUBMISSION_ERROR) from e

        if not body.success or not body.operation_id:
            message = body.error or UNKNOWN_SUBMISSION_ERROR
            logger.error(f"Failed to start transformation: {message}")
            raise SubmissionError(message)

        return body.operation_id
