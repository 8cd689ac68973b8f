# =============================================================================
# lib/operation_poller.py - Polling Fallback (client side)
# =============================================================================
# Once the realtime channel has given up, operations that are still running
# are tracked by polling GET /api/status/{operationId}. Each server snapshot
# is converted back into updates and folded into the same registry, so
# consumers cannot tell which path delivered the state.
# =============================================================================

from __future__ import annotations

import asyncio
import logging

import httpx
from pydantic import ValidationError

from core.models.transform import StatusResponse
from core.services.operation_registry import OperationRegistry, snapshot_to_updates
from lib.realtime_config import client_settings

logger = logging.getLogger(__name__)


class OperationPoller:
    """Polls the status endpoint for operations the channel can't deliver."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        registry: OperationRegistry,
        *,
        status_path: str | None = None,
        interval_seconds: float | None = None,
        max_attempts: int | None = None,
    ):
        self.http_client = http_client
        self.registry = registry
        self.status_path = (status_path or client_settings.STATUS_PATH).rstrip("/")
        self.interval_seconds = interval_seconds if interval_seconds is not None else client_settings.POLL_INTERVAL_SECONDS
        self.max_attempts = max_attempts or client_settings.POLL_MAX_ATTEMPTS
        self._tasks: dict[str, asyncio.Task] = {}

    @property
    def active_operation_ids(self) -> list[str]:
        return [op_id for op_id, task in self._tasks.items() if not task.done()]

    async def poll_once(self, operation_id: str) -> bool:
        """
        Fetch one snapshot and fold it into the registry.

        Returns:
            bool: False if polling this operation should stop (terminal,
                unknown to the server, or removed locally)
        """
        response = await self.http_client.get(f"{self.status_path}/{operation_id}")

        if response.status_code == 404:
            logger.warning(f"Server does not know operation {operation_id}; stop polling")
            return False
        response.raise_for_status()

        try:
            body = StatusResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.warning(f"Invalid status response for {operation_id}: {e}")
            return True

        if not body.success or body.operation is None:
            logger.warning(f"Status request for {operation_id} failed: {body.error}")
            return True

        if operation_id not in self.registry:
            logger.debug(f"Operation {operation_id} was cleared; stop polling")
            return False

        for update in snapshot_to_updates(body.operation):
            self.registry.apply_update(update)

        current = self.registry.get_operation(operation_id)
        return current is not None and not current.is_terminal

    async def poll_until_terminal(self, operation_id: str) -> None:
        """Poll every interval until terminal or out of attempts."""
        for attempt in range(1, self.max_attempts + 1):
            try:
                keep_polling = await self.poll_once(operation_id)
            except httpx.HTTPError as e:
                logger.warning(f"Polling {operation_id} failed (attempt {attempt}/{self.max_attempts}): {e}")
                keep_polling = True

            if not keep_polling:
                return
            await asyncio.sleep(self.interval_seconds)

        logger.error(f"Gave up polling operation {operation_id} after {self.max_attempts} attempts")

    def start(self, operation_id: str) -> asyncio.Task:
        """Start (or return the running) background poll for an operation."""
        task = self._tasks.get(operation_id)
        if task is not None and not task.done():
            return task

        logger.info(f"Falling back to polling for operation {operation_id}")
        task = asyncio.create_task(self.poll_until_terminal(operation_id))
        self._tasks[operation_id] = task
        return task

    def cancel(self, operation_id: str) -> None:
        task = self._tasks.pop(operation_id, None)
        if task is not None:
            task.cancel()

    def cancel_all(self) -> list[asyncio.Task]:
        """Cancel every poll without waiting; returns the cancelled tasks."""
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            logger.info(f"Stopped polling {len(tasks)} operation(s)")
        return tasks

    async def stop_all(self) -> None:
        await asyncio.gather(*self.cancel_all(), return_exceptions=True)
