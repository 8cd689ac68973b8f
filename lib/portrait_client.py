# =============================================================================
# lib/portrait_client.py - Portrait Studio Client
# =============================================================================
# Composes the tracking layer into one object owned by the consumer:
# - ConnectionManager: websocket + reconnection
# - OperationRegistry: id -> snapshot, fed by the manager
# - OperationLauncher: job submission
# - OperationPoller: fallback once the manager gives up
#
# Usage:
#   async with PortraitStudioClient("https://studio.example.com",
#                                   cookies={"session": token}) as client:
#       op_id = await client.start_transformation(
#           data={"style": "Anime"},
#           files={"image": ("me.png", image_bytes, "image/png")},
#       )
#       operation = await client.wait_for_operation(op_id, timeout=180)
#       print(operation.results)
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

import httpx

from core.models.operation import Operation
from core.services.operation_registry import OperationRegistry, TerminalStatePolicy
from lib.operation_launcher import OperationLauncher
from lib.operation_poller import OperationPoller
from lib.realtime_client import ConnectionManager, ConnectionState, Connector
from lib.realtime_config import client_settings

logger = logging.getLogger(__name__)


class PortraitStudioClient:
    """
    One independent tracking stack per instance.

    Nothing is module-global: two clients never share connections or
    operation state.
    """

    def __init__(
        self,
        origin: str,
        *,
        cookies: dict[str, str] | None = None,
        http_client: httpx.AsyncClient | None = None,
        connector: Connector | None = None,
        policy: TerminalStatePolicy | None = None,
        max_reconnect_attempts: int | None = None,
        poll_interval_seconds: float | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.origin = origin.rstrip("/")

        self._owns_http_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(
            base_url=self.origin,
            cookies=cookies,
            timeout=client_settings.REQUEST_TIMEOUT_SECONDS,
        )

        headers = {}
        if cookies:
            headers["Cookie"] = "; ".join(f"{name}={value}" for name, value in cookies.items())

        self.registry = OperationRegistry(policy=policy or client_settings.TERMINAL_STATE_POLICY)
        self.connection = ConnectionManager(
            self.origin,
            headers=headers,
            connector=connector,
            max_reconnect_attempts=max_reconnect_attempts,
            sleep=sleep,
        )
        self.launcher = OperationLauncher(self.http_client, self.connection, self.registry)
        self.poller = OperationPoller(self.http_client, self.registry, interval_seconds=poll_interval_seconds)

        self.connection.add_update_listener(self.registry.apply_update)
        self.connection.add_state_listener(self._on_connection_state)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def __aenter__(self) -> "PortraitStudioClient":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def connect(self) -> bool:
        return await self.connection.connect()

    async def disconnect(self) -> None:
        await self.connection.disconnect()

    async def close(self) -> None:
        """Stop polling, close the channel and the owned HTTP client."""
        await self.connection.disconnect()
        await self.poller.stop_all()
        if self._owns_http_client:
            await self.http_client.aclose()

    # -------------------------------------------------------------------------
    # Observable State
    # -------------------------------------------------------------------------

    @property
    def is_connected(self) -> bool:
        return self.connection.is_connected

    @property
    def connection_error(self) -> str | None:
        return self.connection.connection_error

    @property
    def operations(self) -> list[Operation]:
        return self.registry.list_operations()

    def get_operation(self, operation_id: str) -> Operation | None:
        return self.registry.get_operation(operation_id)

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def start_transformation(
        self,
        data: dict[str, Any] | None = None,
        files: dict[str, Any] | None = None,
    ) -> str:
        operation_id = await self.launcher.start_transformation(data=data, files=files)
        if self.connection.gave_up:
            self.poller.start(operation_id)
        return operation_id

    async def subscribe_to_operation(self, operation_id: str) -> bool:
        return await self.connection.subscribe_to_operation(operation_id)

    def clear_operation(self, operation_id: str) -> None:
        """Forget an operation: snapshot, subscription and any polling."""
        self.registry.clear_operation(operation_id)
        self.connection.unsubscribe_from_operation(operation_id)
        self.poller.cancel(operation_id)

    async def wait_for_operation(self, operation_id: str, timeout: float | None = None) -> Operation | None:
        """
        Wait until an operation is completed or failed.

        Returns None if the operation is cleared while waiting.

        Raises:
            asyncio.TimeoutError: If timeout expires first
        """
        current = self.registry.get_operation(operation_id)
        if current is not None and current.is_terminal:
            return current

        settled = asyncio.Event()

        def on_change(changed_id: str, operation: Operation | None) -> None:
            if changed_id == operation_id and (operation is None or operation.is_terminal):
                settled.set()

        self.registry.add_listener(on_change)
        try:
            await asyncio.wait_for(settled.wait(), timeout)
        finally:
            self.registry.remove_listener(on_change)

        return self.registry.get_operation(operation_id)

    # -------------------------------------------------------------------------
    # Fallback Wiring
    # -------------------------------------------------------------------------

    def _on_connection_state(self, state: ConnectionState, error: str | None) -> None:
        if state is ConnectionState.CONNECTED:
            self.poller.cancel_all()
        elif self.connection.gave_up:
            pending = self.registry.pending_operation_ids()
            if pending:
                logger.warning(f"Real-time channel lost ({error}); polling {len(pending)} operation(s)")
            for operation_id in pending:
                self.poller.start(operation_id)
