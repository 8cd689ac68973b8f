# =============================================================================
# app/websocket/manager.py - Realtime Service (server side)
# =============================================================================
# Tracks websocket connections per user, keeps the server's copy of every
# operation, and pushes operation updates to the owning user.
#
# Usage:
#   from app.websocket import realtime_service
#
#   # Connect a client (after authentication)
#   await realtime_service.connect(websocket, user)
#
#   # Push an update to the operation's owner
#   await realtime_service.update_progress(operation_id, user_id, 42, "Processing image...")
#
#   # Disconnect a client
#   realtime_service.disconnect(websocket, user.id)
# =============================================================================

import json
import logging
from collections import OrderedDict
from typing import Any, Dict, Set

from fastapi import WebSocket
from pydantic import ValidationError

from app.auth.models import AuthUser
from app.config import settings
from core.models.operation import (
    ClientMessage,
    ClientMessageType,
    Operation,
    OperationStatus,
    RealtimeUpdate,
)
from core.services.operation_registry import (
    OperationRegistry,
    TerminalStatePolicy,
    snapshot_to_updates,
)

logger = logging.getLogger(__name__)

WELCOME_MESSAGE = "Connected to real-time preview service"


class RealtimeService:
    """
    Manages websocket connections organized by user id.

    Each user can have multiple connected clients (e.g., multiple browser tabs).
    Operation updates are folded into the server-side store, then sent to
    every connection of the operation's owner.
    """

    def __init__(self, max_finished_operations: int | None = None):
        # user_id -> set of WebSocket connections
        self.connections: Dict[int, Set[WebSocket]] = {}
        # Track connection count for logging
        self._total_connections = 0

        # Server copy of every operation, used for subscribe replay and polling
        self.operations = OperationRegistry(policy=TerminalStatePolicy.STICKY)
        # operation_id -> owning user_id
        self._owners: Dict[str, int] = {}
        # Finished operation ids, oldest first
        self._finished: OrderedDict[str, None] = OrderedDict()
        self.max_finished_operations = (
            settings.MAX_FINISHED_OPERATIONS
            if max_finished_operations is None else max_finished_operations
        )

    # -------------------------------------------------------------------------
    # Connections
    # -------------------------------------------------------------------------

    async def connect(self, websocket: WebSocket, user: AuthUser) -> None:
        """
        Accept a new websocket connection, track it and greet the client.

        Args:
            websocket: The websocket connection
            user: The authenticated owner of the connection
        """
        await websocket.accept()

        self.connections.setdefault(user.id, set()).add(websocket)
        self._total_connections += 1

        logger.info(
            f"WebSocket connected: {user.username} ({user.id}). "
            f"Total connections: {self._total_connections}"
        )

        await self._send(websocket, RealtimeUpdate.for_status(
            "connection",
            message=WELCOME_MESSAGE,
            userId=user.id,
            username=user.username,
        ))

    def disconnect(self, websocket: WebSocket, user_id: int) -> None:
        """
        Remove a websocket connection from tracking.

        Args:
            websocket: The websocket connection to remove
            user_id: The user this connection belonged to
        """
        user_connections = self.connections.get(user_id)
        if user_connections and websocket in user_connections:
            user_connections.discard(websocket)
            self._total_connections -= 1

            # Clean up empty user entries
            if not user_connections:
                del self.connections[user_id]

        logger.info(
            f"WebSocket disconnected: user {user_id}. "
            f"Total connections: {self._total_connections}"
        )

    # -------------------------------------------------------------------------
    # Client Messages
    # -------------------------------------------------------------------------

    async def handle_client_message(self, websocket: WebSocket, user: AuthUser, raw: str) -> None:
        """
        Handle one frame sent by a client.

        Supports:
            {"type": "ping"}                          -> pong status
            {"type": "subscribe", "operationId": ...} -> replay current state

        Invalid frames are logged and ignored; the connection stays open.
        """
        try:
            message = ClientMessage.model_validate(json.loads(raw))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.warning(f"Invalid WebSocket message from user {user.id}: {e}")
            return

        if message.type is ClientMessageType.PING:
            await self._send(websocket, RealtimeUpdate.for_status("ping", message="pong"))

        elif message.type is ClientMessageType.SUBSCRIBE:
            if not message.operation_id:
                logger.warning(f"Subscribe without operationId from user {user.id}")
                return

            logger.info(f"User {user.username} subscribed to operation {message.operation_id}")

            # Send current state if the operation exists and belongs to the user
            operation = self.get_operation(message.operation_id, user_id=user.id)
            if operation is not None:
                for update in snapshot_to_updates(operation):
                    await self._send(websocket, update)

    # -------------------------------------------------------------------------
    # Operation Store
    # -------------------------------------------------------------------------

    def register_operation(self, operation_id: str, user_id: int) -> Operation:
        """Start tracking a newly created operation for its owner."""
        self._owners[operation_id] = user_id
        self._finished.pop(operation_id, None)
        return self.operations.put_operation(Operation(
            operation_id=operation_id,
            status=OperationStatus.STARTING,
            progress=0,
        ))

    def owner_of(self, operation_id: str) -> int | None:
        return self._owners.get(operation_id)

    def get_operation(self, operation_id: str, user_id: int | None = None) -> Operation | None:
        """
        Get the stored snapshot of an operation.

        If user_id is given, operations owned by another user are reported
        as missing.
        """
        if user_id is not None and self._owners.get(operation_id) != user_id:
            return None
        return self.operations.get_operation(operation_id)

    # -------------------------------------------------------------------------
    # Updates
    # -------------------------------------------------------------------------

    async def dispatch(self, user_id: int, update: RealtimeUpdate) -> int:
        """
        Fold an update into the store and push it to the user's clients.

        Returns:
            int: Number of clients the update was sent to
        """
        operation = self.operations.apply_update(update)
        if operation.is_terminal:
            self._retire(operation.operation_id)
        return await self.send_to_user(user_id, update)

    def _retire(self, operation_id: str) -> None:
        """Remember a finished operation, evicting the oldest past the cap."""
        if operation_id in self._finished:
            return
        self._finished[operation_id] = None

        while len(self._finished) > self.max_finished_operations:
            evicted, _ = self._finished.popitem(last=False)
            self.operations.clear_operation(evicted)
            self._owners.pop(evicted, None)
            logger.debug(f"Evicted finished operation {evicted}")

    async def update_status(self, operation_id: str, user_id: int, status: str, **data: Any) -> int:
        logger.info(f"Status update: {operation_id} -> {status}")
        return await self.dispatch(user_id, RealtimeUpdate.for_status(operation_id, status, **data))

    async def update_progress(self, operation_id: str, user_id: int, progress: float, message: str | None = None) -> int:
        logger.info(f"Progress update: {operation_id} -> {progress}% {message or ''}".rstrip())
        return await self.dispatch(user_id, RealtimeUpdate.for_progress(operation_id, progress, message))

    async def send_preview(self, operation_id: str, user_id: int, preview_url: str, progress: float | None = None) -> int:
        logger.info(f"Preview update: {operation_id} -> {preview_url}")
        return await self.dispatch(user_id, RealtimeUpdate.for_preview(operation_id, preview_url, progress))

    async def send_completed(self, operation_id: str, user_id: int, results: list[str]) -> int:
        logger.info(f"Completed: {operation_id} -> {len(results)} results")
        return await self.dispatch(user_id, RealtimeUpdate.for_completed(operation_id, results))

    async def send_error(self, operation_id: str, user_id: int, error: str) -> int:
        logger.info(f"Error: {operation_id} -> {error}")
        return await self.dispatch(user_id, RealtimeUpdate.for_error(operation_id, error))

    # -------------------------------------------------------------------------
    # Sending
    # -------------------------------------------------------------------------

    async def send_to_user(self, user_id: int, update: RealtimeUpdate) -> int:
        """
        Send an update to all connections of a user.

        Returns:
            int: Number of clients the update was sent to
        """
        if user_id not in self.connections:
            logger.debug(f"No connections for user {user_id}, skipping {update.type.value} update")
            return 0

        dead_connections: Set[WebSocket] = set()
        sent_count = 0

        for websocket in list(self.connections[user_id]):
            if await self._send(websocket, update):
                sent_count += 1
            else:
                dead_connections.add(websocket)

        # Clean up any dead connections
        for ws in dead_connections:
            self.disconnect(ws, user_id)

        if dead_connections:
            logger.info(f"Cleaned up {len(dead_connections)} dead connections")

        return sent_count

    async def _send(self, websocket: WebSocket, update: RealtimeUpdate) -> bool:
        try:
            await websocket.send_json(update.to_wire())
            return True
        except Exception as e:
            logger.warning(f"Failed to send WebSocket message: {e}")
            return False

    # -------------------------------------------------------------------------
    # Stats
    # -------------------------------------------------------------------------

    def get_connection_count(self, user_id: int | None = None) -> int:
        """
        Get the number of active connections.

        Args:
            user_id: If provided, count for a specific user. Otherwise total.
        """
        if user_id is not None:
            return len(self.connections.get(user_id, set()))
        return self._total_connections

    def get_connected_users(self) -> int:
        return len(self.connections)

    def get_active_operations(self) -> int:
        return len(self.operations.pending_operation_ids())


# Global singleton instance
realtime_service = RealtimeService()
