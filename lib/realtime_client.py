# =============================================================================
# lib/realtime_client.py - Realtime Connection Manager (client side)
# =============================================================================
# Owns the websocket to the server's push endpoint and turns inbound frames
# into RealtimeUpdate events.
#
# Responsibilities:
# - connect / disconnect (normal closure code 1000 never triggers a retry)
# - exponential-backoff reconnection: min(1000 * 2**attempt, 10000) ms,
#   at most 5 attempts, then a persistent connection error
# - subscription tracking: every subscribed id is re-sent after each
#   successful (re)connect
# - malformed frames are logged and dropped
#
# Usage:
#   manager = ConnectionManager("https://studio.example.com")
#   manager.add_update_listener(registry.apply_update)
#   await manager.connect()
#   await manager.subscribe_to_operation("op-1")
# =============================================================================

from __future__ import annotations

import asyncio
import json
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Protocol
from urllib.parse import urlsplit

from pydantic import ValidationError
from websockets.asyncio.client import connect as websocket_connect
from websockets.exceptions import ConnectionClosed

from core.models.operation import ClientMessage, ClientMessageType, RealtimeUpdate
from lib.realtime_config import client_settings

logger = logging.getLogger(__name__)

NORMAL_CLOSURE = 1000
ABNORMAL_CLOSURE = 1006

# Server-side pseudo operations used for handshake and ping replies
CONTROL_OPERATION_IDS = frozenset({"connection", "ping"})

RETRYING_ERROR = "Real-time connection error. Retrying..."
GAVE_UP_ERROR = "Failed to connect to real-time service. Please refresh the page."


# =============================================================================
# Errors
# =============================================================================

class RealtimeClientError(Exception):
    """
    Base error for the client-side tracking layer.

    Carries a machine-readable code and, where possible, a suggestion on
    how to recover.
    """

    def __init__(
        self,
        message: str,
        code: str = "REALTIME_ERROR",
        suggestion: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.suggestion = suggestion
        self.details = details or {}

    def __str__(self) -> str:
        result = f"[{self.code}] {self.message}"
        if self.suggestion:
            result += f" Suggestion: {self.suggestion}"
        return result


class RealtimeConnectionError(RealtimeClientError):
    """The channel could not be (re)established within the retry budget."""

    def __init__(self, message: str = GAVE_UP_ERROR):
        super().__init__(
            message=message,
            code="REALTIME_CONNECTION_ERROR",
            suggestion="Call connect() again or reload the page",
        )


class MalformedUpdateError(RealtimeClientError):
    """An inbound frame was not a valid realtime update."""

    def __init__(self, reason: str, raw: Any = None):
        super().__init__(
            message=f"Malformed realtime update: {reason}",
            code="MALFORMED_UPDATE",
            details={"raw": raw if isinstance(raw, str) else repr(raw)},
        )


# =============================================================================
# Helpers
# =============================================================================

class ConnectionState(str, Enum):
    """Disconnected -> Connecting -> Connected -> Disconnected."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class Channel(Protocol):
    """The subset of a websocket connection the manager relies on."""

    close_code: int | None

    async def send(self, message: str) -> None: ...

    async def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None: ...

    def __aiter__(self): ...


Connector = Callable[[str], Awaitable[Channel]]
UpdateListener = Callable[[RealtimeUpdate], None]
StateListener = Callable[["ConnectionState", "str | None"], None]


def reconnect_delay_ms(attempt: int, base_ms: int = 1000, max_ms: int = 10000) -> int:
    """
    Backoff delay before reconnect attempt number `attempt` (0-based).

    With the defaults: 1000, 2000, 4000, 8000, 10000, 10000, ...
    """
    return min(base_ms * 2 ** attempt, max_ms)


def build_realtime_url(origin: str, path: str = "/api/realtime") -> str:
    """
    Derive the websocket URL from the page/server origin.

    https:// (or wss://) origins use the secure wss:// scheme, anything
    else uses ws://.

    Example:
        build_realtime_url("https://studio.example.com")
        -> "wss://studio.example.com/api/realtime"
    """
    parts = urlsplit(origin)
    if not parts.netloc:
        raise ValueError(f"Origin must include a host: {origin!r}")

    scheme = "wss" if parts.scheme in ("https", "wss") else "ws"
    return f"{scheme}://{parts.netloc}/{path.lstrip('/')}"


def parse_update(raw: str | bytes) -> RealtimeUpdate:
    """
    Parse one inbound frame.

    Raises:
        MalformedUpdateError: If the frame is not JSON, not an object, or
            lacks a valid type/operationId/data
    """
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedUpdateError("frame is not UTF-8", raw) from e

    try:
        payload = json.loads(raw)
    except (TypeError, json.JSONDecodeError) as e:
        raise MalformedUpdateError(f"invalid JSON ({e})", raw) from e

    if not isinstance(payload, dict):
        raise MalformedUpdateError("payload is not an object", raw)

    try:
        return RealtimeUpdate.model_validate(payload)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise MalformedUpdateError(f"invalid fields: {fields}", raw) from e


# =============================================================================
# Connection Manager
# =============================================================================

class ConnectionManager:
    """
    Single logical channel to the server's push endpoint.

    Runs on one asyncio event loop. Inbound updates are delivered
    synchronously to update listeners in arrival order. State listeners are
    called with (state, connection_error) on every transition.
    """

    def __init__(
        self,
        origin: str,
        *,
        path: str | None = None,
        headers: dict[str, str] | None = None,
        connector: Connector | None = None,
        max_reconnect_attempts: int | None = None,
        base_delay_ms: int | None = None,
        max_delay_ms: int | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.url = build_realtime_url(origin, path or client_settings.REALTIME_PATH)
        self.max_reconnect_attempts = (
            client_settings.MAX_RECONNECT_ATTEMPTS
            if max_reconnect_attempts is None else max_reconnect_attempts
        )
        self.base_delay_ms = client_settings.RECONNECT_BASE_DELAY_MS if base_delay_ms is None else base_delay_ms
        self.max_delay_ms = client_settings.RECONNECT_MAX_DELAY_MS if max_delay_ms is None else max_delay_ms

        self._headers = dict(headers or {})
        self._connector = connector or self._open_websocket
        self._sleep = sleep

        self.state = ConnectionState.DISCONNECTED
        self.connection_error: str | None = None
        self.reconnect_attempts = 0
        self._gave_up = False
        # Bumped by connect()/disconnect(); an open started under an older
        # generation must not install its channel
        self._generation = 0

        self._channel: Channel | None = None
        self._reader_task: asyncio.Task | None = None
        self._reconnect_task: asyncio.Task | None = None
        self._subscriptions: set[str] = set()

        self._update_listeners: list[UpdateListener] = []
        self._control_listeners: list[UpdateListener] = []
        self._state_listeners: list[StateListener] = []

    # -------------------------------------------------------------------------
    # Observable State
    # -------------------------------------------------------------------------

    @property
    def is_connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED and self._channel is not None

    @property
    def gave_up(self) -> bool:
        """True once the reconnect budget is exhausted (until connect())."""
        return self._gave_up

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    @property
    def subscriptions(self) -> frozenset[str]:
        return frozenset(self._subscriptions)

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------

    def add_update_listener(self, listener: UpdateListener) -> None:
        self._update_listeners.append(listener)

    def remove_update_listener(self, listener: UpdateListener) -> None:
        if listener in self._update_listeners:
            self._update_listeners.remove(listener)

    def add_control_listener(self, listener: UpdateListener) -> None:
        self._control_listeners.append(listener)

    def add_state_listener(self, listener: StateListener) -> None:
        self._state_listeners.append(listener)

    def remove_state_listener(self, listener: StateListener) -> None:
        if listener in self._state_listeners:
            self._state_listeners.remove(listener)

    # -------------------------------------------------------------------------
    # Connect / Disconnect
    # -------------------------------------------------------------------------

    async def connect(self) -> bool:
        """
        (Re)establish the channel, closing any open one first.

        An explicit call always starts with a fresh retry budget.

        Returns:
            bool: True if the channel opened
        """
        self._generation += 1
        self._cancel_reconnect()
        self.reconnect_attempts = 0
        return await self._open()

    async def disconnect(self) -> None:
        """Close with code 1000; no automatic reconnect follows."""
        self._generation += 1
        self._cancel_reconnect()
        await self._close_channel()
        self.reconnect_attempts = 0
        self._gave_up = False
        self._set_state(ConnectionState.DISCONNECTED)
        logger.info("Real-time connection closed by client")

    async def wait_until_connected(self, timeout: float | None = None) -> None:
        """
        Wait for the channel to open.

        Raises:
            RealtimeConnectionError: If the retry budget runs out or the
                timeout expires first
        """
        if self.is_connected:
            return

        settled = asyncio.Event()

        def on_state(state: ConnectionState, error: str | None) -> None:
            if state is ConnectionState.CONNECTED or self._gave_up:
                settled.set()

        self.add_state_listener(on_state)
        try:
            if not self._gave_up:
                await asyncio.wait_for(settled.wait(), timeout)
        except asyncio.TimeoutError:
            raise RealtimeConnectionError("Timed out waiting for real-time connection")
        finally:
            self.remove_state_listener(on_state)

        if not self.is_connected:
            raise RealtimeConnectionError(self.connection_error or GAVE_UP_ERROR)

    async def _open_websocket(self, url: str) -> Channel:
        return await websocket_connect(url, additional_headers=self._headers or None)

    async def _open(self) -> bool:
        generation = self._generation
        await self._close_channel()
        self._set_state(ConnectionState.CONNECTING)
        logger.info(f"Connecting to real-time service: {self.url}")

        try:
            channel = await self._connector(self.url)
        except Exception as e:
            if generation != self._generation:
                logger.info(f"Superseded real-time connection attempt failed: {e}")
                return False
            logger.error(f"Failed to open real-time connection: {e}")
            self.connection_error = RETRYING_ERROR
            self._handle_close(ABNORMAL_CLOSURE, str(e))
            return False

        if generation != self._generation:
            logger.info("Discarding superseded real-time connection")
            try:
                await channel.close(code=NORMAL_CLOSURE, reason="Client disconnect")
            except Exception as e:
                logger.warning(f"Error while closing real-time connection: {e}")
            return False

        # Only one live channel at a time
        await self._close_channel()
        self._channel = channel
        self.reconnect_attempts = 0
        self.connection_error = None
        self._gave_up = False
        self._reader_task = asyncio.create_task(self._read_loop(channel))
        self._set_state(ConnectionState.CONNECTED)
        logger.info("Real-time connection established")

        # Liveness ping, then replay every tracked subscription
        await self._send(ClientMessage(type=ClientMessageType.PING))
        for operation_id in sorted(self._subscriptions):
            await self._send(ClientMessage(type=ClientMessageType.SUBSCRIBE, operation_id=operation_id))

        return True

    async def _close_channel(self) -> None:
        channel, self._channel = self._channel, None
        reader, self._reader_task = self._reader_task, None

        if channel is not None:
            try:
                await channel.close(code=NORMAL_CLOSURE, reason="Client disconnect")
            except Exception as e:
                logger.warning(f"Error while closing real-time connection: {e}")

        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()
            await asyncio.gather(reader, return_exceptions=True)

    # -------------------------------------------------------------------------
    # Reconnection
    # -------------------------------------------------------------------------

    def _handle_close(self, code: int, reason: str = "") -> None:
        logger.info(f"Real-time connection closed: {code} {reason}".rstrip())

        if code != NORMAL_CLOSURE and self.reconnect_attempts < self.max_reconnect_attempts:
            delay = reconnect_delay_ms(self.reconnect_attempts, self.base_delay_ms, self.max_delay_ms)
            logger.info(
                f"Reconnecting in {delay}ms... "
                f"(attempt {self.reconnect_attempts + 1}/{self.max_reconnect_attempts})"
            )
            self._reconnect_task = asyncio.create_task(self._reconnect_after(delay))
        elif code != NORMAL_CLOSURE:
            self._gave_up = True
            self.connection_error = GAVE_UP_ERROR
            logger.error(f"Giving up on real-time service after {self.reconnect_attempts} attempts")

        self._set_state(ConnectionState.DISCONNECTED)

    async def _reconnect_after(self, delay_ms: int) -> None:
        try:
            await self._sleep(delay_ms / 1000)
            self.reconnect_attempts += 1
            await self._open()
        finally:
            # _open() may have scheduled the next attempt already
            if self._reconnect_task is asyncio.current_task():
                self._reconnect_task = None

    def _cancel_reconnect(self) -> None:
        task, self._reconnect_task = self._reconnect_task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    # -------------------------------------------------------------------------
    # Outbound
    # -------------------------------------------------------------------------

    async def subscribe_to_operation(self, operation_id: str) -> bool:
        """
        Track an operation and ask the server for its updates.

        While disconnected nothing is sent; the id is replayed on the next
        successful connect.

        Returns:
            bool: True if the directive was sent now
        """
        self._subscriptions.add(operation_id)

        if not self.is_connected:
            logger.debug(f"Not connected; subscription to {operation_id} deferred")
            return False

        sent = await self._send(ClientMessage(type=ClientMessageType.SUBSCRIBE, operation_id=operation_id))
        if sent:
            logger.info(f"Subscribed to operation: {operation_id}")
        return sent

    def unsubscribe_from_operation(self, operation_id: str) -> None:
        """Stop replaying the subscription after reconnects."""
        self._subscriptions.discard(operation_id)

    async def _send(self, message: ClientMessage) -> bool:
        channel = self._channel
        if channel is None:
            return False
        try:
            await channel.send(json.dumps(message.to_wire()))
            return True
        except Exception as e:
            logger.warning(f"Failed to send {message.type.value} message: {e}")
            return False

    # -------------------------------------------------------------------------
    # Inbound
    # -------------------------------------------------------------------------

    async def _read_loop(self, channel: Channel) -> None:
        reason = ""
        try:
            async for raw in channel:
                self.handle_message(raw)
        except ConnectionClosed as e:
            reason = str(e)
        except Exception as e:
            logger.error(f"Real-time connection error: {e}")
            self.connection_error = RETRYING_ERROR
            reason = str(e)

        # Replaced or closed on purpose: nothing to recover
        if channel is not self._channel:
            return

        self._channel = None
        self._reader_task = None
        code = getattr(channel, "close_code", None) or ABNORMAL_CLOSURE
        self._handle_close(code, getattr(channel, "close_reason", None) or reason)

    def handle_message(self, raw: str | bytes) -> RealtimeUpdate | None:
        """
        Parse one frame and hand it to listeners.

        Never raises: malformed frames and listener failures are logged.

        Returns:
            RealtimeUpdate | None: The parsed update, or None if dropped
        """
        try:
            update = parse_update(raw)
        except MalformedUpdateError as e:
            logger.warning(f"Dropping real-time message: {e}")
            return None

        if update.operation_id in CONTROL_OPERATION_IDS:
            logger.debug(f"Control message ({update.operation_id}): {update.data.get('message')}")
            self._emit(self._control_listeners, update)
            return update

        logger.debug(f"Real-time update: {update.type.value} for {update.operation_id}")
        self._emit(self._update_listeners, update)
        return update

    def _emit(self, listeners: list[UpdateListener], update: RealtimeUpdate) -> None:
        for listener in list(listeners):
            try:
                listener(update)
            except Exception:
                logger.exception(f"Update listener failed for {update.operation_id}")

    def _set_state(self, state: ConnectionState) -> None:
        self.state = state
        for listener in list(self._state_listeners):
            try:
                listener(state, self.connection_error)
            except Exception:
                logger.exception("Connection state listener failed")
