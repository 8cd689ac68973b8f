# =============================================================================
# tests/fakes.py - In-Memory Stand-ins for Network Endpoints
# =============================================================================
# FakeChannel mimics the websocket connection used by ConnectionManager.
# FakeConnector hands out channels (or failures) in a scripted order.
# GatedConnector holds handshakes open until the test releases them.
# =============================================================================

import asyncio
import json
from typing import Any

_CLOSED = object()


class FakeChannel:
    """Websocket stand-in: feed() frames in, read sent messages from .sent."""

    def __init__(self):
        self.sent: list[dict[str, Any]] = []
        self.close_code: int | None = None
        self.close_reason: str | None = None
        self.closed_by_client = False
        self._inbox: asyncio.Queue = asyncio.Queue()

    async def send(self, message: str) -> None:
        self.sent.append(json.loads(message))

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.closed_by_client = True
        self.close_code = code
        self.close_reason = reason
        self._inbox.put_nowait(_CLOSED)

    def feed(self, payload: Any) -> None:
        """Queue an inbound frame; dicts are JSON-encoded."""
        self._inbox.put_nowait(payload if isinstance(payload, (str, bytes)) else json.dumps(payload))

    def drop(self, code: int = 1006, reason: str = "") -> None:
        """Simulate the server side closing the connection."""
        self.close_code = code
        self.close_reason = reason
        self._inbox.put_nowait(_CLOSED)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._inbox.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item


class FakeConnector:
    """
    Callable connector for ConnectionManager.

    Each call consumes the next scripted outcome: True opens a new
    FakeChannel, an exception instance is raised. Once the script is used
    up, every call fails.
    """

    def __init__(self, *outcomes: Any):
        self.outcomes = list(outcomes)
        self.calls: list[str] = []
        self.channels: list[FakeChannel] = []

    async def __call__(self, url: str) -> FakeChannel:
        self.calls.append(url)
        return self._next_channel()

    def _next_channel(self) -> FakeChannel:
        outcome = self.outcomes.pop(0) if self.outcomes else ConnectionRefusedError("refused")
        if isinstance(outcome, BaseException):
            raise outcome
        channel = FakeChannel()
        self.channels.append(channel)
        return channel

    @property
    def last_channel(self) -> FakeChannel:
        return self.channels[-1]


class GatedConnector(FakeConnector):
    """
    FakeConnector whose calls block until `gate` is set.

    The gate starts open; clear() it to hold the next handshakes in flight.
    Outcomes are consumed in the order the held calls are released.
    """

    def __init__(self, *outcomes: Any):
        super().__init__(*outcomes)
        self.gate = asyncio.Event()
        self.gate.set()

    async def __call__(self, url: str) -> FakeChannel:
        self.calls.append(url)
        await self.gate.wait()
        return self._next_channel()


class RecordingSleep:
    """Replacement for asyncio.sleep that records delays and returns at once."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        await asyncio.sleep(0)


async def drain(manager, max_steps: int = 200) -> None:
    """Let pending reconnect and reader tasks run until nothing is scheduled."""
    for _ in range(max_steps):
        await asyncio.sleep(0)
        if not manager.reconnect_pending:
            await asyncio.sleep(0)
            if not manager.reconnect_pending:
                return


async def flush(steps: int = 5) -> None:
    """Give reader tasks a few loop iterations to consume fed frames."""
    for _ in range(steps):
        await asyncio.sleep(0)
