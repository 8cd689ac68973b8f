# =============================================================================
# tests/test_portrait_client.py - Client Facade Tests
# =============================================================================
# Tests for PortraitStudioClient wiring:
# - Realtime updates land in the client's own registry
# - Give-up switches pending operations to polling; reconnect stops it
# - wait_for_operation / clear_operation
#
# Run with: pytest tests/test_portrait_client.py -v
# =============================================================================

import asyncio
import json

import httpx
import pytest

from core.models.operation import OperationStatus
from lib.portrait_client import PortraitStudioClient
from tests.fakes import FakeConnector, RecordingSleep, drain, flush


def completed_status(request):
    op_id = request.url.path.rsplit("/", 1)[-1]
    return httpx.Response(200, json={
        "success": True,
        "operation": {"operationId": op_id, "status": "completed", "progress": 100, "results": ["https://x/r.png"]},
    })


def make_client(handler=completed_status, connector=None, **kwargs):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test")
    kwargs.setdefault("max_reconnect_attempts", 1)
    return PortraitStudioClient(
        "http://test",
        http_client=http_client,
        connector=connector or FakeConnector(True),
        poll_interval_seconds=0,
        sleep=RecordingSleep(),
        **kwargs,
    )


class TestRealtimeWiring:

    def test_updates_reach_registry(self):
        async def scenario():
            client = make_client()
            await client.connect()
            client.registry.seed_operation("op-1")

            client.connection.handle_message(json.dumps({
                "type": "progress", "operationId": "op-1", "data": {"progress": 70},
            }))

            assert client.get_operation("op-1").progress == 70
            assert [op.operation_id for op in client.operations] == ["op-1"]
            await client.close()

        asyncio.run(scenario())

    def test_clients_do_not_share_state(self):
        async def scenario():
            a, b = make_client(), make_client()
            await a.connect()
            await b.connect()

            a.connection.handle_message(json.dumps({
                "type": "status", "operationId": "op-1", "data": {"status": "starting"},
            }))

            assert a.get_operation("op-1") is not None
            assert b.get_operation("op-1") is None
            await a.close()
            await b.close()

        asyncio.run(scenario())

    def test_cookies_forwarded_to_websocket(self):
        client = PortraitStudioClient("http://test", cookies={"session": "abc"}, connector=FakeConnector())
        assert client.connection._headers == {"Cookie": "session=abc"}
        assert client.connection.url == "ws://test/api/realtime"


class TestPollingFallback:

    def test_give_up_polls_pending_operations(self):
        async def scenario():
            client = make_client(connector=FakeConnector())
            client.registry.seed_operation("op-1")

            await client.connect()
            await drain(client.connection)
            assert client.connection.gave_up

            operation = await asyncio.wait_for(client.wait_for_operation("op-1"), 1)
            await client.close()
            return operation

        operation = asyncio.run(scenario())

        assert operation.status is OperationStatus.COMPLETED
        assert operation.results == ["https://x/r.png"]

    def test_terminal_operations_are_not_polled(self):
        async def scenario():
            requests = []

            def handler(request):
                requests.append(request)
                return completed_status(request)

            client = make_client(handler, connector=FakeConnector())
            client.registry.seed_operation("op-1")
            client.connection.handle_message(json.dumps({
                "type": "error", "operationId": "op-1", "data": {"error": "boom"},
            }))

            await client.connect()
            await drain(client.connection)
            await flush()

            assert client.poller.active_operation_ids == []
            await client.close()
            return requests

        assert asyncio.run(scenario()) == []

    def test_reconnect_cancels_polling(self):
        async def scenario():
            gate = asyncio.Event()

            async def slow_handler(request):
                await gate.wait()
                return completed_status(request)

            connector = FakeConnector()
            client = make_client(slow_handler, connector=connector)
            client.registry.seed_operation("op-1")

            await client.connect()
            await drain(client.connection)
            await flush()
            assert client.poller.active_operation_ids == ["op-1"]

            connector.outcomes = [True]
            assert await client.connect() is True
            await flush()

            assert client.poller.active_operation_ids == []
            assert client.connection_error is None
            await client.close()

        asyncio.run(scenario())

    def test_submission_after_give_up_is_polled(self):
        async def scenario():
            def handler(request):
                if request.method == "POST":
                    return httpx.Response(200, json={"success": True, "operationId": "op-9"})
                return completed_status(request)

            client = make_client(handler, connector=FakeConnector())
            await client.connect()
            await drain(client.connection)

            op_id = await client.start_transformation(data={"style": "Anime"})
            operation = await asyncio.wait_for(client.wait_for_operation(op_id), 1)
            await client.close()
            return operation

        operation = asyncio.run(scenario())

        assert operation.operation_id == "op-9"
        assert operation.status is OperationStatus.COMPLETED


class TestOperationHelpers:

    def test_wait_returns_terminal_immediately(self):
        async def scenario():
            client = make_client()
            client.registry.seed_operation("op-1")
            client.connection.handle_message(json.dumps({
                "type": "completed", "operationId": "op-1", "data": {"results": []},
            }))
            operation = await client.wait_for_operation("op-1", timeout=0.1)
            await client.close()
            return operation

        assert asyncio.run(scenario()).status is OperationStatus.COMPLETED

    def test_wait_times_out(self):
        async def scenario():
            client = make_client()
            client.registry.seed_operation("op-1")
            try:
                with pytest.raises(asyncio.TimeoutError):
                    await client.wait_for_operation("op-1", timeout=0.01)
            finally:
                await client.close()

        asyncio.run(scenario())

    def test_wait_returns_none_when_cleared(self):
        async def scenario():
            client = make_client()
            client.registry.seed_operation("op-1")

            waiter = asyncio.create_task(client.wait_for_operation("op-1", timeout=1))
            await flush()
            client.clear_operation("op-1")
            result = await waiter
            await client.close()
            return result

        assert asyncio.run(scenario()) is None

    def test_clear_operation_forgets_everything(self):
        async def scenario():
            client = make_client()
            await client.connect()
            client.registry.seed_operation("op-1")
            await client.subscribe_to_operation("op-1")

            client.clear_operation("op-1")

            assert client.get_operation("op-1") is None
            assert "op-1" not in client.connection.subscriptions
            await client.close()

        asyncio.run(scenario())
