# =============================================================================
# tests/test_operation_launcher.py - Job Submission Tests
# =============================================================================
# Tests for OperationLauncher against an in-memory HTTP transport:
# - Successful submission seeds the registry and subscribes
# - HTTP failures carry status code and reason
# - Logical failures carry the server's error text
#
# Run with: pytest tests/test_operation_launcher.py -v
# =============================================================================

import asyncio
import json

import httpx
import pytest

from core.models.operation import OperationStatus
from core.services.operation_registry import OperationRegistry, STARTING_MESSAGE
from lib.operation_launcher import OperationLauncher, SubmissionError, UNKNOWN_SUBMISSION_ERROR
from lib.realtime_client import ConnectionManager
from tests.fakes import FakeConnector, RecordingSleep

NOW = 1_700_000_000_000


def run_submission(handler, *, connect=True, data=None, files=None):
    """
    Submit one job against `handler` and return what the test needs.

    Returns:
        (operation_id or raised SubmissionError, registry, manager, connector, requests)
    """
    requests = []

    def recording_handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    async def scenario():
        connector = FakeConnector(True)
        manager = ConnectionManager("http://test", connector=connector, sleep=RecordingSleep())
        registry = OperationRegistry(clock=lambda: NOW)
        manager.add_update_listener(registry.apply_update)
        if connect:
            await manager.connect()

        async with httpx.AsyncClient(
            transport=httpx.MockTransport(recording_handler),
            base_url="http://test",
        ) as client:
            launcher = OperationLauncher(client, manager, registry)
            try:
                result = await launcher.start_transformation(data=data, files=files)
            except SubmissionError as e:
                result = e

        await manager.disconnect()
        return result, registry, manager, connector

    result, registry, manager, connector = asyncio.run(scenario())
    return result, registry, manager, connector, requests


def accepted(request):
    return httpx.Response(200, json={
        "success": True,
        "operationId": "op-1",
        "message": "Transformation started. Connect to WebSocket for real-time updates.",
    })


# =============================================================================
# Success Path
# =============================================================================

class TestStartTransformationSuccess:

    def test_returns_id_and_seeds_registry(self):
        op_id, registry, _, _, _ = run_submission(accepted)

        assert op_id == "op-1"
        op = registry.get_operation("op-1")
        assert op.status is OperationStatus.STARTING
        assert op.progress == 0
        assert op.message == STARTING_MESSAGE
        assert op.start_time == NOW

    def test_subscribes_on_the_channel(self):
        _, _, manager, connector, _ = run_submission(accepted)

        assert "op-1" in manager.subscriptions
        assert {"type": "subscribe", "operationId": "op-1"} in connector.channels[0].sent

    def test_subscription_deferred_when_offline(self):
        op_id, registry, manager, connector, _ = run_submission(accepted, connect=False)

        assert op_id == "op-1"
        assert "op-1" in manager.subscriptions
        assert connector.calls == []
        assert registry.get_operation("op-1") is not None

    def test_posts_multipart_form(self):
        _, _, _, _, requests = run_submission(
            accepted,
            data={"style": "Anime", "num_images": "2"},
            files={"image": ("me.png", b"\x89PNG...", "image/png")},
        )

        request = requests[0]
        assert request.method == "POST"
        assert request.url.path == "/api/transform-realtime"
        assert request.headers["content-type"].startswith("multipart/form-data")
        body = request.read()
        assert b'name="style"' in body
        assert b'filename="me.png"' in body

    def test_end_to_end_updates_after_submission(self):
        """Submission, then progress, then completed, as one client sees them."""
        async def scenario():
            connector = FakeConnector(True)
            manager = ConnectionManager("http://test", connector=connector, sleep=RecordingSleep())
            registry = OperationRegistry()
            manager.add_update_listener(registry.apply_update)
            await manager.connect()

            async with httpx.AsyncClient(transport=httpx.MockTransport(accepted), base_url="http://test") as client:
                op_id = await OperationLauncher(client, manager, registry).start_transformation(data={})

            snapshots = [registry.get_operation(op_id)]
            manager.handle_message(json.dumps({"type": "progress", "operationId": "op-1", "data": {"progress": 42}}))
            snapshots.append(registry.get_operation(op_id))
            manager.handle_message(json.dumps({
                "type": "completed", "operationId": "op-1", "data": {"results": ["https://x/out.png"]},
            }))
            snapshots.append(registry.get_operation(op_id))

            await manager.disconnect()
            return snapshots

        starting, processing, done = asyncio.run(scenario())

        assert (starting.status, starting.progress) == (OperationStatus.STARTING, 0)
        assert (processing.status, processing.progress) == (OperationStatus.PROCESSING, 42)
        assert (done.status, done.progress) == (OperationStatus.COMPLETED, 100)
        assert done.results == ["https://x/out.png"]


# =============================================================================
# Failure Paths
# =============================================================================

class TestStartTransformationFailure:

    def test_http_error_status(self):
        error, registry, _, _, _ = run_submission(
            lambda request: httpx.Response(500, json={"success": False, "error": "boom"})
        )

        assert isinstance(error, SubmissionError)
        assert error.status_code == 500
        assert error.reason == "Internal Server Error"
        assert error.message == "HTTP 500: Internal Server Error"
        assert len(registry) == 0

    def test_unauthenticated(self):
        error, _, manager, _, _ = run_submission(lambda request: httpx.Response(401))

        assert error.status_code == 401
        assert manager.subscriptions == frozenset()

    def test_logical_failure_uses_server_error(self):
        error, registry, _, _, _ = run_submission(
            lambda request: httpx.Response(200, json={"success": False, "error": "No input_image provided"})
        )

        assert isinstance(error, SubmissionError)
        assert error.message == "No input_image provided"
        assert error.status_code is None
        assert len(registry) == 0

    @pytest.mark.parametrize("body", [
        {"success": True},
        {"success": False},
        {"operationId": "op-1"},
    ])
    def test_missing_fields_use_generic_message(self, body):
        error, registry, _, _, _ = run_submission(lambda request: httpx.Response(200, json=body))

        assert isinstance(error, SubmissionError)
        assert error.message == UNKNOWN_SUBMISSION_ERROR
        assert len(registry) == 0

    def test_non_json_body(self):
        error, _, _, _, _ = run_submission(lambda request: httpx.Response(200, text="<html>oops</html>"))

        assert error.message == UNKNOWN_SUBMISSION_ERROR

    def test_transport_error(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        error, _, _, _, _ = run_submission(refuse)

        assert isinstance(error, SubmissionError)
        assert error.message.startswith("Request failed:")
        assert error.status_code is None

    def test_str_includes_code(self):
        error = SubmissionError("HTTP 400: Bad Request", status_code=400, reason="Bad Request")
        assert str(error).startswith("[SUBMISSION_ERROR] HTTP 400: Bad Request")
