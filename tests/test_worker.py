# =============================================================================
# tests/test_worker.py - Transformation Pipeline Tests
# =============================================================================
# Tests for the worker side:
# - Progress estimation and messages
# - Output normalization
# - run_transformation for success, provider failure, timeout,
#   invalid output and storage fallback
# - Redis publishing and local file storage
#
# Redis, the provider and the filesystem are mocked; nothing needs a
# running broker.
#
# Run with: pytest tests/test_worker.py -v
# =============================================================================

import json
from unittest.mock import MagicMock, patch

import pytest

from app.exceptions import StorageUploadError
from app.websocket.broadcast import REALTIME_CHANNEL, publish_error, publish_progress
from core.models.transform import TransformationInput
from core.services.storage_service import StorageService, safe_filename
from lib.replicate_client import Prediction
from workers.tasks import (
    DEFAULT_PROVIDER_ERROR,
    INTERNAL_ERROR,
    INVALID_OUTPUT_ERROR,
    TIMEOUT_ERROR,
    InvalidOutputError,
    estimate_progress,
    extract_output_urls,
    preview_progress,
    progress_message,
    run_transformation,
)

PROVIDER_INPUT = TransformationInput(input_image="data:image/png;base64,AAAA").to_provider_input()


class FakeReplicate:
    """Scripted provider: get_prediction walks through `statuses`."""

    def __init__(self, *predictions, download_error=None):
        self.predictions = list(predictions)
        self.download_error = download_error
        self.downloaded = []

    def get_prediction(self, prediction_id):
        if len(self.predictions) > 1:
            return self.predictions.pop(0)
        return self.predictions[0]

    def download(self, url):
        if self.download_error:
            raise self.download_error
        self.downloaded.append(url)
        return b"image-bytes"


def running(status="processing"):
    return Prediction(id="op-1", status=status)


def succeeded(output):
    return Prediction(id="op-1", status="succeeded", output=output)


def ticking_clock(*times):
    values = list(times)

    def clock():
        return values.pop(0) if len(values) > 1 else values[0]

    return clock


@pytest.fixture
def published():
    """Patch every publisher used by the pipeline and record the calls."""
    with patch("workers.tasks.publish_progress") as progress, \
         patch("workers.tasks.publish_preview") as preview, \
         patch("workers.tasks.publish_completed") as completed, \
         patch("workers.tasks.publish_error") as error:
        yield {"progress": progress, "preview": preview, "completed": completed, "error": error}


@pytest.fixture
def storage():
    with patch("workers.tasks.StorageService") as service:
        service.save_file.side_effect = lambda content, filename, user_id: f"/files/{user_id}/{filename}"
        yield service


# =============================================================================
# Helpers
# =============================================================================

class TestProgressHelpers:

    @pytest.mark.parametrize("elapsed,expected", [
        (0, 10), (15, 30), (30, 50), (60, 90), (600, 90), (-5, 10),
    ])
    def test_estimate_progress(self, elapsed, expected):
        assert estimate_progress(elapsed, estimated_seconds=60) == expected

    @pytest.mark.parametrize("progress,message", [
        (10, "Processing image..."),
        (31, "Applying transformations..."),
        (61, "Generating variations..."),
        (81, "Finalizing results..."),
    ])
    def test_progress_message(self, progress, message):
        assert progress_message(progress) == message

    def test_preview_progress(self):
        assert preview_progress(0, 2) == 95
        assert preview_progress(1, 2) == 97.5


class TestExtractOutputUrls:

    def test_list(self):
        assert extract_output_urls(["a", None, "b", 3]) == ["a", "b"]

    def test_single_url(self):
        assert extract_output_urls("https://x/out.png") == ["https://x/out.png"]

    @pytest.mark.parametrize("output", [None, "", {"url": "x"}, 42])
    def test_invalid(self, output):
        with pytest.raises(InvalidOutputError):
            extract_output_urls(output)


# =============================================================================
# Pipeline
# =============================================================================

class TestRunTransformation:

    def test_success_stores_outputs_and_completes(self, published, storage):
        replicate = FakeReplicate(running(), succeeded(["https://r/0.png", "https://r/1.png"]))

        result = run_transformation(
            "op-1", 1, PROVIDER_INPUT, "http://api.test/",
            replicate=replicate, clock=ticking_clock(0, 15), sleep=lambda s: None,
        )

        expected = [
            "http://api.test/files/1/transformed_op-1_0.png",
            "http://api.test/files/1/transformed_op-1_1.png",
        ]
        assert result == {"success": True, "results": expected}
        assert replicate.downloaded == ["https://r/0.png", "https://r/1.png"]

        progress_calls = [c.args for c in published["progress"].call_args_list]
        assert progress_calls == [
            (1, "op-1", 10, "Initializing AI model..."),
            (1, "op-1", 30, "Processing image..."),
            (1, "op-1", 95, "Saving results..."),
        ]
        assert [c.args for c in published["preview"].call_args_list] == [
            (1, "op-1", expected[0], 95),
            (1, "op-1", expected[1], 97.5),
        ]
        published["completed"].assert_called_once_with(1, "op-1", expected)
        published["error"].assert_not_called()

    def test_provider_failure(self, published, storage):
        replicate = FakeReplicate(Prediction(id="op-1", status="failed", error="NSFW content detected"))

        result = run_transformation("op-1", 1, PROVIDER_INPUT, "http://api.test", replicate=replicate)

        assert result == {"success": False, "error": "NSFW content detected"}
        published["error"].assert_called_once_with(1, "op-1", "NSFW content detected")
        published["completed"].assert_not_called()

    def test_canceled_without_error_text(self, published, storage):
        replicate = FakeReplicate(Prediction(id="op-1", status="canceled"))

        result = run_transformation("op-1", 1, PROVIDER_INPUT, "http://api.test", replicate=replicate)

        assert result["error"] == DEFAULT_PROVIDER_ERROR

    def test_timeout(self, published, storage):
        replicate = FakeReplicate(running())
        sleeps = []

        result = run_transformation(
            "op-1", 1, PROVIDER_INPUT, "http://api.test",
            replicate=replicate, clock=ticking_clock(0, 10, 130), sleep=sleeps.append,
        )

        assert result == {"success": False, "error": TIMEOUT_ERROR}
        published["error"].assert_called_once_with(1, "op-1", TIMEOUT_ERROR)
        published["completed"].assert_not_called()
        assert len(sleeps) == 1

    def test_invalid_output(self, published, storage):
        replicate = FakeReplicate(succeeded({"unexpected": True}))

        result = run_transformation("op-1", 1, PROVIDER_INPUT, "http://api.test", replicate=replicate)

        assert result == {"success": False, "error": INVALID_OUTPUT_ERROR}
        published["error"].assert_called_once_with(1, "op-1", INVALID_OUTPUT_ERROR)

    def test_download_failure_falls_back_to_remote_url(self, published, storage):
        replicate = FakeReplicate(succeeded("https://r/0.png"), download_error=RuntimeError("404"))

        result = run_transformation("op-1", 1, PROVIDER_INPUT, "http://api.test", replicate=replicate)

        assert result == {"success": True, "results": ["https://r/0.png"]}
        storage.save_file.assert_not_called()
        published["completed"].assert_called_once_with(1, "op-1", ["https://r/0.png"])

    def test_storage_failure_falls_back_to_remote_url(self, published, storage):
        storage.save_file.side_effect = StorageUploadError("disk full")
        replicate = FakeReplicate(succeeded(["https://r/0.png"]))

        result = run_transformation("op-1", 1, PROVIDER_INPUT, "http://api.test", replicate=replicate)

        assert result["results"] == ["https://r/0.png"]

    def test_unexpected_crash_publishes_internal_error(self, published, storage):
        replicate = MagicMock()
        replicate.get_prediction.side_effect = KeyError("boom")

        result = run_transformation("op-1", 1, PROVIDER_INPUT, "http://api.test", replicate=replicate)

        assert result == {"success": False, "error": INTERNAL_ERROR}
        published["error"].assert_called_once_with(1, "op-1", INTERNAL_ERROR)

    def test_jpg_output_extension(self, published, storage):
        provider_input = TransformationInput(input_image="x", output_format="jpg").to_provider_input()
        replicate = FakeReplicate(succeeded(["https://r/0.jpg"]))

        result = run_transformation("op-1", 1, provider_input, "http://api.test", replicate=replicate)

        assert result["results"] == ["http://api.test/files/1/transformed_op-1_0.jpg"]


# =============================================================================
# Broadcasting
# =============================================================================

class TestBroadcast:

    def test_publish_progress_message_format(self):
        redis_client = MagicMock()
        with patch("app.websocket.broadcast.get_redis_client", return_value=redis_client):
            assert publish_progress(3, "op-1", 42, "Working") is True

        channel, payload = redis_client.publish.call_args.args
        message = json.loads(payload)
        assert channel == REALTIME_CHANNEL
        assert message["user_id"] == 3
        assert message["update"]["type"] == "progress"
        assert message["update"]["operationId"] == "op-1"
        assert message["update"]["data"] == {"progress": 42, "message": "Working"}

    def test_publish_failure_returns_false(self):
        with patch("app.websocket.broadcast.get_redis_client", side_effect=ConnectionError("redis down")):
            assert publish_error(3, "op-1", "boom") is False


# =============================================================================
# Storage
# =============================================================================

class TestStorageService:

    @pytest.mark.parametrize("given,expected", [
        ("out.png", "out.png"),
        ("../a b.png", "a_b.png"),
        ("/etc/passwd", "passwd"),
        ("...", "file"),
    ])
    def test_safe_filename(self, given, expected):
        assert safe_filename(given) == expected

    def test_save_file(self, tmp_path):
        path = StorageService.save_file(b"data", "../out 1.png", 7, root=tmp_path)

        assert path == "/files/7/out_1.png"
        assert (tmp_path / "7" / "out_1.png").read_bytes() == b"data"

    def test_unwritable_root(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")

        with pytest.raises(StorageUploadError):
            StorageService.save_file(b"data", "out.png", 7, root=blocker)
