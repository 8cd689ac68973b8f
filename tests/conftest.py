# =============================================================================
# tests/conftest.py - Pytest Configuration
# =============================================================================
# This module provides pytest fixtures and configuration for all tests.
#
# Key features:
# - Sets up mock environment variables before any imports
# - Provides common fixtures for testing
# =============================================================================

import os

# =============================================================================
# Set up test environment BEFORE any imports
# =============================================================================
# This must happen before importing app.config which loads settings immediately

os.environ.setdefault("REPLICATE_API_TOKEN", "test-replicate-token")
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-session-tokens")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("DEBUG", "true")

import pytest

from core.models.operation import Operation, OperationStatus, RealtimeUpdate
from core.services.operation_registry import OperationRegistry


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def fixed_clock():
    """Clock returning a constant epoch-ms timestamp."""
    return lambda: 1_700_000_000_000


@pytest.fixture
def registry(fixed_clock):
    """Empty registry with the default (sticky) policy."""
    return OperationRegistry(clock=fixed_clock)


@pytest.fixture
def processing_operation():
    """Snapshot of an operation halfway through."""
    return Operation(
        operation_id="op-1",
        status=OperationStatus.PROCESSING,
        progress=42,
        message="Applying transformations...",
        start_time=1_700_000_000_000,
    )


@pytest.fixture
def sample_updates():
    """A full successful lifecycle for op-1, in server order."""
    return [
        RealtimeUpdate.for_status(
            "op-1", "starting",
            message="Transformation started",
            input={"style": "Anime", "persona": "None", "num_images": 2},
        ),
        RealtimeUpdate.for_progress("op-1", 10, "Initializing AI model..."),
        RealtimeUpdate.for_progress("op-1", 50, "Applying transformations..."),
        RealtimeUpdate.for_progress("op-1", 95, "Saving results..."),
        RealtimeUpdate.for_preview("op-1", "http://localhost:8000/files/1/a.png", 95),
        RealtimeUpdate.for_preview("op-1", "http://localhost:8000/files/1/b.png", 97.5),
        RealtimeUpdate.for_completed("op-1", [
            "http://localhost:8000/files/1/a.png",
            "http://localhost:8000/files/1/b.png",
        ]),
    ]
