# =============================================================================
# lib/ - Client & Provider Modules
# =============================================================================
# This package contains the real-time tracking client and provider access:
# - realtime_client.py: Websocket connection manager with reconnection
# - operation_launcher.py: Job submission over HTTP
# - operation_poller.py: Status polling fallback
# - portrait_client.py: One object wiring the pieces above together
# - realtime_config.py: Client tunables (PORTRAIT_* environment variables)
# - replicate_client.py: Replicate predictions API (server side only)
#
# replicate_client needs the server settings, so it is not imported here.
# =============================================================================

from lib.realtime_client import (
    ConnectionManager,
    ConnectionState,
    MalformedUpdateError,
    RealtimeClientError,
    RealtimeConnectionError,
)
from lib.operation_launcher import OperationLauncher, SubmissionError
from lib.operation_poller import OperationPoller
from lib.portrait_client import PortraitStudioClient

__all__ = [
    # Connection
    "ConnectionManager",
    "ConnectionState",
    "MalformedUpdateError",
    "RealtimeClientError",
    "RealtimeConnectionError",
    # Operations
    "OperationLauncher",
    "SubmissionError",
    "OperationPoller",
    "PortraitStudioClient",
]
