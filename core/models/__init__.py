# =============================================================================
# core/models/ - Pydantic Data Models
# =============================================================================
# This package contains Pydantic schemas for data validation:
# - operation.py: Operation snapshot, realtime update and client message schemas
# - transform.py: Provider input, submission and status response schemas
#
# These models define the "contract" between API and clients.
# =============================================================================

# -----------------------------------------------------------------------------
# Operation Models - Realtime tracking channel
# -----------------------------------------------------------------------------
from .operation import (
    ClientMessage,
    ClientMessageType,
    Operation,
    OperationStatus,
    RealtimeUpdate,
    TERMINAL_STATUSES,
    UpdateType,
    now_ms,
)

# -----------------------------------------------------------------------------
# Transform Models - Job submission and status
# -----------------------------------------------------------------------------
from .transform import (
    ASPECT_RATIOS,
    StatusResponse,
    SubmissionResponse,
    TransformationInput,
)

__all__ = [
    # Operation
    "ClientMessage",
    "ClientMessageType",
    "Operation",
    "OperationStatus",
    "RealtimeUpdate",
    "TERMINAL_STATUSES",
    "UpdateType",
    "now_ms",
    # Transform
    "ASPECT_RATIOS",
    "StatusResponse",
    "SubmissionResponse",
    "TransformationInput",
]
