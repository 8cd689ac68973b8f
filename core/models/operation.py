# =============================================================================
# core/models/operation.py - Operation & Realtime Update Schemas
# =============================================================================
# These models define the contract of the real-time tracking channel:
# - Operation: Latest known snapshot of one transformation job
# - RealtimeUpdate: Tagged update pushed by the server for one operation
# - ClientMessage: Directives the client sends over the channel
#
# Wire format uses camelCase (operationId, previewUrl, startTime); Python code
# uses snake_case attribute names. Both are accepted when parsing.
#
# Flow:
# 1. Client submits a job -> server returns operationId
# 2. Client sends {"type": "subscribe", "operationId": ...}
# 3. Server pushes {"type": "progress", "operationId": ..., "data": {...}}
# 4. Client folds each update into the Operation snapshot
# =============================================================================

import time
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class OperationStatus(str, Enum):
    """
    Lifecycle states of a tracked operation.

    State machine:
        idle -> starting -> processing -> completed
                                      \\-> failed

    - idle: Record exists but nothing is known yet
    - starting: Job accepted by the server, provider not yet running
    - processing: Provider is running, progress updates arrive
    - completed: Results are available (terminal)
    - failed: Error is available (terminal)
    """
    IDLE = "idle"
    STARTING = "starting"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({OperationStatus.COMPLETED, OperationStatus.FAILED})


class UpdateType(str, Enum):
    """Tag carried by every server -> client update."""
    STATUS = "status"
    PROGRESS = "progress"
    PREVIEW = "preview"
    COMPLETED = "completed"
    ERROR = "error"


class ClientMessageType(str, Enum):
    """Directives a client may send over the channel."""
    PING = "ping"
    SUBSCRIBE = "subscribe"


class Operation(BaseModel):
    """
    Snapshot of one tracked transformation job.

    Snapshots are immutable; every update produces a new snapshot via
    model_copy(). results is set only when completed, error only when failed.

    Example:
        {
            "operationId": "op-1",
            "status": "processing",
            "progress": 42,
            "message": "Applying transformations..."
        }
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    # Opaque id assigned by the server at submission time
    operation_id: str = Field(
        ...,
        alias="operationId",
        min_length=1,
        description="Server-assigned operation identifier"
    )

    status: OperationStatus = Field(
        default=OperationStatus.IDLE,
        description="Current lifecycle state"
    )

    progress: float = Field(
        default=0,
        ge=0,
        le=100,
        description="Percentage complete (0-100)"
    )

    # Latest human-readable status text (latest wins)
    message: str | None = Field(
        default=None,
        description="Human-readable status text"
    )

    preview_url: str | None = Field(
        default=None,
        alias="previewUrl",
        description="Most recent intermediate preview asset"
    )

    results: list[str] | None = Field(
        default=None,
        description="Final output URLs (only when completed)"
    )

    error: str | None = Field(
        default=None,
        description="Error text (only when failed)"
    )

    # Epoch milliseconds when the operation entered starting/processing
    start_time: int | None = Field(
        default=None,
        alias="startTime",
        description="Epoch milliseconds when work started"
    )

    @property
    def is_terminal(self) -> bool:
        """True once the operation is completed or failed."""
        return self.status.is_terminal

    def to_wire(self) -> dict[str, Any]:
        """Serialize with camelCase keys, dropping unset optional fields."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class RealtimeUpdate(BaseModel):
    """
    Tagged update pushed from the server for one operation.

    type, operationId and data are required. A missing timestamp is filled
    with the receive time.

    Example:
        {
            "type": "completed",
            "operationId": "op-1",
            "data": {"results": ["https://x/out.png"]},
            "timestamp": 1718000000000
        }
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    type: UpdateType = Field(
        ...,
        description="Update tag"
    )

    operation_id: str = Field(
        ...,
        alias="operationId",
        min_length=1,
        description="Operation this update belongs to"
    )

    # Opaque payload, interpreted per tag by the fold
    data: dict[str, Any] = Field(
        ...,
        description="Tag-specific payload"
    )

    timestamp: int = Field(
        default_factory=now_ms,
        description="Epoch milliseconds when the update was produced"
    )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")

    # -------------------------------------------------------------------------
    # Builders (server side)
    # -------------------------------------------------------------------------

    @classmethod
    def for_status(cls, operation_id: str, status: str | None = None, **data: Any) -> "RealtimeUpdate":
        if status is not None:
            data = {"status": status, **data}
        return cls(type=UpdateType.STATUS, operation_id=operation_id, data=data)

    @classmethod
    def for_progress(cls, operation_id: str, progress: float, message: str | None = None) -> "RealtimeUpdate":
        data: dict[str, Any] = {"progress": progress}
        if message:
            data["message"] = message
        return cls(type=UpdateType.PROGRESS, operation_id=operation_id, data=data)

    @classmethod
    def for_preview(cls, operation_id: str, preview_url: str, progress: float | None = None) -> "RealtimeUpdate":
        data: dict[str, Any] = {"previewUrl": preview_url}
        if progress is not None:
            data["progress"] = progress
        return cls(type=UpdateType.PREVIEW, operation_id=operation_id, data=data)

    @classmethod
    def for_completed(cls, operation_id: str, results: list[str]) -> "RealtimeUpdate":
        return cls(type=UpdateType.COMPLETED, operation_id=operation_id, data={"results": list(results)})

    @classmethod
    def for_error(cls, operation_id: str, error: str) -> "RealtimeUpdate":
        return cls(type=UpdateType.ERROR, operation_id=operation_id, data={"error": error})


class ClientMessage(BaseModel):
    """
    Message sent from the client to the server.

    Examples:
        {"type": "ping"}
        {"type": "subscribe", "operationId": "op-1"}
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    type: ClientMessageType

    operation_id: str | None = Field(
        default=None,
        alias="operationId",
        description="Target operation (subscribe only)"
    )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")
