# =============================================================================
# core/services/operation_registry.py - Operation Registry & Fold
# =============================================================================
# Folds the stream of realtime updates into per-operation snapshots.
#
# The fold is a pure function (fold_update) so it can be tested without any
# network plumbing. OperationRegistry owns the id -> snapshot map and is used
# on both ends of the channel:
# - Client: fed by the ConnectionManager, read by the UI / scripts
# - Server: RealtimeService keeps its own store for subscribe replay and the
#   polling endpoint
#
# Usage:
#   registry = OperationRegistry()
#   registry.apply_update(update)
#   operation = registry.get_operation("op-1")
# =============================================================================

import logging
from enum import Enum
from typing import Any, Callable, Iterator

from core.models.operation import (
    Operation,
    OperationStatus,
    RealtimeUpdate,
    UpdateType,
    now_ms,
)

logger = logging.getLogger(__name__)

COMPLETED_MESSAGE = "Transformation completed successfully!"
STARTING_MESSAGE = "Starting transformation..."
DEFAULT_ERROR_MESSAGE = "Transformation failed"

OperationListener = Callable[[str, Operation | None], None]


class TerminalStatePolicy(str, Enum):
    """
    What to do with updates that arrive after completed/failed.

    - sticky: Drop status/progress/preview updates; a later completed or
              error update still replaces the terminal outcome
    - frozen: Drop every update; the first terminal outcome is final
    - allow: Apply them like any other update (late progress can move a
             completed operation back to processing)
    """
    STICKY = "sticky"
    FROZEN = "frozen"
    ALLOW = "allow"


TERMINAL_UPDATE_TYPES = frozenset({UpdateType.COMPLETED, UpdateType.ERROR})


def _is_rejected(snapshot: Operation, update: RealtimeUpdate, policy: TerminalStatePolicy) -> bool:
    if not snapshot.is_terminal or policy is TerminalStatePolicy.ALLOW:
        return False
    if policy is TerminalStatePolicy.FROZEN:
        return True
    return update.type not in TERMINAL_UPDATE_TYPES


# =============================================================================
# Fold
# =============================================================================

def _coerce_progress(value: Any, default: float | None) -> float | None:
    """Return value clamped to 0..100, or default if it is not a number."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return max(0, min(100, value))


def _parse_status(value: Any) -> OperationStatus | None:
    if value is None:
        return None
    try:
        return OperationStatus(value)
    except ValueError:
        logger.warning(f"Ignoring unknown operation status: {value!r}")
        return None


def _normalize_terminal_fields(changes: dict[str, Any], snapshot: Operation) -> None:
    """Keep results only on completed and error only on failed snapshots."""
    status = changes.get("status", snapshot.status)
    results = changes.get("results", snapshot.results)
    error = changes.get("error", snapshot.error)

    if status is OperationStatus.COMPLETED:
        if results is None:
            changes["results"] = []
    elif results is not None:
        changes["results"] = None

    if status is OperationStatus.FAILED:
        if error is None:
            changes["error"] = changes.get("message") or snapshot.message or DEFAULT_ERROR_MESSAGE
    elif error is not None:
        changes["error"] = None


def fold_update(
    snapshot: Operation | None,
    update: RealtimeUpdate,
    *,
    now: int | None = None,
    policy: TerminalStatePolicy = TerminalStatePolicy.STICKY,
) -> Operation:
    """
    Combine an existing snapshot with one update into the next snapshot.

    Fields the update does not mention are preserved.

    Args:
        snapshot: Current snapshot, or None for an id never seen before
            (an idle snapshot with progress 0 is created)
        update: The incoming update
        now: Timestamp used for startTime stamping (defaults to wall clock)
        policy: Terminal-state policy

    Returns:
        Operation: The next snapshot (the same object if nothing applies)
    """
    if snapshot is None:
        snapshot = Operation(operation_id=update.operation_id)

    if _is_rejected(snapshot, update, policy):
        logger.debug(
            f"Dropping {update.type.value} update for terminal operation "
            f"{snapshot.operation_id} ({snapshot.status.value})"
        )
        return snapshot

    data = update.data
    changes: dict[str, Any] = {}

    if update.type is UpdateType.STATUS:
        status = _parse_status(data.get("status"))
        if status is not None:
            changes["status"] = status
        if data.get("message"):
            changes["message"] = data["message"]
        if data.get("input"):
            changes["start_time"] = now if now is not None else now_ms()

    elif update.type is UpdateType.PROGRESS:
        changes["progress"] = _coerce_progress(data.get("progress"), 0)
        changes["status"] = OperationStatus.PROCESSING
        if data.get("message"):
            changes["message"] = data["message"]

    elif update.type is UpdateType.PREVIEW:
        changes["preview_url"] = data.get("previewUrl")
        progress = _coerce_progress(data.get("progress"), None)
        if progress is not None:
            changes["progress"] = progress

    elif update.type is UpdateType.COMPLETED:
        results = data.get("results")
        changes["status"] = OperationStatus.COMPLETED
        changes["progress"] = 100
        changes["results"] = [str(url) for url in results] if isinstance(results, list) else []
        changes["message"] = COMPLETED_MESSAGE

    elif update.type is UpdateType.ERROR:
        error = data.get("error") or DEFAULT_ERROR_MESSAGE
        changes["status"] = OperationStatus.FAILED
        changes["error"] = str(error)
        changes["message"] = str(error)

    _normalize_terminal_fields(changes, snapshot)
    return snapshot.model_copy(update=changes)


def snapshot_to_updates(operation: Operation) -> list[RealtimeUpdate]:
    """
    Express a stored snapshot as the updates that rebuild it.

    Folding the returned updates into an empty (or older) snapshot yields
    the same status, progress, message, preview and results/error. Used for
    subscribe replay and by the polling fallback.
    """
    operation_id = operation.operation_id
    updates: list[RealtimeUpdate] = []

    def make(update_type: UpdateType, data: dict[str, Any]) -> RealtimeUpdate:
        return RealtimeUpdate(type=update_type, operation_id=operation_id, data=data)

    if operation.status is OperationStatus.COMPLETED:
        if operation.preview_url:
            updates.append(make(UpdateType.PREVIEW, {"previewUrl": operation.preview_url}))
        updates.append(make(UpdateType.COMPLETED, {"results": list(operation.results or [])}))

    elif operation.status is OperationStatus.FAILED:
        updates.append(make(UpdateType.ERROR, {"error": operation.error}))

    elif operation.status is OperationStatus.PROCESSING:
        updates.append(make(UpdateType.PROGRESS, {
            "progress": operation.progress,
            "message": operation.message,
        }))
        if operation.preview_url:
            updates.append(make(UpdateType.PREVIEW, {"previewUrl": operation.preview_url}))

    else:
        updates.append(make(UpdateType.STATUS, {
            "status": operation.status.value,
            "message": operation.message,
        }))

    return updates


# =============================================================================
# Registry
# =============================================================================

class OperationRegistry:
    """
    In-memory map of operation id -> latest snapshot.

    All mutations are synchronous and expected to run on a single event
    loop, so no locking is done. Listeners are called after every change
    with (operation_id, snapshot); snapshot is None after a clear.
    """

    def __init__(
        self,
        policy: TerminalStatePolicy = TerminalStatePolicy.STICKY,
        clock: Callable[[], int] = now_ms,
    ):
        self.policy = TerminalStatePolicy(policy)
        self._clock = clock
        self._operations: dict[str, Operation] = {}
        self._listeners: list[OperationListener] = []

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def apply_update(self, update: RealtimeUpdate) -> Operation:
        """Fold an update into its operation, creating the record if needed."""
        current = self._operations.get(update.operation_id)
        updated = fold_update(current, update, now=self._clock(), policy=self.policy)

        if updated is current:
            return current

        self._operations[update.operation_id] = updated
        self._notify(update.operation_id, updated)
        return updated

    def seed_operation(
        self,
        operation_id: str,
        *,
        status: OperationStatus = OperationStatus.STARTING,
        message: str | None = STARTING_MESSAGE,
    ) -> Operation:
        """
        Register a freshly submitted operation, replacing any prior record.

        The snapshot starts at progress 0 with startTime stamped now.
        """
        operation = Operation(
            operation_id=operation_id,
            status=status,
            progress=0,
            message=message,
            start_time=self._clock(),
        )
        return self.put_operation(operation)

    def put_operation(self, operation: Operation) -> Operation:
        """Store a snapshot as-is."""
        self._operations[operation.operation_id] = operation
        self._notify(operation.operation_id, operation)
        return operation

    def clear_operation(self, operation_id: str) -> Operation | None:
        """Remove a record; returns the removed snapshot if there was one."""
        removed = self._operations.pop(operation_id, None)
        if removed is not None:
            self._notify(operation_id, None)
        return removed

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_operation(self, operation_id: str) -> Operation | None:
        return self._operations.get(operation_id)

    def list_operations(self) -> list[Operation]:
        """All tracked snapshots; order is not significant."""
        return list(self._operations.values())

    def pending_operation_ids(self) -> list[str]:
        """Ids of operations that have not reached a terminal state."""
        return [op_id for op_id, op in self._operations.items() if not op.is_terminal]

    def __len__(self) -> int:
        return len(self._operations)

    def __contains__(self, operation_id: object) -> bool:
        return operation_id in self._operations

    def __iter__(self) -> Iterator[Operation]:
        return iter(self.list_operations())

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------

    def add_listener(self, listener: OperationListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: OperationListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, operation_id: str, operation: Operation | None) -> None:
        for listener in list(self._listeners):
            try:
                listener(operation_id, operation)
            except Exception:
                logger.exception(f"Operation listener failed for {operation_id}")
