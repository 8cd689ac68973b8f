# =============================================================================
# core/services/__init__.py - Service Layer Exports
# =============================================================================
# Only the registry is exported here: it is shared with the client library,
# which must import without the server settings. Import StorageService from
# core.services.storage_service.
# =============================================================================

from .operation_registry import (
    OperationRegistry,
    TerminalStatePolicy,
    fold_update,
    snapshot_to_updates,
)

__all__ = [
    "OperationRegistry",
    "TerminalStatePolicy",
    "fold_update",
    "snapshot_to_updates",
]
