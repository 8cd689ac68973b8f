# =============================================================================
# app/websocket/__init__.py - WebSocket Module
# =============================================================================
# Provides real-time updates for transformation operations.
#
# Usage:
#   # Push an update to an operation's owner (from FastAPI)
#   from app.websocket import realtime_service
#
#   await realtime_service.update_progress(operation_id, user_id, 42, "Processing image...")
#
#   # Publish updates from Celery workers
#   from app.websocket.broadcast import publish_progress
#
#   publish_progress(user_id, operation_id, 42, "Processing image...")
# =============================================================================

from app.websocket.manager import RealtimeService, realtime_service
from app.websocket.broadcast import (
    publish_update,
    publish_progress,
    publish_preview,
    publish_completed,
    publish_error,
    REALTIME_CHANNEL,
)

__all__ = [
    "RealtimeService",
    "realtime_service",
    "publish_update",
    "publish_progress",
    "publish_preview",
    "publish_completed",
    "publish_error",
    "REALTIME_CHANNEL",
]
