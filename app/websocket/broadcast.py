# =============================================================================
# app/websocket/broadcast.py - Cross-Process Broadcasting
# =============================================================================
# Lets Celery workers publish operation updates that the API process pushes
# to websocket clients.
#
# Uses Redis pub/sub for cross-process communication:
# - Workers call publish_update() (or one of the typed helpers)
# - FastAPI subscribes and hands each update to realtime_service.dispatch()
#
# Message format on the channel:
#   {"user_id": 7, "update": {"type": "progress", "operationId": ..., "data": {...}, "timestamp": ...}}
# =============================================================================

import json
import logging

from core.models.operation import RealtimeUpdate

logger = logging.getLogger(__name__)

# Redis channel for realtime operation updates
REALTIME_CHANNEL = "portrait_studio:realtime:updates"


def get_redis_client():
    """Get a Redis client for pub/sub operations."""
    import redis
    from app.config import settings
    return redis.from_url(settings.REDIS_URL)


def encode_message(user_id: int, update: RealtimeUpdate) -> str:
    return json.dumps({"user_id": user_id, "update": update.to_wire()})


def publish_update(user_id: int, update: RealtimeUpdate) -> bool:
    """
    Publish an update that will be pushed to the owner's websocket clients.

    Args:
        user_id: Owner of the operation
        update: The update to deliver

    Returns:
        bool: True if published successfully
    """
    try:
        client = get_redis_client()
        client.publish(REALTIME_CHANNEL, encode_message(user_id, update))

        logger.debug(f"Published {update.type.value} update for operation {update.operation_id}")
        return True

    except Exception as e:
        logger.error(f"Failed to publish update: {e}")
        return False


def publish_progress(user_id: int, operation_id: str, progress: float, message: str | None = None) -> bool:
    return publish_update(user_id, RealtimeUpdate.for_progress(operation_id, progress, message))


def publish_preview(user_id: int, operation_id: str, preview_url: str, progress: float | None = None) -> bool:
    return publish_update(user_id, RealtimeUpdate.for_preview(operation_id, preview_url, progress))


def publish_completed(user_id: int, operation_id: str, results: list[str]) -> bool:
    """
    Publish the final results of an operation.

    Called once by the worker after every output has been stored.
    """
    return publish_update(user_id, RealtimeUpdate.for_completed(operation_id, results))


def publish_error(user_id: int, operation_id: str, error: str) -> bool:
    """
    Publish an operation failure.

    Called when the provider fails, times out, or the worker crashes.
    """
    return publish_update(user_id, RealtimeUpdate.for_error(operation_id, error))
