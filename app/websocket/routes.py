# =============================================================================
# app/websocket/routes.py - WebSocket Routes
# =============================================================================
# WebSocket endpoint for real-time operation updates.
#
# Connect: ws://host/api/realtime  (session cookie required)
#
# Client -> server:
#   - {"type": "ping"}
#   - {"type": "subscribe", "operationId": "..."}
#
# Server -> client:
#   - {"type": "status|progress|preview|completed|error", "operationId": "...", "data": {...}, "timestamp": ...}
# =============================================================================

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from app.auth.dependencies import get_websocket_user
from app.websocket.manager import realtime_service

logger = logging.getLogger(__name__)

router = APIRouter()

# RFC 6455 policy violation
POLICY_VIOLATION = 1008


@router.websocket("/api/realtime")
async def realtime_websocket(websocket: WebSocket):
    """
    WebSocket endpoint for real-time operation updates.

    Authentication comes from the session cookie sent with the handshake.
    Unauthenticated clients are closed with code 1008.

    Example event:
        {
            "type": "progress",
            "operationId": "abc123",
            "data": {"progress": 42, "message": "Applying transformations..."},
            "timestamp": 1718000000000
        }
    """
    # 1. Verify session cookie
    user = get_websocket_user(websocket)
    if user is None:
        logger.warning("WebSocket auth failed: no valid session")
        # Accept first so the client sees the close code
        await websocket.accept()
        await websocket.close(code=POLICY_VIOLATION, reason="Authentication required")
        return

    # 2. Accept connection and add to the service
    await realtime_service.connect(websocket, user)

    try:
        # Keep connection alive and handle incoming messages
        while True:
            data = await websocket.receive_text()
            await realtime_service.handle_client_message(websocket, user, data)

    except WebSocketDisconnect:
        logger.info(f"WebSocket client disconnected: user {user.id}")
    except Exception as e:
        logger.warning(f"WebSocket receive error: {e}")
    finally:
        realtime_service.disconnect(websocket, user.id)


@router.get("/ws/status")
async def websocket_status():
    """
    Get WebSocket connection statistics.

    Returns:
        dict: Connection counts and tracked operations
    """
    return {
        "total_connections": realtime_service.get_connection_count(),
        "connected_users": realtime_service.get_connected_users(),
        "active_operations": realtime_service.get_active_operations(),
    }
