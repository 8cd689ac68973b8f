# =============================================================================
# app/main.py - FastAPI Application Entry Point
# =============================================================================
# This is the main entry point for the Portrait Studio API.
# It configures the FastAPI application with middleware, routers, and handlers.
#
# Usage:
#   uvicorn app.main:app --reload
# =============================================================================

import asyncio
import json
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import ValidationError

from app.config import settings
from app.websocket import realtime_service, REALTIME_CHANNEL
from app.exceptions import (
    PortraitStudioException,
    portrait_studio_exception_handler,
    validation_exception_handler,
)
from app.routers import health, transform
from app.auth import routes as auth_routes
from app.websocket import routes as websocket_routes
from core.models.operation import RealtimeUpdate

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


# Global flag for Redis listener task
_redis_listener_task = None
_shutdown_event = None


async def handle_broadcast_message(raw: str | bytes) -> int:
    """
    Deliver one message published by a worker.

    Returns:
        int: Number of websocket clients the update reached
    """
    data = json.loads(raw)
    user_id = data.get("user_id")
    if user_id is None:
        logger.warning("Redis message without user_id, ignoring")
        return 0

    update = RealtimeUpdate.model_validate(data.get("update"))
    sent = await realtime_service.dispatch(int(user_id), update)
    logger.debug(f"Dispatched {update.type.value} for {update.operation_id} to {sent} client(s)")
    return sent


async def redis_pubsub_listener():
    """
    Background task that listens to Redis pub/sub and pushes to websockets.

    This bridges Celery workers with websocket clients by:
    1. Subscribing to the Redis channel where workers publish updates
    2. Folding each update into the server store and sending it to the owner
    """
    import redis.asyncio as aioredis

    logger.info("Starting Redis pub/sub listener for realtime updates")

    redis_client = None
    pubsub = None
    try:
        redis_client = aioredis.from_url(settings.REDIS_URL)
        pubsub = redis_client.pubsub()
        await pubsub.subscribe(REALTIME_CHANNEL)

        async for message in pubsub.listen():
            if _shutdown_event and _shutdown_event.is_set():
                break

            if message["type"] == "message":
                try:
                    await handle_broadcast_message(message["data"])
                except json.JSONDecodeError as e:
                    logger.warning(f"Invalid JSON in Redis message: {e}")
                except ValidationError as e:
                    logger.warning(f"Invalid update in Redis message: {e}")
                except Exception as e:
                    logger.error(f"Error processing Redis message: {e}")

    except asyncio.CancelledError:
        logger.info("Redis pub/sub listener cancelled")
    except Exception as e:
        logger.error(f"Redis pub/sub listener error: {e}")
    finally:
        try:
            if pubsub is not None:
                await pubsub.unsubscribe(REALTIME_CHANNEL)
            if redis_client is not None:
                await redis_client.aclose()
        except Exception as e:
            logger.debug(f"Redis cleanup failed: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    - Startup: start the Redis listener that relays worker updates
    - Shutdown: stop the listener
    """
    global _redis_listener_task, _shutdown_event

    # Startup
    logger.info(f"Starting Portrait Studio API in {settings.ENVIRONMENT} mode")
    logger.info(f"CORS origins: {settings.cors_origins_list}")

    _shutdown_event = asyncio.Event()
    _redis_listener_task = asyncio.create_task(redis_pubsub_listener())

    yield

    # Shutdown
    logger.info("Shutting down Portrait Studio API")

    if _shutdown_event:
        _shutdown_event.set()
    if _redis_listener_task:
        _redis_listener_task.cancel()
        try:
            await _redis_listener_task
        except asyncio.CancelledError:
            pass


# Create FastAPI application
app = FastAPI(
    title="Portrait Studio API",
    description="""
## AI Portrait Transformation API

Upload a portrait, pick a style, and follow the transformation live.

### How It Works

1. **Connect** - Open `ws://host/api/realtime` with your session cookie
2. **Submit** - `POST /api/transform-realtime` with the image and options
3. **Subscribe** - Send `{"type": "subscribe", "operationId": "..."}`
4. **Follow** - Receive status, progress, preview, completed or error updates

If the websocket is unavailable, poll `GET /api/status/{operationId}`.
""",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
    openapi_tags=[
        {
            "name": "Auth",
            "description": "Session inspection",
        },
        {
            "name": "Transform",
            "description": "Submit transformations and poll their status",
        },
        {
            "name": "WebSocket",
            "description": "Real-time operation updates",
        },
        {
            "name": "Health",
            "description": "API health and readiness checks",
        },
    ],
)


# =============================================================================
# Middleware
# =============================================================================

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# Exception Handlers
# =============================================================================

@app.exception_handler(PortraitStudioException)
async def handle_portrait_studio_exception(request: Request, exc: PortraitStudioException):
    """Handle custom Portrait Studio exceptions."""
    if exc.status_code >= 500:
        logger.error(f"{exc.code}: {exc.message}")
    return await portrait_studio_exception_handler(request, exc)


@app.exception_handler(RequestValidationError)
async def handle_validation_exception(request: Request, exc: RequestValidationError):
    return await validation_exception_handler(request, exc)


@app.exception_handler(Exception)
async def handle_general_exception(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.exception(f"Unexpected error: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "An unexpected error occurred",
            "code": "INTERNAL_ERROR",
        }
    )


# =============================================================================
# Routers
# =============================================================================

# Authentication endpoints
app.include_router(
    auth_routes.router,
    prefix="/api/auth",
    tags=["Auth"]
)

# Health check endpoints
app.include_router(
    health.router,
    prefix="/api",
    tags=["Health"]
)

# Transformation endpoints
app.include_router(
    transform.router,
    prefix="/api",
    tags=["Transform"]
)

# WebSocket endpoints (Real-time updates)
app.include_router(
    websocket_routes.router,
    tags=["WebSocket"]
)

# Stored result images
app.mount(
    settings.FILES_URL_PATH,
    StaticFiles(directory=settings.STORAGE_DIR, check_dir=False),
    name="files",
)


# =============================================================================
# Root Endpoint
# =============================================================================

@app.get("/", tags=["Root"])
async def root():
    """
    Root endpoint - returns API info.
    """
    return {
        "name": "Portrait Studio API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/api/health",
        "realtime": "/api/realtime",
    }
