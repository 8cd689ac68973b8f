# =============================================================================
# lib/realtime_config.py - Realtime Client Settings
# =============================================================================
# Settings for the client-side tracking layer (connection manager, launcher,
# polling fallback). Unlike app.config, nothing here is required, so the
# client can be used from scripts without the server's environment.
#
# Usage:
#   from lib.realtime_config import client_settings
#   print(client_settings.MAX_RECONNECT_ATTEMPTS)
#
# Environment variables use the PORTRAIT_ prefix, e.g.
#   PORTRAIT_MAX_RECONNECT_ATTEMPTS=5
#   PORTRAIT_TERMINAL_STATE_POLICY=frozen
# =============================================================================

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.services.operation_registry import TerminalStatePolicy


class RealtimeClientSettings(BaseSettings):
    """
    Tunables for the realtime client.

    Defaults match the server's routes and the reconnect schedule
    1s, 2s, 4s, 8s, 10s (capped), then give up.
    """

    # -------------------------------------------------------------------------
    # Server Paths
    # -------------------------------------------------------------------------

    REALTIME_PATH: str = Field(
        default="/api/realtime",
        description="Websocket push endpoint path"
    )

    TRANSFORM_PATH: str = Field(
        default="/api/transform-realtime",
        description="Job submission endpoint path"
    )

    STATUS_PATH: str = Field(
        default="/api/status",
        description="Operation status endpoint prefix (polling fallback)"
    )

    # -------------------------------------------------------------------------
    # Reconnection
    # -------------------------------------------------------------------------

    MAX_RECONNECT_ATTEMPTS: int = Field(
        default=5,
        ge=0,
        description="Automatic reconnects before giving up"
    )

    RECONNECT_BASE_DELAY_MS: int = Field(
        default=1000,
        ge=0,
        description="Delay before the first reconnect; doubles per attempt"
    )

    RECONNECT_MAX_DELAY_MS: int = Field(
        default=10000,
        ge=0,
        description="Upper bound on the reconnect delay"
    )

    # -------------------------------------------------------------------------
    # Registry
    # -------------------------------------------------------------------------

    TERMINAL_STATE_POLICY: TerminalStatePolicy = Field(
        default=TerminalStatePolicy.STICKY,
        description="How updates for completed/failed operations are handled"
    )

    # -------------------------------------------------------------------------
    # HTTP / Polling Fallback
    # -------------------------------------------------------------------------

    REQUEST_TIMEOUT_SECONDS: float = Field(
        default=30.0,
        gt=0,
        description="Timeout for submission and status requests"
    )

    POLL_INTERVAL_SECONDS: float = Field(
        default=5.0,
        gt=0,
        description="Delay between status polls once the channel is lost"
    )

    POLL_MAX_ATTEMPTS: int = Field(
        default=60,
        ge=1,
        description="Status polls per operation before giving up"
    )

    model_config = SettingsConfigDict(
        env_prefix="PORTRAIT_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        extra="ignore",
    )


@lru_cache
def get_client_settings() -> RealtimeClientSettings:
    """Cached client settings instance."""
    return RealtimeClientSettings()


client_settings = get_client_settings()
