# =============================================================================
# app/routers/ - API Route Definitions
# =============================================================================
# This package contains FastAPI routers organized by feature:
# - health.py: Health check endpoints
# - transform.py: Transformation submission and status polling
#
# Each router is mounted in main.py with a URL prefix.
# =============================================================================

from . import health
from . import transform

__all__ = [
    "health",
    "transform",
]
