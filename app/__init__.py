# =============================================================================
# app/ - FastAPI Application Package
# =============================================================================
# This package contains the Portrait Studio web application:
# - main.py: App entry point, middleware, error handlers, Redis relay
# - config.py: Environment variable loading and settings
# - auth/: Session-cookie authentication
# - routers/: Submission, status and health endpoints
# - websocket/: Realtime push service and worker broadcast helpers
#
# The app layer handles HTTP and websocket concerns; operation state folding
# lives in core/.
# =============================================================================
