# =============================================================================
# core/ - Business Logic Package
# =============================================================================
# This package contains framework-agnostic business logic:
# - models/: Pydantic schemas for operations, updates and submissions
# - services/: Operation registry (update fold) and result file storage
#
# Code in this package should NOT import from FastAPI or Celery.
# This keeps the logic testable and shared by the server and the client.
# =============================================================================
