# =============================================================================
# tests/ - Test Suite
# =============================================================================
# Tests for the Portrait Studio API, worker and tracking client:
# - test_models.py / test_operation_registry.py: wire models and state folding
# - test_realtime_client.py / test_portrait_client.py: client connection stack
# - test_api.py / test_realtime_service.py: HTTP and websocket endpoints
# - test_worker.py: transformation pipeline
#
# Run tests with: pytest
# =============================================================================
