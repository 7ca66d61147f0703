# =============================================================================
# tests/ - Test Suite
# =============================================================================
# This package contains all tests for the ViewBait API:
# - fakes.py: In-memory Supabase double and helpers
# - test_models.py: Unit tests for Pydantic model validation
# - test_ttl_cache.py: Cache expiry and eviction
# - test_*.py: Service and endpoint tests per feature
#
# Run tests with: pytest
# =============================================================================
