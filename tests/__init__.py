"""
DoseCheck Test Suite
====================

This package contains all tests for the DoseCheck scheduling and confirmation engine.

Test Structure:
- test_api/: API endpoint tests for FastAPI routes
- test_services/: Service tests against an in-memory database
- test_tools/: Pure helper tests
- conftest.py: Shared pytest fixtures

Running Tests:
    # Run all tests
    pytest

    # Run specific test module
    pytest tests/test_services/

    # Run only marked tests
    pytest -m "unit"
    pytest -m "database"
"""

# Test configuration
TEST_DATABASE_URL = "sqlite:///:memory:"

# Common frequency labels
SAMPLE_LABELS = [
    "morning",
    "morning, evening",
    "custom (14:30:00)",
    "bedtime",
]

__all__ = [
    "TEST_DATABASE_URL",
    "SAMPLE_LABELS",
]
