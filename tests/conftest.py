"""
Pytest configuration and shared fixtures for usage accounting tests.

Environment is set before any project import so settings resolve to the
in-memory storage backend and development mode.
"""

import os
import sys

import pytest

# Environment setup before any imports
os.environ["DEV_MODE"] = "true"
os.environ["ENVIRONMENT"] = "development"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["USAGE_STORAGE_BACKEND"] = "memory"
os.environ["DATABASE_URL"] = ""
os.environ["DATABASE_URL_DIRECT"] = ""
os.environ["SENTRY_DSN"] = ""
os.environ["SUPABASE_JWT_SECRET"] = "test-jwt-secret-for-unit-tests-only-32b"

# Ensure project root is in path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))


@pytest.fixture(autouse=True)
def reset_usage_singletons():
    """Fresh storage, limits cache and service for every test."""
    from src.config import reload_settings
    from src.usage import UsageStorage, reset_usage_service
    from src.utils.cache import reset_usage_limits_cache

    reload_settings()
    UsageStorage.reset()
    reset_usage_limits_cache()
    reset_usage_service()
    yield
    UsageStorage.reset()
    reset_usage_limits_cache()
    reset_usage_service()


@pytest.fixture
def client():
    """FastAPI test client fixture."""
    from fastapi.testclient import TestClient
    from server import app

    return TestClient(app)
