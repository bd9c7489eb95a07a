"""
Shared test fixtures.

Required settings are injected into the environment before any app module is
imported: app.core.config validates them at import time.
"""

import logging
import os

os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_PUBLISHABLE_KEY", "sb_publishable_test")
os.environ.setdefault("SUPABASE_SECRET_KEY", "sb_secret_test")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_123")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_secret")
os.environ["NOTIFICATION_CHECKER_ENABLED"] = "false"

import pytest
from fastapi.testclient import TestClient

from app.core.entitlements import profile_cache
from app.core.security import require_auth
from app.main import app

logging.getLogger("app").setLevel(logging.WARNING)


@pytest.fixture(autouse=True)
def _reset_state():
    profile_cache.clear()
    yield
    profile_cache.clear()
    app.dependency_overrides.clear()


@pytest.fixture()
def client():
    """HTTP client without running the lifespan (no background checker)."""
    return TestClient(app)


@pytest.fixture()
def login():
    """Authenticate requests as the given JWT payload."""
    def _login(sub: str = "user-1", **claims):
        payload = {"sub": sub, "aud": "authenticated", **claims}
        app.dependency_overrides[require_auth] = lambda: payload
        return payload
    return _login
