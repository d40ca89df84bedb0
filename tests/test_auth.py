"""
Tests for Supabase JWT authentication and the DEV_MODE header fallback.
"""

import os
import sys
import time
import unittest
from datetime import timedelta
from unittest.mock import patch

# Set environment before imports
os.environ["DEV_MODE"] = "true"
os.environ["ENVIRONMENT"] = "development"
os.environ["SUPABASE_JWT_SECRET"] = "test-jwt-secret-for-unit-tests-only-32b"

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import jwt
from fastapi.testclient import TestClient

from app.auth.supabase_jwt import verify_supabase_access_token
from src.config import reload_settings
from src.types.usage import UsageLimitSettings, UserType, UserUsage, utcnow
from src.usage import InMemoryUsageStorage, UsageStorage, reset_usage_service
from src.utils.cache import reset_usage_limits_cache

SECRET = "test-jwt-secret-for-unit-tests-only-32b"


def make_token(sub="user-1", secret=SECRET, expires_in=3600, audience="authenticated", **claims):
    payload = {"sub": sub, "exp": int(time.time()) + expires_in, **claims}
    if audience:
        payload["aud"] = audience
    return jwt.encode(payload, secret, algorithm="HS256")


class TestVerifyAccessToken(unittest.TestCase):
    def setUp(self):
        reload_settings()

    def test_valid_token_returns_claims(self):
        claims = verify_supabase_access_token(make_token(email="a@example.com"))

        self.assertEqual(claims["sub"], "user-1")
        self.assertEqual(claims["email"], "a@example.com")

    def test_wrong_secret_rejected(self):
        with self.assertRaises(jwt.InvalidSignatureError):
            verify_supabase_access_token(make_token(secret="another-secret-of-sufficient-length"))

    def test_expired_token_rejected(self):
        with self.assertRaises(jwt.ExpiredSignatureError):
            verify_supabase_access_token(make_token(expires_in=-60))

    def test_wrong_audience_rejected(self):
        with self.assertRaises(jwt.InvalidAudienceError):
            verify_supabase_access_token(make_token(audience="anon"))

    def test_missing_sub_rejected(self):
        token = jwt.encode(
            {"exp": int(time.time()) + 60, "aud": "authenticated"}, SECRET, algorithm="HS256"
        )
        with self.assertRaises(jwt.MissingRequiredClaimError):
            verify_supabase_access_token(token)

    def test_missing_secret_raises_value_error(self):
        with patch.dict(os.environ, {"SUPABASE_JWT_SECRET": ""}):
            reload_settings()
            with self.assertRaises(ValueError):
                verify_supabase_access_token(make_token())
        reload_settings()


class TestBearerAuthentication(unittest.TestCase):
    """Bearer tokens resolve the user for the usage endpoints."""

    def setUp(self):
        from server import app

        reload_settings()
        self.storage = InMemoryUsageStorage()
        UsageStorage.set_storage(self.storage)
        reset_usage_service()
        reset_usage_limits_cache()
        self.storage.add_user(UserUsage(id="user-1", monthly_reset_date=utcnow() - timedelta(days=1)))
        self.storage.set_limits(UsageLimitSettings(user_type=UserType.FREE, max_activities=100))
        self.client = TestClient(app)

    def tearDown(self):
        UsageStorage.reset()
        reset_usage_service()
        reset_usage_limits_cache()

    def test_valid_token_authenticates(self):
        response = self.client.get(
            "/usage/summary", headers={"Authorization": f"Bearer {make_token()}"}
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["user_id"], "user-1")

    def test_token_wins_over_dev_header(self):
        self.storage.add_user(UserUsage(id="user-2"))

        response = self.client.get(
            "/usage/summary",
            headers={"Authorization": f"Bearer {make_token()}", "X-User-ID": "user-2"},
        )

        self.assertEqual(response.json()["user_id"], "user-1")

    def test_expired_token_returns_401(self):
        response = self.client.get(
            "/usage/summary", headers={"Authorization": f"Bearer {make_token(expires_in=-60)}"}
        )

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["error_code"], "EXPIRED_TOKEN")

    def test_garbage_token_returns_401(self):
        response = self.client.get(
            "/usage/summary", headers={"Authorization": "Bearer not-a-jwt"}
        )

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["error_code"], "INVALID_TOKEN")

    def test_dev_header_ignored_outside_dev_mode(self):
        with patch.dict(os.environ, {"DEV_MODE": "false"}):
            reload_settings()
            response = self.client.get("/usage/summary", headers={"X-User-ID": "user-1"})
        reload_settings()

        self.assertEqual(response.status_code, 401)


if __name__ == "__main__":
    unittest.main()
