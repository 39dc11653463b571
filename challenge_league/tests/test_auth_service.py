"""
Tests for auth_service.verify_token().
"""

from datetime import datetime, timedelta, timezone

import jwt

from challenge_league.services import auth_service

SECRET = "unit-test-signing-key-0123456789abcdef"


def make_token(payload, key=SECRET, expires_in=timedelta(minutes=30)):
    claims = dict(payload)
    claims["exp"] = datetime.now(timezone.utc) + expires_in
    return jwt.encode(claims, key, algorithm="HS256")


class TestVerifyToken:
    """Tests for verify_token()."""

    def test_valid_token(self, monkeypatch):
        monkeypatch.setenv("JWT_SECRET_KEY", SECRET)
        payload = auth_service.verify_token(make_token({"user_id": 42}))
        assert payload["user_id"] == 42

    def test_expired_token(self, monkeypatch):
        monkeypatch.setenv("JWT_SECRET_KEY", SECRET)
        token = make_token({"user_id": 42}, expires_in=timedelta(minutes=-5))
        assert auth_service.verify_token(token) is None

    def test_wrong_key(self, monkeypatch):
        monkeypatch.setenv("JWT_SECRET_KEY", SECRET)
        token = make_token({"user_id": 42}, key="another-key-entirely-0123456789abcdef")
        assert auth_service.verify_token(token) is None

    def test_garbage_token(self, monkeypatch):
        monkeypatch.setenv("JWT_SECRET_KEY", SECRET)
        assert auth_service.verify_token("not-a-jwt") is None

    def test_no_key_configured(self, monkeypatch):
        monkeypatch.delenv("JWT_SECRET_KEY", raising=False)
        assert auth_service.verify_token(make_token({"user_id": 42})) is None
