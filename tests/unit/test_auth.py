"""
Unit tests for authentication.
"""

from datetime import timedelta

import pytest
from fastapi import HTTPException
from jose import jwt

from boxsync.api.auth import create_access_token, decode_token, issue_token, validate_api_key
from boxsync.config import get_settings
from boxsync.utils.clock import utcnow


class TestAuth:
    """Tests for authentication utilities."""

    def test_token_carries_box_id(self):
        """Test that a token round-trips the box id."""
        token = create_access_token(box_id="box-7")

        token_data = decode_token(token)

        assert token_data.box_id == "box-7"
        assert token_data.exp > utcnow()

    def test_decode_expired_token(self):
        """Test decoding an expired token raises error."""
        token = create_access_token(box_id="box-7", expires_delta=timedelta(hours=-1))

        with pytest.raises(HTTPException) as exc_info:
            decode_token(token)

        assert exc_info.value.status_code == 401

    def test_decode_invalid_token(self):
        """Test decoding garbage raises error."""
        with pytest.raises(HTTPException) as exc_info:
            decode_token("invalid-token")

        assert exc_info.value.status_code == 401

    def test_decode_token_without_box(self):
        """Test that a signed token without a box id is rejected."""
        settings = get_settings()
        token = jwt.encode(
            {"exp": utcnow() + timedelta(minutes=5)},
            settings.api_secret_key,
            algorithm=settings.api_algorithm,
        )

        with pytest.raises(HTTPException) as exc_info:
            decode_token(token)

        assert exc_info.value.status_code == 401

    def test_decode_token_wrong_secret(self):
        """Test that a token signed with another key is rejected."""
        token = jwt.encode(
            {"sub": "box-7", "scope": "box", "exp": utcnow() + timedelta(minutes=5)},
            "not-the-secret",
            algorithm="HS256",
        )

        with pytest.raises(HTTPException):
            decode_token(token)

    def test_validate_api_key(self):
        """Test API key validation."""
        assert validate_api_key("valid-key", "box-123") is True
        assert validate_api_key("", "box") is False
        assert validate_api_key("key", "") is False

    def test_decode_token_without_box_scope(self):
        """Test that a token for another audience is rejected."""
        settings = get_settings()
        token = jwt.encode(
            {"sub": "box-7", "scope": "admin", "exp": utcnow() + timedelta(minutes=5)},
            settings.api_secret_key,
            algorithm=settings.api_algorithm,
        )

        with pytest.raises(HTTPException) as exc_info:
            decode_token(token)

        assert exc_info.value.status_code == 401

    def test_provisioned_box_needs_its_key(self, monkeypatch):
        """Test that a box with a provisioned key rejects any other key."""
        monkeypatch.setattr(get_settings(), "box_api_keys", {"box-9": "s3cret"})

        assert validate_api_key("s3cret", "box-9") is True
        assert validate_api_key("guess", "box-9") is False
        assert validate_api_key("anything", "box-10") is True

    def test_issue_token(self, monkeypatch):
        """Test the key-for-token exchange."""
        monkeypatch.setattr(get_settings(), "box_api_keys", {"box-9": "s3cret"})

        response = issue_token("s3cret", "box-9")
        assert decode_token(response.access_token).box_id == "box-9"
        assert response.expires_in == get_settings().api_access_token_expire_minutes * 60

        with pytest.raises(HTTPException) as exc_info:
            issue_token("guess", "box-9")
        assert exc_info.value.status_code == 401
