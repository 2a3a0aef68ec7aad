"""Unit tests for API key checks and authenticated subject resolution."""

from unittest.mock import patch

import pytest
from fastapi import HTTPException
from starlette.requests import Request

from app.core.auth import parse_api_keys, resolve_authenticated_subject, validate_api_key, verify_api_key
from app.core.errors import AuthenticationAppError


def _request(headers: dict[str, str]) -> Request:
    return Request(
        {
            "type": "http",
            "method": "POST",
            "path": "/api/generate-zine",
            "query_string": b"",
            "headers": [(name.lower().encode(), value.encode()) for name, value in headers.items()],
        }
    )


def _configure(mock_settings, *, required: bool = True, keys: str | None = "key-1,key-2") -> None:
    mock_settings.app.api_key_required = required
    mock_settings.app.api_keys = keys
    mock_settings.app.subject_header = "X-User-Id"


class TestParseAPIKeys:
    """Test API key parsing utility function."""

    def test_parse_keys_with_whitespace(self) -> None:
        """Test that whitespace is trimmed from keys."""
        assert parse_api_keys("key1 , key2  ,  key3") == {"key1", "key2", "key3"}

    @pytest.mark.parametrize("raw", [None, "", "   ,  ,  "])
    def test_parse_empty_inputs(self, raw: str | None) -> None:
        assert parse_api_keys(raw) == set()


class TestValidateAPIKey:
    """Test core API key validation logic."""

    @patch("app.core.auth.settings")
    def test_validate_bypassed_when_auth_disabled(self, mock_settings) -> None:
        _configure(mock_settings, required=False)

        validate_api_key("any-random-key")

    @patch("app.core.auth.settings")
    def test_validate_raises_when_no_keys_configured(self, mock_settings) -> None:
        """Auth required but nothing configured is a misconfiguration, not a bad key."""
        _configure(mock_settings, keys=None)

        with pytest.raises(AuthenticationAppError) as exc_info:
            validate_api_key("some-key")

        assert exc_info.value.code == "api_keys_not_configured"

    @patch("app.core.auth.settings")
    def test_validate_accepts_and_rejects(self, mock_settings) -> None:
        _configure(mock_settings)

        validate_api_key("key-2")
        with pytest.raises(AuthenticationAppError) as exc_info:
            validate_api_key("key-3")

        assert exc_info.value.code == "invalid_api_key"


class TestVerifyAPIKeyDependency:
    """Test the dependency guarding operator routes."""

    @pytest.mark.asyncio
    @patch("app.core.auth.settings")
    async def test_verify_raises_403_when_header_missing(self, mock_settings) -> None:
        _configure(mock_settings)

        with pytest.raises(HTTPException) as exc_info:
            await verify_api_key(x_api_key=None)

        assert exc_info.value.status_code == 403
        assert "Missing API key" in exc_info.value.detail

    @pytest.mark.asyncio
    @patch("app.core.auth.settings")
    async def test_verify_raises_403_when_key_invalid(self, mock_settings) -> None:
        _configure(mock_settings)

        with pytest.raises(HTTPException) as exc_info:
            await verify_api_key(x_api_key="wrong-key")

        assert exc_info.value.status_code == 403

    @pytest.mark.asyncio
    @patch("app.core.auth.settings")
    async def test_verify_accepts_valid_key(self, mock_settings) -> None:
        _configure(mock_settings)

        await verify_api_key(x_api_key="key-1")


class TestResolveAuthenticatedSubject:
    """The subject header only counts when a trusted caller vouches for it."""

    @patch("app.core.auth.settings")
    def test_no_header_is_anonymous(self, mock_settings) -> None:
        _configure(mock_settings)

        assert resolve_authenticated_subject(_request({})) is None

    @patch("app.core.auth.settings")
    def test_subject_with_valid_key(self, mock_settings) -> None:
        _configure(mock_settings)

        request = _request({"X-User-Id": "  user-9 ", "X-API-Key": "key-1"})

        assert resolve_authenticated_subject(request) == "user-9"

    @patch("app.core.auth.settings")
    @pytest.mark.parametrize("headers", [{"X-User-Id": "user-9"}, {"X-User-Id": "user-9", "X-API-Key": "nope"}])
    def test_untrusted_subject_degrades_to_anonymous(self, mock_settings, headers: dict[str, str]) -> None:
        _configure(mock_settings)

        assert resolve_authenticated_subject(_request(headers)) is None

    @patch("app.core.auth.settings")
    def test_subject_trusted_when_auth_disabled(self, mock_settings) -> None:
        _configure(mock_settings, required=False)

        assert resolve_authenticated_subject(_request({"X-User-Id": "user-9"})) == "user-9"

    @patch("app.core.auth.settings")
    @pytest.mark.parametrize("subject", ["   ", "x" * 256])
    def test_malformed_subject_is_ignored(self, mock_settings, subject: str) -> None:
        _configure(mock_settings, required=False)

        assert resolve_authenticated_subject(_request({"X-User-Id": subject})) is None
