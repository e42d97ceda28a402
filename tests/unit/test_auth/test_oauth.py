"""Unit tests for the OAuth 2.0 client-credentials flow."""

import json
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import pytest

from httpengine.auth.dispatch import apply_authentication
from httpengine.auth.oauth import OAuth20FlowExecution
from httpengine.auth.token import Token
from httpengine.errors import HttpClientError
from httpengine.metrics import EngineMetrics
from httpengine.query.models import QueryConfiguration
from httpengine.settings import EngineSettings
from tests.helpers.http import make_response


TOKEN_CALL = QueryConfiguration(url="https://auth.example.com/token", method="POST")


def json_executor(status_code: int, payload: object):
    calls: list[QueryConfiguration] = []

    def executor(config: QueryConfiguration):
        calls.append(config)
        return make_response(status_code, json.dumps(payload).encode())

    executor.calls = calls  # type: ignore[attr-defined]
    return executor


@pytest.fixture(autouse=True)
def reset_metrics() -> None:
    EngineMetrics.reset()


class TestOAuth20FlowExecution:
    """Tests for token retrieval."""

    def test_token_retrieved(self) -> None:
        """Test that a successful response gives a token."""
        executor = json_executor(
            200, {"access_token": "abc", "token_type": "MAC", "expires_in": 3600}
        )

        token = OAuth20FlowExecution(TOKEN_CALL, executor).execute_flow()

        assert token.access_token == "abc"
        assert token.token_type == "MAC"
        assert token.expires_in == 3595
        assert executor.calls == [TOKEN_CALL]
        assert EngineMetrics.get_instance().oauth_token_fetch_total == 1

    def test_defaults(self) -> None:
        """Test that token type defaults to Bearer and expires_in to 0."""
        token = OAuth20FlowExecution(
            TOKEN_CALL, json_executor(200, {"access_token": "abc"})
        ).execute_flow()

        assert token.token_type == "Bearer"
        assert token.expires_in == 0

    def test_safety_margin_not_applied_to_short_lifetimes(self) -> None:
        """Test that lifetimes within the margin are kept."""
        settings = EngineSettings(token_expiry_safety_seconds=5)

        token = OAuth20FlowExecution(
            TOKEN_CALL, json_executor(200, {"access_token": "a", "expires_in": 5}), settings
        ).execute_flow()

        assert token.expires_in == 5

    def test_forced_expires_in(self) -> None:
        """Test that a configured lifetime replaces the returned one."""
        settings = EngineSettings(
            oauth_token_forced_expires_in=100, token_expiry_safety_seconds=0
        )

        token = OAuth20FlowExecution(
            TOKEN_CALL, json_executor(200, {"access_token": "a", "expires_in": 3600}), settings
        ).execute_flow()

        assert token.expires_in == 100

    def test_error_response(self) -> None:
        """Test that an error answer lists status and OAuth error fields."""
        executor = json_executor(
            401,
            {
                "error": "invalid_client",
                "error_description": "Bad secret",
                "error_uri": "https://doc",
            },
        )

        with pytest.raises(HttpClientError) as exc_info:
            OAuth20FlowExecution(TOKEN_CALL, executor).execute_flow()

        message = exc_info.value.message
        assert "401 Unauthorized" in message
        assert "invalid_client" in message
        assert "Bad secret" in message
        assert "https://doc" in message

    def test_missing_access_token(self) -> None:
        """Test that a response without access_token fails."""
        with pytest.raises(HttpClientError, match="access_token"):
            OAuth20FlowExecution(
                TOKEN_CALL, json_executor(200, {"token_type": "Bearer"})
            ).execute_flow()

    def test_invalid_json(self) -> None:
        """Test that a non JSON answer fails."""

        def executor(config: QueryConfiguration):
            return make_response(200, b"<html>")

        with pytest.raises(HttpClientError, match="json"):
            OAuth20FlowExecution(TOKEN_CALL, executor).execute_flow()


class TestOAuthDispatch:
    """Tests for OAuth 2.0 authentication applied to a call."""

    def make_config(self) -> QueryConfiguration:
        return QueryConfiguration(
            url="https://api.example.com/",
            authentication_type="OAUTH20_CLIENT_CREDENTIAL",
            oauth_call=TOKEN_CALL,
            oauth_token_cache_key="key",
        )

    def test_fetches_token_when_none(self) -> None:
        """Test that a token is fetched and set as Authorization header."""
        transport = MagicMock()
        executor = json_executor(200, {"access_token": "abc", "expires_in": 3600})

        token = apply_authentication(self.make_config(), transport, executor)

        assert token is not None
        assert token.access_token == "abc"
        transport.set_authorization_header.assert_called_once_with("Bearer abc")

    def test_reuses_valid_token(self) -> None:
        """Test that a valid token is reused without a token call."""
        transport = MagicMock()
        executor = json_executor(200, {"access_token": "new"})
        valid = Token(access_token="old", delivered_at=datetime.now(UTC), expires_in=3600)

        token = apply_authentication(self.make_config(), transport, executor, valid)

        assert token is valid
        assert executor.calls == []
        transport.set_authorization_header.assert_called_once_with("Bearer old")

    def test_replaces_expired_token(self) -> None:
        """Test that an expired token triggers a new token call."""
        transport = MagicMock()
        executor = json_executor(200, {"access_token": "new", "expires_in": 3600})
        expired = Token(
            access_token="old",
            delivered_at=datetime.now(UTC) - timedelta(hours=2),
            expires_in=60,
        )

        token = apply_authentication(self.make_config(), transport, executor, expired)

        assert token is not None
        assert token.access_token == "new"
        assert len(executor.calls) == 1
