"""OAuth 2.0 client-credentials flow."""

import json
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import structlog

from httpengine.auth.token import Token
from httpengine.errors import HttpClientError
from httpengine.metrics import EngineMetrics
from httpengine.observability.redact import redact_url_credentials
from httpengine.query.models import QueryConfiguration
from httpengine.settings import EngineSettings


if TYPE_CHECKING:
    from httpengine.engine.response import HttpResponse


logger = structlog.get_logger()

BEARER = "Bearer"

# Fields of the token response
FIELD_ACCESS_TOKEN = "access_token"  # noqa: S105
FIELD_TOKEN_TYPE = "token_type"  # noqa: S105
FIELD_EXPIRES_IN = "expires_in"
FIELD_ERROR = "error"
FIELD_ERROR_DESCRIPTION = "error_description"
FIELD_ERROR_URI = "error_uri"


Executor = Callable[[QueryConfiguration], "HttpResponse"]


class OAuth20FlowExecution:
    """Executes the token endpoint call and builds the Token."""

    def __init__(
        self,
        config: QueryConfiguration,
        executor: Executor,
        settings: EngineSettings | None = None,
    ) -> None:
        """Initialize the flow.

        Args:
            config: Descriptor of the token endpoint call.
            executor: Runs a descriptor and returns its response.
            settings: Engine settings (token lifetime tuning).
        """
        self._config = config
        self._executor = executor
        self._settings = settings or EngineSettings()
        self._log = logger.bind(
            component="auth",
            subcomponent="oauth",
            token_endpoint=redact_url_credentials(config.url),
        )

    def execute_flow(self) -> Token:
        """Retrieve a new token.

        Returns:
            The delivered token.

        Raises:
            HttpClientError: If the endpoint fails, answers an error, or
                returns no access token.
        """
        delivered_at = datetime.now(UTC)

        response = self._executor(self._config)
        payload = self._parse(response.get_body_as_string())

        if not response.is_success:
            self._log.warning(
                "oauth_token_request_failed",
                status_code=response.status.code,
                error=payload.get(FIELD_ERROR),
            )
            msg = (
                "Failing to retrieve OAuth 2.0 token:\n"
                f"status = {response.status.code_with_reason}\n"
                f"error = {payload.get(FIELD_ERROR, '')}\n"
                f"description = {payload.get(FIELD_ERROR_DESCRIPTION, '')}\n"
                f"uri = {payload.get(FIELD_ERROR_URI, '')}"
            )
            raise HttpClientError(msg, details={"status_code": response.status.code})

        access_token = payload.get(FIELD_ACCESS_TOKEN)
        if not access_token:
            msg = (
                f"OAuth 2.0 {FIELD_ACCESS_TOKEN} response field is null. "
                "No token retrieved."
            )
            raise HttpClientError(msg)

        token_type = payload.get(FIELD_TOKEN_TYPE) or BEARER
        expires_in = self._expires_in(payload.get(FIELD_EXPIRES_IN))

        token = Token(
            access_token=str(access_token),
            token_type=str(token_type),
            delivered_at=delivered_at,
            expires_in=expires_in,
        )

        EngineMetrics.get_instance().record_token_fetch()
        self._log.info(
            "oauth_token_retrieved",
            token_type=token.token_type,
            expires_in=token.expires_in,
        )
        return token

    def _parse(self, body: str | None) -> dict[str, Any]:
        try:
            payload = json.loads(body or "")
        except json.JSONDecodeError as e:
            msg = "Can't parse OAuth2.0 token response as a json."
            raise HttpClientError(msg) from e

        if not isinstance(payload, dict):
            msg = "Can't parse OAuth2.0 token response as a json object."
            raise HttpClientError(msg)
        return payload

    def _expires_in(self, value: Any) -> int:
        try:
            expires_in = int(value) if value is not None else 0
        except (TypeError, ValueError) as e:
            msg = f"Invalid OAuth 2.0 {FIELD_EXPIRES_IN} value: {value!r}"
            raise HttpClientError(msg) from e

        forced = self._settings.oauth_token_forced_expires_in
        if forced is not None:
            # A negative value makes every token look expired
            self._log.info("oauth_expires_in_forced", expires_in=forced)
            expires_in = forced

        safety = self._settings.token_expiry_safety_seconds
        if expires_in > safety:
            expires_in -= safety

        return expires_in
