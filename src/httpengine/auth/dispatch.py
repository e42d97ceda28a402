"""Applies the descriptor's authentication to the outgoing call."""

from collections.abc import Callable
from typing import TYPE_CHECKING

import structlog

from httpengine.auth.oauth import Executor, OAuth20FlowExecution
from httpengine.auth.token import Token
from httpengine.errors import ConfigurationError
from httpengine.query.models import (
    APIKeyDestination,
    AuthenticationType,
    QueryConfiguration,
)
from httpengine.settings import EngineSettings


if TYPE_CHECKING:
    from httpengine.engine.transport import HttpTransport


logger = structlog.get_logger()

Handler = Callable[
    [QueryConfiguration, "HttpTransport", Token | None, Executor, EngineSettings],
    Token | None,
]


def _no_authentication(
    config: QueryConfiguration,
    transport: "HttpTransport",
    token: Token | None,
    executor: Executor,
    settings: EngineSettings,
) -> Token | None:
    return None


def _credentials(
    config: QueryConfiguration,
    transport: "HttpTransport",
    token: Token | None,
    executor: Executor,
    settings: EngineSettings,
) -> Token | None:
    credentials = config.login_password
    if credentials is None:
        msg = f"{config.authentication_type.value} authentication needs a login and a password."
        raise ConfigurationError(msg)
    transport.set_credentials(
        config.authentication_type, credentials.login, credentials.password
    )
    return None


def _authorization_token(
    config: QueryConfiguration,
    transport: "HttpTransport",
    token: Token | None,
    executor: Executor,
    settings: EngineSettings,
) -> Token | None:
    if not config.authorization_token:
        msg = "Authorization token authentication needs a token."
        raise ConfigurationError(msg)
    transport.set_authorization_header(config.authorization_token)
    return None


def _api_key(
    config: QueryConfiguration,
    transport: "HttpTransport",
    token: Token | None,
    executor: Executor,
    settings: EngineSettings,
) -> Token | None:
    api_key = config.api_key
    if api_key is None:
        msg = "API key authentication needs an API key."
        raise ConfigurationError(msg)
    if api_key.destination == APIKeyDestination.QUERY_PARAMETERS:
        transport.add_query_param(api_key.name, api_key.value)
    else:
        transport.add_header(api_key.name, api_key.value)
    return None


def _oauth20_client_credential(
    config: QueryConfiguration,
    transport: "HttpTransport",
    token: Token | None,
    executor: Executor,
    settings: EngineSettings,
) -> Token | None:
    if token is None or token.is_expired():
        if config.oauth_call is None:
            msg = "OAuth 2.0 authentication needs a token endpoint call."
            raise ConfigurationError(msg)
        token = OAuth20FlowExecution(config.oauth_call, executor, settings).execute_flow()
    else:
        logger.debug("oauth_token_reused", component="auth", token_type=token.token_type)

    transport.set_authorization_header(token.authorization_header)
    return token


AUTHENTICATION_HANDLERS: dict[AuthenticationType, Handler] = {
    AuthenticationType.NONE: _no_authentication,
    AuthenticationType.BASIC: _credentials,
    AuthenticationType.DIGEST: _credentials,
    AuthenticationType.NTLM: _credentials,
    AuthenticationType.AUTHORIZATION_TOKEN: _authorization_token,
    AuthenticationType.API_KEY: _api_key,
    AuthenticationType.OAUTH20_CLIENT_CREDENTIAL: _oauth20_client_credential,
}


def apply_authentication(
    config: QueryConfiguration,
    transport: "HttpTransport",
    executor: Executor,
    token: Token | None = None,
    settings: EngineSettings | None = None,
) -> Token | None:
    """Configure the transport for the descriptor's authentication type.

    Args:
        config: Request descriptor.
        transport: Transport of the call.
        executor: Runs nested calls such as the OAuth 2.0 token request.
        token: Previously obtained OAuth 2.0 token, reused if not expired.
        settings: Engine settings.

    Returns:
        The OAuth 2.0 token used for the call, None for other types.
    """
    handler = AUTHENTICATION_HANDLERS[config.authentication_type]
    return handler(config, transport, token, executor, settings or EngineSettings())
