"""Fluent builder of QueryConfiguration."""

import hashlib
from collections.abc import Sequence

import structlog
from pydantic import ValidationError

from httpengine.constants import (
    OAUTH_GRANT_TYPE_CLIENT_CREDENTIALS,
    OAUTH_KEY_CLIENT_ID,
    OAUTH_KEY_CLIENT_SECRET,
    OAUTH_KEY_GRANT_TYPE,
    OAUTH_KEY_SCOPE,
)
from httpengine.errors import ConfigurationError
from httpengine.pagination.strategy import get_pagination_strategy
from httpengine.query.models import (
    APIKey,
    APIKeyDestination,
    Attachment,
    AuthenticationType,
    BodyFormat,
    KeyValuePair,
    LoginPassword,
    OAuth20AuthentMode,
    OffsetLimitPagination,
    PaginationParametersLocation,
    ProxyConfiguration,
    ProxyType,
    QueryConfiguration,
    ResponseFormat,
)
from httpengine.settings import EngineSettings
from httpengine.substitutor.substitutor import Substitutor


logger = structlog.get_logger()


def _not_none(prop: str, value: object) -> None:
    if value is None:
        msg = f"The property {prop} can't receive None as value."
        raise ConfigurationError(msg)


def _not_blank(prop: str, value: str | None, trim: bool = True) -> str:
    if value is None:
        msg = f"The property {prop} can't receive None as value."
        raise ConfigurationError(msg)
    checked = value.strip() if trim else value
    if not checked.strip():
        msg = f"The property {prop} can't receive empty value."
        raise ConfigurationError(msg)
    return checked


def _not_negative(prop: str, value: int) -> None:
    if value < 0:
        msg = f"{prop} value must be a positive value: {value}"
        raise ConfigurationError(msg)


class QueryConfigurationBuilder:
    """Builds a QueryConfiguration while enforcing its invariants.

    - The body format can be chosen only once.
    - Only one authentication can be configured; call
      set_no_authentication() before switching to another one.
    - URL, method, parameter names and proxy host can't be blank.

    Example:
        config = (
            QueryConfigurationBuilder.create("https://api.example.com/{version}/users")
            .set_method("GET")
            .add_path_param("version", "v1")
            .set_authorization_token("abc", prefix="Bearer")
            .build()
        )
    """

    def __init__(self, config: QueryConfiguration, settings: EngineSettings) -> None:
        self._config = config
        self._settings = settings
        self._oauth_builder: QueryConfigurationBuilder | None = None
        self._oauth_key_parts: tuple[str, ...] = ()

    @classmethod
    def create(
        cls, url: str, settings: EngineSettings | None = None
    ) -> "QueryConfigurationBuilder":
        """Start a descriptor for the given URL.

        Args:
            url: Target URL, may contain path parameters and placeholders.
            settings: Defaults for timeouts and redirections.

        Raises:
            ConfigurationError: If the URL is blank.
        """
        url = _not_blank("url", url)
        settings = settings or EngineSettings()
        config = QueryConfiguration(
            url=url,
            connection_timeout=settings.connect_timeout_ms,
            receive_timeout=settings.receive_timeout_ms,
            accept_redirections=settings.accept_redirections,
            max_number_of_accepted_redirections_on_same_uri=settings.max_redirections_on_same_uri,
            accept_only_same_host_redirection=settings.accept_only_same_host_redirections,
            accept_relative_url_redirection=settings.accept_relative_redirections,
        )
        return cls(config, settings)

    # Connection

    def set_method(self, method: str) -> "QueryConfigurationBuilder":
        self._config.method = _not_blank("method", method)
        return self

    def set_connection_timeout(self, timeout_ms: int) -> "QueryConfigurationBuilder":
        _not_negative("connection_timeout", timeout_ms)
        self._config.connection_timeout = timeout_ms
        return self

    def set_receive_timeout(self, timeout_ms: int) -> "QueryConfigurationBuilder":
        _not_negative("receive_timeout", timeout_ms)
        self._config.receive_timeout = timeout_ms
        return self

    def bypass_certificate_validation(self, bypass: bool) -> "QueryConfigurationBuilder":
        self._config.bypass_certificate_validation = bypass
        return self

    # Authentication

    def set_no_authentication(self) -> "QueryConfigurationBuilder":
        self._config.authentication_type = AuthenticationType.NONE
        self._config.login_password = None
        self._config.authorization_token = None
        self._config.api_key = None
        self._config.oauth_call = None
        self._config.oauth_token_cache_key = None
        self._oauth_builder = None
        self._oauth_key_parts = ()
        return self

    def set_basic_authentication(
        self, login: str, password: str
    ) -> "QueryConfigurationBuilder":
        return self._set_login_password(AuthenticationType.BASIC, login, password)

    def set_digest_authentication(
        self, login: str, password: str
    ) -> "QueryConfigurationBuilder":
        return self._set_login_password(AuthenticationType.DIGEST, login, password)

    def set_ntlm_authentication(
        self, login: str, password: str
    ) -> "QueryConfigurationBuilder":
        return self._set_login_password(AuthenticationType.NTLM, login, password)

    def set_authorization_token(
        self, token: str, prefix: str | None = None
    ) -> "QueryConfigurationBuilder":
        """Send a static Authorization header.

        Args:
            token: Token value.
            prefix: Optional scheme prepended with a space, e.g. ``Bearer``.
        """
        token = _not_blank("authorization_token", token, trim=False)
        self._switch_authentication(AuthenticationType.AUTHORIZATION_TOKEN)
        if prefix is not None and prefix.strip():
            token = f"{prefix.strip()} {token}"
        self._config.authorization_token = token
        return self

    def set_api_key(
        self,
        destination: APIKeyDestination,
        name: str,
        prefix: str | None,
        token: str | None,
    ) -> "QueryConfigurationBuilder":
        """Send an API key as a header or a query parameter.

        The value is ``"<prefix> <token>"``, or the token alone without prefix.
        """
        _not_none("api_key.destination", destination)
        name = _not_blank("api_key.name", name)
        self._switch_authentication(AuthenticationType.API_KEY)
        self._config.api_key = APIKey(
            destination=destination,
            name=name,
            prefix=(prefix or "").strip(),
            token=(token or "").strip(),
        )
        return self

    def set_oauth20_client_credential(
        self,
        mode: OAuth20AuthentMode,
        token_endpoint: str,
        client_id: str,
        client_secret: str,
        scopes: Sequence[str] = (),
    ) -> "QueryConfigurationBuilder":
        """Retrieve a token with the client-credentials grant before the call.

        Args:
            mode: How client credentials are sent to the token endpoint.
            token_endpoint: Token endpoint URL.
            client_id: Client identifier.
            client_secret: Client secret.
            scopes: Requested scopes, sent space separated.
        """
        _not_none("oauth.mode", mode)
        token_endpoint = _not_blank("oauth.token_endpoint", token_endpoint)
        client_id = _not_blank("oauth.client_id", client_id)
        _not_none("oauth.client_secret", client_secret)
        self._switch_authentication(AuthenticationType.OAUTH20_CLIENT_CREDENTIAL)

        scopes_str = " ".join(scopes).strip()
        oauth_builder = QueryConfigurationBuilder.create(token_endpoint, self._settings)
        oauth_builder.add_x_www_form_urlencoded_body_param(
            OAUTH_KEY_GRANT_TYPE, OAUTH_GRANT_TYPE_CLIENT_CREDENTIALS
        )
        if scopes_str:
            oauth_builder.add_x_www_form_urlencoded_body_param(OAUTH_KEY_SCOPE, scopes_str)

        if mode == OAuth20AuthentMode.FORM:
            oauth_builder.add_x_www_form_urlencoded_body_param(OAUTH_KEY_CLIENT_ID, client_id)
            oauth_builder.add_x_www_form_urlencoded_body_param(
                OAUTH_KEY_CLIENT_SECRET, client_secret
            )
        elif mode == OAuth20AuthentMode.BASIC:
            oauth_builder.set_basic_authentication(client_id, client_secret)
        else:
            oauth_builder.set_digest_authentication(client_id, client_secret)
        oauth_builder.set_method("POST")

        self._oauth_builder = oauth_builder
        self._oauth_key_parts = (
            token_endpoint,
            OAUTH_GRANT_TYPE_CLIENT_CREDENTIALS,
            scopes_str,
            client_id,
            client_secret,
        )
        return self

    # Parameters

    def add_path_param(self, key: str, value: str | None) -> "QueryConfigurationBuilder":
        key = _not_blank("path_parameter", key)
        self._config.url_path_params[key] = value or ""
        return self

    def add_header(self, key: str, value: str | None) -> "QueryConfigurationBuilder":
        key = _not_blank("header", key)
        self._config.headers.append(KeyValuePair(key=key, value=value))
        return self

    def add_query_param(self, key: str, value: str | None) -> "QueryConfigurationBuilder":
        key = _not_blank("query_parameter", key)
        self._config.query_params.append(KeyValuePair(key=key, value=value))
        return self

    # Body

    def set_raw_text_body(self, content: str | None) -> "QueryConfigurationBuilder":
        return self._set_text_body(content, BodyFormat.TEXT)

    def set_json_body(self, content: str | None) -> "QueryConfigurationBuilder":
        return self._set_text_body(content, BodyFormat.JSON)

    def set_xml_body(self, content: str | None) -> "QueryConfigurationBuilder":
        return self._set_text_body(content, BodyFormat.XML)

    def add_multipart_form_data_body_param(
        self, key: str, value: str | None
    ) -> "QueryConfigurationBuilder":
        return self._add_body_param(key, value, BodyFormat.FORM_DATA)

    def add_x_www_form_urlencoded_body_param(
        self, key: str, value: str | None
    ) -> "QueryConfigurationBuilder":
        return self._add_body_param(key, value, BodyFormat.X_WWW_FORM_URLENCODED)

    def add_attachment(self, attachment: Attachment) -> "QueryConfigurationBuilder":
        """Add a file part to a multipart/form-data body."""
        _not_none("attachment", attachment)
        self._check_body_format(BodyFormat.FORM_DATA)
        self._config.body_type = BodyFormat.FORM_DATA
        self._config.attachments.append(attachment)
        return self

    # Response

    def decompress_response_payload(self, decompress: bool) -> "QueryConfigurationBuilder":
        self._config.decompress_response_payload = decompress
        return self

    def set_response_format(
        self, response_format: ResponseFormat
    ) -> "QueryConfigurationBuilder":
        _not_none("response_format", response_format)
        self._config.response_format = response_format
        return self

    # Redirections

    def accept_redirection(self, accept: bool) -> "QueryConfigurationBuilder":
        self._config.accept_redirections = accept
        return self

    def accept_only_same_host_redirection(
        self, only_same_host: bool
    ) -> "QueryConfigurationBuilder":
        self._config.accept_only_same_host_redirection = only_same_host
        return self

    def accept_relative_url_redirection(self, accept: bool) -> "QueryConfigurationBuilder":
        self._config.accept_relative_url_redirection = accept
        return self

    def set_max_number_of_accepted_redirections_on_same_uri(
        self, count: int
    ) -> "QueryConfigurationBuilder":
        _not_negative("max_number_of_accepted_redirections_on_same_uri", count)
        self._config.max_number_of_accepted_redirections_on_same_uri = count
        return self

    def set_allowed_uri_redirection(self, allowed: str) -> "QueryConfigurationBuilder":
        """Restrict redirections to URIs starting with one of the given prefixes.

        Args:
            allowed: Comma separated URI prefixes.
        """
        self._config.allowed_uri_redirection = _not_blank("allowed_uri_redirection", allowed)
        return self

    # Proxy

    def set_http_proxy(
        self,
        host: str,
        port: int,
        login: str | None = None,
        password: str | None = None,
    ) -> "QueryConfigurationBuilder":
        return self._set_proxy(ProxyType.HTTP, host, port, login, password)

    def set_socks_proxy(self, host: str, port: int) -> "QueryConfigurationBuilder":
        return self._set_proxy(ProxyType.SOCKS, host, port, None, None)

    # Pagination

    def set_offset_limit_pagination(
        self,
        location: PaginationParametersLocation,
        offset_param_name: str,
        offset_value: str,
        limit_param_name: str,
        limit_value: str,
        elements_path: str = "",
    ) -> "QueryConfigurationBuilder":
        """Page through results by advancing an offset parameter.

        Args:
            location: Whether parameters are sent as headers or query parameters.
            offset_param_name: Name of the offset parameter.
            offset_value: First offset.
            limit_param_name: Name of the limit parameter.
            limit_value: Page size.
            elements_path: Dot path to the JSON array counted in each page.
        """
        try:
            self._config.offset_limit_pagination = OffsetLimitPagination(
                location=location,
                offset_param_name=offset_param_name,
                offset_value=offset_value,
                limit_param_name=limit_param_name,
                limit_value=limit_value,
                elements_path=elements_path or "",
            )
        except ValidationError as e:
            msg = f"Invalid offset/limit pagination: {e}"
            raise ConfigurationError(msg) from e
        return self

    # Build

    def build(self, substitutor: Substitutor | None = None) -> QueryConfiguration:
        """Finalize the descriptor.

        Path parameters are injected in the URL first, then, when a
        substitutor is given, placeholders are replaced in the URL, method,
        credentials, parameters, headers and body.

        Args:
            substitutor: Replaces placeholders with upstream values.

        Returns:
            The descriptor, with pagination initiated.
        """
        self._initiate_pagination()
        self._substitute_path_params()
        if substitutor is not None:
            self._substitute(substitutor)
        self._finalize_oauth_configuration()
        return self._config

    def _initiate_pagination(self) -> None:
        if self._config.init_pagination_done:
            return
        get_pagination_strategy(self._config).initiate_pagination(self._config)

    def _substitute_path_params(self) -> None:
        begin = self._settings.url_placeholder_begin
        end = self._settings.url_placeholder_end
        url = self._config.url
        for name, value in self._config.url_path_params.items():
            url = url.replace(f"{begin}{name}{end}", value or "")
        self._config.url = url

    def _substitute(self, substitutor: Substitutor) -> None:
        config = self._config
        replace = substitutor.replace

        config.url = replace(config.url) or ""
        config.method = replace(config.method)

        if config.login_password is not None:
            config.login_password.login = replace(config.login_password.login)
            config.login_password.password = replace(config.login_password.password)

        config.authorization_token = replace(config.authorization_token)
        config.allowed_uri_redirection = replace(config.allowed_uri_redirection)

        if config.api_key is not None:
            config.api_key.token = replace(config.api_key.token) or ""

        if config.proxy is not None:
            config.proxy.host = replace(config.proxy.host) or ""
            credentials = config.proxy.credentials
            credentials.login = replace(credentials.login)
            credentials.password = replace(credentials.password)

        config.url_path_params = {
            name: replace(value) or "" for name, value in config.url_path_params.items()
        }
        config.plain_text_body = replace(config.plain_text_body)

        for pair in (*config.body_query_params, *config.headers, *config.query_params):
            pair.value = replace(pair.value)

        if self._oauth_builder is not None:
            self._oauth_builder._substitute(substitutor)
            self._oauth_key_parts = tuple(
                replace(part) or "" for part in self._oauth_key_parts
            )

    def _finalize_oauth_configuration(self) -> None:
        config = self._config
        if (
            config.authentication_type != AuthenticationType.OAUTH20_CLIENT_CREDENTIAL
            or self._oauth_builder is None
        ):
            return

        # Token endpoint follows the certificate and redirection settings of the call
        oauth_call = self._oauth_builder.build()
        oauth_call.bypass_certificate_validation = config.bypass_certificate_validation
        oauth_call.accept_redirections = config.accept_redirections
        oauth_call.max_number_of_accepted_redirections_on_same_uri = (
            config.max_number_of_accepted_redirections_on_same_uri
        )
        oauth_call.allowed_uri_redirection = config.allowed_uri_redirection
        oauth_call.accept_relative_url_redirection = config.accept_relative_url_redirection
        oauth_call.accept_only_same_host_redirection = (
            config.accept_only_same_host_redirection
        )
        config.oauth_call = oauth_call

        # Hashed from the substituted endpoint, scopes and credentials
        digest = hashlib.md5(usedforsecurity=False)
        for part in self._oauth_key_parts:
            digest.update(part.encode("utf-8"))
        config.oauth_token_cache_key = digest.hexdigest()

    def _switch_authentication(self, authentication_type: AuthenticationType) -> None:
        current = self._config.authentication_type
        if current not in (AuthenticationType.NONE, authentication_type):
            msg = (
                f"Authentication has already been set to {current.value}, "
                f"call set_no_authentication() before switching to "
                f"{authentication_type.value}."
            )
            raise ConfigurationError(msg)
        self._config.authentication_type = authentication_type

    def _set_login_password(
        self, authentication_type: AuthenticationType, login: str, password: str
    ) -> "QueryConfigurationBuilder":
        prop = authentication_type.value.lower()
        login = _not_blank(f"authentication.{prop}.login", login, trim=False)
        password = _not_blank(f"authentication.{prop}.password", password, trim=False)
        self._switch_authentication(authentication_type)
        self._config.login_password = LoginPassword(login=login, password=password)
        return self

    def _check_body_format(self, body_format: BodyFormat) -> None:
        current = self._config.body_type
        if current is not None and current != body_format:
            msg = "Body has already been set, you can't change its type."
            raise ConfigurationError(msg)

    def _set_text_body(
        self, content: str | None, body_format: BodyFormat
    ) -> "QueryConfigurationBuilder":
        self._check_body_format(body_format)
        self._config.body_type = body_format
        self._config.plain_text_body = content or ""
        return self

    def _add_body_param(
        self, key: str, value: str | None, body_format: BodyFormat
    ) -> "QueryConfigurationBuilder":
        self._check_body_format(body_format)
        key = _not_blank("body.parameter.name", key)
        self._config.body_type = body_format
        self._config.body_query_params.append(KeyValuePair(key=key, value=value or ""))
        return self

    def _set_proxy(
        self,
        proxy_type: ProxyType,
        host: str,
        port: int,
        login: str | None,
        password: str | None,
    ) -> "QueryConfigurationBuilder":
        host = _not_blank("proxy.host", host)
        _not_negative("proxy.port", port)
        try:
            proxy = ProxyConfiguration(
                type=proxy_type,
                host=host,
                port=port,
                credentials=LoginPassword(
                    login=login.strip() if login is not None else None,
                    password=password,
                ),
            )
        except ValidationError as e:
            msg = f"Invalid proxy configuration: {e}"
            raise ConfigurationError(msg) from e
        self._config.proxy = proxy
        return self
