"""Execution of one HTTP call described by a QueryConfiguration."""

import re
import ssl
import time
from collections.abc import Callable
from urllib.parse import urlencode, urlsplit

import httpx
import structlog

from httpengine.auth.dispatch import apply_authentication
from httpengine.auth.token import Token
from httpengine.constants import DEFAULT_BODY_ENCODING, DEFAULT_METHOD
from httpengine.engine.response import HttpResponse
from httpengine.engine.transport import (
    EncodedBody,
    HttpTransport,
    HttpxTransport,
    TrustPolicy,
)
from httpengine.errors import (
    ConfigurationError,
    CrossHostRedirectError,
    ForbiddenRedirectError,
    HttpClientError,
    HttpEngineError,
    RedirectLoopError,
    RelativeRedirectError,
    TransportErrorClass,
)
from httpengine.metrics import EngineMetrics
from httpengine.observability.redact import redact_headers, redact_url_credentials
from httpengine.query.models import BodyFormat, QueryConfiguration
from httpengine.settings import EngineSettings


logger = structlog.get_logger()

UrlValidator = Callable[[str], bool]
TransportFactory = Callable[[], HttpTransport]

REDIRECT_LOOP_MESSAGE = "There has been too many HTTP redirection to the same query."
CROSS_HOST_REDIRECT_MESSAGE = "HTTP redirection to another host is forbidden."


def pattern_url_validator(patterns: list[str]) -> UrlValidator:
    """Build a validator accepting URLs matching one of the regex patterns.

    Args:
        patterns: Regex patterns. An empty list accepts every URL.

    Returns:
        URL validator.
    """
    compiled = [re.compile(pattern) for pattern in patterns]

    def validate(url: str) -> bool:
        return not compiled or any(pattern.match(url) for pattern in compiled)

    return validate


def encode_body(config: QueryConfiguration) -> EncodedBody | None:
    """Encode the descriptor's body for the transport.

    Args:
        config: Request descriptor.

    Returns:
        Multipart fields and attachments for FORM_DATA, url-encoded content
        for X_WWW_FORM_URLENCODED, UTF-8 text otherwise. None without body.
    """
    if config.body_type is None:
        return None

    pairs = [(pair.key, pair.value or "") for pair in config.body_query_params]
    if config.body_type == BodyFormat.FORM_DATA:
        return EncodedBody(fields=pairs, attachments=list(config.attachments))
    if config.body_type == BodyFormat.X_WWW_FORM_URLENCODED:
        return EncodedBody(content=urlencode(pairs).encode("ascii"))
    return EncodedBody(content=(config.plain_text_body or "").encode(DEFAULT_BODY_ENCODING))


def _caused_by(error: BaseException, error_type: type[BaseException]) -> bool:
    current: BaseException | None = error
    while current is not None:
        if isinstance(current, error_type):
            return True
        current = current.__cause__ or current.__context__
    return False


def classify_transport_error(error: Exception) -> HttpClientError:
    """Wrap a transport failure into an HttpClientError.

    Args:
        error: Exception raised while calling the transport.

    Returns:
        The client error, with its message chosen from the cause.
    """
    if isinstance(error, RedirectLoopError):
        return HttpClientError(REDIRECT_LOOP_MESSAGE, TransportErrorClass.REDIRECT_LOOP)
    if isinstance(error, CrossHostRedirectError):
        return HttpClientError(
            CROSS_HOST_REDIRECT_MESSAGE, TransportErrorClass.CROSS_HOST_REDIRECT
        )

    message = f"The HTTPClient call was failing '{error}'"
    if isinstance(error, RelativeRedirectError):
        return HttpClientError(message, TransportErrorClass.RELATIVE_REDIRECT)
    if isinstance(error, ForbiddenRedirectError):
        return HttpClientError(message, TransportErrorClass.FORBIDDEN_REDIRECT)
    if isinstance(error, httpx.TimeoutException):
        return HttpClientError(f"HTTP timeout: {error}", TransportErrorClass.TIMEOUT)
    if _caused_by(error, ssl.SSLError):
        return HttpClientError(message, TransportErrorClass.SSL)
    if isinstance(error, httpx.ConnectError):
        return HttpClientError(message, TransportErrorClass.CONNECTION)
    return HttpClientError(message, TransportErrorClass.UNKNOWN)


class HttpExecutionEngine:
    """Runs HTTP calls described by QueryConfiguration instances.

    Each call gets its own transport, released once the response payload
    is read or when the call fails.
    """

    def __init__(
        self,
        settings: EngineSettings | None = None,
        transport_factory: TransportFactory | None = None,
        url_validator: UrlValidator | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            settings: Engine settings.
            transport_factory: Creates the transport of each call.
            url_validator: Accepts or rejects target URLs. Defaults to the
                settings' allowed URL patterns.
        """
        self._settings = settings or EngineSettings()
        self._transport_factory = transport_factory or HttpxTransport
        self._url_validator = url_validator or pattern_url_validator(
            self._settings.allowed_url_patterns
        )
        self._metrics = EngineMetrics.get_instance()
        self._log = logger.bind(component="engine")

    @property
    def settings(self) -> EngineSettings:
        """Get the engine settings."""
        return self._settings

    def invoke(
        self, config: QueryConfiguration, token: Token | None = None
    ) -> HttpResponse:
        """Execute the call.

        Args:
            config: Request descriptor.
            token: OAuth 2.0 token reused when not expired.

        Returns:
            The response. Non-2xx statuses are not errors.

        Raises:
            ConfigurationError: If the URL is not allowed.
            AuthenticationError: If a Digest challenge can't be answered.
            HttpClientError: If the call fails.
        """
        start_time_ns = time.perf_counter_ns()
        method = config.method or DEFAULT_METHOD
        log = self._log.bind(method=method, url=redact_url_credentials(config.url))

        self._validate_url(config.url)

        transport = self._transport_factory()
        try:
            oauth20_token = apply_authentication(
                config, transport, self.invoke, token, self._settings
            )

            transport.set_trust_policy(
                TrustPolicy.TRUST_ALL
                if config.bypass_certificate_validation
                else TrustPolicy.DEFAULT
            )
            self._set_format_headers(config, transport)
            transport.set_timeouts(config.connection_timeout, config.receive_timeout)

            for header in config.headers:
                transport.add_header(header.key, header.value or "")
            if config.get_header("User-Agent") is None:
                transport.add_header("User-Agent", self._settings.user_agent)
            for param in config.query_params:
                transport.add_query_param(param.key, param.value or "")

            if config.proxy is not None:
                transport.set_proxy(config.proxy)
            transport.set_redirect_policy(config.redirect_policy)
            transport.set_decompress(config.decompress_response_payload)

            log.debug(
                "http_query_start",
                headers=redact_headers(
                    [(h.key, h.value or "") for h in config.headers],
                    extra_sensitive=[config.api_key.name] if config.api_key else (),
                ),
            )
            raw = transport.invoke(method, config.url, encode_body(config))
        except HttpEngineError:
            transport.close()
            raise
        except Exception as e:  # noqa: BLE001
            transport.close()
            error = classify_transport_error(e)
            self._metrics.record_failure(error.transport_error_class.value)
            log.warning(
                "http_query_failed",
                error_class=error.transport_error_class.value,
                error=str(e),
            )
            raise error from e

        response = HttpResponse(raw, config, oauth20_token)

        duration_ms = (time.perf_counter_ns() - start_time_ns) / 1_000_000
        self._metrics.record_request(response.status.code, duration_ms)
        log.info(
            "http_query_complete",
            status_code=response.status.code,
            duration_ms=round(duration_ms, 2),
        )
        return response

    def _validate_url(self, url: str) -> None:
        if self._url_validator(url):
            return
        parts = urlsplit(url)
        msg = f"Target URL is not allowed: {parts.scheme}://{parts.hostname}"
        raise ConfigurationError(msg, details={"url": redact_url_credentials(url)})

    @staticmethod
    def _set_format_headers(config: QueryConfiguration, transport: HttpTransport) -> None:
        body_type = config.body_type
        # multipart Content-Type carries a boundary set by the transport
        if (
            body_type is not None
            and body_type != BodyFormat.FORM_DATA
            and config.get_header("Content-Type") is None
        ):
            transport.add_header("Content-Type", body_type.content_type)

        if config.response_format is not None and config.get_header("Accept") is None:
            transport.add_header("Accept", config.response_format.accepted_type)
