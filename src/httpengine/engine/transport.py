"""Transport capability driven by the execution engine.

The engine configures a transport through the HttpTransport protocol and
never touches the underlying HTTP library. HttpxTransport is the default
implementation.
"""

import ssl
from collections import Counter
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

import httpx
import structlog
from httpx_ntlm import HttpNtlmAuth

from httpengine.auth.digest import DigestAuth
from httpengine.constants import DEFAULT_CHUNK_SIZE, MAX_TOTAL_REDIRECTIONS
from httpengine.errors import (
    CrossHostRedirectError,
    ForbiddenRedirectError,
    RedirectLoopError,
    RelativeRedirectError,
)
from httpengine.metrics import EngineMetrics
from httpengine.observability.redact import redact_url_credentials
from httpengine.query.models import (
    Attachment,
    AuthenticationType,
    ProxyConfiguration,
    ProxyType,
    RedirectPolicy,
)


logger = structlog.get_logger()


class TrustPolicy(str, Enum):
    """Server certificate validation policy.

    - DEFAULT: Platform trust store with hostname verification
    - TRUST_ALL: Any certificate and any hostname accepted
    """

    DEFAULT = "DEFAULT"
    TRUST_ALL = "TRUST_ALL"


@dataclass(frozen=True)
class EncodedBody:
    """Request body ready to be sent.

    Either raw ``content`` or multipart ``fields``/``attachments``.
    """

    content: bytes | None = None
    fields: list[tuple[str, str]] = field(default_factory=list)
    attachments: list[Attachment] = field(default_factory=list)

    @property
    def is_multipart(self) -> bool:
        """True if the body is sent as multipart/form-data."""
        return bool(self.fields or self.attachments)


class RawResponse:
    """Status, headers and a not yet consumed payload stream.

    The payload can be read once. Reading or closing releases the
    connection.
    """

    def __init__(
        self,
        status_code: int,
        reason: str,
        headers: list[tuple[str, str]],
        url: str,
        chunks: Iterator[bytes] | None = None,
        close: Callable[[], None] | None = None,
    ) -> None:
        self.status_code = status_code
        self.reason = reason
        self.headers = headers
        self.url = url
        self._chunks = chunks
        self._close = close
        self._closed = False

    def read(self) -> bytes:
        """Read the whole payload.

        Returns:
            Payload bytes, empty if there is none.
        """
        try:
            if self._chunks is None:
                return b""
            return b"".join(self._chunks)
        finally:
            self.close()

    def close(self) -> None:
        """Release the underlying connection."""
        if self._closed:
            return
        self._closed = True
        if self._close is not None:
            self._close()


class HttpTransport(Protocol):
    """Capabilities an HTTP library must expose to the engine."""

    def set_timeouts(self, connect_timeout_ms: int, receive_timeout_ms: int) -> None:
        """Set timeouts in milliseconds, 0 meaning no timeout."""
        ...

    def set_trust_policy(self, policy: TrustPolicy) -> None:
        """Set the certificate validation policy."""
        ...

    def set_proxy(self, proxy: ProxyConfiguration) -> None:
        """Route the call through a proxy."""
        ...

    def set_authorization_header(self, value: str) -> None:
        """Set the Authorization header."""
        ...

    def set_credentials(
        self,
        authentication_type: AuthenticationType,
        login: str | None,
        password: str | None,
    ) -> None:
        """Configure transport-level Basic, Digest or NTLM authentication."""
        ...

    def set_redirect_policy(self, policy: RedirectPolicy) -> None:
        """Set how redirections are followed."""
        ...

    def set_decompress(self, decompress: bool) -> None:
        """Ask for and decode compressed payloads."""
        ...

    def add_header(self, name: str, value: str) -> None:
        """Add a request header. Several values may share one name."""
        ...

    def add_query_param(self, name: str, value: str) -> None:
        """Add a query parameter. Several values may share one name."""
        ...

    def invoke(self, method: str, url: str, body: EncodedBody | None) -> RawResponse:
        """Send the request and follow redirections."""
        ...

    def close(self) -> None:
        """Release resources."""
        ...


class HttpxTransport:
    """HttpTransport backed by httpx.

    Redirections are followed manually so the redirect policy can be
    enforced on every hop.
    """

    def __init__(self, transport: httpx.BaseTransport | None = None) -> None:
        """Initialize the transport.

        Args:
            transport: Optional httpx transport, e.g. httpx.MockTransport in tests.
        """
        self._transport = transport
        self._timeout = httpx.Timeout(None)
        self._verify: ssl.SSLContext | bool = True
        self._proxy: httpx.Proxy | None = None
        self._auth: httpx.Auth | None = None
        self._redirect_policy = RedirectPolicy()
        self._decompress = False
        self._headers: list[tuple[str, str]] = []
        self._params: list[tuple[str, str]] = []
        self._client: httpx.Client | None = None
        self._metrics = EngineMetrics.get_instance()
        self._log = logger.bind(component="engine", subcomponent="transport")

    def set_timeouts(self, connect_timeout_ms: int, receive_timeout_ms: int) -> None:
        self._timeout = httpx.Timeout(
            _seconds(receive_timeout_ms),
            connect=_seconds(connect_timeout_ms),
        )

    def set_trust_policy(self, policy: TrustPolicy) -> None:
        if policy == TrustPolicy.TRUST_ALL:
            self._verify = False
        else:
            self._verify = ssl.create_default_context()

    def set_proxy(self, proxy: ProxyConfiguration) -> None:
        scheme = "socks5" if proxy.type == ProxyType.SOCKS else "http"
        auth = None
        if proxy.credentials.login:
            auth = (proxy.credentials.login, proxy.credentials.password or "")
        self._proxy = httpx.Proxy(f"{scheme}://{proxy.host}:{proxy.port}", auth=auth)

    def set_authorization_header(self, value: str) -> None:
        self._headers = [
            (name, val) for name, val in self._headers if name.lower() != "authorization"
        ]
        self._headers.append(("Authorization", value))

    def set_credentials(
        self,
        authentication_type: AuthenticationType,
        login: str | None,
        password: str | None,
    ) -> None:
        login = login or ""
        password = password or ""
        if authentication_type == AuthenticationType.BASIC:
            self._auth = httpx.BasicAuth(login, password)
        elif authentication_type == AuthenticationType.DIGEST:
            self._auth = DigestAuth(login, password)
        elif authentication_type == AuthenticationType.NTLM:
            self._auth = HttpNtlmAuth(login, password)
        else:
            msg = f"No transport credentials for {authentication_type.value}"
            raise ValueError(msg)

    def set_redirect_policy(self, policy: RedirectPolicy) -> None:
        self._redirect_policy = policy

    def set_decompress(self, decompress: bool) -> None:
        self._decompress = decompress

    def add_header(self, name: str, value: str) -> None:
        self._headers.append((name, value))

    def add_query_param(self, name: str, value: str) -> None:
        self._params.append((name, value))

    def client_options(self) -> dict[str, object]:
        """Options the httpx client is created with."""
        options: dict[str, object] = {
            "timeout": self._timeout,
            "verify": self._verify,
            "follow_redirects": False,
            "trust_env": False,
        }
        if self._proxy is not None:
            options["proxy"] = self._proxy
        if self._transport is not None:
            options["transport"] = self._transport
        return options

    def invoke(self, method: str, url: str, body: EncodedBody | None) -> RawResponse:
        """Send the request, following redirections per the redirect policy.

        Args:
            method: HTTP method.
            url: Target URL.
            body: Encoded body, if any.

        Returns:
            The final response with its payload not yet read.

        Raises:
            RedirectError: If a redirection violates the redirect policy.
            httpx.HTTPError: On network or protocol failure.
        """
        if self._client is None:
            self._client = httpx.Client(**self.client_options())  # type: ignore[arg-type]
        client = self._client

        headers = httpx.Headers(self._headers)
        if "accept-encoding" not in headers:
            headers["Accept-Encoding"] = "gzip, deflate" if self._decompress else "identity"

        # Merged here: build_request(params=...) replaces the URL's own query
        target = httpx.URL(url)
        if self._params:
            target = target.copy_merge_params(self._params)

        request = client.build_request(
            method,
            target,
            headers=headers,
            **self._body_arguments(body),
        )

        visits: Counter[str] = Counter()
        redirections = 0
        while True:
            response = client.send(request, auth=self._auth, stream=True)
            if not (
                self._redirect_policy.accept_redirections
                and response.has_redirect_location
                and response.next_request is not None
            ):
                break

            location = response.headers.get("location", "")
            next_request = response.next_request
            response.close()

            redirections += 1
            self._check_redirect(
                request.url, location, next_request.url, visits, redirections
            )
            self._metrics.record_redirect()
            self._log.debug(
                "redirect_followed",
                from_url=redact_url_credentials(str(request.url)),
                to_url=redact_url_credentials(str(next_request.url)),
                status_code=response.status_code,
            )
            request = next_request

        return RawResponse(
            status_code=response.status_code,
            reason=response.reason_phrase,
            headers=list(response.headers.multi_items()),
            url=str(response.url),
            chunks=response.iter_bytes(DEFAULT_CHUNK_SIZE),
            close=lambda: self._release(response),
        )

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def _release(self, response: httpx.Response) -> None:
        response.close()
        self.close()

    def _body_arguments(self, body: EncodedBody | None) -> dict[str, object]:
        if body is None:
            return {}
        if body.is_multipart:
            files = [
                (
                    attachment.name,
                    (attachment.filename, attachment.content, attachment.content_type),
                )
                for attachment in body.attachments
            ]
            data: dict[str, list[str]] = {}
            for name, value in body.fields:
                data.setdefault(name, []).append(value)
            if not files:
                # Force multipart encoding for field-only bodies
                files = [(name, (None, value.encode())) for name, value in body.fields]
                return {"files": files}
            return {"data": data, "files": files}
        return {"content": body.content}

    def _check_redirect(
        self,
        current: httpx.URL,
        location: str,
        target: httpx.URL,
        visits: Counter[str],
        redirections: int,
    ) -> None:
        policy = self._redirect_policy

        if not httpx.URL(location).is_absolute_url and not policy.allow_relative:
            msg = f"Relative redirection to '{location}' is not accepted."
            raise RelativeRedirectError(msg, location)

        if policy.only_same_host and (
            current.scheme != target.scheme
            or current.host != target.host
            or current.port != target.port
        ):
            msg = f"Redirection from {current.host} to {target.host} is forbidden."
            raise CrossHostRedirectError(msg, str(target))

        if policy.allowed_uris and not any(
            str(target).startswith(prefix) for prefix in policy.allowed_uris
        ):
            msg = f"Redirection to '{target}' is not in the allowed URI list."
            raise ForbiddenRedirectError(msg, str(target))

        key = str(target)
        visits[key] += 1
        if visits[key] > policy.max_redirections_on_same_uri:
            msg = f"Redirect loop detected on '{key}'."
            raise RedirectLoopError(msg, key)
        if redirections > MAX_TOTAL_REDIRECTIONS:
            msg = f"More than {MAX_TOTAL_REDIRECTIONS} redirections."
            raise RedirectLoopError(msg, key)


def _seconds(milliseconds: int) -> float | None:
    if milliseconds <= 0:
        return None
    return milliseconds / 1000.0
