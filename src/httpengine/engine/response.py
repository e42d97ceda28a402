"""Response returned by the execution engine."""

import codecs
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from http import HTTPStatus
from io import BytesIO
from typing import BinaryIO

import structlog

from httpengine.auth.token import Token
from httpengine.constants import (
    DEFAULT_RESPONSE_ENCODING,
    HTTP_STATUS_OK_MAX,
    HTTP_STATUS_OK_MIN,
)
from httpengine.engine.transport import RawResponse
from httpengine.errors import PayloadError
from httpengine.metrics import EngineMetrics
from httpengine.pagination.strategy import get_pagination_strategy
from httpengine.query.models import QueryConfiguration


logger = structlog.get_logger()

_CONTENT_TYPE = "content-type"
_CHARSET = "charset="


class StatusFamily(str, Enum):
    """Class of an HTTP status code."""

    INFORMATIONAL = "INFORMATIONAL"
    SUCCESSFUL = "SUCCESSFUL"
    REDIRECTION = "REDIRECTION"
    CLIENT_ERROR = "CLIENT_ERROR"
    SERVER_ERROR = "SERVER_ERROR"
    OTHER = "OTHER"

    @classmethod
    def of(cls, code: int) -> "StatusFamily":
        """Get the family of a status code."""
        families = {
            1: cls.INFORMATIONAL,
            2: cls.SUCCESSFUL,
            3: cls.REDIRECTION,
            4: cls.CLIENT_ERROR,
            5: cls.SERVER_ERROR,
        }
        return families.get(code // 100, cls.OTHER)


@dataclass(frozen=True)
class HttpStatus:
    """Status line of a response."""

    code: int
    reason: str
    family: StatusFamily

    @classmethod
    def of(cls, code: int, reason: str | None = None) -> "HttpStatus":
        """Build a status, using the standard phrase when no reason is given."""
        if not reason:
            try:
                reason = HTTPStatus(code).phrase
            except ValueError:
                reason = ""
        return cls(code=code, reason=reason, family=StatusFamily.of(code))

    @property
    def code_with_reason(self) -> str:
        """E.g. ``"404 Not Found"``."""
        return f"{self.code} {self.reason}".strip()


def get_charset_name(headers: dict[str, str]) -> str:
    """Get the payload charset from the Content-Type header.

    Args:
        headers: Response headers.

    Returns:
        The charset parameter, or ISO-8859-1 when absent or unknown.
    """
    content_type = next(
        (value for name, value in headers.items() if name.lower() == _CONTENT_TYPE),
        None,
    )
    if not content_type:
        return DEFAULT_RESPONSE_ENCODING

    for segment in content_type.split(";"):
        segment = segment.strip()
        if segment.lower().startswith(_CHARSET):
            name = segment[len(_CHARSET) :].strip().strip('"')
            try:
                codecs.lookup(name)
            except LookupError:
                return DEFAULT_RESPONSE_ENCODING
            return name

    return DEFAULT_RESPONSE_ENCODING


def flatten_headers(headers: Iterable[tuple[str, str]]) -> dict[str, str]:
    """Join the values of repeated headers with ``;``.

    The first spelling of a header name is kept.
    """
    flattened: dict[str, str] = {}
    names: dict[str, str] = {}
    for name, value in headers:
        key = names.setdefault(name.lower(), name)
        if key in flattened:
            flattened[key] = f"{flattened[key]};{value}"
        else:
            flattened[key] = value
    return flattened


class HttpResponse:
    """Status, headers and lazily loaded payload of an engine call.

    Also gives access to the next page descriptor and to the OAuth 2.0
    token obtained while authenticating the call.
    """

    def __init__(
        self,
        raw: RawResponse,
        config: QueryConfiguration,
        oauth20_token: Token | None = None,
    ) -> None:
        """Initialize the response.

        Args:
            raw: Transport response.
            config: Descriptor of the call.
            oauth20_token: Token retrieved or reused for the call.
        """
        self._raw = raw
        self._config = config
        self._oauth20_token = oauth20_token
        self._pagination_strategy = get_pagination_strategy(config)
        self.status = HttpStatus.of(raw.status_code, raw.reason)
        self.headers = flatten_headers(raw.headers)
        self.encoding = get_charset_name(self.headers)
        self._payload: bytes | None = None
        self._payload_loaded = False

    @property
    def is_success(self) -> bool:
        """True for 2xx statuses."""
        return HTTP_STATUS_OK_MIN <= self.status.code < HTTP_STATUS_OK_MAX

    @property
    def url(self) -> str:
        """Final URL, after redirections."""
        return self._raw.url

    @property
    def oauth20_token(self) -> Token | None:
        """Token used to authenticate the call, for cache write-back."""
        return self._oauth20_token

    @property
    def query_configuration(self) -> QueryConfiguration:
        """Descriptor of the call."""
        return self._config

    def get_body_as_bytes(self) -> bytes:
        """Get the payload, loading it on first access.

        Returns:
            Payload bytes, empty for a non-success response without content.

        Raises:
            PayloadError: If the payload can't be read.
        """
        if not self._payload_loaded:
            self._payload = self._load()
            self._payload_loaded = True
        return self._payload or b""

    def get_body_as_string(self) -> str:
        """Get the payload decoded with the response encoding.

        Raises:
            PayloadError: If the payload can't be read or decoded.
        """
        payload = self.get_body_as_bytes()
        try:
            return payload.decode(self.encoding)
        except UnicodeDecodeError as e:
            msg = f"Can't decode response payload as {self.encoding}: {e}"
            raise PayloadError(msg, payload=payload) from e

    def get_body_as_stream(self) -> BinaryIO:
        """Get the payload as a binary stream."""
        return BytesIO(self.get_body_as_bytes())

    def next_page_query_configuration(self) -> QueryConfiguration | None:
        """Get the descriptor of the next page.

        Returns:
            The next page descriptor, or None when pagination is over.
        """
        return self._pagination_strategy.get_next_page_configuration(self)

    def get_last_page_count(self) -> int:
        """Number of elements received in this page."""
        return self._pagination_strategy.get_last_count(self)

    def close(self) -> None:
        """Release the connection without reading the payload."""
        self._raw.close()

    def _load(self) -> bytes:
        try:
            payload = self._raw.read()
        except Exception as e:  # noqa: BLE001
            msg = f"Can't read response payload: {e}"
            raise PayloadError(msg) from e

        EngineMetrics.get_instance().record_bytes(len(payload))
        if not payload and not self.is_success:
            logger.debug(
                "empty_error_payload",
                component="engine",
                status_code=self.status.code,
            )
        return payload
