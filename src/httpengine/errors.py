"""Error types for the HTTP request engine."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from httpengine.engine.response import HttpResponse


class EngineErrorClass(str, Enum):
    """Classification of engine errors.

    - CONFIGURATION: Invalid or conflicting request descriptor
    - TRANSPORT: Network, timeout or redirect failure during a call
    - AUTHENTICATION: Authentication challenge could not be answered
    - PAYLOAD: Response body could not be read or decoded
    - HTTP_STATUS: Non-2xx status promoted to an error
    """

    CONFIGURATION = "CONFIGURATION"
    TRANSPORT = "TRANSPORT"
    AUTHENTICATION = "AUTHENTICATION"
    PAYLOAD = "PAYLOAD"
    HTTP_STATUS = "HTTP_STATUS"


class TransportErrorClass(str, Enum):
    """Classification of transport failures, used to pick the error message."""

    REDIRECT_LOOP = "REDIRECT_LOOP"
    CROSS_HOST_REDIRECT = "CROSS_HOST_REDIRECT"
    RELATIVE_REDIRECT = "RELATIVE_REDIRECT"
    FORBIDDEN_REDIRECT = "FORBIDDEN_REDIRECT"
    TIMEOUT = "TIMEOUT"
    CONNECTION = "CONNECTION"
    SSL = "SSL"
    UNKNOWN = "UNKNOWN"


class HttpEngineError(Exception):
    """Base exception for engine errors.

    Provides structured error information for logging and status reporting.
    """

    error_class: EngineErrorClass = EngineErrorClass.TRANSPORT

    def __init__(
        self,
        message: str,
        details: dict[str, str | int | bool | None] | None = None,
    ) -> None:
        """Initialize the engine error.

        Args:
            message: Human-readable error message.
            details: Additional structured error details.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(
        self,
    ) -> dict[str, str | int | bool | None | dict[str, str | int | bool | None]]:
        """Convert error to dictionary for logging/serialization.

        Returns:
            Dictionary representation of the error.
        """
        return {
            "error_class": self.error_class.value,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(HttpEngineError, ValueError):
    """Invalid request descriptor, raised at build time."""

    error_class = EngineErrorClass.CONFIGURATION


class HttpClientError(HttpEngineError):
    """A call through the transport failed.

    Attributes:
        transport_error_class: What kind of transport failure occurred.
    """

    error_class = EngineErrorClass.TRANSPORT

    def __init__(
        self,
        message: str,
        transport_error_class: TransportErrorClass = TransportErrorClass.UNKNOWN,
        details: dict[str, str | int | bool | None] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.transport_error_class = transport_error_class
        self.details.setdefault("transport_error_class", transport_error_class.value)


class AuthenticationError(HttpEngineError):
    """Authentication challenge can't be answered. Aborts the call."""

    error_class = EngineErrorClass.AUTHENTICATION


class PayloadError(HttpEngineError):
    """Response payload can't be read or decoded.

    Attributes:
        payload: Raw bytes read before the failure, if any.
    """

    error_class = EngineErrorClass.PAYLOAD

    def __init__(
        self,
        message: str,
        payload: bytes | None = None,
        details: dict[str, str | int | bool | None] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.payload = payload


class PaginationError(PayloadError):
    """The pagination element path can't be resolved in the response."""

    def __init__(
        self,
        message: str,
        elements_path: str | None = None,
        segment: str | None = None,
    ) -> None:
        """Initialize the pagination error.

        Args:
            message: Human-readable error message.
            elements_path: Configured dot-separated element path.
            segment: Segment where resolution failed.
        """
        details: dict[str, str | int | bool | None] = {}
        if elements_path is not None:
            details["elements_path"] = elements_path
        if segment is not None:
            details["segment"] = segment
        super().__init__(message, details=details)
        self.elements_path = elements_path
        self.segment = segment


class HttpComponentError(HttpEngineError):
    """Non-2xx response promoted to an error by the die-on-error policy."""

    error_class = EngineErrorClass.HTTP_STATUS

    def __init__(self, message: str, response: HttpResponse | None = None) -> None:
        super().__init__(message)
        self.response = response


# Transport-level causes. Raised by transports, classified by the engine.


class RedirectError(Exception):
    """Base class for redirect policy violations detected by a transport."""

    def __init__(self, message: str, location: str | None = None) -> None:
        super().__init__(message)
        self.location = location


class RedirectLoopError(RedirectError):
    """The same URI has been redirected to too many times."""


class CrossHostRedirectError(RedirectError):
    """Redirect to a different scheme or host while same-host-only is set."""


class RelativeRedirectError(RedirectError):
    """Redirect to a relative URI while relative redirects are refused."""


class ForbiddenRedirectError(RedirectError):
    """Redirect target is not in the allowed URI list."""
