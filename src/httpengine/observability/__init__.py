"""Observability module for logging and header redaction."""

from httpengine.observability.logging import configure_logging
from httpengine.observability.redact import (
    REDACTED_VALUE,
    redact_headers,
    redact_url_credentials,
)


__all__ = [
    "REDACTED_VALUE",
    "configure_logging",
    "redact_headers",
    "redact_url_credentials",
]
