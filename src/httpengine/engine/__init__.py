"""HTTP execution engine, transport capability and response."""

from httpengine.engine.engine import (
    HttpExecutionEngine,
    classify_transport_error,
    encode_body,
    pattern_url_validator,
)
from httpengine.engine.response import HttpResponse, HttpStatus, StatusFamily, get_charset_name
from httpengine.engine.transport import (
    EncodedBody,
    HttpTransport,
    HttpxTransport,
    RawResponse,
    TrustPolicy,
)


__all__ = [
    "EncodedBody",
    "HttpExecutionEngine",
    "HttpResponse",
    "HttpStatus",
    "HttpTransport",
    "HttpxTransport",
    "RawResponse",
    "StatusFamily",
    "TrustPolicy",
    "classify_transport_error",
    "encode_body",
    "get_charset_name",
    "pattern_url_validator",
]
