"""Unit tests for the error taxonomy."""

from httpengine.errors import (
    ConfigurationError,
    EngineErrorClass,
    HttpClientError,
    HttpComponentError,
    PaginationError,
    PayloadError,
    TransportErrorClass,
)
from tests.helpers.http import make_response


class TestErrors:
    """Tests for structured error information."""

    def test_configuration_error_is_value_error(self) -> None:
        """Test that build-time errors are also ValueErrors."""
        error = ConfigurationError("bad")

        assert isinstance(error, ValueError)
        assert error.error_class == EngineErrorClass.CONFIGURATION

    def test_client_error_to_dict(self) -> None:
        """Test that the transport error class is part of the details."""
        error = HttpClientError("HTTP timeout: read", TransportErrorClass.TIMEOUT)

        assert error.to_dict() == {
            "error_class": "TRANSPORT",
            "message": "HTTP timeout: read",
            "details": {"transport_error_class": "TIMEOUT"},
        }

    def test_pagination_error_details(self) -> None:
        """Test that pagination errors are payload errors with path details."""
        error = PaginationError("missing", elements_path=".a.b", segment="b")

        assert isinstance(error, PayloadError)
        assert error.details == {"elements_path": ".a.b", "segment": "b"}
        assert error.payload is None

    def test_component_error_keeps_response(self) -> None:
        """Test that the promoted response is attached."""
        response = make_response(500)

        error = HttpComponentError("Response status is not OK: 500", response=response)

        assert error.response is response
        assert error.error_class == EngineErrorClass.HTTP_STATUS
