"""Unit tests for HttpExecutionEngine against httpx.MockTransport."""

import json

import httpx
import pytest

from httpengine.engine import HttpExecutionEngine
from httpengine.errors import ConfigurationError, HttpClientError, TransportErrorClass
from httpengine.metrics import EngineMetrics
from httpengine.query import QueryConfigurationBuilder
from httpengine.query.models import (
    APIKeyDestination,
    Attachment,
    OAuth20AuthentMode,
    PaginationParametersLocation,
    QueryConfiguration,
    ResponseFormat,
)
from httpengine.settings import EngineSettings
from tests.helpers.http import mock_engine


@pytest.fixture(autouse=True)
def reset_metrics() -> None:
    EngineMetrics.reset()


class Recorder:
    """Handler recording requests and answering with a fixed response."""

    def __init__(self, response: httpx.Response | None = None) -> None:
        self.requests: list[httpx.Request] = []
        self.response = response or httpx.Response(200, json={"ok": True})

    def __call__(self, request: httpx.Request) -> httpx.Response:
        request.read()
        self.requests.append(request)
        return self.response


class TestRequest:
    """Tests for the request sent by the engine."""

    def test_default_method_and_headers(self) -> None:
        """Test that GET and the default User-Agent are sent."""
        recorder = Recorder()
        engine = mock_engine(recorder, EngineSettings(user_agent="tester/1.0"))

        response = engine.invoke(QueryConfiguration(url="http://test/things"))

        request = recorder.requests[0]
        assert request.method == "GET"
        assert request.headers["User-Agent"] == "tester/1.0"
        assert request.headers["Accept-Encoding"] == "identity"
        assert response.status.code == 200
        assert json.loads(response.get_body_as_string()) == {"ok": True}

    def test_user_agent_not_overridden(self) -> None:
        """Test that a configured User-Agent is kept."""
        recorder = Recorder()
        config = QueryConfigurationBuilder.create("http://test/").add_header(
            "User-Agent", "custom"
        ).build()

        mock_engine(recorder).invoke(config)

        assert recorder.requests[0].headers.get_list("User-Agent") == ["custom"]

    def test_query_params_and_repeated_headers(self) -> None:
        """Test that repeated names are all sent."""
        recorder = Recorder()
        config = (
            QueryConfigurationBuilder.create("http://test/search?x=0")
            .add_query_param("q", "a b")
            .add_query_param("q", "c")
            .add_header("X-Tag", "1")
            .add_header("X-Tag", "2")
            .build()
        )

        mock_engine(recorder).invoke(config)

        request = recorder.requests[0]
        assert request.url.params.get_list("q") == ["a b", "c"]
        assert request.url.params["x"] == "0"
        assert request.headers.get_list("X-Tag") == ["1", "2"]

    def test_pagination_keeps_url_query(self) -> None:
        """Test that pagination parameters are added to the URL's own query."""
        recorder = Recorder()
        config = (
            QueryConfigurationBuilder.create("https://api.example.com/things?apiVersion=2")
            .set_offset_limit_pagination(
                PaginationParametersLocation.QUERY_PARAMETERS, "offset", "0", "limit", "10"
            )
            .build()
        )

        mock_engine(recorder).invoke(config)

        params = recorder.requests[0].url.params
        assert params["apiVersion"] == "2"
        assert params["offset"] == "0"
        assert params["limit"] == "10"

    def test_json_body(self) -> None:
        """Test that a JSON body is sent as UTF-8 with its content type."""
        recorder = Recorder()
        config = (
            QueryConfigurationBuilder.create("http://test/")
            .set_method("POST")
            .set_json_body('{"name": "é"}')
            .set_response_format(ResponseFormat.JSON)
            .build()
        )

        mock_engine(recorder).invoke(config)

        request = recorder.requests[0]
        assert request.method == "POST"
        assert request.headers["Content-Type"] == "application/json"
        assert request.headers["Accept"] == "application/json"
        assert request.content == '{"name": "é"}'.encode()

    def test_content_type_not_overridden(self) -> None:
        """Test that an explicit Content-Type is kept."""
        recorder = Recorder()
        config = (
            QueryConfigurationBuilder.create("http://test/")
            .set_method("POST")
            .add_header("Content-Type", "application/vnd.api+json")
            .set_json_body("{}")
            .build()
        )

        mock_engine(recorder).invoke(config)

        assert recorder.requests[0].headers.get_list("Content-Type") == [
            "application/vnd.api+json"
        ]

    def test_urlencoded_body(self) -> None:
        """Test that form parameters are url-encoded."""
        recorder = Recorder()
        config = (
            QueryConfigurationBuilder.create("http://test/")
            .set_method("POST")
            .add_x_www_form_urlencoded_body_param("a", "1")
            .add_x_www_form_urlencoded_body_param("b", "x y")
            .build()
        )

        mock_engine(recorder).invoke(config)

        request = recorder.requests[0]
        assert request.headers["Content-Type"] == "application/x-www-form-urlencoded"
        assert request.content == b"a=1&b=x+y"

    def test_multipart_body(self) -> None:
        """Test that fields and attachments are sent as multipart/form-data."""
        recorder = Recorder()
        config = (
            QueryConfigurationBuilder.create("http://test/upload")
            .set_method("POST")
            .add_multipart_form_data_body_param("field", "value")
            .add_attachment(
                Attachment(
                    name="file",
                    content=b"file content",
                    filename="a.txt",
                    content_type="text/plain",
                )
            )
            .build()
        )

        mock_engine(recorder).invoke(config)

        request = recorder.requests[0]
        assert request.headers["Content-Type"].startswith("multipart/form-data; boundary=")
        assert b'name="field"' in request.content
        assert b'filename="a.txt"' in request.content
        assert b"file content" in request.content

    def test_multipart_fields_only(self) -> None:
        """Test that a field-only FORM_DATA body stays multipart."""
        recorder = Recorder()
        config = (
            QueryConfigurationBuilder.create("http://test/upload")
            .set_method("POST")
            .add_multipart_form_data_body_param("field", "value")
            .build()
        )

        mock_engine(recorder).invoke(config)

        request = recorder.requests[0]
        assert request.headers["Content-Type"].startswith("multipart/form-data")
        assert b'name="field"' in request.content

    def test_decompress_asks_for_compression(self) -> None:
        """Test that decompression advertises gzip and deflate."""
        recorder = Recorder()
        config = (
            QueryConfigurationBuilder.create("http://test/")
            .decompress_response_payload(True)
            .build()
        )

        mock_engine(recorder).invoke(config)

        assert recorder.requests[0].headers["Accept-Encoding"] == "gzip, deflate"


class TestAuthentication:
    """Tests for authentication through the engine."""

    def test_basic(self) -> None:
        """Test that Basic credentials are sent."""
        recorder = Recorder()
        config = (
            QueryConfigurationBuilder.create("http://test/")
            .set_basic_authentication("u", "p")
            .build()
        )

        mock_engine(recorder).invoke(config)

        assert recorder.requests[0].headers["Authorization"] == "Basic dTpw"

    def test_api_key_query_parameter(self) -> None:
        """Test that a query API key is added to the URL."""
        recorder = Recorder()
        config = (
            QueryConfigurationBuilder.create("http://test/")
            .set_api_key(APIKeyDestination.QUERY_PARAMETERS, "api_key", None, "secret")
            .build()
        )

        mock_engine(recorder).invoke(config)

        assert recorder.requests[0].url.params["api_key"] == "secret"

    def test_oauth_token_requested_then_used(self) -> None:
        """Test that the token call runs first and its token is sent."""
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            request.read()
            requests.append(request)
            if request.url.path == "/token":
                return httpx.Response(
                    200, json={"access_token": "abc", "expires_in": 3600}
                )
            return httpx.Response(200, json=[])

        config = (
            QueryConfigurationBuilder.create("http://test/api")
            .set_oauth20_client_credential(
                OAuth20AuthentMode.FORM, "http://test/token", "id", "secret"
            )
            .build()
        )

        response = mock_engine(handler).invoke(config)

        token_request, api_request = requests
        assert token_request.method == "POST"
        assert b"grant_type=client_credentials" in token_request.content
        assert api_request.headers["Authorization"] == "Bearer abc"
        assert response.oauth20_token is not None
        assert response.oauth20_token.access_token == "abc"

    def test_oauth_token_failure(self) -> None:
        """Test that a refused token call fails the call."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"error": "invalid_client"})

        config = (
            QueryConfigurationBuilder.create("http://test/api")
            .set_oauth20_client_credential(
                OAuth20AuthentMode.BASIC, "http://test/token", "id", "secret"
            )
            .build()
        )

        with pytest.raises(HttpClientError, match="invalid_client"):
            mock_engine(handler).invoke(config)


class TestRedirections:
    """Tests for redirect policy enforcement."""

    def redirect_to(self, location: str, final_path: str = "/final"):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == final_path:
                return httpx.Response(200, text="done")
            return httpx.Response(302, headers={"Location": location})

        return handler

    def test_followed(self) -> None:
        """Test that a redirection is followed to the final response."""
        response = mock_engine(self.redirect_to("http://test/final")).invoke(
            QueryConfiguration(url="http://test/start")
        )

        assert response.status.code == 200
        assert response.url == "http://test/final"
        assert response.get_body_as_string() == "done"
        assert EngineMetrics.get_instance().http_redirects_total == 1

    def test_not_followed_when_refused(self) -> None:
        """Test that the redirect response is returned when redirections are off."""
        config = QueryConfiguration(url="http://test/start", accept_redirections=False)

        response = mock_engine(self.redirect_to("http://test/final")).invoke(config)

        assert response.status.code == 302
        assert response.headers["location"] == "http://test/final"

    def test_loop(self) -> None:
        """Test that redirecting to the same URI too often fails."""
        engine = mock_engine(self.redirect_to("http://test/loop"))

        with pytest.raises(HttpClientError) as exc_info:
            engine.invoke(QueryConfiguration(url="http://test/loop"))

        assert exc_info.value.transport_error_class == TransportErrorClass.REDIRECT_LOOP
        assert exc_info.value.message == (
            "There has been too many HTTP redirection to the same query."
        )
        assert EngineMetrics.get_instance().http_failures_total == {"REDIRECT_LOOP": 1}

    def test_cross_host(self) -> None:
        """Test that another host is refused when same host is required."""
        config = QueryConfiguration(
            url="http://test/start", accept_only_same_host_redirection=True
        )

        with pytest.raises(HttpClientError) as exc_info:
            mock_engine(self.redirect_to("http://other/final")).invoke(config)

        assert exc_info.value.transport_error_class == TransportErrorClass.CROSS_HOST_REDIRECT
        assert exc_info.value.message == "HTTP redirection to another host is forbidden."

    def test_same_host_accepted(self) -> None:
        """Test that a same host redirection passes the same host check."""
        config = QueryConfiguration(
            url="http://test/start", accept_only_same_host_redirection=True
        )

        response = mock_engine(self.redirect_to("http://test/final")).invoke(config)

        assert response.status.code == 200

    def test_relative_followed(self) -> None:
        """Test that a relative Location is resolved against the request URL."""
        response = mock_engine(self.redirect_to("/final")).invoke(
            QueryConfiguration(url="http://test/start")
        )

        assert response.url == "http://test/final"

    def test_relative_refused(self) -> None:
        """Test that a relative Location fails when refused."""
        config = QueryConfiguration(
            url="http://test/start", accept_relative_url_redirection=False
        )

        with pytest.raises(HttpClientError) as exc_info:
            mock_engine(self.redirect_to("/final")).invoke(config)

        assert exc_info.value.transport_error_class == TransportErrorClass.RELATIVE_REDIRECT

    def test_allowed_uris(self) -> None:
        """Test that a redirection outside the allowed prefixes fails."""
        config = QueryConfiguration(
            url="http://test/start",
            allowed_uri_redirection="http://test/ok, http://test/also",
        )

        with pytest.raises(HttpClientError) as exc_info:
            mock_engine(self.redirect_to("http://test/final")).invoke(config)

        assert exc_info.value.transport_error_class == TransportErrorClass.FORBIDDEN_REDIRECT

    def test_allowed_uri_followed(self) -> None:
        """Test that a redirection matching an allowed prefix is followed."""
        config = QueryConfiguration(
            url="http://test/start", allowed_uri_redirection="http://test/fin"
        )

        response = mock_engine(self.redirect_to("http://test/final")).invoke(config)

        assert response.status.code == 200


class TestFailures:
    """Tests for URL validation and transport failure classification."""

    def test_url_not_allowed(self) -> None:
        """Test that a URL outside the allowed patterns is refused before any call."""
        recorder = Recorder()
        engine = mock_engine(
            recorder, EngineSettings(allowed_url_patterns=[r"https://api\.example\.com/"])
        )

        with pytest.raises(ConfigurationError, match="Target URL is not allowed: http://test"):
            engine.invoke(QueryConfiguration(url="http://test/x"))

        assert recorder.requests == []

    def test_custom_url_validator(self) -> None:
        """Test that a custom validator is used."""
        engine = HttpExecutionEngine(url_validator=lambda url: url.startswith("https://"))

        with pytest.raises(ConfigurationError):
            engine.invoke(QueryConfiguration(url="http://test/x"))

    def test_timeout(self) -> None:
        """Test that a timeout is reported as such."""

        def handler(request: httpx.Request) -> httpx.Response:
            msg = "read timed out"
            raise httpx.ReadTimeout(msg, request=request)

        with pytest.raises(HttpClientError) as exc_info:
            mock_engine(handler).invoke(QueryConfiguration(url="http://test/"))

        assert exc_info.value.transport_error_class == TransportErrorClass.TIMEOUT
        assert exc_info.value.message == "HTTP timeout: read timed out"
        assert isinstance(exc_info.value.__cause__, httpx.ReadTimeout)

    def test_connection_error(self) -> None:
        """Test that a connection failure keeps the cause in the message."""

        def handler(request: httpx.Request) -> httpx.Response:
            msg = "connection refused"
            raise httpx.ConnectError(msg, request=request)

        with pytest.raises(HttpClientError) as exc_info:
            mock_engine(handler).invoke(QueryConfiguration(url="http://test/"))

        assert exc_info.value.transport_error_class == TransportErrorClass.CONNECTION
        assert exc_info.value.message == (
            "The HTTPClient call was failing 'connection refused'"
        )

    def test_non_success_is_not_an_error(self) -> None:
        """Test that a 404 response is returned, not raised."""
        response = mock_engine(Recorder(httpx.Response(404, text="missing"))).invoke(
            QueryConfiguration(url="http://test/")
        )

        assert response.is_success is False
        assert response.status.code_with_reason == "404 Not Found"
        assert EngineMetrics.get_instance().http_requests_total == {404: 1}
