"""Data models describing one HTTP call."""

from enum import Enum
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field

from httpengine.constants import (
    DEFAULT_ACCEPT_ONLY_SAME_HOST_REDIRECTIONS,
    DEFAULT_ACCEPT_REDIRECTIONS,
    DEFAULT_ACCEPT_RELATIVE_REDIRECTIONS,
    DEFAULT_CONNECT_TIMEOUT_MS,
    DEFAULT_MAX_REDIRECTIONS_ON_SAME_URI,
    DEFAULT_RECEIVE_TIMEOUT_MS,
)


class BodyFormat(str, Enum):
    """Format of the request body."""

    TEXT = "TEXT"
    JSON = "JSON"
    XML = "XML"
    FORM_DATA = "FORM_DATA"
    X_WWW_FORM_URLENCODED = "X_WWW_FORM_URLENCODED"

    @property
    def content_type(self) -> str:
        """Media type sent in the Content-Type header."""
        return _BODY_CONTENT_TYPES[self]


_BODY_CONTENT_TYPES = {
    BodyFormat.TEXT: "text/plain",
    BodyFormat.JSON: "application/json",
    BodyFormat.XML: "text/xml",
    BodyFormat.FORM_DATA: "multipart/form-data",
    BodyFormat.X_WWW_FORM_URLENCODED: "application/x-www-form-urlencoded",
}


class ResponseFormat(str, Enum):
    """Expected format of the response, sent in the Accept header."""

    JSON = "JSON"
    XML = "XML"
    TEXT = "TEXT"
    ANY = "ANY"

    @property
    def accepted_type(self) -> str:
        """Media type(s) sent in the Accept header."""
        return _RESPONSE_ACCEPTED_TYPES[self]


_RESPONSE_ACCEPTED_TYPES = {
    ResponseFormat.JSON: "application/json",
    ResponseFormat.XML: "application/xml, text/xml",
    ResponseFormat.TEXT: "text/plain",
    ResponseFormat.ANY: "*/*",
}


class AuthenticationType(str, Enum):
    """Authentication scheme applied to the outgoing call."""

    NONE = "NONE"
    BASIC = "BASIC"
    DIGEST = "DIGEST"
    NTLM = "NTLM"
    AUTHORIZATION_TOKEN = "AUTHORIZATION_TOKEN"
    API_KEY = "API_KEY"
    OAUTH20_CLIENT_CREDENTIAL = "OAUTH20_CLIENT_CREDENTIAL"


class APIKeyDestination(str, Enum):
    """Where an API key is sent."""

    HEADERS = "HEADERS"
    QUERY_PARAMETERS = "QUERY_PARAMETERS"


class PaginationParametersLocation(str, Enum):
    """Where offset/limit pagination parameters are sent."""

    HEADERS = "HEADERS"
    QUERY_PARAMETERS = "QUERY_PARAMETERS"


class PaginationState(str, Enum):
    """Pagination progress of a request descriptor.

    State transitions:
        NOT_INITIATED -> INITIATED: Pagination parameters injected
        INITIATED -> HAS_NEXT_PAGE: A page was received, the next one is prepared
        INITIATED -> EXHAUSTED: The last response held no element
        HAS_NEXT_PAGE -> HAS_NEXT_PAGE | EXHAUSTED: Same, for following pages
    """

    NOT_INITIATED = "NOT_INITIATED"
    INITIATED = "INITIATED"
    HAS_NEXT_PAGE = "HAS_NEXT_PAGE"
    EXHAUSTED = "EXHAUSTED"


class OAuth20AuthentMode(str, Enum):
    """How client credentials are presented to the OAuth 2.0 token endpoint."""

    FORM = "FORM"
    BASIC = "BASIC"
    DIGEST = "DIGEST"


class ProxyType(str, Enum):
    """Kind of proxy server."""

    HTTP = "HTTP"
    SOCKS = "SOCKS"


class KeyValuePair(BaseModel):
    """Mutable key/value pair used for headers and parameters.

    Pagination rewrites values in place between pages.
    """

    model_config = ConfigDict(extra="forbid")

    key: str
    value: str | None = None


class LoginPassword(BaseModel):
    """Credentials for Basic, Digest, NTLM and proxy authentication."""

    model_config = ConfigDict(extra="forbid")

    login: str | None = None
    password: str | None = None


class APIKey(BaseModel):
    """API key sent as a named header or query parameter."""

    model_config = ConfigDict(extra="forbid")

    destination: APIKeyDestination
    name: Annotated[str, Field(min_length=1)]
    prefix: str = ""
    token: str = ""

    @property
    def value(self) -> str:
        """Token with its prefix, e.g. ``"Key abc"``."""
        return f"{self.prefix.strip()} {self.token.strip()}".strip()


class ProxyConfiguration(BaseModel):
    """Proxy used to reach the target server."""

    model_config = ConfigDict(extra="forbid")

    type: ProxyType = ProxyType.HTTP
    host: Annotated[str, Field(min_length=1)]
    port: Annotated[int, Field(ge=0, le=65535)]
    credentials: LoginPassword = Field(default_factory=LoginPassword)


class Attachment(BaseModel):
    """One part of a multipart/form-data body."""

    model_config = ConfigDict(extra="forbid")

    name: Annotated[str, Field(min_length=1)]
    content: bytes
    filename: str | None = None
    content_type: str = "application/octet-stream"


class OffsetLimitPagination(BaseModel):
    """Offset/limit pagination parameters."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    location: PaginationParametersLocation = PaginationParametersLocation.QUERY_PARAMETERS
    offset_param_name: Annotated[str, Field(min_length=1)]
    offset_value: str = "0"
    limit_param_name: Annotated[str, Field(min_length=1)]
    limit_value: str
    elements_path: str = ""


class RedirectPolicy(BaseModel):
    """How a transport follows redirections."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    accept_redirections: bool = DEFAULT_ACCEPT_REDIRECTIONS
    only_same_host: bool = DEFAULT_ACCEPT_ONLY_SAME_HOST_REDIRECTIONS
    allow_relative: bool = DEFAULT_ACCEPT_RELATIVE_REDIRECTIONS
    max_redirections_on_same_uri: int = DEFAULT_MAX_REDIRECTIONS_ON_SAME_URI
    allowed_uris: tuple[str, ...] = ()


class QueryConfiguration(BaseModel):
    """The configuration of one HTTP call.

    Built by QueryConfigurationBuilder, mutated in place by pagination
    strategies between pages, consumed by HttpExecutionEngine.
    """

    model_config = ConfigDict(extra="forbid")

    url: Annotated[str, Field(min_length=1)]
    method: str | None = None

    # Milliseconds
    connection_timeout: Annotated[int, Field(ge=0)] = DEFAULT_CONNECT_TIMEOUT_MS
    receive_timeout: Annotated[int, Field(ge=0)] = DEFAULT_RECEIVE_TIMEOUT_MS

    bypass_certificate_validation: bool = False

    authentication_type: AuthenticationType = AuthenticationType.NONE
    login_password: LoginPassword | None = None
    authorization_token: str | None = None
    api_key: APIKey | None = None
    oauth_call: "QueryConfiguration | None" = None
    oauth_token_cache_key: str | None = None

    url_path_params: dict[str, str] = Field(default_factory=dict)
    query_params: list[KeyValuePair] = Field(default_factory=list)
    headers: list[KeyValuePair] = Field(default_factory=list)

    body_type: BodyFormat | None = None
    body_query_params: list[KeyValuePair] = Field(default_factory=list)
    plain_text_body: str | None = None
    attachments: list[Attachment] = Field(default_factory=list)

    response_format: ResponseFormat | None = None
    decompress_response_payload: bool = False

    accept_redirections: bool = DEFAULT_ACCEPT_REDIRECTIONS
    max_number_of_accepted_redirections_on_same_uri: int = (
        DEFAULT_MAX_REDIRECTIONS_ON_SAME_URI
    )
    accept_only_same_host_redirection: bool = DEFAULT_ACCEPT_ONLY_SAME_HOST_REDIRECTIONS
    accept_relative_url_redirection: bool = DEFAULT_ACCEPT_RELATIVE_REDIRECTIONS
    allowed_uri_redirection: str | None = Field(
        default=None, description="Comma separated URI prefixes a redirect may target"
    )

    proxy: ProxyConfiguration | None = None

    offset_limit_pagination: OffsetLimitPagination | None = None
    pagination_state: PaginationState = PaginationState.NOT_INITIATED

    @property
    def init_pagination_done(self) -> bool:
        """True once a pagination strategy has prepared the first page."""
        return self.pagination_state != PaginationState.NOT_INITIATED

    @property
    def redirect_policy(self) -> RedirectPolicy:
        """Redirect settings gathered for the transport."""
        allowed: tuple[str, ...] = ()
        if self.allowed_uri_redirection:
            allowed = tuple(
                uri.strip()
                for uri in self.allowed_uri_redirection.split(",")
                if uri.strip()
            )
        return RedirectPolicy(
            accept_redirections=self.accept_redirections,
            only_same_host=self.accept_only_same_host_redirection,
            allow_relative=self.accept_relative_url_redirection,
            max_redirections_on_same_uri=self.max_number_of_accepted_redirections_on_same_uri,
            allowed_uris=allowed,
        )

    def get_header(self, name: str) -> str | None:
        """Get the first header value with that name, case-insensitively.

        Args:
            name: Header name.

        Returns:
            Header value, or None if absent.
        """
        for header in self.headers:
            if header.key.lower() == name.lower():
                return header.value
        return None

    def get_query_param(self, name: str) -> str | None:
        """Get the first query parameter value with that name.

        Args:
            name: Parameter name.

        Returns:
            Parameter value, or None if absent.
        """
        for param in self.query_params:
            if param.key == name:
                return param.value
        return None


QueryConfiguration.model_rebuild()
