"""Request configuration contract filled by connector configuration layers.

HttpClientService.convert_configuration turns a RequestConfig into a
QueryConfiguration.
"""

from enum import Enum
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field

from httpengine.constants import (
    DEFAULT_ACCEPT_ONLY_SAME_HOST_REDIRECTIONS,
    DEFAULT_ACCEPT_REDIRECTIONS,
    DEFAULT_CONNECT_TIMEOUT_MS,
    DEFAULT_MAX_REDIRECTIONS_ON_SAME_URI,
    DEFAULT_METHOD,
    DEFAULT_RECEIVE_TIMEOUT_MS,
)
from httpengine.query.models import (
    APIKeyDestination,
    BodyFormat,
    OAuth20AuthentMode,
    PaginationParametersLocation,
    ProxyType,
)


class Param(BaseModel):
    """Named parameter: path parameter, query parameter, header or form field."""

    model_config = ConfigDict(extra="forbid")

    key: Annotated[str, Field(min_length=1)]
    value: str | None = None


class AuthenticationMethod(str, Enum):
    """Authentication offered to connector users."""

    NO_AUTH = "NO_AUTH"
    BASIC = "BASIC"
    DIGEST = "DIGEST"
    NTLM = "NTLM"
    BEARER = "BEARER"
    API_KEY = "API_KEY"
    OAUTH20 = "OAUTH20"


class UserPassword(BaseModel):
    model_config = ConfigDict(extra="forbid")

    username: str = ""
    password: str = ""


class APIKeyConfig(BaseModel):
    """API key settings. The prefix only applies to the header destination."""

    model_config = ConfigDict(extra="forbid")

    destination: APIKeyDestination = APIKeyDestination.HEADERS
    header_name: str = "Authorization"
    query_name: str = "api_key"
    prefix: str = ""
    token: str = ""


class OAuth20Flow(str, Enum):
    CLIENT_CREDENTIAL = "CLIENT_CREDENTIAL"


class OAuth20Config(BaseModel):
    model_config = ConfigDict(extra="forbid")

    flow: OAuth20Flow = OAuth20Flow.CLIENT_CREDENTIAL
    authentication_type: OAuth20AuthentMode = OAuth20AuthentMode.FORM
    token_endpoint: str = ""
    client_id: str = ""
    client_secret: str = ""
    scopes: list[str] = Field(default_factory=list)


class Authentication(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: AuthenticationMethod = AuthenticationMethod.NO_AUTH
    basic: UserPassword = Field(default_factory=UserPassword)
    ntlm: UserPassword = Field(default_factory=UserPassword)
    bearer_token: str = ""
    api_key: APIKeyConfig = Field(default_factory=APIKeyConfig)
    oauth20: OAuth20Config = Field(default_factory=OAuth20Config)


class ProxyConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    proxy_type: ProxyType = ProxyType.HTTP
    proxy_host: str = ""
    proxy_port: int = 0
    proxy_login: str | None = None
    proxy_password: str | None = None


class Datastore(BaseModel):
    """Connection to a server: base URL, timeouts, authentication, proxy."""

    model_config = ConfigDict(extra="forbid")

    base: Annotated[str, Field(min_length=1)]
    connection_timeout: Annotated[int, Field(ge=0)] = DEFAULT_CONNECT_TIMEOUT_MS
    receive_timeout: Annotated[int, Field(ge=0)] = DEFAULT_RECEIVE_TIMEOUT_MS
    authentication: Authentication = Field(default_factory=Authentication)
    bypass_certificate_validation: bool = False
    use_proxy: bool = False
    proxy_configuration: ProxyConfig = Field(default_factory=ProxyConfig)


class RequestBody(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: BodyFormat = BodyFormat.TEXT
    text_content: str | None = None
    params: list[Param] = Field(default_factory=list)


class PaginationStrategyType(str, Enum):
    OFFSET_LIMIT = "OFFSET_LIMIT"


class OffsetLimitStrategyConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    location: PaginationParametersLocation = PaginationParametersLocation.QUERY_PARAMETERS
    offset_param_name: str = "offset"
    offset_value: str = "0"
    limit_param_name: str = "limit"
    limit_value: str = "100"
    elements_path: str = ""


class Pagination(BaseModel):
    model_config = ConfigDict(extra="forbid")

    strategy: PaginationStrategyType = PaginationStrategyType.OFFSET_LIMIT
    offset_limit_strategy_config: OffsetLimitStrategyConfig = Field(
        default_factory=OffsetLimitStrategyConfig
    )


class Dataset(BaseModel):
    """Resource queried on a datastore and how to query it."""

    model_config = ConfigDict(extra="forbid")

    datastore: Datastore
    resource: str = ""
    method_type: Annotated[str, Field(min_length=1)] = DEFAULT_METHOD

    accept_redirections: bool = DEFAULT_ACCEPT_REDIRECTIONS
    max_redirect_on_same_url: Annotated[int, Field(ge=0)] = (
        DEFAULT_MAX_REDIRECTIONS_ON_SAME_URI
    )
    only_same_host: bool = DEFAULT_ACCEPT_ONLY_SAME_HOST_REDIRECTIONS

    has_path_params: bool = False
    path_params: list[Param] = Field(default_factory=list)
    has_query_params: bool = False
    query_params: list[Param] = Field(default_factory=list)
    has_headers: bool = False
    headers: list[Param] = Field(default_factory=list)
    has_body: bool = False
    body: RequestBody = Field(default_factory=RequestBody)
    has_pagination: bool = False
    pagination: Pagination = Field(default_factory=Pagination)


class UploadFile(BaseModel):
    """Local file sent as a multipart attachment."""

    model_config = ConfigDict(extra="forbid")

    name: Annotated[str, Field(min_length=1)]
    file_path: Annotated[str, Field(min_length=1)]
    content_type: str = "application/octet-stream"
    encoding: str = "UTF-8"


class RequestConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    dataset: Dataset
    upload_files: bool = False
    upload_file_table: list[UploadFile] = Field(default_factory=list)
