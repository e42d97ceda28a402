"""HTTP client service and the request configuration it converts."""

from httpengine.service.client_service import HttpClientService, build_url
from httpengine.service.request_config import (
    APIKeyConfig,
    Authentication,
    AuthenticationMethod,
    Dataset,
    Datastore,
    OAuth20Config,
    OAuth20Flow,
    OffsetLimitStrategyConfig,
    Pagination,
    PaginationStrategyType,
    Param,
    ProxyConfig,
    RequestBody,
    RequestConfig,
    UploadFile,
    UserPassword,
)


__all__ = [
    "APIKeyConfig",
    "Authentication",
    "AuthenticationMethod",
    "Dataset",
    "Datastore",
    "HttpClientService",
    "OAuth20Config",
    "OAuth20Flow",
    "OffsetLimitStrategyConfig",
    "Pagination",
    "PaginationStrategyType",
    "Param",
    "ProxyConfig",
    "RequestBody",
    "RequestConfig",
    "UploadFile",
    "UserPassword",
    "build_url",
]
