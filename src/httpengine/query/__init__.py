"""Request descriptor and its builder."""

from httpengine.query.models import (
    APIKey,
    APIKeyDestination,
    Attachment,
    AuthenticationType,
    BodyFormat,
    KeyValuePair,
    LoginPassword,
    OAuth20AuthentMode,
    OffsetLimitPagination,
    PaginationParametersLocation,
    PaginationState,
    ProxyConfiguration,
    ProxyType,
    QueryConfiguration,
    RedirectPolicy,
    ResponseFormat,
)
from httpengine.query.builder import QueryConfigurationBuilder


__all__ = [
    "APIKey",
    "APIKeyDestination",
    "Attachment",
    "AuthenticationType",
    "BodyFormat",
    "KeyValuePair",
    "LoginPassword",
    "OAuth20AuthentMode",
    "OffsetLimitPagination",
    "PaginationParametersLocation",
    "PaginationState",
    "ProxyConfiguration",
    "ProxyType",
    "QueryConfiguration",
    "QueryConfigurationBuilder",
    "RedirectPolicy",
    "ResponseFormat",
]
