"""Transport-agnostic HTTP request engine.

Describe a call with QueryConfigurationBuilder, run it with
HttpExecutionEngine or, with OAuth 2.0 token caching and the die-on-error
policy, with HttpClientService.
"""

from httpengine.engine import HttpExecutionEngine, HttpResponse
from httpengine.errors import (
    AuthenticationError,
    ConfigurationError,
    HttpClientError,
    HttpComponentError,
    HttpEngineError,
    PaginationError,
    PayloadError,
)
from httpengine.query import QueryConfiguration, QueryConfigurationBuilder
from httpengine.service import HttpClientService
from httpengine.settings import EngineSettings, get_settings
from httpengine.substitutor import PlaceholderConfiguration, Substitutor


__all__ = [
    "AuthenticationError",
    "ConfigurationError",
    "EngineSettings",
    "HttpClientError",
    "HttpClientService",
    "HttpComponentError",
    "HttpEngineError",
    "HttpExecutionEngine",
    "HttpResponse",
    "PaginationError",
    "PayloadError",
    "PlaceholderConfiguration",
    "QueryConfiguration",
    "QueryConfigurationBuilder",
    "Substitutor",
    "get_settings",
]
