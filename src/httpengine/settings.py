"""Engine settings powered by Pydantic BaseSettings."""

from typing import Annotated

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from httpengine.constants import (
    DEFAULT_ACCEPT_ONLY_SAME_HOST_REDIRECTIONS,
    DEFAULT_ACCEPT_REDIRECTIONS,
    DEFAULT_ACCEPT_RELATIVE_REDIRECTIONS,
    DEFAULT_CONNECT_TIMEOUT_MS,
    DEFAULT_INPUT_PLACEHOLDER_CLOSER,
    DEFAULT_INPUT_PLACEHOLDER_OPENER,
    DEFAULT_INPUT_PLACEHOLDER_PREFIX,
    DEFAULT_MAX_REDIRECTIONS_ON_SAME_URI,
    DEFAULT_RECEIVE_TIMEOUT_MS,
    DEFAULT_TOKEN_EXPIRY_SAFETY_SECONDS,
    DEFAULT_URL_PLACEHOLDER_BEGIN,
    DEFAULT_URL_PLACEHOLDER_END,
    DEFAULT_USER_AGENT,
)


class EngineSettings(BaseSettings):
    """Default values for request descriptors and the execution engine.

    Every field can be overridden with an ``HTTP_CLIENT_``-prefixed
    environment variable, e.g. ``HTTP_CLIENT_CONNECT_TIMEOUT_MS=5000``.
    """

    model_config = SettingsConfigDict(
        env_prefix="HTTP_CLIENT_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    connect_timeout_ms: Annotated[int, Field(ge=0)] = DEFAULT_CONNECT_TIMEOUT_MS
    receive_timeout_ms: Annotated[int, Field(ge=0)] = DEFAULT_RECEIVE_TIMEOUT_MS
    token_expiry_safety_seconds: Annotated[int, Field(ge=0)] = (
        DEFAULT_TOKEN_EXPIRY_SAFETY_SECONDS
    )
    oauth_token_forced_expires_in: int | None = Field(
        default=None,
        description="If set, replaces the expires_in returned by the token endpoint",
    )

    accept_redirections: bool = DEFAULT_ACCEPT_REDIRECTIONS
    max_redirections_on_same_uri: Annotated[int, Field(ge=0)] = (
        DEFAULT_MAX_REDIRECTIONS_ON_SAME_URI
    )
    accept_only_same_host_redirections: bool = DEFAULT_ACCEPT_ONLY_SAME_HOST_REDIRECTIONS
    accept_relative_redirections: bool = DEFAULT_ACCEPT_RELATIVE_REDIRECTIONS

    url_placeholder_begin: Annotated[str, Field(min_length=1)] = (
        DEFAULT_URL_PLACEHOLDER_BEGIN
    )
    url_placeholder_end: Annotated[str, Field(min_length=1)] = DEFAULT_URL_PLACEHOLDER_END

    input_placeholder_opener: Annotated[str, Field(min_length=1)] = (
        DEFAULT_INPUT_PLACEHOLDER_OPENER
    )
    input_placeholder_closer: Annotated[str, Field(min_length=1)] = (
        DEFAULT_INPUT_PLACEHOLDER_CLOSER
    )
    input_placeholder_prefix: str = DEFAULT_INPUT_PLACEHOLDER_PREFIX

    allowed_url_patterns: list[str] = Field(
        default_factory=list,
        description="Regex patterns a target URL must match; empty allows all",
    )
    user_agent: Annotated[str, Field(min_length=1, max_length=500)] = DEFAULT_USER_AGENT

    @field_validator("allowed_url_patterns")
    @classmethod
    def validate_regex(cls, v: list[str]) -> list[str]:
        """Validate that every allowed URL pattern is a valid regex."""
        import re

        for pattern in v:
            try:
                re.compile(pattern)
            except re.error as e:
                msg = f"Invalid regex pattern '{pattern}': {e}"
                raise ValueError(msg) from e
        return v


def get_settings() -> EngineSettings:
    """Get a settings instance."""
    return EngineSettings()
