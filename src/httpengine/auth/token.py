"""OAuth 2.0 access token."""

from datetime import UTC, datetime, timedelta
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field


class Token(BaseModel):
    """Access token delivered by an OAuth 2.0 token endpoint."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    access_token: Annotated[str, Field(min_length=1)]
    token_type: Annotated[str, Field(min_length=1)] = "Bearer"
    delivered_at: datetime = Field(description="When the token was requested")
    expires_in: int = Field(description="Lifetime in seconds")

    @property
    def expires_at(self) -> datetime:
        """Instant after which the token must not be used."""
        return self.delivered_at + timedelta(seconds=self.expires_in)

    @property
    def authorization_header(self) -> str:
        """Authorization header value, e.g. ``"Bearer abc"``."""
        return f"{self.token_type} {self.access_token}"

    def is_expired(self, now: datetime | None = None) -> bool:
        """Check if the token has expired.

        Args:
            now: Reference instant (default: current UTC time).

        Returns:
            True if the expiry instant is in the past.
        """
        now = now or datetime.now(UTC)
        return self.expires_at < now
