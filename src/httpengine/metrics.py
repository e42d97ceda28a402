"""Metrics collection for the HTTP request engine."""

from dataclasses import dataclass, field
from typing import ClassVar


@dataclass
class EngineMetrics:
    """Metrics for engine calls.

    Singleton class that tracks request counts per status, failures per
    error class, redirects, OAuth token fetches, and bytes read.
    """

    http_requests_total: dict[int, int] = field(default_factory=dict)
    http_failures_total: dict[str, int] = field(default_factory=dict)
    http_redirects_total: int = 0
    http_bytes_total: int = 0
    http_duration_ms_total: float = 0.0
    http_request_count: int = 0
    oauth_token_fetch_total: int = 0

    _instance: ClassVar["EngineMetrics | None"] = None

    @classmethod
    def get_instance(cls) -> "EngineMetrics":
        """Get singleton metrics instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset metrics (primarily for testing)."""
        cls._instance = None

    def record_request(self, status_code: int, duration_ms: float) -> None:
        """Record a completed HTTP request.

        Args:
            status_code: HTTP status code.
            duration_ms: Duration in milliseconds.
        """
        self.http_requests_total[status_code] = (
            self.http_requests_total.get(status_code, 0) + 1
        )
        self.http_duration_ms_total += duration_ms
        self.http_request_count += 1

    def record_failure(self, error_class: str) -> None:
        """Record a failed call.

        Args:
            error_class: Classification of the failure.
        """
        self.http_failures_total[error_class] = (
            self.http_failures_total.get(error_class, 0) + 1
        )

    def record_redirect(self) -> None:
        """Record a followed redirection."""
        self.http_redirects_total += 1

    def record_bytes(self, bytes_received: int) -> None:
        """Record bytes of a loaded payload."""
        self.http_bytes_total += bytes_received

    def record_token_fetch(self) -> None:
        """Record an OAuth 2.0 token retrieval."""
        self.oauth_token_fetch_total += 1

    def to_dict(self) -> dict[str, int | float | dict[str, int] | dict[int, int]]:
        """Convert metrics to dictionary.

        Returns:
            Dictionary of metric name to value.
        """
        return {
            "http_requests_total": dict(self.http_requests_total),
            "http_failures_total": dict(self.http_failures_total),
            "http_redirects_total": self.http_redirects_total,
            "http_bytes_total": self.http_bytes_total,
            "http_duration_ms_total": self.http_duration_ms_total,
            "http_request_count": self.http_request_count,
            "oauth_token_fetch_total": self.oauth_token_fetch_total,
        }

    @property
    def avg_duration_ms(self) -> float:
        """Calculate average request duration.

        Returns:
            Average duration in milliseconds.
        """
        if self.http_request_count == 0:
            return 0.0
        return self.http_duration_ms_total / self.http_request_count
