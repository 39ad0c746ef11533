"""Metrics collection for the prerender relay."""

from dataclasses import dataclass, field
from typing import ClassVar

from prerender_relay.fetch.models import FetchErrorClass


@dataclass
class RelayMetrics:
    """Metrics for prerender relay operations.

    Singleton class that tracks interception decisions, upstream
    statuses, retries, and failures.
    """

    requests_intercepted_total: int = 0
    requests_passthrough_total: int = 0
    upstream_responses_total: dict[int, int] = field(default_factory=dict)
    retry_total: int = 0
    failures_total: dict[str, int] = field(default_factory=dict)
    streams_aborted_total: int = 0
    bytes_relayed_total: int = 0

    _instance: ClassVar["RelayMetrics | None"] = None

    @classmethod
    def get_instance(cls) -> "RelayMetrics":
        """Get singleton metrics instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset metrics (primarily for testing)."""
        cls._instance = None

    def record_intercepted(self) -> None:
        """Record a request answered by the rendering service."""
        self.requests_intercepted_total += 1

    def record_passthrough(self) -> None:
        """Record a request handed to the downstream application."""
        self.requests_passthrough_total += 1

    def record_upstream_status(self, status_code: int) -> None:
        """Record a response status from the rendering service.

        Args:
            status_code: HTTP status code.
        """
        self.upstream_responses_total[status_code] = (
            self.upstream_responses_total.get(status_code, 0) + 1
        )

    def record_retry(self) -> None:
        """Record a retry attempt."""
        self.retry_total += 1

    def record_failure(self, error_class: FetchErrorClass) -> None:
        """Record a request that ended with the fallback status.

        Args:
            error_class: Classification of the last failure.
        """
        key = error_class.value
        self.failures_total[key] = self.failures_total.get(key, 0) + 1

    def record_stream_aborted(self) -> None:
        """Record a relayed body that broke off midway."""
        self.streams_aborted_total += 1

    def record_bytes(self, count: int) -> None:
        """Record body bytes relayed to the caller.

        Args:
            count: Number of bytes.
        """
        self.bytes_relayed_total += count

    def to_dict(self) -> dict[str, int | dict[str, int] | dict[int, int]]:
        """Convert metrics to dictionary.

        Returns:
            Dictionary of metric name to value.
        """
        return {
            "requests_intercepted_total": self.requests_intercepted_total,
            "requests_passthrough_total": self.requests_passthrough_total,
            "upstream_responses_total": dict(self.upstream_responses_total),
            "retry_total": self.retry_total,
            "failures_total": dict(self.failures_total),
            "streams_aborted_total": self.streams_aborted_total,
            "bytes_relayed_total": self.bytes_relayed_total,
        }
