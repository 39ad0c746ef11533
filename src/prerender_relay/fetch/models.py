"""Data models for the prerender fetch layer."""

import random
from enum import Enum
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field


class FetchErrorClass(str, Enum):
    """Classification of upstream fetch errors.

    - NETWORK_TIMEOUT: Attempt exceeded the fetch timeout
    - CONNECTION_ERROR: Could not reach the rendering service
    - TRANSPORT_ERROR: Any other transport failure
    - TOKEN_REJECTED: 401/403, the API token was refused
    - NOT_FOUND: 404, the page is unknown to the rendering service
    - CACHE_MISS: 503, the page is not rendered yet
    - UNEXPECTED_STATUS: Any other upstream status
    - STREAM_ERROR: Upstream body failed after relaying started
    """

    NETWORK_TIMEOUT = "NETWORK_TIMEOUT"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    TRANSPORT_ERROR = "TRANSPORT_ERROR"
    TOKEN_REJECTED = "TOKEN_REJECTED"
    NOT_FOUND = "NOT_FOUND"
    CACHE_MISS = "CACHE_MISS"
    UNEXPECTED_STATUS = "UNEXPECTED_STATUS"
    STREAM_ERROR = "STREAM_ERROR"


class FetchError(BaseModel):
    """Typed error from a single upstream attempt."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    error_class: FetchErrorClass = Field(description="Classification of the error")
    message: Annotated[str, Field(min_length=1, description="Human-readable message")]
    status_code: int | None = Field(
        default=None, description="Upstream HTTP status code if available"
    )


class AttemptOutcome(str, Enum):
    """How a retry loop must treat the result of one attempt."""

    SUCCESS = "SUCCESS"
    TRANSIENT = "TRANSIENT"
    PERMANENT = "PERMANENT"


class AttemptResult(BaseModel):
    """Tagged result of one attempt: success, transient or permanent failure."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    outcome: AttemptOutcome
    error: FetchError | None = None

    @classmethod
    def success(cls) -> "AttemptResult":
        """Build a successful result."""
        return cls(outcome=AttemptOutcome.SUCCESS)

    @classmethod
    def transient(cls, error: FetchError) -> "AttemptResult":
        """Build a retryable failure."""
        return cls(outcome=AttemptOutcome.TRANSIENT, error=error)

    @classmethod
    def permanent(cls, error: FetchError) -> "AttemptResult":
        """Build a failure that must stop the retry loop."""
        return cls(outcome=AttemptOutcome.PERMANENT, error=error)

    @property
    def is_success(self) -> bool:
        """Check if the attempt succeeded."""
        return self.outcome is AttemptOutcome.SUCCESS


class RetryPolicy(BaseModel):
    """Backoff shape for retrying upstream attempts.

    Uses exponential backoff: delay = base_delay_ms * (exponential_base ^ attempt),
    capped at max_delay_ms. The overall time budget is given separately to
    the retry loop.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    base_delay_ms: Annotated[int, Field(ge=0, le=60000)] = 50
    max_delay_ms: Annotated[int, Field(ge=0, le=300000)] = 30000
    exponential_base: Annotated[float, Field(ge=1.0, le=5.0)] = 1.5
    jitter_factor: Annotated[float, Field(ge=0.0, le=1.0)] = 0.5

    def get_delay_ms(self, attempt: int) -> int:
        """Calculate delay before the next retry attempt.

        Args:
            attempt: Number of the attempt that just failed (0-indexed).

        Returns:
            Delay in milliseconds.
        """
        delay = self.base_delay_ms * (self.exponential_base**attempt)
        delay = min(delay, self.max_delay_ms)

        # Add jitter to prevent thundering herd
        jitter = delay * self.jitter_factor * random.random()  # noqa: S311
        return int(min(delay + jitter, self.max_delay_ms))
