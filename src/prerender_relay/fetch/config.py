"""Configuration model for the prerender client."""

from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, IPvAnyAddress, field_validator

from prerender_relay.fetch.constants import (
    DEFAULT_FETCH_TIMEOUT_SECONDS,
    DEFAULT_RETRY_TIMEOUT_SECONDS,
    DEFAULT_SERVER,
    DEFAULT_SERVER_IP,
    HTTP_STATUS_SERVICE_UNAVAILABLE,
)
from prerender_relay.fetch.models import RetryPolicy


class ClientConfig(BaseModel):
    """Configuration for the prerender fetch client.

    Built once at startup and shared read-only by every request. A missing
    or empty token fails construction with a ValidationError.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    server: Annotated[str, Field(min_length=1, description="Rendering service base URL")] = (
        DEFAULT_SERVER
    )
    token: Annotated[str, Field(min_length=1, description="Rendering service API token")]
    server_ip: IPvAnyAddress = Field(
        default=DEFAULT_SERVER_IP,
        validate_default=True,
        description="Address prepended to X-Forwarded-For",
    )
    retry_timeout_seconds: float = Field(
        default=DEFAULT_RETRY_TIMEOUT_SECONDS,
        ge=0.0,
        description="Overall retry budget per request, 0 retries forever",
    )
    fetch_timeout_seconds: Annotated[float, Field(gt=0.0, le=600.0)] = (
        DEFAULT_FETCH_TIMEOUT_SECONDS
    )
    unconditional_fetch: bool = Field(
        default=False,
        description="Strip If-Modified-Since and If-None-Match before fetching",
    )
    retry_unavailable: bool = Field(
        default=False,
        description="Retry 404 and 503 upstream responses instead of failing",
    )
    fallback_status_code: Annotated[int, Field(ge=400, le=599)] = (
        HTTP_STATUS_SERVICE_UNAVAILABLE
    )
    retry_policy: RetryPolicy = Field(default_factory=RetryPolicy)

    @field_validator("server")
    @classmethod
    def validate_server(cls, v: str) -> str:
        """Ensure the server is an absolute http(s) URL without trailing slash."""
        if not v.startswith(("http://", "https://")):
            msg = f"Server must start with http:// or https://, got {v!r}"
            raise ValueError(msg)
        return v.rstrip("/")

    @field_validator("token")
    @classmethod
    def validate_token(cls, v: str) -> str:
        """Reject blank tokens."""
        if not v.strip():
            msg = "Token must not be blank"
            raise ValueError(msg)
        return v

    def upstream_url(self, path: str) -> str:
        """Build the rendering service URL for a cleaned path.

        Args:
            path: Path and query starting with ``/``.

        Returns:
            Absolute upstream URL.
        """
        return f"{self.server}/{self.token}{path}"
