"""Process settings powered by Pydantic BaseSettings."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from prerender_relay.fetch.config import ClientConfig
from prerender_relay.fetch.constants import (
    DEFAULT_FETCH_TIMEOUT_SECONDS,
    DEFAULT_RETRY_TIMEOUT_SECONDS,
    DEFAULT_SERVER,
    DEFAULT_SERVER_IP,
    HTTP_STATUS_SERVICE_UNAVAILABLE,
)


class RelaySettings(BaseSettings):
    """Environment configuration for processes embedding the relay.

    Only the embedding process reads these; the client itself is always
    built from an explicit ClientConfig.
    """

    model_config = SettingsConfigDict(
        env_prefix="PRERENDER_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    server: str = DEFAULT_SERVER
    token: str | None = Field(default=None)
    server_ip: str = DEFAULT_SERVER_IP
    retry_timeout_seconds: float = DEFAULT_RETRY_TIMEOUT_SECONDS
    fetch_timeout_seconds: float = DEFAULT_FETCH_TIMEOUT_SECONDS
    unconditional_fetch: bool = False
    retry_unavailable: bool = False
    fallback_status_code: int = HTTP_STATUS_SERVICE_UNAVAILABLE

    def to_client_config(self, **overrides: object) -> ClientConfig:
        """Build a ClientConfig from these settings.

        Args:
            **overrides: Values taking precedence over the settings; None
                values are ignored.

        Returns:
            Validated client configuration.

        Raises:
            pydantic.ValidationError: If the token is missing or a value
                is invalid.
        """
        values = self.model_dump()
        values.update({k: v for k, v in overrides.items() if v is not None})
        return ClientConfig.model_validate(values)


def get_settings() -> RelaySettings:
    """Get a settings instance."""
    return RelaySettings()
