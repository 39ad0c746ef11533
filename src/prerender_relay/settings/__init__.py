"""Process settings loading."""

from .app import RelaySettings, get_settings


__all__ = ["RelaySettings", "get_settings"]
