"""Structured logging for the relay."""

from prerender_relay.observability.logging import (
    TokenRedactor,
    bind_request_context,
    clear_request_context,
    configure_logging,
)


__all__ = [
    "TokenRedactor",
    "bind_request_context",
    "clear_request_context",
    "configure_logging",
]
