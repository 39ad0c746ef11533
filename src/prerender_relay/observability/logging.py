"""Structured logging for the relay."""

import logging
import sys
from collections.abc import MutableMapping
from typing import Any, TextIO

import structlog

from prerender_relay.fetch.redact import REDACTED_VALUE


# httpx and httpcore log every upstream URL at INFO, token included
TRANSPORT_LOGGERS = ("httpx", "httpcore")


class TokenRedactor:
    """Processor masking the API token in string values of an event."""

    def __init__(self, token: str) -> None:
        self._token = token

    def __call__(
        self,
        logger: Any,
        method_name: str,
        event_dict: MutableMapping[str, Any],
    ) -> MutableMapping[str, Any]:
        for key, value in event_dict.items():
            if isinstance(value, str) and self._token in value:
                event_dict[key] = value.replace(self._token, REDACTED_VALUE)
        return event_dict


def configure_logging(
    level: int = logging.INFO,
    output: TextIO = sys.stderr,
    json_format: bool = True,
    token: str | None = None,
) -> None:
    """Configure structlog for the relay.

    Args:
        level: Minimum level of emitted events.
        output: Stream receiving the rendered events.
        json_format: Render JSON lines instead of console output.
        token: API token to mask wherever it shows up in an event.
    """
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
    ]
    if token:
        processors.append(TokenRedactor(token))

    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer(sort_keys=True)
        if json_format
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    processors.append(renderer)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=output),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=output, level=level)
    for name in TRANSPORT_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def bind_request_context(request_id: str) -> None:
    """Tag subsequent events of the current task with a request id."""
    structlog.contextvars.bind_contextvars(request_id=request_id)


def clear_request_context() -> None:
    """Remove the request id bound by bind_request_context."""
    structlog.contextvars.unbind_contextvars("request_id")
