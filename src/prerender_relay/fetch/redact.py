"""Redaction utilities for logging upstream requests."""

from collections.abc import Iterable

# Credentials a crawler or upstream proxy may carry
SENSITIVE_HEADERS = frozenset(
    {"authorization", "proxy-authorization", "cookie", "set-cookie", "x-api-key"}
)
SENSITIVE_SUFFIXES = ("-token", "-secret")

REDACTED_VALUE = "[REDACTED]"


def redact_headers(headers: Iterable[tuple[str, str]]) -> dict[str, str]:
    """Copy inbound headers into a loggable dict with credentials masked.

    Args:
        headers: Header name/value pairs, e.g. ``request.headers.items()``.

    Returns:
        Mapping of header name to value or [REDACTED].
    """
    return {
        key: REDACTED_VALUE if is_sensitive_header(key) else value
        for key, value in headers
    }


def is_sensitive_header(header_name: str) -> bool:
    """Check if a header carries credentials."""
    name = header_name.lower()
    return name in SENSITIVE_HEADERS or name.endswith(SENSITIVE_SUFFIXES)


def redact_token(url: str, token: str) -> str:
    """Redact the API token from an upstream URL.

    The rendering service takes the token as the first path segment,
    so every upstream URL carries it.

    Args:
        url: Upstream URL.
        token: API token to hide.

    Returns:
        URL with the token replaced by [REDACTED].
    """
    if not token:
        return url
    return url.replace(f"/{token}/", f"/{REDACTED_VALUE}/", 1)
