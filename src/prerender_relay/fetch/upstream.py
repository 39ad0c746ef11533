"""Construction of requests to the rendering service."""

from urllib.parse import quote, urlsplit

import httpx
from starlette.requests import Request

from prerender_relay.fetch.config import ClientConfig
from prerender_relay.fetch.constants import (
    CONDITIONAL_HEADERS,
    HEADER_X_FORWARDED_FOR,
    INBOUND_ONLY_HEADERS,
)


def clean_path(url: str) -> str:
    """Strip scheme, authority and userinfo from a URL.

    Args:
        url: Absolute URL, or a path with optional query.

    Returns:
        Path and query, always starting with ``/``.
    """
    if url.startswith("/"):
        path, _, query = url.partition("?")
    else:
        parts = urlsplit(url)
        path, query = parts.path, parts.query

    if not path:
        path = "/"
    elif not path.startswith("/"):
        path = "/" + path

    if query:
        return f"{path}?{query}"
    return path


def request_target(request: Request) -> str:
    """Rebuild the request target as the client sent it.

    Starlette decodes ``scope["path"]``; the raw path keeps escapes such as
    ``%23`` and ``%3F`` that would otherwise turn into a fragment or query.

    Args:
        request: Inbound request.

    Returns:
        Percent-encoded path, followed by the raw query string if any.
    """
    raw_path = request.scope.get("raw_path")
    if raw_path:
        path = raw_path.decode("latin-1")
    else:
        path = quote(request.scope["path"])

    query = request.scope.get("query_string", b"").decode("latin-1")
    if query:
        return f"{path}?{query}"
    return path


def forwarded_for(server_ip: str, existing: str | None) -> str:
    """Prepend the server address to a forwarding chain.

    Args:
        server_ip: Address of this server.
        existing: Current X-Forwarded-For value, if any.

    Returns:
        New X-Forwarded-For value.
    """
    if existing:
        return f"{server_ip}, {existing}"
    return server_ip


def build_upstream_request(request: Request, config: ClientConfig) -> httpx.Request:
    """Build the rendering service request for an inbound request.

    All inbound headers are forwarded except the ones describing the
    inbound connection. X-Forwarded-For gets the server address prepended.

    Args:
        request: Inbound request.
        config: Client configuration.

    Returns:
        GET request for ``{server}/{token}{path}``.
    """
    skipped = set(INBOUND_ONLY_HEADERS) | {HEADER_X_FORWARDED_FOR}
    if config.unconditional_fetch:
        skipped |= CONDITIONAL_HEADERS

    headers = [
        (key, value)
        for key, value in request.headers.items()
        if key.lower() not in skipped
    ]
    headers.append(
        (
            HEADER_X_FORWARDED_FOR,
            forwarded_for(
                str(config.server_ip), request.headers.get(HEADER_X_FORWARDED_FOR)
            ),
        )
    )

    return httpx.Request(
        "GET",
        config.upstream_url(clean_path(request_target(request))),
        headers=headers,
    )
