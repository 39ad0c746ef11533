"""CLI commands for inspecting the prerender relay."""

import asyncio
import json
import logging
import sys
from urllib.parse import urlsplit

import click
import httpx
import structlog
from pydantic import ValidationError

from prerender_relay.classifier import ClassificationInput, RequestClassifier
from prerender_relay.fetch.client import FetchClient
from prerender_relay.fetch.config import ClientConfig
from prerender_relay.middleware import PrerenderMiddleware
from prerender_relay.observability.logging import configure_logging
from prerender_relay.settings import get_settings


logger = structlog.get_logger()

DEFAULT_CLI_USER_AGENT = "Mozilla/5.0 (compatible; prerender-relay-cli/0.1; +bot)"


@click.group()
@click.version_option(version="0.1.0")
def cli() -> None:
    """Prerender relay CLI."""


@cli.command()
@click.argument("url")
@click.option("--method", default="GET", show_default=True, help="HTTP method.")
@click.option("--user-agent", "user_agent", default="", help="User-Agent header value.")
def classify(url: str, method: str, user_agent: str) -> None:
    """Print whether a request for URL would be prerendered."""
    parts = urlsplit(url)
    classifier = RequestClassifier()
    request = ClassificationInput(
        method=method,
        query=parts.query,
        user_agent=user_agent,
        path=parts.path or "/",
    )
    output = {
        "url": url,
        "method": method.upper(),
        "user_agent": user_agent,
        "static_path": classifier.is_static_path(request.path),
        "prerender": classifier.decide(request),
    }
    click.echo(json.dumps(output, indent=2))


@cli.command()
@click.argument("path")
@click.option("--user-agent", "user_agent", default=DEFAULT_CLI_USER_AGENT, help="User-Agent header value.")
@click.option("--token", default=None, help="API token (default: PRERENDER_TOKEN).")
@click.option("--server", default=None, help="Rendering service base URL.")
@click.option("--retry-timeout", "retry_timeout_seconds", type=float, default=None, help="Overall retry budget in seconds, 0 retries forever.")
@click.option("--fetch-timeout", "fetch_timeout_seconds", type=float, default=None, help="Per-attempt timeout in seconds.")
@click.option("--retry-unavailable/--no-retry-unavailable", default=None, help="Retry 404 and 503 upstream responses.")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging.")
def fetch(  # noqa: PLR0913
    path: str,
    user_agent: str,
    token: str | None,
    server: str | None,
    retry_timeout_seconds: float | None,
    fetch_timeout_seconds: float | None,
    retry_unavailable: bool | None,
    verbose: bool,
) -> None:
    """Fetch the prerendered page for PATH through the relay."""
    try:
        config = get_settings().to_client_config(
            token=token,
            server=server,
            retry_timeout_seconds=retry_timeout_seconds,
            fetch_timeout_seconds=fetch_timeout_seconds,
            retry_unavailable=retry_unavailable,
        )
    except ValidationError as e:
        click.echo("Configuration validation failed:", err=True)
        for error in e.errors():
            location = ".".join(str(part) for part in error["loc"])
            click.echo(f"  - {location}: {error['msg']}", err=True)
        sys.exit(1)

    configure_logging(
        level=logging.DEBUG if verbose else logging.WARNING,
        json_format=False,
        token=config.token,
    )

    response = asyncio.run(_fetch_through_relay(config, path, user_agent))
    click.echo(f"HTTP {response.status_code}", err=True)
    for key, value in response.headers.items():
        click.echo(f"{key}: {value}", err=True)
    click.echo(response.text)

    if not response.is_success and not response.is_redirect:
        sys.exit(1)


async def _fetch_through_relay(
    config: ClientConfig,
    path: str,
    user_agent: str,
) -> httpx.Response:
    """Send one request through a standalone relay.

    Args:
        config: Client configuration.
        path: Path and query to request.
        user_agent: User-Agent of the simulated crawler.

    Returns:
        Response produced by the relay.
    """
    async with FetchClient(config) as client:
        app = PrerenderMiddleware(None, client=client)
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(
            transport=transport, base_url="http://localhost"
        ) as relay:
            logger.debug("cli_fetch", path=path, user_agent=user_agent)
            return await relay.get(path, headers={"user-agent": user_agent})
