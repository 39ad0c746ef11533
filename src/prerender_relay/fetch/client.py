"""Prerender client relaying snapshots from the rendering service."""

import asyncio
from http import HTTPStatus
from types import TracebackType

import httpx
import structlog
from starlette.requests import ClientDisconnect, Request
from starlette.responses import PlainTextResponse, Response

from prerender_relay.fetch.config import ClientConfig
from prerender_relay.fetch.constants import (
    HEADER_LOCATION,
    HOP_BY_HOP_HEADERS,
    HTTP_STATUS_FORBIDDEN,
    HTTP_STATUS_FOUND,
    HTTP_STATUS_NOT_FOUND,
    HTTP_STATUS_OK,
    HTTP_STATUS_SERVICE_UNAVAILABLE,
    HTTP_STATUS_UNAUTHORIZED,
)
from prerender_relay.fetch.metrics import RelayMetrics
from prerender_relay.fetch.models import (
    AttemptResult,
    FetchError,
    FetchErrorClass,
)
from prerender_relay.fetch.redact import redact_token
from prerender_relay.fetch.retry import run_with_retry
from prerender_relay.fetch.sink import ResponseSink
from prerender_relay.fetch.upstream import build_upstream_request


logger = structlog.get_logger()

# Raised by ASGI send when the inbound client has gone away
DISCONNECT_ERRORS = (OSError, ClientDisconnect)

UNAVAILABLE_CLASSES = {
    HTTP_STATUS_NOT_FOUND: FetchErrorClass.NOT_FOUND,
    HTTP_STATUS_SERVICE_UNAVAILABLE: FetchErrorClass.CACHE_MISS,
}


class FetchClient:
    """Client for the rendering service with retries and streaming relay.

    One instance is shared by all requests. It owns a pooled
    httpx.AsyncClient that never follows redirects, so upstream redirects
    reach the original caller.
    """

    def __init__(
        self,
        config: ClientConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: Client configuration.
            transport: Optional transport, mainly for tests.
        """
        self._config = config
        self._metrics = RelayMetrics.get_instance()
        self._http = httpx.AsyncClient(
            transport=transport,
            timeout=config.fetch_timeout_seconds,
            follow_redirects=False,
        )
        self._log = logger.bind(component="prerender")

    @property
    def config(self) -> ClientConfig:
        """Client configuration."""
        return self._config

    async def aclose(self) -> None:
        """Close pooled upstream connections."""
        await self._http.aclose()

    async def __aenter__(self) -> "FetchClient":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def fetch(self, request: Request, sink: ResponseSink) -> None:
        """Relay the prerendered page for a request.

        Never raises for upstream failures or a caller that went away: the
        outcome is written to the sink as the relayed page or redirect, or
        as the configured fallback status, unless the caller is gone.

        Args:
            request: Inbound request to prerender.
            sink: Response sink of the inbound request.
        """
        log = self._log.bind(path=request.url.path)

        async def attempt() -> AttemptResult:
            return await self._attempt(request, sink, log)

        result = await run_with_retry(
            attempt,
            policy=self._config.retry_policy,
            budget_seconds=self._config.retry_timeout_seconds,
            log=log,
        )

        if result.is_success:
            log.info("prerender_relayed", bytes=sink.bytes_sent)
            return

        error = result.error
        error_class = error.error_class if error else FetchErrorClass.TRANSPORT_ERROR
        message = error.message if error else "unknown failure"
        self._metrics.record_failure(error_class)

        if sink.committed:
            self._metrics.record_stream_aborted()
            log.warning(
                "prerender_stream_aborted",
                error_class=error_class.value,
                error=message,
                bytes=sink.bytes_sent,
            )
            return

        log.error(
            "prerender_failed",
            error_class=error_class.value,
            error=message,
            status_code=error.status_code if error else None,
        )
        status = self._config.fallback_status_code
        try:
            await sink.relay(
                PlainTextResponse(_status_phrase(status), status_code=status)
            )
        except DISCONNECT_ERRORS as e:
            self._metrics.record_stream_aborted()
            log.warning(
                "prerender_stream_aborted",
                error_class=FetchErrorClass.STREAM_ERROR.value,
                error=repr(e),
                bytes=0,
            )

    async def _attempt(
        self,
        request: Request,
        sink: ResponseSink,
        log: structlog.stdlib.BoundLogger,
    ) -> AttemptResult:
        """Execute a single upstream attempt.

        Args:
            request: Inbound request.
            sink: Response sink of the inbound request.
            log: Bound logger.

        Returns:
            Tagged result of the attempt.
        """
        upstream_request = build_upstream_request(request, self._config)

        try:
            async with asyncio.timeout(self._config.fetch_timeout_seconds):
                response = await self._http.send(upstream_request, stream=True)
        except (httpx.TimeoutException, TimeoutError) as e:
            return AttemptResult.transient(
                FetchError(
                    error_class=FetchErrorClass.NETWORK_TIMEOUT,
                    message=f"Request timed out: {e!r}",
                )
            )
        except httpx.ConnectError as e:
            return AttemptResult.transient(
                FetchError(
                    error_class=FetchErrorClass.CONNECTION_ERROR,
                    message=f"Connection failed: {e!r}",
                )
            )
        except httpx.HTTPError as e:
            return AttemptResult.transient(
                FetchError(
                    error_class=FetchErrorClass.TRANSPORT_ERROR,
                    message=f"Transport error: {e!r}",
                )
            )

        try:
            self._metrics.record_upstream_status(response.status_code)
            log.debug(
                "upstream_response",
                url=redact_token(str(upstream_request.url), self._config.token),
                status_code=response.status_code,
            )
            return await self._handle_response(response, sink)
        finally:
            await response.aclose()

    async def _handle_response(
        self,
        response: httpx.Response,
        sink: ResponseSink,
    ) -> AttemptResult:
        """Interpret an upstream response and relay it when terminal.

        Args:
            response: Streaming upstream response.
            sink: Response sink of the inbound request.

        Returns:
            Tagged result of the attempt.
        """
        status = response.status_code

        if status == HTTP_STATUS_FOUND:
            location = response.headers.get(HEADER_LOCATION, "")
            try:
                await sink.relay(
                    Response(
                        status_code=HTTP_STATUS_FOUND,
                        headers={HEADER_LOCATION: location},
                    )
                )
            except DISCONNECT_ERRORS as e:
                return AttemptResult.permanent(_disconnect_error(e, status))
            return AttemptResult.success()

        if status == HTTP_STATUS_OK:
            return await self._relay_body(response, sink)

        if status in UNAVAILABLE_CLASSES:
            error = FetchError(
                error_class=UNAVAILABLE_CLASSES[status],
                message=f"Page not available from rendering service ({status})",
                status_code=status,
            )
            if self._config.retry_unavailable:
                return AttemptResult.transient(error)
            return AttemptResult.permanent(error)

        if status in (HTTP_STATUS_UNAUTHORIZED, HTTP_STATUS_FORBIDDEN):
            return AttemptResult.transient(
                FetchError(
                    error_class=FetchErrorClass.TOKEN_REJECTED,
                    message=f"Token rejected by rendering service ({status})",
                    status_code=status,
                )
            )

        return AttemptResult.transient(
            FetchError(
                error_class=FetchErrorClass.UNEXPECTED_STATUS,
                message=f"Unexpected status from rendering service ({status})",
                status_code=status,
            )
        )

    async def _relay_body(
        self,
        response: httpx.Response,
        sink: ResponseSink,
    ) -> AttemptResult:
        """Stream a 200 response to the sink.

        A body error before the first byte is sent is retryable; after
        that the response is committed and the error is permanent. A
        caller disconnect always ends the relay.

        Args:
            response: Streaming upstream response.
            sink: Response sink of the inbound request.

        Returns:
            Tagged result of the attempt.
        """
        headers = [
            (key, value)
            for key, value in response.headers.raw
            if key.decode("latin-1").lower() not in HOP_BY_HOP_HEADERS
        ]
        try:
            await sink.stream(response.status_code, headers, response.aiter_raw())
        except DISCONNECT_ERRORS as e:
            return AttemptResult.permanent(_disconnect_error(e, response.status_code))
        except httpx.HTTPError as e:
            error = FetchError(
                error_class=FetchErrorClass.STREAM_ERROR,
                message=f"Reading rendered page failed: {e!r}",
                status_code=response.status_code,
            )
            if sink.committed:
                return AttemptResult.permanent(error)
            return AttemptResult.transient(error)
        finally:
            self._metrics.record_bytes(sink.bytes_sent)

        return AttemptResult.success()


def _status_phrase(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Error"


def _disconnect_error(exc: Exception, status_code: int) -> FetchError:
    return FetchError(
        error_class=FetchErrorClass.STREAM_ERROR,
        message=f"Client went away while relaying: {exc!r}",
        status_code=status_code,
    )
