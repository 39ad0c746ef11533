"""ASGI middleware routing crawler traffic to the rendering service."""

import uuid

import structlog
from starlette.requests import Request
from starlette.responses import PlainTextResponse
from starlette.types import ASGIApp, Receive, Scope, Send

from prerender_relay.classifier import ClassificationInput, RequestClassifier
from prerender_relay.fetch.client import FetchClient
from prerender_relay.fetch.constants import HTTP_STATUS_INTERNAL_SERVER_ERROR
from prerender_relay.fetch.metrics import RelayMetrics
from prerender_relay.fetch.redact import redact_headers
from prerender_relay.fetch.sink import ResponseSink
from prerender_relay.observability.logging import (
    bind_request_context,
    clear_request_context,
)


logger = structlog.get_logger()


class PrerenderMiddleware:
    """Serve prerendered pages to crawlers, pass everything else on.

    Works as regular middleware (``app`` is the wrapped application) or as
    a standalone application when ``app`` is None; in that case requests
    that are not prerender candidates get a 500.
    """

    def __init__(
        self,
        app: ASGIApp | None,
        client: FetchClient,
        classifier: RequestClassifier | None = None,
    ) -> None:
        """Initialize the middleware.

        Args:
            app: Downstream application, or None.
            client: Shared prerender client.
            classifier: Request classifier, default patterns if None.
        """
        self.app = app
        self.client = client
        self.classifier = classifier or RequestClassifier()
        self._metrics = RelayMetrics.get_instance()
        self._log = logger.bind(component="prerender")

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            if self.app is not None:
                await self.app(scope, receive, send)
            elif scope["type"] == "lifespan":
                await self._lifespan(receive, send)
            return

        request = Request(scope, receive)
        if self.classifier.decide(ClassificationInput.from_request(request)):
            self._metrics.record_intercepted()
            bind_request_context(uuid.uuid4().hex[:12])
            try:
                self._log.info(
                    "prerender_intercepted",
                    method=request.method,
                    path=request.url.path,
                    headers=redact_headers(request.headers.items()),
                )
                await self.client.fetch(request, ResponseSink(scope, receive, send))
            finally:
                clear_request_context()
            return

        self._metrics.record_passthrough()
        if self.app is not None:
            self._log.debug("prerender_passthrough", path=request.url.path)
            await self.app(scope, receive, send)
            return

        self._log.warning("no_downstream_app", path=request.url.path)
        response = PlainTextResponse(
            "Internal Server Error", status_code=HTTP_STATUS_INTERNAL_SERVER_ERROR
        )
        await response(scope, receive, send)

    async def _lifespan(self, receive: Receive, send: Send) -> None:
        """Acknowledge startup and shutdown when running standalone.

        The shared client belongs to the embedding process and stays open.
        """
        while True:
            message = await receive()
            if message["type"] == "lifespan.startup":
                await send({"type": "lifespan.startup.complete"})
            elif message["type"] == "lifespan.shutdown":
                await send({"type": "lifespan.shutdown.complete"})
                return
