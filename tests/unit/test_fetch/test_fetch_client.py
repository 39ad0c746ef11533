"""Unit tests for the prerender fetch client."""

import asyncio
from collections.abc import AsyncIterator, Callable
from typing import Any

import httpx
import pytest

from prerender_relay.fetch.client import FetchClient
from prerender_relay.fetch.config import ClientConfig
from prerender_relay.fetch.metrics import RelayMetrics
from prerender_relay.fetch.models import RetryPolicy
from prerender_relay.fetch.sink import ResponseSink
from tests.helpers.asgi import SendRecorder, make_request, make_scope, receive


FAST_RETRY = RetryPolicy(base_delay_ms=1, max_delay_ms=5, jitter_factor=0.0)
HTML = b"<html><body>prerendered</body></html>"


class BrokenStream(httpx.AsyncByteStream):
    """Upstream body that fails after yielding some chunks."""

    def __init__(self, *chunks: bytes) -> None:
        self._chunks = chunks

    async def __aiter__(self) -> AsyncIterator[bytes]:
        for chunk in self._chunks:
            yield chunk
        raise httpx.ReadError("connection reset by peer")


class DisconnectingSend(SendRecorder):
    """Send channel whose client goes away once a given message type is sent."""

    def __init__(self, fail_on: str) -> None:
        super().__init__()
        self._fail_on = fail_on

    async def __call__(self, message: dict[str, Any]) -> None:
        if message["type"] == self._fail_on:
            raise OSError("client disconnected")
        await super().__call__(message)


class Upstream:
    """Scripted rendering service for httpx.MockTransport."""

    def __init__(self, *responses: Callable[[httpx.Request], httpx.Response]) -> None:
        self._responses = responses
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        index = min(len(self.requests), len(self._responses)) - 1
        return self._responses[index](request)

    @property
    def calls(self) -> int:
        return len(self.requests)


def page(body: bytes = HTML, **headers: str) -> Callable[[httpx.Request], httpx.Response]:
    """Respond 200 with a streamed body."""
    base = {"Content-Type": "text/html; charset=utf-8", "Content-Length": str(len(body))}
    base.update(headers)
    return lambda request: httpx.Response(200, headers=base, stream=httpx.ByteStream(body))


def status(code: int, **headers: str) -> Callable[[httpx.Request], httpx.Response]:
    """Respond with a bare status."""
    return lambda request: httpx.Response(code, headers=headers, stream=httpx.ByteStream(b""))


def fail(exc: Exception) -> Callable[[httpx.Request], httpx.Response]:
    """Raise a transport error."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise exc

    return handler


def run_fetch(
    upstream: Callable[[httpx.Request], Any],
    path: str = "/path",
    query: str = "_escaped_fragment_=",
    headers: list[tuple[str, str]] | None = None,
    send: SendRecorder | None = None,
    **options: object,
) -> SendRecorder:
    """Run one fetch against a scripted upstream and record the response."""
    options.setdefault("retry_policy", FAST_RETRY)
    options.setdefault("retry_timeout_seconds", 5.0)
    config = ClientConfig(server="http://render.test", token="123", **options)
    send = send or SendRecorder()
    scope = make_scope(path=path, query=query, headers=headers)

    async def main() -> None:
        async with FetchClient(config, transport=httpx.MockTransport(upstream)) as client:
            request = make_request(path=path, query=query, headers=headers)
            await client.fetch(request, ResponseSink(scope, receive, send))

    asyncio.run(main())
    return send


@pytest.fixture
def metrics() -> RelayMetrics:
    """Reset and return the metrics singleton."""
    RelayMetrics.reset()
    return RelayMetrics.get_instance()


class TestSuccess:
    """Tests for terminal success outcomes."""

    @pytest.mark.unit
    def test_page_relayed(self, metrics: RelayMetrics) -> None:
        """Test that a 200 page is relayed with its headers."""
        upstream = Upstream(page(HTML, **{"X-Powered-By": "renderer"}))

        send = run_fetch(upstream)

        assert send.status == 200
        assert send.body == HTML
        assert send.headers["content-type"] == "text/html; charset=utf-8"
        assert send.headers["x-powered-by"] == "renderer"
        assert send.completed
        assert upstream.calls == 1
        assert metrics.bytes_relayed_total == len(HTML)

    @pytest.mark.unit
    def test_hop_by_hop_headers_dropped(self, metrics: RelayMetrics) -> None:
        """Test that connection-level headers are not relayed."""
        upstream = Upstream(page(HTML, Connection="keep-alive", **{"Keep-Alive": "timeout=5"}))

        send = run_fetch(upstream)

        assert "connection" not in send.headers
        assert "keep-alive" not in send.headers

    @pytest.mark.unit
    def test_body_relayed_byte_for_byte(self, metrics: RelayMetrics) -> None:
        """Test that compressed bodies are not decoded on the way through."""
        compressed = b"\x1f\x8b\x08\x00fake-gzip-bytes"
        upstream = Upstream(page(compressed, **{"Content-Encoding": "gzip"}))

        send = run_fetch(upstream)

        assert send.body == compressed
        assert send.headers["content-encoding"] == "gzip"

    @pytest.mark.unit
    def test_redirect_relayed_without_retry(self, metrics: RelayMetrics) -> None:
        """Test that a 302 is replayed to the caller and never followed."""
        upstream = Upstream(status(302, Location="http://example.com/"))

        send = run_fetch(upstream)

        assert send.status == 302
        assert send.headers["location"] == "http://example.com/"
        assert upstream.calls == 1

    @pytest.mark.unit
    def test_redirect_location_verbatim(self, metrics: RelayMetrics) -> None:
        """Test that the Location header is not re-encoded."""
        upstream = Upstream(status(302, Location="/search?q=a b&x=%41"))

        send = run_fetch(upstream)

        assert send.status == 302
        assert send.headers["location"] == "/search?q=a b&x=%41"


class TestRetries:
    """Tests for retried and permanent failures."""

    @pytest.mark.unit
    def test_cache_miss_retried_when_enabled(self, metrics: RelayMetrics) -> None:
        """Test 503, 503, 200 with retry_unavailable ends in the page."""
        upstream = Upstream(status(503), status(503), page())

        send = run_fetch(upstream, retry_unavailable=True)

        assert send.status == 200
        assert send.body == HTML
        assert upstream.calls == 3
        assert metrics.retry_total == 2
        assert metrics.upstream_responses_total == {503: 2, 200: 1}

    @pytest.mark.unit
    def test_not_found_retried_when_enabled(self, metrics: RelayMetrics) -> None:
        """Test that 404 is retryable with retry_unavailable."""
        upstream = Upstream(status(404), page())

        send = run_fetch(upstream, retry_unavailable=True)

        assert send.status == 200
        assert upstream.calls == 2

    @pytest.mark.unit
    @pytest.mark.parametrize("code", [503, 404])
    def test_unavailable_permanent_by_default(
        self, metrics: RelayMetrics, code: int
    ) -> None:
        """Test that 404/503 stop immediately with the fallback status."""
        upstream = Upstream(status(code), page())

        send = run_fetch(upstream)

        assert send.status == 503
        assert send.body == b"Service Unavailable"
        assert upstream.calls == 1
        assert metrics.retry_total == 0

    @pytest.mark.unit
    def test_custom_fallback_status(self, metrics: RelayMetrics) -> None:
        """Test that the configured fallback status is emitted."""
        upstream = Upstream(status(503))

        send = run_fetch(upstream, fallback_status_code=502)

        assert send.status == 502
        assert send.body == b"Bad Gateway"
        assert metrics.failures_total == {"CACHE_MISS": 1}

    @pytest.mark.unit
    @pytest.mark.parametrize("code", [500, 502, 401, 403, 429, 301])
    def test_other_statuses_retried(self, metrics: RelayMetrics, code: int) -> None:
        """Test that other statuses are treated as transient."""
        upstream = Upstream(status(code), page())

        send = run_fetch(upstream)

        assert send.status == 200
        assert upstream.calls == 2

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "exc",
        [
            httpx.ConnectError("connection refused"),
            httpx.ReadTimeout("timed out"),
            httpx.RemoteProtocolError("bad response"),
        ],
    )
    def test_transport_errors_retried(
        self, metrics: RelayMetrics, exc: Exception
    ) -> None:
        """Test that network failures are retried."""
        upstream = Upstream(fail(exc), page())

        send = run_fetch(upstream)

        assert send.status == 200
        assert upstream.calls == 2

    @pytest.mark.unit
    def test_budget_exhausted(self, metrics: RelayMetrics) -> None:
        """Test that persistent failures end in the fallback status."""
        upstream = Upstream(status(500))

        send = run_fetch(
            upstream,
            retry_timeout_seconds=0.05,
            retry_policy=RetryPolicy(base_delay_ms=10, exponential_base=1.0, jitter_factor=0.0),
        )

        assert send.status == 503
        assert upstream.calls >= 2
        assert metrics.failures_total == {"UNEXPECTED_STATUS": 1}

    @pytest.mark.unit
    def test_body_error_before_first_byte_retried(self, metrics: RelayMetrics) -> None:
        """Test that a body failure before relaying starts is retried."""
        upstream = Upstream(
            lambda request: httpx.Response(200, stream=BrokenStream()),
            page(),
        )

        send = run_fetch(upstream)

        assert send.status == 200
        assert send.body == HTML
        assert upstream.calls == 2

    @pytest.mark.unit
    def test_body_error_after_first_byte_not_corrected(
        self, metrics: RelayMetrics
    ) -> None:
        """Test that a committed response is left partial, never rewritten."""
        upstream = Upstream(
            lambda request: httpx.Response(200, stream=BrokenStream(b"<html>")),
            page(),
        )

        send = run_fetch(upstream)

        starts = [m for m in send.messages if m["type"] == "http.response.start"]
        assert len(starts) == 1
        assert send.status == 200
        assert send.body == b"<html>"
        assert send.completed is False
        assert upstream.calls == 1
        assert metrics.streams_aborted_total == 1
        assert metrics.failures_total == {"STREAM_ERROR": 1}


class TestUpstreamRequest:
    """Tests for what the rendering service receives."""

    @pytest.mark.unit
    def test_token_and_path(self, metrics: RelayMetrics) -> None:
        """Test that the token prefixes the original path and query."""
        upstream = Upstream(page())

        run_fetch(upstream, path="/path", query="param1=val1&_escaped_fragment_=")

        url = upstream.requests[0].url
        assert url.host == "render.test"
        assert url.path.split("/")[1] == "123"
        assert url.path == "/123/path"
        assert url.query == b"param1=val1&_escaped_fragment_="

    @pytest.mark.unit
    def test_headers_forwarded(self, metrics: RelayMetrics) -> None:
        """Test that client headers and forwarding chain reach upstream."""
        upstream = Upstream(page())

        run_fetch(
            upstream,
            headers=[
                ("Content-Type", "content-type"),
                ("User-Agent", "user-agent"),
                ("X-Forwarded-For", "10.0.0.2, 10.0.0.1"),
            ],
        )

        headers = upstream.requests[0].headers
        assert headers["content-type"] == "content-type"
        assert headers["user-agent"] == "user-agent"
        assert headers["x-forwarded-for"] == "127.0.0.1, 10.0.0.2, 10.0.0.1"

    @pytest.mark.unit
    def test_each_attempt_rebuilds_request(self, metrics: RelayMetrics) -> None:
        """Test that retried attempts send identical requests."""
        upstream = Upstream(status(500), page())

        run_fetch(upstream, headers=[("X-Forwarded-For", "10.0.0.2")])

        assert [r.headers["x-forwarded-for"] for r in upstream.requests] == [
            "127.0.0.1, 10.0.0.2",
            "127.0.0.1, 10.0.0.2",
        ]


class TestDeadlines:
    """Tests for the per-attempt deadline."""

    @pytest.mark.unit
    def test_slow_upstream_times_out(self, metrics: RelayMetrics) -> None:
        """Test that an attempt exceeding the fetch timeout is retried."""
        calls = 0

        async def slow_then_fast(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            if calls == 1:
                await asyncio.sleep(1.0)
            return page()(request)

        send = run_fetch(slow_then_fast, fetch_timeout_seconds=0.05)

        assert send.status == 200
        assert send.body == HTML
        assert calls == 2

    @pytest.mark.unit
    def test_always_slow_upstream_falls_back(self, metrics: RelayMetrics) -> None:
        """Test that repeated timeouts end in the fallback status."""

        async def slow(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(1.0)
            return page()(request)

        send = run_fetch(
            slow, fetch_timeout_seconds=0.02, retry_timeout_seconds=0.1
        )

        assert send.status == 503
        assert metrics.failures_total == {"NETWORK_TIMEOUT": 1}


class TestClientDisconnect:
    """Tests for callers that go away while the response is written."""

    @pytest.mark.unit
    def test_disconnect_during_body(self, metrics: RelayMetrics) -> None:
        """Test that a vanished client ends the relay without raising."""
        upstream = Upstream(page())
        send = DisconnectingSend("http.response.body")

        run_fetch(upstream, send=send)

        assert send.status == 200
        assert send.completed is False
        assert upstream.calls == 1
        assert metrics.streams_aborted_total == 1
        assert metrics.failures_total == {"STREAM_ERROR": 1}

    @pytest.mark.unit
    def test_disconnect_during_redirect(self, metrics: RelayMetrics) -> None:
        """Test that a redirect to a vanished client is not retried."""
        upstream = Upstream(status(302, Location="http://example.com/"))

        run_fetch(upstream, send=DisconnectingSend("http.response.start"))

        assert upstream.calls == 1
        assert metrics.streams_aborted_total == 1

    @pytest.mark.unit
    def test_disconnect_during_fallback(self, metrics: RelayMetrics) -> None:
        """Test that writing the fallback to a vanished client does not raise."""
        upstream = Upstream(status(503))
        send = DisconnectingSend("http.response.start")

        run_fetch(upstream, send=send)

        assert send.messages == []
        assert metrics.streams_aborted_total == 1
        assert metrics.failures_total == {"CACHE_MISS": 1}
