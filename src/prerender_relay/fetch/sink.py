"""ASGI response sink that tracks whether the response is committed."""

from collections.abc import AsyncIterator, Iterable

from starlette.responses import Response
from starlette.types import Receive, Scope, Send


class ResponseSink:
    """Writes a single response to an ASGI ``send`` channel.

    The response status and headers are held back until the first body
    chunk is available. Once anything has been sent the response is
    committed and no other response can replace it.
    """

    def __init__(self, scope: Scope, receive: Receive, send: Send) -> None:
        self._scope = scope
        self._receive = receive
        self._send = send
        self._committed = False
        self._bytes_sent = 0

    @property
    def committed(self) -> bool:
        """Whether the response start has been sent."""
        return self._committed

    @property
    def bytes_sent(self) -> int:
        """Number of body bytes sent so far."""
        return self._bytes_sent

    async def relay(self, response: Response) -> None:
        """Send a complete Starlette response.

        Args:
            response: Response to send.
        """
        self._committed = True
        await response(self._scope, self._receive, self._send)

    async def stream(
        self,
        status_code: int,
        headers: Iterable[tuple[bytes, bytes]],
        chunks: AsyncIterator[bytes],
    ) -> None:
        """Stream a response body chunk by chunk.

        Errors raised by ``chunks`` propagate to the caller; check
        ``committed`` to know whether anything reached the client.

        Args:
            status_code: Response status.
            headers: Raw response headers.
            chunks: Body chunks in order.
        """
        raw_headers = [(key.lower(), value) for key, value in headers]

        async for chunk in chunks:
            if not chunk:
                continue
            await self._start(status_code, raw_headers)
            await self._send(
                {"type": "http.response.body", "body": chunk, "more_body": True}
            )
            self._bytes_sent += len(chunk)

        await self._start(status_code, raw_headers)
        await self._send({"type": "http.response.body", "body": b"", "more_body": False})

    async def _start(self, status_code: int, headers: list[tuple[bytes, bytes]]) -> None:
        if self._committed:
            return
        self._committed = True
        await self._send(
            {"type": "http.response.start", "status": status_code, "headers": headers}
        )
