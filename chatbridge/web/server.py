"""HTTP server -- JSON API and SSE chat streaming on bare asyncio streams."""
from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable
from urllib.parse import parse_qs, urlparse

from chatbridge.log import logger

MAX_BODY_BYTES = 1_048_576
HEADER_TIMEOUT = 5.0
BODY_TIMEOUT = 10.0

_REASONS = {
    200: "OK", 201: "Created", 204: "No Content", 400: "Bad Request", 401: "Unauthorized",
    404: "Not Found", 405: "Method Not Allowed", 413: "Payload Too Large",
    500: "Internal Server Error", 502: "Bad Gateway",
}


@dataclass
class SSEResponse:
    """Returned by a route that takes over the connection to stream events.

    The handler gets the writer and, when served over a socket, the reader so
    it can notice the client hanging up.
    """
    handler: Callable[..., Awaitable[None]]


@dataclass
class HttpRequest:
    method: str
    target: str
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def path(self) -> str:
        return urlparse(self.target).path

    @property
    def content_length(self) -> int:
        return int(self.headers.get("content-length") or 0)


class BadHttpRequest(Exception):
    def __init__(self, status: int, message: str) -> None:
        super().__init__(message)
        self.status = status


def sse_headers(cors_origin: str) -> bytes:
    return (
        "HTTP/1.1 200 OK\r\n"
        "Content-Type: text/event-stream\r\n"
        "Cache-Control: no-cache\r\n"
        "Connection: keep-alive\r\n"
        f"Access-Control-Allow-Origin: {cors_origin}\r\n\r\n"
    ).encode()


def sse_frame(data: dict[str, Any]) -> bytes:
    return f"data: {json.dumps(data, ensure_ascii=False)}\n\n".encode()


def encode_json_response(status: int, data: dict[str, Any] | None, cors_origin: str) -> bytes:
    body = json.dumps(data, ensure_ascii=False).encode() if data is not None else b""
    head = [
        f"HTTP/1.1 {status} {_REASONS.get(status, 'OK')}",
        "Content-Type: application/json",
        f"Access-Control-Allow-Origin: {cors_origin}",
        "Access-Control-Allow-Headers: Authorization, Content-Type",
        "Access-Control-Allow-Methods: GET, POST, PUT, DELETE, OPTIONS",
        f"Content-Length: {len(body)}",
        "Connection: close",
    ]
    return ("\r\n".join(head) + "\r\n\r\n").encode() + body


async def read_request(reader: asyncio.StreamReader) -> HttpRequest:
    request_line = await asyncio.wait_for(reader.readline(), timeout=HEADER_TIMEOUT)
    parts = request_line.decode("utf-8", errors="replace").split()
    if len(parts) < 2:
        raise BadHttpRequest(400, "malformed request line")
    request = HttpRequest(method=parts[0].upper(), target=parts[1])

    while True:
        raw = await asyncio.wait_for(reader.readline(), timeout=HEADER_TIMEOUT)
        if raw in (b"\r\n", b"\n", b""):
            break
        name, sep, value = raw.decode("utf-8", errors="replace").partition(":")
        if sep:
            request.headers[name.strip().lower()] = value.strip()

    try:
        length = request.content_length
    except ValueError:
        raise BadHttpRequest(400, "invalid content-length") from None
    if length > MAX_BODY_BYTES:
        raise BadHttpRequest(413, "payload too large")
    if length > 0:
        request.body = await asyncio.wait_for(reader.readexactly(length), timeout=BODY_TIMEOUT)
    return request


class WebServer:
    """Serves the ``/api/`` routes for one ChatBridge app.

    With ``auth_token`` set, every ``/api/`` request must carry it as a bearer
    token or, for EventSource clients, as ``?token=``.
    """

    def __init__(self, app: Any, host: str = "127.0.0.1", port: int = 3001,
                 auth_token: str = "", cors_origin: str = "*") -> None:
        self._app = app
        self._host = host
        self._port = port
        self._auth_token = auth_token
        self._cors_origin = cors_origin
        self._server: asyncio.Server | None = None

    @property
    def port(self) -> int:
        if self._server and self._server.sockets:
            return self._server.sockets[0].getsockname()[1]
        return self._port

    async def start(self) -> None:
        self._server = await asyncio.start_server(self._on_connection, self._host, self._port)
        logger.info(f"ChatBridge API listening on http://{self._host}:{self.port}")

    async def stop(self) -> None:
        if self._server:
            self._server.close()
            await self._server.wait_closed()

    def authorized(self, target: str, headers: dict[str, str]) -> bool:
        if not self._auth_token or not urlparse(target).path.startswith("/api/"):
            return True
        auth = headers.get("authorization", "")
        token = auth[len("Bearer "):] if auth.startswith("Bearer ") else ""
        if not token:
            token = parse_qs(urlparse(target).query).get("token", [""])[0]
        return token == self._auth_token

    async def _on_connection(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        streaming = False
        try:
            try:
                request = await read_request(reader)
            except BadHttpRequest as e:
                writer.write(encode_json_response(e.status, {"error": str(e)}, self._cors_origin))
                return

            streaming = await self._dispatch(request, reader, writer)
            if not streaming:
                await writer.drain()
        except (asyncio.TimeoutError, asyncio.IncompleteReadError, ConnectionError) as e:
            logger.debug(f"HTTP connection dropped: {type(e).__name__}")
        finally:
            # SSE handlers own the writer and close it themselves.
            if not streaming:
                writer.close()
                try:
                    await writer.wait_closed()
                except (ConnectionError, OSError):
                    pass

    async def _dispatch(
        self, request: HttpRequest, reader: asyncio.StreamReader, writer: asyncio.StreamWriter,
    ) -> bool:
        """Answer one request. Returns True when an SSE handler took the connection."""
        if request.method == "OPTIONS":
            writer.write(encode_json_response(204, None, self._cors_origin))
            return False
        if not self.authorized(request.target, request.headers):
            writer.write(encode_json_response(401, {"error": "unauthorized"}, self._cors_origin))
            return False

        from chatbridge.web.routes import handle_route
        result = await handle_route(self._app, request.method, request.target, request.body)
        if isinstance(result, SSEResponse):
            await result.handler(writer, reader)
            return True
        status = result.pop("status") if isinstance(result.get("status"), int) else 200
        try:
            payload = encode_json_response(status, result, self._cors_origin)
        except (TypeError, ValueError):
            logger.exception(f"Cannot encode response for {request.method} {request.path}")
            payload = encode_json_response(500, {"error": "internal server error"}, self._cors_origin)
        writer.write(payload)
        return False
