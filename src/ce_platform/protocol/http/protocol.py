"""HTTP protocol: outbound requests over httpx, inbound over asyncio streams."""

from __future__ import annotations

import asyncio
import http
from contextlib import suppress
from dataclasses import dataclass

import httpx
import structlog

from ce_platform.binding.encoding import Encoding
from ce_platform.binding.finish import with_finish
from ce_platform.binding.message import Message
from ce_platform.binding.transformer import Transformer
from ce_platform.context import Context, logger_from, target_from
from ce_platform.exceptions import ContextCancelledError, ValidationError
from ce_platform.protocol.http.message import HTTPMessage
from ce_platform.protocol.http.result import HTTPResult
from ce_platform.protocol.http.write import write_headers_and_body, write_request
from ce_platform.protocol.interfaces import ResponseFn
from ce_platform.protocol.result import Result, is_ack, is_retriable, result_as

logger = structlog.get_logger()

_MAX_HEADER_LINES = 200


@dataclass(slots=True)
class RequestInfo:
    """Protocol context attached to inbound messages."""

    method: str
    path: str
    headers: httpx.Headers
    peer: str | None = None


@dataclass(slots=True)
class _Inbound:
    message: HTTPMessage
    respond: ResponseFn
    done: asyncio.Event
    info: RequestInfo


def status_for(result: BaseException | None) -> int:
    """Map a finish/response result to the HTTP status written back."""
    http_result = result_as(result, HTTPResult)
    if isinstance(http_result, HTTPResult) and 100 <= http_result.status_code < 600:
        return http_result.status_code
    if is_ack(result):
        return 200
    if isinstance(result, ValidationError):
        return 400
    if is_retriable(result):
        return 503
    if result_as(result, Result) is not None:
        return 400
    return 500


class HTTPProtocol:
    """Sender, Requester, Opener, Receiver, Responder and Closer for HTTP.

    Outbound: each message becomes one request to the context target (or
    the configured *target*).  Inbound: ``open_inbound`` runs a small HTTP/1.1
    server; every request is handed to ``receive``/``respond`` and answered
    once the message is finished or responded to.
    """

    def __init__(
        self,
        target: str | None = None,
        *,
        method: str = "POST",
        headers: dict[str, str] | None = None,
        timeout_seconds: float = 30.0,
        client: httpx.AsyncClient | None = None,
        host: str = "0.0.0.0",  # noqa: S104
        port: int = 8080,
        path: str = "/",
        shutdown_timeout_seconds: float = 60.0,
    ) -> None:
        self._target = target
        self._method = method
        self._headers = dict(headers or {})
        self._timeout = timeout_seconds
        self._client = client
        self._owns_client = client is None
        self._host = host
        self._port = port
        self._path = path
        self._shutdown_timeout = shutdown_timeout_seconds
        self._incoming: asyncio.Queue[_Inbound] = asyncio.Queue()
        self._server: asyncio.Server | None = None
        self._closed = asyncio.Event()

    @property
    def port(self) -> int:
        """The bound port; differs from the configured one when it was 0."""
        if self._server is not None and self._server.sockets:
            return self._server.sockets[0].getsockname()[1]
        return self._port

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self._timeout))
        return self._client

    # -- outbound ---------------------------------------------------------------

    async def send(
        self, ctx: Context, message: Message, *transformers: Transformer
    ) -> Result | None:
        reply, result = await self.request(ctx, message, *transformers)
        if reply is not None:
            await reply.finish(None)
        return result

    async def request(
        self, ctx: Context, message: Message, *transformers: Transformer
    ) -> tuple[Message | None, Result | None]:
        err: BaseException | None = None
        try:
            url = target_from(ctx) or self._target
            if not url:
                err = Result.fatal("no target URL configured")
                return None, err
            request = write_request(
                ctx, message, url, *transformers, method=self._method, headers=self._headers
            )
            try:
                response = await ctx.race(self._get_client().send(request))
            except httpx.TransportError as exc:
                logger_from(ctx).warning("http.request_failed", url=url, error=str(exc))
                err = Result.retriable("request failed", cause=exc)
                return None, err
            except ContextCancelledError as exc:
                err = Result.retriable("request cancelled", cause=exc)
                return None, err
            result = HTTPResult(response.status_code)
            logger_from(ctx).debug(
                "http.request_sent", url=url, status_code=response.status_code
            )
            return HTTPMessage.from_response(response), result
        except Exception as exc:
            err = exc
            raise
        finally:
            await message.finish(err)

    # -- inbound ----------------------------------------------------------------

    async def open_inbound(self, ctx: Context) -> None:
        """Serve HTTP until *ctx* is cancelled or the protocol is closed."""
        self._server = await asyncio.start_server(self._handle, host=self._host, port=self._port)
        logger.info("http.server_started", host=self._host, port=self.port, path=self._path)
        closer = asyncio.ensure_future(self._closed.wait())
        try:
            await ctx.race(closer)
        except ContextCancelledError:
            pass
        finally:
            closer.cancel()
            self._server.close()
            await self._reject_pending(ctx)
            with suppress(TimeoutError):
                await asyncio.wait_for(self._server.wait_closed(), self._shutdown_timeout)
            self._server = None
            logger.info("http.server_stopped")

    async def _reject_pending(self, ctx: Context) -> None:
        """Answer requests no receiver picked up with 503."""
        while not self._incoming.empty():
            inbound = self._incoming.get_nowait()
            await inbound.respond(ctx, None, Result.retriable("server shutting down"))

    async def respond(self, ctx: Context) -> tuple[Message, ResponseFn | None]:
        if self._closed.is_set():
            raise EOFError
        getter = asyncio.ensure_future(self._incoming.get())
        closer = asyncio.ensure_future(self._closed.wait())
        try:
            await ctx.race(asyncio.wait({getter, closer}, return_when=asyncio.FIRST_COMPLETED))
        except ContextCancelledError:
            if getter.done() and not getter.cancelled():
                self._incoming.put_nowait(getter.result())
            raise EOFError from None
        finally:
            closer.cancel()
            if not getter.done():
                getter.cancel()
        if not getter.done() or getter.cancelled():
            raise EOFError
        inbound = getter.result()
        return inbound.message, inbound.respond

    async def receive(self, ctx: Context) -> Message:
        message, respond = await self.respond(ctx)

        async def _finished(err: BaseException | None) -> None:
            if respond is not None:
                await respond(ctx, None, err)

        return with_finish(message, _finished)

    async def close(self, ctx: Context) -> None:
        self._closed.set()
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        try:
            parsed = await self._read_request(reader)
            if parsed is None:
                await self._write(writer, 400, httpx.Headers(), b"malformed request")
                return
            method, path, headers, body = parsed
            if path.split("?", 1)[0] != self._path:
                await self._write(writer, 404, httpx.Headers(), b"")
                return
            peer = writer.get_extra_info("peername")
            info = RequestInfo(method, path, headers, str(peer) if peer else None)
            await self._dispatch(writer, info, body)
        except Exception:
            logger.debug("http.request_error", exc_info=True)
            with suppress(Exception):
                await self._write(writer, 500, httpx.Headers(), b"internal server error")
        finally:
            with suppress(Exception):
                writer.close()
                await writer.wait_closed()

    async def _dispatch(self, writer: asyncio.StreamWriter, info: RequestInfo, body: bytes) -> None:
        finish_err: list[BaseException | None] = [None]

        def _record(err: BaseException | None) -> None:
            finish_err[0] = err

        message = HTTPMessage(info.headers, body, on_finish=_record)
        message.protocol_context = info
        if message.read_encoding() == Encoding.UNKNOWN:
            logger.warning("http.unknown_encoding", path=info.path)
            await self._write(writer, 400, httpx.Headers(), b"unknown message encoding")
            return

        done = asyncio.Event()

        async def _respond(
            ctx: Context, reply: Message | None, result: BaseException | None
        ) -> None:
            if done.is_set():
                return
            try:
                outcome = result if result is not None else finish_err[0]
                status = status_for(outcome)
                if reply is not None:
                    headers, payload, _ = write_headers_and_body(ctx, reply)
                    await reply.finish(None)
                else:
                    headers, payload = httpx.Headers(), b""
                await self._write(writer, status, headers, payload)
            finally:
                done.set()

        await self._incoming.put(_Inbound(message, _respond, done, info))
        closer = asyncio.ensure_future(self._closed.wait())
        waiter = asyncio.ensure_future(done.wait())
        try:
            await asyncio.wait({closer, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            closer.cancel()
            waiter.cancel()
        if not done.is_set():
            await self._write(writer, 503, httpx.Headers(), b"shutting down")

    @staticmethod
    async def _read_request(
        reader: asyncio.StreamReader,
    ) -> tuple[str, str, httpx.Headers, bytes] | None:
        request_line = await asyncio.wait_for(reader.readline(), timeout=5.0)
        parts = request_line.decode("latin-1").strip().split()
        if len(parts) < 2:
            return None
        method, path = parts[0], parts[1]
        headers = httpx.Headers()
        for _ in range(_MAX_HEADER_LINES):
            line = await asyncio.wait_for(reader.readline(), timeout=5.0)
            text = line.decode("latin-1").rstrip("\r\n")
            if not text:
                break
            name, sep, value = text.partition(":")
            if not sep:
                return None
            headers[name.strip()] = value.strip()
        if "chunked" in headers.get("transfer-encoding", "").lower():
            chunked = await HTTPProtocol._read_chunked(reader)
            if chunked is None:
                return None
            return method, path, headers, chunked
        length = int(headers.get("content-length", "0") or "0")
        body = await reader.readexactly(length) if length > 0 else b""
        return method, path, headers, body

    @staticmethod
    async def _read_chunked(reader: asyncio.StreamReader) -> bytes | None:
        """Decode a ``Transfer-Encoding: chunked`` body; ``None`` when malformed."""
        chunks: list[bytes] = []
        while True:
            line = await asyncio.wait_for(reader.readline(), timeout=5.0)
            try:
                size = int(line.split(b";", 1)[0].strip(), 16)
            except ValueError:
                return None
            if size < 0:
                return None
            if size == 0:
                break
            chunks.append(await reader.readexactly(size))
            if (await reader.readline()).strip():
                return None
        # trailer section ends with an empty line
        for _ in range(_MAX_HEADER_LINES):
            line = await asyncio.wait_for(reader.readline(), timeout=5.0)
            if not line.strip():
                break
        return b"".join(chunks)

    @staticmethod
    async def _write(
        writer: asyncio.StreamWriter, status: int, headers: httpx.Headers, body: bytes
    ) -> None:
        try:
            reason = http.HTTPStatus(status).phrase
        except ValueError:
            reason = "Unknown"
        lines = [f"HTTP/1.1 {status} {reason}"]
        for name, value in headers.items():
            if name.lower() in ("content-length", "connection"):
                continue
            lines.append(f"{name}: {value}")
        lines.append(f"Content-Length: {len(body)}")
        lines.append("Connection: close")
        head = "\r\n".join(lines) + "\r\n\r\n"
        writer.write(head.encode("latin-1") + body)
        await writer.drain()
