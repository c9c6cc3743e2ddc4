"""Unit tests for the HTTP binding and protocol."""

from __future__ import annotations

import asyncio
import time

import httpx
import pytest
import respx

from ce_platform.binding.encoding import with_force_structured
from ce_platform.binding.event_message import EventMessage
from ce_platform.binding.spec import Kind
from ce_platform.binding.to_event import to_event
from ce_platform.client import Client
from ce_platform.context import (
    Context,
    background,
    protocol_context_from,
    with_cancel,
    with_header_overrides,
    with_retries_constant_backoff,
    with_target,
)
from ce_platform.event import Event
from ce_platform.protocol import Result, RetriesResult, is_ack, is_retriable
from ce_platform.protocol.http import (
    HTTPMessage,
    HTTPProtocol,
    HTTPResult,
    RequestInfo,
    write_headers_and_body,
    write_request,
)
from ce_platform.testing import (
    MockBinaryMessage,
    assert_event_equals,
    copy_event_with_string_extensions,
    events,
    full_event,
)


def _event() -> Event:
    event = Event()
    event.id = "abc"
    event.source = "/x"
    event.type = "t"
    return event


class _BrokenBinaryMessage(MockBinaryMessage):
    def read_binary(self, ctx, writer):
        writer.set_attribute(*self.get_attribute(Kind.SPECVERSION))
        raise OSError("read failed")


class TestHTTPBinding:
    def test_minimal_binary_request(self):
        request = write_request(background(), EventMessage(_event()), "http://sink/")
        assert request.headers["Ce-Id"] == "abc"
        assert request.headers["Ce-Source"] == "/x"
        assert request.headers["Ce-Type"] == "t"
        assert request.headers["Ce-Specversion"] == "1.0"
        assert "content-type" not in request.headers
        assert request.content == b""
        assert_event_equals(_event(), to_event(background(), HTTPMessage.from_request(request)))

    def test_structured_request(self):
        event = _event()
        event.set_data("application/json", {"hello": "world"})
        ctx = with_force_structured(background())
        request = write_request(ctx, EventMessage(event), "http://sink/")
        assert request.headers["content-type"] == "application/cloudevents+json"
        assert request.content == (
            b'{"data":{"hello":"world"},"datacontenttype":"application/json",'
            b'"id":"abc","source":"/x","specversion":"1.0","type":"t"}'
        )
        assert_event_equals(event, to_event(background(), HTTPMessage.from_request(request)))

    def test_binary_round_trip_corpus(self):
        for event in events():
            headers, body, _ = write_headers_and_body(background(), EventMessage(event))
            decoded = to_event(background(), HTTPMessage(headers, body))
            assert_event_equals(copy_event_with_string_extensions(event), decoded)

    def test_datacontenttype_uses_content_type_header(self):
        headers, _, _ = write_headers_and_body(background(), EventMessage(full_event()))
        assert headers["Content-Type"] == "application/json"
        assert "ce-datacontenttype" not in headers

    def test_specversion_header_forces_binary(self):
        message = HTTPMessage(
            {"ce-specversion": "1.0", "content-type": "application/cloudevents+json"}, b"{}"
        )
        assert message.read_encoding() == "binary"

    def test_unknown_encoding(self):
        assert HTTPMessage({"content-type": "text/plain"}, b"hi").read_encoding() == "unknown"

    def test_header_overrides_lose_to_event_headers(self):
        ctx = with_header_overrides(background(), {"X-Trace": "1", "Ce-Id": "wrong"})
        request = write_request(
            ctx, EventMessage(_event()), "http://sink/", headers={"Authorization": "Bearer t"}
        )
        assert request.headers["X-Trace"] == "1"
        assert request.headers["Authorization"] == "Bearer t"
        assert request.headers["Ce-Id"] == "abc"

    @pytest.mark.asyncio
    async def test_message_finish_once(self):
        calls = []
        message = HTTPMessage({"ce-specversion": "1.0"}, on_finish=calls.append)
        await message.finish(None)
        await message.finish(ValueError("late"))
        assert calls == [None]


@pytest.mark.asyncio
class TestHTTPSender:
    async def test_send_posts_binary_event(self, respx_mock: respx.MockRouter):
        route = respx_mock.post("http://sink/").mock(return_value=httpx.Response(202))
        protocol = HTTPProtocol("http://sink/")
        try:
            result = await protocol.send(background(), EventMessage(_event()))
        finally:
            await protocol.close(background())
        assert isinstance(result, HTTPResult)
        assert result.status_code == 202
        assert is_ack(result)
        assert route.calls[0].request.headers["ce-id"] == "abc"

    async def test_context_target_wins(self, respx_mock: respx.MockRouter):
        route = respx_mock.post("http://other/").mock(return_value=httpx.Response(200))
        protocol = HTTPProtocol("http://sink/")
        try:
            await protocol.send(with_target(background(), "http://other/"), EventMessage(_event()))
        finally:
            await protocol.close(background())
        assert route.called

    async def test_no_target_is_fatal(self):
        protocol = HTTPProtocol()
        result = await protocol.send(background(), EventMessage(_event()))
        assert result is not None
        assert result.kind == "fatal"

    async def test_write_failure_finishes_message_once(self):
        source = _BrokenBinaryMessage(_event())
        protocol = HTTPProtocol("http://sink/")
        with pytest.raises(OSError, match="read failed"):
            await protocol.send(background(), source)
        assert len(source.finished) == 1
        assert isinstance(source.finished[0], OSError)

    async def test_transport_error_is_retriable(self, respx_mock: respx.MockRouter):
        respx_mock.post("http://sink/").mock(side_effect=httpx.ConnectError("refused"))
        protocol = HTTPProtocol("http://sink/")
        try:
            result = await protocol.send(background(), EventMessage(_event()))
        finally:
            await protocol.close(background())
        assert is_retriable(result)

    async def test_request_returns_reply_event(self, respx_mock: respx.MockRouter):
        respx_mock.post("http://sink/").mock(
            return_value=httpx.Response(
                200,
                headers={"ce-specversion": "1.0", "ce-id": "r1", "ce-source": "/r", "ce-type": "reply"},
            )
        )
        protocol = HTTPProtocol("http://sink/")
        try:
            reply, result = await protocol.request(background(), EventMessage(_event()))
        finally:
            await protocol.close(background())
        assert is_ack(result)
        assert reply is not None
        assert to_event(background(), reply).id == "r1"

    async def test_retry_on_503(self, respx_mock: respx.MockRouter):
        route = respx_mock.post("http://sink/").mock(return_value=httpx.Response(503))
        client = Client(HTTPProtocol("http://sink/"))
        ctx = with_retries_constant_backoff(background(), 0.01, 3)
        started = time.monotonic()
        result = await client.send(ctx, _event())
        elapsed = time.monotonic() - started
        await client.closer.close(background())

        assert route.call_count == 3
        assert elapsed >= 0.02
        assert isinstance(result, RetriesResult)
        assert result.retries == 2
        assert isinstance(result.result, HTTPResult)
        assert result.result.status_code == 503

    async def test_nack_not_retried(self, respx_mock: respx.MockRouter):
        route = respx_mock.post("http://sink/").mock(return_value=httpx.Response(400))
        client = Client(HTTPProtocol("http://sink/"))
        ctx = with_retries_constant_backoff(background(), 0.01, 3)
        result = await client.send(ctx, _event())
        await client.closer.close(background())
        assert route.call_count == 1
        assert result is not None
        assert result.kind == "nack"


async def _serving(protocol: HTTPProtocol):
    ctx, cancel = with_cancel(background())
    task = asyncio.create_task(protocol.open_inbound(ctx))
    for _ in range(100):
        if protocol._server is not None:
            break
        await asyncio.sleep(0.01)
    return task, cancel


@pytest.mark.asyncio
class TestHTTPInbound:
    async def test_receive_and_ack(self):
        protocol = HTTPProtocol(host="127.0.0.1", port=0)
        task, cancel = await _serving(protocol)
        try:
            async with httpx.AsyncClient(trust_env=False) as http:
                headers, body, _ = write_headers_and_body(background(), EventMessage(full_event()))
                post = asyncio.create_task(
                    http.post(f"http://127.0.0.1:{protocol.port}/", headers=headers, content=body)
                )
                message = await protocol.receive(background())
                assert_event_equals(full_event(), to_event(background(), message))
                assert message.get_wrapped_message().protocol_context.method == "POST"
                await message.finish(None)
                response = await post
            assert response.status_code == 200
        finally:
            cancel()
            await task

    async def test_nack_maps_to_400(self):
        protocol = HTTPProtocol(host="127.0.0.1", port=0)
        task, cancel = await _serving(protocol)
        try:
            async with httpx.AsyncClient(trust_env=False) as http:
                headers, body, _ = write_headers_and_body(background(), EventMessage(_event()))
                post = asyncio.create_task(
                    http.post(f"http://127.0.0.1:{protocol.port}/", headers=headers, content=body)
                )
                message = await protocol.receive(background())
                await message.finish(Result.nack("rejected"))
                response = await post
            assert response.status_code == 400
        finally:
            cancel()
            await task

    async def test_respond_with_event(self):
        protocol = HTTPProtocol(host="127.0.0.1", port=0)
        task, cancel = await _serving(protocol)
        try:
            async with httpx.AsyncClient(trust_env=False) as http:
                headers, body, _ = write_headers_and_body(background(), EventMessage(_event()))
                post = asyncio.create_task(
                    http.post(f"http://127.0.0.1:{protocol.port}/", headers=headers, content=body)
                )
                message, respond = await protocol.respond(background())
                assert respond is not None
                reply = _event()
                reply.type = "reply"
                await respond(background(), EventMessage(reply), None)
                await message.finish(None)
                response = await post
            assert response.status_code == 200
            assert response.headers["ce-type"] == "reply"
        finally:
            cancel()
            await task

    async def test_wrong_path_is_404(self):
        protocol = HTTPProtocol(host="127.0.0.1", port=0, path="/events")
        task, cancel = await _serving(protocol)
        try:
            async with httpx.AsyncClient(trust_env=False) as http:
                response = await http.post(f"http://127.0.0.1:{protocol.port}/other", content=b"")
            assert response.status_code == 404
        finally:
            cancel()
            await task

    async def test_not_a_cloudevent_is_400(self):
        protocol = HTTPProtocol(host="127.0.0.1", port=0)
        task, cancel = await _serving(protocol)
        try:
            async with httpx.AsyncClient(trust_env=False) as http:
                response = await http.post(
                    f"http://127.0.0.1:{protocol.port}/",
                    headers={"content-type": "text/plain"},
                    content=b"hello",
                )
            assert response.status_code == 400
        finally:
            cancel()
            await task

    async def test_chunked_structured_body(self):
        protocol = HTTPProtocol(host="127.0.0.1", port=0)
        task, cancel = await _serving(protocol)
        ctx = with_force_structured(background())
        headers, body, _ = write_headers_and_body(ctx, EventMessage(full_event()))

        async def _chunks():
            yield body[:10]
            yield body[10:]

        try:
            async with httpx.AsyncClient(trust_env=False) as http:
                post = asyncio.create_task(
                    http.post(
                        f"http://127.0.0.1:{protocol.port}/", headers=headers, content=_chunks()
                    )
                )
                message = await protocol.receive(background())
                assert_event_equals(full_event(), to_event(background(), message))
                await message.finish(None)
                response = await post
            assert response.status_code == 200
        finally:
            cancel()
            await task

    async def test_malformed_chunk_is_400(self):
        protocol = HTTPProtocol(host="127.0.0.1", port=0)
        task, cancel = await _serving(protocol)
        try:
            reader, writer = await asyncio.open_connection("127.0.0.1", protocol.port)
            writer.write(
                b"POST / HTTP/1.1\r\nHost: sink\r\nTransfer-Encoding: chunked\r\n\r\nzz\r\n"
            )
            await writer.drain()
            status_line = await reader.readline()
            writer.close()
            assert status_line.startswith(b"HTTP/1.1 400")
        finally:
            cancel()
            await task

    async def test_client_callback_sees_request(self):
        protocol = HTTPProtocol(host="127.0.0.1", port=0)
        seen: list[RequestInfo] = []

        def _on_event(ctx: Context, event: Event) -> None:
            seen.append(protocol_context_from(ctx))

        ctx, cancel = with_cancel(background())
        receiver = asyncio.create_task(Client(protocol).start_receiver(ctx, _on_event))
        try:
            for _ in range(100):
                if protocol._server is not None:
                    break
                await asyncio.sleep(0.01)
            headers, body, _ = write_headers_and_body(background(), EventMessage(_event()))
            async with httpx.AsyncClient(trust_env=False) as http:
                response = await http.post(
                    f"http://127.0.0.1:{protocol.port}/", headers=headers, content=body
                )
            assert response.status_code == 200
        finally:
            cancel()
            await receiver
        assert seen[0].method == "POST"
        assert seen[0].path == "/"

    async def test_close_ends_respond(self):
        protocol = HTTPProtocol(host="127.0.0.1", port=0)
        task, cancel = await _serving(protocol)
        await protocol.close(background())
        with pytest.raises(EOFError):
            await protocol.respond(background())
        cancel()
        await task
