"""Unit tests for the Client over in-process and fake protocols."""

from __future__ import annotations

import asyncio
import json

import pytest

from ce_platform.binding.message import Message
from ce_platform.binding.spec import Kind
from ce_platform.binding.to_event import to_event
from ce_platform.client import (
    Client,
    with_ack_malformed_event,
    with_blocking_callback,
    with_event_defaulter,
    with_force_structured,
    with_poll_workers,
    with_time_now,
    with_uuids,
)
from ce_platform.context import (
    Context,
    background,
    protocol_context_from,
    with_cancel,
    with_extension_overrides,
    with_retries_constant_backoff,
)
from ce_platform.event import Event
from ce_platform.exceptions import ValidationError
from ce_platform.protocol import Result, RetriesResult, is_ack, is_nack
from ce_platform.protocol.inproc import ChannelProtocol
from ce_platform.testing import MockBinaryMessage, full_event, minimal_event


def _event(**attrs) -> Event:
    event = Event()
    event.source = "/client/test"
    event.type = "com.example.test"
    for name, value in attrs.items():
        setattr(event, name, value)
    return event


class _ScriptedSender:
    """Returns the scripted results in order and records every attempt."""

    def __init__(self, *results: Result | None) -> None:
        self.results = list(results)
        self.attempts = 0

    async def send(self, ctx: Context, message: Message, *transformers) -> Result | None:
        self.attempts += 1
        await message.finish(None)
        return self.results.pop(0) if self.results else None


class _ListReceiver:
    """Hands out the given messages, then reports EOF."""

    def __init__(self, *messages: Message) -> None:
        self.messages = list(messages)
        self.closed = False

    async def receive(self, ctx: Context) -> Message:
        if not self.messages:
            raise EOFError
        return self.messages.pop(0)

    async def close(self, ctx: Context) -> None:
        self.closed = True


def _malformed() -> MockBinaryMessage:
    message = MockBinaryMessage(full_event())
    attr, _ = message.get_attribute(Kind.SOURCE)
    del message.metadata[attr]
    return message


class TestSend:
    async def test_defaulters_fill_id_and_time(self):
        channel = ChannelProtocol()
        client = Client(channel, with_uuids(), with_time_now())
        assert await client.send(background(), _event()) is None

        received = to_event(background(), await channel.receive(background()))
        assert received.id
        assert received.time is not None

    async def test_custom_defaulter_runs_in_order(self):
        def _tag(ctx, event):
            event = event.clone()
            event.set_extension("tagged", "yes")
            return event

        channel = ChannelProtocol()
        client = Client(channel, with_uuids(), with_event_defaulter(_tag))
        await client.send(background(), _event())
        received = to_event(background(), await channel.receive(background()))
        assert received.extension("tagged") == "yes"

    async def test_extension_overrides_from_context(self):
        channel = ChannelProtocol()
        client = Client(channel, with_uuids())
        event = _event()
        event.set_extension("tenant", "default")
        ctx = with_extension_overrides(background(), {"tenant": "acme", "region": "eu"})
        await client.send(ctx, event)

        received = to_event(background(), await channel.receive(background()))
        assert received.extension("tenant") == "acme"
        assert received.extension("region") == "eu"
        assert event.extension("tenant") == "default"

    async def test_invalid_extension_override_raises(self):
        client = Client(ChannelProtocol(), with_uuids())
        ctx = with_extension_overrides(background(), {"Bad-Name": "x"})
        with pytest.raises(ValidationError):
            await client.send(ctx, _event())

    async def test_invalid_event_raises(self):
        client = Client(ChannelProtocol())
        with pytest.raises(ValidationError):
            await client.send(background(), _event())

    async def test_outbound_context_decorator(self):
        channel = ChannelProtocol()
        client = Client(channel, with_uuids(), with_force_structured())
        await client.send(background(), _event())
        received = await channel.receive(background())
        assert received.read_encoding() == "structured"

    async def test_no_sender(self):
        with pytest.raises(RuntimeError, match="sender not set"):
            await Client(object()).send(background(), _event(id="1"))

    async def test_retries_until_success(self):
        sender = _ScriptedSender(Result.retriable("busy"), Result.retriable("busy"), None)
        client = Client(sender)
        ctx = with_retries_constant_backoff(background(), 0.001, 5)
        result = await client.send(ctx, _event(id="1"))
        assert isinstance(result, RetriesResult)
        assert result.retries == 2
        assert is_ack(result)
        assert sender.attempts == 3

    async def test_nack_is_not_retried(self):
        sender = _ScriptedSender(Result.nack("no"))
        client = Client(sender)
        ctx = with_retries_constant_backoff(background(), 0.001, 5)
        result = await client.send(ctx, _event(id="1"))
        assert is_nack(result)
        assert sender.attempts == 1


class TestRequest:
    async def test_request_reply(self):
        channel = ChannelProtocol()
        server = Client(channel, with_uuids())
        caller = Client(channel, with_uuids())

        def _reply(event: Event) -> Event:
            reply = _event(type="com.example.reply")
            reply.set_data("application/json", {"echo": event.id})
            return reply

        ctx, cancel = with_cancel(background())
        task = asyncio.create_task(server.start_receiver(ctx, _reply))
        try:
            reply, result = await caller.request(background(), _event(id="req-1"))
        finally:
            cancel()
            await task
        assert is_ack(result)
        assert reply is not None
        assert reply.type == "com.example.reply"
        assert reply.id
        assert json.loads(reply.data) == {"echo": "req-1"}

    async def test_request_nacked_by_callback(self):
        channel = ChannelProtocol()
        server = Client(channel)
        caller = Client(channel)

        ctx, cancel = with_cancel(background())
        task = asyncio.create_task(server.start_receiver(ctx, lambda event: Result.nack("no")))
        try:
            reply, result = await caller.request(background(), _event(id="1"))
        finally:
            cancel()
            await task
        assert reply is None
        assert is_nack(result)


class TestStartReceiver:
    async def test_callback_gets_event_and_message_is_acked(self):
        message = MockBinaryMessage(full_event())
        receiver = _ListReceiver(message)
        seen: list[Event] = []

        await Client(receiver).start_receiver(background(), seen.append)

        assert [e.id for e in seen] == [full_event().id]
        assert message.finished == [None]
        assert receiver.closed

    async def test_context_and_message_callback(self):
        message = MockBinaryMessage(minimal_event())
        seen: list[tuple[Context, Message]] = []

        async def _on_message(ctx: Context, msg: Message) -> None:
            seen.append((ctx, msg))

        await Client(_ListReceiver(message)).start_receiver(background(), _on_message)
        assert seen[0][1] is message

    async def test_protocol_context_reaches_callback(self):
        message = MockBinaryMessage(minimal_event())
        message.protocol_context = {"delivery": 7}
        seen: list[object] = []

        def _on_event(ctx: Context, event: Event) -> None:
            seen.append(protocol_context_from(ctx))

        await Client(_ListReceiver(message)).start_receiver(background(), _on_event)
        assert seen == [{"delivery": 7}]

    async def test_callback_error_finishes_message(self):
        message = MockBinaryMessage(full_event())

        def _fail(event):
            raise RuntimeError("boom")

        await Client(_ListReceiver(message)).start_receiver(background(), _fail)
        assert len(message.finished) == 1
        assert isinstance(message.finished[0], RuntimeError)

    async def test_malformed_event_is_nacked(self):
        message = _malformed()
        calls: list[Event] = []

        await Client(_ListReceiver(message)).start_receiver(background(), calls.append)

        assert calls == []
        assert len(message.finished) == 1
        assert isinstance(message.finished[0], ValidationError)

    async def test_malformed_event_is_acked_with_option(self):
        message = _malformed()
        calls: list[Event] = []

        client = Client(_ListReceiver(message), with_ack_malformed_event())
        await client.start_receiver(background(), calls.append)

        assert calls == []
        assert message.finished == [None]

    async def test_poll_workers_handle_concurrently(self):
        messages = [MockBinaryMessage(minimal_event()) for _ in range(6)]
        active = 0
        peak = 0

        async def _slow(event: Event) -> None:
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1

        await Client(_ListReceiver(*messages), with_poll_workers(3)).start_receiver(
            background(), _slow
        )
        assert all(m.finished == [None] for m in messages)
        assert peak > 1

    async def test_blocking_callback_serialises_handling(self):
        messages = [MockBinaryMessage(minimal_event()) for _ in range(4)]
        active = 0
        peak = 0

        async def _slow(event: Event) -> None:
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.005)
            active -= 1

        client = Client(_ListReceiver(*messages), with_blocking_callback())
        await client.start_receiver(background(), _slow)
        assert peak == 1
        assert all(m.finished == [None] for m in messages)

    async def test_invalid_callback_rejected(self):
        def _bad(a, b, c):
            return None

        with pytest.raises(TypeError):
            await Client(_ListReceiver()).start_receiver(background(), _bad)

    async def test_second_receiver_rejected(self):
        channel = ChannelProtocol()
        client = Client(channel)
        ctx, cancel = with_cancel(background())
        task = asyncio.create_task(client.start_receiver(ctx, lambda event: None))
        await asyncio.sleep(0)
        try:
            with pytest.raises(RuntimeError, match="already"):
                await client.start_receiver(background(), lambda event: None)
        finally:
            cancel()
            await task
        assert channel.closed

    async def test_no_receiver(self):
        with pytest.raises(RuntimeError, match="not set"):
            await Client(_ScriptedSender()).start_receiver(background(), lambda: None)

    async def test_cancel_stops_receiver(self):
        channel = ChannelProtocol()
        ctx, cancel = with_cancel(background())
        asyncio.get_running_loop().call_later(0.01, cancel)
        await Client(channel).start_receiver(ctx, lambda event: None)
        assert channel.closed
