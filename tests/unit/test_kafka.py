"""Unit tests for the Kafka binding, sender and receiver."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from confluent_kafka import KafkaError

from ce_platform.binding.encoding import with_force_structured
from ce_platform.binding.event_message import EventMessage
from ce_platform.binding.spec import Kind
from ce_platform.binding.to_event import to_event
from ce_platform.config.models import KafkaConfig
from ce_platform.context import background, with_message_key, with_topic
from ce_platform.event import Event
from ce_platform.protocol import Result, ResultKind, is_nack, is_retriable
from ce_platform.protocol.kafka import (
    KafkaMessage,
    KafkaProtocol,
    KafkaReceiver,
    KafkaSender,
    ProducerMessage,
    delivery_result,
    write_producer_message,
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
    event.set_extension("partitionkey", "k1")
    return event


def _record(
    headers: list[tuple[str, bytes]],
    value: bytes | None = None,
    key: bytes | None = None,
    error: KafkaError | None = None,
) -> MagicMock:
    record = MagicMock()
    record.headers.return_value = headers
    record.value.return_value = value
    record.key.return_value = key
    record.error.return_value = error
    record.topic.return_value = "events"
    record.partition.return_value = 0
    record.offset.return_value = 7
    return record


def _producer(err: KafkaError | None = None) -> MagicMock:
    producer = MagicMock()

    def _produce(**kwargs):
        kwargs["on_delivery"](err, MagicMock())

    producer.produce.side_effect = _produce
    producer.flush.return_value = 0
    return producer


class _BrokenBinaryMessage(MockBinaryMessage):
    def read_binary(self, ctx, writer):
        writer.set_attribute(*self.get_attribute(Kind.SPECVERSION))
        raise OSError("read failed")


class TestKafkaBinding:
    def test_binary_with_partition_key(self):
        record = write_producer_message(background(), EventMessage(_event()), ProducerMessage("events"))
        assert record.key == b"k1"
        assert record.header("ce_id") == b"abc"
        assert record.header("ce_partitionkey") == b"k1"
        assert record.header("ce_specversion") == b"1.0"
        assert record.value is None

    def test_structured_keeps_partition_key(self):
        ctx = with_force_structured(background())
        record = write_producer_message(ctx, EventMessage(_event()), ProducerMessage("events"))
        assert record.key == b"k1"
        assert record.header("ce_partitionkey") is None
        assert b'"partitionkey":"k1"' in record.value

    def test_message_key_from_context_wins(self):
        ctx = with_message_key(background(), "other")
        record = write_producer_message(ctx, EventMessage(_event()), ProducerMessage("events"))
        assert record.key == b"other"

    def test_structured(self):
        ctx = with_force_structured(background())
        record = write_producer_message(ctx, EventMessage(full_event()), ProducerMessage("events"))
        assert record.header("content-type") == b"application/cloudevents+json"
        assert record.header("ce_id") is None
        decoded = to_event(background(), KafkaMessage(_record(record.headers, record.value)))
        assert_event_equals(full_event(), decoded)

    def test_binary_round_trip_corpus(self):
        for event in events():
            record = write_producer_message(background(), EventMessage(event), ProducerMessage("t"))
            decoded = to_event(background(), KafkaMessage(_record(record.headers, record.value)))
            assert_event_equals(copy_event_with_string_extensions(event), decoded)

    def test_record_key_becomes_partitionkey(self):
        message = KafkaMessage(
            _record(
                [("ce_specversion", b"1.0"), ("ce_id", b"1"), ("ce_source", b"/s"), ("ce_type", b"t")],
                key=b"from-key",
            )
        )
        assert message.get_extension("partitionkey") == "from-key"
        assert to_event(background(), message).extension("partitionkey") == "from-key"

    def test_headers_case_insensitive(self):
        message = KafkaMessage(_record([("CE_SPECVERSION", b"1.0"), ("Content-Type", b"text/plain")]))
        assert message.read_encoding() == "binary"
        _, value = message.get_attribute(Kind.DATACONTENTTYPE)
        assert value == "text/plain"

    def test_unknown_encoding(self):
        assert KafkaMessage(_record([])).read_encoding() == "unknown"


class TestDeliveryResult:
    def test_success(self):
        assert delivery_result(None) is None

    def test_retriable_error(self):
        err = MagicMock()
        err.retriable.return_value = True
        err.str.return_value = "timed out"
        assert is_retriable(delivery_result(err))

    def test_fatal_error_is_nack(self):
        err = MagicMock()
        err.retriable.return_value = False
        err.str.return_value = "too large"
        assert is_nack(delivery_result(err))


@pytest.mark.asyncio
class TestKafkaSender:
    async def test_send_produces_record(self):
        producer = _producer()
        sender = KafkaSender(producer, "events")
        source = EventMessage(_event())
        result = await sender.send(background(), source)
        assert result is None
        kwargs = producer.produce.call_args.kwargs
        assert kwargs["topic"] == "events"
        assert kwargs["key"] == b"k1"
        assert ("ce_partitionkey", b"k1") in kwargs["headers"]

    async def test_topic_from_context(self):
        producer = _producer()
        sender = KafkaSender(producer)
        await sender.send(with_topic(background(), "other"), EventMessage(_event()))
        assert producer.produce.call_args.kwargs["topic"] == "other"

    async def test_no_topic_is_fatal(self):
        sender = KafkaSender(_producer())
        result = await sender.send(background(), EventMessage(_event()))
        assert isinstance(result, Result)
        assert result.kind == ResultKind.FATAL

    async def test_delivery_failure(self):
        err = MagicMock()
        err.retriable.return_value = True
        err.str.return_value = "broker down"
        sender = KafkaSender(_producer(err), "events")
        assert is_retriable(await sender.send(background(), EventMessage(_event())))

    async def test_queue_full_is_retriable(self):
        producer = MagicMock()
        producer.produce.side_effect = BufferError("full")
        sender = KafkaSender(producer, "events")
        assert is_retriable(await sender.send(background(), EventMessage(_event())))

    async def test_writer_failure_finishes_message_once(self):
        producer = _producer()
        source = _BrokenBinaryMessage(_event())
        with pytest.raises(OSError, match="read failed"):
            await KafkaSender(producer, "events").send(background(), source)
        assert len(source.finished) == 1
        assert isinstance(source.finished[0], OSError)
        producer.produce.assert_not_called()

    async def test_close_flushes(self):
        producer = _producer()
        await KafkaSender(producer, "events").close(background())
        producer.flush.assert_called_once()


@pytest.mark.asyncio
class TestKafkaReceiver:
    async def test_receive_and_commit_on_ack(self):
        record = _record(
            [("ce_specversion", b"1.0"), ("ce_id", b"1"), ("ce_source", b"/s"), ("ce_type", b"t")]
        )
        consumer = MagicMock()
        consumer.poll.side_effect = [None, record]
        receiver = KafkaReceiver(consumer, ["events"], poll_timeout_seconds=0.01)

        message = await receiver.receive(background())
        consumer.subscribe.assert_called_once_with(["events"])
        assert to_event(background(), message).id == "1"
        await message.finish(None)
        consumer.commit.assert_called_once_with(message=record, asynchronous=True)

    async def test_nack_does_not_commit(self):
        record = _record([("ce_specversion", b"1.0")])
        consumer = MagicMock()
        consumer.poll.return_value = record
        receiver = KafkaReceiver(consumer, ["events"])
        message = await receiver.receive(background())
        await message.finish(Result.nack("bad"))
        consumer.commit.assert_not_called()

    async def test_partition_eof_skipped(self):
        eof = MagicMock()
        eof.code.return_value = KafkaError._PARTITION_EOF
        record = _record([("ce_specversion", b"1.0")])
        consumer = MagicMock()
        consumer.poll.side_effect = [_record([], error=eof), record]
        receiver = KafkaReceiver(consumer, ["events"])
        message = await receiver.receive(background())
        assert message.read_encoding() == "binary"

    async def test_closed_receiver_raises_eof(self):
        consumer = MagicMock()
        receiver = KafkaReceiver(consumer, ["events"])
        await receiver.close(background())
        await receiver.close(background())
        consumer.close.assert_called_once()
        with pytest.raises(EOFError):
            await receiver.receive(background())


class TestKafkaProtocol:
    def test_receiver_requires_topics(self):
        with pytest.raises(ValueError, match="topics"):
            KafkaProtocol(KafkaConfig()).receiver
