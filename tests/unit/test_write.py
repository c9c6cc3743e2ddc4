"""Unit tests for the write pipeline, to_event and transformers."""

from __future__ import annotations

import pytest

from ce_platform.binding import transformer as tf
from ce_platform.binding.buffering import BinaryBufferMessage, StructuredBufferMessage
from ce_platform.binding.encoding import (
    Encoding,
    with_force_binary,
    with_force_structured,
    with_preferred_event_encoding,
)
from ce_platform.binding.event_message import EventMessage
from ce_platform.binding.spec import Kind
from ce_platform.binding.to_event import to_event
from ce_platform.binding.write import write
from ce_platform.context import background
from ce_platform.event import Event
from ce_platform.exceptions import NotBinaryError, UnknownEncodingError
from ce_platform.testing import (
    MockBinaryMessage,
    MockStructuredMessage,
    assert_event_equals,
    events,
    full_event,
    minimal_event,
)


class _UnknownMessage:
    def read_encoding(self):
        return Encoding.UNKNOWN

    def read_structured(self, ctx, writer):
        raise AssertionError("not readable")

    def read_binary(self, ctx, writer):
        raise AssertionError("not readable")

    async def finish(self, err):
        return None


class _RecordingWriter(BinaryBufferMessage):
    def __init__(self):
        super().__init__()
        self.calls: list[str] = []

    def start(self, ctx):
        self.calls.append("start")

    def set_attribute(self, attribute, value):
        self.calls.append(f"attr:{attribute.name}")
        super().set_attribute(attribute, value)

    def set_data(self, data):
        self.calls.append("data")
        super().set_data(data)

    def end(self, ctx):
        self.calls.append("end")


class _FailingWriter(_RecordingWriter):
    def __init__(self, fail_on: str):
        super().__init__()
        self.fail_on = fail_on

    def set_attribute(self, attribute, value):
        super().set_attribute(attribute, value)
        if self.calls[-1] == self.fail_on:
            raise OSError("disk full")

    def set_data(self, data):
        super().set_data(data)
        if self.fail_on == "data":
            raise OSError("disk full")


class _LyingBinaryMessage(_UnknownMessage):
    def read_encoding(self):
        return Encoding.BINARY

    def read_binary(self, ctx, writer):
        raise NotBinaryError()


class TestWriteEncodingPreservation:
    def test_structured_stays_structured(self):
        out = StructuredBufferMessage()
        binary = BinaryBufferMessage()
        encoding = write(background(), MockStructuredMessage(full_event()), out, binary)
        assert encoding == Encoding.STRUCTURED
        assert out.body == MockStructuredMessage(full_event()).body

    def test_binary_stays_binary(self):
        binary = BinaryBufferMessage()
        encoding = write(background(), MockBinaryMessage(full_event()), StructuredBufferMessage(), binary)
        assert encoding == Encoding.BINARY
        assert_event_equals(full_event(), to_event(background(), binary))

    def test_event_defaults_to_binary(self):
        encoding = write(
            background(), EventMessage(full_event()), StructuredBufferMessage(), BinaryBufferMessage()
        )
        assert encoding == Encoding.BINARY

    def test_event_preferred_structured(self):
        ctx = with_preferred_event_encoding(background(), Encoding.STRUCTURED)
        encoding = write(ctx, EventMessage(full_event()), StructuredBufferMessage(), BinaryBufferMessage())
        assert encoding == Encoding.STRUCTURED

    def test_force_binary_converts_structured(self):
        binary = BinaryBufferMessage()
        ctx = with_force_binary(background())
        encoding = write(ctx, MockStructuredMessage(full_event()), StructuredBufferMessage(), binary)
        assert encoding == Encoding.BINARY
        assert_event_equals(full_event(), to_event(background(), binary))

    def test_force_structured_converts_binary(self):
        out = StructuredBufferMessage()
        ctx = with_force_structured(background())
        encoding = write(ctx, MockBinaryMessage(full_event()), out, BinaryBufferMessage())
        assert encoding == Encoding.STRUCTURED
        assert_event_equals(full_event(), to_event(background(), out))

    def test_falls_back_to_available_writer(self):
        binary = BinaryBufferMessage()
        encoding = write(background(), MockStructuredMessage(full_event()), None, binary)
        assert encoding == Encoding.BINARY

    def test_unknown_encoding(self):
        with pytest.raises(UnknownEncodingError):
            write(background(), _UnknownMessage(), StructuredBufferMessage(), BinaryBufferMessage())

    def test_no_writer(self):
        with pytest.raises(UnknownEncodingError):
            write(background(), EventMessage(minimal_event()), None, None)


class TestBinaryWriterOrdering:
    def test_specversion_first_then_data_then_end(self):
        writer = _RecordingWriter()
        write(background(), EventMessage(full_event()), None, writer)
        assert writer.calls[0] == "start"
        assert writer.calls[1] == "attr:specversion"
        assert writer.calls[-2:] == ["data", "end"]

    def test_end_skipped_when_set_data_fails(self):
        writer = _FailingWriter(fail_on="data")
        with pytest.raises(OSError, match="disk full"):
            write(background(), EventMessage(full_event()), None, writer)
        assert writer.calls.count("start") == 1
        assert "end" not in writer.calls

    def test_end_skipped_when_set_attribute_fails_on_direct_copy(self):
        writer = _FailingWriter(fail_on="attr:type")
        with pytest.raises(OSError, match="disk full"):
            write(background(), MockBinaryMessage(full_event()), None, writer)
        assert writer.calls.count("start") == 1
        assert "end" not in writer.calls

    def test_not_binary_after_start_is_not_restarted(self):
        writer = _RecordingWriter()
        with pytest.raises(NotBinaryError):
            write(background(), _LyingBinaryMessage(), None, writer)
        assert writer.calls == ["start"]


class TestToEvent:
    def test_round_trip_structured_and_binary(self):
        for event in events():
            assert_event_equals(event, to_event(background(), MockStructuredMessage(event)))
            assert_event_equals(event, to_event(background(), MockBinaryMessage(event)))

    def test_event_message_returns_event(self):
        event = minimal_event()
        assert to_event(background(), EventMessage(event)) is event

    def test_unknown(self):
        with pytest.raises(UnknownEncodingError):
            to_event(background(), _UnknownMessage())


class TestTransformers:
    def test_add_uuid_only_when_missing(self):
        event = Event()
        event.source = "/x"
        event.type = "t"
        out = to_event(background(), MockBinaryMessage(event), tf.add_uuid())
        assert out.id

        kept = to_event(background(), MockBinaryMessage(minimal_event()), tf.add_uuid())
        assert kept.id == minimal_event().id

    def test_add_time_now(self):
        out = to_event(background(), EventMessage(minimal_event()), tf.add_time_now())
        assert out.time is not None

    def test_set_and_delete_attribute(self):
        out = to_event(
            background(),
            MockBinaryMessage(full_event()),
            tf.set_attribute(Kind.TYPE, "changed"),
            tf.delete_attribute(Kind.SUBJECT),
        )
        assert out.type == "changed"
        assert out.subject is None

    def test_update_attribute(self):
        out = to_event(
            background(),
            EventMessage(minimal_event()),
            tf.update_attribute(Kind.TYPE, lambda v: v + ".v2"),
        )
        assert out.type == "com.example.mock.v2"

    def test_extensions(self):
        out = to_event(
            background(),
            MockBinaryMessage(minimal_event()),
            tf.add_extension("a", "1"),
            tf.set_extension("b", "2"),
            tf.update_extension("a", lambda v: v + "!"),
        )
        assert out.extensions == {"a": "1!", "b": "2"}

    def test_delete_extension_and_overrides(self):
        event = minimal_event()
        event.set_extension("gone", "x")
        out = to_event(
            background(),
            EventMessage(event),
            tf.delete_extension("gone"),
            tf.set_extension_overrides({"forced": "y"}),
        )
        assert out.extensions == {"forced": "y"}

    def test_transformers_on_direct_binary_write(self):
        binary = BinaryBufferMessage()
        write(
            background(),
            MockBinaryMessage(minimal_event()),
            None,
            binary,
            tf.set_extension("added", "v"),
        )
        assert binary.get_extension("added") == "v"

    def test_transformers_force_structured_through_event(self):
        out = StructuredBufferMessage()
        write(
            background(),
            MockStructuredMessage(minimal_event()),
            out,
            None,
            tf.set_extension("added", "v"),
        )
        assert to_event(background(), out).extension("added") == "v"
