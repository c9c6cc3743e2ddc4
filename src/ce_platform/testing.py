"""Reusable fixtures for binding and protocol tests.

``events()`` is a small corpus covering both spec versions; the mock
messages present an event in exactly one encoding so tests can check
that bindings preserve it.
"""

from __future__ import annotations

import io
from typing import IO, Any

from ce_platform import types
from ce_platform.binding.encoding import Encoding
from ce_platform.binding.format import JSON, Format
from ce_platform.binding.message import BinaryWriter, StructuredWriter
from ce_platform.binding.spec import VS, Attribute, Kind
from ce_platform.context import Context
from ce_platform.event.event import Event
from ce_platform.event.eventcontext import VERSION_V03, VERSION_V1
from ce_platform.exceptions import NotBinaryError, NotStructuredError


class MockStructuredMessage:
    """A structured-mode message holding the JSON form of an event."""

    def __init__(self, event: Event, fmt: Format = JSON) -> None:
        self.format = fmt
        self.body = fmt.marshal(event)
        self.finished: list[BaseException | None] = []

    def read_encoding(self) -> Encoding:
        return Encoding.STRUCTURED

    def read_structured(self, ctx: Context, writer: StructuredWriter) -> None:
        writer.set_structured_event(ctx, self.format, io.BytesIO(self.body))

    def read_binary(self, ctx: Context, writer: BinaryWriter) -> None:
        raise NotBinaryError()

    async def finish(self, err: BaseException | None) -> None:
        self.finished.append(err)


class MockBinaryMessage:
    """A binary-mode message; also a ``BinaryWriter`` that records what it is given."""

    def __init__(self, event: Event | None = None) -> None:
        self.metadata: dict[Attribute, Any] = {}
        self.extensions: dict[str, Any] = {}
        self.body = b""
        self.finished: list[BaseException | None] = []
        if event is None:
            return
        for attr in VS.version(event.specversion).attributes():
            value = attr.get(event.context)
            if value is not None:
                self.metadata[attr] = value
        self.extensions = dict(event.extensions)
        self.body = event.data or b""

    # BinaryWriter
    def start(self, ctx: Context) -> None:
        self.metadata = {}
        self.extensions = {}

    def set_attribute(self, attribute: Attribute, value: Any) -> None:
        self.metadata[attribute] = value

    def set_extension(self, name: str, value: Any) -> None:
        self.extensions[name] = value

    def set_data(self, data: IO[bytes]) -> None:
        self.body = data.read()

    def end(self, ctx: Context) -> None:
        return None

    # MessageMetadataReader
    def get_attribute(self, kind: Kind) -> tuple[Attribute | None, Any]:
        for attr, value in self.metadata.items():
            if attr.kind == kind:
                return attr, value
        return None, None

    def get_extension(self, name: str) -> Any:
        return self.extensions.get(name)

    # Message
    def read_encoding(self) -> Encoding:
        return Encoding.BINARY

    def read_structured(self, ctx: Context, writer: StructuredWriter) -> None:
        raise NotStructuredError()

    def read_binary(self, ctx: Context, writer: BinaryWriter) -> None:
        spec = self.get_attribute(Kind.SPECVERSION)
        if spec[0] is not None:
            writer.set_attribute(spec[0], spec[1])
        for attr, value in self.metadata.items():
            if attr.kind != Kind.SPECVERSION:
                writer.set_attribute(attr, value)
        for name, value in self.extensions.items():
            writer.set_extension(name, value)
        if self.body:
            writer.set_data(io.BytesIO(self.body))

    async def finish(self, err: BaseException | None) -> None:
        self.finished.append(err)


def _base(specversion: str, suffix: str) -> Event:
    event = Event(specversion)
    event.id = f"id-{suffix}"
    event.source = "/mock/source"
    event.type = "com.example.mock"
    return event


def minimal_event(specversion: str = VERSION_V1) -> Event:
    return _base(specversion, "minimal")


def full_event(specversion: str = VERSION_V1) -> Event:
    event = _base(specversion, "full")
    event.subject = "topic"
    event.dataschema = "http://example.com/schema"
    event.time = "2020-03-21T12:34:56.78Z"
    event.set_data("application/json", {"hello": "world"})
    return event


def extensions_event(specversion: str = VERSION_V1) -> Event:
    event = _base(specversion, "extensions")
    event.set_extension("exstring", "aaa")
    event.set_extension("exint", 42)
    event.set_extension("exbool", True)
    event.set_extension("exurl", types.URI("http://example.com/ext"))
    return event


def binary_data_event(specversion: str = VERSION_V1) -> Event:
    event = _base(specversion, "binary")
    event.set_data("application/octet-stream", bytes(range(16)))
    return event


def text_data_event(specversion: str = VERSION_V1) -> Event:
    event = _base(specversion, "text")
    event.set_data("text/plain", "hello world")
    return event


def events() -> list[Event]:
    """Minimal, full, extensions, text data and binary data; v1.0 and v0.3."""
    out: list[Event] = []
    for specversion in (VERSION_V1, VERSION_V03):
        out.extend(
            [
                minimal_event(specversion),
                full_event(specversion),
                extensions_event(specversion),
                text_data_event(specversion),
                binary_data_event(specversion),
            ]
        )
    return out


def copy_event_with_string_extensions(event: Event) -> Event:
    """Clone *event* with every extension in its canonical string form.

    Binary-mode bindings carry extensions as strings, so this is what a
    round trip through headers yields.
    """
    out = event.clone()
    for name, value in event.extensions.items():
        out.set_extension(name, types.format(value))
    return out


def assert_event_equals(want: Event, have: Event) -> None:
    """Compare attributes, extensions and data bytes of two events."""
    assert want.specversion == have.specversion, (want.specversion, have.specversion)
    version = VS.version(want.specversion)
    for attr in version.attributes():
        w, h = attr.get(want.context), attr.get(have.context)
        assert w == h, f"attribute {attr.name} does not match: {w!r} != {h!r}"
    assert want.extensions == have.extensions, (want.extensions, have.extensions)
    assert (want.data or b"") == (have.data or b""), (want.data, have.data)
