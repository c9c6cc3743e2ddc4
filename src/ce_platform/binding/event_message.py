"""Adapters between in-memory Events and the Message/writer contracts."""

from __future__ import annotations

import io
from typing import IO, TYPE_CHECKING, Any

from ce_platform import types
from ce_platform.binding.encoding import Encoding, format_for_event
from ce_platform.binding.message import BinaryWriter, StructuredWriter
from ce_platform.binding.spec import VS, Attribute, Kind
from ce_platform.context import Context
from ce_platform.event.eventcontext import VERSION_V03, VERSION_V1
from ce_platform.event.event import Event

if TYPE_CHECKING:
    from ce_platform.binding.format import Format


class EventMessage:
    """An Event presented as a Message. ``finish`` is a no-op."""

    __slots__ = ("event",)

    def __init__(self, event: Event) -> None:
        self.event = event

    def read_encoding(self) -> Encoding:
        return Encoding.EVENT

    def read_structured(self, ctx: Context, writer: StructuredWriter) -> None:
        fmt = format_for_event(ctx)
        writer.set_structured_event(ctx, fmt, io.BytesIO(fmt.marshal(self.event)))

    def read_binary(self, ctx: Context, writer: BinaryWriter) -> None:
        write_event_binary(self.event, writer)

    def get_attribute(self, kind: Kind) -> tuple[Attribute | None, Any]:
        attr = VS.version(self.event.specversion).attribute_from_kind(kind)
        if attr is None:
            return None, None
        return attr, attr.get(self.event.context)

    def get_extension(self, name: str) -> Any:
        return self.event.extension(name)

    async def finish(self, err: BaseException | None) -> None:
        return None

    def __repr__(self) -> str:
        return f"EventMessage({self.event!r})"


def to_message(event: Event) -> EventMessage:
    """Wrap *event* as a Message."""
    return EventMessage(event)


def write_event_binary(event: Event, writer: BinaryWriter) -> None:
    """Emit *event* into *writer*: specversion, attributes, extensions, data."""
    version = VS.version(event.specversion)
    specversion = version.attribute_from_kind(Kind.SPECVERSION)
    writer.set_attribute(specversion, event.specversion)
    for attr in version.attributes():
        if attr.kind == Kind.SPECVERSION:
            continue
        value = attr.get(event.context)
        if value is not None:
            writer.set_attribute(attr, value)
    for name, value in event.context.extensions.items():
        writer.set_extension(name, value)
    if event.data_encoded:
        writer.set_data(io.BytesIO(event.data_encoded))


class EventBuilder:
    """Writer that materialises whatever it is fed into an :class:`Event`.

    Satisfies the structured, binary and metadata writer contracts, so it
    can be the target of any read as well as of transformers.
    """

    __slots__ = ("event",)

    def __init__(self, event: Event | None = None) -> None:
        self.event = event if event is not None else Event()

    def set_structured_event(self, ctx: Context, fmt: Format, event: IO[bytes]) -> None:
        decoded = fmt.unmarshal(event.read())
        self.event.context = decoded.context
        self.event.data_encoded = decoded.data_encoded
        self.event.data_base64 = decoded.data_base64

    def start(self, ctx: Context) -> None:
        return None

    def set_attribute(self, attribute: Attribute, value: Any) -> None:
        if attribute.kind == Kind.SPECVERSION:
            version = types.to_string(value) if value is not None else VERSION_V1
            if version not in (VERSION_V03, VERSION_V1):
                msg = f"unrecognized event version {version}"
                raise ValueError(msg)
            self.event.specversion = version
            return
        target = VS.version(self.event.specversion).attribute_from_kind(attribute.kind)
        if target is None:
            return
        target.set(self.event.context, value)

    def set_extension(self, name: str, value: Any) -> None:
        self.event.context.set_extension(name, value)

    def set_data(self, data: IO[bytes]) -> None:
        payload = data.read()
        if payload:
            self.event.data_encoded = payload

    def end(self, ctx: Context) -> None:
        return None
