"""In-memory, re-readable copies of messages."""

from __future__ import annotations

import io
from typing import IO, TYPE_CHECKING, Any

from ce_platform.binding.encoding import Encoding
from ce_platform.binding.event_message import EventMessage
from ce_platform.binding.finish import with_finish
from ce_platform.binding.message import BinaryWriter, Message, StructuredWriter
from ce_platform.binding.spec import Attribute, Kind
from ce_platform.binding.to_event import to_event
from ce_platform.binding.transformer import Transformer
from ce_platform.context import Context
from ce_platform.exceptions import NotBinaryError, NotStructuredError, UnknownEncodingError

if TYPE_CHECKING:
    from ce_platform.binding.format import Format


class StructuredBufferMessage:
    """A structured event held in memory. ``finish`` is a no-op."""

    def __init__(self, fmt: Format | None = None, body: bytes = b"") -> None:
        self.format = fmt
        self.body = body

    # StructuredWriter
    def set_structured_event(self, ctx: Context, fmt: Format, event: IO[bytes]) -> None:
        self.format = fmt
        self.body = event.read()

    def read_encoding(self) -> Encoding:
        return Encoding.STRUCTURED

    def read_structured(self, ctx: Context, writer: StructuredWriter) -> None:
        if self.format is None:
            raise NotStructuredError()
        writer.set_structured_event(ctx, self.format, io.BytesIO(self.body))

    def read_binary(self, ctx: Context, writer: BinaryWriter) -> None:
        raise NotBinaryError()

    async def finish(self, err: BaseException | None) -> None:
        return None


class BinaryBufferMessage:
    """Binary attributes, extensions and data held in memory.

    Attributes replay in the order they were written, so ``specversion``
    stays first.  ``finish`` is a no-op.
    """

    def __init__(self) -> None:
        self.attributes: dict[str, tuple[Attribute, Any]] = {}
        self.extensions: dict[str, Any] = {}
        self.body: bytes | None = None

    # BinaryWriter
    def start(self, ctx: Context) -> None:
        return None

    def set_attribute(self, attribute: Attribute, value: Any) -> None:
        if value is None:
            self.attributes.pop(attribute.name, None)
        else:
            self.attributes[attribute.name] = (attribute, value)

    def set_extension(self, name: str, value: Any) -> None:
        if value is None:
            self.extensions.pop(name, None)
        else:
            self.extensions[name] = value

    def set_data(self, data: IO[bytes]) -> None:
        self.body = data.read()

    def end(self, ctx: Context) -> None:
        return None

    # MessageMetadataReader
    def get_attribute(self, kind: Kind) -> tuple[Attribute | None, Any]:
        for attr, value in self.attributes.values():
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
        for attr, value in self.attributes.values():
            writer.set_attribute(attr, value)
        for name, value in self.extensions.items():
            writer.set_extension(name, value)
        if self.body:
            writer.set_data(io.BytesIO(self.body))

    async def finish(self, err: BaseException | None) -> None:
        return None


def copy_message(ctx: Context, message: Message, *transformers: Transformer) -> Message:
    """Read *message* once into a re-readable in-memory copy.

    The original is not finished; the copy's ``finish`` does nothing.
    """
    encoding = message.read_encoding()
    if encoding == Encoding.STRUCTURED and not transformers:
        structured = StructuredBufferMessage()
        message.read_structured(ctx, structured)
        return structured
    if encoding == Encoding.BINARY and not transformers:
        binary = BinaryBufferMessage()
        message.read_binary(ctx, binary)
        return binary
    if encoding == Encoding.UNKNOWN:
        raise UnknownEncodingError()
    event = to_event(ctx, message, *transformers)
    return EventMessage(event.clone())


def buffer_message(ctx: Context, message: Message, *transformers: Transformer) -> Message:
    """Like :func:`copy_message`, but finishing the copy finishes *message*."""
    copied = copy_message(ctx, message, *transformers)
    return with_finish(copied, message.finish)
