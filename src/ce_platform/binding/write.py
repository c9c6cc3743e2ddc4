"""The write pipeline: move a Message onto a protocol-native writer.

Structured and binary sources are copied straight to a writer of the same
kind when the context allows it; everything else goes through an Event.
"""

from __future__ import annotations

from ce_platform.binding.encoding import (
    Encoding,
    is_force_binary,
    is_force_structured,
    preferred_event_encoding,
)
from ce_platform.binding.event_message import EventMessage
from ce_platform.binding.message import (
    BinaryWriter,
    Message,
    MessageMetadataReader,
    StructuredWriter,
    unwrap,
)
from ce_platform.binding.to_event import to_event
from ce_platform.binding.transformer import Transformer, apply
from ce_platform.context import Context
from ce_platform.exceptions import NotStructuredError, UnknownEncodingError


def direct_write(
    ctx: Context,
    message: Message,
    structured_writer: StructuredWriter | None,
    binary_writer: BinaryWriter | None,
    *transformers: Transformer,
) -> Encoding:
    """Copy *message* to a writer of its own encoding, without an Event.

    Returns :attr:`Encoding.UNKNOWN` when no direct path applies.  Once
    ``start`` has been called, reader and writer errors propagate.
    """
    encoding = message.read_encoding()
    if (
        encoding == Encoding.STRUCTURED
        and structured_writer is not None
        and not transformers
        and not is_force_binary(ctx)
    ):
        try:
            message.read_structured(ctx, structured_writer)
        except NotStructuredError:
            pass
        else:
            return Encoding.STRUCTURED

    if (
        encoding == Encoding.BINARY
        and binary_writer is not None
        and not is_force_structured(ctx)
        and (not transformers or isinstance(unwrap(message), MessageMetadataReader))
    ):
        binary_writer.start(ctx)
        message.read_binary(ctx, binary_writer)
        if transformers:
            apply(transformers, unwrap(message), binary_writer)  # type: ignore[arg-type]
        binary_writer.end(ctx)
        return Encoding.BINARY

    return Encoding.UNKNOWN


def write(
    ctx: Context,
    message: Message,
    structured_writer: StructuredWriter | None,
    binary_writer: BinaryWriter | None,
    *transformers: Transformer,
) -> Encoding:
    """Write *message* to the best available writer and return the encoding used.

    Writer exceptions propagate; ``end`` is never called after one.  The
    caller still owns ``message.finish``.
    """
    encoding = message.read_encoding()
    if encoding == Encoding.UNKNOWN:
        raise UnknownEncodingError()
    if encoding != Encoding.EVENT:
        written = direct_write(ctx, message, structured_writer, binary_writer, *transformers)
        if written != Encoding.UNKNOWN:
            return written

    event = to_event(ctx, message, *transformers)
    event_message = EventMessage(event)

    if is_force_structured(ctx):
        prefer_structured = True
    elif is_force_binary(ctx):
        prefer_structured = False
    else:
        prefer_structured = (
            encoding == Encoding.STRUCTURED
            or (encoding == Encoding.EVENT and preferred_event_encoding(ctx) == Encoding.STRUCTURED)
        )

    if prefer_structured and structured_writer is not None:
        event_message.read_structured(ctx, structured_writer)
        return Encoding.STRUCTURED
    if binary_writer is not None:
        _write_binary(ctx, event_message, binary_writer)
        return Encoding.BINARY
    if structured_writer is not None:
        event_message.read_structured(ctx, structured_writer)
        return Encoding.STRUCTURED
    raise UnknownEncodingError("no writer available for the message")


def _write_binary(ctx: Context, message: Message, writer: BinaryWriter) -> None:
    writer.start(ctx)
    message.read_binary(ctx, writer)
    writer.end(ctx)
