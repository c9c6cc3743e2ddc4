"""Materialise any Message as an Event."""

from __future__ import annotations

from ce_platform.binding.encoding import Encoding
from ce_platform.binding.event_message import EventBuilder, EventMessage
from ce_platform.binding.message import Message, unwrap
from ce_platform.binding.transformer import Transformer, apply
from ce_platform.context import Context
from ce_platform.event.event import Event
from ce_platform.exceptions import UnknownEncodingError


def to_event(ctx: Context, message: Message, *transformers: Transformer) -> Event:
    """Decode *message* into an Event, then run *transformers* on it.

    ``finish`` is not called.  The result is not validated; call
    ``Event.validate()`` when the caller needs a well-formed event.
    """
    encoding = message.read_encoding()
    if encoding == Encoding.EVENT:
        inner = unwrap(message)
        if not isinstance(inner, EventMessage):
            msg = f"cannot convert {type(inner).__name__} to an Event"
            raise UnknownEncodingError(msg)
        event = inner.event
        apply(transformers, inner, EventBuilder(event))
        return event

    builder = EventBuilder()
    if encoding == Encoding.STRUCTURED:
        message.read_structured(ctx, builder)
    elif encoding == Encoding.BINARY:
        message.read_binary(ctx, builder)
    else:
        raise UnknownEncodingError()
    apply(transformers, EventMessage(builder.event), builder)
    return builder.event
