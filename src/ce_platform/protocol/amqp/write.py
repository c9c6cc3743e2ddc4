"""AMQP binding: write CloudEvents into an :class:`AMQPMessage`."""

from __future__ import annotations

from datetime import datetime
from typing import IO, TYPE_CHECKING, Any

from ce_platform import types
from ce_platform.binding.message import Message
from ce_platform.binding.spec import AMQP_PREFIX, Attribute, Kind
from ce_platform.binding.transformer import Transformer
from ce_platform.binding.write import write
from ce_platform.context import Context
from ce_platform.protocol.amqp.message import AMQPMessage, AMQPProperties

if TYPE_CHECKING:
    from ce_platform.binding.format import Format


def amqp_value(value: Any) -> bool | int | str | bytes | datetime:
    """Convert an attribute value to its AMQP property type.

    Integers are carried as AMQP longs, URIs as strings and timestamps as
    native AMQP timestamps (millisecond precision on the wire).
    """
    value = types.validate(value)
    if isinstance(value, types.Timestamp):
        return value.to_datetime()
    if isinstance(value, types.URIRef):
        return str(value)
    return value


class AMQPMessageWriter:
    """Structured and binary writer targeting an :class:`AMQPMessage`."""

    def __init__(self, message: AMQPMessage) -> None:
        self.message = message

    def set_structured_event(self, ctx: Context, fmt: Format, event: IO[bytes]) -> None:
        self.message.body = event.read()
        self.message.properties = AMQPProperties(content_type=fmt.media_type())

    def start(self, ctx: Context) -> None:
        self.message.properties = AMQPProperties()
        self.message.application_properties = {}

    def set_attribute(self, attribute: Attribute, value: Any) -> None:
        if attribute.kind == Kind.DATACONTENTTYPE:
            self.message.properties.content_type = (
                types.format(value) if value is not None else None
            )
            return
        self._set(AMQP_PREFIX + attribute.name, value)

    def set_extension(self, name: str, value: Any) -> None:
        self._set(AMQP_PREFIX + name, value)

    def set_data(self, data: IO[bytes]) -> None:
        self.message.body = data.read()

    def end(self, ctx: Context) -> None:
        return None

    def _set(self, key: str, value: Any) -> None:
        if value is None:
            self.message.application_properties.pop(key, None)
        else:
            self.message.application_properties[key] = amqp_value(value)


def write_amqp_message(
    ctx: Context,
    message: Message,
    out: AMQPMessage | None = None,
    *transformers: Transformer,
) -> AMQPMessage:
    out = out if out is not None else AMQPMessage()
    writer = AMQPMessageWriter(out)
    write(ctx, message, writer, writer, *transformers)
    return out
