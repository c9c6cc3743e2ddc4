"""AMQP 1.0 binding: CloudEvents in application properties.

There is no AMQP network client here; :class:`AMQPMessage` is a plain
carrier that a link library can map onto its own message type.
"""

from __future__ import annotations

import io
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from ce_platform.binding import format as formats
from ce_platform.binding.encoding import Encoding
from ce_platform.binding.message import BinaryWriter, StructuredWriter
from ce_platform.binding.spec import AMQP_PREFIX, VS, Attribute, Kind, Version
from ce_platform.context import Context
from ce_platform.exceptions import NotBinaryError, NotStructuredError

# JMS 2.0 compatible spelling of the property prefix
AMQP_JMS_PREFIX = "cloudEvents_"

_PREFIXES = (AMQP_PREFIX, AMQP_JMS_PREFIX)
_VERSIONS = tuple(VS.with_prefix(p) for p in _PREFIXES)

FinishHook = Callable[[BaseException | None], Awaitable[None] | None]


@dataclass(slots=True)
class AMQPProperties:
    content_type: str | None = None
    message_id: str | None = None


@dataclass(slots=True)
class AMQPMessage:
    """The parts of an AMQP message the binding reads and writes."""

    properties: AMQPProperties = field(default_factory=AMQPProperties)
    application_properties: dict[str, Any] = field(default_factory=dict)
    body: bytes = b""


def _find_version(props: dict[str, Any]) -> Version | None:
    for versions in _VERSIONS:
        found = versions.find_spec_version(props.get)
        if found is not None:
            return found
    return None


def _strip_prefix(name: str) -> str | None:
    for prefix in _PREFIXES:
        if name.startswith(prefix):
            return name[len(prefix) :]
    return None


class AMQPBindingMessage:
    """An :class:`AMQPMessage` as a binding Message.

    Both ``cloudEvents:`` and ``cloudEvents_`` property names are accepted.
    Property values keep their AMQP types (ints, timestamps as ``datetime``).
    """

    def __init__(self, message: AMQPMessage, *, on_finish: FinishHook | None = None) -> None:
        self.message = message
        self._on_finish = on_finish
        self._finished = False
        self._version = _find_version(message.application_properties)
        self._format = (
            None if self._version else formats.lookup(message.properties.content_type)
        )

    def read_encoding(self) -> Encoding:
        if self._version is not None:
            return Encoding.BINARY
        if self._format is not None:
            return Encoding.STRUCTURED
        return Encoding.UNKNOWN

    def read_structured(self, ctx: Context, writer: StructuredWriter) -> None:
        if self._format is None:
            raise NotStructuredError()
        writer.set_structured_event(ctx, self._format, io.BytesIO(self.message.body))

    def read_binary(self, ctx: Context, writer: BinaryWriter) -> None:
        if self._version is None:
            raise NotBinaryError()
        version = VS.version(self._version.value)
        writer.set_attribute(version.attribute_from_kind(Kind.SPECVERSION), version.value)
        if self.message.properties.content_type is not None:
            writer.set_attribute(
                version.attribute_from_kind(Kind.DATACONTENTTYPE),
                self.message.properties.content_type,
            )
        for key, value in self.message.application_properties.items():
            name = _strip_prefix(key)
            if name is None:
                continue
            attr = version.attribute(name)
            if attr is not None:
                if attr.kind != Kind.SPECVERSION:
                    writer.set_attribute(attr, value)
            else:
                writer.set_extension(name.lower(), value)
        if self.message.body:
            writer.set_data(io.BytesIO(self.message.body))

    def get_attribute(self, kind: Kind) -> tuple[Attribute | None, Any]:
        if self._version is None:
            return None, None
        attr = self._version.attribute_from_kind(kind)
        if attr is None:
            return None, None
        if kind == Kind.DATACONTENTTYPE:
            return attr, self.message.properties.content_type
        return attr, self._lookup(attr.name)

    def get_extension(self, name: str) -> Any:
        return self._lookup(name)

    def _lookup(self, name: str) -> Any:
        props = self.message.application_properties
        for prefix in _PREFIXES:
            if prefix + name in props:
                return props[prefix + name]
        return None

    async def finish(self, err: BaseException | None) -> None:
        if self._finished:
            return
        self._finished = True
        if self._on_finish is not None:
            result = self._on_finish(err)
            if result is not None:
                await result
