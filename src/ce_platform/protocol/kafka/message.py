"""Kafka binding: read CloudEvents from a consumed confluent-kafka message."""

from __future__ import annotations

import io
from collections.abc import Awaitable, Callable
from typing import Any

from confluent_kafka import Message as ConfluentMessage

from ce_platform.binding import format as formats
from ce_platform.binding.encoding import Encoding
from ce_platform.binding.message import BinaryWriter, StructuredWriter
from ce_platform.binding.spec import KAFKA_PREFIX, KAFKA_VERSIONS, Attribute, Kind, Version
from ce_platform.context import Context
from ce_platform.exceptions import NotBinaryError, NotStructuredError

CONTENT_TYPE = "content-type"
PARTITION_KEY = "partitionkey"

FinishHook = Callable[[BaseException | None], Awaitable[None] | None]


def _text(value: str | bytes | None) -> str | None:
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


class KafkaMessage:
    """A CloudEvent carried by a consumed Kafka record.

    Headers are matched case-insensitively.  In binary mode the record key is
    exposed as the ``partitionkey`` extension unless a ``ce_partitionkey``
    header is present.
    """

    def __init__(self, record: ConfluentMessage, *, on_finish: FinishHook | None = None) -> None:
        self.record = record
        self._on_finish = on_finish
        self._finished = False
        self.headers: dict[str, str] = {}
        for key, value in record.headers() or []:
            text = _text(value)
            if text is not None:
                self.headers[key.lower()] = text
        self._version: Version | None = KAFKA_VERSIONS.find_spec_version(self.headers.get)
        self._format = None if self._version else formats.lookup(self.headers.get(CONTENT_TYPE))

    @property
    def key(self) -> str | None:
        return _text(self.record.key())

    @property
    def protocol_context(self) -> ConfluentMessage:
        """The consumed record: topic, partition and offset."""
        return self.record

    def read_encoding(self) -> Encoding:
        if self._version is not None:
            return Encoding.BINARY
        if self._format is not None:
            return Encoding.STRUCTURED
        return Encoding.UNKNOWN

    def read_structured(self, ctx: Context, writer: StructuredWriter) -> None:
        if self._format is None:
            raise NotStructuredError()
        writer.set_structured_event(ctx, self._format, io.BytesIO(self.record.value() or b""))

    def read_binary(self, ctx: Context, writer: BinaryWriter) -> None:
        version = self._version
        if version is None:
            raise NotBinaryError()
        writer.set_attribute(version.attribute_from_kind(Kind.SPECVERSION), version.value)
        for name, value in self.headers.items():
            if name == CONTENT_TYPE:
                writer.set_attribute(version.attribute_from_kind(Kind.DATACONTENTTYPE), value)
                continue
            attr = version.attribute(name)
            if attr is not None:
                if attr.kind != Kind.SPECVERSION:
                    writer.set_attribute(attr, value)
            elif name.startswith(KAFKA_PREFIX):
                writer.set_extension(name[len(KAFKA_PREFIX) :], value)
        if KAFKA_PREFIX + PARTITION_KEY not in self.headers and self.key is not None:
            writer.set_extension(PARTITION_KEY, self.key)
        value = self.record.value()
        if value:
            writer.set_data(io.BytesIO(value))

    def get_attribute(self, kind: Kind) -> tuple[Attribute | None, Any]:
        if self._version is None:
            return None, None
        attr = self._version.attribute_from_kind(kind)
        if attr is None:
            return None, None
        if kind == Kind.DATACONTENTTYPE:
            return attr, self.headers.get(CONTENT_TYPE)
        return attr, self.headers.get(attr.prefixed_name.lower())

    def get_extension(self, name: str) -> Any:
        value = self.headers.get(KAFKA_PREFIX + name)
        if value is None and name == PARTITION_KEY:
            return self.key
        return value

    async def finish(self, err: BaseException | None) -> None:
        if self._finished:
            return
        self._finished = True
        if self._on_finish is not None:
            result = self._on_finish(err)
            if result is not None:
                await result
