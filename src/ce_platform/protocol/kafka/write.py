"""Kafka binding: write CloudEvents into a producer record."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import IO, TYPE_CHECKING, Any

from ce_platform import types
from ce_platform.binding.message import Message, MessageMetadataReader, unwrap
from ce_platform.binding.spec import KAFKA_PREFIX, Attribute, Kind
from ce_platform.binding.transformer import Transformer
from ce_platform.binding.write import write
from ce_platform.context import Context, message_key_from
from ce_platform.protocol.kafka.message import CONTENT_TYPE, PARTITION_KEY

if TYPE_CHECKING:
    from ce_platform.binding.format import Format


@dataclass(slots=True)
class ProducerMessage:
    """Arguments for ``confluent_kafka.Producer.produce``."""

    topic: str | None = None
    key: bytes | None = None
    value: bytes | None = None
    headers: list[tuple[str, bytes]] = field(default_factory=list)

    def header(self, name: str) -> bytes | None:
        for key, value in self.headers:
            if key == name:
                return value
        return None


class ProducerMessageWriter:
    """Structured and binary writer targeting a :class:`ProducerMessage`."""

    def __init__(self, record: ProducerMessage) -> None:
        self.record = record
        self.partition_key: Any = None

    def set_structured_event(self, ctx: Context, fmt: Format, event: IO[bytes]) -> None:
        self.record.headers = [(CONTENT_TYPE, fmt.media_type().encode())]
        self.record.value = event.read()

    def start(self, ctx: Context) -> None:
        self.record.headers = []
        self.partition_key = None

    def set_attribute(self, attribute: Attribute, value: Any) -> None:
        if attribute.kind == Kind.DATACONTENTTYPE:
            self._set(CONTENT_TYPE, value)
        else:
            self._set(KAFKA_PREFIX + attribute.name, value)

    def set_extension(self, name: str, value: Any) -> None:
        if name == PARTITION_KEY:
            self.partition_key = value
        self._set(KAFKA_PREFIX + name, value)

    def set_data(self, data: IO[bytes]) -> None:
        self.record.value = data.read()

    def end(self, ctx: Context) -> None:
        return None

    def _set(self, key: str, value: Any) -> None:
        headers = [(k, v) for k, v in self.record.headers if k != key]
        if value is not None:
            headers.append((key, types.format(value).encode()))
        self.record.headers = headers


def write_producer_message(
    ctx: Context,
    message: Message,
    record: ProducerMessage,
    *transformers: Transformer,
) -> ProducerMessage:
    """Fill *record* from *message*.

    The ``partitionkey`` extension becomes the record key in either
    encoding; a key set with :func:`ce_platform.context.with_message_key`
    wins over it.
    """
    writer = ProducerMessageWriter(record)
    write(ctx, message, writer, writer, *transformers)
    key = message_key_from(ctx)
    if key is None:
        key = writer.partition_key
    source = unwrap(message)
    if key is None and isinstance(source, MessageMetadataReader):
        key = source.get_extension(PARTITION_KEY)
    if key is not None:
        record.key = key if isinstance(key, bytes) else types.format(key).encode()
    return record
