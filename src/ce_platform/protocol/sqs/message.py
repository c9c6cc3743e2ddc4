"""SQS binding: CloudEvents in message attributes and body."""

from __future__ import annotations

from typing import Any

from ce_platform.binding.message import Message
from ce_platform.binding.spec import SQS_VERSIONS
from ce_platform.binding.transformer import Transformer
from ce_platform.binding.write import write
from ce_platform.context import Context, message_key_from, ordering_key_from
from ce_platform.protocol.attributes import AttributesMessage, AttributesWriter, FinishHook


def _string_attributes(entry: dict[str, Any]) -> dict[str, str]:
    attributes: dict[str, str] = {}
    for name, attr in (entry.get("MessageAttributes") or {}).items():
        value = attr.get("StringValue")
        if value is not None:
            attributes[name] = value
    return attributes


class SQSMessage(AttributesMessage):
    """One entry of a ``receive_message`` response as a binding Message."""

    versions = SQS_VERSIONS

    def __init__(self, entry: dict[str, Any], *, on_finish: FinishHook | None = None) -> None:
        super().__init__(
            _string_attributes(entry),
            (entry.get("Body") or "").encode("utf-8"),
            on_finish=on_finish,
        )
        self.entry = entry

    @property
    def protocol_context(self) -> dict[str, Any]:
        return self.entry

    @property
    def message_id(self) -> str | None:
        return self.entry.get("MessageId")

    @property
    def receipt_handle(self) -> str | None:
        return self.entry.get("ReceiptHandle")


def write_sqs_message(
    ctx: Context, message: Message, queue_url: str, *transformers: Transformer
) -> dict[str, Any]:
    """Encode *message* as ``send_message`` keyword arguments.

    SQS bodies are text, so the event data must be valid UTF-8.  An ordering
    key becomes the FIFO ``MessageGroupId`` and a message key the
    ``MessageDeduplicationId``.
    """
    writer = AttributesWriter(SQS_VERSIONS.prefix)
    write(ctx, message, writer, writer, *transformers)
    try:
        body = writer.body.decode("utf-8")
    except UnicodeDecodeError as exc:
        msg = "SQS message bodies must be UTF-8 text"
        raise ValueError(msg) from exc
    kwargs: dict[str, Any] = {
        "QueueUrl": queue_url,
        "MessageBody": body,
        "MessageAttributes": {
            name: {"DataType": "String", "StringValue": value}
            for name, value in writer.attributes.items()
        },
    }
    ordering_key = ordering_key_from(ctx)
    if ordering_key:
        kwargs["MessageGroupId"] = ordering_key
    dedup = message_key_from(ctx)
    if dedup:
        kwargs["MessageDeduplicationId"] = dedup.decode() if isinstance(dedup, bytes) else dedup
    return kwargs
