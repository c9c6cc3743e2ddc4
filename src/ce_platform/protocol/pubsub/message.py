"""Pub/Sub binding: CloudEvents in message attributes and data."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ce_platform.binding.message import Message
from ce_platform.binding.spec import PUBSUB_VERSIONS
from ce_platform.binding.transformer import Transformer
from ce_platform.binding.write import write
from ce_platform.context import Context, ordering_key_from
from ce_platform.protocol.attributes import AttributesMessage, AttributesWriter, FinishHook


@dataclass(slots=True)
class PubSubMessage:
    """Arguments for ``PublisherClient.publish``."""

    data: bytes = b""
    attributes: dict[str, str] = field(default_factory=dict)
    ordering_key: str = ""


@dataclass(frozen=True, slots=True)
class ProtocolContext:
    """Delivery metadata of a received Pub/Sub message."""

    id: str
    publish_time: datetime | None = None
    ordering_key: str = ""
    subscription: str | None = None


class PubSubBindingMessage(AttributesMessage):
    """A received Pub/Sub message as a binding Message.

    ``protocol_context`` carries the message id, publish time and ordering key.
    """

    versions = PUBSUB_VERSIONS

    def __init__(
        self,
        received: Any,
        *,
        subscription: str | None = None,
        on_finish: FinishHook | None = None,
    ) -> None:
        super().__init__(dict(received.attributes or {}), received.data or b"", on_finish=on_finish)
        self.received = received
        self.protocol_context = ProtocolContext(
            id=getattr(received, "message_id", "") or "",
            publish_time=getattr(received, "publish_time", None),
            ordering_key=getattr(received, "ordering_key", "") or "",
            subscription=subscription,
        )


def write_pubsub_message(
    ctx: Context, message: Message, *transformers: Transformer
) -> PubSubMessage:
    """Encode *message* as a :class:`PubSubMessage`.

    The ordering key comes from :func:`ce_platform.context.with_ordering_key`.
    """
    writer = AttributesWriter(PUBSUB_VERSIONS.prefix)
    write(ctx, message, writer, writer, *transformers)
    return PubSubMessage(writer.body, writer.attributes, ordering_key_from(ctx) or "")
