"""Kafka sender and receiver behind one protocol object."""

from __future__ import annotations

from ce_platform.binding.message import Message
from ce_platform.binding.transformer import Transformer
from ce_platform.config.models import KafkaConfig
from ce_platform.context import Context
from ce_platform.protocol.kafka.receiver import KafkaReceiver
from ce_platform.protocol.kafka.sender import KafkaSender
from ce_platform.protocol.result import Result


class KafkaProtocol:
    """Creates the producer and the consumer on first use."""

    def __init__(self, config: KafkaConfig) -> None:
        self._config = config
        self._sender: KafkaSender | None = None
        self._receiver: KafkaReceiver | None = None

    @property
    def sender(self) -> KafkaSender:
        if self._sender is None:
            self._sender = KafkaSender.from_config(self._config)
        return self._sender

    @property
    def receiver(self) -> KafkaReceiver:
        if self._receiver is None:
            if not self._config.topics:
                msg = "kafka topics are required to receive"
                raise ValueError(msg)
            self._receiver = KafkaReceiver.from_config(self._config)
        return self._receiver

    async def send(
        self, ctx: Context, message: Message, *transformers: Transformer
    ) -> Result | None:
        return await self.sender.send(ctx, message, *transformers)

    async def open_inbound(self, ctx: Context) -> None:
        await self.receiver.open_inbound(ctx)

    async def receive(self, ctx: Context) -> Message:
        return await self.receiver.receive(ctx)

    async def close(self, ctx: Context) -> None:
        if self._receiver is not None:
            await self._receiver.close(ctx)
        if self._sender is not None:
            await self._sender.close(ctx)
