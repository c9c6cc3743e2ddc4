"""Kafka sender on a confluent-kafka Producer."""

from __future__ import annotations

import asyncio
from typing import Any

import structlog
from confluent_kafka import KafkaError, Producer

from ce_platform.binding.message import Message
from ce_platform.binding.transformer import Transformer
from ce_platform.config.models import KafkaConfig
from ce_platform.context import Context, logger_from, topic_from
from ce_platform.exceptions import ContextCancelledError
from ce_platform.protocol.kafka.write import ProducerMessage, write_producer_message
from ce_platform.protocol.result import Result

logger = structlog.get_logger()


def create_producer(config: KafkaConfig) -> Producer:
    """Create an idempotent Kafka producer."""
    return Producer(
        {
            "bootstrap.servers": config.bootstrap_servers,
            "enable.idempotence": config.enable_idempotence,
            "acks": config.acks,
        }
    )


def delivery_result(err: KafkaError | None) -> Result | None:
    """Map a producer delivery report to a Result (``None`` is ACK)."""
    if err is None:
        return None
    if err.retriable():
        return Result.retriable(err.str())
    return Result.nack(err.str())


class KafkaSender:
    """Produces each message as one Kafka record and waits for its delivery report."""

    def __init__(
        self,
        producer: Producer,
        topic: str | None = None,
        *,
        flush_timeout_seconds: float = 10.0,
    ) -> None:
        self._producer = producer
        self._topic = topic
        self._flush_timeout = flush_timeout_seconds

    @classmethod
    def from_config(cls, config: KafkaConfig) -> KafkaSender:
        return cls(
            create_producer(config),
            config.topic,
            flush_timeout_seconds=config.flush_timeout_seconds,
        )

    async def send(
        self, ctx: Context, message: Message, *transformers: Transformer
    ) -> Result | None:
        err: BaseException | None = None
        try:
            topic = topic_from(ctx) or self._topic
            if not topic:
                err = Result.fatal("no topic configured")
                return err
            record = write_producer_message(ctx, message, ProducerMessage(topic), *transformers)
            err = await self._produce(ctx, record)
            return err
        except Exception as exc:
            err = exc
            raise
        finally:
            await message.finish(err)

    async def _produce(self, ctx: Context, record: ProducerMessage) -> Result | None:
        loop = asyncio.get_running_loop()
        delivered: asyncio.Future[Result | None] = loop.create_future()

        def _on_delivery(err: KafkaError | None, msg: Any) -> None:
            result = delivery_result(err)
            if err is not None:
                logger_from(ctx).warning(
                    "kafka.delivery_failed", topic=record.topic, error=err.str()
                )

            def _settle() -> None:
                if not delivered.done():
                    delivered.set_result(result)

            loop.call_soon_threadsafe(_settle)

        try:
            self._producer.produce(
                topic=record.topic,
                value=record.value,
                key=record.key,
                headers=record.headers,
                on_delivery=_on_delivery,
            )
        except BufferError as exc:
            logger_from(ctx).warning("kafka.queue_full", topic=record.topic)
            return Result.retriable("producer queue full", cause=exc)
        await loop.run_in_executor(None, self._producer.flush, self._flush_timeout)
        if not delivered.done():
            return Result.retriable("delivery report not received before flush timeout")
        try:
            return await ctx.race(delivered)
        except ContextCancelledError as exc:
            return Result.retriable("send cancelled", cause=exc)

    async def close(self, ctx: Context) -> None:
        loop = asyncio.get_running_loop()
        remaining = await loop.run_in_executor(None, self._producer.flush, self._flush_timeout)
        logger.info("kafka.sender_closed", undelivered=remaining)
