"""Kafka receiver on a confluent-kafka Consumer."""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import structlog
from confluent_kafka import Consumer, KafkaError, KafkaException
from confluent_kafka import Message as ConfluentMessage

from ce_platform.binding.message import Message
from ce_platform.config.models import KafkaConfig
from ce_platform.context import Context
from ce_platform.protocol.kafka.message import KafkaMessage
from ce_platform.protocol.result import is_ack

logger = structlog.get_logger()


def create_consumer(config: KafkaConfig) -> Consumer:
    """Create a manually-committing Kafka consumer."""
    return Consumer(
        {
            "bootstrap.servers": config.bootstrap_servers,
            "group.id": config.group_id,
            "auto.offset.reset": config.auto_offset_reset,
            "enable.auto.commit": False,
            "session.timeout.ms": config.session_timeout_ms,
            "max.poll.interval.ms": config.max_poll_interval_ms,
        }
    )


class KafkaReceiver:
    """Opener, Receiver and Closer over a subscribed consumer.

    ``open_inbound`` subscribes; ``receive`` polls in the default executor.
    Finishing a message with an ACK commits its offset; anything else leaves
    it uncommitted so it is redelivered after a rebalance or restart.
    """

    def __init__(
        self,
        consumer: Consumer,
        topics: list[str],
        *,
        poll_timeout_seconds: float = 1.0,
    ) -> None:
        self._consumer = consumer
        self._topics = list(topics)
        self._poll_timeout = poll_timeout_seconds
        self._subscribed = False
        self._closed = False

    @classmethod
    def from_config(cls, config: KafkaConfig) -> KafkaReceiver:
        return cls(
            create_consumer(config),
            config.topics,
            poll_timeout_seconds=config.poll_timeout_seconds,
        )

    def _subscribe(self) -> None:
        if not self._subscribed:
            self._consumer.subscribe(self._topics)
            self._subscribed = True
            logger.info("kafka.subscribed", topics=self._topics)

    async def open_inbound(self, ctx: Context) -> None:
        self._subscribe()
        await ctx.wait()

    async def receive(self, ctx: Context) -> Message:
        self._subscribe()
        loop = asyncio.get_running_loop()
        while True:
            if self._closed or ctx.cancelled:
                raise EOFError
            record = await loop.run_in_executor(None, self._consumer.poll, self._poll_timeout)
            if record is None:
                continue
            err = record.error()
            if err and err.code() == KafkaError._PARTITION_EOF:  # type: ignore[attr-defined]
                continue
            if err:
                raise KafkaException(err)
            return KafkaMessage(record, on_finish=self._committer(record))

    def _committer(self, record: ConfluentMessage) -> Callable[[BaseException | None], None]:
        def _commit(err: BaseException | None) -> None:
            if not is_ack(err):
                logger.debug(
                    "kafka.message_not_committed",
                    topic=record.topic(),
                    partition=record.partition(),
                    offset=record.offset(),
                    error=str(err),
                )
                return
            if self._closed:
                return
            self._consumer.commit(message=record, asynchronous=True)

        return _commit

    async def close(self, ctx: Context) -> None:
        if self._closed:
            return
        self._closed = True
        self._consumer.close()
        logger.info("kafka.receiver_closed", topics=self._topics)
