"""Kafka protocol binding over confluent-kafka."""

from ce_platform.protocol.kafka.message import KafkaMessage
from ce_platform.protocol.kafka.protocol import KafkaProtocol
from ce_platform.protocol.kafka.receiver import KafkaReceiver, create_consumer
from ce_platform.protocol.kafka.sender import KafkaSender, create_producer, delivery_result
from ce_platform.protocol.kafka.write import (
    ProducerMessage,
    ProducerMessageWriter,
    write_producer_message,
)

__all__ = [
    "KafkaMessage",
    "KafkaProtocol",
    "KafkaReceiver",
    "KafkaSender",
    "ProducerMessage",
    "ProducerMessageWriter",
    "create_consumer",
    "create_producer",
    "delivery_result",
    "write_producer_message",
]
