"""AMQP 1.0 message binding (no network client)."""

from ce_platform.protocol.amqp.message import (
    AMQP_JMS_PREFIX,
    AMQPBindingMessage,
    AMQPMessage,
    AMQPProperties,
)
from ce_platform.protocol.amqp.write import AMQPMessageWriter, amqp_value, write_amqp_message

__all__ = [
    "AMQP_JMS_PREFIX",
    "AMQPBindingMessage",
    "AMQPMessage",
    "AMQPMessageWriter",
    "AMQPProperties",
    "amqp_value",
    "write_amqp_message",
]
