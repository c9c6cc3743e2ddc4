"""Google Cloud Pub/Sub protocol binding."""

from ce_platform.protocol.pubsub.message import (
    ProtocolContext,
    PubSubBindingMessage,
    PubSubMessage,
    write_pubsub_message,
)
from ce_platform.protocol.pubsub.protocol import PubSubProtocol, subscription_path, topic_path

__all__ = [
    "ProtocolContext",
    "PubSubBindingMessage",
    "PubSubMessage",
    "PubSubProtocol",
    "subscription_path",
    "topic_path",
    "write_pubsub_message",
]
