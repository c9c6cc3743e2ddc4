"""Client configuration: pydantic models and YAML loading."""

from ce_platform.config.loader import build_client_config, load_client_config
from ce_platform.config.models import (
    ClientConfig,
    HTTPConfig,
    KafkaConfig,
    PubSubConfig,
    RetryConfig,
    SQSConfig,
)

__all__ = [
    "ClientConfig",
    "HTTPConfig",
    "KafkaConfig",
    "PubSubConfig",
    "RetryConfig",
    "SQSConfig",
    "build_client_config",
    "load_client_config",
]
