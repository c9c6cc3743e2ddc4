"""Pydantic configuration models for CloudEvents clients."""

from __future__ import annotations

from enum import StrEnum
from typing import Self

from pydantic import BaseModel, Field, model_validator


class ProtocolType(StrEnum):
    """Supported client transports."""

    HTTP = "http"
    KAFKA = "kafka"
    PUBSUB = "pubsub"
    SQS = "sqs"


class EncodingPreference(StrEnum):
    """Outbound encoding preference."""

    DEFAULT = "default"
    BINARY = "binary"
    STRUCTURED = "structured"


class BackoffStrategyName(StrEnum):
    NONE = "none"
    CONSTANT = "constant"
    LINEAR = "linear"
    EXPONENTIAL = "exponential"


class RetryConfig(BaseModel):
    """Retry / backoff configuration for outbound sends."""

    strategy: BackoffStrategyName = BackoffStrategyName.NONE
    period_seconds: float = Field(default=0.1, ge=0.0)
    max_tries: int = Field(default=3, ge=1)


class HTTPConfig(BaseModel):
    """HTTP sender and inbound listener settings."""

    target: str | None = None
    method: str = "POST"
    headers: dict[str, str] = Field(default_factory=dict)
    timeout_seconds: float = Field(default=30.0, gt=0)
    host: str = "0.0.0.0"  # noqa: S104
    port: int = Field(default=8080, ge=0, le=65535)
    path: str = "/"
    shutdown_timeout_seconds: float = Field(default=60.0, gt=0)


class KafkaConfig(BaseModel):
    """Kafka broker and producer/consumer settings."""

    bootstrap_servers: str = "localhost:9092"
    topic: str | None = None
    topics: list[str] = Field(default_factory=list)
    group_id: str = "ce-platform"
    auto_offset_reset: str = "earliest"
    enable_idempotence: bool = True
    acks: str = "all"
    session_timeout_ms: int = Field(default=45000, ge=1000)
    max_poll_interval_ms: int = Field(default=300000, ge=1000)
    poll_timeout_seconds: float = Field(default=1.0, gt=0)
    flush_timeout_seconds: float = Field(default=10.0, gt=0)

    @model_validator(mode="after")
    def default_topics(self) -> Self:
        """Consume the send topic when no explicit topic list is given."""
        if not self.topics and self.topic:
            self.topics = [self.topic]
        return self


class PubSubConfig(BaseModel):
    """Google Cloud Pub/Sub transport configuration."""

    project_id: str
    topic: str | None = None
    subscription: str | None = None
    ordering_enabled: bool = False
    max_outstanding_messages: int = Field(default=1000, ge=1)


class SQSConfig(BaseModel):
    """Amazon SQS transport configuration."""

    queue_url: str
    region: str = "us-east-1"
    wait_time_seconds: int = Field(default=20, ge=0, le=20)
    max_messages: int = Field(default=10, ge=1, le=10)
    visibility_timeout_seconds: int | None = Field(default=None, ge=0)


class ClientConfig(BaseModel):
    """Top-level client configuration."""

    protocol: ProtocolType = ProtocolType.HTTP
    poll_workers: int = Field(default=1, ge=1)
    blocking_callback: bool = False
    ack_malformed_event: bool = False
    uuids: bool = True
    time_now: bool = True
    encoding: EncodingPreference = EncodingPreference.DEFAULT
    retry: RetryConfig = Field(default_factory=RetryConfig)
    http: HTTPConfig = Field(default_factory=HTTPConfig)
    kafka: KafkaConfig = Field(default_factory=KafkaConfig)
    pubsub: PubSubConfig | None = None
    sqs: SQSConfig | None = None
    log_level: str = "INFO"
    log_json: bool = False

    @model_validator(mode="after")
    def check_protocol_config(self) -> Self:
        """Validate that the selected protocol has its settings."""
        if self.protocol == ProtocolType.PUBSUB and self.pubsub is None:
            msg = "pubsub config is required when protocol is 'pubsub'"
            raise ValueError(msg)
        if self.protocol == ProtocolType.SQS and self.sqs is None:
            msg = "sqs config is required when protocol is 'sqs'"
            raise ValueError(msg)
        return self
