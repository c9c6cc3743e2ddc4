"""Protocol factory: maps ProtocolType to a configured protocol object."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from ce_platform.client.options import (
    Option,
    with_ack_malformed_event,
    with_blocking_callback,
    with_force_binary,
    with_force_structured,
    with_outbound_context_decorator,
    with_poll_workers,
    with_time_now,
    with_uuids,
)
from ce_platform.config.models import (
    BackoffStrategyName,
    ClientConfig,
    EncodingPreference,
    ProtocolType,
)
from ce_platform.context import (
    Context,
    with_retries_constant_backoff,
    with_retries_exponential_backoff,
    with_retries_linear_backoff,
)
from ce_platform.protocol.http import HTTPProtocol
from ce_platform.protocol.kafka import KafkaProtocol
from ce_platform.protocol.pubsub import PubSubProtocol
from ce_platform.protocol.sqs import SQSProtocol


def _http(config: ClientConfig) -> HTTPProtocol:
    http = config.http
    return HTTPProtocol(
        http.target,
        method=http.method,
        headers=http.headers,
        timeout_seconds=http.timeout_seconds,
        host=http.host,
        port=http.port,
        path=http.path,
        shutdown_timeout_seconds=http.shutdown_timeout_seconds,
    )


def _kafka(config: ClientConfig) -> KafkaProtocol:
    return KafkaProtocol(config.kafka)


def _pubsub(config: ClientConfig) -> PubSubProtocol:
    assert config.pubsub is not None
    return PubSubProtocol(config.pubsub)


def _sqs(config: ClientConfig) -> SQSProtocol:
    assert config.sqs is not None
    return SQSProtocol(config.sqs)


_PROTOCOL_REGISTRY: dict[ProtocolType, Callable[[ClientConfig], Any]] = {
    ProtocolType.HTTP: _http,
    ProtocolType.KAFKA: _kafka,
    ProtocolType.PUBSUB: _pubsub,
    ProtocolType.SQS: _sqs,
}

_RETRY_DECORATORS: dict[BackoffStrategyName, Callable[[Context, float, int], Context]] = {
    BackoffStrategyName.CONSTANT: with_retries_constant_backoff,
    BackoffStrategyName.LINEAR: with_retries_linear_backoff,
    BackoffStrategyName.EXPONENTIAL: with_retries_exponential_backoff,
}


def create_protocol(config: ClientConfig) -> Any:
    """Create the protocol object for ``config.protocol``.

    Adding a transport = one builder + one dict entry in ``_PROTOCOL_REGISTRY``.
    """
    builder = _PROTOCOL_REGISTRY.get(config.protocol)
    if builder is None:
        msg = f"Unknown protocol: {config.protocol}"
        raise ValueError(msg)
    return builder(config)


def options_from_config(config: ClientConfig) -> list[Option]:
    """Client options equivalent to *config*."""
    options: list[Option] = [with_poll_workers(config.poll_workers)]
    if config.uuids:
        options.append(with_uuids())
    if config.time_now:
        options.append(with_time_now())
    if config.blocking_callback:
        options.append(with_blocking_callback())
    if config.ack_malformed_event:
        options.append(with_ack_malformed_event())
    if config.encoding == EncodingPreference.BINARY:
        options.append(with_force_binary())
    elif config.encoding == EncodingPreference.STRUCTURED:
        options.append(with_force_structured())
    decorate = _RETRY_DECORATORS.get(config.retry.strategy)
    if decorate is not None:
        period, max_tries = config.retry.period_seconds, config.retry.max_tries
        options.append(
            with_outbound_context_decorator(lambda ctx: decorate(ctx, period, max_tries))
        )
    return options
