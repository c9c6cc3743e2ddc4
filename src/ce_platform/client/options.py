"""Client options.

An option is a callable applied to the :class:`~ce_platform.client.Client`
at construction time.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from ce_platform.binding import encoding
from ce_platform.client.defaulters import (
    EventDefaulter,
    default_id_to_uuid_if_not_set,
    default_time_to_now_if_not_set,
)
from ce_platform.context import Context
from ce_platform.context import with_logger as _ctx_with_logger

if TYPE_CHECKING:
    from ce_platform.client.client import Client

Option = Callable[["Client"], None]
ContextDecorator = Callable[[Context], Context]


def with_event_defaulter(fn: EventDefaulter) -> Option:
    """Run *fn* on every outbound event (and every response event)."""
    if not callable(fn):
        msg = "event defaulter must be callable"
        raise TypeError(msg)

    def _apply(client: Client) -> None:
        client.event_defaulters.append(fn)

    return _apply


def with_uuids() -> Option:
    """Give outbound events without an id a random UUID."""
    return with_event_defaulter(default_id_to_uuid_if_not_set)


def with_time_now() -> Option:
    """Stamp outbound events without a time with the current time."""
    return with_event_defaulter(default_time_to_now_if_not_set)


def with_outbound_context_decorator(fn: ContextDecorator) -> Option:
    def _apply(client: Client) -> None:
        client.outbound_context_decorators.append(fn)

    return _apply


def with_force_structured() -> Option:
    return with_outbound_context_decorator(encoding.with_force_structured)


def with_force_binary() -> Option:
    return with_outbound_context_decorator(encoding.with_force_binary)


def with_poll_workers(n: int) -> Option:
    """Number of concurrent ``receive`` loops in ``start_receiver``."""
    if n < 1:
        msg = f"poll workers must be >= 1, got {n}"
        raise ValueError(msg)

    def _apply(client: Client) -> None:
        client.poll_workers = n

    return _apply


def with_blocking_callback() -> Option:
    """Handle each received message inline in its poller instead of a task."""

    def _apply(client: Client) -> None:
        client.blocking_callback = True

    return _apply


def with_ack_malformed_event() -> Option:
    """ACK messages that cannot be decoded into an event instead of NACKing."""

    def _apply(client: Client) -> None:
        client.ack_malformed_event = True

    return _apply


def with_logger(bound_logger: Any) -> Option:
    """Log through *bound_logger* and attach it to every outbound context."""

    def _apply(client: Client) -> None:
        client.logger = bound_logger
        client.outbound_context_decorators.append(
            lambda ctx: _ctx_with_logger(ctx, bound_logger)
        )

    return _apply
