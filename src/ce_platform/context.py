"""Cancellation scope + immutable value map carried through every operation.

A :class:`Context` is what senders, receivers and the client receive as their
first argument.  It holds:

- a cancellation scope that can be cancelled explicitly (``with_cancel``) or
  by a deadline (``with_timeout``), propagating to all derived contexts;
- typed values (target URL, topic, retry policy, logger, ...) attached with
  the ``with_*`` helpers below and read back with the ``*_from`` helpers.

Contexts are immutable: every ``with_*`` call returns a new one.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, TypeVar

import structlog

from ce_platform.exceptions import ContextCancelledError, DeadlineExceededError

logger = structlog.get_logger()

T = TypeVar("T")


class _Scope:
    __slots__ = ("_children", "_done", "_err", "_parent", "_timer")

    def __init__(self, parent: _Scope | None = None) -> None:
        self._parent = parent
        self._children: set[_Scope] = set()
        self._done = asyncio.Event()
        self._err: ContextCancelledError | None = None
        self._timer: asyncio.TimerHandle | None = None
        if parent is not None:
            if parent._err is not None:
                self.cancel(parent._err)
            else:
                parent._children.add(self)

    def cancel(self, err: ContextCancelledError | None = None) -> None:
        if self._err is not None:
            return
        self._err = err or ContextCancelledError()
        self._done.set()
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        for child in list(self._children):
            child.cancel(self._err)
        self._children.clear()
        if self._parent is not None:
            self._parent._children.discard(self)


class Context:
    """Immutable value map bound to a cancellation scope."""

    __slots__ = ("_scope", "_values")

    def __init__(
        self,
        values: Mapping[object, Any] | None = None,
        scope: _Scope | None = None,
    ) -> None:
        self._values: dict[object, Any] = dict(values or {})
        self._scope = scope if scope is not None else _Scope()

    def value(self, key: object, default: Any = None) -> Any:
        return self._values.get(key, default)

    def with_value(self, key: object, value: Any) -> Context:
        return Context({**self._values, key: value}, self._scope)

    @property
    def cancelled(self) -> bool:
        return self._scope._err is not None

    @property
    def err(self) -> ContextCancelledError | None:
        """The reason the context ended, or ``None`` while it is live."""
        return self._scope._err

    async def wait(self) -> None:
        """Block until the context is cancelled."""
        await self._scope._done.wait()

    async def sleep(self, seconds: float) -> None:
        """Sleep for *seconds*, raising the context error if cancelled first."""
        if self.cancelled:
            raise self.err  # type: ignore[misc]
        try:
            await asyncio.wait_for(self.wait(), timeout=max(seconds, 0))
        except TimeoutError:
            return
        raise self.err  # type: ignore[misc]

    async def race(self, aw: Awaitable[T]) -> T:
        """Await *aw* unless the context is cancelled first.

        On cancellation the pending awaitable is cancelled and the context
        error is raised.
        """
        task = asyncio.ensure_future(aw)
        if self.cancelled:
            task.cancel()
            raise self.err  # type: ignore[misc]
        waiter = asyncio.ensure_future(self.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()
        if task.done():
            return task.result()
        task.cancel()
        raise self.err  # type: ignore[misc]


def background() -> Context:
    """A fresh, never-cancelled root context."""
    return Context()


def with_cancel(ctx: Context) -> tuple[Context, Callable[[], None]]:
    """Derive a context that is cancelled by the returned callable."""
    scope = _Scope(ctx._scope)
    child = Context(ctx._values, scope)
    return child, lambda: scope.cancel()


def with_timeout(ctx: Context, seconds: float) -> tuple[Context, Callable[[], None]]:
    """Derive a context cancelled after *seconds* (or by the returned callable).

    Must be called with a running event loop.
    """
    scope = _Scope(ctx._scope)
    if scope._err is None:
        loop = asyncio.get_running_loop()
        scope._timer = loop.call_later(seconds, scope.cancel, DeadlineExceededError())
    child = Context(ctx._values, scope)
    return child, lambda: scope.cancel()


# -- typed values ---------------------------------------------------------------


class _Key(StrEnum):
    TARGET = "target"
    TOPIC = "topic"
    RETRY = "retry"
    LOGGER = "logger"
    EXTENSION_OVERRIDES = "extension_overrides"
    HEADER_OVERRIDES = "header_overrides"
    ORDERING_KEY = "ordering_key"
    MESSAGE_KEY = "message_key"
    CLOSE_REASON = "close_reason"
    PROTOCOL_CONTEXT = "protocol_context"


def with_target(ctx: Context, target: str) -> Context:
    """Attach the destination URL (HTTP) to the context."""
    return ctx.with_value(_Key.TARGET, target)


def target_from(ctx: Context) -> str | None:
    return ctx.value(_Key.TARGET)


def with_topic(ctx: Context, topic: str) -> Context:
    """Attach the destination topic (Kafka, Pub/Sub) or queue URL (SQS)."""
    return ctx.with_value(_Key.TOPIC, topic)


def topic_from(ctx: Context) -> str | None:
    return ctx.value(_Key.TOPIC)


def with_logger(ctx: Context, bound_logger: Any) -> Context:
    return ctx.with_value(_Key.LOGGER, bound_logger)


def logger_from(ctx: Context) -> Any:
    """Return the logger attached to *ctx*, or the module logger."""
    return ctx.value(_Key.LOGGER) or logger


def with_extension_overrides(ctx: Context, overrides: Mapping[str, Any]) -> Context:
    """Extensions forced onto every outbound event sent with this context."""
    return ctx.with_value(_Key.EXTENSION_OVERRIDES, dict(overrides))


def extension_overrides_from(ctx: Context) -> dict[str, Any]:
    return dict(ctx.value(_Key.EXTENSION_OVERRIDES) or {})


def with_header_overrides(ctx: Context, headers: Mapping[str, str]) -> Context:
    """Extra protocol headers (HTTP) written on outbound requests."""
    return ctx.with_value(_Key.HEADER_OVERRIDES, dict(headers))


def header_overrides_from(ctx: Context) -> dict[str, str]:
    return dict(ctx.value(_Key.HEADER_OVERRIDES) or {})


def with_ordering_key(ctx: Context, key: str) -> Context:
    """Pub/Sub ordering key for the outbound message."""
    return ctx.with_value(_Key.ORDERING_KEY, key)


def ordering_key_from(ctx: Context) -> str | None:
    return ctx.value(_Key.ORDERING_KEY)


def with_message_key(ctx: Context, key: str | bytes) -> Context:
    """Kafka message key; takes precedence over the ``partitionkey`` extension."""
    return ctx.with_value(_Key.MESSAGE_KEY, key)


def message_key_from(ctx: Context) -> str | bytes | None:
    return ctx.value(_Key.MESSAGE_KEY)


def with_close_reason(ctx: Context, reason: str) -> Context:
    return ctx.with_value(_Key.CLOSE_REASON, reason)


def close_reason_from(ctx: Context) -> str | None:
    return ctx.value(_Key.CLOSE_REASON)


def with_protocol_context(ctx: Context, protocol_ctx: Any) -> Context:
    """Per-adapter metadata about the delivery (Pub/Sub message id, HTTP request, ...)."""
    return ctx.with_value(_Key.PROTOCOL_CONTEXT, protocol_ctx)


def protocol_context_from(ctx: Context) -> Any:
    return ctx.value(_Key.PROTOCOL_CONTEXT)


# -- retry ----------------------------------------------------------------------


class BackoffStrategy(StrEnum):
    """How long to wait between attempts."""

    NONE = "none"
    CONSTANT = "constant"
    LINEAR = "linear"
    EXPONENTIAL = "exponential"


@dataclass(frozen=True, slots=True)
class RetryParams:
    strategy: BackoffStrategy = BackoffStrategy.NONE
    period: float = 0.0
    max_tries: int = 0


def _with_retries(
    ctx: Context, strategy: BackoffStrategy, period: float, max_tries: int
) -> Context:
    if period < 0:
        msg = f"retry period must be >= 0, got {period}"
        raise ValueError(msg)
    if max_tries < 1:
        msg = f"max_tries must be >= 1, got {max_tries}"
        raise ValueError(msg)
    return ctx.with_value(_Key.RETRY, RetryParams(strategy, period, max_tries))


def with_retries_constant_backoff(ctx: Context, period: float, max_tries: int) -> Context:
    """Retry retriable results every *period* seconds, *max_tries* attempts total."""
    return _with_retries(ctx, BackoffStrategy.CONSTANT, period, max_tries)


def with_retries_linear_backoff(ctx: Context, period: float, max_tries: int) -> Context:
    return _with_retries(ctx, BackoffStrategy.LINEAR, period, max_tries)


def with_retries_exponential_backoff(
    ctx: Context, period: float, max_tries: int
) -> Context:
    return _with_retries(ctx, BackoffStrategy.EXPONENTIAL, period, max_tries)


def retries_from(ctx: Context) -> RetryParams | None:
    return ctx.value(_Key.RETRY)
