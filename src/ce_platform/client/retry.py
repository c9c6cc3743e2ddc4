"""Retrying sends and requests on RETRIABLE results."""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import structlog
from tenacity import (
    RetryCallState,
    retry,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
    wait_fixed,
    wait_incrementing,
)
from tenacity.wait import wait_base

from ce_platform.context import BackoffStrategy, Context, RetryParams, logger_from, retries_from
from ce_platform.exceptions import ContextCancelledError
from ce_platform.protocol.result import Result, RetriesResult, is_retriable

logger = structlog.get_logger()

T = TypeVar("T")


def wait_for(params: RetryParams) -> wait_base:
    """The tenacity wait matching *params*.

    After attempt ``n`` fails the wait is ``period`` (constant), ``period * n``
    (linear) or ``period * 2**n`` (exponential).
    """
    period = params.period
    if params.strategy == BackoffStrategy.LINEAR:
        return wait_incrementing(start=period, increment=period)
    if params.strategy == BackoffStrategy.EXPONENTIAL:
        return wait_exponential(multiplier=2 * period, exp_base=2)
    return wait_fixed(period)


async def with_retries(
    ctx: Context,
    attempt: Callable[[], Awaitable[T]],
    result_of: Callable[[T], Result | None],
    *,
    on_discard: Callable[[T], Awaitable[None]] | None = None,
) -> tuple[T, Result | None]:
    """Run *attempt* until its result is not RETRIABLE or tries run out.

    Returns the last outcome and its result.  When retries are configured the
    result is wrapped in a :class:`RetriesResult`.  NACKs are never retried.
    Outcomes of superseded attempts are passed to *on_discard*.
    """
    params = retries_from(ctx)
    if params is None or params.strategy == BackoffStrategy.NONE:
        outcome = await attempt()
        return outcome, result_of(outcome)

    log = logger_from(ctx)
    attempts: list[Result | None] = []
    outcomes: list[T] = []
    started = time.monotonic()

    def _before_sleep(state: RetryCallState) -> None:
        log.debug(
            "client.retrying",
            attempt=state.attempt_number,
            delay=state.next_action.sleep if state.next_action else None,
            result=str(attempts[-1]),
        )

    def _give_up(state: RetryCallState) -> Any:
        return state.outcome.result() if state.outcome is not None else None

    @retry(
        stop=stop_after_attempt(params.max_tries),
        wait=wait_for(params),
        retry=retry_if_result(lambda r: is_retriable(result_of(r))),
        retry_error_callback=_give_up,
        before_sleep=_before_sleep,
        sleep=ctx.sleep,
        reraise=True,
    )
    async def _attempt() -> T:
        if outcomes and on_discard is not None:
            await on_discard(outcomes[-1])
        outcome = await attempt()
        outcomes.append(outcome)
        attempts.append(result_of(outcome))
        return outcome

    try:
        outcome = await _attempt()
    except ContextCancelledError:
        if not outcomes:
            raise
        outcome = outcomes[-1]
        log.debug("client.retries_cancelled", attempts=len(attempts))
    last = result_of(outcome)
    wrapped = RetriesResult(last, len(attempts) - 1, time.monotonic() - started, attempts)
    return outcome, wrapped
