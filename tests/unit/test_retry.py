"""Unit tests for the tenacity backoff schedule used by client retries."""

from __future__ import annotations

import pytest
from tenacity import RetryCallState

from ce_platform.client.retry import wait_for
from ce_platform.context import BackoffStrategy, RetryParams


def _after(attempt: int) -> RetryCallState:
    state = RetryCallState(None, None, (), {})
    state.attempt_number = attempt
    return state


class TestWaitFor:
    def test_constant(self):
        wait = wait_for(RetryParams(BackoffStrategy.CONSTANT, 0.1, 3))
        assert wait(_after(1)) == pytest.approx(0.1)
        assert wait(_after(3)) == pytest.approx(0.1)

    def test_linear(self):
        wait = wait_for(RetryParams(BackoffStrategy.LINEAR, 0.1, 3))
        assert wait(_after(1)) == pytest.approx(0.1)
        assert wait(_after(2)) == pytest.approx(0.2)

    def test_exponential(self):
        wait = wait_for(RetryParams(BackoffStrategy.EXPONENTIAL, 0.1, 3))
        assert wait(_after(1)) == pytest.approx(0.2)
        assert wait(_after(2)) == pytest.approx(0.4)
