"""Send/receive outcomes: ACK, NACK, retriable and fatal results.

A :class:`Result` is an ``Exception`` so it can be raised or chained, but
protocols *return* results; ``None`` counts as an ACK everywhere.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any


class ResultKind(StrEnum):
    ACK = "ack"
    NACK = "nack"
    RETRIABLE = "retriable"
    FATAL = "fatal"


class Result(Exception):
    """Tagged outcome carrying an optional cause and protocol metadata."""

    def __init__(
        self,
        kind: ResultKind,
        message: str = "",
        *,
        cause: BaseException | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        self.kind = kind
        self.message = message
        self.cause = cause
        self.metadata: dict[str, Any] = dict(metadata or {})
        if cause is not None:
            self.__cause__ = cause
        super().__init__(str(self))

    def __str__(self) -> str:
        parts = [self.kind.value]
        if self.message:
            parts.append(self.message)
        if self.cause is not None:
            parts.append(str(self.cause))
        return ": ".join(parts)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.kind.value!r}, {self.message!r})"

    @classmethod
    def ack(cls, message: str = "") -> Result:
        return cls(ResultKind.ACK, message)

    @classmethod
    def nack(cls, message: str = "", *, cause: BaseException | None = None) -> Result:
        return cls(ResultKind.NACK, message, cause=cause)

    @classmethod
    def retriable(cls, message: str = "", *, cause: BaseException | None = None) -> Result:
        return cls(ResultKind.RETRIABLE, message, cause=cause)

    @classmethod
    def fatal(cls, message: str = "", *, cause: BaseException | None = None) -> Result:
        return cls(ResultKind.FATAL, message, cause=cause)


def receipt(acked: bool, message: str = "", *, cause: BaseException | None = None) -> Result:
    """An ACK or NACK depending on *acked*."""
    kind = ResultKind.ACK if acked else ResultKind.NACK
    return Result(kind, message, cause=cause)


class RetriesResult(Result):
    """The final result of a retried operation plus its attempt history."""

    def __init__(
        self,
        result: Result | None,
        retries: int,
        duration: float,
        attempts: list[Result | None],
    ) -> None:
        self.result = result
        self.retries = retries
        self.duration = duration
        self.attempts = list(attempts)
        kind = result.kind if isinstance(result, Result) else ResultKind.ACK
        message = f"{retries} retries"
        super().__init__(kind, message, cause=result)
        if isinstance(result, Result):
            self.metadata = dict(result.metadata)


def is_ack(result: BaseException | None) -> bool:
    return result is None or (isinstance(result, Result) and result.kind == ResultKind.ACK)


def is_nack(result: BaseException | None) -> bool:
    return isinstance(result, Result) and result.kind == ResultKind.NACK


def is_undelivered(result: BaseException | None) -> bool:
    """Neither acknowledged nor rejected: the peer never saw the message."""
    return not is_ack(result) and not is_nack(result)


def is_retriable(result: BaseException | None) -> bool:
    return isinstance(result, Result) and result.kind == ResultKind.RETRIABLE


def result_as(result: BaseException | None, cls: type[Result]) -> Result | None:
    """Find a *cls* instance in *result*'s cause chain."""
    seen: set[int] = set()
    current: BaseException | None = result
    while current is not None and id(current) not in seen:
        if isinstance(current, cls):
            return current
        seen.add(id(current))
        current = current.cause if isinstance(current, Result) else current.__cause__
    return None
