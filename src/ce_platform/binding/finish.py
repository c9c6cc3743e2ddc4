"""Finish-hook decorators for messages."""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable

from ce_platform.binding.encoding import Encoding
from ce_platform.binding.message import BinaryWriter, Message, StructuredWriter
from ce_platform.context import Context

FinishFn = Callable[[BaseException | None], Awaitable[None] | None]


class _DelegatingMessage:
    __slots__ = ("_message",)

    def __init__(self, message: Message) -> None:
        self._message = message

    def get_wrapped_message(self) -> Message:
        return self._message

    def read_encoding(self) -> Encoding:
        return self._message.read_encoding()

    def read_structured(self, ctx: Context, writer: StructuredWriter) -> None:
        self._message.read_structured(ctx, writer)

    def read_binary(self, ctx: Context, writer: BinaryWriter) -> None:
        self._message.read_binary(ctx, writer)

    async def finish(self, err: BaseException | None) -> None:
        await self._message.finish(err)


class FinishMessage(_DelegatingMessage):
    """Runs ``fn(err)`` after the wrapped ``finish``; later calls are no-ops."""

    __slots__ = ("_finished", "_fn")

    def __init__(self, message: Message, fn: FinishFn | None) -> None:
        super().__init__(message)
        self._fn = fn
        self._finished = False

    async def finish(self, err: BaseException | None) -> None:
        if self._finished:
            return
        self._finished = True
        try:
            await self._message.finish(err)
        finally:
            if self._fn is not None:
                result = self._fn(err)
                if inspect.isawaitable(result):
                    await result


def with_finish(message: Message, fn: FinishFn | None) -> FinishMessage:
    return FinishMessage(message, fn)


class AcksBeforeFinishMessage(_DelegatingMessage):
    """Finishes the wrapped message once ``finish`` was called *acks* times."""

    __slots__ = ("_remaining",)

    def __init__(self, message: Message, acks: int) -> None:
        if acks < 1:
            msg = f"acks must be >= 1, got {acks}"
            raise ValueError(msg)
        super().__init__(message)
        self._remaining = acks

    async def finish(self, err: BaseException | None) -> None:
        if self._remaining <= 0:
            return
        self._remaining -= 1
        if self._remaining == 0:
            await self._message.finish(err)


def with_acks_before_finish(message: Message, acks: int) -> AcksBeforeFinishMessage:
    return AcksBeforeFinishMessage(message, acks)
