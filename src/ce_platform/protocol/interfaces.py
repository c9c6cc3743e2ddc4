"""Contracts protocol adapters implement.

The client only ever talks to adapters through these protocols, so any
transport (HTTP, Kafka, Pub/Sub, SQS, in-process queues, ...) that satisfies
them can be plugged in.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Protocol, runtime_checkable

from ce_platform.binding.message import Message
from ce_platform.binding.transformer import Transformer
from ce_platform.context import Context
from ce_platform.protocol.result import Result

ResponseFn = Callable[[Context, Message | None, BaseException | None], Awaitable[None]]


@runtime_checkable
class Sender(Protocol):
    async def send(
        self, ctx: Context, message: Message, *transformers: Transformer
    ) -> Result | None:
        """Write *message* to the transport.

        Must call ``message.finish`` exactly once, including on failure.
        """
        ...


@runtime_checkable
class Requester(Protocol):
    async def request(
        self, ctx: Context, message: Message, *transformers: Transformer
    ) -> tuple[Message | None, Result | None]:
        """Send *message* and wait for the peer's reply message."""
        ...


@runtime_checkable
class Receiver(Protocol):
    async def receive(self, ctx: Context) -> Message:
        """Return the next inbound message.

        Raises ``EOFError`` once the receiver is closed or *ctx* ends.  The
        caller owns the returned message's ``finish``.
        """
        ...


@runtime_checkable
class Responder(Protocol):
    async def respond(self, ctx: Context) -> tuple[Message, ResponseFn | None]:
        """Like ``receive``, plus a function that writes the reply."""
        ...


@runtime_checkable
class Opener(Protocol):
    async def open_inbound(self, ctx: Context) -> None:
        """Serve inbound traffic until *ctx* is cancelled."""
        ...


@runtime_checkable
class Closer(Protocol):
    async def close(self, ctx: Context) -> None:
        """Release resources. Idempotent."""
        ...
