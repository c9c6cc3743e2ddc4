"""In-process protocol over an ``asyncio.Queue``.

Useful for wiring a client to itself in tests and for local fan-in.  Sent
messages are copied into memory, so the sender's message is finished as soon
as it is enqueued.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

import structlog

from ce_platform.binding.buffering import copy_message
from ce_platform.binding.finish import with_finish
from ce_platform.binding.message import Message
from ce_platform.binding.transformer import Transformer
from ce_platform.context import Context
from ce_platform.exceptions import ContextCancelledError
from ce_platform.protocol.interfaces import ResponseFn
from ce_platform.protocol.result import Result

logger = structlog.get_logger()


@dataclass(slots=True)
class _Delivery:
    message: Message
    reply: asyncio.Future[tuple[Message | None, Result | None]] | None = None


def _as_result(err: BaseException | None) -> Result | None:
    if err is None or isinstance(err, Result):
        return err
    return Result.nack(str(err), cause=err)


class ChannelProtocol:
    """Sender, Requester, Receiver, Responder and Closer on one queue."""

    def __init__(self, maxsize: int = 0) -> None:
        self._queue: asyncio.Queue[_Delivery] = asyncio.Queue(maxsize)
        self._closed = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    async def send(
        self, ctx: Context, message: Message, *transformers: Transformer
    ) -> Result | None:
        err: BaseException | None = None
        try:
            if self.closed:
                err = Result.fatal("channel closed")
                return err
            copied = copy_message(ctx, message, *transformers)
            await ctx.race(self._queue.put(_Delivery(copied)))
            return None
        except ContextCancelledError as exc:
            err = Result.retriable("send cancelled", cause=exc)
            return err
        except Exception as exc:
            err = exc
            raise
        finally:
            await message.finish(err)

    async def request(
        self, ctx: Context, message: Message, *transformers: Transformer
    ) -> tuple[Message | None, Result | None]:
        err: BaseException | None = None
        try:
            if self.closed:
                err = Result.fatal("channel closed")
                return None, err
            loop = asyncio.get_running_loop()
            reply: asyncio.Future[tuple[Message | None, Result | None]] = loop.create_future()
            copied = copy_message(ctx, message, *transformers)
            await ctx.race(self._queue.put(_Delivery(copied, reply)))
            return await ctx.race(reply)
        except ContextCancelledError as exc:
            err = Result.retriable("request cancelled", cause=exc)
            return None, err
        except Exception as exc:
            err = exc
            raise
        finally:
            await message.finish(err)

    async def _next(self, ctx: Context) -> _Delivery:
        if self.closed:
            raise EOFError
        getter = asyncio.ensure_future(self._queue.get())
        closer = asyncio.ensure_future(self._closed.wait())
        try:
            await ctx.race(asyncio.wait({getter, closer}, return_when=asyncio.FIRST_COMPLETED))
        except ContextCancelledError:
            if getter.done() and not getter.cancelled():
                self._queue.put_nowait(getter.result())
            raise EOFError from None
        finally:
            closer.cancel()
            if not getter.done():
                getter.cancel()
        if getter.done() and not getter.cancelled():
            return getter.result()
        raise EOFError

    async def receive(self, ctx: Context) -> Message:
        delivery = await self._next(ctx)
        reply = delivery.reply
        if reply is None:
            return delivery.message

        def _settle(err: BaseException | None) -> None:
            if not reply.done():
                reply.set_result((None, _as_result(err)))

        return with_finish(delivery.message, _settle)

    async def respond(self, ctx: Context) -> tuple[Message, ResponseFn | None]:
        delivery = await self._next(ctx)
        reply = delivery.reply
        if reply is None:
            return delivery.message, None

        async def _respond(
            rctx: Context, message: Message | None, result: BaseException | None
        ) -> None:
            if reply.done():
                return
            copied = copy_message(rctx, message) if message is not None else None
            reply.set_result((copied, _as_result(result)))
            if message is not None:
                await message.finish(None)

        return delivery.message, _respond

    async def close(self, ctx: Context) -> None:
        if self.closed:
            return
        self._closed.set()
        logger.debug("inproc.closed", pending=self._queue.qsize())
