"""The CloudEvents client: send, request and receive over any protocol."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import structlog

from ce_platform.binding.event_message import EventMessage
from ce_platform.binding.message import Message, unwrap
from ce_platform.binding.to_event import to_event
from ce_platform.client.defaulters import EventDefaulter, apply_extension_overrides
from ce_platform.client.invoker import ReceiverFn
from ce_platform.client.options import ContextDecorator, Option
from ce_platform.client.retry import with_retries
from ce_platform.context import (
    Context,
    background,
    with_cancel,
    with_logger,
    with_protocol_context,
)
from ce_platform.event.event import Event
from ce_platform.exceptions import ValidationError
from ce_platform.protocol.interfaces import (
    Closer,
    Opener,
    Receiver,
    Requester,
    Responder,
    ResponseFn,
    Sender,
)
from ce_platform.protocol.result import Result, receipt

if TYPE_CHECKING:
    from ce_platform.config.models import ClientConfig

logger = structlog.get_logger()


class Client:
    """Sends and receives Events through a protocol object.

    The protocol may implement any subset of ``Sender``, ``Requester``,
    ``Receiver``, ``Responder``, ``Opener`` and ``Closer``; the matching
    client methods raise ``RuntimeError`` when their contract is missing.
    """

    def __init__(self, protocol: Any, *options: Option) -> None:
        self.protocol = protocol
        self.sender = protocol if isinstance(protocol, Sender) else None
        self.requester = protocol if isinstance(protocol, Requester) else None
        self.receiver = protocol if isinstance(protocol, Receiver) else None
        self.responder = protocol if isinstance(protocol, Responder) else None
        self.opener = protocol if isinstance(protocol, Opener) else None
        self.closer = protocol if isinstance(protocol, Closer) else None

        self.event_defaulters: list[EventDefaulter] = []
        self.outbound_context_decorators: list[ContextDecorator] = []
        self.poll_workers = 1
        self.blocking_callback = False
        self.ack_malformed_event = False
        self.logger: Any = logger
        self._receiving = False

        for option in options:
            option(self)

    @classmethod
    def from_config(cls, config: ClientConfig) -> Client:
        """Build a client and its protocol from a :class:`ClientConfig`."""
        from ce_platform.client.factory import create_protocol, options_from_config

        return cls(create_protocol(config), *options_from_config(config))

    # -- outbound ---------------------------------------------------------------

    def _outbound(self, ctx: Context, event: Event) -> tuple[Context, Event]:
        for decorate in self.outbound_context_decorators:
            ctx = decorate(ctx)
        event = self._apply_defaulters(ctx, event)
        event = apply_extension_overrides(ctx, event)
        event.validate()
        return ctx, event

    def _apply_defaulters(self, ctx: Context, event: Event) -> Event:
        for defaulter in self.event_defaulters:
            event = defaulter(ctx, event)
        return event

    async def send(self, ctx: Context, event: Event) -> Result | None:
        """Send *event*.

        Raises :class:`ValidationError` when the defaulted event is invalid.
        Returns ``None`` or an ACK result on success.
        """
        if self.sender is None:
            msg = "sender not set"
            raise RuntimeError(msg)
        ctx, event = self._outbound(ctx, event)
        sender = self.sender

        async def _attempt() -> Result | None:
            return await sender.send(ctx, EventMessage(event))

        _, result = await with_retries(ctx, _attempt, lambda r: r)
        return result

    async def request(self, ctx: Context, event: Event) -> tuple[Event | None, Result | None]:
        """Send *event* and decode the peer's reply, if it is a CloudEvent."""
        if self.requester is None:
            msg = "requester not set"
            raise RuntimeError(msg)
        ctx, event = self._outbound(ctx, event)
        requester = self.requester

        async def _attempt() -> tuple[Message | None, Result | None]:
            return await requester.request(ctx, EventMessage(event))

        async def _discard(outcome: tuple[Message | None, Result | None]) -> None:
            if outcome[0] is not None:
                await self._finish(ctx, outcome[0], None)

        (reply, _), result = await with_retries(
            ctx, _attempt, lambda outcome: outcome[1], on_discard=_discard
        )
        if reply is None:
            return None, result
        response: Event | None = None
        try:
            response = to_event(ctx, reply)
        except Exception as exc:
            self.logger.warning("client.reply_decode_failed", error=str(exc))
        await self._finish(ctx, reply, None)
        return response, result

    # -- inbound ----------------------------------------------------------------

    async def start_receiver(self, ctx: Context, fn: Callable[..., Any]) -> None:
        """Receive until *ctx* is cancelled or the protocol reaches EOF.

        Each message is decoded and passed to *fn*; see
        :mod:`ce_platform.client.invoker` for the accepted callback shapes.
        On return all in-flight callbacks have finished and the protocol is
        closed.
        """
        if self._receiving:
            msg = "client already has a receiver"
            raise RuntimeError(msg)
        invoker = ReceiverFn(fn)
        if self.responder is None and self.receiver is None:
            msg = "responder and receiver not set"
            raise RuntimeError(msg)
        self._receiving = True
        try:
            await self._run_receiver(ctx, invoker)
        finally:
            self._receiving = False

    async def _run_receiver(self, parent: Context, invoker: ReceiverFn) -> None:
        ctx, cancel = with_cancel(with_logger(parent, self.logger))
        in_flight: set[asyncio.Task[None]] = set()

        async def _poll() -> None:
            while True:
                respond: ResponseFn | None = None
                try:
                    if self.responder is not None:
                        message, respond = await self.responder.respond(ctx)
                    else:
                        message = await self.receiver.receive(ctx)  # type: ignore[union-attr]
                except EOFError:
                    return
                if self.blocking_callback:
                    await self._handle(ctx, message, respond, invoker)
                else:
                    task = asyncio.create_task(self._handle(ctx, message, respond, invoker))
                    in_flight.add(task)
                    task.add_done_callback(in_flight.discard)

        tasks: set[asyncio.Task[None]] = {
            asyncio.create_task(_poll()) for _ in range(self.poll_workers)
        }
        opener_task = None
        if self.opener is not None:
            opener_task = asyncio.create_task(self.opener.open_inbound(ctx))
            tasks.add(opener_task)
        self.logger.info(
            "client.receiver_started",
            poll_workers=self.poll_workers,
            blocking=self.blocking_callback,
        )
        failure: BaseException | None = None
        try:
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
            for task in done:
                if not task.cancelled() and task.exception() is not None:
                    failure = task.exception()
                    break
        finally:
            cancel()
            for task in tasks:
                if task is not opener_task:
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            if in_flight:
                await asyncio.gather(*in_flight, return_exceptions=True)
            if self.closer is not None:
                await self.closer.close(background())
            self.logger.info("client.receiver_stopped")
        if failure is not None:
            raise failure

    async def _handle(
        self,
        ctx: Context,
        message: Message,
        respond: ResponseFn | None,
        invoker: ReceiverFn,
    ) -> None:
        protocol_ctx = getattr(unwrap(message), "protocol_context", None)
        if protocol_ctx is not None:
            ctx = with_protocol_context(ctx, protocol_ctx)
        event: Event | None = None
        if invoker.wants_event:
            try:
                event = to_event(ctx, message)
                event.validate()
            except Exception as exc:
                await self._malformed(ctx, message, respond, exc)
                return

        reply, result = await invoker.invoke(ctx, event, message)
        if result is not None:
            self.logger.debug("client.callback_result", result=str(result))
        if reply is not None:
            try:
                reply = self._apply_defaulters(ctx, reply)
                reply.validate()
            except ValidationError as exc:
                self.logger.warning("client.invalid_response_event", error=str(exc))
                reply, result = None, exc

        if respond is not None:
            try:
                await respond(ctx, EventMessage(reply) if reply is not None else None, result)
            except Exception as exc:
                self.logger.warning("client.respond_failed", error=str(exc))
        elif reply is not None:
            self.logger.debug("client.response_dropped", reason="protocol cannot respond")
        await self._finish(ctx, message, result)

    async def _malformed(
        self,
        ctx: Context,
        message: Message,
        respond: ResponseFn | None,
        exc: Exception,
    ) -> None:
        err = exc if isinstance(exc, ValidationError) else ValidationError.single("event", str(exc))
        self.logger.warning(
            "client.malformed_event", error=str(err), acked=self.ack_malformed_event
        )
        if respond is not None:
            try:
                await respond(
                    ctx,
                    None,
                    receipt(
                        self.ack_malformed_event,
                        "failed to convert message to event",
                        cause=err,
                    ),
                )
            except Exception as resp_exc:
                self.logger.warning("client.respond_failed", error=str(resp_exc))
        await self._finish(ctx, message, None if self.ack_malformed_event else err)

    async def _finish(self, ctx: Context, message: Message, err: BaseException | None) -> None:
        try:
            await message.finish(err)
        except Exception as exc:
            self.logger.warning("client.finish_failed", error=str(exc))
