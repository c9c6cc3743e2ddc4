"""Google Cloud Pub/Sub protocol: publish and streaming pull."""

from __future__ import annotations

import asyncio
from typing import Any

import structlog

from ce_platform.binding.message import Message
from ce_platform.binding.transformer import Transformer
from ce_platform.config.models import PubSubConfig
from ce_platform.context import Context, logger_from, topic_from
from ce_platform.exceptions import ContextCancelledError
from ce_platform.protocol.pubsub.message import PubSubBindingMessage, write_pubsub_message
from ce_platform.protocol.result import Result, is_ack

logger = structlog.get_logger()


def topic_path(project_id: str, topic: str) -> str:
    """Qualify a short topic name; full ``projects/...`` paths pass through."""
    if topic.startswith("projects/"):
        return topic
    return f"projects/{project_id}/topics/{topic}"


def subscription_path(project_id: str, subscription: str) -> str:
    if subscription.startswith("projects/"):
        return subscription
    return f"projects/{project_id}/subscriptions/{subscription}"


class PubSubProtocol:
    """Sender, Opener, Receiver and Closer over Pub/Sub.

    Clients are created lazily.  Finishing a received message with an ACK
    acks it; anything else nacks it for redelivery.
    """

    def __init__(self, config: PubSubConfig) -> None:
        self._config = config
        self._publisher = None
        self._subscriber = None
        self._streaming_future: Any = None
        self._incoming: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = asyncio.Event()

    def _get_publisher(self):  # noqa: ANN202
        if self._publisher is None:
            from google.cloud import pubsub_v1

            if self._config.ordering_enabled:
                from google.cloud.pubsub_v1 import types

                publisher_options = types.PublisherOptions(
                    enable_message_ordering=True,
                )
                self._publisher = pubsub_v1.PublisherClient(
                    publisher_options=publisher_options,
                )
            else:
                self._publisher = pubsub_v1.PublisherClient()
        return self._publisher

    def _get_subscriber(self):  # noqa: ANN202
        if self._subscriber is None:
            from google.cloud import pubsub_v1

            self._subscriber = pubsub_v1.SubscriberClient()
        return self._subscriber

    async def send(
        self, ctx: Context, message: Message, *transformers: Transformer
    ) -> Result | None:
        err: BaseException | None = None
        try:
            topic = topic_from(ctx) or self._config.topic
            if not topic:
                err = Result.fatal("no topic configured")
                return err
            out = write_pubsub_message(ctx, message, *transformers)
            kwargs: dict[str, Any] = {
                "topic": topic_path(self._config.project_id, topic),
                "data": out.data,
            }
            if out.ordering_key and self._config.ordering_enabled:
                kwargs["ordering_key"] = out.ordering_key
            kwargs.update(out.attributes)
            future = self._get_publisher().publish(**kwargs)
            loop = asyncio.get_running_loop()
            try:
                message_id = await ctx.race(loop.run_in_executor(None, future.result))
            except ContextCancelledError as exc:
                err = Result.retriable("publish cancelled", cause=exc)
                return err
            except Exception as exc:
                logger_from(ctx).warning("pubsub.publish_failed", topic=topic, error=str(exc))
                err = Result.retriable("publish failed", cause=exc)
                return err
            logger_from(ctx).debug("pubsub.published", topic=topic, message_id=message_id)
            return None
        except Exception as exc:
            err = exc
            raise
        finally:
            await message.finish(err)

    async def open_inbound(self, ctx: Context) -> None:
        """Stream-pull the configured subscription until *ctx* ends or close."""
        if not self._config.subscription:
            msg = "pubsub subscription is required to receive"
            raise ValueError(msg)
        from google.cloud.pubsub_v1 import types

        subscription = subscription_path(self._config.project_id, self._config.subscription)
        loop = asyncio.get_running_loop()

        def _callback(received: Any) -> None:
            if self._closed.is_set():
                received.nack()
                return
            loop.call_soon_threadsafe(self._incoming.put_nowait, received)

        flow_control = types.FlowControl(
            max_messages=self._config.max_outstanding_messages,
        )
        self._streaming_future = self._get_subscriber().subscribe(
            subscription,
            callback=_callback,
            flow_control=flow_control,
        )
        logger.info("pubsub.subscribed", subscription=subscription)
        closer = asyncio.ensure_future(self._closed.wait())
        try:
            await ctx.race(closer)
        except ContextCancelledError:
            pass
        finally:
            closer.cancel()
            self._streaming_future.cancel()
            logger.info("pubsub.unsubscribed", subscription=subscription)

    async def receive(self, ctx: Context) -> Message:
        if self._closed.is_set():
            raise EOFError
        getter = asyncio.ensure_future(self._incoming.get())
        closer = asyncio.ensure_future(self._closed.wait())
        try:
            await ctx.race(asyncio.wait({getter, closer}, return_when=asyncio.FIRST_COMPLETED))
        except ContextCancelledError:
            if getter.done() and not getter.cancelled():
                self._incoming.put_nowait(getter.result())
            raise EOFError from None
        finally:
            closer.cancel()
            if not getter.done():
                getter.cancel()
        if not getter.done() or getter.cancelled():
            raise EOFError
        received = getter.result()

        def _settle(err: BaseException | None) -> None:
            if is_ack(err):
                received.ack()
            else:
                received.nack()

        return PubSubBindingMessage(
            received, subscription=self._config.subscription, on_finish=_settle
        )

    async def close(self, ctx: Context) -> None:
        if self._closed.is_set():
            return
        self._closed.set()
        if self._streaming_future is not None:
            self._streaming_future.cancel()
        if self._subscriber is not None:
            self._subscriber.close()
            self._subscriber = None
        if self._publisher is not None:
            self._publisher.stop()
            self._publisher = None
        logger.debug("pubsub.closed")
