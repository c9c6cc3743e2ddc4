"""Amazon SQS protocol over boto3."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

import structlog

from ce_platform.binding.message import Message
from ce_platform.binding.transformer import Transformer
from ce_platform.config.models import SQSConfig
from ce_platform.context import Context, logger_from, target_from
from ce_platform.exceptions import ContextCancelledError
from ce_platform.protocol.result import Result, is_ack
from ce_platform.protocol.sqs.message import SQSMessage, write_sqs_message

logger = structlog.get_logger()


class SQSProtocol:
    """Sender, Receiver and Closer over one SQS queue.

    Blocking boto3 calls run in the default executor.  Finishing a received
    message with an ACK deletes it; otherwise it reappears once its
    visibility timeout expires.
    """

    def __init__(self, config: SQSConfig, *, client: Any = None) -> None:
        self._config = config
        self._client = client
        self._buffer: list[dict[str, Any]] = []
        self._closed = False

    def _get_client(self):  # noqa: ANN202
        if self._client is None:
            import boto3

            self._client = boto3.client("sqs", region_name=self._config.region)
        return self._client

    async def send(
        self, ctx: Context, message: Message, *transformers: Transformer
    ) -> Result | None:
        err: BaseException | None = None
        try:
            queue_url = target_from(ctx) or self._config.queue_url
            kwargs = write_sqs_message(ctx, message, queue_url, *transformers)
            client = self._get_client()
            loop = asyncio.get_running_loop()
            try:
                response = await ctx.race(
                    loop.run_in_executor(None, lambda: client.send_message(**kwargs))
                )
            except ContextCancelledError as exc:
                err = Result.retriable("send cancelled", cause=exc)
                return err
            except Exception as exc:
                logger_from(ctx).warning("sqs.send_failed", queue_url=queue_url, error=str(exc))
                err = Result.retriable("send_message failed", cause=exc)
                return err
            logger_from(ctx).debug("sqs.sent", message_id=response.get("MessageId"))
            return None
        except Exception as exc:
            err = exc
            raise
        finally:
            await message.finish(err)

    async def receive(self, ctx: Context) -> Message:
        if self._closed:
            raise EOFError
        client = self._get_client()
        loop = asyncio.get_running_loop()
        while not self._buffer:
            if self._closed or ctx.cancelled:
                raise EOFError
            try:
                response = await ctx.race(loop.run_in_executor(None, self._receive_batch, client))
            except ContextCancelledError:
                raise EOFError from None
            self._buffer.extend(response.get("Messages") or [])
        entry = self._buffer.pop(0)
        return SQSMessage(entry, on_finish=self._deleter(entry))

    def _receive_batch(self, client: Any) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "QueueUrl": self._config.queue_url,
            "MaxNumberOfMessages": self._config.max_messages,
            "WaitTimeSeconds": self._config.wait_time_seconds,
            "MessageAttributeNames": ["All"],
        }
        if self._config.visibility_timeout_seconds is not None:
            kwargs["VisibilityTimeout"] = self._config.visibility_timeout_seconds
        return client.receive_message(**kwargs)

    def _deleter(self, entry: dict[str, Any]) -> Callable[[BaseException | None], Any]:
        async def _delete(err: BaseException | None) -> None:
            if not is_ack(err):
                logger.debug("sqs.message_left", message_id=entry.get("MessageId"), error=str(err))
                return
            client = self._get_client()
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(
                None,
                lambda: client.delete_message(
                    QueueUrl=self._config.queue_url,
                    ReceiptHandle=entry["ReceiptHandle"],
                ),
            )

        return _delete

    async def close(self, ctx: Context) -> None:
        self._closed = True
        self._buffer.clear()
        self._client = None
