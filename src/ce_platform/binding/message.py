"""Message and writer protocols the bindings are built around.

A :class:`Message` is a one-shot carrier of a single event in one encoding.
Protocol adapters wrap their native payloads in a Message; senders drive the
write pipeline (:func:`ce_platform.binding.write.write`) which reads the
message into a :class:`StructuredWriter` or :class:`BinaryWriter`.
"""

from __future__ import annotations

from typing import IO, TYPE_CHECKING, Any, Protocol, runtime_checkable

from ce_platform.binding.encoding import Encoding
from ce_platform.binding.spec import Attribute, Kind
from ce_platform.context import Context

if TYPE_CHECKING:
    from ce_platform.binding.format import Format


@runtime_checkable
class StructuredWriter(Protocol):
    """Receives a whole serialised event."""

    def set_structured_event(self, ctx: Context, fmt: Format, event: IO[bytes]) -> None: ...


@runtime_checkable
class BinaryWriter(Protocol):
    """Receives attributes, extensions and data one at a time.

    The write pipeline calls ``start``, lets the message emit
    ``set_attribute`` (specversion first), ``set_extension`` and at most one
    ``set_data``, then calls ``end``.  ``end`` is not called after a failure.
    A ``None`` value removes the attribute or extension.
    """

    def start(self, ctx: Context) -> None: ...

    def set_attribute(self, attribute: Attribute, value: Any) -> None: ...

    def set_extension(self, name: str, value: Any) -> None: ...

    def set_data(self, data: IO[bytes]) -> None: ...

    def end(self, ctx: Context) -> None: ...


@runtime_checkable
class MessageMetadataReader(Protocol):
    """Random access to attributes and extensions without a full decode."""

    def get_attribute(self, kind: Kind) -> tuple[Attribute | None, Any]: ...

    def get_extension(self, name: str) -> Any: ...


@runtime_checkable
class MessageMetadataWriter(Protocol):
    """Attribute and extension mutation, as used by transformers."""

    def set_attribute(self, attribute: Attribute, value: Any) -> None: ...

    def set_extension(self, name: str, value: Any) -> None: ...


@runtime_checkable
class Message(Protocol):
    """A single event in transit.

    ``finish`` must be awaited exactly once after the message is consumed;
    ``None`` or an ACK result acknowledges upstream, anything else nacks.
    """

    def read_encoding(self) -> Encoding: ...

    def read_structured(self, ctx: Context, writer: StructuredWriter) -> None: ...

    def read_binary(self, ctx: Context, writer: BinaryWriter) -> None:
        """Emit attributes, extensions and data; never calls start/end."""
        ...

    async def finish(self, err: BaseException | None) -> None: ...


class MessageWrapper(Protocol):
    """A message decorating another one."""

    def get_wrapped_message(self) -> Message: ...


def unwrap(message: Message) -> Message:
    """Strip :class:`MessageWrapper` layers off *message*."""
    while hasattr(message, "get_wrapped_message"):
        message = message.get_wrapped_message()
    return message
