"""Message/binding pipeline: encodings, writers, transformers and helpers."""

from ce_platform.binding.buffering import (
    BinaryBufferMessage,
    StructuredBufferMessage,
    buffer_message,
    copy_message,
)
from ce_platform.binding.encoding import (
    Encoding,
    with_force_binary,
    with_force_structured,
    with_preferred_event_encoding,
    use_format_for_event,
)
from ce_platform.binding.event_message import EventBuilder, EventMessage, to_message
from ce_platform.binding.finish import with_acks_before_finish, with_finish
from ce_platform.binding.message import (
    BinaryWriter,
    Message,
    MessageMetadataReader,
    MessageMetadataWriter,
    StructuredWriter,
)
from ce_platform.binding.spec import Attribute, Kind, Version, Versions
from ce_platform.binding.to_event import to_event
from ce_platform.binding.transformer import Transformer
from ce_platform.binding.write import direct_write, write

__all__ = [
    "Attribute",
    "BinaryBufferMessage",
    "BinaryWriter",
    "Encoding",
    "EventBuilder",
    "EventMessage",
    "Kind",
    "Message",
    "MessageMetadataReader",
    "MessageMetadataWriter",
    "StructuredBufferMessage",
    "StructuredWriter",
    "Transformer",
    "Version",
    "Versions",
    "buffer_message",
    "copy_message",
    "direct_write",
    "to_event",
    "to_message",
    "use_format_for_event",
    "with_acks_before_finish",
    "with_finish",
    "with_force_binary",
    "with_force_structured",
    "with_preferred_event_encoding",
    "write",
]
