"""CloudEvents SDK: event model, protocol bindings and client runtime."""

from ce_platform.client import Client
from ce_platform.context import Context, background
from ce_platform.event import Event, new_event
from ce_platform.exceptions import ValidationError
from ce_platform.protocol import Result, is_ack, is_nack, is_undelivered

__version__ = "0.1.0"

__all__ = [
    "Client",
    "Context",
    "Event",
    "Result",
    "ValidationError",
    "background",
    "is_ack",
    "is_nack",
    "is_undelivered",
    "new_event",
]
