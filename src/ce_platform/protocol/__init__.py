"""Protocol contracts and results.

Adapters live in subpackages (``http``, ``kafka``, ``pubsub``, ``sqs``,
``amqp``) and ``inproc``; import them directly so unused transport
libraries are never loaded.
"""

from ce_platform.protocol.interfaces import (
    Closer,
    Opener,
    Receiver,
    Requester,
    Responder,
    ResponseFn,
    Sender,
)
from ce_platform.protocol.result import (
    Result,
    ResultKind,
    RetriesResult,
    is_ack,
    is_nack,
    is_retriable,
    is_undelivered,
    receipt,
    result_as,
)

__all__ = [
    "Closer",
    "Opener",
    "Receiver",
    "Requester",
    "Responder",
    "ResponseFn",
    "Result",
    "ResultKind",
    "RetriesResult",
    "Sender",
    "is_ack",
    "is_nack",
    "is_retriable",
    "is_undelivered",
    "receipt",
    "result_as",
]
