"""Client runtime: send, request and receive CloudEvents."""

from ce_platform.client.client import Client
from ce_platform.client.defaulters import (
    EventDefaulter,
    default_id_to_uuid_if_not_set,
    default_time_to_now_if_not_set,
    new_default_data_content_type_if_not_set,
)
from ce_platform.client.invoker import ReceiverFn
from ce_platform.client.options import (
    Option,
    with_ack_malformed_event,
    with_blocking_callback,
    with_event_defaulter,
    with_force_binary,
    with_force_structured,
    with_logger,
    with_outbound_context_decorator,
    with_poll_workers,
    with_time_now,
    with_uuids,
)

__all__ = [
    "Client",
    "EventDefaulter",
    "Option",
    "ReceiverFn",
    "default_id_to_uuid_if_not_set",
    "default_time_to_now_if_not_set",
    "new_default_data_content_type_if_not_set",
    "with_ack_malformed_event",
    "with_blocking_callback",
    "with_event_defaulter",
    "with_force_binary",
    "with_force_structured",
    "with_logger",
    "with_outbound_context_decorator",
    "with_poll_workers",
    "with_time_now",
    "with_uuids",
]
