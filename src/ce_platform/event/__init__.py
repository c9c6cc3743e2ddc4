"""CloudEvents data model: events, per-version contexts and JSON codec."""

from ce_platform.event.event import Event, new_event
from ce_platform.event.eventcontext import (
    APPLICATION_CLOUDEVENTS_BATCH_JSON,
    APPLICATION_CLOUDEVENTS_JSON,
    APPLICATION_JSON,
    TEXT_JSON,
    VERSION_V03,
    VERSION_V1,
    EventContext,
    EventContextV03,
    EventContextV1,
)
from ce_platform.event.marshal import (
    marshal_batch,
    marshal_event,
    unmarshal_batch,
    unmarshal_event,
)

__all__ = [
    "APPLICATION_CLOUDEVENTS_BATCH_JSON",
    "APPLICATION_CLOUDEVENTS_JSON",
    "APPLICATION_JSON",
    "TEXT_JSON",
    "VERSION_V03",
    "VERSION_V1",
    "Event",
    "EventContext",
    "EventContextV03",
    "EventContextV1",
    "marshal_batch",
    "marshal_event",
    "new_event",
    "unmarshal_batch",
    "unmarshal_event",
]
