"""Event defaulters: fill in attributes before an event is sent."""

from __future__ import annotations

import uuid
from collections.abc import Callable

from ce_platform.context import Context, extension_overrides_from
from ce_platform.event.event import Event
from ce_platform.types import Timestamp

EventDefaulter = Callable[[Context, Event], Event]


def default_id_to_uuid_if_not_set(ctx: Context, event: Event) -> Event:
    """Give the event a random UUID when its id is empty."""
    if event.id:
        return event
    event = event.clone()
    event.id = str(uuid.uuid4())
    return event


def default_time_to_now_if_not_set(ctx: Context, event: Event) -> Event:
    if event.time is not None:
        return event
    event = event.clone()
    event.time = Timestamp.now()
    return event


def new_default_data_content_type_if_not_set(content_type: str) -> EventDefaulter:
    """A defaulter that sets datacontenttype when the event has none."""

    def _default(ctx: Context, event: Event) -> Event:
        if event.datacontenttype:
            return event
        event = event.clone()
        event.datacontenttype = content_type
        return event

    return _default


def apply_extension_overrides(ctx: Context, event: Event) -> Event:
    """Force the context's extension overrides onto the event.

    Always runs last on outbound events, after the configured defaulters.
    """
    overrides = extension_overrides_from(ctx)
    if not overrides:
        return event
    event = event.clone()
    for name, value in overrides.items():
        event.set_extension(name, value)
    return event
