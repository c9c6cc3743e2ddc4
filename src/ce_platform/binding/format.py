"""Structured-mode format registry, keyed by media type."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from ce_platform.event.event import Event
from ce_platform.event.eventcontext import (
    APPLICATION_CLOUDEVENTS_BATCH_JSON,
    APPLICATION_CLOUDEVENTS_JSON,
)
from ce_platform.event.marshal import (
    marshal_batch,
    marshal_event,
    unmarshal_batch,
    unmarshal_event,
)


@runtime_checkable
class Format(Protocol):
    """Marshals events to and from one structured media type."""

    def media_type(self) -> str: ...

    def marshal(self, event: Event) -> bytes: ...

    def unmarshal(self, data: bytes) -> Event: ...


class JSONFormat:
    """``application/cloudevents+json``"""

    def media_type(self) -> str:
        return APPLICATION_CLOUDEVENTS_JSON

    def marshal(self, event: Event) -> bytes:
        return marshal_event(event)

    def unmarshal(self, data: bytes) -> Event:
        return unmarshal_event(data)


class JSONBatchFormat:
    """``application/cloudevents-batch+json``: a JSON array of events.

    A single event marshals as a one-element batch; unmarshalling a batch
    into one event is refused, use :meth:`unmarshal_batch`.
    """

    def media_type(self) -> str:
        return APPLICATION_CLOUDEVENTS_BATCH_JSON

    def marshal(self, event: Event) -> bytes:
        return marshal_batch([event])

    def unmarshal(self, data: bytes) -> Event:
        msg = "cannot unmarshal a batch into a single event"
        raise ValueError(msg)

    def marshal_batch(self, events: list[Event]) -> bytes:
        return marshal_batch(events)

    def unmarshal_batch(self, data: bytes) -> list[Event]:
        return unmarshal_batch(data)


JSON = JSONFormat()
JSON_BATCH = JSONBatchFormat()

_FORMATS: dict[str, Format] = {
    JSON.media_type(): JSON,
    JSON_BATCH.media_type(): JSON_BATCH,
}


def _media_type(content_type: str) -> str:
    return content_type.split(";", 1)[0].strip().lower()


def lookup(content_type: str | None) -> Format | None:
    """Return the format for *content_type*, ignoring parameters and case."""
    if not content_type:
        return None
    return _FORMATS.get(_media_type(content_type))


def is_format(content_type: str | None) -> bool:
    return lookup(content_type) is not None


def add(fmt: Format) -> None:
    """Register an additional format. Call at import time only."""
    _FORMATS[_media_type(fmt.media_type())] = fmt


def marshal(content_type: str, event: Event) -> bytes:
    fmt = lookup(content_type)
    if fmt is None:
        msg = f"unknown event format media-type {content_type!r}"
        raise ValueError(msg)
    return fmt.marshal(event)


def unmarshal(content_type: str, data: bytes) -> Event:
    fmt = lookup(content_type)
    if fmt is None:
        msg = f"unknown event format media-type {content_type!r}"
        raise ValueError(msg)
    return fmt.unmarshal(data)
