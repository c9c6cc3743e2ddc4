"""Transformers: in-pipeline mutators of attributes and extensions.

A transformer reads through a :class:`MessageMetadataReader` and writes
through a :class:`MessageMetadataWriter`.  They run in order, after the
message has been read into its writer (or into an Event).
"""

from __future__ import annotations

import uuid
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from ce_platform.binding.message import MessageMetadataReader, MessageMetadataWriter
from ce_platform.binding.spec import Kind
from ce_platform.types import Timestamp

Transformer = Callable[[MessageMetadataReader, MessageMetadataWriter], None]


def apply(
    transformers: Iterable[Transformer],
    reader: MessageMetadataReader,
    writer: MessageMetadataWriter,
) -> None:
    for transformer in transformers:
        transformer(reader, writer)


# -- attributes -----------------------------------------------------------------


def add_attribute(kind: Kind, value: Any) -> Transformer:
    """Set *kind* to *value* only if the message does not carry it.

    *value* may be a zero-argument callable, evaluated per message.
    """

    def _add(reader: MessageMetadataReader, writer: MessageMetadataWriter) -> None:
        attr, current = reader.get_attribute(kind)
        if attr is None or current is not None:
            return
        writer.set_attribute(attr, value() if callable(value) else value)

    return _add


def set_attribute(kind: Kind, value: Any) -> Transformer:
    """Set *kind* to *value* unconditionally."""

    def _set(reader: MessageMetadataReader, writer: MessageMetadataWriter) -> None:
        attr, _ = reader.get_attribute(kind)
        if attr is not None:
            writer.set_attribute(attr, value() if callable(value) else value)

    return _set


def update_attribute(kind: Kind, fn: Callable[[Any], Any]) -> Transformer:
    """Replace a present attribute with ``fn(current)``."""

    def _update(reader: MessageMetadataReader, writer: MessageMetadataWriter) -> None:
        attr, current = reader.get_attribute(kind)
        if attr is None or current is None:
            return
        writer.set_attribute(attr, fn(current))

    return _update


def delete_attribute(kind: Kind) -> Transformer:
    def _delete(reader: MessageMetadataReader, writer: MessageMetadataWriter) -> None:
        attr, current = reader.get_attribute(kind)
        if attr is not None and current is not None:
            writer.set_attribute(attr, None)

    return _delete


def add_uuid() -> Transformer:
    """Fill a missing ``id`` with a random UUID."""
    return add_attribute(Kind.ID, lambda: str(uuid.uuid4()))


def add_time_now() -> Transformer:
    """Fill a missing ``time`` with the current time."""
    return add_attribute(Kind.TIME, Timestamp.now)


# -- extensions -----------------------------------------------------------------


def add_extension(name: str, value: Any) -> Transformer:
    def _add(reader: MessageMetadataReader, writer: MessageMetadataWriter) -> None:
        if reader.get_extension(name) is None:
            writer.set_extension(name, value)

    return _add


def set_extension(name: str, value: Any) -> Transformer:
    def _set(reader: MessageMetadataReader, writer: MessageMetadataWriter) -> None:
        writer.set_extension(name, value)

    return _set


def update_extension(name: str, fn: Callable[[Any], Any]) -> Transformer:
    def _update(reader: MessageMetadataReader, writer: MessageMetadataWriter) -> None:
        current = reader.get_extension(name)
        if current is not None:
            writer.set_extension(name, fn(current))

    return _update


def delete_extension(name: str) -> Transformer:
    def _delete(reader: MessageMetadataReader, writer: MessageMetadataWriter) -> None:
        if reader.get_extension(name) is not None:
            writer.set_extension(name, None)

    return _delete


def set_extension_overrides(overrides: Mapping[str, Any]) -> Transformer:
    """Force every extension in *overrides* onto the message."""
    items = dict(overrides)

    def _override(reader: MessageMetadataReader, writer: MessageMetadataWriter) -> None:
        for name, value in items.items():
            writer.set_extension(name, value)

    return _override
