"""Message encodings and the context hints that steer the write pipeline."""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING

from ce_platform.context import Context

if TYPE_CHECKING:
    from ce_platform.binding.format import Format


class Encoding(StrEnum):
    """How a message carries its event."""

    UNKNOWN = "unknown"
    BINARY = "binary"
    STRUCTURED = "structured"
    EVENT = "event"


class _Hint(StrEnum):
    FORCE_STRUCTURED = "binding.force_structured"
    FORCE_BINARY = "binding.force_binary"
    PREFERRED_EVENT_ENCODING = "binding.preferred_event_encoding"
    FORMAT = "binding.format"


def with_force_structured(ctx: Context) -> Context:
    """Always write structured, converting binary sources through an Event."""
    return ctx.with_value(_Hint.FORCE_STRUCTURED, True).with_value(_Hint.FORCE_BINARY, False)


def with_force_binary(ctx: Context) -> Context:
    """Always write binary, converting structured sources through an Event."""
    return ctx.with_value(_Hint.FORCE_BINARY, True).with_value(_Hint.FORCE_STRUCTURED, False)


def is_force_structured(ctx: Context) -> bool:
    return bool(ctx.value(_Hint.FORCE_STRUCTURED, False))


def is_force_binary(ctx: Context) -> bool:
    return bool(ctx.value(_Hint.FORCE_BINARY, False))


def with_preferred_event_encoding(ctx: Context, encoding: Encoding) -> Context:
    """Encoding used when the source message is an in-memory Event."""
    if encoding not in (Encoding.BINARY, Encoding.STRUCTURED):
        msg = f"preferred event encoding must be binary or structured, got {encoding}"
        raise ValueError(msg)
    return ctx.with_value(_Hint.PREFERRED_EVENT_ENCODING, encoding)


def preferred_event_encoding(ctx: Context) -> Encoding:
    return ctx.value(_Hint.PREFERRED_EVENT_ENCODING, Encoding.BINARY)


def use_format_for_event(ctx: Context, fmt: Format) -> Context:
    """Format used when an Event has to be written in structured mode."""
    return ctx.with_value(_Hint.FORMAT, fmt)


def format_for_event(ctx: Context) -> Format:
    from ce_platform.binding import format as formats

    return ctx.value(_Hint.FORMAT) or formats.JSON
