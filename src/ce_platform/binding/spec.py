"""Spec-version registry: attribute tables for CloudEvents v0.3 and v1.0.

Bindings look attributes up by their protocol-prefixed name (``ce-type``,
``ce_type``, ``cloudEvents:type``) or by :class:`Kind`, so transformers and
writers can stay version-agnostic.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from enum import IntEnum
from typing import Any

from ce_platform import types
from ce_platform.event.event import Event
from ce_platform.event.eventcontext import (
    VERSION_V03,
    VERSION_V1,
    EventContext,
    EventContextV03,
    EventContextV1,
)


class Kind(IntEnum):
    """Attribute kinds, in canonical order. The first four are required."""

    ID = 0
    SOURCE = 1
    SPECVERSION = 2
    TYPE = 3
    DATACONTENTTYPE = 4
    DATASCHEMA = 5
    SUBJECT = 6
    TIME = 7

    def is_required(self) -> bool:
        return self < Kind.DATACONTENTTYPE

    def __str__(self) -> str:
        return self.name.lower()


class Attribute:
    """A named attribute of one spec version."""

    __slots__ = ("_prefix", "kind", "name", "version")

    def __init__(self, name: str, kind: Kind, version: Version, prefix: str = "") -> None:
        self.name = name
        self.kind = kind
        self.version = version
        self._prefix = prefix

    @property
    def prefixed_name(self) -> str:
        return self._prefix + self.name

    def get(self, ctx: EventContext) -> Any:
        """Read the attribute; blank strings and unset values read as ``None``."""
        if self.kind == Kind.SPECVERSION:
            return ctx.specversion
        if self.kind == Kind.DATASCHEMA:
            value = ctx.dataschema if isinstance(ctx, EventContextV1) else ctx.schemaurl
        else:
            value = getattr(ctx, str(self.kind))
        if value is None:
            return None
        if isinstance(value, str) and value == "":
            return None
        return value

    def set(self, ctx: EventContext, value: Any) -> None:
        """Convert and store *value*; ``None`` clears optional attributes.

        Raises ``ValueError`` when the value cannot be converted.
        """
        kind = self.kind
        try:
            if kind == Kind.SPECVERSION:
                if value is not None and types.to_string(value) != ctx.specversion:
                    msg = f"invalid value for specversion: {value!r}"
                    raise ValueError(msg)
                return
            if kind in (Kind.ID, Kind.TYPE):
                setattr(ctx, str(kind), types.to_string(value) if value is not None else "")
            elif kind == Kind.SOURCE:
                ctx.source = types.to_uriref(value) if value is not None else None
            elif kind in (Kind.DATACONTENTTYPE, Kind.SUBJECT):
                setattr(ctx, str(kind), types.to_string(value) if value is not None else None)
            elif kind == Kind.DATASCHEMA:
                if isinstance(ctx, EventContextV1):
                    ctx.dataschema = types.to_uri(value) if value is not None else None
                else:
                    ctx.schemaurl = types.to_uriref(value) if value is not None else None
            elif kind == Kind.TIME:
                ctx.time = types.to_time(value) if value is not None else None
        except TypeError as exc:
            msg = f"invalid value for {self.kind}: {value!r}"
            raise ValueError(msg) from exc

    def __repr__(self) -> str:
        return f"Attribute({self.prefixed_name!r}, {self.kind.name}, {self.version})"


class Version:
    """One CloudEvents spec version with its attribute table."""

    def __init__(
        self,
        value: str,
        names: Iterable[tuple[str, Kind]],
        new_context: Callable[[], EventContext],
        prefix: str = "",
    ) -> None:
        self.value = value
        self.prefix = prefix
        self._names = tuple(names)
        self._new_context = new_context
        self._attrs = [Attribute(n, k, self, prefix) for n, k in self._names]
        self._by_name = {a.prefixed_name.lower(): a for a in self._attrs}
        self._by_kind = {a.kind: a for a in self._attrs}

    def with_prefix(self, prefix: str) -> Version:
        return Version(self.value, self._names, self._new_context, prefix)

    def attributes(self) -> list[Attribute]:
        return list(self._attrs)

    def attribute(self, prefixed_name: str) -> Attribute | None:
        """Look up an attribute by its prefixed name, case-insensitively."""
        return self._by_name.get(prefixed_name.lower())

    def attribute_from_kind(self, kind: Kind) -> Attribute | None:
        return self._by_kind.get(kind)

    def new_event(self) -> Event:
        return Event(context=self._new_context())

    def convert(self, ctx: EventContext) -> EventContext:
        """Return *ctx* converted to this version."""
        if self.value == VERSION_V1:
            return ctx.as_v1()
        return ctx.as_v03()

    def set_attribute(self, ctx: EventContext, prefixed_name: str, value: Any) -> None:
        """Set a known attribute, or an extension named after the stripped prefix."""
        attr = self.attribute(prefixed_name)
        if attr is not None:
            attr.set(ctx, value)
            return
        name = prefixed_name
        if self.prefix and name.lower().startswith(self.prefix.lower()):
            name = name[len(self.prefix) :]
        ctx.set_extension(name, value)

    def __str__(self) -> str:
        return self.value

    def __repr__(self) -> str:
        return f"Version({self.value!r}, prefix={self.prefix!r})"


class Versions:
    """A set of versions sharing a binding prefix."""

    def __init__(self, prefix: str, *versions: Version) -> None:
        self.prefix = prefix
        self._versions = [v.with_prefix(prefix) for v in versions]
        self._by_value = {v.value: v for v in self._versions}

    def versions(self) -> list[Version]:
        return list(self._versions)

    def version(self, value: str) -> Version:
        try:
            return self._by_value[value]
        except KeyError:
            msg = f"invalid spec version {value!r}"
            raise ValueError(msg) from None

    def latest(self) -> Version:
        return self._versions[-1]

    def spec_version_name(self) -> str:
        """The prefixed name of the ``specversion`` attribute."""
        return self.prefix + "specversion"

    def find_spec_version(self, lookup: Callable[[str], Any]) -> Version | None:
        """Find the version advertised by a header-like *lookup* function."""
        value = lookup(self.spec_version_name())
        if value is None or value == "":
            return None
        if isinstance(value, bytes):
            value = value.decode("utf-8", errors="replace")
        return self._by_value.get(str(value))

    def with_prefix(self, prefix: str) -> Versions:
        return Versions(prefix, *self._versions)


V03 = Version(
    VERSION_V03,
    [
        ("specversion", Kind.SPECVERSION),
        ("type", Kind.TYPE),
        ("source", Kind.SOURCE),
        ("schemaurl", Kind.DATASCHEMA),
        ("subject", Kind.SUBJECT),
        ("id", Kind.ID),
        ("time", Kind.TIME),
        ("datacontenttype", Kind.DATACONTENTTYPE),
    ],
    EventContextV03,
)

V1 = Version(
    VERSION_V1,
    [
        ("id", Kind.ID),
        ("source", Kind.SOURCE),
        ("specversion", Kind.SPECVERSION),
        ("type", Kind.TYPE),
        ("datacontenttype", Kind.DATACONTENTTYPE),
        ("dataschema", Kind.DATASCHEMA),
        ("subject", Kind.SUBJECT),
        ("time", Kind.TIME),
    ],
    EventContextV1,
)

VS = Versions("", V03, V1)

HTTP_PREFIX = "ce-"
KAFKA_PREFIX = "ce_"
AMQP_PREFIX = "cloudEvents:"

HTTP_VERSIONS = VS.with_prefix(HTTP_PREFIX)
KAFKA_VERSIONS = VS.with_prefix(KAFKA_PREFIX)
AMQP_VERSIONS = VS.with_prefix(AMQP_PREFIX)
PUBSUB_VERSIONS = VS.with_prefix(HTTP_PREFIX)
SQS_VERSIONS = VS.with_prefix(HTTP_PREFIX)
