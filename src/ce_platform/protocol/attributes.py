"""Bindings for transports that carry metadata as a flat string map.

Pub/Sub attributes and SQS message attributes both hold CloudEvents
attributes as ``ce-<name>`` keys plus a ``Content-Type`` key, with the data
in the payload.
"""

from __future__ import annotations

import io
from collections.abc import Awaitable, Callable, Mapping
from typing import IO, TYPE_CHECKING, Any

from ce_platform import types
from ce_platform.binding import format as formats
from ce_platform.binding.encoding import Encoding
from ce_platform.binding.message import BinaryWriter, StructuredWriter
from ce_platform.binding.spec import Attribute, Kind, Version, Versions
from ce_platform.context import Context
from ce_platform.exceptions import NotBinaryError, NotStructuredError

if TYPE_CHECKING:
    from ce_platform.binding.format import Format

CONTENT_TYPE = "Content-Type"

FinishHook = Callable[[BaseException | None], Awaitable[None] | None]


class AttributesMessage:
    """A received message whose CloudEvents metadata lives in a string map."""

    versions: Versions

    def __init__(
        self,
        attributes: Mapping[str, str],
        body: bytes,
        *,
        on_finish: FinishHook | None = None,
    ) -> None:
        self.attributes = {k.lower(): v for k, v in attributes.items()}
        self.body = body
        self._on_finish = on_finish
        self._finished = False
        self._version: Version | None = self.versions.find_spec_version(self.attributes.get)
        self._format = (
            None if self._version else formats.lookup(self.attributes.get(CONTENT_TYPE.lower()))
        )

    def read_encoding(self) -> Encoding:
        if self._version is not None:
            return Encoding.BINARY
        if self._format is not None:
            return Encoding.STRUCTURED
        return Encoding.UNKNOWN

    def read_structured(self, ctx: Context, writer: StructuredWriter) -> None:
        if self._format is None:
            raise NotStructuredError()
        writer.set_structured_event(ctx, self._format, io.BytesIO(self.body))

    def read_binary(self, ctx: Context, writer: BinaryWriter) -> None:
        version = self._version
        if version is None:
            raise NotBinaryError()
        prefix = self.versions.prefix
        writer.set_attribute(version.attribute_from_kind(Kind.SPECVERSION), version.value)
        for name, value in self.attributes.items():
            if name == CONTENT_TYPE.lower():
                writer.set_attribute(version.attribute_from_kind(Kind.DATACONTENTTYPE), value)
                continue
            attr = version.attribute(name)
            if attr is not None:
                if attr.kind != Kind.SPECVERSION:
                    writer.set_attribute(attr, value)
            elif name.startswith(prefix):
                writer.set_extension(name[len(prefix) :], value)
        if self.body:
            writer.set_data(io.BytesIO(self.body))

    def get_attribute(self, kind: Kind) -> tuple[Attribute | None, Any]:
        if self._version is None:
            return None, None
        attr = self._version.attribute_from_kind(kind)
        if attr is None:
            return None, None
        if kind == Kind.DATACONTENTTYPE:
            return attr, self.attributes.get(CONTENT_TYPE.lower())
        return attr, self.attributes.get(attr.prefixed_name.lower())

    def get_extension(self, name: str) -> Any:
        return self.attributes.get(self.versions.prefix + name)

    async def finish(self, err: BaseException | None) -> None:
        if self._finished:
            return
        self._finished = True
        if self._on_finish is not None:
            result = self._on_finish(err)
            if result is not None:
                await result


class AttributesWriter:
    """Structured and binary writer filling a string map and a body."""

    def __init__(self, prefix: str) -> None:
        self.prefix = prefix
        self.attributes: dict[str, str] = {}
        self.body = b""

    def set_structured_event(self, ctx: Context, fmt: Format, event: IO[bytes]) -> None:
        self.attributes[CONTENT_TYPE] = fmt.media_type()
        self.body = event.read()

    def start(self, ctx: Context) -> None:
        return None

    def set_attribute(self, attribute: Attribute, value: Any) -> None:
        if attribute.kind == Kind.DATACONTENTTYPE:
            self._set(CONTENT_TYPE, value)
        else:
            self._set(self.prefix + attribute.name, value)

    def set_extension(self, name: str, value: Any) -> None:
        self._set(self.prefix + name, value)

    def set_data(self, data: IO[bytes]) -> None:
        self.body = data.read()

    def end(self, ctx: Context) -> None:
        return None

    def _set(self, key: str, value: Any) -> None:
        if value is None:
            self.attributes.pop(key, None)
        else:
            self.attributes[key] = types.format(value)
