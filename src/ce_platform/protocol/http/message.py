"""HTTP binding: read CloudEvents from headers + body."""

from __future__ import annotations

import io
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

import httpx

from ce_platform.binding import format as formats
from ce_platform.binding.encoding import Encoding
from ce_platform.binding.message import BinaryWriter, StructuredWriter
from ce_platform.binding.spec import HTTP_PREFIX, HTTP_VERSIONS, Attribute, Kind, Version
from ce_platform.context import Context
from ce_platform.exceptions import NotBinaryError, NotStructuredError

CONTENT_TYPE = "content-type"

FinishHook = Callable[[BaseException | None], Awaitable[None] | None]


class HTTPMessage:
    """A CloudEvent carried by an HTTP request or response.

    Binary mode is detected from the ``ce-specversion`` header, which wins
    over a structured content type.
    """

    def __init__(
        self,
        headers: Mapping[str, str] | httpx.Headers,
        body: bytes = b"",
        *,
        on_finish: FinishHook | None = None,
    ) -> None:
        self.headers = httpx.Headers(headers)
        self.body = body
        self._on_finish = on_finish
        self.protocol_context: Any = None
        self._finished = False
        self._version: Version | None = HTTP_VERSIONS.find_spec_version(self.headers.get)
        self._format = None if self._version else formats.lookup(self.headers.get(CONTENT_TYPE))

    @classmethod
    def from_response(cls, response: httpx.Response) -> HTTPMessage:
        return cls(response.headers, response.content)

    @classmethod
    def from_request(cls, request: httpx.Request) -> HTTPMessage:
        return cls(request.headers, request.content)

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
        specversion = version.attribute_from_kind(Kind.SPECVERSION)
        writer.set_attribute(specversion, version.value)
        for name, value in self.headers.items():
            lowered = name.lower()
            if lowered == CONTENT_TYPE:
                writer.set_attribute(version.attribute_from_kind(Kind.DATACONTENTTYPE), value)
                continue
            attr = version.attribute(lowered)
            if attr is not None:
                if attr.kind != Kind.SPECVERSION:
                    writer.set_attribute(attr, value)
            elif lowered.startswith(HTTP_PREFIX):
                writer.set_extension(lowered[len(HTTP_PREFIX) :], value)
        if self.body:
            writer.set_data(io.BytesIO(self.body))

    def get_attribute(self, kind: Kind) -> tuple[Attribute | None, Any]:
        if self._version is None:
            return None, None
        attr = self._version.attribute_from_kind(kind)
        if attr is None:
            return None, None
        if kind == Kind.DATACONTENTTYPE:
            return attr, self.headers.get(CONTENT_TYPE)
        return attr, self.headers.get(attr.prefixed_name) or None

    def get_extension(self, name: str) -> Any:
        return self.headers.get(HTTP_PREFIX + name)

    async def finish(self, err: BaseException | None) -> None:
        if self._finished:
            return
        self._finished = True
        if self._on_finish is not None:
            result = self._on_finish(err)
            if result is not None:
                await result
