"""HTTP binding: write CloudEvents into headers + body."""

from __future__ import annotations

from typing import IO, TYPE_CHECKING, Any

import httpx

from ce_platform import types
from ce_platform.binding.encoding import Encoding
from ce_platform.binding.message import Message
from ce_platform.binding.spec import Attribute, Kind
from ce_platform.binding.transformer import Transformer
from ce_platform.binding.write import write
from ce_platform.context import Context, header_overrides_from

if TYPE_CHECKING:
    from ce_platform.binding.format import Format

CONTENT_TYPE = "Content-Type"


def header_name(name: str) -> str:
    """``specversion`` -> ``Ce-Specversion``"""
    return "Ce-" + name.capitalize()


class HTTPWriter:
    """Structured and binary writer collecting HTTP headers and a body."""

    def __init__(self, headers: httpx.Headers | None = None) -> None:
        self.headers = headers if headers is not None else httpx.Headers()
        self.body = b""

    def set_structured_event(self, ctx: Context, fmt: Format, event: IO[bytes]) -> None:
        self.headers[CONTENT_TYPE] = fmt.media_type()
        self.body = event.read()

    def start(self, ctx: Context) -> None:
        return None

    def set_attribute(self, attribute: Attribute, value: Any) -> None:
        name = CONTENT_TYPE if attribute.kind == Kind.DATACONTENTTYPE else header_name(attribute.name)
        self._set(name, value)

    def set_extension(self, name: str, value: Any) -> None:
        self._set(header_name(name), value)

    def set_data(self, data: IO[bytes]) -> None:
        self.body = data.read()

    def end(self, ctx: Context) -> None:
        return None

    def _set(self, name: str, value: Any) -> None:
        if value is None:
            if name in self.headers:
                del self.headers[name]
            return
        self.headers[name] = types.format(value)


def write_headers_and_body(
    ctx: Context, message: Message, *transformers: Transformer
) -> tuple[httpx.Headers, bytes, Encoding]:
    writer = HTTPWriter()
    encoding = write(ctx, message, writer, writer, *transformers)
    return writer.headers, writer.body, encoding


def write_request(
    ctx: Context,
    message: Message,
    url: str,
    *transformers: Transformer,
    method: str = "POST",
    headers: dict[str, str] | None = None,
) -> httpx.Request:
    """Encode *message* as an ``httpx.Request``.

    Static *headers* and context header overrides are applied before the
    event, so CloudEvents headers always win.
    """
    base = httpx.Headers(headers or {})
    for name, value in header_overrides_from(ctx).items():
        base[name] = value
    writer = HTTPWriter(base)
    write(ctx, message, writer, writer, *transformers)
    return httpx.Request(method, url, headers=writer.headers, content=writer.body)
