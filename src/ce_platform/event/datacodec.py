"""Data codecs: encode/decode event payloads by media type."""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any
from xml.etree import ElementTree

Encoder = Callable[[Any], bytes]
Decoder = Callable[[bytes], Any]


def encode_json(obj: Any) -> bytes:
    if isinstance(obj, bytes | bytearray):
        return bytes(obj)
    return json.dumps(obj, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def decode_json(data: bytes) -> Any:
    if not data:
        return None
    return json.loads(data)


def encode_text(obj: Any) -> bytes:
    if isinstance(obj, bytes | bytearray):
        return bytes(obj)
    if isinstance(obj, str):
        return obj.encode("utf-8")
    msg = f"text codec cannot encode {type(obj).__name__}"
    raise TypeError(msg)


def decode_text(data: bytes) -> str:
    return data.decode("utf-8")


def encode_xml(obj: Any) -> bytes:
    if isinstance(obj, ElementTree.Element):
        return ElementTree.tostring(obj, encoding="utf-8", xml_declaration=False)
    return encode_text(obj)


def decode_xml(data: bytes) -> ElementTree.Element:
    return ElementTree.fromstring(data)


def media_type(content_type: str | None) -> str:
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def is_json(content_type: str | None) -> bool:
    """True for an empty content type and for JSON media types."""
    mt = media_type(content_type)
    return mt in ("", "application/json", "text/json") or mt.endswith("+json")


def is_xml(content_type: str | None) -> bool:
    mt = media_type(content_type)
    return mt in ("application/xml", "text/xml") or mt.endswith("+xml")


def _lookup(content_type: str | None) -> tuple[Encoder, Decoder]:
    if is_json(content_type):
        return encode_json, decode_json
    if is_xml(content_type):
        return encode_xml, decode_xml
    if media_type(content_type).startswith("text/"):
        return encode_text, decode_text
    msg = f"[encode] unsupported content type: {content_type!r}"
    raise ValueError(msg)


def encode(content_type: str | None, obj: Any) -> bytes:
    """Serialise *obj* for *content_type*. Bytes pass through unchanged."""
    if isinstance(obj, bytes | bytearray):
        return bytes(obj)
    encoder, _ = _lookup(content_type)
    return encoder(obj)


def decode(content_type: str | None, data: bytes) -> Any:
    _, decoder = _lookup(content_type)
    return decoder(data)
