"""Structured-mode JSON codec for events.

Output is a single JSON object with its keys in sorted order.  JSON data is
embedded as-is (compacted), other data is written as a JSON string, and
base64 data goes to ``data_base64`` (v1.0) or ``data`` with
``datacontentencoding: base64`` (v0.3).
"""

from __future__ import annotations

import base64
import binascii
import json
from typing import Any

from ce_platform import types
from ce_platform.event import datacodec
from ce_platform.event.event import Event
from ce_platform.event.eventcontext import (
    BASE64,
    VERSION_V03,
    VERSION_V1,
    EventContextV1,
    validate_extension_name,
)
from ce_platform.exceptions import ValidationError
from ce_platform.types import Timestamp, URIRef

_V1_KEYS = frozenset(
    {
        "specversion",
        "id",
        "source",
        "type",
        "datacontenttype",
        "dataschema",
        "subject",
        "time",
        "data",
        "data_base64",
    }
)
_V03_KEYS = frozenset(
    {
        "specversion",
        "id",
        "source",
        "type",
        "datacontenttype",
        "datacontentencoding",
        "schemaurl",
        "subject",
        "time",
        "data",
    }
)


def _dumps(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def _json_value(value: Any) -> Any:
    if isinstance(value, bytes):
        return types.format_binary(value)
    if isinstance(value, Timestamp):
        return value.format()
    if isinstance(value, URIRef):
        return str(value)
    return value


def compact_json(raw: bytes) -> str:
    """Re-serialise *raw* JSON without insignificant whitespace."""
    try:
        return _dumps(json.loads(raw))
    except ValueError as exc:
        msg = f"data is not valid JSON: {exc}"
        raise ValidationError.single("data", msg) from exc


def event_to_fields(event: Event) -> dict[str, str]:
    """Return ``key -> serialised JSON value`` for every populated field."""
    ctx = event.context
    fields: dict[str, Any] = {
        "specversion": ctx.specversion,
        "id": ctx.id,
        "source": str(ctx.source) if ctx.source is not None else None,
        "type": ctx.type,
        "datacontenttype": ctx.datacontenttype,
        "subject": ctx.subject,
        "time": ctx.time.format() if ctx.time is not None else None,
    }
    if isinstance(ctx, EventContextV1):
        fields["dataschema"] = str(ctx.dataschema) if ctx.dataschema is not None else None
    else:
        fields["schemaurl"] = str(ctx.schemaurl) if ctx.schemaurl is not None else None
        encoding = ctx.datacontentencoding
        if event.data_base64 and event.data_encoded is not None:
            encoding = BASE64
        fields["datacontentencoding"] = encoding

    out = {k: _dumps(v) for k, v in fields.items() if v is not None}
    for name, value in ctx.extensions.items():
        if name not in out:
            out[name] = _dumps(_json_value(value))

    data = event.data_encoded
    if data is None:
        return out
    as_base64 = event.data_base64 or (fields.get("datacontentencoding") or "").lower() == BASE64
    if as_base64:
        key = "data_base64" if isinstance(ctx, EventContextV1) else "data"
        out[key] = _dumps(types.format_binary(data))
    elif datacodec.is_json(ctx.datacontenttype):
        if data:
            out["data"] = compact_json(data)
    else:
        try:
            out["data"] = _dumps(data.decode("utf-8"))
        except UnicodeDecodeError:
            key = "data_base64" if isinstance(ctx, EventContextV1) else "data"
            out[key] = _dumps(types.format_binary(data))
            if not isinstance(ctx, EventContextV1):
                out["datacontentencoding"] = _dumps(BASE64)
    return out


def marshal_event(event: Event) -> bytes:
    """Serialise *event* to structured JSON, validating it first."""
    event.validate()
    fields = event_to_fields(event)
    body = ",".join(f"{_dumps(k)}:{fields[k]}" for k in sorted(fields))
    return ("{" + body + "}").encode("utf-8")


def marshal_batch(events: list[Event]) -> bytes:
    return b"[" + b",".join(marshal_event(e) for e in events) + b"]"


# -- decoding -------------------------------------------------------------------


def _string(obj: dict[str, Any], key: str) -> str | None:
    if key not in obj or obj[key] is None:
        return None
    value = obj[key]
    if not isinstance(value, str):
        raise ValidationError.single(key, f"expected a string, got {type(value).__name__}")
    return value


def event_from_object(obj: Any) -> Event:
    """Build an event from an already parsed JSON object."""
    if not isinstance(obj, dict):
        raise ValidationError.single("specversion", "expected a JSON object")
    specversion = obj.get("specversion")
    if specversion is None:
        raise ValidationError.single("specversion", "no specversion")
    if specversion not in (VERSION_V03, VERSION_V1):
        raise ValidationError.single("specversion", f"unknown value: {specversion}")

    event = Event(specversion)
    ctx = event.context
    errors: dict[str, str] = {}

    def attr(key: str, setter: Any) -> None:
        try:
            value = _string(obj, key)
            if value is not None:
                setter(value)
        except ValidationError as exc:
            errors.update(exc.errors)
        except (TypeError, ValueError) as exc:
            errors[key] = str(exc)

    attr("id", lambda v: setattr(ctx, "id", v))
    attr("type", lambda v: setattr(ctx, "type", v))
    attr("source", lambda v: setattr(ctx, "source", types.to_uriref(v)))
    attr("subject", lambda v: setattr(ctx, "subject", v))
    attr("datacontenttype", lambda v: setattr(ctx, "datacontenttype", v))
    attr("time", lambda v: setattr(ctx, "time", types.parse_time(v)))

    known = _V1_KEYS
    base64_data = False
    if isinstance(ctx, EventContextV1):
        attr("dataschema", lambda v: setattr(ctx, "dataschema", types.to_uri(v)))
        if "data" in obj and "data_base64" in obj:
            errors["data"] = "data and data_base64 cannot be both present"
    else:
        known = _V03_KEYS
        attr("schemaurl", lambda v: setattr(ctx, "schemaurl", types.to_uriref(v)))
        attr("datacontentencoding", lambda v: setattr(ctx, "datacontentencoding", v))
        encoding = ctx.datacontentencoding
        if encoding is not None:
            if encoding.lower() != BASE64:
                errors["datacontentencoding"] = "invalid datacontentencoding value, the only allowed value is 'base64'"
            else:
                base64_data = True

    for key, value in obj.items():
        if key in known:
            continue
        reason = validate_extension_name(key)
        if reason is not None:
            errors[key] = reason
            continue
        try:
            ctx.set_extension(key, value)
        except (TypeError, ValueError) as exc:
            errors[key] = str(exc)

    try:
        _read_data(event, obj, base64_data)
    except ValidationError as exc:
        errors.update(exc.errors)

    if errors:
        raise ValidationError(errors)
    event.validate()
    return event


def _read_data(event: Event, obj: dict[str, Any], base64_data: bool) -> None:
    if isinstance(event.context, EventContextV1) and obj.get("data_base64") is not None:
        value = obj["data_base64"]
        if not isinstance(value, str):
            raise ValidationError.single("data_base64", "expected a base64 string")
        event.data_encoded = _b64decode("data_base64", value)
        event.data_base64 = True
        return

    if obj.get("data") is None:
        return
    value = obj["data"]
    if base64_data:
        if not isinstance(value, str):
            raise ValidationError.single("data", "expected a base64 string")
        event.data_encoded = _b64decode("data", value)
        event.data_base64 = True
        return
    if isinstance(value, str) and not datacodec.is_json(event.context.datacontenttype):
        event.data_encoded = value.encode("utf-8")
    else:
        event.data_encoded = _dumps(value).encode("utf-8")


def _b64decode(field: str, value: str) -> bytes:
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValidationError.single(field, f"illegal base64 data: {exc}") from exc


def unmarshal_event(data: bytes | str) -> Event:
    """Parse a structured JSON CloudEvent."""
    try:
        obj = json.loads(data)
    except ValueError as exc:
        msg = f"invalid JSON: {exc}"
        raise ValidationError.single("specversion", msg) from exc
    return event_from_object(obj)


def unmarshal_batch(data: bytes | str) -> list[Event]:
    try:
        items = json.loads(data)
    except ValueError as exc:
        msg = f"invalid JSON: {exc}"
        raise ValidationError.single("specversion", msg) from exc
    if not isinstance(items, list):
        raise ValidationError.single("specversion", "batch must be a JSON array")
    return [event_from_object(item) for item in items]


