"""The in-memory CloudEvent."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from ce_platform import types
from ce_platform.event import datacodec
from ce_platform.event.eventcontext import (
    APPLICATION_JSON,
    BASE64,
    VERSION_V1,
    EventContext,
    EventContextV03,
    EventContextV1,
    new_context,
)
from ce_platform.exceptions import ValidationError
from ce_platform.types import Timestamp


class Event:
    """A CloudEvent: version-specific context attributes plus encoded data.

    Attribute setters validate their input and raise :class:`ValidationError`
    naming the offending attribute.  Data is always held encoded
    (``data_encoded``); ``set_data`` serialises Python values through the
    data codec for the event's content type.
    """

    __slots__ = ("context", "data_base64", "data_encoded")

    def __init__(
        self,
        specversion: str = VERSION_V1,
        *,
        context: EventContext | None = None,
    ) -> None:
        if context is None:
            try:
                context = new_context(specversion)
            except ValueError as exc:
                raise ValidationError.single("specversion", str(exc)) from exc
        self.context: EventContext = context
        self.data_encoded: bytes | None = None
        self.data_base64 = False

    # -- attributes -------------------------------------------------------------

    @property
    def specversion(self) -> str:
        return self.context.specversion

    @specversion.setter
    def specversion(self, value: str) -> None:
        if value == self.context.specversion:
            return
        if value == VERSION_V1:
            self.context = self.context.as_v1()
        elif value == "0.3":
            self.context = self.context.as_v03()
            if self.data_base64:
                self.context.datacontentencoding = BASE64
        else:
            raise ValidationError.single("specversion", f"unknown value: {value}")

    @property
    def id(self) -> str:
        return self.context.id

    @id.setter
    def id(self, value: str) -> None:
        if not isinstance(value, str) or value.strip() == "":
            raise ValidationError.single("id", "MUST be a non-empty string")
        self.context.id = value

    @property
    def source(self) -> str:
        return str(self.context.source) if self.context.source is not None else ""

    @source.setter
    def source(self, value: str) -> None:
        try:
            self.context.source = types.to_uriref(value)
        except (TypeError, ValueError) as exc:
            raise ValidationError.single("source", str(exc)) from exc

    @property
    def type(self) -> str:
        return self.context.type

    @type.setter
    def type(self, value: str) -> None:
        if not isinstance(value, str) or value.strip() == "":
            raise ValidationError.single("type", "MUST be a non-empty string")
        self.context.type = value

    @property
    def datacontenttype(self) -> str | None:
        return self.context.datacontenttype

    @datacontenttype.setter
    def datacontenttype(self, value: str | None) -> None:
        self.context.datacontenttype = value or None

    @property
    def dataschema(self) -> str | None:
        """``dataschema`` (v1.0) or ``schemaurl`` (v0.3)."""
        ctx = self.context
        value = ctx.dataschema if isinstance(ctx, EventContextV1) else ctx.schemaurl
        return str(value) if value is not None else None

    @dataschema.setter
    def dataschema(self, value: str | None) -> None:
        ctx = self.context
        try:
            if isinstance(ctx, EventContextV1):
                ctx.dataschema = types.to_uri(value) if value else None
            else:
                ctx.schemaurl = types.to_uriref(value) if value else None
        except (TypeError, ValueError) as exc:
            name = "dataschema" if isinstance(ctx, EventContextV1) else "schemaurl"
            raise ValidationError.single(name, str(exc)) from exc

    @property
    def subject(self) -> str | None:
        return self.context.subject

    @subject.setter
    def subject(self, value: str | None) -> None:
        self.context.subject = value or None

    @property
    def time(self) -> Timestamp | None:
        return self.context.time

    @time.setter
    def time(self, value: Timestamp | datetime | str | None) -> None:
        if value is None:
            self.context.time = None
            return
        try:
            self.context.time = types.to_time(value)
        except (TypeError, ValueError) as exc:
            raise ValidationError.single("time", str(exc)) from exc

    @property
    def datacontentencoding(self) -> str | None:
        if isinstance(self.context, EventContextV03):
            return self.context.datacontentencoding
        return BASE64 if self.data_base64 else None

    @property
    def extensions(self) -> dict[str, Any]:
        return dict(self.context.extensions)

    def extension(self, name: str) -> Any:
        return self.context.get_extension(name)

    def set_extension(self, name: str, value: Any) -> None:
        try:
            self.context.set_extension(name, value)
        except (TypeError, ValueError) as exc:
            raise ValidationError.single(name.lower(), str(exc)) from exc

    # -- data -------------------------------------------------------------------

    @property
    def data(self) -> bytes | None:
        return self.data_encoded

    def data_media_type(self) -> str:
        return self.context.data_media_type()

    def set_data(self, content_type: str | None, obj: Any) -> None:
        """Encode *obj* and store it as the event's data.

        *content_type*, when given, becomes the ``datacontenttype``.  With no
        content type at all the data is JSON-encoded and the attribute
        defaults to ``application/json``.
        """
        if content_type:
            self.datacontenttype = content_type
        if obj is None:
            self.data_encoded = None
            self.data_base64 = False
            return
        if isinstance(obj, bytes | bytearray):
            self.data_encoded = bytes(obj)
            self.data_base64 = True
            if isinstance(self.context, EventContextV03):
                self.context.datacontentencoding = BASE64
            return
        self.data_encoded = datacodec.encode(self.datacontenttype, obj)
        self.data_base64 = False
        if self.datacontenttype is None:
            self.datacontenttype = APPLICATION_JSON

    def data_as(self) -> Any:
        """Decode ``data_encoded`` with the codec for the event's content type."""
        if self.data_encoded is None:
            return None
        return datacodec.decode(self.datacontenttype, self.data_encoded)

    # -- whole event ------------------------------------------------------------

    def validate(self) -> None:
        errors = self.context.validate()
        if errors:
            raise ValidationError(errors)

    def clone(self) -> Event:
        out = Event(context=self.context.clone())
        out.data_encoded = self.data_encoded
        out.data_base64 = self.data_base64
        return out

    def to_json(self) -> bytes:
        from ce_platform.event.marshal import marshal_event

        return marshal_event(self)

    @classmethod
    def from_json(cls, data: bytes | str) -> Event:
        from ce_platform.event.marshal import unmarshal_event

        return unmarshal_event(data)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Event):
            return NotImplemented
        return (
            self.context == other.context
            and self.data_encoded == other.data_encoded
            and self.data_base64 == other.data_base64
        )

    __hash__ = None  # type: ignore[assignment]

    def __deepcopy__(self, memo: dict[int, Any]) -> Event:
        return self.clone()

    def __repr__(self) -> str:
        return (
            f"Event(specversion={self.specversion!r}, id={self.id!r}, "
            f"source={self.source!r}, type={self.type!r})"
        )

    def __str__(self) -> str:
        lines = [
            "Context Attributes,",
            f"  specversion: {self.specversion}",
            f"  type: {self.type}",
            f"  source: {self.source}",
            f"  id: {self.id}",
        ]
        if self.time is not None:
            lines.append(f"  time: {self.time}")
        if self.dataschema is not None:
            lines.append(f"  dataschema: {self.dataschema}")
        if self.subject is not None:
            lines.append(f"  subject: {self.subject}")
        if self.datacontenttype is not None:
            lines.append(f"  datacontenttype: {self.datacontenttype}")
        if self.context.extensions:
            lines.append("Extensions,")
            for name in sorted(self.context.extensions):
                lines.append(f"  {name}: {types.format(self.context.extensions[name])}")
        if self.data_encoded is not None:
            lines.append("Data,")
            if datacodec.is_json(self.datacontenttype) or datacodec.media_type(
                self.datacontenttype
            ).startswith("text/"):
                lines.append("  " + self.data_encoded.decode("utf-8", errors="replace"))
            else:
                lines.append(f"  <{len(self.data_encoded)} bytes>")
        return "\n".join(lines) + "\n"


def new_event(specversion: str = VERSION_V1) -> Event:
    return Event(specversion)


