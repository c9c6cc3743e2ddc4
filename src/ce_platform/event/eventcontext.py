"""Per-spec-version event context attributes (v0.3 and v1.0)."""

from __future__ import annotations

import copy
import re
from dataclasses import dataclass, field
from typing import Any

from ce_platform import types
from ce_platform.types import URI, Timestamp, URIRef

VERSION_V03 = "0.3"
VERSION_V1 = "1.0"

APPLICATION_JSON = "application/json"
TEXT_JSON = "text/json"
APPLICATION_CLOUDEVENTS_JSON = "application/cloudevents+json"
APPLICATION_CLOUDEVENTS_BATCH_JSON = "application/cloudevents-batch+json"

BASE64 = "base64"

_EXTENSION_NAME = re.compile(r"^[a-z0-9]+$")


def validate_extension_name(name: str) -> str | None:
    """Return the reason *name* is not a valid extension name, or ``None``."""
    if not name:
        return "extension name must not be empty"
    if not _EXTENSION_NAME.match(name):
        return "extension name must only contain lowercase letters a-z and digits 0-9"
    return None


def _non_empty(value: str | None) -> bool:
    return value is not None and value.strip() != ""


@dataclass(slots=True)
class _BaseContext:
    id: str = ""
    source: URIRef | None = None
    type: str = ""
    datacontenttype: str | None = None
    subject: str | None = None
    time: Timestamp | None = None
    extensions: dict[str, Any] = field(default_factory=dict)

    specversion = ""

    def set_extension(self, name: str, value: Any) -> None:
        """Set (or delete, when *value* is ``None``) a validated extension."""
        name = name.lower()
        reason = validate_extension_name(name)
        if reason is not None:
            raise ValueError(reason)
        if value is None:
            self.extensions.pop(name, None)
            return
        self.extensions[name] = types.validate(value)

    def get_extension(self, name: str) -> Any:
        return self.extensions.get(name.lower())

    def data_media_type(self) -> str:
        """The datacontenttype stripped of parameters, lower-cased."""
        if not self.datacontenttype:
            return ""
        return self.datacontenttype.split(";", 1)[0].strip().lower()

    def _common_errors(self) -> dict[str, str]:
        errors: dict[str, str] = {}
        if not _non_empty(self.type):
            errors["type"] = "MUST be a non-empty string"
        if self.source is None or str(self.source).strip() == "":
            errors["source"] = "REQUIRED but missing"
        if not _non_empty(self.id):
            errors["id"] = "MUST be a non-empty string"
        if self.datacontenttype is not None and not _non_empty(self.datacontenttype):
            errors["datacontenttype"] = (
                "if present, MUST adhere to the format specified in RFC 2046"
            )
        if self.subject is not None and not _non_empty(self.subject):
            errors["subject"] = "if present, MUST be a non-empty string"
        for name in self.extensions:
            reason = validate_extension_name(name)
            if reason is not None:
                errors[name] = reason
        return errors

    def clone(self) -> Any:
        return copy.deepcopy(self)


@dataclass(slots=True)
class EventContextV1(_BaseContext):
    """Attributes of a CloudEvents v1.0 event."""

    dataschema: URI | None = None

    specversion = VERSION_V1

    def validate(self) -> dict[str, str]:
        errors = self._common_errors()
        if self.dataschema is not None and str(self.dataschema).strip() == "":
            errors["dataschema"] = "if present, MUST adhere to the format specified in RFC 3986"
        return errors

    def as_v03(self) -> EventContextV03:
        schemaurl = URIRef(str(self.dataschema)) if self.dataschema is not None else None
        return EventContextV03(
            id=self.id,
            source=self.source,
            type=self.type,
            datacontenttype=self.datacontenttype,
            subject=self.subject,
            time=self.time,
            extensions=copy.deepcopy(self.extensions),
            schemaurl=schemaurl,
        )

    def as_v1(self) -> EventContextV1:
        return self


@dataclass(slots=True)
class EventContextV03(_BaseContext):
    """Attributes of a CloudEvents v0.3 event."""

    schemaurl: URIRef | None = None
    datacontentencoding: str | None = None

    specversion = VERSION_V03

    def validate(self) -> dict[str, str]:
        errors = self._common_errors()
        if self.schemaurl is not None and str(self.schemaurl).strip() == "":
            errors["schemaurl"] = "if present, MUST adhere to the format specified in RFC 3986"
        if self.datacontentencoding is not None:
            if self.datacontentencoding.strip().lower() != BASE64:
                errors["datacontentencoding"] = "if present, MUST adhere to RFC 2045 Section 6.1"
        return errors

    def as_v03(self) -> EventContextV03:
        return self

    def as_v1(self) -> EventContextV1:
        dataschema = None
        if self.schemaurl is not None:
            try:
                dataschema = URI(str(self.schemaurl))
            except ValueError:
                dataschema = None
        return EventContextV1(
            id=self.id,
            source=self.source,
            type=self.type,
            datacontenttype=self.datacontenttype,
            subject=self.subject,
            time=self.time,
            extensions=copy.deepcopy(self.extensions),
            dataschema=dataschema,
        )


EventContext = EventContextV03 | EventContextV1


def new_context(specversion: str) -> EventContext:
    if specversion == VERSION_V1:
        return EventContextV1()
    if specversion == VERSION_V03:
        return EventContextV03()
    msg = f"unknown value: {specversion}"
    raise ValueError(msg)
