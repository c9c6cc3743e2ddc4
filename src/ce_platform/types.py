"""CloudEvents attribute value types and conversions.

Every attribute stored on an event is normalised to one of:

- ``bool``
- ``int`` (32-bit signed range)
- ``str``
- ``bytes``
- :class:`URI` (absolute URI reference)
- :class:`URIRef` (relative or absolute URI reference)
- :class:`Timestamp` (RFC 3339 with nanosecond precision)

``validate()`` performs that normalisation, ``format()`` produces the
canonical string form used by binary-mode bindings, and the ``to_*``
helpers convert either native or canonical string values.
"""

from __future__ import annotations

import base64
import binascii
import re
import time
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta, timezone
from typing import Any
from urllib.parse import urlsplit

INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1

_RFC3339 = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})[Tt](\d{2}):(\d{2}):(\d{2})"
    r"(?:\.(\d{1,9}))?"
    r"([Zz]|[+-]\d{2}:\d{2})$"
)


class URIRef(str):
    """A URI reference (relative or absolute), RFC 3986."""

    __slots__ = ()

    def __new__(cls, value: str) -> URIRef:
        _check_uri(value, absolute=False)
        return super().__new__(cls, value)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({str(self)!r})"


class URI(URIRef):
    """An absolute URI, RFC 3986 section 4.3."""

    __slots__ = ()

    def __new__(cls, value: str) -> URI:
        _check_uri(value, absolute=True)
        return str.__new__(cls, value)


def _check_uri(value: str, *, absolute: bool) -> None:
    if not isinstance(value, str):
        msg = f"cannot convert {value!r} to URI: expected str"
        raise TypeError(msg)
    if any(c.isspace() or ord(c) < 0x20 for c in value):
        msg = f"invalid URI {value!r}: contains whitespace or control characters"
        raise ValueError(msg)
    try:
        parts = urlsplit(value)
    except ValueError as exc:
        msg = f"invalid URI {value!r}: {exc}"
        raise ValueError(msg) from exc
    if absolute and not parts.scheme:
        msg = f"invalid URI {value!r}: not an absolute URI"
        raise ValueError(msg)


@dataclass(frozen=True, slots=True)
class Timestamp:
    """A UTC instant with nanosecond precision.

    ``when`` is always timezone-aware UTC with ``microsecond == 0``; the
    sub-second part lives in ``nanosecond``.
    """

    when: datetime
    nanosecond: int = 0

    @classmethod
    def from_datetime(cls, value: datetime) -> Timestamp:
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        value = value.astimezone(UTC)
        return cls(value.replace(microsecond=0), value.microsecond * 1000)

    @classmethod
    def from_ns(cls, ns: int) -> Timestamp:
        seconds, nanos = divmod(ns, 1_000_000_000)
        return cls(datetime(1970, 1, 1, tzinfo=UTC) + timedelta(seconds=seconds), nanos)

    @classmethod
    def now(cls) -> Timestamp:
        return cls.from_ns(time.time_ns())

    @classmethod
    def parse(cls, value: str) -> Timestamp:
        """Parse an RFC 3339 timestamp, keeping up to nine fractional digits."""
        m = _RFC3339.match(value.strip())
        if m is None:
            msg = f"cannot convert {value!r} to time.Time: not in RFC3339 format"
            raise ValueError(msg)
        year, month, day, hour, minute, second = (int(g) for g in m.groups()[:6])
        frac, offset = m.group(7), m.group(8)
        if offset in ("Z", "z"):
            tz = UTC
        else:
            sign = 1 if offset[0] == "+" else -1
            hours, minutes = int(offset[1:3]), int(offset[4:6])
            tz = timezone(sign * timedelta(hours=hours, minutes=minutes))
        try:
            dt = datetime(year, month, day, hour, minute, second, tzinfo=tz)
        except ValueError as exc:
            msg = f"cannot convert {value!r} to time.Time: {exc}"
            raise ValueError(msg) from exc
        nanos = int(frac.ljust(9, "0")) if frac else 0
        return cls(dt.astimezone(UTC), nanos)

    def to_datetime(self) -> datetime:
        """Return a ``datetime`` (truncated to microseconds)."""
        return self.when.replace(microsecond=self.nanosecond // 1000)

    def is_zero(self) -> bool:
        return self.when.year == 1 and self.when.month == 1 and self.nanosecond == 0

    def format(self) -> str:
        """RFC 3339 with nanoseconds; trailing zeros and empty fractions dropped."""
        base = self.when.strftime("%Y-%m-%dT%H:%M:%S")
        if self.nanosecond:
            base += "." + f"{self.nanosecond:09d}".rstrip("0")
        return base + "Z"

    def __str__(self) -> str:
        return self.format()


# -- canonical string forms -----------------------------------------------------


def format_bool(v: bool) -> str:
    return "true" if v else "false"


def format_integer(v: int) -> str:
    return str(v)


def format_binary(v: bytes) -> str:
    return base64.b64encode(v).decode("ascii")


def format_time(v: Timestamp) -> str:
    return v.format()


def parse_bool(v: str) -> bool:
    lowered = v.strip()
    if lowered in ("1", "t", "T", "TRUE", "true", "True"):
        return True
    if lowered in ("0", "f", "F", "FALSE", "false", "False"):
        return False
    msg = f"cannot convert {v!r} to bool: invalid syntax"
    raise ValueError(msg)


def parse_integer(v: str) -> int:
    try:
        f = float(v)
    except ValueError as exc:
        msg = f"cannot convert {v!r} to int32: invalid syntax"
        raise ValueError(msg) from exc
    return _to_int32(f)


def parse_binary(v: str) -> bytes:
    try:
        return base64.b64decode(v, validate=True)
    except (binascii.Error, ValueError) as exc:
        msg = f"cannot convert {v!r} to bytes: illegal base64 data"
        raise ValueError(msg) from exc


def parse_time(v: str) -> Timestamp:
    return Timestamp.parse(v)


def _to_int32(v: int | float) -> int:
    if isinstance(v, float):
        if v != v or v in (float("inf"), float("-inf")):
            msg = f"cannot convert {v} to int32: out of range"
            raise ValueError(msg)
        v = int(v)
    if v < INT32_MIN or v > INT32_MAX:
        msg = f"cannot convert {v} to int32: out of range"
        raise ValueError(msg)
    return v


# -- validation / formatting -----------------------------------------------------


def validate(v: Any) -> bool | int | str | bytes | URI | URIRef | Timestamp:
    """Normalise *v* to one of the CloudEvents attribute types.

    Raises ``ValueError`` for out-of-range numbers and ``TypeError`` for
    values with no CloudEvents representation.
    """
    if isinstance(v, bool):
        return v
    if isinstance(v, int | float):
        return _to_int32(v)
    if isinstance(v, URIRef):
        return v
    if isinstance(v, str):
        return v
    if isinstance(v, bytes | bytearray | memoryview):
        return bytes(v)
    if isinstance(v, Timestamp):
        return v
    if isinstance(v, datetime):
        return Timestamp.from_datetime(v)
    msg = f"invalid CloudEvents value: {v!r} ({type(v).__name__})"
    raise TypeError(msg)


def format(v: Any) -> str:  # noqa: A001
    """Return the canonical string form of an attribute value."""
    v = validate(v)
    if isinstance(v, bool):
        return format_bool(v)
    if isinstance(v, int):
        return format_integer(v)
    if isinstance(v, bytes):
        return format_binary(v)
    if isinstance(v, Timestamp):
        return format_time(v)
    return str(v)


# -- conversions -------------------------------------------------------------------


def to_bool(v: Any) -> bool:
    v = validate(v)
    if isinstance(v, bool):
        return v
    if isinstance(v, str):
        return parse_bool(v)
    msg = f"cannot convert {v!r} to bool"
    raise TypeError(msg)


def to_integer(v: Any) -> int:
    v = validate(v)
    if isinstance(v, bool):
        msg = f"cannot convert {v!r} to int32"
        raise TypeError(msg)
    if isinstance(v, int):
        return v
    if isinstance(v, str) and not isinstance(v, URIRef):
        return parse_integer(v)
    msg = f"cannot convert {v!r} to int32"
    raise TypeError(msg)


def to_string(v: Any) -> str:
    v = validate(v)
    if isinstance(v, str):
        return str(v)
    msg = f"cannot convert {v!r} to string"
    raise TypeError(msg)


def to_bytes(v: Any) -> bytes:
    v = validate(v)
    if isinstance(v, bytes):
        return v
    if isinstance(v, str):
        return parse_binary(v)
    msg = f"cannot convert {v!r} to bytes"
    raise TypeError(msg)


def to_uri(v: Any) -> URI:
    v = validate(v)
    if isinstance(v, URI):
        return v
    if isinstance(v, str):
        return URI(str(v))
    msg = f"cannot convert {v!r} to URI"
    raise TypeError(msg)


def to_uriref(v: Any) -> URIRef:
    v = validate(v)
    if isinstance(v, URIRef):
        return URIRef(str(v)) if isinstance(v, URI) else v
    if isinstance(v, str):
        return URIRef(v)
    msg = f"cannot convert {v!r} to URIRef"
    raise TypeError(msg)


def to_time(v: Any) -> Timestamp:
    v = validate(v)
    if isinstance(v, Timestamp):
        return v
    if isinstance(v, str):
        return parse_time(v)
    msg = f"cannot convert {v!r} to time"
    raise TypeError(msg)
