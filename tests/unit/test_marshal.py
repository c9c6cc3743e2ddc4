"""Unit tests for the structured JSON codec."""

from __future__ import annotations

import json

import pytest

from ce_platform.binding import format as formats
from ce_platform.event import (
    APPLICATION_CLOUDEVENTS_JSON,
    VERSION_V03,
    Event,
    marshal_batch,
    marshal_event,
    unmarshal_batch,
    unmarshal_event,
)
from ce_platform.exceptions import ValidationError
from ce_platform.testing import assert_event_equals, events


def _event() -> Event:
    event = Event()
    event.id = "abc"
    event.source = "/x"
    event.type = "t"
    return event


class TestMarshal:
    def test_structured_json_with_data(self):
        event = _event()
        event.set_data("application/json", {"hello": "world"})
        assert marshal_event(event) == (
            b'{"data":{"hello":"world"},"datacontenttype":"application/json",'
            b'"id":"abc","source":"/x","specversion":"1.0","type":"t"}'
        )

    def test_json_format_media_type(self):
        assert formats.JSON.media_type() == APPLICATION_CLOUDEVENTS_JSON
        assert formats.lookup("application/cloudevents+json; charset=utf-8") is formats.JSON

    def test_invalid_event_not_marshalled(self):
        with pytest.raises(ValidationError):
            marshal_event(Event())

    def test_binary_data_v1_uses_data_base64(self):
        event = _event()
        event.datacontenttype = "application/octet-stream"
        event.data_encoded = b"\x00\x01"
        event.data_base64 = True
        obj = json.loads(marshal_event(event))
        assert obj["data_base64"] == "AAE="
        assert "data" not in obj

    def test_binary_data_v03_uses_datacontentencoding(self):
        event = _event()
        event.specversion = VERSION_V03
        event.data_encoded = b"\x00\x01"
        event.data_base64 = True
        obj = json.loads(marshal_event(event))
        assert obj["data"] == "AAE="
        assert obj["datacontentencoding"] == "base64"

    def test_text_data_is_a_json_string(self):
        event = _event()
        event.set_data("text/plain", "hello")
        assert json.loads(marshal_event(event))["data"] == "hello"

    def test_non_utf8_bytes_survive_round_trip(self):
        event = _event()
        event.set_data("application/octet-stream", b"\x89PNG\xff\x00\x01")
        raw = marshal_event(event)
        assert json.loads(raw)["data_base64"] == "iVBOR/8AAQ=="
        assert unmarshal_event(raw).data == b"\x89PNG\xff\x00\x01"

    def test_unflagged_non_utf8_bytes_fall_back_to_base64(self):
        event = _event()
        event.datacontenttype = "application/octet-stream"
        event.data_encoded = b"\xff\xfe"
        assert unmarshal_event(marshal_event(event)).data == b"\xff\xfe"

    def test_empty_text_data_is_emitted(self):
        event = _event()
        event.set_data("text/plain", "")
        assert json.loads(marshal_event(event))["data"] == ""

    def test_extensions_are_top_level(self):
        event = _event()
        event.set_extension("exint", 42)
        event.set_extension("exbin", b"\x00")
        obj = json.loads(marshal_event(event))
        assert obj["exint"] == 42
        assert obj["exbin"] == "AA=="


class TestUnmarshal:
    def test_round_trip_corpus(self):
        for event in events():
            assert_event_equals(event, unmarshal_event(marshal_event(event)))

    def test_missing_specversion(self):
        with pytest.raises(ValidationError) as exc_info:
            unmarshal_event(b'{"id":"abc"}')
        assert exc_info.value.field == "specversion"

    def test_data_and_data_base64_conflict(self):
        raw = (
            b'{"specversion":"1.0","id":"abc","source":"/x","type":"t",'
            b'"data":"x","data_base64":"eA=="}'
        )
        with pytest.raises(ValidationError, match="data_base64"):
            unmarshal_event(raw)

    def test_invalid_base64(self):
        raw = b'{"specversion":"1.0","id":"abc","source":"/x","type":"t","data_base64":"!!"}'
        with pytest.raises(ValidationError, match="base64"):
            unmarshal_event(raw)

    def test_v03_rejects_unknown_content_encoding(self):
        raw = (
            b'{"specversion":"0.3","id":"abc","source":"/x","type":"t",'
            b'"datacontentencoding":"gzip","data":"x"}'
        )
        with pytest.raises(ValidationError) as exc_info:
            unmarshal_event(raw)
        assert "datacontentencoding" in exc_info.value.errors

    def test_non_string_attribute(self):
        with pytest.raises(ValidationError) as exc_info:
            unmarshal_event(b'{"specversion":"1.0","id":1,"source":"/x","type":"t"}')
        assert exc_info.value.field == "id"

    def test_invalid_extension_name(self):
        raw = b'{"specversion":"1.0","id":"a","source":"/x","type":"t","Bad-Name":"v"}'
        with pytest.raises(ValidationError) as exc_info:
            unmarshal_event(raw)
        assert "Bad-Name" in exc_info.value.errors

    def test_not_json(self):
        with pytest.raises(ValidationError, match="invalid JSON"):
            unmarshal_event(b"{not json")


class TestBatch:
    def test_batch_round_trip(self):
        corpus = events()
        decoded = unmarshal_batch(marshal_batch(corpus))
        assert len(decoded) == len(corpus)
        for want, have in zip(corpus, decoded, strict=True):
            assert_event_equals(want, have)

    def test_batch_format(self):
        assert formats.lookup("application/cloudevents-batch+json") is formats.JSON_BATCH
