"""Unit tests for the spec-version attribute registry."""

from __future__ import annotations

import pytest

from ce_platform.binding.spec import HTTP_VERSIONS, KAFKA_VERSIONS, V1, VS, Kind
from ce_platform.event import VERSION_V03, VERSION_V1


class TestVersions:
    def test_lookup_by_value(self):
        assert VS.version(VERSION_V1).value == VERSION_V1
        assert VS.version(VERSION_V03).value == VERSION_V03

    def test_unknown_version(self):
        with pytest.raises(ValueError, match="invalid spec version"):
            VS.version("9.9")

    def test_latest_is_v1(self):
        assert VS.latest().value == VERSION_V1

    def test_prefixed_specversion_name(self):
        assert HTTP_VERSIONS.spec_version_name() == "ce-specversion"
        assert KAFKA_VERSIONS.spec_version_name() == "ce_specversion"

    def test_find_spec_version_from_headers(self):
        headers = {"ce-specversion": b"0.3"}
        version = HTTP_VERSIONS.find_spec_version(headers.get)
        assert version is not None
        assert version.value == VERSION_V03
        assert HTTP_VERSIONS.find_spec_version({}.get) is None


class TestVersion:
    def test_attribute_lookup_is_case_insensitive(self):
        version = HTTP_VERSIONS.version(VERSION_V1)
        attr = version.attribute("CE-ID")
        assert attr is not None
        assert attr.kind == Kind.ID
        assert attr.prefixed_name == "ce-id"

    def test_v03_names_dataschema_schemaurl(self):
        attr = VS.version(VERSION_V03).attribute_from_kind(Kind.DATASCHEMA)
        assert attr is not None
        assert attr.name == "schemaurl"

    def test_set_attribute_falls_back_to_extension(self):
        version = HTTP_VERSIONS.version(VERSION_V1)
        event = version.new_event()
        version.set_attribute(event.context, "ce-id", "abc")
        version.set_attribute(event.context, "ce-myext", "v")
        assert event.id == "abc"
        assert event.extension("myext") == "v"

    def test_required_kinds(self):
        required = {k for k in Kind if k.is_required()}
        assert required == {Kind.ID, Kind.SOURCE, Kind.SPECVERSION, Kind.TYPE}


class TestAttribute:
    def test_blank_values_read_as_none(self):
        event = V1.new_event()
        attr = V1.attribute_from_kind(Kind.ID)
        assert attr is not None
        assert attr.get(event.context) is None

    def test_set_converts_strings(self):
        event = V1.new_event()
        time_attr = V1.attribute_from_kind(Kind.TIME)
        assert time_attr is not None
        time_attr.set(event.context, "2020-03-21T12:34:56Z")
        assert str(event.time) == "2020-03-21T12:34:56Z"

    def test_set_rejects_wrong_specversion(self):
        event = V1.new_event()
        attr = V1.attribute_from_kind(Kind.SPECVERSION)
        assert attr is not None
        with pytest.raises(ValueError, match="specversion"):
            attr.set(event.context, "0.3")
