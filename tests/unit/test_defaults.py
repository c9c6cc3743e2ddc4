"""Unit tests for default config loading and merging."""

import pytest

from ce_platform.config.defaults import load_defaults, merge_configs


class TestLoadDefaults:
    def test_loads_client_defaults(self):
        defaults = load_defaults("client")
        assert defaults["protocol"] == "http"
        assert defaults["retry"]["strategy"] == "none"
        assert defaults["http"]["port"] == 8080
        assert "pubsub" not in defaults

    def test_kafka_servers_are_env_templated(self):
        defaults = load_defaults()
        assert defaults["kafka"]["bootstrap_servers"].startswith("${KAFKA_BOOTSTRAP_SERVERS")

    def test_missing_defaults_raises(self):
        with pytest.raises(FileNotFoundError, match="nonexistent"):
            load_defaults("nonexistent")


class TestMergeConfigs:
    def test_shallow_override(self):
        base = {"a": 1, "b": 2}
        result = merge_configs(base, {"b": 99})
        assert result == {"a": 1, "b": 99}

    def test_deep_merge(self):
        base = {"http": {"host": "localhost", "port": 8080}}
        overrides = {"http": {"port": 9090}}
        result = merge_configs(base, overrides)
        assert result["http"]["host"] == "localhost"
        assert result["http"]["port"] == 9090

    def test_non_mutating(self):
        base = {"a": {"x": 1}}
        overrides = {"a": {"y": 2}}
        merge_configs(base, overrides)
        assert "y" not in base["a"]

    def test_list_replaced_not_merged(self):
        base = {"kafka": {"topics": ["a", "b"]}}
        result = merge_configs(base, {"kafka": {"topics": ["c"]}})
        assert result["kafka"]["topics"] == ["c"]
