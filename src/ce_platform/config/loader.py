"""Client config loading: YAML file, built-in defaults, ``${VAR}`` expansion."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, cast

import yaml
from pydantic import ValidationError

from ce_platform.config.defaults import load_defaults, merge_configs
from ce_platform.config.models import ClientConfig

# ${VAR} or ${VAR:-default}; "\}" escapes a brace inside the default
_ENV_REF = re.compile(r"\$\{([^}:]+)(?::-((?:[^}\\]|\\.)*))?}")


def _expand(value: str) -> str:
    def _lookup(match: re.Match[str]) -> str:
        name, default = match.group(1), match.group(2)
        if name in os.environ:
            return os.environ[name]
        if default is None:
            msg = f"Environment variable '{name}' is not set and no default provided"
            raise ValueError(msg)
        return default.replace("\\}", "}")

    return _ENV_REF.sub(_lookup, value)


def resolve_env_vars(data: Any) -> Any:
    """Expand environment references in every string of a parsed config tree."""
    if isinstance(data, dict):
        return {key: resolve_env_vars(value) for key, value in data.items()}
    if isinstance(data, list):
        return [resolve_env_vars(item) for item in data]
    return _expand(data) if isinstance(data, str) else data


def load_yaml(path: str | Path) -> dict[str, Any]:
    """Parse a client config file into a mapping; env references are left as-is."""
    p = Path(path)
    if not p.exists():
        msg = f"Config file not found: {p}"
        raise FileNotFoundError(msg)
    try:
        data = yaml.safe_load(p.read_text())
    except yaml.YAMLError as exc:
        mark = getattr(exc, "problem_mark", None)
        where = f" at line {mark.line + 1}, column {mark.column + 1}" if mark else ""
        msg = f"Failed to parse YAML in {p}{where}: {exc}"
        raise ValueError(msg) from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        msg = f"Client config {p} must be a YAML mapping, got {type(data).__name__}"
        raise TypeError(msg)
    return cast(dict[str, Any], data)


def build_client_config(overrides: dict[str, Any] | None = None) -> ClientConfig:
    """Merge *overrides* onto the built-in defaults, expand env vars, validate."""
    merged = merge_configs(load_defaults("client"), overrides or {})
    return ClientConfig.model_validate(resolve_env_vars(merged))


def load_client_config(path: str | Path | None = None) -> ClientConfig:
    """Load a client config YAML merged over the built-in defaults."""
    overrides = load_yaml(path) if path is not None else {}
    try:
        return build_client_config(overrides)
    except ValidationError as exc:
        source = path or "built-in defaults"
        msg = f"Invalid client config ({source}):\n{exc}"
        raise ValueError(msg) from exc
