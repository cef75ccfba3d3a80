"""YAML configuration for the registry bridge.

A config file either holds the :class:`ConsulConfig` fields at top level or
nests them in a ``kronos_consul:`` section. String values may reference the
environment as ``${VAR}`` or ``${VAR:-default}``::

    kronos_consul:
      host: ${CONSUL_HOST:-localhost}
      registration:
        service_name: kronos
        check_interval: 10s
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from .models import ConsulConfig

CONFIG_PATH_ENV = "KRONOS_CONSUL_CONFIG"
ROOT_SECTION = "kronos_consul"

_YAML_SUFFIXES = (".yaml", ".yml")
_ENV_REFERENCE = re.compile(r"\$\{(?P<name>[A-Za-z_]\w*)(?::-(?P<default>[^}]*))?\}")


class ConfigError(RuntimeError):
    """The configuration could not be read or does not validate."""


def get_default_config_path() -> Path | None:
    """$KRONOS_CONSUL_CONFIG, else the first existing well-known location."""
    explicit = os.getenv(CONFIG_PATH_ENV)
    if explicit:
        return Path(explicit).expanduser()
    for candidate in (
        Path.cwd() / "kronos_consul.yaml",
        Path.cwd() / "kronos_consul.yml",
        Path.home() / ".kronos_consul.yaml",
        Path("/etc/kronos_consul/config.yaml"),
    ):
        if candidate.is_file():
            return candidate
    return None


def load_default_config() -> ConsulConfig:
    path = get_default_config_path()
    return ConsulConfig() if path is None else load_config(path)


def load_config(path: str | Path, *overrides: str | Path) -> ConsulConfig:
    """Load ``path`` and deep-merge each override file on top of it, in order.

    Raises:
        ConfigError: A file is missing, unreadable, not YAML, references an
            unset variable without default, or the merged values are invalid.
    """
    data = _read(path)
    for override in overrides:
        data = _deep_merge(data, _read(override))
    try:
        return ConsulConfig.from_dict(data)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid configuration in {path}: {exc}") from exc


def _read(path: str | Path) -> dict[str, Any]:
    file = Path(path).expanduser()
    if file.suffix.lower() not in _YAML_SUFFIXES:
        raise ConfigError(f"Unsupported config file type: {file.suffix or file.name}")
    if not file.is_file():
        raise ConfigError(f"Config file not found: {file}")
    try:
        document = yaml.safe_load(file.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse config file {file}: {exc}") from exc
    if document is None:
        return {}
    if not isinstance(document, Mapping):
        raise ConfigError(f"Configuration in {file} must be a mapping")
    return _unwrap_root(_substitute_env(document))


def _substitute_env(value: Any) -> Any:
    if isinstance(value, str):
        return _ENV_REFERENCE.sub(_env_value, value)
    if isinstance(value, Mapping):
        return {key: _substitute_env(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_substitute_env(item) for item in value]
    return value


def _env_value(match: re.Match[str]) -> str:
    name, default = match.group("name"), match.group("default")
    value = os.environ.get(name)
    if value:
        return value
    if default is None:
        raise ConfigError(f"Environment variable '{name}' is not set and no default provided")
    return default


def _deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            value = _deep_merge(current, value)
        merged[key] = value
    return merged


def _unwrap_root(document: Mapping[str, Any]) -> dict[str, Any]:
    if ROOT_SECTION not in document:
        return dict(document)
    section = document[ROOT_SECTION]
    if not isinstance(section, Mapping):
        raise ConfigError(f"{ROOT_SECTION} section must be a mapping")
    # keys next to the section apply on top of it
    rest = {key: value for key, value in document.items() if key != ROOT_SECTION}
    return {**section, **rest}
