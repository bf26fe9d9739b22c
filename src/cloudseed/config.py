"""Configuration loader for cloudseed.

Values are read from several sources, later ones winning:

1. Built-in defaults.
2. ``/etc/cloudseed/config.yml`` (or an override path).
3. Environment variables prefixed with ``CLOUDSEED_``.
4. Explicit overrides supplied programmatically (reserved for CLI flags).

Environment keys use double underscores to express nesting, e.g.::

    export CLOUDSEED_FQDN__DOMAIN=lab.example
    export CLOUDSEED_DEFAULT_DATASOURCE=ec2

Environment values are taken verbatim as text. Sections (``fqdn`` and
``guest_agent``) merge key by key across sources. The resulting configuration
is exposed as immutable ``dataclasses``.
"""
from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

import yaml

from .datasources import DataSourceKind
from .model import (
    DEFAULT_FQDN_DOMAIN,
    DEFAULT_FQDN_PREFIX,
    GUEST_AGENT_COMMAND,
    GUEST_AGENT_PACKAGE,
)

ENV_PREFIX = "CLOUDSEED_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"
RESERVED_ENV_KEYS = {CONFIG_ENV_VAR}


class ConfigError(RuntimeError):
    """Raised when configuration parsing fails."""


@dataclass(frozen=True)
class FqdnConfig:
    """Pieces used to generate a random FQDN for new models."""

    prefix: str = DEFAULT_FQDN_PREFIX
    domain: str = DEFAULT_FQDN_DOMAIN

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"prefix": self.prefix, "domain": self.domain}


@dataclass(frozen=True)
class GuestAgentConfig:
    """Package and command installed when the guest agent is requested."""

    package: str = GUEST_AGENT_PACKAGE
    command: str = GUEST_AGENT_COMMAND

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"package": self.package, "command": self.command}


@dataclass(frozen=True)
class AppConfig:
    """Resolved configuration values for cloudseed."""

    config_file: Path
    logs_dir: Path
    output_dir: Path
    default_datasource: DataSourceKind
    fqdn: FqdnConfig
    guest_agent: GuestAgentConfig

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation of the config."""
        return {
            "config_file": str(self.config_file),
            "logs_dir": str(self.logs_dir),
            "output_dir": str(self.output_dir),
            "default_datasource": self.default_datasource.value,
            "fqdn": self.fqdn.to_dict(),
            "guest_agent": self.guest_agent.to_dict(),
        }


DEFAULTS: dict[str, object] = {
    "config_file": "/etc/cloudseed/config.yml",
    "logs_dir": "/var/log/cloudseed",
    "output_dir": ".",
    "default_datasource": DataSourceKind.NOCLOUD.value,
    "fqdn": {
        "prefix": DEFAULT_FQDN_PREFIX,
        "domain": DEFAULT_FQDN_DOMAIN,
    },
    "guest_agent": {
        "package": GUEST_AGENT_PACKAGE,
        "command": GUEST_AGENT_COMMAND,
    },
}

ALLOWED_TOP_LEVEL_KEYS = set(DEFAULTS.keys())
ALLOWED_NESTED_KEYS: dict[str, set[str]] = {
    "fqdn": {"prefix", "domain"},
    "guest_agent": {"package", "command"},
}


def load_config(
    config_file: str | os.PathLike[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
) -> AppConfig:
    """Load and merge configuration sources into an :class:`AppConfig`."""
    merged = _fresh_defaults()
    resolved_env = dict(os.environ if env is None else env)

    config_default = _expect_str(merged["config_file"], "config_file")
    config_path = _determine_config_path(config_default, config_file, resolved_env)

    _apply_layer(merged, _load_yaml_file(config_path), f"Config file {config_path}")
    _apply_layer(merged, _build_env_overrides(resolved_env), "Environment")
    if overrides:
        _apply_layer(merged, overrides, "Overrides")

    merged["config_file"] = str(config_path)

    _validate_structure(merged)

    return _build_app_config(merged)


def _determine_config_path(
    default_path: str,
    cli_override: str | os.PathLike[str] | None,
    env: Mapping[str, str],
) -> Path:
    if cli_override:
        return Path(cli_override)
    if CONFIG_ENV_VAR in env:
        return Path(env[CONFIG_ENV_VAR])
    return Path(default_path)


def _load_yaml_file(path: Path) -> dict[str, object]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse config file {path}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level.")
    return _as_dict(data, f"file:{path}")


def _validate_structure(raw: Mapping[str, object]) -> None:
    unknown_keys = set(raw.keys()) - ALLOWED_TOP_LEVEL_KEYS
    if unknown_keys:
        joined = ", ".join(sorted(unknown_keys))
        raise ConfigError(f"Unknown configuration keys: {joined}.")

    for section, allowed in ALLOWED_NESTED_KEYS.items():
        mapping = _as_dict(raw.get(section), section)
        unknown = set(mapping.keys()) - allowed
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ConfigError(f"Unknown {section} configuration keys: {joined}.")
        for key, value in mapping.items():
            text = _expect_str(value, f"{section}.{key}")
            if not text.strip():
                raise ConfigError(f"{section}.{key} must be a non-empty string.")

    datasource = raw.get("default_datasource")
    if datasource is not None:
        try:
            DataSourceKind.parse(str(datasource))
        except ValueError as exc:
            raise ConfigError(str(exc)) from exc


def _build_app_config(raw: Mapping[str, object]) -> AppConfig:
    fqdn_mapping = _as_dict(raw.get("fqdn"), "fqdn")
    agent_mapping = _as_dict(raw.get("guest_agent"), "guest_agent")
    return AppConfig(
        config_file=_to_path(raw.get("config_file")),
        logs_dir=_to_path(raw.get("logs_dir")),
        output_dir=_to_path(raw.get("output_dir")),
        default_datasource=DataSourceKind.parse(str(raw.get("default_datasource"))),
        fqdn=FqdnConfig(
            prefix=str(fqdn_mapping.get("prefix", DEFAULT_FQDN_PREFIX)),
            domain=str(fqdn_mapping.get("domain", DEFAULT_FQDN_DOMAIN)),
        ),
        guest_agent=GuestAgentConfig(
            package=str(agent_mapping.get("package", GUEST_AGENT_PACKAGE)),
            command=str(agent_mapping.get("command", GUEST_AGENT_COMMAND)),
        ),
    )


def _fresh_defaults() -> dict[str, object]:
    return {
        key: dict(value) if isinstance(value, Mapping) else value
        for key, value in DEFAULTS.items()
    }


def _apply_layer(
    merged: dict[str, object],
    layer: Mapping[str, object],
    source: str,
) -> None:
    """Overlay *layer* onto *merged*, merging sections key by key."""
    for key, value in layer.items():
        if key not in ALLOWED_NESTED_KEYS:
            merged[key] = value
            continue
        if not isinstance(value, Mapping):
            raise ConfigError(f"{source} sets {key} to {value!r}; expected a mapping.")
        section = _as_dict(merged.get(key), key)
        section.update(_as_dict(value, f"{source}:{key}"))
        merged[key] = section


def _build_env_overrides(env: Mapping[str, str]) -> dict[str, object]:
    # Values stay text: every setting is a path or a plain string.
    overrides: dict[str, object] = {}
    for name, value in env.items():
        if name in RESERVED_ENV_KEYS or not name.startswith(ENV_PREFIX):
            continue
        segments = [part.lower() for part in name[len(ENV_PREFIX) :].split("__") if part]
        if not segments:
            continue
        if len(segments) > 2:
            raise ConfigError(f"{name} nests deeper than section__key.")
        head = segments[0]
        existing = overrides.get(head)
        if len(segments) == 1:
            if isinstance(existing, dict):
                raise ConfigError(f"{name} conflicts with nested {head} overrides.")
            overrides[head] = value.strip()
            continue
        if existing is None:
            existing = overrides[head] = {}
        if not isinstance(existing, dict):
            raise ConfigError(f"{name} conflicts with scalar {ENV_PREFIX}{head.upper()}.")
        existing[segments[1]] = value.strip()
    return overrides


def _to_path(value: object) -> Path:
    if value is None:
        raise ConfigError("Expected a filesystem path, received None.")
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str):
        return Path(value).expanduser()
    raise ConfigError(f"Cannot convert value {value!r} to Path.")


def _expect_str(value: object, key: str) -> str:
    if isinstance(value, str):
        return value
    raise ConfigError(f"Expected {key} to resolve to a string. Got {value!r}.")


def _as_dict(value: object | None, label: str) -> dict[str, object]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Expected {label} to be a mapping. Got {type(value).__name__}.")
    result: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise ConfigError(f"Mapping {label} must use string keys. Got {key!r}.")
        result[key] = item
    return result


__all__ = [
    "AppConfig",
    "ConfigError",
    "FqdnConfig",
    "GuestAgentConfig",
    "load_config",
]
