"""Layered configuration resolution."""

from __future__ import annotations

from typing import Any, Iterable, Mapping

import yaml
from pydantic import ValidationError

from .exceptions import ConfigError
from .models import VaultConfig

ENV_PREFIX = "MEDIAVAULT__"


def assign_nested(target: dict[str, Any], path: list[str], value: Any) -> None:
    """Assign ``value`` into ``target`` following ``path``, creating mappings as needed.

    Raises:
        ConfigError: If an intermediate segment already holds a non-mapping value.
    """
    node = target
    for segment in path[:-1]:
        child = node.get(segment)
        if child is None:
            child = node[segment] = {}
        elif not isinstance(child, dict):
            raise ConfigError(f"Cannot assign into non-mapping key '{segment}'.")
        node = child
    node[path[-1]] = value


def expand_dotted(overrides: Mapping[str, Any]) -> dict[str, Any]:
    """Expand ``{"watch.recursive": False}`` into ``{"watch": {"recursive": False}}``.

    Nested mappings are accepted as-is, so file contents and dotted CLI keys
    share one code path.
    """
    if not isinstance(overrides, Mapping):
        raise ConfigError("Configuration overrides must be a mapping.")
    expanded: dict[str, Any] = {}
    for key, value in overrides.items():
        if not isinstance(key, str) or not key:
            raise ConfigError(f"Invalid configuration key: {key!r}")
        if isinstance(value, Mapping):
            for child_key, child_value in expand_dotted(value).items():
                assign_nested(expanded, [*key.split("."), child_key], child_value)
        else:
            assign_nested(expanded, key.split("."), value)
    return expanded


def collect_env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    """Collect ``MEDIAVAULT__SECTION__KEY`` variables as nested overrides.

    Values are read as YAML scalars, so ``5000`` and ``true`` keep their types.
    """
    overrides: dict[str, Any] = {}
    for name, raw in environ.items():
        if not name.startswith(ENV_PREFIX):
            continue
        path = [part.lower() for part in name[len(ENV_PREFIX) :].split("__") if part]
        if not path:
            continue
        try:
            value: Any = yaml.safe_load(raw)
        except yaml.YAMLError:
            value = raw
        assign_nested(overrides, path, value)
    return overrides


def _layer(merged: dict[str, Any], overrides: Mapping[str, Any]) -> None:
    # Sections are one level deep; a section override updates keys in place.
    for section, values in expand_dotted(overrides).items():
        if values is None:
            continue
        current = merged.get(section)
        if isinstance(current, dict) and isinstance(values, dict):
            current.update(values)
        else:
            merged[section] = values


def resolve_with_precedence(
    *,
    defaults: VaultConfig,
    file_overrides: Mapping[str, Any] | None = None,
    env_overrides: Mapping[str, Any] | None = None,
    cli_overrides: Mapping[str, Any] | None = None,
) -> VaultConfig:
    """Merge configuration sources, later sources winning.

    Precedence is defaults < file < environment < CLI.

    Raises:
        ConfigError: If an override is malformed or the merged values fail validation.
    """
    merged = defaults.model_dump(mode="python")
    layers: Iterable[Mapping[str, Any] | None] = (file_overrides, env_overrides, cli_overrides)
    for overrides in layers:
        if overrides:
            _layer(merged, overrides)
    try:
        return VaultConfig.model_validate(merged)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration values: {exc}") from exc


__all__ = [
    "ENV_PREFIX",
    "assign_nested",
    "collect_env_overrides",
    "expand_dotted",
    "resolve_with_precedence",
]
