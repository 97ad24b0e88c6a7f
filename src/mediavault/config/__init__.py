"""Configuration management for mediavault."""

from __future__ import annotations

import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping

import yaml

from .exceptions import ConfigError
from .models import VaultConfig
from .resolver import (
    ENV_PREFIX,
    assign_nested,
    collect_env_overrides,
    resolve_with_precedence,
)

DEFAULT_CONFIG_PATH = Path("~/.mediavault/config.yaml")
_HEADER_LINES = (
    "# mediavault configuration file",
    "# Edit directly or run `mediavault config set KEY --value VALUE`.",
)


class ConfigManager:
    """Read, resolve, and persist the YAML configuration file.

    Args:
        config_path: Location of the YAML file; defaults to ``~/.mediavault/config.yaml``.
        env: Environment consulted for ``MEDIAVAULT__`` overrides; defaults to ``os.environ``.
    """

    def __init__(
        self,
        config_path: Path | None = None,
        *,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self._config_path = Path(config_path or DEFAULT_CONFIG_PATH).expanduser()
        self._env = os.environ if env is None else env

    @property
    def config_path(self) -> Path:
        return self._config_path

    def load(
        self,
        *,
        cli_overrides: Mapping[str, Any] | None = None,
        include_env: bool = True,
        env_overrides: Mapping[str, str] | None = None,
    ) -> VaultConfig:
        """Return the effective configuration.

        Args:
            cli_overrides: Dotted-key overrides from command-line flags.
            include_env: Whether ``MEDIAVAULT__`` variables are applied.
            env_overrides: Environment mapping to use instead of the manager's.

        Raises:
            ConfigError: If the file is malformed or a value fails validation.
        """
        environ = env_overrides if env_overrides is not None else self._env
        return resolve_with_precedence(
            defaults=VaultConfig(),
            file_overrides=self.load_file_overrides(),
            env_overrides=collect_env_overrides(environ) if include_env else None,
            cli_overrides=cli_overrides,
        )

    def load_file_overrides(self) -> dict[str, Any]:
        """Return the raw mapping stored on disk, or an empty mapping when absent.

        Raises:
            ConfigError: If the file is not valid YAML or not a mapping.
        """
        text = self.read_text()
        try:
            data = yaml.safe_load(text) if text else None
        except yaml.YAMLError as exc:
            raise ConfigError(f"Failed to parse {self._config_path}: {exc}") from exc
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(f"{self._config_path} must contain a mapping at the top level.")
        return data

    def save(self, data: VaultConfig | Mapping[str, Any]) -> None:
        """Write ``data`` to disk under a generated header."""
        payload = data.model_dump(mode="python") if isinstance(data, VaultConfig) else dict(data)
        stamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        lines = [*_HEADER_LINES, f"# Last updated: {stamp}"]
        self._config_path.parent.mkdir(parents=True, exist_ok=True)
        self._config_path.write_text(
            "\n".join(lines) + "\n" + yaml.safe_dump(payload, sort_keys=False),
            encoding="utf-8",
        )

    def ensure_exists(self) -> Path:
        """Write the default configuration when no file exists yet."""
        if not self._config_path.exists():
            self.save(VaultConfig())
        return self._config_path

    def read_text(self) -> str:
        if not self._config_path.exists():
            return ""
        return self._config_path.read_text(encoding="utf-8")


__all__ = [
    "ConfigError",
    "ConfigManager",
    "DEFAULT_CONFIG_PATH",
    "ENV_PREFIX",
    "VaultConfig",
    "assign_nested",
    "resolve_with_precedence",
]
