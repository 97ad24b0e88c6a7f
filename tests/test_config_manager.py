"""Unit tests for configuration management."""

from pathlib import Path

import pytest

from mediavault.config import (
    ConfigError,
    ConfigManager,
    VaultConfig,
    assign_nested,
    resolve_with_precedence,
)
from mediavault.config.resolver import collect_env_overrides, expand_dotted


def _fresh_manager(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> ConfigManager:
    monkeypatch.setenv("HOME", str(tmp_path))
    return ConfigManager()


def test_ensure_exists_creates_default_file(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    manager = _fresh_manager(tmp_path, monkeypatch)

    path = manager.ensure_exists()

    assert path.exists()
    text = path.read_text(encoding="utf-8")
    assert "mediavault configuration file" in text
    assert "Last updated:" in text

    config = manager.load(include_env=False)
    assert isinstance(config, VaultConfig)
    assert config.watch.stability_threshold_ms == 2000
    assert config.watch.poll_interval_ms == 100


def test_resolve_with_precedence_respects_order(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    manager = _fresh_manager(tmp_path, monkeypatch)
    manager.ensure_exists()

    manager.save({"ingestion": {"max_workers": 2}, "watch": {"stability_threshold_ms": 500}})

    env = {"MEDIAVAULT__WATCH__STABILITY_THRESHOLD_MS": "750", "UNRELATED": "x"}
    cli = {"watch.stability_threshold_ms": 250}

    config = manager.load(cli_overrides=cli, env_overrides=env)

    assert config.ingestion.max_workers == 2
    # CLI overrides take precedence over environment
    assert config.watch.stability_threshold_ms == 250

    config = manager.load(env_overrides=env)
    assert config.watch.stability_threshold_ms == 750


def test_invalid_yaml_raises_config_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    manager = _fresh_manager(tmp_path, monkeypatch)
    manager.ensure_exists()

    manager.config_path.write_text("- not-a-mapping", encoding="utf-8")

    with pytest.raises(ConfigError):
        manager.load()


def test_unknown_keys_are_rejected() -> None:
    with pytest.raises(ConfigError):
        resolve_with_precedence(defaults=VaultConfig(), file_overrides={"watch": {"bogus": 1}})


def test_collect_env_overrides_reads_prefixed_scalars() -> None:
    env = {
        "MEDIAVAULT__WATCH__RECURSIVE": "false",
        "MEDIAVAULT__INGESTION__MAX_WORKERS": "8",
        "MEDIAVAULT__PATHS__WATCH_DIR": "~/drop",
        "PATH": "/usr/bin",
    }

    overrides = collect_env_overrides(env)

    assert overrides == {
        "watch": {"recursive": False},
        "ingestion": {"max_workers": 8},
        "paths": {"watch_dir": "~/drop"},
    }


def test_expand_dotted_merges_nested_and_dotted_keys() -> None:
    expanded = expand_dotted({"watch.recursive": False, "watch": {"poll_interval_ms": 50}})

    assert expanded == {"watch": {"recursive": False, "poll_interval_ms": 50}}


def test_partial_section_override_keeps_other_defaults() -> None:
    config = resolve_with_precedence(
        defaults=VaultConfig(),
        file_overrides={"watch": {"recursive": False}, "logging": None},
        cli_overrides={"ingestion.max_workers": 2},
    )

    assert config.watch.recursive is False
    assert config.watch.stability_threshold_ms == 2000
    assert config.ingestion.max_workers == 2
    assert config.logging.level == "INFO"


def test_resolve_with_precedence_invalid_value_raises() -> None:
    with pytest.raises(ConfigError):
        resolve_with_precedence(
            defaults=VaultConfig(),
            file_overrides={"ingestion": {"max_workers": "not-an-int"}},
        )


def test_assign_nested_rejects_scalar_intermediate() -> None:
    data = {"watch": 5}

    with pytest.raises(ConfigError):
        assign_nested(data, ["watch", "recursive"], False)

    fresh: dict = {}
    assign_nested(fresh, ["watch", "recursive"], False)
    assert fresh == {"watch": {"recursive": False}}
