"""Tests for the layered configuration loader."""

from pathlib import Path
from typing import Dict

import pytest
from pydantic import ValidationError

from kartqueue.enterprise.config.settings import get_settings


def _write_config(root: Path, base: str, environments: Dict[str, str]) -> Path:
    config_dir = root / "config"
    (config_dir / "environments").mkdir(parents=True)
    (config_dir / "settings.yaml").write_text(base, encoding="utf-8")
    for name, body in environments.items():
        (config_dir / "environments" / f"{name}.yaml").write_text(body, encoding="utf-8")
    return config_dir


def test_environment_layer_overrides_base(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_dir = _write_config(
        tmp_path,
        "environment: dev\ngrid:\n  rows: 4\n  columns: 6\nmessaging:\n  broker_host: base-broker\n  port: 1883\n",
        {"dev": "messaging:\n  broker_host: dev-broker\nqueue:\n  max_attempts: 7\nlogging:\n  level: DEBUG\n"},
    )
    monkeypatch.setenv("KQ_CONFIG_DIR", str(config_dir))
    monkeypatch.delenv("KQ_ENVIRONMENT", raising=False)

    settings = get_settings()

    assert settings.environment == "dev"
    assert (settings.grid.rows, settings.grid.columns) == (4, 6)
    assert settings.messaging.broker_host == "dev-broker"
    assert settings.messaging.port == 1883
    assert settings.queue.max_attempts == 7
    assert settings.logging.level == "DEBUG"


def test_environment_variables_beat_yaml(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_dir = _write_config(
        tmp_path,
        "environment: prod\nmessaging:\n  backend: mqtt\n  broker_host: base\n",
        {"prod": "{}"},
    )
    monkeypatch.setenv("KQ_CONFIG_DIR", str(config_dir))
    monkeypatch.setenv("KQ_ENVIRONMENT", "prod")
    monkeypatch.setenv("KQ_MESSAGING__PORT", "2883")
    monkeypatch.setenv("KQ_QUEUE__BACKOFF_SECONDS", "0")

    settings = get_settings()

    assert settings.environment == "prod"
    assert settings.messaging.port == 2883
    assert settings.messaging.broker_host == "base"
    assert settings.messaging.backend == "mqtt"
    assert settings.queue.backoff_seconds == 0


def test_cache_clear_picks_up_a_new_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_dir = _write_config(tmp_path, "{}", {"dev": "{}", "qa": "auth:\n  tokens:\n    qa-token: qa-user\n"})
    monkeypatch.setenv("KQ_CONFIG_DIR", str(config_dir))
    monkeypatch.delenv("KQ_ENVIRONMENT", raising=False)

    first = get_settings()
    monkeypatch.setenv("KQ_ENVIRONMENT", "qa")
    assert get_settings() is first

    get_settings.cache_clear()
    second = get_settings()

    assert first.environment == "dev"
    assert first.auth.tokens == {}
    assert second.environment == "qa"
    assert second.auth.tokens == {"qa-token": "qa-user"}


def test_non_mapping_layer_is_rejected(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_dir = _write_config(tmp_path, "- just\n- a list\n", {})
    monkeypatch.setenv("KQ_CONFIG_DIR", str(config_dir))

    with pytest.raises(ValueError):
        get_settings()


def test_repository_config_defaults_to_three_by_three_grid() -> None:
    settings = get_settings()

    assert settings.environment == "test"
    assert (settings.grid.rows, settings.grid.columns) == (3, 3)
    assert settings.messaging.backend == "memory"
    assert settings.database.enabled is False
    assert settings.auth.tokens["token-alice"] == "alice"


def test_grid_rows_are_limited_to_the_alphabet(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_dir = _write_config(tmp_path, "grid:\n  rows: 27\n", {})
    monkeypatch.setenv("KQ_CONFIG_DIR", str(config_dir))

    with pytest.raises(ValidationError):
        get_settings()
