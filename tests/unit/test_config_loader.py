"""Configuration loading tests."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from captureflow.config.loader import load_app_config


def _write_config(tmp_path: Path, content: str) -> Path:
    config_path = tmp_path / "settings.yaml"
    config_path.write_text(content, encoding="utf-8")
    return config_path


def test_overrides_beat_env_and_yaml_defaults(tmp_path: Path) -> None:
    """Explicit overrides should have highest precedence."""
    config_path = _write_config(
        tmp_path,
        """
schema_version: "1.0.0"
remote:
  base_url: "http://yaml-host:3000/"
  timeout_seconds: 30
retention:
  max_flows: 5
""",
    )
    config = load_app_config(
        config_path,
        env={
            "CAPTUREFLOW_OCR_API_URL": "http://env-host:3000",
            "CAPTUREFLOW_MAX_FLOWS": "7",
        },
        overrides={"remote.base_url": "http://override-host:4000/", "retention.max_flows": None},
    )
    assert config.remote.base_url == "http://override-host:4000"
    assert config.retention.max_flows == 7
    assert config.remote.timeout_seconds == 30


def test_env_overrides_yaml_values(tmp_path: Path) -> None:
    """Environment variables should override YAML values."""
    config_path = _write_config(
        tmp_path,
        """
persistence:
  db_path: "yaml.db"
remote:
  timeout_seconds: 30
""",
    )
    config = load_app_config(
        config_path,
        env={
            "CAPTUREFLOW_DB_PATH": str(tmp_path / "env.db"),
            "CAPTUREFLOW_OCR_TIMEOUT_SECONDS": "12.5",
        },
    )
    assert config.persistence.db_path == tmp_path / "env.db"
    assert config.remote.timeout_seconds == 12.5


def test_missing_default_config_falls_back_to_model_defaults(
    monkeypatch, tmp_path: Path  # type: ignore[no-untyped-def]
) -> None:
    """Without a settings file the model defaults apply."""
    monkeypatch.chdir(tmp_path)
    config = load_app_config(env={})
    assert config.pipeline.max_file_size_bytes == 10 * 1024 * 1024
    assert config.pipeline.supported_formats == ["image/jpeg", "image/png"]
    assert config.retention.max_flows == 10
    assert config.attempt.max_retries == 3
    assert config.draft.history_limit == 20


def test_explicit_missing_config_path_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_app_config(tmp_path / "absent.yaml", env={})


def test_unknown_keys_are_rejected(tmp_path: Path) -> None:
    """Typos in the settings file should fail loudly."""
    config_path = _write_config(
        tmp_path,
        """
pipeline:
  max_file_size: 1024
""",
    )
    with pytest.raises(ValidationError):
        load_app_config(config_path, env={})


def test_poll_interval_cannot_exceed_timeout(tmp_path: Path) -> None:
    config_path = _write_config(
        tmp_path,
        """
pipeline:
  poll_interval_seconds: 10
  poll_timeout_seconds: 5
""",
    )
    with pytest.raises(ValidationError):
        load_app_config(config_path, env={})


def test_repository_settings_file_is_valid() -> None:
    """The shipped settings file should load without overrides."""
    settings = Path(__file__).resolve().parents[2] / "config" / "settings.yaml"
    config = load_app_config(settings, env={})
    assert config.schema_version == "1.0.0"
    assert config.pipeline.chunk_size_bytes > 0
