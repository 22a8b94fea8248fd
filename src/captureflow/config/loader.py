"""Configuration loading and override resolution."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Mapping

import yaml

from captureflow.config.models import AppConfig

DEFAULT_CONFIG_PATH = Path("config/settings.yaml")

_ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "CAPTUREFLOW_OCR_API_URL": ("remote", "base_url"),
    "CAPTUREFLOW_OCR_TIMEOUT_SECONDS": ("remote", "timeout_seconds"),
    "CAPTUREFLOW_MAX_FLOWS": ("retention", "max_flows"),
    "CAPTUREFLOW_DB_PATH": ("persistence", "db_path"),
}


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError("Configuration file must deserialize to a mapping")
    return data


def apply_overrides(
    raw_config: dict[str, Any],
    env: Mapping[str, str],
    overrides: Mapping[str, Any] | None,
) -> dict[str, Any]:
    """Apply precedence: explicit overrides > env > YAML defaults.

    ``overrides`` uses dotted keys, e.g. ``{"pipeline.poll_timeout_seconds": 5}``.
    """
    merged = {
        key: dict(value) if isinstance(value, dict) else value
        for key, value in raw_config.items()
    }
    for env_key, (section, field) in _ENV_OVERRIDES.items():
        value = env.get(env_key)
        if value:
            _set_section_value(merged, section, field, value.strip())

    for dotted_key, value in (overrides or {}).items():
        if value is None:
            continue
        section, _, field = dotted_key.partition(".")
        if not field:
            merged[section] = value
            continue
        _set_section_value(merged, section, field, value)
    return merged


def _set_section_value(
    merged: dict[str, Any],
    section: str,
    field: str,
    value: Any,
) -> None:
    current = merged.get(section)
    if not isinstance(current, dict):
        current = {}
    current[field] = value
    merged[section] = current


def load_app_config(
    config_path: Path | None = None,
    *,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> AppConfig:
    """Load and validate central application config.

    The default settings file is optional; an explicitly passed path must exist.
    """
    active_env = os.environ if env is None else env
    if config_path is None and not DEFAULT_CONFIG_PATH.exists():
        raw: dict[str, Any] = {}
    else:
        raw = _load_yaml(config_path or DEFAULT_CONFIG_PATH)
    merged = apply_overrides(raw, active_env, overrides)
    return AppConfig.model_validate(merged)
