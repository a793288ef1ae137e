"""Configuration loading for the pricewatch service."""

from __future__ import annotations

from copy import deepcopy
import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from pricewatch.errors import ConfigError
from pricewatch.logging_config import get_logger

LOGGER = get_logger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent / "config.yml"

DEFAULT_CONFIG: dict[str, Any] = {
    "database": {"url": "sqlite:///pricewatch.sqlite"},
    "monitoring": {
        "hourly_limit": 50,
        "daily_limit": 1000,
        "enable_notifications": True,
        "manual_limit": 10,
        "max_retry_attempts": 3,
        "retry_delay_seconds": 5.0,
        "retry_concurrency": 1,
        "check_timeout": 60.0,
        "max_concurrent_runs": 1,
        "due_after_hours": 24,
        "timezone": None,
    },
    "checker": {
        "endpoint": "",
        "timeout": 20.0,
    },
    "telemetry": {"events_path": "logs/telemetry.jsonl"},
}

_POSITIVE_INTS = (
    "hourly_limit",
    "daily_limit",
    "manual_limit",
    "retry_concurrency",
    "max_concurrent_runs",
)
_NON_NEGATIVE_NUMBERS = (
    "max_retry_attempts",
    "retry_delay_seconds",
    "check_timeout",
    "due_after_hours",
)


def _deep_merge(default: Any, override: Any) -> Any:
    if not isinstance(default, dict) or not isinstance(override, dict):
        return deepcopy(override)

    merged: dict[str, Any] = deepcopy(default)
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = deepcopy(value)
    return merged


def _validate_monitoring(section: dict[str, Any]) -> None:
    for key in _POSITIVE_INTS:
        value = section.get(key)
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ConfigError("must be a positive integer", key=f"monitoring.{key}")
    for key in _NON_NEGATIVE_NUMBERS:
        value = section.get(key)
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
            raise ConfigError("must be a non-negative number", key=f"monitoring.{key}")


def load_config(path: Path | str | None = None) -> dict[str, Any]:
    """Load the YAML configuration at *path* merged over :data:`DEFAULT_CONFIG`.

    Secrets never live in the file: ``DATABASE_URL`` and ``PRICE_CHECK_ENDPOINT``
    from the environment (or a ``.env`` file) override the file values.
    """

    load_dotenv()

    config_path = Path(path) if path else DEFAULT_CONFIG_PATH
    if config_path.exists():
        with config_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    else:
        LOGGER.warning("Configuration file %s not found; using defaults", config_path)
        data = {}

    if not isinstance(data, dict):
        raise ConfigError(f"Configuration root in {config_path} must be a mapping")

    merged = _deep_merge(DEFAULT_CONFIG, data) if data else deepcopy(DEFAULT_CONFIG)

    database_url = os.getenv("DATABASE_URL")
    if database_url:
        merged["database"]["url"] = database_url
    endpoint = os.getenv("PRICE_CHECK_ENDPOINT")
    if endpoint:
        merged["checker"]["endpoint"] = endpoint

    _validate_monitoring(merged["monitoring"])
    return merged
