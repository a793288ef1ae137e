from __future__ import annotations

import pytest

from pricewatch.config import DEFAULT_CONFIG, _deep_merge, load_config
from pricewatch.errors import ConfigError


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("PRICE_CHECK_ENDPOINT", raising=False)


def test_missing_file_falls_back_to_defaults(tmp_path) -> None:
    config = load_config(tmp_path / "absent.yml")
    assert config == DEFAULT_CONFIG
    assert config is not DEFAULT_CONFIG


def test_file_values_merge_over_defaults(tmp_path) -> None:
    path = tmp_path / "config.yml"
    path.write_text("monitoring:\n  hourly_limit: 5\n  timezone: UTC\nchecker:\n  endpoint: https://x.test/{url}\n", encoding="utf-8")

    config = load_config(path)

    assert config["monitoring"]["hourly_limit"] == 5
    assert config["monitoring"]["daily_limit"] == 1000
    assert config["monitoring"]["timezone"] == "UTC"
    assert config["checker"] == {"endpoint": "https://x.test/{url}", "timeout": 20.0}


def test_environment_overrides_file(tmp_path, monkeypatch) -> None:
    path = tmp_path / "config.yml"
    path.write_text("database:\n  url: sqlite:///file.sqlite\n", encoding="utf-8")
    monkeypatch.setenv("DATABASE_URL", "sqlite:///env.sqlite")
    monkeypatch.setenv("PRICE_CHECK_ENDPOINT", "https://env.test/{url}")

    config = load_config(path)

    assert config["database"]["url"] == "sqlite:///env.sqlite"
    assert config["checker"]["endpoint"] == "https://env.test/{url}"


@pytest.mark.parametrize(
    "body",
    [
        "monitoring:\n  hourly_limit: 0\n",
        "monitoring:\n  daily_limit: lots\n",
        "monitoring:\n  retry_delay_seconds: -1\n",
        "monitoring:\n  retry_concurrency: true\n",
    ],
)
def test_invalid_monitoring_values_raise(tmp_path, body) -> None:
    path = tmp_path / "config.yml"
    path.write_text(body, encoding="utf-8")

    with pytest.raises(ConfigError) as excinfo:
        load_config(path)

    assert excinfo.value.key.startswith("monitoring.")


def test_non_mapping_root_raises(tmp_path) -> None:
    path = tmp_path / "config.yml"
    path.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_config(path)


def test_bundled_config_loads() -> None:
    config = load_config()
    assert config["monitoring"]["max_retry_attempts"] == 3
    assert config["monitoring"]["retry_delay_seconds"] == 5


def test_deep_merge_does_not_mutate_inputs() -> None:
    default = {"a": {"b": 1, "c": 2}}
    merged = _deep_merge(default, {"a": {"b": 3}})
    assert merged == {"a": {"b": 3, "c": 2}}
    assert default == {"a": {"b": 1, "c": 2}}
