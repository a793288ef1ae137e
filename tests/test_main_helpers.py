import asyncio
from copy import deepcopy

import pytest

from pricewatch.config import DEFAULT_CONFIG
import pricewatch.main as cli
from pricewatch.main import build_monitor, options_from_config, parse_args
from pricewatch.monitoring.models import RunOptions, RunSummary
from pricewatch.monitoring.summary import SummaryReport
from pricewatch.storage.db import get_engine, init_db, make_session


def _config(tmp_path) -> dict:
    config = deepcopy(DEFAULT_CONFIG)
    config["telemetry"]["events_path"] = str(tmp_path / "telemetry.jsonl")
    return config


def test_parse_args_once_flags() -> None:
    args = parse_args(["--once", "--limit", "3", "--no-retry", "--no-notify"])
    assert args.once is True
    assert args.limit == 3
    assert args.no_retry is True
    assert args.no_notify is True
    assert args.weekly_summary is False


def test_parse_args_defaults() -> None:
    args = parse_args([])
    assert args.once is False
    assert args.limit is None
    assert args.config is None
    assert args.no_notifications is False


@pytest.mark.parametrize("flag", ["--limit", "--hourly-limit", "--daily-limit"])
def test_parse_args_rejects_non_positive_limits(flag) -> None:
    with pytest.raises(SystemExit):
        parse_args([flag, "0"])


def test_options_from_config_with_cli_overrides(tmp_path) -> None:
    config = _config(tmp_path)
    config["monitoring"]["daily_limit"] = 300

    assert options_from_config(config) == RunOptions(hourly_limit=50, daily_limit=300, enable_notifications=True)

    args = parse_args(["--hourly-limit", "7", "--no-notifications"])
    assert options_from_config(config, args) == RunOptions(hourly_limit=7, daily_limit=300, enable_notifications=False)


def test_build_monitor_runs_against_empty_database(tmp_path) -> None:
    engine = get_engine("sqlite:///:memory:")
    init_db(engine)
    monitor = build_monitor(_config(tmp_path), make_session(engine))

    summary = asyncio.run(monitor.manual_check(5))

    assert (summary.candidates_checked, summary.changes, summary.failures) == (0, 0, 0)
    assert monitor.status() == {"is_running": False}
    engine.dispose()


class _RecordingMonitor:
    def __init__(self) -> None:
        self.calls: list[str] = []

    async def manual_check(self, limit=None, retry=True, notify_on_failure=True) -> RunSummary:
        self.calls.append("manual_check")
        return RunSummary(candidates_checked=1, changes=1)

    async def send_weekly_summary(self) -> SummaryReport:
        self.calls.append("send_weekly_summary")
        return SummaryReport(records=1, recipients=["alice"])


def _cli_config(tmp_path, monkeypatch) -> str:
    monkeypatch.delenv("DATABASE_URL", raising=False)
    path = tmp_path / "config.yml"
    path.write_text(f"database:\n  url: sqlite:///{tmp_path / 'cli.sqlite'}\n", encoding="utf-8")
    return str(path)


def test_once_with_weekly_summary_summarises_that_run(tmp_path, monkeypatch, capsys) -> None:
    monitor = _RecordingMonitor()
    monkeypatch.setattr(cli, "build_monitor", lambda config, session_factory: monitor)

    asyncio.run(cli._async_main(["--config", _cli_config(tmp_path, monkeypatch), "--once", "--weekly-summary"]))

    assert monitor.calls == ["manual_check", "send_weekly_summary"]
    out = capsys.readouterr().out
    assert '"candidates_checked": 1' in out
    assert '"alice"' in out


def test_once_alone_does_not_send_a_summary(tmp_path, monkeypatch) -> None:
    monitor = _RecordingMonitor()
    monkeypatch.setattr(cli, "build_monitor", lambda config, session_factory: monitor)

    asyncio.run(cli._async_main(["--config", _cli_config(tmp_path, monkeypatch), "--once"]))

    assert monitor.calls == ["manual_check"]
