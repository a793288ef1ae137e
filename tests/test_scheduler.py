from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from fakes import (
    ADMIN,
    OWNER,
    FakeAccounts,
    FakeCatalog,
    FakeNotifier,
    FakeTelemetry,
    RecordingSleep,
    ScriptedChecker,
    candidate,
)
from pricewatch.monitoring.changes import ChangeBuffer
from pricewatch.monitoring.executor import BatchRunExecutor
from pricewatch.monitoring.models import RunOptions
from pricewatch.monitoring.retry import RetryCoordinator
from pricewatch.monitoring.scheduler import SCHEDULES, MonitoringScheduler, crontab_trigger
from pricewatch.monitoring.summary import WeeklySummaryDispatcher


def _monitor(catalog: FakeCatalog, checker: ScriptedChecker, **kwargs) -> MonitoringScheduler:
    buffer = ChangeBuffer()
    accounts = FakeAccounts([ADMIN, OWNER])
    notifier = FakeNotifier()
    executor = BatchRunExecutor(
        catalog=catalog,
        checker=checker,
        accounts=accounts,
        notifier=notifier,
        telemetry=FakeTelemetry(),
        buffer=buffer,
        retry_coordinator=RetryCoordinator(checker, sleep=RecordingSleep()),
    )
    dispatcher = WeeklySummaryDispatcher(buffer=buffer, catalog=catalog, accounts=accounts, notifier=notifier)
    return MonitoringScheduler(executor, dispatcher, **kwargs)


def test_start_and_stop_are_idempotent() -> None:
    monitor = _monitor(FakeCatalog(), ScriptedChecker())

    async def scenario() -> None:
        try:
            first = monitor.start()
            second = monitor.start({"hourly_limit": 99})
            assert first["success"] and second["success"]
            assert second["options"] == first["options"]
            assert monitor.status() == {"is_running": True}
            assert sorted(monitor.jobs) == ["daily", "hourly", "weekly"]
            assert len(monitor._scheduler.get_jobs()) == 3

            assert monitor.stop() == {"success": True, "is_running": False}
            assert monitor.stop() == {"success": True, "is_running": False}
            assert monitor.status() == {"is_running": False}
            assert monitor._scheduler.get_jobs() == []
        finally:
            monitor.shutdown()

    asyncio.run(scenario())


def test_restart_after_stop_registers_one_set_of_jobs() -> None:
    monitor = _monitor(FakeCatalog(), ScriptedChecker())

    async def scenario() -> None:
        try:
            monitor.start()
            monitor.stop()
            result = monitor.start({"daily_limit": 20, "enable_notifications": False})
            assert result["options"] == {"hourly_limit": 50, "daily_limit": 20, "enable_notifications": False}
            jobs = {job.id: job for job in monitor._scheduler.get_jobs()}
            assert sorted(jobs) == ["pricewatch-daily", "pricewatch-hourly", "pricewatch-weekly"]
            assert jobs["pricewatch-daily"].args == ("daily", 20, False)
            assert jobs["pricewatch-hourly"].args == ("hourly", 50, False)
        finally:
            monitor.shutdown()

    asyncio.run(scenario())


def test_invalid_options_return_structured_failure() -> None:
    monitor = _monitor(FakeCatalog(), ScriptedChecker())

    result = monitor.start({"hourly_limit": 0})

    assert result["success"] is False
    assert result["is_running"] is False
    assert "positive" in result["message"]
    assert monitor.jobs == {}


@pytest.mark.parametrize(
    "options",
    [
        {"enable_notifications": "false"},
        {"hourly_limit": True},
        {"daily_limit": "10"},
        {"daily_limit": 2.5},
        {"hourly_limt": 5},
        {"hourly_limit": 5, "hourlyLimit": 6},
        ["hourly_limit", 5],
    ],
)
def test_malformed_options_are_rejected_not_coerced(options) -> None:
    monitor = _monitor(FakeCatalog(), ScriptedChecker())

    result = monitor.start(options)

    assert result["success"] is False
    assert result["message"]
    assert monitor.jobs == {}


def test_camel_case_option_names_are_honoured() -> None:
    options = RunOptions.from_mapping({"hourlyLimit": 5, "dailyLimit": 20, "enableNotifications": False})

    assert options == RunOptions(hourly_limit=5, daily_limit=20, enable_notifications=False)


def test_missing_and_none_options_fall_back_to_defaults() -> None:
    defaults = RunOptions(hourly_limit=7, daily_limit=70, enable_notifications=False)

    assert RunOptions.from_mapping(None, defaults=defaults) == defaults
    assert RunOptions.from_mapping({"hourly_limit": None, "daily_limit": 9}, defaults=defaults) == RunOptions(
        hourly_limit=7, daily_limit=9, enable_notifications=False
    )


def test_default_options_come_from_the_constructor() -> None:
    monitor = _monitor(
        FakeCatalog(),
        ScriptedChecker(),
        default_options=RunOptions(hourly_limit=7, daily_limit=70, enable_notifications=False),
    )

    async def scenario() -> dict:
        try:
            return monitor.start()
        finally:
            monitor.shutdown()

    result = asyncio.run(scenario())
    assert result["options"] == {"hourly_limit": 7, "daily_limit": 70, "enable_notifications": False}


def test_manual_check_scenario_with_recovered_candidate() -> None:
    checker = ScriptedChecker({"1": [10.0], "2": [None, None, 12.0], "3": [30.0]})
    catalog = FakeCatalog([candidate("1", 10.0), candidate("2", 11.0), candidate("3", 30.0)])
    monitor = _monitor(catalog, checker)

    async def scenario():
        try:
            assert monitor.start({"hourly_limit": 5})["success"]
            assert monitor.status() == {"is_running": True}
            summary = await monitor.manual_check(3, True, False)
            assert monitor.stop()["is_running"] is False
            assert monitor.status() == {"is_running": False}
            return summary
        finally:
            monitor.shutdown()

    summary = asyncio.run(scenario())

    assert (summary.candidates_checked, summary.changes, summary.failures) == (3, 1, 0)
    [record] = summary.change_details
    assert record.item_id == "2"
    assert (record.old_value, record.new_value) == (11.0, 12.0)
    assert checker.attempts_for("2") == 3


def test_manual_check_works_without_starting() -> None:
    catalog = FakeCatalog([candidate("1", 5.0)])
    monitor = _monitor(catalog, ScriptedChecker({"1": [4.0]}), manual_limit=4)

    summary = asyncio.run(monitor.manual_check())

    assert catalog.fetch_calls == [4]
    assert (summary.candidates_checked, summary.changes) == (1, 1)
    assert monitor.status() == {"is_running": False}


def test_manual_check_rejects_non_positive_limit() -> None:
    catalog = FakeCatalog([candidate("1")])
    monitor = _monitor(catalog, ScriptedChecker())

    summary = asyncio.run(monitor.manual_check(0))

    assert summary.failures == 1
    assert summary.error_message
    assert catalog.fetch_calls == []


def test_send_weekly_summary_drains_buffer() -> None:
    catalog = FakeCatalog([candidate("1", 5.0)], owned={OWNER.id: ["1"]})
    monitor = _monitor(catalog, ScriptedChecker({"1": [4.0]}))

    async def scenario():
        await monitor.manual_check(1)
        return await monitor.send_weekly_summary()

    report = asyncio.run(scenario())

    assert report.records == 1
    assert report.recipients == [OWNER.id]


def test_scheduled_job_swallows_executor_errors() -> None:
    class ExplodingExecutor:
        async def run(self, *args, **kwargs):
            raise RuntimeError("unexpected")

    monitor = MonitoringScheduler(ExplodingExecutor(), None)
    asyncio.run(monitor._scheduled_check("hourly", 5, True))


def test_crontab_trigger_maps_sunday() -> None:
    trigger = crontab_trigger(SCHEDULES["weekly"], timezone="UTC")
    monday = datetime(2024, 1, 1, tzinfo=timezone.utc)

    assert trigger.get_next_fire_time(None, monday) == datetime(2024, 1, 7, 9, 0, tzinfo=timezone.utc)


def test_crontab_trigger_daily_and_hourly() -> None:
    start = datetime(2024, 1, 1, 0, 30, tzinfo=timezone.utc)

    daily = crontab_trigger(SCHEDULES["daily"], timezone="UTC")
    hourly = crontab_trigger(SCHEDULES["hourly"], timezone="UTC")

    assert daily.get_next_fire_time(None, start) == datetime(2024, 1, 1, 2, 0, tzinfo=timezone.utc)
    assert hourly.get_next_fire_time(None, start) == datetime(2024, 1, 1, 1, 0, tzinfo=timezone.utc)


def test_crontab_trigger_rejects_malformed_expression() -> None:
    with pytest.raises(ValueError):
        crontab_trigger("0 * * *")
