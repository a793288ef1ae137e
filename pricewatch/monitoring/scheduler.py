"""Recurring triggers and the control surface of the monitoring system."""

from __future__ import annotations

from dataclasses import dataclass, field
import threading
from typing import Any, Mapping

from apscheduler.job import Job
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.triggers.cron import CronTrigger

from pricewatch.logging_config import get_logger
from pricewatch.monitoring.executor import BatchRunExecutor
from pricewatch.monitoring.models import DEFAULT_MANUAL_LIMIT, RunOptions, RunSummary
from pricewatch.monitoring.summary import SummaryReport, WeeklySummaryDispatcher

LOGGER = get_logger(__name__)

# crontab expressions; day-of-week 0 is Sunday
SCHEDULES = {
    "hourly": "0 * * * *",
    "daily": "0 2 * * *",
    "weekly": "0 9 * * 0",
}

_CRON_WEEKDAYS = {
    "0": "sun",
    "1": "mon",
    "2": "tue",
    "3": "wed",
    "4": "thu",
    "5": "fri",
    "6": "sat",
    "7": "sun",
}

MISFIRE_GRACE_SECONDS = 300


def crontab_trigger(expression: str, timezone: Any = None) -> CronTrigger:
    """Build a :class:`CronTrigger` from a five-field crontab expression.

    APScheduler numbers weekdays from Monday, so numeric crontab weekdays are
    translated to names before they reach the trigger.
    """

    fields = expression.split()
    if len(fields) != 5:
        raise ValueError(f"Expected 5 crontab fields, got {len(fields)}: {expression!r}")
    minute, hour, day, month, day_of_week = fields
    return CronTrigger(
        minute=minute,
        hour=hour,
        day=day,
        month=month,
        day_of_week=_CRON_WEEKDAYS.get(day_of_week, day_of_week),
        timezone=timezone,
    )


@dataclass
class MonitoringState:
    active: bool = False
    handles: dict[str, Job] = field(default_factory=dict)
    options: RunOptions | None = None


class MonitoringScheduler:
    """Owns the hourly, daily and weekly triggers.

    ``start`` and ``stop`` are idempotent and never raise; they return the
    same structured payloads an HTTP layer would hand back to its caller.
    Stopping only prevents future firings, a run already in progress keeps
    going.
    """

    def __init__(
        self,
        executor: BatchRunExecutor,
        dispatcher: WeeklySummaryDispatcher,
        *,
        scheduler: BaseScheduler | None = None,
        default_options: RunOptions | None = None,
        manual_limit: int = DEFAULT_MANUAL_LIMIT,
        timezone: Any = None,
    ) -> None:
        self._executor = executor
        self._dispatcher = dispatcher
        if scheduler is None:
            scheduler = AsyncIOScheduler(timezone=timezone) if timezone else AsyncIOScheduler()
        self._scheduler = scheduler
        self._timezone = timezone
        self._default_options = default_options or RunOptions()
        self._manual_limit = manual_limit
        self._lock = threading.RLock()
        self._state = MonitoringState()

    @property
    def jobs(self) -> dict[str, Job]:
        with self._lock:
            return dict(self._state.handles)

    def start(self, options: RunOptions | Mapping[str, Any] | None = None) -> dict[str, Any]:
        try:
            if isinstance(options, RunOptions):
                run_options = options
            else:
                run_options = RunOptions.from_mapping(options, defaults=self._default_options)
        except (TypeError, ValueError) as exc:
            LOGGER.error("Invalid monitoring options %s: %s", options, exc)
            return {"success": False, "message": str(exc), "is_running": self.status()["is_running"]}

        with self._lock:
            if self._state.active:
                LOGGER.info("Monitoring system is already running")
                current = self._state.options or run_options
                return {"success": True, "is_running": True, "options": current.to_dict()}

            LOGGER.info("Starting scheduled monitoring system with options: %s", run_options.to_dict())
            handles: dict[str, Job] = {}
            try:
                if not self._scheduler.running:
                    self._scheduler.start()
                handles["hourly"] = self._add_job(
                    "hourly",
                    self._scheduled_check,
                    args=["hourly", run_options.hourly_limit, run_options.enable_notifications],
                )
                handles["daily"] = self._add_job(
                    "daily",
                    self._scheduled_check,
                    args=["daily", run_options.daily_limit, run_options.enable_notifications],
                )
                handles["weekly"] = self._add_job("weekly", self._weekly_summary)
            except Exception as exc:
                LOGGER.exception("Error starting monitoring system")
                self._remove_handles(handles)
                return {"success": False, "message": str(exc), "is_running": False}

            self._state = MonitoringState(active=True, handles=handles, options=run_options)

        LOGGER.info("Scheduled monitoring system started")
        return {"success": True, "is_running": True, "options": run_options.to_dict()}

    def stop(self) -> dict[str, Any]:
        with self._lock:
            if not self._state.active:
                LOGGER.info("Monitoring system is not running")
                return {"success": True, "is_running": False}
            try:
                self._remove_handles(self._state.handles)
            except Exception as exc:
                LOGGER.exception("Error stopping monitoring system")
                return {"success": False, "message": str(exc), "is_running": True}
            self._state = MonitoringState()

        LOGGER.info("Scheduled monitoring system stopped")
        return {"success": True, "is_running": False}

    def status(self) -> dict[str, bool]:
        with self._lock:
            return {"is_running": self._state.active}

    async def manual_check(
        self,
        limit: int | None = None,
        retry: bool = True,
        notify_on_failure: bool = True,
    ) -> RunSummary:
        limit = self._manual_limit if limit is None else limit
        if limit <= 0:
            LOGGER.error("Rejected manual price check with limit=%s", limit)
            return RunSummary.failed("limit must be a positive integer")
        LOGGER.info(
            "Running manual price check for up to %d items (retry: %s, notify: %s)",
            limit,
            retry,
            notify_on_failure,
        )
        return await self._executor.run(limit, retry, notify_on_failure)

    async def send_weekly_summary(self) -> SummaryReport:
        """Dispatch the weekly summary now, outside the Sunday schedule."""

        return await self._dispatcher.dispatch()

    def shutdown(self) -> None:
        """Stop the triggers and the underlying APScheduler instance."""

        self.stop()
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)

    def _add_job(self, name: str, func, *, args: list[Any] | None = None) -> Job:
        return self._scheduler.add_job(
            func,
            trigger=crontab_trigger(SCHEDULES[name], self._timezone),
            args=args or [],
            id=f"pricewatch-{name}",
            name=f"{name} price monitoring",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=MISFIRE_GRACE_SECONDS,
            replace_existing=True,
        )

    @staticmethod
    def _remove_handles(handles: Mapping[str, Job]) -> None:
        for name, job in handles.items():
            try:
                job.remove()
            except JobLookupError:
                LOGGER.warning("Trigger %s was already removed", name)

    async def _scheduled_check(self, label: str, limit: int, notify_on_failure: bool) -> None:
        LOGGER.info("Running %s price check", label)
        try:
            summary = await self._executor.run(limit, retry=True, notify_on_failure=notify_on_failure)
        except Exception:
            LOGGER.exception("Scheduled %s price check failed", label)
            return
        LOGGER.info(
            "%s price check finished | checked=%d changes=%d failures=%d duration_ms=%d",
            label,
            summary.candidates_checked,
            summary.changes,
            summary.failures,
            summary.duration_ms,
        )

    async def _weekly_summary(self) -> None:
        LOGGER.info("Sending weekly summary notifications")
        try:
            await self.send_weekly_summary()
        except Exception:
            LOGGER.exception("Weekly summary dispatch failed")
