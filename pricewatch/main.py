"""Command-line interface entry point for the pricewatch service."""

from __future__ import annotations

import argparse
import asyncio
from dataclasses import asdict
import json
from pathlib import Path
import signal
from typing import Any, Iterable, Mapping

from sqlalchemy.orm import Session, sessionmaker

from pricewatch.alerts.notifier import Notifier
from pricewatch.checker import HttpPriceChecker
from pricewatch.config import load_config
from pricewatch.errors import ConfigError
from pricewatch.logging_config import get_logger
from pricewatch.monitoring.changes import ChangeBuffer
from pricewatch.monitoring.executor import BatchRunExecutor
from pricewatch.monitoring.models import RunOptions
from pricewatch.monitoring.retry import RetryCoordinator
from pricewatch.monitoring.scheduler import MonitoringScheduler
from pricewatch.monitoring.summary import WeeklySummaryDispatcher
from pricewatch.storage.catalog import SqlCatalog
from pricewatch.storage.db import get_engine, init_db, make_session
from pricewatch.telemetry import EventTelemetry

LOGGER = get_logger(__name__)


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for the application."""

    parser = argparse.ArgumentParser(
        description="Run the pricewatch scheduled price monitoring service."
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to the YAML configuration (default: pricewatch/config.yml).",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run one manual price check and exit instead of starting the schedule.",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Maximum number of items for --once (default: monitoring.manual_limit).",
    )
    parser.add_argument(
        "--no-retry",
        action="store_true",
        help="Skip the retry phase for --once.",
    )
    parser.add_argument(
        "--no-notify",
        action="store_true",
        help="Do not alert admins about failed checks during --once.",
    )
    parser.add_argument(
        "--weekly-summary",
        action="store_true",
        help=(
            "Debugging aid: send the weekly summary for changes buffered by this process and exit. "
            "Changes are only buffered in memory, so on its own this sends nothing; "
            "combine with --once to summarise that run."
        ),
    )
    parser.add_argument(
        "--init-db",
        action="store_true",
        help="Create the database tables and exit.",
    )
    parser.add_argument(
        "--hourly-limit",
        type=int,
        default=None,
        help="Items per hourly run (overrides monitoring.hourly_limit).",
    )
    parser.add_argument(
        "--daily-limit",
        type=int,
        default=None,
        help="Items per daily run (overrides monitoring.daily_limit).",
    )
    parser.add_argument(
        "--no-notifications",
        action="store_true",
        help="Disable failure alerts for the scheduled hourly and daily runs.",
    )

    args = parser.parse_args(list(argv) if argv is not None else None)

    for name in ("limit", "hourly_limit", "daily_limit"):
        value = getattr(args, name)
        if value is not None and value <= 0:
            parser.error(f"--{name.replace('_', '-')} must be a positive integer")

    return args


def options_from_config(config: Mapping[str, Any], args: argparse.Namespace | None = None) -> RunOptions:
    """Scheduled run options from config, with CLI flags taking precedence."""

    monitoring = config["monitoring"]
    defaults = RunOptions(
        hourly_limit=int(monitoring["hourly_limit"]),
        daily_limit=int(monitoring["daily_limit"]),
        enable_notifications=bool(monitoring["enable_notifications"]),
    )
    if args is None:
        return defaults
    overrides: dict[str, Any] = {
        "hourly_limit": args.hourly_limit,
        "daily_limit": args.daily_limit,
    }
    if args.no_notifications:
        overrides["enable_notifications"] = False
    return RunOptions.from_mapping(overrides, defaults=defaults)


def build_monitor(
    config: Mapping[str, Any],
    session_factory: sessionmaker[Session],
    *,
    notifier: Notifier | None = None,
) -> MonitoringScheduler:
    """Wire the SQL catalog, HTTP checker and notifier into a scheduler."""

    monitoring = config["monitoring"]
    checker_conf = config.get("checker", {})
    telemetry_conf = config.get("telemetry", {})

    catalog = SqlCatalog(session_factory, due_after_hours=monitoring["due_after_hours"])
    endpoint = str(checker_conf.get("endpoint") or "")
    if not endpoint:
        LOGGER.warning("No price lookup endpoint configured; every check will fail until PRICE_CHECK_ENDPOINT is set")
    checker = HttpPriceChecker(
        endpoint,
        timeout=float(checker_conf.get("timeout") or 20.0),
    )
    events_path = telemetry_conf.get("events_path")
    telemetry = EventTelemetry(log_path=Path(events_path) if events_path else None)
    notifier = notifier or Notifier()
    buffer = ChangeBuffer()

    check_timeout = float(monitoring["check_timeout"]) or None
    retry_coordinator = RetryCoordinator(
        checker,
        max_attempts=int(monitoring["max_retry_attempts"]),
        retry_delay=float(monitoring["retry_delay_seconds"]),
        concurrency=int(monitoring["retry_concurrency"]),
        check_timeout=check_timeout,
    )
    executor = BatchRunExecutor(
        catalog=catalog,
        checker=checker,
        accounts=catalog,
        notifier=notifier,
        telemetry=telemetry,
        buffer=buffer,
        retry_coordinator=retry_coordinator,
        check_timeout=check_timeout,
        max_concurrent_runs=int(monitoring["max_concurrent_runs"]),
    )
    dispatcher = WeeklySummaryDispatcher(
        buffer=buffer,
        catalog=catalog,
        accounts=catalog,
        notifier=notifier,
    )
    return MonitoringScheduler(
        executor,
        dispatcher,
        default_options=options_from_config(config),
        manual_limit=int(monitoring["manual_limit"]),
        timezone=monitoring.get("timezone"),
    )


async def _async_main(argv: Iterable[str] | None = None) -> None:
    args = parse_args(argv)
    LOGGER.info(
        "Parsed arguments: once=%s limit=%s retry=%s notify=%s weekly_summary=%s init_db=%s",
        args.once,
        args.limit,
        not args.no_retry,
        not args.no_notify,
        args.weekly_summary,
        args.init_db,
    )

    config = load_config(args.config)
    engine = get_engine(config["database"]["url"])
    init_db(engine)
    if args.init_db:
        LOGGER.info("Database initialised at %s", config["database"]["url"])
        return

    session_factory = make_session(engine)
    monitor = build_monitor(config, session_factory)

    if args.once:
        summary = await monitor.manual_check(
            args.limit,
            retry=not args.no_retry,
            notify_on_failure=not args.no_notify,
        )
        print(json.dumps(summary.to_dict(), ensure_ascii=False, indent=2))
        if not args.weekly_summary:
            return

    if args.weekly_summary:
        if not args.once:
            LOGGER.warning("--weekly-summary without --once only sees changes buffered by this process")
        report = await monitor.send_weekly_summary()
        print(json.dumps(asdict(report), ensure_ascii=False, indent=2))
        return

    result = monitor.start(options_from_config(config, args))
    if not result["success"]:
        raise SystemExit(f"Failed to start monitoring: {result.get('message')}")

    stop_requested = asyncio.Event()
    try:
        asyncio.get_running_loop().add_signal_handler(signal.SIGTERM, stop_requested.set)
    except (NotImplementedError, RuntimeError):  # pragma: no cover - Windows event loops
        LOGGER.debug("SIGTERM handler unavailable on this platform")

    try:
        await stop_requested.wait()
        LOGGER.info("SIGTERM received; stopping scheduler")
    except (KeyboardInterrupt, SystemExit):
        LOGGER.info("Shutdown signal received; stopping scheduler")
    finally:
        monitor.shutdown()


def main() -> None:
    try:
        asyncio.run(_async_main())
    except ConfigError as exc:
        LOGGER.error("Invalid configuration: %s", exc)
        raise SystemExit(1) from exc
    except KeyboardInterrupt:  # pragma: no cover - interactive safety
        LOGGER.info("Interrupted by user")


if __name__ == "__main__":
    main()
