"""One complete price-check cycle: select, check, retry, aggregate, escalate."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
import time
from typing import Sequence

from pricewatch.logging_config import get_logger
from pricewatch.monitoring.changes import ChangeBuffer
from pricewatch.monitoring.collaborators import AccountDirectory, Catalog, Checker, Notifier, Telemetry
from pricewatch.monitoring.models import (
    ChangeRecord,
    CheckCandidate,
    CheckOutcome,
    CheckStatus,
    NotificationType,
    PriceQuote,
    RunSummary,
)
from pricewatch.monitoring.retry import RetryCoordinator

LOGGER = get_logger(__name__)


async def notify_admins(
    accounts: AccountDirectory,
    notifier: Notifier,
    *,
    subject: str,
    message: str,
) -> int:
    """Send a system notification to every administrator; return how many were delivered."""

    try:
        admins = await asyncio.to_thread(accounts.find_admins)
    except Exception:
        LOGGER.exception("Error loading admin accounts for notification")
        return 0

    delivered = 0
    for admin in admins:
        try:
            sent = await asyncio.to_thread(
                notifier.notify,
                NotificationType.SYSTEM_NOTIFICATION,
                admin,
                {"subject": subject, "message": message},
            )
        except Exception:
            LOGGER.exception("Error sending admin notification to %s", admin.id)
            continue
        if sent:
            delivered += 1
        else:
            LOGGER.warning("Admin notification to %s was not delivered", admin.id)
    return delivered


class BatchRunExecutor:
    """Run price checks for a bounded batch of due items.

    A run never raises: candidate failures are retried and counted, and any
    other error turns into a failed :class:`RunSummary` after admins have
    been told. Concurrent calls to :meth:`run` wait for a free run slot
    (``max_concurrent_runs``) so their accounting never interleaves.
    """

    def __init__(
        self,
        *,
        catalog: Catalog,
        checker: Checker,
        accounts: AccountDirectory,
        notifier: Notifier,
        telemetry: Telemetry,
        buffer: ChangeBuffer,
        retry_coordinator: RetryCoordinator | None = None,
        check_timeout: float | None = None,
        max_concurrent_runs: int = 1,
    ) -> None:
        if max_concurrent_runs <= 0:
            raise ValueError("max_concurrent_runs must be positive")
        self._catalog = catalog
        self._checker = checker
        self._accounts = accounts
        self._notifier = notifier
        self._telemetry = telemetry
        self._buffer = buffer
        self._retry = retry_coordinator or RetryCoordinator(checker, check_timeout=check_timeout)
        self._check_timeout = check_timeout or None
        self._run_slots = asyncio.Semaphore(max_concurrent_runs)

    @property
    def buffer(self) -> ChangeBuffer:
        return self._buffer

    async def run(
        self,
        limit: int,
        retry: bool = True,
        notify_on_failure: bool = True,
    ) -> RunSummary:
        async with self._run_slots:
            return await self._run(limit, retry, notify_on_failure)

    async def _run(self, limit: int, retry: bool, notify_on_failure: bool) -> RunSummary:
        started = time.monotonic()
        try:
            LOGGER.info("Starting price check with limit: %d", limit)
            candidates = list(await asyncio.to_thread(self._catalog.fetch_due_candidates, limit))[:limit]
            if not candidates:
                LOGGER.info("No items due for price check")
                return RunSummary()

            LOGGER.info("Checking prices for %d items", len(candidates))
            results = await self._check_all(candidates)

            outcomes: list[CheckOutcome] = []
            changes: list[ChangeRecord] = []
            failed_positions: list[int] = []
            for index, candidate in enumerate(candidates):
                quote = results[index] if index < len(results) else None
                if quote is None:
                    outcomes.append(
                        CheckOutcome(
                            candidate_id=candidate.id,
                            status=CheckStatus.FAILED,
                            error="Failed to update price",
                        )
                    )
                    failed_positions.append(index)
                    continue
                outcomes.append(await self._accept(candidate, quote, changes))

            if retry and failed_positions:
                progress = await self._retry.retry([candidates[index] for index in failed_positions])
                for index, entry in zip(failed_positions, progress):
                    outcome = entry.to_outcome()
                    if entry.quote is not None and outcome.succeeded:
                        outcome = await self._accept(candidates[index], entry.quote, changes, attempts=entry.attempts)
                    outcomes[index] = outcome

            checked = sum(1 for outcome in outcomes if outcome.succeeded)
            failures = len(candidates) - checked
            duration_ms = int((time.monotonic() - started) * 1000)

            await self._track_result(
                success=failures == 0,
                response_time_ms=duration_ms,
                error_type=f"{failures} items failed to update" if failures else None,
            )
            LOGGER.info(
                "Price check completed: %d items checked successfully, %d failures, %d price changes detected",
                checked,
                failures,
                len(changes),
            )

            if notify_on_failure and failures > 0:
                await notify_admins(
                    self._accounts,
                    self._notifier,
                    subject="Price Check Failures Detected",
                    message=(
                        f"{failures} out of {len(candidates)} price checks failed. "
                        "Please check the system logs for more details."
                    ),
                )

            return RunSummary(
                candidates_checked=checked,
                changes=len(changes),
                failures=failures,
                duration_ms=duration_ms,
                change_details=changes,
            )
        except Exception as exc:
            LOGGER.exception("Error running price check")
            message = str(exc) or type(exc).__name__
            await self._track_result(success=False, response_time_ms=0, error_type=message)
            await notify_admins(
                self._accounts,
                self._notifier,
                subject="Critical Price Check Error",
                message=f"A critical error occurred during the scheduled price check: {message}",
            )
            return RunSummary.failed(message)

    async def _check_all(self, candidates: Sequence[CheckCandidate]) -> list[PriceQuote | None]:
        if not self._check_timeout:
            results = await asyncio.to_thread(self._checker.check_candidates, list(candidates))
            return list(results or [])
        return [await self._check_with_timeout(candidate) for candidate in candidates]

    async def _check_with_timeout(self, candidate: CheckCandidate) -> PriceQuote | None:
        """Check one candidate; a timed-out call is abandoned and reads as a failed check."""

        try:
            results = await asyncio.wait_for(
                asyncio.to_thread(self._checker.check_candidates, [candidate]),
                timeout=self._check_timeout,
            )
        except asyncio.TimeoutError:
            LOGGER.warning("Price check for item %s timed out after %ss", candidate.id, self._check_timeout)
            return None
        return results[0] if results else None

    async def _accept(
        self,
        candidate: CheckCandidate,
        quote: PriceQuote,
        changes: list[ChangeRecord],
        *,
        attempts: int = 1,
    ) -> CheckOutcome:
        """Persist an accepted quote, then buffer the change it carries."""

        stored = await asyncio.to_thread(self._catalog.record_quote, quote)
        if not stored:
            LOGGER.warning("Item %s disappeared before its price could be stored", candidate.id)
            return CheckOutcome(
                candidate_id=candidate.id,
                status=CheckStatus.FAILED,
                error="Item no longer exists",
                attempts=attempts,
            )
        record = await self._record_change(candidate, quote)
        if record is not None:
            changes.append(record)
        return CheckOutcome(
            candidate_id=candidate.id,
            status=CheckStatus.SUCCEEDED,
            new_value=quote.value,
            attempts=attempts,
        )

    async def _record_change(self, candidate: CheckCandidate, quote: PriceQuote) -> ChangeRecord | None:
        if quote.value == candidate.previous_value:
            return None

        record = ChangeRecord(
            item_id=candidate.id,
            owner_id=candidate.owner_id,
            old_value=candidate.previous_value,
            new_value=quote.value,
            timestamp=datetime.now(timezone.utc),
        )
        self._buffer.append(record)
        LOGGER.info(
            "Price change detected for %s: %s -> %s",
            candidate.id,
            candidate.previous_value,
            quote.value,
        )
        try:
            await asyncio.to_thread(
                self._telemetry.track_change,
                {
                    "item_id": record.item_id,
                    "old_value": record.old_value,
                    "new_value": record.new_value,
                    "timestamp": record.timestamp.isoformat(),
                },
            )
        except Exception as exc:
            LOGGER.error("Error tracking price change for %s: %s", candidate.id, exc)
        return record

    async def _track_result(self, *, success: bool, response_time_ms: int, error_type: str | None) -> None:
        try:
            await asyncio.to_thread(
                self._telemetry.track_result,
                {
                    "success": success,
                    "response_time_ms": response_time_ms,
                    "error_type": error_type,
                },
            )
        except Exception as exc:
            LOGGER.error("Error tracking scrape result: %s", exc)
