"""Bounded retry loop for price checks that failed on the first pass."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Sequence

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from pricewatch.errors import CheckFailedError
from pricewatch.logging_config import get_logger
from pricewatch.monitoring.collaborators import Checker
from pricewatch.monitoring.models import (
    MAX_RETRY_ATTEMPTS,
    RETRY_DELAY,
    CandidateState,
    CheckCandidate,
    CheckOutcome,
    CheckStatus,
    PriceQuote,
)

LOGGER = get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]


@dataclass
class RetryProgress:
    """Retry state of one candidate; ``attempts`` includes the first pass."""

    candidate: CheckCandidate
    attempts: int = 1
    state: CandidateState = CandidateState.PENDING
    quote: PriceQuote | None = None
    last_error: str | None = None

    def to_outcome(self) -> CheckOutcome:
        if self.state is CandidateState.SUCCEEDED and self.quote is not None:
            return CheckOutcome(
                candidate_id=self.candidate.id,
                status=CheckStatus.SUCCEEDED,
                new_value=self.quote.value,
                attempts=self.attempts,
            )
        return CheckOutcome(
            candidate_id=self.candidate.id,
            status=CheckStatus.FAILED,
            error=self.last_error or "Failed to update price",
            attempts=self.attempts,
        )


class RetryCoordinator:
    """Re-check failed candidates with a fixed delay before every attempt.

    Each candidate gets at most ``max_attempts`` extra checks. Candidates are
    processed by a pool of ``concurrency`` workers; the default of one keeps
    them strictly sequential.
    """

    def __init__(
        self,
        checker: Checker,
        *,
        max_attempts: int = MAX_RETRY_ATTEMPTS,
        retry_delay: float = RETRY_DELAY,
        concurrency: int = 1,
        check_timeout: float | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if concurrency <= 0:
            raise ValueError("concurrency must be positive")
        self._checker = checker
        self._max_attempts = max(0, int(max_attempts))
        self._retry_delay = max(0.0, float(retry_delay))
        self._concurrency = concurrency
        self._check_timeout = check_timeout or None
        self._sleep = sleep

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    async def check_once(self, candidate: CheckCandidate, attempt: int) -> PriceQuote:
        """Run the checker for one candidate, raising when no price comes back."""

        call = asyncio.to_thread(self._checker.check_candidates, [candidate])
        if self._check_timeout:
            results = await asyncio.wait_for(call, timeout=self._check_timeout)
        else:
            results = await call
        quote = results[0] if results else None
        if quote is None:
            raise CheckFailedError("Checker returned no price", item_id=candidate.id, attempt=attempt)
        return quote

    async def retry(self, candidates: Sequence[CheckCandidate]) -> list[RetryProgress]:
        """Retry every candidate and return their progress in input order."""

        progress = [RetryProgress(candidate=candidate) for candidate in candidates]
        if not progress:
            return progress

        LOGGER.info("Retrying %d failed price checks...", len(progress))
        semaphore = asyncio.Semaphore(self._concurrency)

        async def _worker(entry: RetryProgress) -> RetryProgress:
            async with semaphore:
                return await self._drive(entry)

        return list(await asyncio.gather(*(_worker(entry) for entry in progress)))

    async def _drive(self, entry: RetryProgress) -> RetryProgress:
        candidate = entry.candidate
        if self._max_attempts == 0:
            entry.state = CandidateState.FAILED
            return entry

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_fixed(self._retry_delay),
            retry=retry_if_exception_type(Exception),
            sleep=self._sleep,
            reraise=True,
        )

        quote: PriceQuote | None = None
        # tenacity only waits between attempts; the first retry waits too
        await self._sleep(self._retry_delay)
        try:
            async for attempt in retrying:
                with attempt:
                    number = attempt.retry_state.attempt_number
                    entry.attempts += 1
                    LOGGER.info("Retry attempt %d for item %s", number, candidate.id)
                    try:
                        quote = await self.check_once(candidate, number)
                    except Exception as exc:
                        LOGGER.warning(
                            "Retry attempt %d failed for item %s: %s",
                            number,
                            candidate.id,
                            str(exc) or type(exc).__name__,
                        )
                        raise
        except Exception as exc:
            entry.state = CandidateState.FAILED
            entry.last_error = str(exc) or type(exc).__name__
            LOGGER.error("All retry attempts failed for item %s", candidate.id)
            return entry

        entry.state = CandidateState.SUCCEEDED
        entry.quote = quote
        return entry
