"""Weekly per-owner summary of buffered price changes."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

from pricewatch.logging_config import get_logger
from pricewatch.monitoring.changes import ChangeBuffer
from pricewatch.monitoring.collaborators import AccountDirectory, Catalog, Notifier
from pricewatch.monitoring.executor import notify_admins
from pricewatch.monitoring.models import ChangeRecord, NotificationType

LOGGER = get_logger(__name__)


@dataclass
class SummaryReport:
    records: int = 0
    recipients: list[str] = field(default_factory=list)
    failed_recipients: list[str] = field(default_factory=list)
    error_message: str | None = None


class WeeklySummaryDispatcher:
    """Send each owner one summary of the changes to items they own.

    The buffer is drained before anything is sent. Records for an owner whose
    notification fails are dropped, so delivery is at most once.
    """

    def __init__(
        self,
        *,
        buffer: ChangeBuffer,
        catalog: Catalog,
        accounts: AccountDirectory,
        notifier: Notifier,
    ) -> None:
        self._buffer = buffer
        self._catalog = catalog
        self._accounts = accounts
        self._notifier = notifier

    async def dispatch(self) -> SummaryReport:
        LOGGER.info("Preparing weekly summary notifications...")
        records = self._buffer.drain_all()
        report = SummaryReport(records=len(records))
        if not records:
            LOGGER.info("No price changes to report in weekly summary")
            return report

        try:
            await self._send_all(records, report)
        except Exception as exc:
            LOGGER.exception("Error sending weekly summary notifications")
            report.error_message = str(exc) or type(exc).__name__
            await notify_admins(
                self._accounts,
                self._notifier,
                subject="Weekly Summary Error",
                message=f"Failed to send weekly summary notifications: {report.error_message}",
            )
            return report

        LOGGER.info(
            "Weekly summary finished | records=%d recipients=%d failed=%d",
            report.records,
            len(report.recipients),
            len(report.failed_recipients),
        )
        return report

    async def _send_all(self, records: list[ChangeRecord], report: SummaryReport) -> None:
        accounts = await asyncio.to_thread(self._accounts.find_all_accounts)
        owned: dict[str, set[str]] = {}
        for account in accounts:
            owned[account.id] = set(await asyncio.to_thread(self._catalog.owned_item_ids, account.id))

        for account in accounts:
            item_ids = owned.get(account.id, set())
            changes = [record for record in records if record.item_id in item_ids]
            if not changes:
                continue

            unique_ids = list(dict.fromkeys(record.item_id for record in changes))
            try:
                items = await asyncio.to_thread(self._catalog.item_details, unique_ids)
                sent = await asyncio.to_thread(
                    self._notifier.notify,
                    NotificationType.WEEKLY_SUMMARY,
                    account,
                    {"items": items, "changes": [record.to_dict() for record in changes]},
                )
            except Exception:
                LOGGER.exception("Error sending weekly summary to account %s", account.id)
                report.failed_recipients.append(account.id)
                continue

            if sent:
                report.recipients.append(account.id)
                LOGGER.info(
                    "Sent weekly summary to account %s with %d price changes",
                    account.id,
                    len(changes),
                )
            else:
                report.failed_recipients.append(account.id)
                LOGGER.warning("Weekly summary to account %s was not delivered", account.id)
