"""Value objects shared by the monitoring orchestrator."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping

MAX_RETRY_ATTEMPTS = 3
RETRY_DELAY = 5.0  # seconds, fixed between attempts

DEFAULT_HOURLY_LIMIT = 50
DEFAULT_DAILY_LIMIT = 1000
DEFAULT_MANUAL_LIMIT = 10

_OPTION_NAMES = ("hourly_limit", "daily_limit", "enable_notifications")
_OPTION_ALIASES = {
    "hourlyLimit": "hourly_limit",
    "dailyLimit": "daily_limit",
    "enableNotifications": "enable_notifications",
}


class CheckStatus(str, Enum):
    """Final classification of one candidate within a run."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"


class CandidateState(str, Enum):
    """Progress of a candidate through the retry loop."""

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class NotificationType(str, Enum):
    SYSTEM_NOTIFICATION = "SYSTEM_NOTIFICATION"
    WEEKLY_SUMMARY = "WEEKLY_SUMMARY"


@dataclass(frozen=True)
class RunOptions:
    """Limits captured by the hourly and daily triggers."""

    hourly_limit: int = DEFAULT_HOURLY_LIMIT
    daily_limit: int = DEFAULT_DAILY_LIMIT
    enable_notifications: bool = True

    @classmethod
    def from_mapping(
        cls,
        values: Mapping[str, Any] | None,
        *,
        defaults: "RunOptions | None" = None,
    ) -> "RunOptions":
        """Build options from a mapping, falling back to *defaults* for missing keys.

        Keys may be snake_case or camelCase (``hourlyLimit``). ``None`` values
        mean "not given". Unknown keys, non-integer or non-positive limits and
        a non-boolean ``enable_notifications`` raise :class:`ValueError`.
        """

        if values is not None and not isinstance(values, Mapping):
            raise ValueError(f"Monitoring options must be a mapping, got {type(values).__name__}")
        base = defaults or cls()
        picked: dict[str, Any] = {}
        for key, value in (values or {}).items():
            name = _OPTION_ALIASES.get(key, key)
            if name not in _OPTION_NAMES:
                raise ValueError(f"Unknown monitoring option: {key!r}")
            if value is None:
                continue
            if name in picked:
                raise ValueError(f"Monitoring option given twice: {name}")
            picked[name] = value

        for name in ("hourly_limit", "daily_limit"):
            limit = picked.get(name, getattr(base, name))
            # bool is an int subclass
            if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
                raise ValueError(f"{name} must be a positive integer, got {limit!r}")
        enable = picked.get("enable_notifications", base.enable_notifications)
        if not isinstance(enable, bool):
            raise ValueError(f"enable_notifications must be true or false, got {enable!r}")

        return cls(
            hourly_limit=picked.get("hourly_limit", base.hourly_limit),
            daily_limit=picked.get("daily_limit", base.daily_limit),
            enable_notifications=enable,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Account:
    id: str
    email: str
    name: str | None = None
    is_admin: bool = False


@dataclass(frozen=True)
class CheckCandidate:
    """A tracked item selected as due for a fresh price check."""

    id: str
    owner_id: str
    previous_value: float | None
    currency: str = "USD"
    source: str = ""


@dataclass(frozen=True)
class PriceQuote:
    """Current price reported by the checker for one item."""

    item_id: str
    value: float
    currency: str = "USD"


@dataclass
class CheckOutcome:
    candidate_id: str
    status: CheckStatus
    new_value: float | None = None
    error: str | None = None
    attempts: int = 1

    @property
    def succeeded(self) -> bool:
        return self.status is CheckStatus.SUCCEEDED


@dataclass(frozen=True)
class ChangeRecord:
    """One detected price change, kept until the weekly summary drains it."""

    item_id: str
    owner_id: str
    old_value: float | None
    new_value: float
    timestamp: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_id": self.item_id,
            "owner_id": self.owner_id,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class RunSummary:
    candidates_checked: int = 0
    changes: int = 0
    failures: int = 0
    duration_ms: int = 0
    change_details: list[ChangeRecord] = field(default_factory=list)
    error_message: str | None = None

    @classmethod
    def failed(cls, message: str) -> "RunSummary":
        """Summary returned when the run itself could not complete."""

        return cls(failures=1, error_message=message)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "candidates_checked": self.candidates_checked,
            "changes": self.changes,
            "failures": self.failures,
            "duration_ms": self.duration_ms,
            "change_details": [record.to_dict() for record in self.change_details],
        }
        if self.error_message is not None:
            payload["error_message"] = self.error_message
        return payload
