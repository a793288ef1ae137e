"""Custom exception types for pricewatch."""

from __future__ import annotations

from typing import Optional


class CheckFailedError(Exception):
    """Raised when a single price check produces no usable value."""

    def __init__(
        self,
        message: str = "Price check failed.",
        *,
        item_id: Optional[str] = None,
        attempt: Optional[int] = None,
    ) -> None:
        self.message = message
        self.item_id = item_id
        self.attempt = attempt
        super().__init__(message)

    def __str__(self) -> str:
        context_parts: list[str] = []
        if self.item_id:
            context_parts.append(f"item={self.item_id}")
        if self.attempt is not None:
            context_parts.append(f"attempt={self.attempt}")
        context = ", ".join(context_parts)
        return f"{self.message} ({context})" if context else self.message


class ConfigError(Exception):
    """Raised when the configuration file holds an unusable value."""

    def __init__(self, message: str, *, key: Optional[str] = None) -> None:
        self.message = message
        self.key = key
        super().__init__(message)

    def __str__(self) -> str:
        return f"{self.message} (key={self.key})" if self.key else self.message
