"""Result-or-error values for best-effort side operations."""

from __future__ import annotations

import logging
from collections.abc import Awaitable
from dataclasses import dataclass


@dataclass(slots=True)
class Outcome[T]:
    """Value of a best-effort step: either ``value`` or ``error`` is meaningful."""

    value: T | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def log_if_failed(self, logger: logging.Logger, message: str, *args: object) -> None:
        """Record an ignored failure at warning level."""
        if self.error is not None:
            logger.warning(message + ": %s", *args, self.error)


async def attempt[T](operation: Awaitable[T]) -> Outcome[T]:
    """Await ``operation`` and capture its failure as a value."""
    try:
        return Outcome(value=await operation)
    except Exception as exc:  # noqa: BLE001
        return Outcome(error=exc)
