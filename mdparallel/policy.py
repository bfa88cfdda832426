"""Retry policy for calls to the translation service."""

from __future__ import annotations

from dataclasses import dataclass

from .errors import RETRYABLE_ERRORS


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff.

    ``max_retries`` counts retries after the first attempt, so a batch is sent
    at most ``max_retries + 1`` times. The delay before retry ``n`` (1-based)
    is ``base_delay * 2 ** (n - 1)``, capped at ``max_delay``.
    """

    max_retries: int = 5
    base_delay: float = 1.0
    max_delay: float = 30.0

    def delay(self, retry: int) -> float:
        return min(self.max_delay, self.base_delay * (2 ** (retry - 1)))

    def should_retry(self, exc: BaseException, retry: int) -> bool:
        """Return whether retry number ``retry`` may be attempted after ``exc``."""

        return isinstance(exc, RETRYABLE_ERRORS) and retry <= self.max_retries
