"""Shared state for a single translation run.

Everything that is visible to more than one worker thread lives here: the
glossary cache, the character budget, collected warnings, and the cancel and
abort flags.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .errors import ErrorRecord, QuotaExceededError

logger = logging.getLogger(__name__)

GlossaryKey = Tuple[str, str, str]


class UsageBudget:
    """Characters that may still be sent during this run.

    ``limit=None`` means the remaining quota is unknown and nothing is checked
    locally; the service will report exhaustion itself.
    """

    def __init__(self, limit: Optional[int] = None) -> None:
        self.limit = limit
        self.consumed = 0
        self._lock = threading.Lock()

    @property
    def remaining(self) -> Optional[int]:
        if self.limit is None:
            return None
        return max(0, self.limit - self.consumed)

    def reserve(self, characters: int) -> None:
        with self._lock:
            if self.limit is not None and self.consumed + characters > self.limit:
                raise QuotaExceededError(
                    f"Character quota exhausted: {characters} requested, "
                    f"{self.limit - self.consumed} remaining."
                )
            self.consumed += characters


@dataclass
class RunContext:
    """Run-scoped state passed to the resolver, translator and controller."""

    budget: UsageBudget = field(default_factory=UsageBudget)
    glossaries: Dict[GlossaryKey, Optional[str]] = field(default_factory=dict)
    glossary_lock: threading.Lock = field(default_factory=threading.Lock)
    _warnings: List[ErrorRecord] = field(default_factory=list)
    _warnings_lock: threading.Lock = field(default_factory=threading.Lock)
    _cancel: threading.Event = field(default_factory=threading.Event)
    _abort_lock: threading.Lock = field(default_factory=threading.Lock)
    abort_reason: Optional[ErrorRecord] = None

    def warn(self, record: ErrorRecord) -> None:
        logger.warning(record.describe())
        with self._warnings_lock:
            self._warnings.append(record)

    @property
    def warnings(self) -> List[ErrorRecord]:
        with self._warnings_lock:
            return list(self._warnings)

    def cancel(self) -> None:
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def abort(self, record: ErrorRecord) -> bool:
        """Record the first fatal error and stop further work.

        Returns ``True`` when this call set the abort reason.
        """

        with self._abort_lock:
            first = self.abort_reason is None
            if first:
                self.abort_reason = record
        self._cancel.set()
        return first

    @property
    def aborted(self) -> bool:
        return self.abort_reason is not None
