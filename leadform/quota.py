from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from .logging import get_logger
from .storage import LocalStorage

logger = get_logger(__name__)

DEFAULT_MAX_RUNS = 3
DEFAULT_STORAGE_KEY = "remainingRuns"


class QuotaLimitError(RuntimeError):
    """Raised when no free runs are left."""


def _parse_runs(raw: Optional[str]) -> Optional[int]:
    if raw is None:
        return None
    try:
        return int(str(raw).strip())
    except ValueError:
        return None


@dataclass
class QuotaTracker:
    """Remaining-runs counter persisted in client-local storage.

    The counter stays within ``[0, max_runs]``. Every mutation is written
    through to storage before the method returns. Nothing guards against a
    second process editing the same storage concurrently.
    """

    storage: LocalStorage
    max_runs: int = DEFAULT_MAX_RUNS
    key: str = DEFAULT_STORAGE_KEY
    remaining: int = field(init=False, default=0)

    def __post_init__(self) -> None:
        if self.max_runs < 0:
            raise ValueError("max_runs must be >= 0")
        self.load()

    def _clamp(self, value: int) -> int:
        return max(0, min(self.max_runs, value))

    def _persist(self) -> None:
        self.storage.set_item(self.key, str(self.remaining))

    def load(self) -> int:
        stored = _parse_runs(self.storage.get_item(self.key))
        if stored is None:
            self.remaining = self.max_runs
        else:
            self.remaining = self._clamp(stored)
            if self.remaining != stored:
                logger.debug("Clamped stored runs %d to %d", stored, self.remaining)
                self._persist()
        return self.remaining

    def is_exhausted(self) -> bool:
        return self.remaining <= 0

    def is_last_run(self) -> bool:
        return self.remaining == 1

    def ensure_available(self) -> None:
        if self.is_exhausted():
            raise QuotaLimitError(f"No runs left (limit {self.max_runs})")

    def consume(self) -> bool:
        if self.is_exhausted():
            return False
        self.remaining -= 1
        self._persist()
        logger.debug("Consumed one run, %d remaining", self.remaining)
        return True

    def restore(self) -> None:
        self.remaining = self._clamp(self.remaining + 1)
        self._persist()
        logger.debug("Restored one run, %d remaining", self.remaining)

    def reset(self) -> None:
        self.remaining = self.max_runs
        self._persist()
