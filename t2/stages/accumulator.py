from __future__ import annotations

from typing import List

from t2.candidate import Candidate
from t2.utils import get_logger

logger = get_logger(__name__)


class BatchClosedError(RuntimeError):
    """A candidate was added to a gulp that has already closed."""


class BatchAccumulator:
    """Holds the single open gulp.

    Under the ``sentinel`` policy the gulp stays open until ``close()`` is
    called for a sentinel record. Under the ``count`` policy it closes by
    itself once ``gulp_size`` candidates are held.
    """

    def __init__(self, policy: str = "sentinel", gulp_size: int = 1024):
        if policy not in ("sentinel", "count"):
            raise ValueError(f"Unknown gulp policy: {policy}")
        if policy == "count" and gulp_size < 1:
            raise ValueError("gulp_size must be >= 1 for the count policy")
        self.policy = policy
        self.gulp_size = gulp_size
        self._cands: List[Candidate] = []
        self._closed = False

    def __len__(self) -> int:
        return len(self._cands)

    def add(self, cand: Candidate) -> None:
        if self._closed:
            raise BatchClosedError("gulp is closed; drain() it first")
        self._cands.append(cand)
        if self.policy == "count" and len(self._cands) >= self.gulp_size:
            self._closed = True

    def close(self) -> None:
        if self.policy != "sentinel":
            logger.debug("gulp.sentinel ignored under %s policy", self.policy)
            return
        self._closed = True

    def is_closed(self) -> bool:
        return self._closed

    def drain(self) -> List[Candidate]:
        batch = self._cands
        self._cands = []
        self._closed = False
        return batch
