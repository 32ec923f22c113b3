"""
Sync Statistics
===============

Tracks probe and session outcomes over a sliding window.
"""

from collections import deque
from typing import Optional


class SyncStats:
    """Sliding-window probe precision and session counters.

    Args:
        window: Number of recent probe precisions to keep for averaging.
    """

    def __init__(self, window: int = 100):
        self._precisions: deque[float] = deque(maxlen=window)
        self.probe_count: int = 0
        self.discarded_count: int = 0
        self.session_ok: int = 0
        self.session_failed: int = 0
        self.best_precision: Optional[float] = None

    def record_probe(self, precision: Optional[float]):
        """Record one probe; ``None`` means it was discarded."""
        self.probe_count += 1
        if precision is None:
            self.discarded_count += 1
            return
        self._precisions.append(precision)
        if self.best_precision is None or precision < self.best_precision:
            self.best_precision = precision

    def record_session(self, success: bool):
        if success:
            self.session_ok += 1
        else:
            self.session_failed += 1

    @property
    def avg_precision_ms(self) -> float:
        """Average probe precision, or 0.0 if no probe succeeded yet."""
        d = self._precisions
        return sum(d) / len(d) if d else 0.0

    def __str__(self) -> str:
        best = f"{self.best_precision:.1f}ms" if self.best_precision is not None else "--"
        return (
            f"probes={self.probe_count} discarded={self.discarded_count} "
            f"sessions={self.session_ok}ok/{self.session_failed}failed "
            f"prec={self.avg_precision_ms:.1f}ms best={best}"
        )
