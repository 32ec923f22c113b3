"""
Amortizer
=========

Moves the exposed offset toward the target by at most ``amortization_rate``
per tick, so observers never see the clock leap by more than that.
"""

import logging

from .config import SyncConfig
from .tracker import OffsetTracker

logger = logging.getLogger(__name__)


class Amortizer:

    def __init__(self, tracker: OffsetTracker, config: SyncConfig):
        self._tracker = tracker
        self._config = config

    def tick(self) -> float:
        """Apply one bounded step. Returns the adjustment made (ms)."""
        gap = self._tracker.distance
        if gap == 0:
            return 0.0

        rate = self._config.amortization_rate
        delta = max(-rate, min(rate, gap))
        self._tracker.current += delta

        logger.debug(
            f"Offset adjusted by {delta:g} ms to {self._tracker.current:g} ms "
            f"(target: {self._tracker.target.value:g} ms)"
        )
        return delta
