"""
Offset Tracker
==============

Holds the offset exposed to callers (``current``) and the offset the last
accepted sync round produced (``target``).

Offset convention:
    offset = server_time - local_time
    server_time = local_time + current

Small corrections are applied gradually by the Amortizer; corrections larger
than ``amortization_threshold`` are applied at once (a "jump").
"""

import logging
from typing import Callable, Optional

from .config import SyncConfig
from .protocol import Offset, current_time_ms

logger = logging.getLogger(__name__)


class OffsetTracker:
    """Live synchronized-clock state.

    Args:
        config:      Shared configuration (reads ``amortization_threshold``).
        bootstrap:   Initial target; ``current`` starts equal to it.
        local_clock: Source of local time in ms.
    """

    def __init__(
        self,
        config: SyncConfig,
        bootstrap: Optional[Offset] = None,
        local_clock: Callable[[], int] = current_time_ms,
    ):
        self._config = config
        self._local_clock = local_clock
        self.target: Offset = bootstrap if bootstrap is not None else Offset(0.0)
        self.current: float = self.target.value

    @property
    def distance(self) -> float:
        """Outstanding amortization (target - current), ms."""
        return self.target.value - self.current

    def set_target(self, offset: Offset):
        """Accept a new target, jumping immediately if it is too far away."""
        delta = offset.value - self.target.value
        self.target = offset
        logger.info(f"Set target to {offset} ({'+' if delta >= 0 else '-'} {abs(delta):g} ms)")

        gap = abs(offset.value - self.current)
        if gap > self._config.amortization_threshold:
            logger.info(f"Difference between target and offset too high ({gap:g} ms); skipping amortization")
            self.current = offset.value

    def now(self) -> int:
        """Estimated server time in ms since Unix epoch."""
        return int(self._local_clock() + self.current)

    def precision(self) -> Optional[float]:
        """Uncertainty of :meth:`now` in ms, or None if it is unknown.

        Grows with the distance still to be amortized.
        """
        if self.target.precision is None:
            return None
        return self.target.precision + abs(self.distance)
