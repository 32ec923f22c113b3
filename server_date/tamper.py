"""
Clock Change Detection
======================

Notices when the local clock is set by hand (or the process was frozen)
by comparing the wall-clock time elapsed between two ticks with the tick
period, and asks for an unscheduled resync.
"""

import logging
from typing import Callable, Optional

from .config import SyncConfig
from .protocol import current_time_ms

logger = logging.getLogger(__name__)


class ClockChangeDetector:
    """Periodic local-clock sanity check.

    Args:
        config:      Shared configuration (``tick_interval``, ``clock_change_slack``).
        on_change:   Called when a jump is detected; expected to start a
                     non-forced sync.
        is_active:   Host hook; detection is suppressed while it returns False.
        local_clock: Source of local time in ms.
    """

    def __init__(
        self,
        config: SyncConfig,
        on_change: Callable[[], object],
        is_active: Callable[[], bool] = lambda: True,
        local_clock: Callable[[], int] = current_time_ms,
    ):
        self._config = config
        self._on_change = on_change
        self._is_active = is_active
        self._local_clock = local_clock
        self.last_observed: Optional[int] = None

    def tick(self) -> bool:
        """Observe the local clock once. Returns True if a resync was requested."""
        now = self._local_clock()
        fired = False

        if self.last_observed is not None and self._is_active():
            elapsed = now - self.last_observed
            deviation = abs(elapsed - self._config.tick_interval)
            if deviation > self._config.clock_change_slack:
                logger.info(f"Local clock changed unexpectedly ({elapsed} ms since last tick), resyncing")
                self._on_change()
                fired = True

        # Always advance so one large gap triggers at most once
        self.last_observed = now
        return fired
