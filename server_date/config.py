"""
Sync Configuration
==================

Process-wide tuning knobs for the sync engine. All durations in ms.
"""

import logging
from dataclasses import dataclass, fields
from typing import Any, Mapping

logger = logging.getLogger(__name__)


@dataclass
class SyncConfig:
    """Mutable configuration shared by every engine component.

    Components keep a reference to one instance, so changes made through
    :meth:`update` are seen on their next tick or session.
    """

    # Max adjustment applied to the exposed offset per amortization tick
    amortization_rate: float = 25
    # Above this distance, skip amortization and jump straight to the target
    amortization_threshold: float = 2000
    # Delay between scheduled resyncs
    synchronization_interval_delay: float = 60 * 60 * 1000
    # Probes per session; the lowest-latency one wins
    synchronization_request_samples: int = 10
    # Session deadline
    synchronization_timeout: float = 10 * 1000
    # Probes for the resync after the host becomes active again (0 disables)
    samples_on_resume: int = 1
    # Period of the amortization and clock-change ticks
    tick_interval: float = 1000
    # Tolerated deviation of one tick from tick_interval before resyncing
    clock_change_slack: float = 2000

    @classmethod
    def keys(cls) -> frozenset:
        return frozenset(f.name for f in fields(cls))

    def update(self, overrides: Mapping[str, Any]) -> set:
        """Merge recognized keys from ``overrides``; unknown keys are ignored.

        Returns:
            Names of the keys whose value actually changed.
        """
        known = self.keys()
        changed = set()
        for key, value in overrides.items():
            if key not in known:
                logger.debug(f"Ignoring unknown config key: {key}")
                continue
            if getattr(self, key) != value:
                setattr(self, key, value)
                changed.add(key)
        if changed:
            logger.debug(f"Config updated: {', '.join(sorted(changed))}")
        return changed
