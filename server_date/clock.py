"""
ServerDate
==========

Continuously corrected estimate of a time server's clock.

Wires the engine together and runs its periodic work on the event loop:
  - every ``tick_interval``: clock-change check, then one amortization step
  - every ``synchronization_interval_delay``: a scheduled sync session
"""

import asyncio
import logging
from typing import Callable, Optional

from .amortizer import Amortizer
from .config import SyncConfig
from .controller import SyncController, SyncRequest
from .listeners import ListenerRegistry, SyncListener
from .projection import DatetimeProjection
from .protocol import Offset, current_time_ms
from .sampler import ProbeTransport, Sampler
from .stats import SyncStats
from .tamper import ClockChangeDetector
from .tracker import OffsetTracker

logger = logging.getLogger(__name__)


class ServerDate(DatetimeProjection):
    """Synchronized clock backed by a probe transport.

    Handles:
      - Bootstrapping an estimate before any probe completes
      - Scheduled, manual and resume-triggered sync sessions
      - Gradual amortization of small corrections
      - Resyncing when the local clock is changed

    Args:
        transport:       Probe transport (e.g. HttpProbeTransport).
        config:          Initial configuration; defaults if omitted.
        server_now_ms:   Server time captured at load, for the bootstrap estimate.
        loaded_at_ms:    Local time at which ``server_now_ms`` was received.
        requested_at_ms: Local time at which it was requested, if known.
        is_active:       Host hook; clock-change checks are skipped while False.
        local_clock:     Source of local time in ms.
    """

    def __init__(
        self,
        transport: ProbeTransport,
        config: Optional[SyncConfig] = None,
        server_now_ms: Optional[int] = None,
        loaded_at_ms: Optional[int] = None,
        requested_at_ms: Optional[int] = None,
        is_active: Callable[[], bool] = lambda: True,
        local_clock: Callable[[], int] = current_time_ms,
    ):
        self.config = config if config is not None else SyncConfig()
        self._transport = transport

        if server_now_ms is not None and loaded_at_ms is None:
            loaded_at_ms = local_clock()
        bootstrap = Offset.bootstrap(server_now_ms, loaded_at_ms, requested_at_ms)

        self._tracker = OffsetTracker(self.config, bootstrap, local_clock=local_clock)
        self._listeners = ListenerRegistry()
        self.stats = SyncStats()
        self._controller = SyncController(
            self._tracker,
            Sampler(transport),
            self._listeners,
            self.config,
            stats=self.stats,
        )
        self._amortizer = Amortizer(self._tracker, self.config)
        self._detector = ClockChangeDetector(
            self.config,
            on_change=self.synchronize,
            is_active=is_active,
            local_clock=local_clock,
        )

        self._tick_task: Optional[asyncio.Task] = None
        self._resync_task: Optional[asyncio.Task] = None
        self._started = False

    # ---- Properties ----------------------------------------------------------

    @property
    def offset(self) -> float:
        """Offset currently applied to local time (ms)."""
        return self._tracker.current

    @property
    def target(self) -> Offset:
        """Offset the clock is converging toward."""
        return self._tracker.target

    @property
    def synchronizing(self) -> bool:
        return self._controller.synchronizing

    def now(self) -> int:
        """Estimated server time in ms since Unix epoch."""
        return self._tracker.now()

    def precision(self) -> Optional[float]:
        """Uncertainty of :meth:`now` in ms, None before the first measurement."""
        return self._tracker.precision()

    # ---- Lifecycle -----------------------------------------------------------

    async def start(self) -> bool:
        """Start periodic tasks and the first sync session.

        Returns:
            True if the first session started. False if already started.
        """
        if self._started:
            logger.debug("Already started")
            return False
        if hasattr(self._transport, "start"):
            await self._transport.start()
        self._started = True
        self._start_tick()
        self._start_resync()
        return self.synchronize()

    async def close(self):
        """Stop periodic tasks, drop active sessions and close the transport."""
        logger.info("Closing...")
        self._started = False
        self._controller.cancel()
        for task in (self._tick_task, self._resync_task):
            await self._stop(task)
        self._tick_task = None
        self._resync_task = None
        if hasattr(self._transport, "close"):
            await self._transport.close()

    async def __aenter__(self) -> 'ServerDate':
        await self.start()
        return self

    async def __aexit__(self, *exc):
        await self.close()

    # ---- Sync ----------------------------------------------------------------

    def synchronize(self, request: Optional[SyncRequest] = None, **options) -> bool:
        """Start a sync session. See SyncRequest for the options.

        Returns:
            True if a session started; the result reaches listeners later.
        """
        return self._controller.synchronize(request, **options)

    def on(self, callback: SyncListener):
        """Call ``callback(success, new_target, old_target)`` after every session."""
        self._listeners.add(callback)

    def off(self, callback: Optional[SyncListener] = None):
        """Remove ``callback``, or every listener if omitted."""
        self._listeners.remove(callback)

    def became_active(self) -> bool:
        """Host signal: the observing context is active again.

        Takes a quick sample and keeps it only if it beats the current target.
        """
        samples = self.config.samples_on_resume
        if not samples:
            return False
        return self.synchronize(sample_count=samples, update=True)

    def configure(self, **overrides) -> set:
        """Merge recognized config keys; unknown keys are ignored.

        Returns:
            Names of the keys that changed.
        """
        changed = self.config.update(overrides)
        if self._started:
            if "synchronization_interval_delay" in changed:
                logger.info(f"Set synchronization_interval_delay to {self.config.synchronization_interval_delay} ms")
                self._restart(self._resync_task, self._start_resync)
            if "tick_interval" in changed:
                self._restart(self._tick_task, self._start_tick)
        return changed

    # ---- Periodic tasks ------------------------------------------------------

    def _start_tick(self):
        self._tick_task = asyncio.create_task(self._tick_loop())

    def _start_resync(self):
        self._resync_task = asyncio.create_task(self._resync_loop())

    def _restart(self, task: Optional[asyncio.Task], starter: Callable[[], None]):
        if task:
            task.cancel()
        starter()

    async def _tick_loop(self):
        """Clock-change check and amortization, once per tick_interval."""
        try:
            while True:
                await asyncio.sleep(self.config.tick_interval / 1000)
                self._detector.tick()
                self._amortizer.tick()
        except asyncio.CancelledError:
            pass

    async def _resync_loop(self):
        """Scheduled sync, once per synchronization_interval_delay."""
        try:
            while True:
                await asyncio.sleep(self.config.synchronization_interval_delay / 1000)
                self.synchronize()
        except asyncio.CancelledError:
            pass

    @staticmethod
    async def _stop(task: Optional[asyncio.Task]):
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
