"""
Synchronization Controller
==========================

Owns the lifecycle of sync sessions:

    IDLE -> SAMPLING -> COMPLETING -> IDLE     (round finished in time)
                     -> TIMED_OUT  -> IDLE     (deadline fired first)

Each session races a sampling task against a deadline armed with
``loop.call_later``. Whichever finishes first decides the outcome; the
other side finds the session no longer SAMPLING and does nothing.

Only one session samples at a time unless ``force`` is set. Overlapping
forced sessions each apply their own policy when they finish, so the last
one to finish decides the target.
"""

import asyncio
import itertools
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

from .config import SyncConfig
from .listeners import ListenerRegistry, SyncListener
from .protocol import Offset
from .sampler import Sampler
from .stats import SyncStats
from .tracker import OffsetTracker

logger = logging.getLogger(__name__)


class SyncState(Enum):
    IDLE = "idle"
    SAMPLING = "sampling"
    COMPLETING = "completing"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


@dataclass
class SyncRequest:
    """Options for one synchronize() call.

    Unset fields are filled from the configuration by :meth:`resolved`.

    Attributes:
        callback:              Called once with (success, new_target, old_target).
        sample_count:          Probes to send; 0/False means do not sync.
        sync_timeout_duration: Session deadline in ms.
        force:                 Start even if another session is sampling.
        update:                Only replace the target with a more precise sample.
    """

    callback: Optional[SyncListener] = None
    sample_count: Optional[int] = None
    sync_timeout_duration: Optional[float] = None
    force: bool = False
    update: bool = False

    def resolved(self, config: SyncConfig) -> 'SyncRequest':
        return replace(
            self,
            sample_count=(config.synchronization_request_samples
                          if self.sample_count is None else self.sample_count),
            sync_timeout_duration=(config.synchronization_timeout
                                   if self.sync_timeout_duration is None
                                   else self.sync_timeout_duration),
            force=bool(self.force),
            update=bool(self.update),
        )


class SyncSession:
    """One synchronization attempt."""

    _ids = itertools.count(1)

    def __init__(self, request: SyncRequest):
        self.id = next(self._ids)
        self.request = request
        self.state = SyncState.SAMPLING
        self.iteration = 0
        self.best: Optional[Offset] = None
        self.deadline: Optional[asyncio.TimerHandle] = None
        self.task: Optional[asyncio.Task] = None

    def __repr__(self) -> str:
        return f"SyncSession(id={self.id}, state={self.state.value}, iteration={self.iteration})"


class SyncController:
    """Starts sync sessions and applies their results to the tracker.

    Args:
        tracker:   Offset state updated on completion.
        sampler:   Runs the probe rounds.
        listeners: Fanned out to when a session ends.
        config:    Supplies default sample count and timeout.
        stats:     Optional probe/session counters.
    """

    def __init__(
        self,
        tracker: OffsetTracker,
        sampler: Sampler,
        listeners: ListenerRegistry,
        config: SyncConfig,
        stats: Optional[SyncStats] = None,
    ):
        self._tracker = tracker
        self._sampler = sampler
        self._listeners = listeners
        self._config = config
        self._stats = stats
        self._active: set[SyncSession] = set()

    # ---- Properties ----------------------------------------------------------

    @property
    def synchronizing(self) -> bool:
        return bool(self._active)

    @property
    def state(self) -> SyncState:
        return SyncState.SAMPLING if self._active else SyncState.IDLE

    @property
    def sessions(self) -> list[SyncSession]:
        """Sessions currently sampling, oldest first."""
        return sorted(self._active, key=lambda s: s.id)

    # ---- Session lifecycle ---------------------------------------------------

    def synchronize(self, request: Optional[SyncRequest] = None, **options) -> bool:
        """Start a sync session on the running event loop.

        Accepts either a SyncRequest or its fields as keyword arguments.

        Returns:
            True if a session was started. The outcome is delivered to the
            listeners and ``callback`` later.
        """
        if request is None:
            request = SyncRequest(**options)

        if self._active and not request.force:
            logger.debug("Ignoring synchronize, already synchronizing")
            return False

        request = request.resolved(self._config)
        if not request.sample_count:
            logger.debug("Ignoring synchronize, no samples requested")
            return False

        loop = asyncio.get_running_loop()
        session = SyncSession(request)
        self._active.add(session)
        session.deadline = loop.call_later(
            request.sync_timeout_duration / 1000, self._time_out, session
        )
        session.task = loop.create_task(self._run(session))

        logger.debug(
            f"Session {session.id} started: samples={request.sample_count} "
            f"timeout={request.sync_timeout_duration}ms force={request.force} update={request.update}"
        )
        return True

    def cancel(self):
        """Drop every active session without notifying listeners."""
        for session in list(self._active):
            session.state = SyncState.CANCELLED
            self._release(session)
            if session.task:
                session.task.cancel()

    async def _run(self, session: SyncSession):
        def on_probe(iteration: int, offset: Optional[Offset]):
            if session.state is not SyncState.SAMPLING:
                return
            session.iteration = iteration
            if offset is not None and (session.best is None or offset.precision <= session.best.precision):
                session.best = offset
            if self._stats:
                self._stats.record_probe(None if offset is None else offset.precision)

        try:
            best = await self._sampler.run_round(session.request.sample_count, on_probe=on_probe)
        except asyncio.CancelledError:
            return
        except Exception as e:
            logger.error(f"Session {session.id} sampling error: {e}")
            best = session.best
        self._complete(session, best)

    def _complete(self, session: SyncSession, best: Optional[Offset]):
        """Apply a finished round, unless the session already ended."""
        if session.state is not SyncState.SAMPLING:
            logger.debug(f"Round finished but session {session.id} is {session.state.value}; ignoring")
            return
        session.state = SyncState.COMPLETING

        old_target = self._tracker.target
        if best is None:
            logger.warning(f"Session {session.id}: every probe failed")
            self._finish(session, False, old_target, old_target)
            return

        if not session.request.update or best.is_better_than(old_target):
            self._tracker.set_target(best)
        else:
            logger.info(
                f"Target not updated, best sample not any better "
                f"(best: {best.precision} vs current: {old_target.precision})"
            )
        self._finish(session, True, self._tracker.target, old_target)

    def _time_out(self, session: SyncSession):
        if session.state is not SyncState.SAMPLING:
            return
        session.state = SyncState.TIMED_OUT
        logger.warning(
            f"Session {session.id} timed out after "
            f"{session.request.sync_timeout_duration}ms ({session.iteration} probes done)"
        )
        if session.task:
            session.task.cancel()
        target = self._tracker.target
        self._finish(session, False, target, target)

    def _release(self, session: SyncSession):
        if session.deadline:
            session.deadline.cancel()
        self._active.discard(session)

    def _finish(self, session: SyncSession, success: bool, new_target: Offset, old_target: Offset):
        self._release(session)
        if self._stats:
            self._stats.record_session(success)
        self._listeners.notify(success, new_target, old_target, callback=session.request.callback)
