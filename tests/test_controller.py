"""Tests for sync session lifecycle, result policy and fan-out."""

import asyncio
from unittest.mock import Mock

import pytest

from server_date.config import SyncConfig
from server_date.controller import SyncController, SyncRequest, SyncState
from server_date.listeners import ListenerRegistry
from server_date.protocol import Offset, ProbeError, ProbeSample
from server_date.sampler import Sampler
from server_date.stats import SyncStats
from server_date.tracker import OffsetTracker

from .helpers import Completion, ScriptedTransport


def make_controller(transport, clock, config=None, bootstrap=Offset(0, 50)):
    config = config or SyncConfig(synchronization_timeout=1000)
    tracker = OffsetTracker(config, bootstrap, local_clock=clock)
    listeners = ListenerRegistry()
    stats = SyncStats()
    controller = SyncController(tracker, Sampler(transport), listeners, config, stats=stats)
    return controller, tracker, listeners, stats


class TestSyncRequest:

    def test_resolved_fills_defaults(self):
        config = SyncConfig(synchronization_request_samples=7, synchronization_timeout=123)
        request = SyncRequest(update=True).resolved(config)
        assert request.sample_count == 7
        assert request.sync_timeout_duration == 123
        assert request.update is True
        assert request.force is False

    def test_resolved_keeps_explicit_values(self):
        request = SyncRequest(sample_count=0, sync_timeout_duration=5).resolved(SyncConfig())
        assert request.sample_count == 0
        assert request.sync_timeout_duration == 5


class TestCompletion:

    @pytest.mark.asyncio
    async def test_best_sample_becomes_target(self, fake_clock):
        transport = ScriptedTransport(fake_clock, [(100, 40), (200, 15), (300, 60)])
        controller, tracker, _, stats = make_controller(transport, fake_clock)
        done = Completion()
        old = tracker.target

        assert controller.synchronize(sample_count=3, callback=done)
        assert controller.state is SyncState.SAMPLING
        success, new_target, old_target = await done.wait()

        assert success is True
        assert tracker.target == Offset(200, 15)
        assert tracker.target.precision == 15
        assert new_target is tracker.target
        assert old_target is old
        assert controller.state is SyncState.IDLE
        assert stats.probe_count == 3
        assert stats.session_ok == 1

    @pytest.mark.asyncio
    async def test_update_replaces_only_when_better(self, fake_clock):
        transport = ScriptedTransport(fake_clock, [(900, 60)])
        controller, tracker, _, _ = make_controller(transport, fake_clock, bootstrap=Offset(0, 50))
        before = tracker.target
        done = Completion()

        controller.synchronize(sample_count=1, update=True, callback=done)
        success, new_target, old_target = await done.wait()

        assert success is True
        assert tracker.target is before
        assert new_target is old_target is before

    @pytest.mark.asyncio
    async def test_update_accepts_better_sample(self, fake_clock):
        transport = ScriptedTransport(fake_clock, [(900, 10)])
        controller, tracker, _, _ = make_controller(transport, fake_clock, bootstrap=Offset(0, 50))
        done = Completion()

        controller.synchronize(sample_count=1, update=True, callback=done)
        await done.wait()

        assert tracker.target == Offset(900, 10)

    @pytest.mark.asyncio
    async def test_update_accepts_any_sample_over_unmeasured_bootstrap(self, fake_clock):
        transport = ScriptedTransport(fake_clock, [(900, 500)])
        controller, tracker, _, _ = make_controller(transport, fake_clock, bootstrap=Offset(0))
        done = Completion()

        controller.synchronize(sample_count=1, update=True, callback=done)
        await done.wait()

        assert tracker.target.precision == 500

    @pytest.mark.asyncio
    async def test_all_probes_failed_leaves_tracker(self, fake_clock):
        transport = ScriptedTransport(fake_clock, [ProbeError("down")] * 2)
        controller, tracker, _, stats = make_controller(transport, fake_clock)
        before = tracker.target
        done = Completion()

        controller.synchronize(sample_count=2, callback=done)
        success, new_target, old_target = await done.wait()

        assert success is False
        assert new_target is old_target is before
        assert stats.discarded_count == 2
        assert stats.session_failed == 1

    @pytest.mark.asyncio
    async def test_transport_error_does_not_fail_session(self, fake_clock):
        transport = ScriptedTransport(fake_clock, [(100, 10), OSError("reset"), (300, 20)])
        controller, tracker, _, stats = make_controller(transport, fake_clock)
        done = Completion()

        controller.synchronize(sample_count=3, callback=done)
        success, new_target, _ = await done.wait()

        assert success is True
        assert new_target == Offset(100, 10)
        assert transport.calls == 3
        assert stats.discarded_count == 1

    @pytest.mark.asyncio
    async def test_sampler_error_keeps_samples_seen_so_far(self, fake_clock):
        class AbortingSampler:
            async def run_round(self, sample_count, on_probe=None):
                on_probe(1, Offset(42, 7))
                raise RuntimeError("round aborted")

        config = SyncConfig(synchronization_timeout=1000)
        tracker = OffsetTracker(config, Offset(0, 50), local_clock=fake_clock)
        controller = SyncController(tracker, AbortingSampler(), ListenerRegistry(), config)
        done = Completion()

        controller.synchronize(sample_count=3, callback=done)
        success, new_target, _ = await done.wait()

        assert success is True
        assert new_target == Offset(42, 7)
        assert tracker.target == Offset(42, 7)


class TestStartConditions:

    @pytest.mark.asyncio
    async def test_zero_samples_does_not_start(self, fake_clock):
        transport = ScriptedTransport(fake_clock)
        controller, _, listeners, _ = make_controller(transport, fake_clock)
        listener = Mock()
        listeners.add(listener)

        assert controller.synchronize(sample_count=0) is False
        assert controller.synchronize(sample_count=False) is False
        await asyncio.sleep(0.01)

        assert transport.calls == 0
        listener.assert_not_called()

    @pytest.mark.asyncio
    async def test_busy_controller_refuses_unforced(self, fake_clock):
        transport = ScriptedTransport(fake_clock, hang=True)
        controller, _, _, _ = make_controller(transport, fake_clock)

        assert controller.synchronize()
        assert controller.synchronize() is False
        assert len(controller.sessions) == 1
        controller.cancel()
        await asyncio.sleep(0)

    @pytest.mark.asyncio
    async def test_force_starts_overlapping_session(self, fake_clock):
        transport = ScriptedTransport(fake_clock, hang=True)
        controller, _, _, _ = make_controller(transport, fake_clock)

        assert controller.synchronize()
        assert controller.synchronize(force=True)
        assert len(controller.sessions) == 2
        controller.cancel()
        await asyncio.sleep(0)
        assert controller.state is SyncState.IDLE

    @pytest.mark.asyncio
    async def test_last_forced_session_to_finish_wins(self, fake_clock):
        class DelayedTransport:
            """Pops (delay_s, offset, precision) on entry, answers after the delay."""

            def __init__(self, script):
                self.script = list(script)

            async def send_probe(self):
                delay, offset, precision = self.script.pop(0)
                await asyncio.sleep(delay)
                sent = fake_clock()
                received = sent + 2 * precision
                return ProbeSample(received - precision + offset, sent, received)

        transport = DelayedTransport([(0.05, 100, 5), (0.01, 200, 30)])
        controller, tracker, _, _ = make_controller(transport, fake_clock)
        done_a, done_b = Completion(), Completion()

        assert controller.synchronize(sample_count=1, callback=done_a)
        await asyncio.sleep(0)
        assert controller.synchronize(sample_count=1, force=True, callback=done_b)

        await done_b.wait()
        assert tracker.target == Offset(200, 30)
        assert controller.synchronizing

        await done_a.wait()
        assert tracker.target == Offset(100, 5)
        assert not controller.synchronizing

    @pytest.mark.asyncio
    async def test_accepts_request_object(self, fake_clock):
        transport = ScriptedTransport(fake_clock, [(5, 5)])
        controller, tracker, _, _ = make_controller(transport, fake_clock)
        done = Completion()

        assert controller.synchronize(SyncRequest(sample_count=1, callback=done))
        await done.wait()
        assert tracker.target == Offset(5, 5)


class TestTimeout:

    @pytest.mark.asyncio
    async def test_timeout_reports_failure_and_keeps_target(self, fake_clock):
        transport = ScriptedTransport(fake_clock, hang=True)
        controller, tracker, listeners, stats = make_controller(transport, fake_clock)
        before = tracker.target
        listener = Mock()
        listeners.add(listener)
        done = Completion()

        controller.synchronize(sample_count=3, sync_timeout_duration=20, callback=done)
        success, new_target, old_target = await done.wait()

        assert success is False
        assert new_target is old_target is before
        assert tracker.target is before
        listener.assert_called_once_with(False, before, before)
        assert controller.state is SyncState.IDLE
        assert stats.session_failed == 1

    @pytest.mark.asyncio
    async def test_late_result_is_ignored(self, fake_clock):
        class StubbornTransport:
            """Finishes its probe even when the session is cancelled."""

            async def send_probe(self):
                try:
                    await asyncio.sleep(0.05)
                except asyncio.CancelledError:
                    pass
                return ProbeSample(remote_time_ms=10_000, request_sent_ms=0, response_received_ms=2)

        controller, tracker, listeners, _ = make_controller(StubbornTransport(), fake_clock)
        before = tracker.target
        listener = Mock()
        listeners.add(listener)

        controller.synchronize(sample_count=1, sync_timeout_duration=10)
        await asyncio.sleep(0.1)

        assert tracker.target is before
        listener.assert_called_once_with(False, before, before)

    @pytest.mark.asyncio
    async def test_completion_cancels_deadline(self, fake_clock):
        transport = ScriptedTransport(fake_clock, [(1, 1)])
        controller, _, listeners, _ = make_controller(transport, fake_clock)
        listener = Mock()
        listeners.add(listener)
        done = Completion()

        controller.synchronize(sample_count=1, sync_timeout_duration=30, callback=done)
        await done.wait()
        await asyncio.sleep(0.06)

        listener.assert_called_once()
        assert listener.call_args[0][0] is True


class TestFanOut:

    @pytest.mark.asyncio
    async def test_off_without_argument_silences_everyone(self, fake_clock):
        transport = ScriptedTransport(fake_clock, [(1, 1)])
        controller, _, listeners, _ = make_controller(transport, fake_clock)
        first, second = Mock(), Mock()
        listeners.add(first)
        listeners.add(second)
        listeners.remove()
        done = Completion()

        controller.synchronize(sample_count=1, callback=done)
        await done.wait()

        first.assert_not_called()
        second.assert_not_called()

    @pytest.mark.asyncio
    async def test_throwing_listener_does_not_break_session(self, fake_clock):
        transport = ScriptedTransport(fake_clock, [(1, 1), (2, 1)])
        controller, tracker, listeners, _ = make_controller(transport, fake_clock)
        listeners.add(Mock(side_effect=ValueError("listener bug")))
        done = Completion()

        controller.synchronize(sample_count=1, callback=done)
        success, _, _ = await done.wait()

        assert success is True
        assert controller.state is SyncState.IDLE
        assert controller.synchronize(sample_count=1)
        controller.cancel()
        await asyncio.sleep(0)

    @pytest.mark.asyncio
    async def test_cancel_skips_fan_out(self, fake_clock):
        transport = ScriptedTransport(fake_clock, hang=True)
        controller, _, listeners, _ = make_controller(transport, fake_clock)
        listener = Mock()
        listeners.add(listener)

        controller.synchronize(sync_timeout_duration=20)
        controller.cancel()
        await asyncio.sleep(0)
        await asyncio.sleep(0.05)

        listener.assert_not_called()
