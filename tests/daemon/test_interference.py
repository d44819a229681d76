"""
Tests for external-movement detection, the pause flag and pause-gated actuation.
"""

import asyncio

import pytest

from automacro.core.state import PauseFlag
from automacro.daemon.interference import InterferenceMonitor
from automacro.io.pointer import ActuationError, PointerActuator
from automacro.io.pointer_mock import MockPointer


class Positions:
    """Returns the queued positions in order, repeating the last one."""

    def __init__(self, *positions):
        self.positions = list(positions)

    def __call__(self):
        if len(self.positions) > 1:
            return self.positions.pop(0)
        return self.positions[0]


class TestPoll:

    def test_first_sample_is_baseline(self, harness):
        monitor = InterferenceMonitor(Positions((0, 0)), harness.pause, clock=harness.clock)
        assert monitor.poll() is False
        assert not harness.pause.paused

    def test_movement_within_threshold_ignored(self, harness):
        monitor = InterferenceMonitor(Positions((0, 0), (1, 0)), harness.pause, clock=harness.clock)
        monitor.poll()
        assert monitor.poll() is False
        assert not harness.pause.paused

    def test_external_movement_trips_pause(self, harness):
        monitor = InterferenceMonitor(Positions((0, 0), (50, 50)), harness.pause, clock=harness.clock)
        monitor.poll()
        assert monitor.poll() is True
        assert harness.pause.paused
        assert harness.pause.last_movement == 1000.0

    def test_commanded_movement_does_not_trip(self, harness):
        monitor = InterferenceMonitor(Positions((0, 0), (300, 300)), harness.pause, clock=harness.clock)
        monitor.poll()
        harness.pointer.click(300, 300)
        assert monitor.poll() is False
        assert not harness.pause.paused

    def test_position_read_failure(self, harness):
        def broken():
            raise OSError("no display")

        monitor = InterferenceMonitor(broken, harness.pause, clock=harness.clock)
        assert monitor.poll() is False


class TestPauseFlag:

    def test_clears_after_quiet_period(self):
        pause = PauseFlag(resume_after_s=5.0, clock=lambda: 0.0)
        pause.trip(100.0)
        assert pause.is_paused(104.9)
        assert not pause.is_paused(105.0)

    def test_new_movement_extends_pause(self):
        pause = PauseFlag(resume_after_s=5.0, clock=lambda: 0.0)
        pause.trip(100.0)
        pause.trip(103.0)
        assert pause.is_paused(107.0)
        assert not pause.is_paused(108.0)
        assert pause.pause_count == 1

    def test_clear(self):
        pause = PauseFlag(clock=lambda: 0.0)
        pause.trip(0.0)
        pause.clear()
        assert not pause.paused
        assert pause.to_dict()["pause_count"] == 1


class TestMonitorTask:

    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        samples = []

        def position():
            samples.append(1)
            return (10, 10)

        monitor = InterferenceMonitor(position, PauseFlag(), poll_interval_s=0.001)
        monitor.start()
        assert monitor.running
        await asyncio.sleep(0.02)
        await monitor.stop()

        assert not monitor.running
        assert samples

    @pytest.mark.asyncio
    async def test_stop_without_start(self):
        monitor = InterferenceMonitor(lambda: (0, 0), PauseFlag())
        await monitor.stop()
        assert not monitor.running


class TestPointerGating:

    def test_click_batch_stops_when_paused_mid_row(self, harness):
        class TrippingPointer(MockPointer):
            def click(self, x, y, button="left"):
                super().click(x, y, button)
                harness.pause.trip()

        backend = TrippingPointer()
        pointer = PointerActuator(backend, harness.pause)
        assert pointer.click_batch([(1, 1), (2, 2), (3, 3)]) == 1
        assert backend.count("click") == 1

    def test_release_retried_once(self, harness):
        class FlakyRelease(MockPointer):
            failures = 1

            def mouse_up(self, x, y):
                if self.failures:
                    self.failures -= 1
                    raise OSError("busy")
                super().mouse_up(x, y)

        backend = FlakyRelease()
        PointerActuator(backend, harness.pause).release(5, 5)
        assert backend.count("release", 5, 5) == 1

    def test_release_failing_twice_raises(self, harness):
        class BrokenRelease(MockPointer):
            def mouse_up(self, x, y):
                raise OSError("gone")

        with pytest.raises(ActuationError):
            PointerActuator(BrokenRelease(), harness.pause).release(5, 5)

    def test_backend_failure_wrapped(self, harness):
        class BrokenClick(MockPointer):
            def click(self, x, y, button="left"):
                raise OSError("gone")

        with pytest.raises(ActuationError):
            PointerActuator(BrokenClick(), harness.pause).click(1, 1)
