"""
Shared fixtures for automacro tests.

Protocol tests run against:
- FakeClock: monotonic clock that only advances when a protocol sleeps
- ScriptedVision: detection service replaying a fixed list of scans
- TimedMockPointer: MockPointer that also records when each call happened
"""

import asyncio
import random
from collections import deque
from typing import Callable, List, Optional

import pytest

from automacro.core.context import AutomationSettings, ProtocolContext
from automacro.core.state import PauseFlag, ProtocolState
from automacro.core.status import StatusFeed
from automacro.cv.detection import Detection, DetectionSet, PanelState
from automacro.cv.region import Region
from automacro.cv.vision import Scan
from automacro.io.pointer import PointerActuator
from automacro.io.pointer_mock import MockPointer

REGION = Region(0, 100, 450, 900)


class FakeClock:
    """Time only moves when someone sleeps; scheduled callbacks fire as it passes."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self._scheduled = []

    def __call__(self) -> float:
        return self.now

    def at(self, when: float, callback: Callable[[], None]) -> None:
        self._scheduled.append((when, callback))
        self._scheduled.sort(key=lambda item: item[0])

    async def sleep(self, seconds: float) -> None:
        self.now += seconds
        while self._scheduled and self._scheduled[0][0] <= self.now:
            _, callback = self._scheduled.pop(0)
            callback()
        await asyncio.sleep(0)


class ScriptedVision:
    """
    Replays scans in order.

    ``scan``/``detect_markers`` consume the scan queue; when it runs dry
    ``on_exhausted`` is called once and empty results are returned from then on.
    ``detect_panels`` consumes its own queue if one is given (falling back to
    empty sets), otherwise the scan queue.
    """

    def __init__(self, scans=(), panels=None, on_exhausted: Optional[Callable[[], None]] = None):
        self.scans = deque(scans)
        self.panels = deque(panels) if panels is not None else None
        self.on_exhausted = on_exhausted
        self.exhausted = False
        self.calls: List[str] = []

    def _next(self) -> Scan:
        if self.scans:
            return self.scans.popleft()
        if not self.exhausted:
            self.exhausted = True
            if self.on_exhausted:
                self.on_exhausted()
        return Scan()

    async def scan(self) -> Scan:
        self.calls.append("scan")
        return self._next()

    async def detect_markers(self) -> DetectionSet:
        self.calls.append("markers")
        return self._next().markers

    async def detect_panels(self) -> DetectionSet:
        self.calls.append("panels")
        if self.panels is None:
            return self._next().panels
        return self.panels.popleft() if self.panels else DetectionSet()


class TimedMockPointer(MockPointer):
    """MockPointer that stamps every call with the fake clock and the pause state."""

    def __init__(self, clock: FakeClock, pause: PauseFlag):
        super().__init__()
        self.clock = clock
        self.pause = pause
        self.timeline: List[tuple] = []

    def _record(self, *call) -> None:
        super()._record(*call)
        self.timeline.append((self.clock(), self.pause.paused, call))


def panel(x=100, y=300, state=PanelState.PRIMARY_ACTIVE) -> Detection:
    return Detection(id=1, x=x, y=y, width=160, height=60, kind="panel", state=state)


def marker(x=200, y=600, name=None) -> Detection:
    return Detection(id=1, x=x, y=y, width=29, height=29, kind="marker", name=name)


class Harness:
    """Everything a protocol test needs, wired around one fake clock."""

    def __init__(self):
        self.clock = FakeClock()
        self.pause = PauseFlag(resume_after_s=5.0, clock=self.clock)
        self.mock = TimedMockPointer(self.clock, self.pause)
        self.pointer = PointerActuator(self.mock, self.pause)
        self.status = StatusFeed(limit=5)
        self.messages: List[str] = []
        self.status.subscribe(lambda entry: self.messages.append(entry.message))
        self.running = True
        self.settings = AutomationSettings()
        self.state = ProtocolState()
        self.vision = ScriptedVision()

    def stop(self) -> None:
        self.running = False

    def script(self, scans=(), panels=None, stop_when_exhausted=True) -> ScriptedVision:
        self.vision = ScriptedVision(scans, panels, on_exhausted=self.stop if stop_when_exhausted else None)
        return self.vision

    def context(self, level_names=None) -> ProtocolContext:
        return ProtocolContext(
            pointer=self.pointer,
            vision=self.vision,
            pause=self.pause,
            status=self.status,
            region_provider=lambda: REGION,
            settings=self.settings,
            state=self.state,
            level_names=level_names,
            clock=self.clock,
            sleep=self.clock.sleep,
            is_running=lambda: self.running,
            rng=random.Random(7),
        )


@pytest.fixture
def harness():
    """Fixture providing a fresh protocol test harness."""
    return Harness()


@pytest.fixture
def region():
    return REGION


@pytest.fixture
def make_panel():
    return panel


@pytest.fixture
def make_marker():
    return marker
