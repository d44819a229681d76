"""
Interference monitor.

Polls the physical pointer position on a fixed interval and raises the shared
PauseFlag when the pointer moved by more than the threshold, unless the new
position is the one the actuator itself just commanded. The monitor only
writes the flag; it never actuates.
"""

import asyncio
import logging
import math
import time
from typing import Awaitable, Callable, Optional, Tuple

from ..core.state import PauseFlag

log = logging.getLogger(__name__)


class InterferenceMonitor:
    def __init__(
        self,
        get_position: Callable[[], Tuple[int, int]],
        pause: PauseFlag,
        poll_interval_s: float = 0.05,
        threshold_px: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.get_position = get_position
        self.pause = pause
        self.poll_interval_s = poll_interval_s
        self.threshold_px = threshold_px
        self._clock = clock
        self._sleep = sleep
        self._last: Optional[Tuple[int, int]] = None
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None

    def _moved(self, a: Tuple[float, float], b: Tuple[float, float]) -> bool:
        return math.hypot(a[0] - b[0], a[1] - b[1]) > self.threshold_px

    def poll(self) -> bool:
        """Take one sample; returns True when external movement was detected."""
        try:
            pos = self.get_position()
        except Exception as e:
            log.warning(f"Could not read pointer position: {e}")
            return False

        last, self._last = self._last, pos
        if last is None or not self._moved(last, pos):
            return False

        expected = self.pause.expected_position
        if expected is not None and not self._moved(expected, pos):
            # Our own actuation put the pointer here
            return False

        self.pause.trip(self._clock())
        return True

    async def _run(self) -> None:
        log.info(f"Interference monitor started (every {self.poll_interval_s * 1000:.0f} ms, >{self.threshold_px}px)")
        while not self._stop_event.is_set():
            self.poll()
            await self._sleep(self.poll_interval_s)
        log.info("Interference monitor stopped")

    def start(self) -> None:
        if self._task and not self._task.done():
            return
        self._last = None
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if not self._task:
            return
        self._stop_event.set()
        try:
            await asyncio.wait_for(self._task, timeout=1.0)
        except asyncio.TimeoutError:
            self._task.cancel()
        self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()
