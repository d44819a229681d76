"""
Shared mechanics for the automation protocols.

ProtocolContext bundles the collaborators a protocol needs (pointer,
detection service, pause flag, status feed, clock) together with the
controller-owned ProtocolState, and implements the cooperative checkpoint:

- running flag cleared  -> release any held press, raise ProtocolStopped
- pause flag raised     -> release any held press, reset state, wait until the
                           flag clears, then raise ProtocolResumed so the
                           protocol restarts from its first phase
"""

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple

from ..cv.capture import CaptureError
from ..cv.detection import DetectionSet
from ..cv.region import Region
from ..cv.vision import Scan
from ..io.pointer import ActuationError, PointerActuator
from .retry import RetryPolicy
from .state import PauseFlag, Point, ProtocolState
from .status import Progress, StatusFeed

logger = logging.getLogger(__name__)


class ProtocolStopped(Exception):
    """The running flag was cleared; unwind and clean up."""


class ProtocolResumed(Exception):
    """A pause was observed and state was reset; restart from the first phase."""


class ProtocolInvariantError(Exception):
    """Protocol state is inconsistent (e.g. holding with no remembered target)."""


@dataclass
class AutomationSettings:
    """Timings (seconds) and fixed screen coordinates used by the protocols."""
    # Build protocol
    hold_s: float = 5.0
    hold_poll_s: float = 0.25
    seek_retry: RetryPolicy = RetryPolicy(max_attempts=10, backoff_s=2.0)
    build_timeout_s: Optional[float] = None
    research_toggle: Point = (403, 942)
    research_item: Point = (352, 456)
    research_clicks: int = 10
    rapid_click_interval_s: float = 0.1
    toggle_settle_s: float = 0.2
    rapid_settle_s: float = 0.05
    click_off: Point = (225, 160)

    # Level protocol
    level_build_timeout_s: Optional[float] = 600.0
    marker_click_offset: Point = (25, 25)
    marker_click_attempts: int = 3
    double_click_gap_s: float = 0.2
    marker_settle_s: float = 0.5
    max_marker_retries: int = 3  # MAX_RED_BLOB_RETRIES
    marker_match_tolerance: float = 10.0
    empty_detections_before_scroll_up: int = 3
    scroll_ups_before_reset: int = 5
    empty_detection_wait_s: float = 1.0
    level_loop_wait_s: float = 2.0
    confirm_exit: Point = (225, 620)
    start_level: Point = (225, 820)
    follow_up_clicks: Tuple[Point, ...] = ((225, 560), (225, 160))
    exit_settle_s: float = 0.5
    level_transition_s: float = 10.0
    follow_up_wait_s: float = 1.0
    read_level_name: bool = True

    # Scroll gestures
    swipe_distance: int = 300
    swipes_to_bottom: int = 10
    scroll_up_min: int = 80
    scroll_up_max: int = 100
    drag_settle_s: float = 0.05
    between_swipes_s: float = 0.1

    # Explore protocol
    explore_max_cycles: int = 7
    explore_min_cycles_for_stability: int = 4
    explore_cell_min: int = 27
    explore_cell_max: int = 31
    explore_target_y_offset: int = 7
    explore_top_cutoff: int = 450     # absolute y; points above are skipped
    explore_bottom_cutoff: int = 800  # absolute y; points below are skipped
    explore_edge_margin: int = 25
    explore_marker_radius: float = 150.0
    explore_initial_scroll: int = 150
    explore_cycle_scroll: int = 350
    explore_rows_per_checkpoint: int = 5
    explore_row_gap_s: float = 0.002

    pause_poll_s: float = 0.1


class ProtocolContext:
    """Everything one protocol run needs, passed by reference to nested protocols."""

    def __init__(
        self,
        pointer: PointerActuator,
        vision,
        pause: PauseFlag,
        status: StatusFeed,
        region_provider: Callable[[], Region],
        settings: Optional[AutomationSettings] = None,
        state: Optional[ProtocolState] = None,
        progress: Optional[Progress] = None,
        level_names=None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        is_running: Callable[[], bool] = lambda: True,
        rng: Optional[random.Random] = None,
    ):
        self.pointer = pointer
        self.vision = vision
        self.pause = pause
        self.status = status
        self.region_provider = region_provider
        self.settings = settings or AutomationSettings()
        self.state = state or ProtocolState()
        self.progress = progress or Progress()
        self.level_names = level_names
        self.clock = clock
        self.sleep = sleep
        self.is_running = is_running
        self.rng = rng or random.Random()

    @property
    def region(self) -> Region:
        return self.region_provider()

    # ---- cooperative checkpoints ----

    async def checkpoint(self, restart_on_resume: bool = True) -> None:
        if not self.is_running():
            raise ProtocolStopped()
        if not self.pause.paused:
            return

        self.release_hold()
        self.state.reset()
        self.status.warning(
            f"Paused: pointer moved (resuming after {self.pause.resume_after_s:.0f}s without movement)"
        )
        while self.pause.paused:
            if not self.is_running():
                raise ProtocolStopped()
            await self.sleep(self.settings.pause_poll_s)
        if not self.is_running():
            raise ProtocolStopped()
        self.status.info("Resuming automation")
        if restart_on_resume:
            raise ProtocolResumed()

    async def wait(self, seconds: float, restart_on_resume: bool = True) -> None:
        """Timed settle wait followed by a checkpoint."""
        await self.sleep(seconds)
        await self.checkpoint(restart_on_resume)

    # ---- press/hold bookkeeping ----

    async def press(self, target: Point) -> None:
        """Press and hold at target, remembering it so every exit path can release."""
        if self.state.holding:
            raise ProtocolInvariantError(f"Press at {target} while already holding {self.state.held_target}")
        if not self.pointer.press(*target):
            # Pause raised between the last checkpoint and the press
            await self.checkpoint()
            raise ProtocolInvariantError(f"Press at {target} suppressed without a pause")
        self.state.holding = True
        self.state.held_target = target
        self.state.hold_started = self.clock()

    def release_hold(self) -> None:
        """Release the remembered press, if any. Safe to call on every exit path."""
        if not self.state.holding:
            return
        target = self.state.held_target
        try:
            if target is None:
                logger.error("Holding with no remembered target; cannot release at a known point")
            else:
                self.pointer.release(*target)
        except ActuationError as e:
            self.status.error(f"Failed to release hold at {target}: {e}")
        finally:
            self.state.clear_hold()

    # ---- detection (capture failures read as "nothing detected") ----

    async def detect_panels(self) -> DetectionSet:
        try:
            return await self.vision.detect_panels()
        except CaptureError as e:
            self.status.warning(f"Capture failed, treating as no panels: {e}")
            return DetectionSet()

    async def detect_markers(self) -> DetectionSet:
        try:
            return await self.vision.detect_markers()
        except CaptureError as e:
            self.status.warning(f"Capture failed, treating as no markers: {e}")
            return DetectionSet()

    async def scan(self) -> Scan:
        try:
            return await self.vision.scan()
        except CaptureError as e:
            self.status.warning(f"Capture failed, treating as nothing detected: {e}")
            return Scan()

    # ---- pointer helpers ----

    async def click(self, target: Point) -> None:
        self.pointer.click(*target)

    async def rapid_clicks(self, target: Point, count: int, interval_s: float) -> None:
        for i in range(count):
            self.pointer.click(*target)
            if i < count - 1:
                await self.sleep(interval_s)
