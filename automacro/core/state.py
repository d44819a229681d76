"""
Mutable automation state.

- PauseFlag: shared between the interference monitor (writer) and every
  actuation call site / protocol checkpoint (readers)
- ProtocolState: owned by one controller, scoped to one protocol run
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from ..cv.detection import Detection

logger = logging.getLogger(__name__)

Point = Tuple[int, int]


class PauseFlag:
    """
    Pause state raised by external pointer movement.

    The flag clears itself once ``resume_after_s`` has passed since the *last*
    detected movement; every new movement restarts the quiet period.
    """

    def __init__(self, resume_after_s: float = 5.0, clock: Callable[[], float] = time.monotonic):
        self.resume_after_s = resume_after_s
        self._clock = clock
        self._paused = False
        self.last_movement: Optional[float] = None
        self.pause_started: Optional[float] = None
        self.expected_position: Optional[Tuple[float, float]] = None
        self.pause_count = 0

    def trip(self, now: Optional[float] = None) -> None:
        """Record external movement and pause (or extend the pause)."""
        now = self._clock() if now is None else now
        if not self._paused:
            self._paused = True
            self.pause_started = now
            self.pause_count += 1
            logger.warning(f"Pointer movement detected, pausing (resume after {self.resume_after_s:.1f}s quiet)")
        self.last_movement = now

    def is_paused(self, now: Optional[float] = None) -> bool:
        if not self._paused:
            return False
        now = self._clock() if now is None else now
        if self.last_movement is not None and now - self.last_movement >= self.resume_after_s:
            self._paused = False
            logger.info(f"Pointer quiet for {now - self.last_movement:.1f}s, resuming")
            return False
        return True

    @property
    def paused(self) -> bool:
        return self.is_paused()

    def clear(self) -> None:
        self._paused = False
        self.pause_started = None

    def note_commanded(self, x: float, y: float) -> None:
        """The actuator is about to move the pointer here itself."""
        self.expected_position = (x, y)

    def to_dict(self) -> Dict[str, object]:
        return {
            "paused": self.paused,
            "last_movement": self.last_movement,
            "pause_started": self.pause_started,
            "pause_count": self.pause_count,
        }


@dataclass
class ProtocolState:
    """
    Controller-owned record for one protocol run.

    Reset to empty on every stop, pause and error. A held press must be
    released before the record is cleared.
    """
    holding: bool = False
    held_target: Optional[Point] = None
    hold_started: Optional[float] = None
    last_accepted_target: Optional[Detection] = None
    tried: List[Detection] = field(default_factory=list)
    retry_counts: Dict[Point, int] = field(default_factory=dict)
    empty_detections: int = 0
    scroll_ups: int = 0
    level_scrolled: bool = False
    hold_extensions: int = 0
    research_cycles: int = 0

    def reset(self) -> None:
        if self.holding:
            logger.error(f"Protocol state cleared while holding {self.held_target}")
        self.clear_hold()
        self.last_accepted_target = None
        self.clear_retries()
        self.empty_detections = 0
        self.scroll_ups = 0
        self.level_scrolled = False
        self.hold_extensions = 0
        self.research_cycles = 0

    def clear_hold(self) -> None:
        self.holding = False
        self.held_target = None
        self.hold_started = None

    def clear_retries(self) -> None:
        self.tried.clear()
        self.retry_counts.clear()

    def was_tried(self, marker: Detection, tolerance: float) -> bool:
        return any(t.near(marker, tolerance) for t in self.tried)

    @staticmethod
    def location_key(marker: Detection, bucket: int = 10) -> Point:
        """Approximate location used to count retries for one marker."""
        return (int(marker.x // bucket), int(marker.y // bucket))

    def to_dict(self) -> Dict[str, object]:
        return {
            "holding": self.holding,
            "held_target": self.held_target,
            "tried": len(self.tried),
            "retry_counts": {f"{k[0]},{k[1]}": v for k, v in self.retry_counts.items()},
            "empty_detections": self.empty_detections,
            "scroll_ups": self.scroll_ups,
            "level_scrolled": self.level_scrolled,
        }
