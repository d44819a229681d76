"""
Pointer actuation.

PointerActuator gates a backend behind the shared pause flag: while paused,
move/click/press/drag silently do nothing. Release always goes through so a
held press can be let go the moment a pause is observed.
"""

import logging
from typing import Iterable, Protocol, Tuple

from ..core.state import PauseFlag

logger = logging.getLogger(__name__)


class ActuationError(Exception):
    """Raised when the pointer backend fails."""
    pass


class PointerBackend(Protocol):
    def move(self, x: int, y: int) -> None: ...
    def click(self, x: int, y: int, button: str = "left") -> None: ...
    def mouse_down(self, x: int, y: int) -> None: ...
    def mouse_up(self, x: int, y: int) -> None: ...
    def drag_to(self, x: int, y: int) -> None: ...
    def position(self) -> Tuple[int, int]: ...


class PyAutoGuiBackend:
    """Real pointer backend built on pyautogui."""

    def __init__(self, drag_duration_s: float = 0.05):
        import pyautogui  # needs a display at import time

        self._gui = pyautogui
        self._gui.FAILSAFE = True
        self._gui.PAUSE = 0
        self.drag_duration_s = drag_duration_s

    def move(self, x: int, y: int) -> None:
        self._gui.moveTo(x, y)

    def click(self, x: int, y: int, button: str = "left") -> None:
        self._gui.click(x=x, y=y, button=button)

    def mouse_down(self, x: int, y: int) -> None:
        self._gui.mouseDown(x=x, y=y, button="left")

    def mouse_up(self, x: int, y: int) -> None:
        self._gui.mouseUp(x=x, y=y, button="left")

    def drag_to(self, x: int, y: int) -> None:
        # Button is already held; only dragTo posts drag events on macOS
        self._gui.dragTo(x, y, duration=self.drag_duration_s, button="left", mouseDownUp=False)

    def position(self) -> Tuple[int, int]:
        pos = self._gui.position()
        return (int(pos[0]), int(pos[1]))


class PointerActuator:
    """Pause-gated pointer primitives used by the protocols."""

    def __init__(self, backend: PointerBackend, pause: PauseFlag):
        self.backend = backend
        self.pause = pause

    def _gated(self, action: str, x: int, y: int) -> bool:
        if self.pause.paused:
            logger.debug(f"Paused: skipping {action} at ({x}, {y})")
            return False
        self.pause.note_commanded(x, y)
        return True

    def _call(self, action: str, fn, *args) -> None:
        try:
            fn(*args)
        except Exception as e:
            logger.error(f"Pointer {action} failed at {args[:2]}: {e}")
            raise ActuationError(f"{action} failed: {e}") from e

    def move(self, x: int, y: int) -> None:
        if self._gated("move", x, y):
            self._call("move", self.backend.move, x, y)

    def click(self, x: int, y: int, button: str = "left") -> None:
        if self._gated("click", x, y):
            self._call("click", self.backend.click, x, y, button)

    def click_batch(self, points: Iterable[Tuple[int, int]]) -> int:
        """Click a row of points; stops early if a pause is raised mid-row."""
        done = 0
        for x, y in points:
            if not self._gated("click", x, y):
                break
            self._call("click", self.backend.click, x, y, "left")
            done += 1
        return done

    def press(self, x: int, y: int) -> bool:
        """Press and hold; returns False when suppressed by the pause flag."""
        if not self._gated("press", x, y):
            return False
        self._call("press", self.backend.mouse_down, x, y)
        return True

    def release(self, x: int, y: int) -> None:
        """Release a held press, retried once on failure. Never gated."""
        self.pause.note_commanded(x, y)
        try:
            self.backend.mouse_up(x, y)
        except Exception as e:
            logger.warning(f"Release at ({x}, {y}) failed ({e}), retrying once")
            self._call("release", self.backend.mouse_up, x, y)

    def drag(self, to_x: int, to_y: int) -> None:
        if self._gated("drag", to_x, to_y):
            self._call("drag", self.backend.drag_to, to_x, to_y)

    def position(self) -> Tuple[int, int]:
        return self.backend.position()
