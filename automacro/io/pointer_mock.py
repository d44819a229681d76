"""Mock pointer backend for dry runs and tests.

Records every pointer primitive instead of moving the real cursor.
"""

import logging
from typing import List, Optional, Tuple

logger = logging.getLogger(__name__)


class MockPointer:
    """
    Pointer backend that logs and records calls.

    Useful for:
    - Running protocols against a live capture without touching the cursor
    - Verifying click/hold sequences in tests

    ``calls`` holds tuples like ("press", x, y) or ("click", x, y, "left").
    ``physical`` can be set to simulate where a human left the cursor.
    """

    def __init__(self, start: Tuple[int, int] = (0, 0)):
        self.calls: List[tuple] = []
        self._position = start
        self.physical: Optional[Tuple[int, int]] = None
        logger.warning("MOCK pointer initialized: actions are logged, not performed")

    def _record(self, *call) -> None:
        self.calls.append(call)
        logger.debug(f"mock pointer: {call}")

    def move(self, x: int, y: int) -> None:
        self._position = (x, y)
        self._record("move", x, y)

    def click(self, x: int, y: int, button: str = "left") -> None:
        self._position = (x, y)
        self._record("click", x, y, button)

    def mouse_down(self, x: int, y: int) -> None:
        self._position = (x, y)
        self._record("press", x, y)

    def mouse_up(self, x: int, y: int) -> None:
        self._position = (x, y)
        self._record("release", x, y)

    def drag_to(self, x: int, y: int) -> None:
        self._position = (x, y)
        self._record("drag", x, y)

    def position(self) -> Tuple[int, int]:
        return self.physical if self.physical is not None else self._position

    # ---- helpers for inspection ----

    def actions(self, *kinds: str) -> List[tuple]:
        return [c for c in self.calls if not kinds or c[0] in kinds]

    def count(self, kind: str, x: Optional[int] = None, y: Optional[int] = None) -> int:
        return sum(
            1 for c in self.calls
            if c[0] == kind and (x is None or c[1] == x) and (y is None or c[2] == y)
        )

    def reset(self) -> None:
        self.calls.clear()
