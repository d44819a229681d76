"""
Frame sources.

A frame source produces a full-display still image on demand. Frames are RGB
numpy arrays, immutable once produced.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

import cv2
import mss
import numpy as np

logger = logging.getLogger(__name__)


class CaptureError(Exception):
    """Raised when a frame cannot be captured."""
    pass


@dataclass(frozen=True)
class Frame:
    """A captured still image (RGB, row-major)."""
    pixels: np.ndarray
    captured_at: float = field(default_factory=time.time)

    def __post_init__(self):
        self.pixels.setflags(write=False)

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])


class FrameSource(Protocol):
    async def capture_frame(self) -> Frame:
        ...


class ScreenCapture:
    """
    Captures the primary display with mss.

    The grab itself is blocking, so it runs in the default executor to keep
    the event loop responsive.
    """

    def __init__(self, monitor_index: int = 1):
        self.monitor_index = monitor_index

    def _grab(self) -> np.ndarray:
        with mss.mss() as sct:
            monitor = sct.monitors[self.monitor_index]
            shot = sct.grab(monitor)
            bgra = np.asarray(shot)
        return cv2.cvtColor(bgra, cv2.COLOR_BGRA2RGB)

    async def capture_frame(self) -> Frame:
        loop = asyncio.get_running_loop()
        try:
            pixels = await loop.run_in_executor(None, self._grab)
        except Exception as e:
            logger.error(f"Screen capture failed: {e}")
            raise CaptureError(f"Screen capture failed: {e}") from e
        return Frame(pixels)


class ImageFileSource:
    """Serves a still image from disk as every frame (manual inspection)."""

    def __init__(self, path: Path):
        self.path = Path(path)

    async def capture_frame(self) -> Frame:
        bgr = cv2.imread(str(self.path), cv2.IMREAD_COLOR)
        if bgr is None:
            raise CaptureError(f"Could not read image: {self.path}")
        return Frame(cv2.cvtColor(bgr, cv2.COLOR_BGR2RGB))
