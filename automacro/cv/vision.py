"""
Detection service: capture a frame and run the detectors on the configured region.

Protocols only talk to this service, never to the frame source directly.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from ..core.retry import RetryPolicy
from .capture import CaptureError, Frame, FrameSource
from .detection import DetectionSet
from .marker_detection import CombinedMarkerDetector
from .panel_detection import PanelDetector
from .region import Region

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Scan:
    """Panels and markers detected on the same frame."""
    panels: DetectionSet = field(default_factory=DetectionSet)
    markers: DetectionSet = field(default_factory=DetectionSet)

    def to_dict(self):
        return {"panels": self.panels.to_dict(), "markers": self.markers.to_dict()}


class DetectionService:
    """
    Captures frames and runs the panel and marker detectors.

    Capture failures are retried with a fixed backoff; once the retries are
    used up a CaptureError reaches the caller, which treats it as "nothing
    detected this round".
    """

    def __init__(
        self,
        source: FrameSource,
        region_provider: Callable[[], Region],
        panel_detector: Optional[PanelDetector] = None,
        marker_detector: Optional[CombinedMarkerDetector] = None,
        capture_retry: RetryPolicy = RetryPolicy(max_attempts=3, backoff_s=1.0),
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.source = source
        self.region_provider = region_provider
        self.panel_detector = panel_detector or PanelDetector()
        self.marker_detector = marker_detector or CombinedMarkerDetector()
        self.capture_retry = capture_retry
        self._sleep = sleep

    async def capture(self) -> Frame:
        async def _attempt(_n: int) -> Frame:
            return await self.source.capture_frame()

        return await self.capture_retry.run(_attempt, sleep=self._sleep, retry_on=(CaptureError,))

    async def _in_executor(self, fn, *args):
        """Detectors are CPU-bound; keep them off the event loop."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, fn, *args)

    async def detect_panels(self) -> DetectionSet:
        frame = await self.capture()
        return await self._in_executor(self.panel_detector.detect, frame.pixels, self.region_provider())

    async def detect_markers(self) -> DetectionSet:
        frame = await self.capture()
        return await self._in_executor(self.marker_detector.detect, frame.pixels, self.region_provider())

    def _scan_frame(self, frame: Frame, region: Region) -> Scan:
        return Scan(
            panels=self.panel_detector.detect(frame.pixels, region),
            markers=self.marker_detector.detect(frame.pixels, region),
        )

    async def scan(self) -> Scan:
        frame = await self.capture()
        return await self._in_executor(self._scan_frame, frame, self.region_provider())
