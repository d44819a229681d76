"""
Scroll gestures built from press / drag / release.

All drags start from the capture region's center. A drag's press is always
released on the way out, even when the surrounding protocol is unwinding.
"""

import logging
from typing import Tuple

from .context import ProtocolContext

logger = logging.getLogger(__name__)


class Gestures:
    def __init__(self, ctx: ProtocolContext):
        self.ctx = ctx

    def _anchor(self) -> Tuple[int, int]:
        cx, cy = self.ctx.region.center
        return int(cx), int(cy)

    def _clamp_y(self, y: int) -> int:
        region = self.ctx.region
        return max(region.y, min(region.y + region.height - 1, y))

    async def drag(self, start: Tuple[int, int], end: Tuple[int, int]) -> bool:
        """Press at start, drag to end, release. Returns False if suppressed by a pause."""
        pointer = self.ctx.pointer
        settle = self.ctx.settings.drag_settle_s
        pointer.move(*start)
        await self.ctx.sleep(settle)
        if not pointer.press(*start):
            return False
        try:
            await self.ctx.sleep(settle)
            pointer.drag(*end)
            await self.ctx.sleep(settle)
        finally:
            pointer.release(*end)
        return True

    async def scroll_down(self, distance: int) -> bool:
        """Reveal content further down by dragging upward."""
        x, y = self._anchor()
        logger.debug(f"scroll_down {distance}px")
        return await self.drag((x, y), (x, self._clamp_y(y - distance)))

    async def scroll_up(self) -> bool:
        """Small randomized upward scroll after clicking off any open popup."""
        s = self.ctx.settings
        self.ctx.pointer.click(*s.click_off)
        await self.ctx.sleep(s.between_swipes_s)
        distance = self.ctx.rng.randint(s.scroll_up_min, s.scroll_up_max)
        x, y = self._anchor()
        logger.debug(f"scroll_up {distance}px")
        return await self.drag((x, y), (x, self._clamp_y(y + distance)))

    async def _swipe_repeatedly(self, direction: int) -> None:
        s = self.ctx.settings
        x, y = self._anchor()
        half = s.swipe_distance // 2
        start = (x, self._clamp_y(y - direction * half))
        end = (x, self._clamp_y(y + direction * half))
        for i in range(s.swipes_to_bottom):
            await self.drag(start, end)
            if i < s.swipes_to_bottom - 1:
                await self.ctx.sleep(s.between_swipes_s)
        self.ctx.pointer.click(*s.click_off)

    async def scroll_to_bottom(self) -> None:
        logger.info("Scrolling to bottom")
        await self._swipe_repeatedly(direction=-1)

    async def scroll_to_top(self) -> None:
        logger.info("Scrolling to top")
        await self._swipe_repeatedly(direction=1)
