"""
Explore protocol: click across the region on a randomized grid.

After scrolling to the top, each cycle detects markers (twice, merged),
stops once marker positions stop changing, otherwise clicks one random point
per grid cell row by row and scrolls down.
"""

import logging
import random
from collections import deque
from typing import Deque, Iterable, List, Optional, Tuple

from ..cv.detection import Detection, DetectionSet, merge_detections
from ..cv.region import Region
from .context import AutomationSettings, ProtocolContext, ProtocolResumed, ProtocolStopped
from .gestures import Gestures
from .outcome import Outcome

logger = logging.getLogger(__name__)

Point = Tuple[int, int]


def in_exclusion_band(x: int, y: int, region: Region, s: AutomationSettings) -> bool:
    """Points above/below the cutoffs or in the side columns are never clicked."""
    if y < s.explore_top_cutoff or y > s.explore_bottom_cutoff:
        return True
    if x <= region.x + s.explore_edge_margin:
        return True
    if x >= region.x + region.width - s.explore_edge_margin:
        return True
    return False


def near_marker(x: int, y: int, markers: Iterable[Detection], radius: float) -> bool:
    return any((x - m.x) ** 2 + (y - m.y) ** 2 <= radius ** 2 for m in markers)


def grid_targets(
    region: Region,
    settings: AutomationSettings,
    rng: random.Random,
    markers: Iterable[Detection] = (),
) -> List[List[Point]]:
    """
    One randomized target point per grid cell, grouped by row.

    The cell size is drawn once per call from the configured band. Points are
    offset downward, clamped to the region, then dropped if they fall in an
    exclusion band or within the marker radius of any given marker.

    Returns:
        Rows of surviving points (empty rows included, so row counts are stable)
    """
    s = settings
    markers = list(markers)
    cell_w = rng.randint(s.explore_cell_min, s.explore_cell_max)
    cell_h = rng.randint(s.explore_cell_min, s.explore_cell_max)
    right = region.x + region.width - 1
    bottom = region.y + region.height - 1

    rows: List[List[Point]] = []
    for y in range(region.y, region.y + region.height, cell_h):
        row: List[Point] = []
        for x in range(region.x, region.x + region.width, cell_w):
            tx = x + rng.randint(0, cell_w - 1)
            ty = y + rng.randint(0, cell_h - 1) + s.explore_target_y_offset
            tx = min(max(tx, region.x), right)
            ty = min(max(ty, region.y), bottom)
            if in_exclusion_band(tx, ty, region, s):
                continue
            if markers and near_marker(tx, ty, markers, s.explore_marker_radius):
                continue
            row.append((tx, ty))
        rows.append(row)
    return rows


class ExploreProtocol:
    name = "explore"

    def __init__(self, ctx: ProtocolContext, avoid_markers: bool = True, gestures: Optional[Gestures] = None):
        self.ctx = ctx
        self.avoid_markers = avoid_markers
        self.gestures = gestures or Gestures(ctx)
        self.clicks = 0

    async def run(self) -> Outcome:
        ctx = self.ctx
        ctx.status.info("Starting explore")
        try:
            while True:
                try:
                    return await self._explore()
                except ProtocolResumed:
                    logger.info("Explore restarting after pause")
                    continue
        except ProtocolStopped:
            ctx.status.info("Explore stopped")
            return Outcome.stopped()
        except Exception as e:
            logger.exception("Explore failed")
            ctx.status.error(f"Explore error: {e}")
            return Outcome.error(str(e))
        finally:
            ctx.release_hold()
            ctx.state.reset()

    async def _detect_union(self) -> DetectionSet:
        first = await self.ctx.detect_markers()
        second = await self.ctx.detect_markers()
        return merge_detections(first, second)

    async def _explore(self) -> Outcome:
        ctx = self.ctx
        s = ctx.settings

        ctx.status.info("Explore: scrolling to top")
        await self.gestures.scroll_to_top()
        await ctx.wait(s.between_swipes_s)
        await self.gestures.scroll_down(s.explore_initial_scroll)
        await ctx.checkpoint(restart_on_resume=False)

        history: Deque[List[Tuple[float, float]]] = deque(maxlen=2)
        for cycle in range(s.explore_max_cycles):
            await ctx.checkpoint(restart_on_resume=False)
            ctx.status.info(f"Explore cycle {cycle + 1}/{s.explore_max_cycles}")

            markers = await self._detect_union()
            history.append(markers.positions())
            if cycle >= s.explore_min_cycles_for_stability and len(history) == 2 and history[0] == history[1]:
                ctx.status.success("Explore: marker positions stable, stopping")
                return Outcome.no_target_found("stable")

            rows = grid_targets(ctx.region, s, ctx.rng, markers if self.avoid_markers else ())
            await self._click_rows(rows)

            ctx.status.info(f"Explore: scrolling down {s.explore_cycle_scroll}px")
            await self.gestures.scroll_down(s.explore_cycle_scroll)

        ctx.status.info(f"Explore: {s.explore_max_cycles} cycles done ({self.clicks} clicks)")
        return Outcome.max_reached()

    async def _click_rows(self, rows: List[List[Point]]) -> None:
        ctx = self.ctx
        s = ctx.settings
        for n, row in enumerate(rows, start=1):
            if row:
                self.clicks += ctx.pointer.click_batch(row)
                await ctx.sleep(s.explore_row_gap_s)
            if n % s.explore_rows_per_checkpoint == 0:
                await ctx.checkpoint(restart_on_resume=False)
