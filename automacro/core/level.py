"""
Level protocol: the outer loop that drives a whole level.

Each iteration scans one frame and branches:

1. exit marker present       -> exit-and-restart sequence (level complete)
2. build-capable panel found -> nested Build protocol
3. otherwise                 -> pick a marker, click near it until a panel opens

Markers that keep failing are retried a bounded number of times per
approximate location before a full scroll-to-bottom reset.
"""

import logging
from typing import List, Optional

from ..cv.detection import BUILD_CAPABLE_STATES, Detection, DetectionSet
from ..cv.marker_detection import EXIT_MARKER
from ..io.ocr import UNKNOWN_LEVEL
from .build import BuildProtocol
from .context import (
    ProtocolContext,
    ProtocolInvariantError,
    ProtocolResumed,
    ProtocolStopped,
)
from .gestures import Gestures
from .outcome import Outcome, OutcomeKind
from .status import format_duration

logger = logging.getLogger(__name__)


class LevelProtocol:
    name = "level"

    def __init__(self, ctx: ProtocolContext, gestures: Optional[Gestures] = None):
        self.ctx = ctx
        self.gestures = gestures or Gestures(ctx)

    async def run(self) -> Outcome:
        ctx = self.ctx
        try:
            name = await self._read_level_name()
            ctx.progress.stats.start_level(ctx.clock(), name)
            ctx.status.info(f"Level automation started ({name})")
            while True:
                try:
                    outcome = await self._loop()
                except ProtocolResumed:
                    logger.info("Level restarting after pause")
                    continue
                return outcome
        except ProtocolStopped:
            ctx.status.info("Level automation stopped")
            return Outcome.stopped()
        except ProtocolInvariantError as e:
            ctx.status.error(f"Level error: {e}")
            return Outcome.error(str(e))
        except Exception as e:
            logger.exception("Level protocol failed")
            ctx.status.error(f"Level automation failed: {e}")
            return Outcome.error(str(e))
        finally:
            ctx.release_hold()
            ctx.state.reset()

    async def _loop(self) -> Outcome:
        while True:
            outcome = await self.iterate()
            if outcome is not None and outcome.halts:
                return outcome
            await self.ctx.wait(self.ctx.settings.level_loop_wait_s)

    async def iterate(self) -> Optional[Outcome]:
        """One pass of the level loop. Returns the outcome of whatever branch ran."""
        ctx = self.ctx
        scan = await ctx.scan()
        await ctx.checkpoint()

        exit_marker = scan.markers.named(EXIT_MARKER)
        if exit_marker is not None:
            return await self.exit_and_restart(exit_marker)

        if scan.panels.with_state(*BUILD_CAPABLE_STATES):
            outcome = await self._build()
            if outcome.kind == OutcomeKind.MAX_REACHED:
                await self._after_build_success()
            return outcome

        return await self._handle_markers(scan.markers)

    # ---- build ----

    async def _build(self) -> Outcome:
        ctx = self.ctx
        outcome = await BuildProtocol(ctx, ctx.settings.level_build_timeout_s).run()
        logger.info(f"Nested build finished: {outcome}")
        return outcome

    async def _after_build_success(self) -> None:
        state = self.ctx.state
        if not state.level_scrolled:
            await self.gestures.scroll_to_bottom()
            state.level_scrolled = True

    # ---- markers ----

    def choose_target(self, markers: List[Detection]) -> Detection:
        """Last accepted marker if still present, else the topmost (then rightmost) untried one."""
        state = self.ctx.state
        tolerance = self.ctx.settings.marker_match_tolerance

        last = state.last_accepted_target
        if last is not None:
            for marker in markers:
                if marker.near(last, tolerance):
                    return marker

        untried = [m for m in markers if not state.was_tried(m, tolerance)]
        if not untried:
            logger.info("All markers tried, clearing tried list")
            state.tried.clear()
            untried = markers
        return min(untried, key=lambda m: (m.y, -m.x))

    async def _handle_markers(self, detected: DetectionSet) -> Optional[Outcome]:
        ctx = self.ctx
        state = ctx.state

        markers = detected.unnamed()
        if not markers:
            await self._on_empty_detection()
            return None

        state.empty_detections = 0
        state.scroll_ups = 0
        target = self.choose_target(markers)
        return await self._try_marker(target)

    async def _on_empty_detection(self) -> None:
        ctx = self.ctx
        s = ctx.settings
        state = ctx.state

        state.empty_detections += 1
        logger.debug(f"No markers ({state.empty_detections}/{s.empty_detections_before_scroll_up})")
        if state.empty_detections >= s.empty_detections_before_scroll_up:
            state.empty_detections = 0
            if state.scroll_ups >= s.scroll_ups_before_reset:
                ctx.status.info(f"Nothing found after {state.scroll_ups} scroll-ups, scrolling to bottom")
                await self.gestures.scroll_to_bottom()
                state.scroll_ups = 0
                state.clear_retries()
            else:
                await self.gestures.scroll_up()
                state.scroll_ups += 1
        await ctx.wait(s.empty_detection_wait_s)

    async def _try_marker(self, marker: Detection) -> Optional[Outcome]:
        ctx = self.ctx
        s = ctx.settings
        state = ctx.state

        cx, cy = marker.center
        target = (cx + s.marker_click_offset[0], cy + s.marker_click_offset[1])
        ctx.status.info(f"Clicking marker at ({marker.x:.0f}, {marker.y:.0f})")

        for attempt in range(1, s.marker_click_attempts + 1):
            ctx.pointer.click(*target)
            if attempt == 1:
                await ctx.sleep(s.double_click_gap_s)
                ctx.pointer.click(*target)
            await ctx.wait(s.marker_settle_s)

            panels = await ctx.detect_panels()
            await ctx.checkpoint()
            if not panels.with_state(*BUILD_CAPABLE_STATES):
                logger.debug(f"No panel after click attempt {attempt}/{s.marker_click_attempts}")
                continue

            outcome = await self._build()
            if outcome.halts:
                return outcome
            if outcome.kind == OutcomeKind.MAX_REACHED:
                state.last_accepted_target = marker
                state.retry_counts.pop(state.location_key(marker), None)
                await self._after_build_success()
                return outcome

        self._record_failure(marker)
        if state.retry_counts.get(state.location_key(marker), 0) >= s.max_marker_retries:
            ctx.status.warning(
                f"Marker at ({marker.x:.0f}, {marker.y:.0f}) failed {s.max_marker_retries} times, resetting"
            )
            await self.gestures.scroll_to_bottom()
            state.clear_retries()
            state.last_accepted_target = None
        return Outcome.no_target_found("marker")

    def _record_failure(self, marker: Detection) -> None:
        state = self.ctx.state
        tolerance = self.ctx.settings.marker_match_tolerance
        if state.last_accepted_target is not None and state.last_accepted_target.near(marker, tolerance):
            state.last_accepted_target = None
        if not state.was_tried(marker, tolerance):
            state.tried.append(marker)
        key = state.location_key(marker)
        state.retry_counts[key] = state.retry_counts.get(key, 0) + 1

    # ---- level transition ----

    async def _read_level_name(self) -> str:
        ctx = self.ctx
        if ctx.level_names is None or not ctx.settings.read_level_name:
            return UNKNOWN_LEVEL
        return await ctx.level_names.read_level_name()

    async def exit_and_restart(self, exit_marker: Detection) -> Outcome:
        """Leave the finished level and start the next one."""
        ctx = self.ctx
        s = ctx.settings
        stats = ctx.progress.stats

        ctx.release_hold()
        ctx.status.info("Exit available, leaving level")
        await ctx.click(exit_marker.center)
        await ctx.wait(s.exit_settle_s)
        await ctx.click(s.confirm_exit)
        await ctx.wait(s.level_transition_s)

        name = await self._read_level_name()

        await ctx.click(s.start_level)
        await ctx.wait(s.follow_up_wait_s)
        for point in s.follow_up_clicks:
            await ctx.click(point)
            await ctx.wait(s.follow_up_wait_s)

        await self.gestures.scroll_to_bottom()

        duration = stats.complete_level(ctx.clock(), name)
        ctx.status.success(
            f"Level completed in {format_duration(duration)} "
            f"({stats.completed} done, avg {format_duration(stats.average)}); starting {name}"
        )
        ctx.state.reset()
        return Outcome.launched(name)
