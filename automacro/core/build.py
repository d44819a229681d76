"""
Build protocol.

SEEK_PANEL -> HOLDING -> CHECK_INDICATOR -> {RESEARCH_CYCLE -> HOLDING | HOLDING}

The panel's center is pressed and held. Every ``hold_s`` seconds one frame is
checked: a research marker triggers a research cycle (release, toggle, rapid
clicks, toggle, press again); otherwise the hold window is simply extended.
A muted panel means the build is maxed out.
"""

import logging
from typing import Optional

from ..cv.detection import BUILD_CAPABLE_STATES, Detection, PanelState
from ..cv.marker_detection import RESEARCH_MARKER
from .context import (
    ProtocolContext,
    ProtocolInvariantError,
    ProtocolResumed,
    ProtocolStopped,
)
from .outcome import Outcome

logger = logging.getLogger(__name__)

#: Consecutive unexpected failures tolerated before the protocol gives up
MAX_CONSECUTIVE_FAILURES = 3


class BuildProtocol:
    name = "build"

    def __init__(self, ctx: ProtocolContext, max_duration_s: Optional[float] = None):
        self.ctx = ctx
        self.max_duration_s = max_duration_s
        self._failures = 0

    async def run(self) -> Outcome:
        ctx = self.ctx
        started = ctx.clock()
        self._failures = 0
        try:
            while True:
                try:
                    return await self._run_once(started)
                except ProtocolResumed:
                    logger.info("Build restarting from panel search after pause")
                    continue
                except ProtocolStopped:
                    ctx.release_hold()
                    ctx.state.reset()
                    ctx.status.info("Build stopped")
                    return Outcome.stopped()
                except ProtocolInvariantError as e:
                    ctx.release_hold()
                    ctx.state.reset()
                    ctx.status.error(f"Build error: {e}")
                    return Outcome.error(str(e))
                except Exception as e:
                    # Any other failure unwinds to SEEK_PANEL
                    logger.exception("Build step failed")
                    ctx.release_hold()
                    self._failures += 1
                    if self._failures >= MAX_CONSECUTIVE_FAILURES:
                        ctx.state.reset()
                        ctx.status.error(f"Build failed {self._failures} times in a row: {e}")
                        return Outcome.error(str(e))
                    ctx.status.warning(f"Build step failed ({e}), searching for panel again")
        finally:
            ctx.release_hold()

    def _timed_out(self, started: float) -> bool:
        return self.max_duration_s is not None and self.ctx.clock() - started >= self.max_duration_s

    async def _seek(self) -> Optional[Detection]:
        """SEEK_PANEL: poll until a build-capable or muted panel appears."""
        ctx = self.ctx

        async def _attempt(n: int) -> Optional[Detection]:
            panels = await ctx.detect_panels()
            await ctx.checkpoint()
            candidates = panels.with_state(*BUILD_CAPABLE_STATES) or panels.with_state(PanelState.PRIMARY_MUTED)
            return candidates[0] if candidates else None

        async def _on_retry(n: int, error) -> None:
            ctx.status.info(f"No panel found, retrying ({n}/{ctx.settings.seek_retry.max_attempts})")

        return await ctx.settings.seek_retry.run(_attempt, sleep=ctx.sleep, on_retry=_on_retry)

    async def _run_once(self, started: float) -> Outcome:
        ctx = self.ctx
        s = ctx.settings
        state = ctx.state

        panel = await self._seek()
        if panel is None:
            ctx.status.warning("No panel found")
            return Outcome.no_target_found("panel")
        if panel.state == PanelState.PRIMARY_MUTED:
            return await self._finish_maxed()

        target = panel.center
        await ctx.press(target)
        ctx.status.info(f"Holding panel at {target}")

        while True:
            if self._timed_out(started):
                ctx.release_hold()
                ctx.status.warning(f"Build timed out after {self.max_duration_s:.0f}s")
                return Outcome.timed_out()

            # HOLDING
            await ctx.wait(s.hold_poll_s)
            if ctx.clock() - state.hold_started < s.hold_s:
                continue

            # CHECK_INDICATOR
            if not state.holding or state.held_target is None:
                raise ProtocolInvariantError("Hold check with no active press")
            scan = await ctx.scan()
            await ctx.checkpoint()
            self._failures = 0

            if scan.panels.with_state(PanelState.PRIMARY_MUTED):
                ctx.release_hold()
                return await self._finish_maxed()

            if scan.markers.named(RESEARCH_MARKER):
                await self._research_cycle(state.held_target)
            else:
                state.hold_started = ctx.clock()
                state.hold_extensions += 1
                ctx.status.info("Hold extended")

    async def _research_cycle(self, target) -> None:
        """RESEARCH_CYCLE: release, toggle, rapid clicks, toggle, press again."""
        ctx = self.ctx
        s = ctx.settings
        ctx.release_hold()
        ctx.status.info("Research available")

        await ctx.click(s.research_toggle)
        await ctx.wait(s.toggle_settle_s)
        await ctx.rapid_clicks(s.research_item, s.research_clicks, s.rapid_click_interval_s)
        await ctx.wait(s.rapid_settle_s)
        await ctx.click(s.research_toggle)
        await ctx.wait(s.toggle_settle_s)

        ctx.state.research_cycles += 1
        await ctx.press(target)
        ctx.status.success(f"Research cycle {ctx.state.research_cycles} done, holding again")

    async def _finish_maxed(self) -> Outcome:
        ctx = self.ctx
        ctx.pointer.click(*ctx.settings.click_off)
        ctx.status.success("Build maxed out")
        return Outcome.max_reached()
