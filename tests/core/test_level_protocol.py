"""
Tests for the Level protocol: marker retries, scroll policy and level transitions.
"""

import pytest

from automacro.core.level import LevelProtocol
from automacro.core.outcome import OutcomeKind
from automacro.cv.detection import DetectionSet, PanelState
from automacro.cv.marker_detection import EXIT_MARKER
from automacro.cv.vision import Scan

CLICK_OFF = (225, 160)


class SequentialNames:
    """Level name reader returning names in order."""

    def __init__(self, *names):
        self.names = list(names)

    async def read_level_name(self):
        return self.names.pop(0)


class TestMarkerRetries:

    @pytest.mark.asyncio
    async def test_marker_failing_three_times_resets_once(self, harness, make_marker):
        target = make_marker(200, 600)
        snapshot = {}

        def on_exhausted():
            snapshot["retry_counts"] = dict(harness.state.retry_counts)
            snapshot["tried"] = list(harness.state.tried)
            harness.stop()

        harness.script(scans=[Scan(markers=DetectionSet((target,)))] * 3, panels=[])
        harness.vision.on_exhausted = on_exhausted

        outcome = await LevelProtocol(harness.context()).run()

        assert outcome.kind == OutcomeKind.STOPPED
        # One scroll-to-bottom reset, and the retry counters were cleared by it
        assert harness.mock.count("drag") == 10
        assert snapshot == {"retry_counts": {}, "tried": []}
        assert any("failed 3 times" in m for m in harness.messages)

        # Double click on the first attempt, single clicks after, offset from center
        cx, cy = target.center
        assert harness.mock.count("click", cx + 25, cy + 25) == 3 * 4

    @pytest.mark.asyncio
    async def test_build_success_scrolls_to_bottom_once_per_level(self, harness, make_panel):
        active = DetectionSet((make_panel(),))
        muted = DetectionSet((make_panel(state=PanelState.PRIMARY_MUTED),))
        harness.script(
            scans=[Scan(panels=active), Scan(panels=muted), Scan(panels=active), Scan(panels=muted)],
            panels=[active, active],
        )

        outcome = await LevelProtocol(harness.context()).run()

        assert outcome.kind == OutcomeKind.STOPPED
        center = make_panel().center
        assert harness.mock.count("press", *center) == 2
        assert harness.mock.count("drag") == 10


class TestEmptyDetections:

    @pytest.mark.asyncio
    async def test_scroll_up_every_third_empty_scan_then_reset(self, harness):
        harness.script(scans=[Scan()] * 18)

        outcome = await LevelProtocol(harness.context()).run()

        assert outcome.kind == OutcomeKind.STOPPED
        # Five single scroll-ups, then one ten-swipe scroll to bottom
        assert harness.mock.count("drag") == 5 + 10
        assert harness.mock.count("click", *CLICK_OFF) == 6

    @pytest.mark.asyncio
    async def test_scroll_up_distance_in_range(self, harness):
        harness.script(scans=[Scan()] * 3)

        await LevelProtocol(harness.context()).run()

        (_, _, y0), = harness.mock.actions("press")
        (_, _, y1), = harness.mock.actions("drag")
        assert 80 <= y1 - y0 <= 100


class TestExitAndRestart:

    @pytest.mark.asyncio
    async def test_exit_sequence_and_level_stats(self, harness, make_marker):
        exit_marker = make_marker(51, 890, EXIT_MARKER)
        harness.script(scans=[Scan(markers=DetectionSet((exit_marker,)))])
        ctx = harness.context(level_names=SequentialNames("Level 1", "Level 2"))

        outcome = await LevelProtocol(ctx).run()

        assert outcome.kind == OutcomeKind.STOPPED
        clicks = [c[1:3] for c in harness.mock.actions("click")]
        assert clicks[:5] == [exit_marker.center, (225, 620), (225, 820), (225, 560), (225, 160)]
        assert harness.mock.count("drag") == 10

        stats = ctx.progress.stats
        assert stats.completed == 1
        assert stats.level_name == "Level 2"
        assert stats.previous > 10.0
        assert any(m.startswith("Level completed in") for m in harness.messages)

    @pytest.mark.asyncio
    async def test_exit_marker_takes_priority_over_panel(self, harness, make_marker, make_panel):
        exit_marker = make_marker(51, 890, EXIT_MARKER)
        scan = Scan(panels=DetectionSet((make_panel(),)), markers=DetectionSet((exit_marker,)))
        harness.script(scans=[scan])

        await LevelProtocol(harness.context()).run()

        assert harness.mock.count("press", *make_panel().center) == 0
        assert harness.mock.actions("click")[0][1:3] == exit_marker.center


class TestChooseTarget:

    def test_topmost_then_rightmost(self, harness, make_marker):
        level = LevelProtocol(harness.context())
        markers = [make_marker(100, 500), make_marker(300, 500), make_marker(50, 700)]
        assert level.choose_target(markers) is markers[1]

    def test_prefers_last_accepted_target(self, harness, make_marker):
        level = LevelProtocol(harness.context())
        harness.state.last_accepted_target = make_marker(50, 700)
        markers = [make_marker(100, 500), make_marker(55, 695)]
        assert level.choose_target(markers) is markers[1]

    def test_skips_tried_until_all_tried(self, harness, make_marker):
        level = LevelProtocol(harness.context())
        markers = [make_marker(100, 500), make_marker(100, 700)]
        harness.state.tried.append(make_marker(100, 500))
        assert level.choose_target(markers) is markers[1]

        harness.state.tried.append(make_marker(100, 700))
        assert level.choose_target(markers) is markers[0]
        assert harness.state.tried == []
