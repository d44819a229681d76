"""
Tests for the Explore protocol and its grid target generation.
"""

import random

import pytest

from automacro.core.context import AutomationSettings
from automacro.core.explore import ExploreProtocol, grid_targets, in_exclusion_band, near_marker
from automacro.core.outcome import OutcomeKind
from automacro.cv.detection import DetectionSet
from automacro.cv.vision import Scan

CLICK_OFF = (225, 160)


def grid_clicks(harness):
    return [c[1:3] for c in harness.mock.actions("click") if c[1:3] != CLICK_OFF]


class TestGridTargets:

    def test_exclusion_band_edges(self, region):
        s = AutomationSettings()
        assert in_exclusion_band(25, 600, region, s)
        assert not in_exclusion_band(26, 600, region, s)
        assert not in_exclusion_band(424, 600, region, s)
        assert in_exclusion_band(425, 600, region, s)
        assert in_exclusion_band(200, 449, region, s)
        assert not in_exclusion_band(200, 450, region, s)
        assert not in_exclusion_band(200, 800, region, s)
        assert in_exclusion_band(200, 801, region, s)

    def test_near_marker_uses_radius(self, make_marker):
        markers = [make_marker(200, 600)]
        assert near_marker(200, 750, markers, 150.0)
        assert not near_marker(200, 751, markers, 150.0)
        assert not near_marker(200, 600, [], 150.0)

    def test_deterministic_with_seeded_rng(self, region):
        s = AutomationSettings()
        assert grid_targets(region, s, random.Random(3)) == grid_targets(region, s, random.Random(3))

    def test_points_respect_bands_and_markers(self, region, make_marker):
        s = AutomationSettings()
        markers = [make_marker(200, 600)]
        rows = grid_targets(region, s, random.Random(5), markers)
        points = [p for row in rows for p in row]
        assert points
        for x, y in points:
            assert not in_exclusion_band(x, y, region, s)
            assert (x - 200) ** 2 + (y - 600) ** 2 > 150 ** 2

    def test_empty_rows_are_kept(self, region):
        rows = grid_targets(region, AutomationSettings(), random.Random(1))
        assert len(rows) >= 900 // 31
        assert rows[0] == []


class TestExploreRun:

    @pytest.mark.asyncio
    async def test_stops_when_markers_stable(self, harness, make_marker):
        markers = DetectionSet((make_marker(200, 600),))
        harness.script(scans=[Scan(markers=markers)] * 10)

        outcome = await ExploreProtocol(harness.context()).run()

        assert outcome.kind == OutcomeKind.NO_TARGET_FOUND
        assert harness.vision.calls.count("markers") == 10
        # Scroll to top, one initial scroll, then one scroll per finished cycle
        assert harness.mock.count("drag") == 10 + 1 + 4

    @pytest.mark.asyncio
    async def test_max_cycles_when_markers_keep_moving(self, harness, make_marker):
        scans = []
        for cycle in range(7):
            moved = Scan(markers=DetectionSet((make_marker(100 + 40 * cycle, 600),)))
            scans += [moved, moved]
        harness.script(scans=scans)

        outcome = await ExploreProtocol(harness.context()).run()

        assert outcome.kind == OutcomeKind.MAX_REACHED
        assert harness.mock.count("drag") == 10 + 1 + 7

    @pytest.mark.asyncio
    async def test_clicks_avoid_bands_and_markers(self, harness, region, make_marker):
        markers = DetectionSet((make_marker(200, 600),))
        harness.script(scans=[Scan(markers=markers)] * 10)

        protocol = ExploreProtocol(harness.context())
        await protocol.run()

        clicks = grid_clicks(harness)
        assert clicks
        assert protocol.clicks == len(clicks)
        for x, y in clicks:
            assert 450 <= y <= 800
            assert 25 < x < 425
            assert (x - 200) ** 2 + (y - 600) ** 2 > 150 ** 2

    @pytest.mark.asyncio
    async def test_marker_avoidance_can_be_disabled(self, harness, make_marker):
        markers = DetectionSet((make_marker(200, 600),))
        harness.script(scans=[Scan(markers=markers)] * 10)

        await ExploreProtocol(harness.context(), avoid_markers=False).run()

        assert any((x - 200) ** 2 + (y - 600) ** 2 <= 150 ** 2 for x, y in grid_clicks(harness))

    @pytest.mark.asyncio
    async def test_pause_mid_run_does_not_restart(self, harness):
        harness.script(scans=[], stop_when_exhausted=False)
        harness.clock.at(1002.7, harness.pause.trip)

        outcome = await ExploreProtocol(harness.context()).run()

        assert outcome.kind == OutcomeKind.NO_TARGET_FOUND
        assert harness.messages.count("Explore: scrolling to top") == 1
        assert any(m.startswith("Paused") for m in harness.messages)
        assert harness.clock() >= 1007.6

    @pytest.mark.asyncio
    async def test_stop(self, harness):
        harness.script(scans=[])

        outcome = await ExploreProtocol(harness.context()).run()

        assert outcome.kind == OutcomeKind.STOPPED
        assert harness.mock.count("drag") == 11
