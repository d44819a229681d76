"""
Tests for the automation controller command interface.
"""

import pytest

from automacro.core.outcome import OutcomeKind
from automacro.cv.capture import CaptureError
from automacro.cv.detection import DetectionSet, PanelState
from automacro.daemon.controller import AutomationController
from automacro.daemon.interference import InterferenceMonitor
from automacro.utils.config import Settings


def make_controller(harness, region, monitor=None):
    return AutomationController(
        Settings(region=region),
        harness.vision,
        harness.pointer,
        harness.pause,
        status=harness.status,
        monitor=monitor,
        clock=harness.clock,
        sleep=harness.clock.sleep,
    )


class TestStartStop:

    @pytest.mark.asyncio
    async def test_second_start_rejected_while_running(self, harness, region):
        harness.script(stop_when_exhausted=False)
        controller = make_controller(harness, region)

        first = await controller.handle({"cmd": "start", "protocol": "explore"})
        second = await controller.handle({"cmd": "start", "protocol": "build"})

        assert first == {"ok": True, "protocol": "explore"}
        assert second == {"error": "explore already running"}

        stopped = await controller.handle({"cmd": "stop"})
        assert stopped["outcome"]["outcome"] == "stopped"
        assert not controller.active
        assert controller.progress.active_protocol is None

    @pytest.mark.asyncio
    async def test_protocol_runs_to_completion(self, harness, region, make_panel):
        harness.script(panels=[DetectionSet((make_panel(state=PanelState.PRIMARY_MUTED),))])
        controller = make_controller(harness, region)

        await controller.handle({"cmd": "start", "protocol": "build"})
        outcome = await controller.wait()

        assert outcome.kind == OutcomeKind.MAX_REACHED
        assert controller.last_outcome == outcome
        assert "build finished: max_reached" in harness.messages

    @pytest.mark.asyncio
    async def test_stop_when_idle(self, harness, region):
        controller = make_controller(harness, region)
        assert await controller.handle({"cmd": "stop"}) == {"ok": True, "message": "nothing running"}

    @pytest.mark.asyncio
    async def test_unknown_protocol(self, harness, region):
        controller = make_controller(harness, region)
        result = await controller.handle({"cmd": "start", "protocol": "farm"})
        assert "unknown protocol" in result["error"]

    @pytest.mark.asyncio
    async def test_start_clears_previous_pause(self, harness, region, make_panel):
        harness.script(panels=[DetectionSet((make_panel(state=PanelState.PRIMARY_MUTED),))])
        harness.pause.trip()
        controller = make_controller(harness, region)

        await controller.handle({"cmd": "start", "protocol": "build"})
        outcome = await controller.wait()

        assert not harness.pause.paused
        assert outcome.kind == OutcomeKind.MAX_REACHED

    @pytest.mark.asyncio
    async def test_monitor_runs_only_with_protocol(self, harness, region, make_panel):
        harness.script(panels=[DetectionSet((make_panel(state=PanelState.PRIMARY_MUTED),))])
        monitor = InterferenceMonitor(lambda: (0, 0), harness.pause, poll_interval_s=0.001)
        controller = make_controller(harness, region, monitor=monitor)

        await controller.handle({"cmd": "start", "protocol": "build"})
        assert monitor.running
        await controller.wait()
        assert not monitor.running

    def test_options_override_copy(self, harness, region):
        controller = make_controller(harness, region)
        tuned = controller._automation_with({"options": {"swipes_to_bottom": 3, "bogus": 1}})
        assert tuned.swipes_to_bottom == 3
        assert controller.automation.swipes_to_bottom == 10


class TestQueries:

    @pytest.mark.asyncio
    async def test_status_report(self, harness, region):
        controller = make_controller(harness, region)
        report = await controller.handle({"cmd": "status"})
        assert set(report) == {"running", "progress", "paused", "state", "last_outcome", "status", "region"}
        assert report["running"] is False
        assert report["region"] == {"x": 0, "y": 100, "width": 450, "height": 900}

    @pytest.mark.asyncio
    async def test_detect(self, harness, region):
        controller = make_controller(harness, region)
        result = await controller.handle({"cmd": "detect"})
        assert result["panels"]["count"] == 0
        assert result["markers"]["count"] == 0

    @pytest.mark.asyncio
    async def test_detect_capture_failure(self, harness, region):
        class NoCapture:
            async def scan(self):
                raise CaptureError("display gone")

        harness.vision = NoCapture()
        controller = make_controller(harness, region)
        result = await controller.handle({"cmd": "detect"})
        assert "display gone" in result["error"]

    @pytest.mark.asyncio
    async def test_unknown_command(self, harness, region):
        controller = make_controller(harness, region)
        assert await controller.handle({"cmd": "dance"}) == {"error": "unknown command: dance"}


class TestSetRegion:

    @pytest.mark.asyncio
    async def test_valid_region(self, harness, region):
        controller = make_controller(harness, region)
        result = await controller.handle({"cmd": "set_region", "x": 10, "y": 20, "width": 300, "height": 600})
        assert result["ok"]
        assert controller.settings.region.to_dict() == {"x": 10, "y": 20, "width": 300, "height": 600}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("msg", [
        {"x": 0, "y": 0, "width": 0, "height": 100},
        {"x": -5, "y": 0, "width": 100, "height": 100},
        {"x": 0, "y": 0, "width": 100},
        {"x": "left", "y": 0, "width": 100, "height": 100},
    ])
    async def test_invalid_region(self, harness, region, msg):
        controller = make_controller(harness, region)
        result = await controller.handle(dict(msg, cmd="set_region"))
        assert result["error"].startswith("invalid region")
        assert controller.settings.region == region

    @pytest.mark.asyncio
    async def test_rejected_while_running(self, harness, region):
        harness.script(stop_when_exhausted=False)
        controller = make_controller(harness, region)
        await controller.handle({"cmd": "start", "protocol": "explore"})

        result = await controller.handle({"cmd": "set_region", "x": 0, "y": 0, "width": 10, "height": 10})

        assert "running" in result["error"]
        await controller.handle({"cmd": "stop"})
