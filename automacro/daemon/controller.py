"""
Automation controller.

Owns the single active protocol run, the shared PauseFlag, the status feed and
the interference monitor, and exposes them through a small command interface:

- start:      {"cmd": "start", "protocol": "build"|"level"|"explore", ...options}
- stop:       {"cmd": "stop"}
- status:     {"cmd": "status"}
- detect:     {"cmd": "detect"}
- set_region: {"cmd": "set_region", "x": .., "y": .., "width": .., "height": ..}
"""

import asyncio
import logging
import random
import time
from dataclasses import fields, replace
from typing import Any, Awaitable, Callable, Dict, Optional

from ..core.build import BuildProtocol
from ..core.context import AutomationSettings, ProtocolContext
from ..core.explore import ExploreProtocol
from ..core.level import LevelProtocol
from ..core.outcome import Outcome, OutcomeKind
from ..core.state import PauseFlag, ProtocolState
from ..core.status import Progress, StatusFeed
from ..cv.capture import CaptureError
from ..cv.region import Region, RegionError
from ..io.pointer import PointerActuator
from ..utils.config import Settings
from .interference import InterferenceMonitor

log = logging.getLogger(__name__)

PROTOCOLS = ("build", "level", "explore")


class AutomationController:
    """
    Runs at most one protocol at a time.

    Stopping is cooperative: ``stop`` clears the running flag and waits for the
    protocol to notice it at its next checkpoint, release any held press, and
    return its Outcome.
    """

    def __init__(
        self,
        settings: Settings,
        vision,
        pointer: PointerActuator,
        pause: PauseFlag,
        status: Optional[StatusFeed] = None,
        level_names=None,
        automation: Optional[AutomationSettings] = None,
        monitor: Optional[InterferenceMonitor] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ):
        self.settings = settings
        self.vision = vision
        self.pointer = pointer
        self.pause = pause
        self.status = status or StatusFeed(settings.status_limit)
        self.level_names = level_names
        self.automation = automation or AutomationSettings()
        self.monitor = monitor
        self.clock = clock
        self.sleep = sleep
        self.rng = rng or random.Random()

        self.state = ProtocolState()
        self.progress = Progress()
        self.last_outcome: Optional[Outcome] = None
        self._running = False
        self._task: Optional[asyncio.Task] = None

    # ---------- helpers ----------

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    def is_running(self) -> bool:
        return self._running

    def _context(self, automation: AutomationSettings) -> ProtocolContext:
        return ProtocolContext(
            pointer=self.pointer,
            vision=self.vision,
            pause=self.pause,
            status=self.status,
            region_provider=lambda: self.settings.region,
            settings=automation,
            state=self.state,
            progress=self.progress,
            level_names=self.level_names,
            clock=self.clock,
            sleep=self.sleep,
            is_running=self.is_running,
            rng=self.rng,
        )

    def _automation_with(self, msg: Dict[str, Any]) -> AutomationSettings:
        """Apply per-run overrides for known AutomationSettings fields."""
        known = {f.name for f in fields(AutomationSettings)}
        overrides = {k: v for k, v in msg.get("options", {}).items() if k in known}
        unknown = set(msg.get("options", {})) - known
        if unknown:
            log.warning(f"Ignoring unknown options: {sorted(unknown)}")
        return replace(self.automation, **overrides)

    def _make_protocol(self, name: str, ctx: ProtocolContext, msg: Dict[str, Any]):
        if name == "build":
            return BuildProtocol(ctx, max_duration_s=msg.get("max_duration"))
        if name == "level":
            return LevelProtocol(ctx)
        return ExploreProtocol(ctx, avoid_markers=msg.get("avoid_markers", True))

    async def _run_protocol(self, protocol) -> Outcome:
        name = protocol.name
        try:
            outcome = await protocol.run()
        finally:
            self._running = False
            self.progress.active_protocol = None
            if self.monitor:
                await self.monitor.stop()
        self.last_outcome = outcome
        if outcome.kind == OutcomeKind.ERROR:
            self.status.error(f"{name} halted: {outcome}")
        else:
            self.status.info(f"{name} finished: {outcome}")
        return outcome

    # ---------- commands ----------

    async def start(self, msg: Dict[str, Any]) -> Dict[str, Any]:
        name = msg.get("protocol")
        if name not in PROTOCOLS:
            return {"error": f"unknown protocol: {name!r} (expected one of {', '.join(PROTOCOLS)})"}
        if self.active:
            error_msg = f"{self.progress.active_protocol} already running"
            log.warning(error_msg)
            return {"error": error_msg}

        ctx = self._context(self._automation_with(msg))
        protocol = self._make_protocol(name, ctx, msg)

        self.state.reset()
        self.pause.clear()
        self._running = True
        self.progress.active_protocol = name
        self.last_outcome = None
        if self.monitor:
            self.monitor.start()
        self._task = asyncio.create_task(self._run_protocol(protocol))
        self.status.info(f"Started {name}")
        return {"ok": True, "protocol": name}

    async def stop(self, msg: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if not self.active:
            return {"ok": True, "message": "nothing running"}
        self._running = False
        outcome = await self._task
        self._task = None
        return {"ok": True, "outcome": outcome.to_dict()}

    async def wait(self) -> Optional[Outcome]:
        """Wait for the active protocol to finish on its own."""
        if self._task is None:
            return self.last_outcome
        return await self._task

    async def status_report(self, msg: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return {
            "running": self.active,
            "progress": self.progress.snapshot(self.clock()),
            "paused": self.pause.to_dict(),
            "state": self.state.to_dict(),
            "last_outcome": self.last_outcome.to_dict() if self.last_outcome else None,
            "status": self.status.to_list(),
            "region": self.settings.region.to_dict(),
        }

    async def detect(self, msg: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        try:
            scan = await self.vision.scan()
        except CaptureError as e:
            return {"error": f"capture failed: {e}"}
        return scan.to_dict()

    async def set_region(self, msg: Dict[str, Any]) -> Dict[str, Any]:
        if self.active:
            return {"error": "cannot change region while a protocol is running"}
        try:
            region = Region(int(msg["x"]), int(msg["y"]), int(msg["width"]), int(msg["height"]))
            self.settings.set_region(region)
        except (KeyError, TypeError, ValueError, RegionError) as e:
            return {"error": f"invalid region: {e}"}
        self.status.info(f"Region set to {region.to_dict()}")
        return {"ok": True, "region": region.to_dict()}

    async def handle(self, msg: Dict[str, Any]) -> Dict[str, Any]:
        """
        Dispatch one command message.

        Raises:
            All exceptions are caught and returned as {"error": str(e)}
        """
        cmd = msg.get("cmd", "unknown")
        handlers = {
            "start": self.start,
            "stop": self.stop,
            "status": self.status_report,
            "detect": self.detect,
            "set_region": self.set_region,
        }
        handler = handlers.get(cmd)
        if handler is None:
            return {"error": f"unknown command: {cmd}"}
        try:
            return await handler(msg)
        except Exception as e:
            log.exception("Command error on cmd=%s", cmd)
            return {"error": str(e)}
