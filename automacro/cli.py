import argparse
import asyncio
import json
import os
import signal
import time
from pathlib import Path

from .core.logging_setup import setup_logger
from .core.retry import RetryPolicy
from .core.state import PauseFlag
from .core.status import StatusFeed
from .cv.capture import ImageFileSource, ScreenCapture
from .cv.region import Region
from .cv.vision import DetectionService
from .daemon.controller import PROTOCOLS, AutomationController
from .daemon.interference import InterferenceMonitor
from .io.ocr import LevelNameReader, StaticLevelNames
from .io.pointer import PointerActuator, PyAutoGuiBackend
from .io.pointer_mock import MockPointer
from .utils import events
from .utils.config import SETTINGS


# ---------- wiring ----------

def _vision(source):
    return DetectionService(
        source,
        lambda: SETTINGS.region,
        capture_retry=RetryPolicy(SETTINGS.capture_attempts, SETTINGS.capture_backoff_s),
    )


def build_controller(args) -> AutomationController:
    """Wire capture, detection, pointer, OCR and monitor into one controller."""
    pause = PauseFlag(resume_after_s=SETTINGS.resume_after_s)
    status = StatusFeed(SETTINGS.status_limit)
    status.subscribe(events.status_listener)

    source = ScreenCapture()
    if args.dry_run:
        backend = MockPointer()
        monitor = None
    else:
        backend = PyAutoGuiBackend()
        monitor = InterferenceMonitor(
            backend.position,
            pause,
            poll_interval_s=SETTINGS.poll_interval_s,
            threshold_px=SETTINGS.move_threshold_px,
        )
    level_names = StaticLevelNames() if args.no_ocr else LevelNameReader(source)

    return AutomationController(
        SETTINGS,
        vision=_vision(source),
        pointer=PointerActuator(backend, pause),
        pause=pause,
        status=status,
        level_names=level_names,
        monitor=monitor,
    )


def _options(args) -> dict:
    opts = {}
    if args.swipe_distance is not None:
        opts["swipe_distance"] = args.swipe_distance
    if args.swipes is not None:
        opts["swipes_to_bottom"] = args.swipes
    if args.scroll_ups is not None:
        opts["scroll_ups_before_reset"] = args.scroll_ups
    return opts


# ---------- commands ----------

async def _run(args) -> dict:
    controller = build_controller(args)
    msg = {
        "cmd": "start",
        "protocol": args.protocol,
        "max_duration": args.max_duration,
        "avoid_markers": not args.no_avoid_markers,
        "options": _options(args),
    }
    result = await controller.handle(msg)
    if "error" in result:
        return result

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, lambda: asyncio.ensure_future(controller.stop()))

    outcome = await controller.wait()
    report = await controller.status_report()
    report["outcome"] = outcome.to_dict() if outcome else None
    return report


def cmd_run(args):
    """Run one protocol in the foreground until it finishes or Ctrl+C."""
    if args.region:
        SETTINGS.set_region(Region(*args.region))
    result = asyncio.run(_run(args))
    print(json.dumps(result, indent=2, default=str))
    if "error" in result:
        raise SystemExit(1)


def cmd_detect(args):
    """Run both detectors once and print the detections as JSON."""
    if args.region:
        SETTINGS.set_region(Region(*args.region))
    source = ImageFileSource(Path(args.image)) if args.image else ScreenCapture()
    scan = asyncio.run(_vision(source).scan())
    print(json.dumps(scan.to_dict(), indent=2))


def cmd_region(args):
    """Validate and show the capture region."""
    if args.set:
        SETTINGS.set_region(Region(*args.set))
    print(json.dumps(SETTINGS.region.to_dict(), indent=2))


def cmd_watch(args):
    """Stream the events file."""
    path = events.path()
    print(f"[watch] {path} (Ctrl+C to stop)")
    while not os.path.exists(path):
        time.sleep(0.2)
    with open(path, "r") as f:
        f.seek(0, os.SEEK_END)
        try:
            while True:
                line = f.readline()
                if not line:
                    time.sleep(0.2)
                    continue
                print(line.strip())
        except KeyboardInterrupt:
            return


# ---------- arg parsing ----------

def _add_region_arg(p, flag="--region"):
    p.add_argument(flag, type=int, nargs=4, metavar=("X", "Y", "W", "H"),
                   help="Capture region in absolute screen pixels")


def build_parser():
    ap = argparse.ArgumentParser(
        prog="automacro", description="Screen-driven pointer automation (build, level, explore)"
    )
    ap.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING, ERROR")
    sub = ap.add_subparsers(dest="cmd", required=True)

    r = sub.add_parser("run", help="Run one automation protocol")
    r.add_argument("protocol", choices=PROTOCOLS)
    r.add_argument("--dry-run", action="store_true", help="Log pointer actions instead of performing them")
    r.add_argument("--no-ocr", action="store_true", help="Do not read level names")
    r.add_argument("--no-avoid-markers", action="store_true", help="Explore: also click near markers")
    r.add_argument("--max-duration", type=float, default=None, help="Build: give up after N seconds")
    r.add_argument("--swipe-distance", type=int, default=None, help="Pixels per scroll-to-bottom swipe")
    r.add_argument("--swipes", type=int, default=None, help="Swipes per scroll-to-bottom")
    r.add_argument("--scroll-ups", type=int, default=None, help="Scroll-ups before a full scroll-to-bottom")
    _add_region_arg(r)
    r.set_defaults(func=cmd_run)

    d = sub.add_parser("detect", help="Detect panels and markers once and print JSON")
    d.add_argument("--image", default=None, help="Analyse a saved screenshot instead of the screen")
    _add_region_arg(d)
    d.set_defaults(func=cmd_detect)

    g = sub.add_parser("region", help="Show (or validate a new) capture region")
    _add_region_arg(g, "--set")
    g.set_defaults(func=cmd_region)

    w = sub.add_parser("watch", help="Stream status events")
    w.set_defaults(func=cmd_watch)

    return ap


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logger(args.log_level)
    events.set_path(SETTINGS.events_path)
    args.func(args)


if __name__ == "__main__":
    main()
