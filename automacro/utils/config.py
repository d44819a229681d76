import os
import platform
from dataclasses import dataclass, field
from pathlib import Path

from ..cv.region import Region

DEFAULT_DATADIR = Path(
    os.environ.get("AUTOMACRO_DATADIR", str(Path.home() / ".local/share/automacro"))
)

# Platform-aware events file path: use /tmp on macOS, the data dir elsewhere
if platform.system() == "Darwin":
    _default_events = "/tmp/automacro.events"
else:
    _default_events = str(DEFAULT_DATADIR / "automacro.events")
DEFAULT_EVENTS = os.environ.get("AUTOMACRO_EVENTS", _default_events)

# Capture region of the mirrored application window (absolute screen pixels)
REGION_X = int(os.environ.get("AUTOMACRO_REGION_X", "0"))
REGION_Y = int(os.environ.get("AUTOMACRO_REGION_Y", "100"))
REGION_WIDTH = int(os.environ.get("AUTOMACRO_REGION_WIDTH", "450"))
REGION_HEIGHT = int(os.environ.get("AUTOMACRO_REGION_HEIGHT", "900"))

# Interference watchdog
POLL_INTERVAL_S = float(os.environ.get("AUTOMACRO_POLL_INTERVAL", "0.05"))
MOVE_THRESHOLD_PX = float(os.environ.get("AUTOMACRO_MOVE_THRESHOLD", "1"))
RESUME_AFTER_S = float(os.environ.get("AUTOMACRO_RESUME_AFTER", "5.0"))

STATUS_LIMIT = int(os.environ.get("AUTOMACRO_STATUS_LIMIT", "5"))


def _default_region() -> Region:
    return Region(x=REGION_X, y=REGION_Y, width=REGION_WIDTH, height=REGION_HEIGHT)


@dataclass
class Settings:
    region: Region = field(default_factory=_default_region)
    log_level: str = os.environ.get("AUTOMACRO_LOGLEVEL", "INFO")
    events_path: str = DEFAULT_EVENTS
    status_limit: int = STATUS_LIMIT
    # Interference watchdog
    poll_interval_s: float = POLL_INTERVAL_S
    move_threshold_px: float = MOVE_THRESHOLD_PX
    resume_after_s: float = RESUME_AFTER_S
    # Capture retries (FrameSource failures are never fatal)
    capture_attempts: int = 3
    capture_backoff_s: float = 1.0

    def set_region(self, region: Region) -> Region:
        """Replace the capture region after validating it."""
        self.region = region.validate()
        return self.region


SETTINGS = Settings()
