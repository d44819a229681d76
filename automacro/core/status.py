"""
Status feed and progress signals exposed to the UI shell.

- StatusFeed: the most recent N status entries, plus listeners that see
  every entry (events file, console)
- LevelStats: per-level durations and running statistics
- Progress: named signals for display
"""

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Deque, Dict, List, Optional

logger = logging.getLogger("automacro.status")

SEVERITIES = ("info", "success", "warning", "error")

_LOG_LEVELS = {
    "info": logging.INFO,
    "success": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


@dataclass(frozen=True)
class StatusEntry:
    message: str
    severity: str = "info"
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message, "severity": self.severity, "timestamp": self.timestamp}

    def __str__(self) -> str:
        time_str = datetime.fromtimestamp(self.timestamp).strftime("%H:%M:%S")
        return f"[{time_str}] {self.severity.upper()}: {self.message}"


StatusListener = Callable[[StatusEntry], None]


class StatusFeed:
    """Bounded history of status messages."""

    def __init__(self, limit: int = 5):
        self._entries: Deque[StatusEntry] = deque(maxlen=limit)
        self._listeners: List[StatusListener] = []

    def subscribe(self, listener: StatusListener) -> None:
        self._listeners.append(listener)

    def push(self, message: str, severity: str = "info") -> StatusEntry:
        if severity not in SEVERITIES:
            raise ValueError(f"Unknown severity: {severity}")
        entry = StatusEntry(message, severity)
        self._entries.append(entry)
        logger.log(_LOG_LEVELS[severity], message)
        for listener in self._listeners:
            try:
                listener(entry)
            except Exception as e:
                logger.warning(f"Status listener failed: {e}")
        return entry

    def info(self, message: str) -> StatusEntry:
        return self.push(message, "info")

    def success(self, message: str) -> StatusEntry:
        return self.push(message, "success")

    def warning(self, message: str) -> StatusEntry:
        return self.push(message, "warning")

    def error(self, message: str) -> StatusEntry:
        return self.push(message, "error")

    def recent(self) -> List[StatusEntry]:
        return list(self._entries)

    def to_list(self) -> List[Dict[str, Any]]:
        return [e.to_dict() for e in self._entries]


class LevelStats:
    """Durations of completed levels (seconds)."""

    def __init__(self):
        self.level_name: Optional[str] = None
        self.level_started: Optional[float] = None
        self.durations: List[float] = []

    def start_level(self, now: float, name: Optional[str] = None) -> None:
        self.level_started = now
        if name is not None:
            self.level_name = name

    def complete_level(self, now: float, next_name: Optional[str] = None) -> Optional[float]:
        """Record the running level's duration and start timing the next one."""
        duration = None
        if self.level_started is not None:
            duration = now - self.level_started
            self.durations.append(duration)
        self.start_level(now, next_name)
        return duration

    def current(self, now: float) -> Optional[float]:
        return None if self.level_started is None else now - self.level_started

    @property
    def completed(self) -> int:
        return len(self.durations)

    @property
    def previous(self) -> Optional[float]:
        return self.durations[-1] if self.durations else None

    @property
    def longest(self) -> Optional[float]:
        return max(self.durations) if self.durations else None

    @property
    def shortest(self) -> Optional[float]:
        return min(self.durations) if self.durations else None

    @property
    def average(self) -> Optional[float]:
        return sum(self.durations) / len(self.durations) if self.durations else None


def format_duration(seconds: Optional[float]) -> str:
    if seconds is None:
        return "--:--"
    minutes, secs = divmod(int(seconds), 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


@dataclass
class Progress:
    """Named progress signals for display."""
    active_protocol: Optional[str] = None
    stats: LevelStats = field(default_factory=LevelStats)

    def snapshot(self, now: float) -> Dict[str, Any]:
        s = self.stats
        return {
            "active_protocol": self.active_protocol,
            "level_name": s.level_name,
            "current_level_duration": s.current(now),
            "previous_level_duration": s.previous,
            "longest_level_duration": s.longest,
            "shortest_level_duration": s.shortest,
            "average_level_duration": s.average,
            "levels_completed": s.completed,
        }
