"""Outcome of one protocol run: one variant per terminal symbol."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class OutcomeKind(str, Enum):
    STOPPED = "stopped"                  # running flag cleared
    ERROR = "error"                      # invariant violation or unexpected failure
    LAUNCHED = "launched"                # a new level was started
    MAX_REACHED = "max_reached"          # natural completion bound reached
    TIMED_OUT = "timed_out"              # time budget exhausted
    NO_TARGET_FOUND = "no_target_found"  # expected panel/marker never appeared


@dataclass(frozen=True)
class Outcome:
    kind: OutcomeKind
    detail: Optional[str] = None

    @classmethod
    def stopped(cls, detail: Optional[str] = None) -> "Outcome":
        return cls(OutcomeKind.STOPPED, detail)

    @classmethod
    def error(cls, detail: Optional[str] = None) -> "Outcome":
        return cls(OutcomeKind.ERROR, detail)

    @classmethod
    def launched(cls, detail: Optional[str] = None) -> "Outcome":
        return cls(OutcomeKind.LAUNCHED, detail)

    @classmethod
    def max_reached(cls, detail: Optional[str] = None) -> "Outcome":
        return cls(OutcomeKind.MAX_REACHED, detail)

    @classmethod
    def timed_out(cls, detail: Optional[str] = None) -> "Outcome":
        return cls(OutcomeKind.TIMED_OUT, detail)

    @classmethod
    def no_target_found(cls, detail: Optional[str] = None) -> "Outcome":
        return cls(OutcomeKind.NO_TARGET_FOUND, detail)

    @property
    def halts(self) -> bool:
        """Only stop and error end an enclosing protocol."""
        return self.kind in (OutcomeKind.STOPPED, OutcomeKind.ERROR)

    def to_dict(self) -> Dict[str, Any]:
        return {"outcome": self.kind.value, "detail": self.detail}

    def __str__(self) -> str:
        return f"{self.kind.value}" + (f" ({self.detail})" if self.detail else "")
