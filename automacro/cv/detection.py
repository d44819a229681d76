"""
Typed detection results.

A Detection is a value object in absolute frame coordinates. A DetectionSet is
the immutable list of detections returned for one capture. There is no identity
across captures; callers match detections by coordinate proximity.
"""

import time
from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Iterator, List, Optional, Tuple


class PanelState(str, Enum):
    PRIMARY_ACTIVE = "primary_active"        # blue panel ready to build
    PRIMARY_MUTED = "primary_muted"          # grey panel, build maxed out
    SECONDARY_VARIANT = "secondary_variant"  # grey panel with accent-coloured text
    EXCLUDED_WASH = "excluded_wash"          # panel covered by the green wash
    UNRECOGNIZED = "unrecognized"


#: Panels the level loop will hand to the build protocol
BUILD_CAPABLE_STATES = frozenset({PanelState.PRIMARY_ACTIVE, PanelState.UNRECOGNIZED})


@dataclass(frozen=True)
class Detection:
    """One labelled detection in absolute frame coordinates."""
    id: int
    x: float
    y: float
    width: int
    height: int
    kind: str = "panel"  # "panel" or "marker"
    state: Optional[PanelState] = None
    name: Optional[str] = None
    sources: FrozenSet[str] = frozenset()
    attributes: Dict[str, bool] = field(default_factory=dict, compare=False)

    @property
    def center(self) -> Tuple[int, int]:
        return (int(round(self.x + self.width / 2)), int(round(self.y + self.height / 2)))

    def near(self, other: "Detection", tolerance: float) -> bool:
        return abs(self.x - other.x) <= tolerance and abs(self.y - other.y) <= tolerance

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data = asdict(self)
        data["state"] = self.state.value if self.state else None
        data["sources"] = sorted(self.sources)
        data["center"] = list(self.center)
        return data


@dataclass(frozen=True)
class DetectionSet:
    """Immutable detections for one capture."""
    items: Tuple[Detection, ...] = ()
    timestamp: float = field(default_factory=time.time)

    def __iter__(self) -> Iterator[Detection]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)

    def __bool__(self) -> bool:
        return bool(self.items)

    def first(self) -> Optional[Detection]:
        return self.items[0] if self.items else None

    def with_state(self, *states: PanelState) -> List[Detection]:
        return [d for d in self.items if d.state in states]

    def named(self, name: str) -> Optional[Detection]:
        for d in self.items:
            if d.name == name:
                return d
        return None

    def unnamed(self) -> List[Detection]:
        return [d for d in self.items if not d.name]

    def positions(self) -> List[Tuple[float, float]]:
        return sorted((d.x, d.y) for d in self.items)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "count": len(self.items),
            "timestamp": self.timestamp,
            "detections": [d.to_dict() for d in self.items],
        }


def merge_detections(
    first: Iterable[Detection], second: Iterable[Detection], tolerance: float = 1.0
) -> DetectionSet:
    """
    Merge two marker lists from different detector passes.

    Detections whose (x, y) agree within ``tolerance`` collapse into one; the
    merged detection keeps the first one's geometry and the union of state,
    name, source and attribute metadata. Ids are reassigned 1-based.
    """
    merged: List[Detection] = []
    for det in list(first) + list(second):
        for i, existing in enumerate(merged):
            if existing.near(det, tolerance):
                merged[i] = replace(
                    existing,
                    state=existing.state or det.state,
                    name=existing.name or det.name,
                    sources=existing.sources | det.sources,
                    attributes={**det.attributes, **existing.attributes},
                )
                break
        else:
            merged.append(det)
    return DetectionSet(tuple(replace(d, id=i) for i, d in enumerate(merged, start=1)))
