"""
Round marker (red indicator) detection.

One parameterized pipeline runs in two passes over the same frame:

- GENERAL_PASS: tight size/aspect band, point exclusions tested against the
  marker's top-left corner
- BOUNDARY_PASS: relaxed height/aspect band for markers cut off by the screen
  edge, rectangle exclusions tested against the marker's centre, plus the
  "exit" naming rule

A marker must contain a bright near-white indicator glyph near its upper
centre. Markers matching a naming rule are never suppressed by exclusions.
The two passes' outputs are merged with ``merge_detections``.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np

from . import color
from .color import ColorPredicate
from .detection import Detection, DetectionSet, merge_detections
from .region import Region, clip_rect, extract_region
from .segmentation import Blob, segment


logger = logging.getLogger(__name__)

RESEARCH_MARKER = "research"
EXIT_MARKER = "exit"


@dataclass(frozen=True)
class NamedLocation:
    """A marker consistently found at one place always carries the same name."""
    name: str
    x: int
    y: int
    tolerance: int

    def matches(self, x: float, y: float) -> bool:
        return abs(x - self.x) <= self.tolerance and abs(y - self.y) <= self.tolerance


def _point_zone(x: int, y: int, tolerance: int = 5) -> Region:
    return Region(x - tolerance, y - tolerance, 2 * tolerance, 2 * tolerance)


@dataclass(frozen=True)
class MarkerPassConfig:
    """Configuration for one marker detector pass."""
    name: str
    size_min: int = 24
    size_max: int = 34
    # Bounds are size_min * factor_min .. size_max * factor_max
    width_factor_min: float = 0.5
    height_factor_min: float = 0.5
    dimension_factor_max: float = 1.5
    area_factor_min: float = 0.5
    area_factor_max: float = 1.5
    aspect_min: float = 0.7   # exclusive
    aspect_max: float = 1.3   # exclusive
    # Indicator glyph sub-rectangle (fractions of the marker box)
    glyph_rect: Region = Region(0.25, 0.2, 0.5, 0.4, relative=True)
    exclusion_zones: Tuple[Region, ...] = ()
    exclusion_anchor: str = "origin"  # "origin" (top-left) or "center"
    named_locations: Tuple[NamedLocation, ...] = ()
    predicate: ColorPredicate = color.MARKER_RED
    glyph_predicate: ColorPredicate = color.MARKER_GLYPH


GENERAL_PASS = MarkerPassConfig(
    name="general",
    exclusion_zones=(
        _point_zone(48, 206),
        _point_zone(386, 207),
        _point_zone(48, 280),
        _point_zone(300, 894),
        _point_zone(51, 890),   # exit marker; reported by the boundary pass
    ),
    exclusion_anchor="origin",
    named_locations=(NamedLocation(RESEARCH_MARKER, 368, 893, 5),),
)

BOUNDARY_PASS = MarkerPassConfig(
    name="boundary",
    height_factor_min=0.15,
    aspect_min=0.5,
    aspect_max=2.0,
    exclusion_zones=(
        Region(0, 0, 100, 480),
        Region(0, 0, 450, 410),
        Region(320, 0, 130, 480),
        Region(0, 800, 100, 200),
        Region(0, 860, 450, 140),
    ),
    exclusion_anchor="center",
    named_locations=(
        NamedLocation(EXIT_MARKER, 51, 890, 10),
        NamedLocation(RESEARCH_MARKER, 368, 893, 10),
    ),
)


class MarkerDetector:
    """Runs one marker pass over a capture region."""

    def __init__(self, config: MarkerPassConfig = GENERAL_PASS):
        self.config = config

    def passes_size_gate(self, blob: Blob) -> bool:
        cfg = self.config
        w, h = blob.width, blob.height
        area = w * h
        if not (cfg.size_min ** 2 * cfg.area_factor_min <= area <= cfg.size_max ** 2 * cfg.area_factor_max):
            return False
        if not (cfg.size_min * cfg.width_factor_min <= w <= cfg.size_max * cfg.dimension_factor_max):
            return False
        if not (cfg.size_min * cfg.height_factor_min <= h <= cfg.size_max * cfg.dimension_factor_max):
            return False
        return cfg.aspect_min < w / h < cfg.aspect_max

    def has_indicator_glyph(self, buffer: np.ndarray, blob: Blob) -> bool:
        x, y, w, h = self.config.glyph_rect.within(blob.min_x, blob.min_y, blob.width, blob.height)
        clipped = clip_rect(buffer.shape[1], buffer.shape[0], x, y, w, h)
        if clipped is None:
            return False
        cx, cy, cw, ch = clipped
        return bool(np.any(self.config.glyph_predicate(buffer[cy:cy + ch, cx:cx + cw])))

    def name_for(self, x: float, y: float) -> Optional[str]:
        for loc in self.config.named_locations:
            if loc.matches(x, y):
                return loc.name
        return None

    def is_excluded(self, x: float, y: float, width: int, height: int) -> bool:
        if self.config.exclusion_anchor == "center":
            px, py = x + width / 2, y + height / 2
        else:
            px, py = x, y
        return any(zone.contains(px, py) for zone in self.config.exclusion_zones)

    def detect(self, frame: np.ndarray, region: Region) -> DetectionSet:
        """
        Detect markers in a frame.

        Args:
            frame: Full frame pixels (H x W x C, RGB order)
            region: Absolute capture region inside the frame

        Returns:
            DetectionSet of markers in absolute coordinates, tagged with this
            pass's name as their source
        """
        buffer = extract_region(frame, region)
        ox, oy = int(region.x), int(region.y)
        found: List[Detection] = []

        for blob in segment(buffer, self.config.predicate):
            if not self.passes_size_gate(blob) or not self.has_indicator_glyph(buffer, blob):
                continue
            abs_x, abs_y = blob.min_x + ox, blob.min_y + oy
            name = self.name_for(abs_x, abs_y)
            if name is None and self.is_excluded(abs_x, abs_y, blob.width, blob.height):
                logger.debug(f"[{self.config.name}] marker at ({abs_x}, {abs_y}) excluded")
                continue
            found.append(Detection(
                id=len(found) + 1,
                x=abs_x,
                y=abs_y,
                width=blob.width,
                height=blob.height,
                kind="marker",
                name=name,
                sources=frozenset({self.config.name}),
            ))

        logger.debug(
            f"[{self.config.name}] {len(found)} marker(s): "
            + ", ".join(f"({d.x}, {d.y}){' ' + d.name if d.name else ''}" for d in found)
        )
        return DetectionSet(tuple(found))


class CombinedMarkerDetector:
    """Runs the general and boundary passes and merges their output."""

    def __init__(
        self,
        passes: Tuple[MarkerPassConfig, ...] = (GENERAL_PASS, BOUNDARY_PASS),
        merge_tolerance: float = 1.0,
    ):
        self.detectors = [MarkerDetector(cfg) for cfg in passes]
        self.merge_tolerance = merge_tolerance

    def detect(self, frame: np.ndarray, region: Region) -> DetectionSet:
        merged = DetectionSet()
        for detector in self.detectors:
            merged = merge_detections(merged, detector.detect(frame, region), self.merge_tolerance)
        return merged
