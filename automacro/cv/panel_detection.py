"""
Build panel detection.

Finds blue/grey build panels inside the capture region and classifies each one
into a PanelState by sampling sub-rectangles of the panel:

- accent circle (left of centre): exactly one red-orange component of the
  right pixel count and roundness
- glyph text (right of centre): density of near-white pixels
- accent text (same rectangle): density of red-orange pixels
- body (central band, blue panels only): density of panel-blue pixels
- wash (whole panel): density of green wash pixels

Sub-rectangles are fractions of the detected panel's own size, so the tests
scale with the panel. Thresholds are tuned for one visual theme.
"""

import logging
import time
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Tuple

import numpy as np

from . import color
from .color import ColorPredicate
from .detection import Detection, DetectionSet, PanelState
from .region import Region, clip_rect, extract_region, region_average_color
from .segmentation import Blob, segment


logger = logging.getLogger(__name__)


@dataclass
class PanelDetectorConfig:
    """Panel detector configuration."""
    # Expected panel size is about 160x60; accept a tolerance band around it
    width_min: int = 140
    width_max: int = 180
    height_min: int = 50
    height_max: int = 70
    # Aspect ratio band, exclusive (160x60 is 2.66)
    aspect_min: float = 2.0
    aspect_max: float = 3.5

    # Grey-toned average colour
    grey_sat_max: float = 15.0
    grey_spread_max: int = 12

    # Accent circle sub-test
    circle_rect: Region = Region(0.05, 0.1, 0.35, 0.8, relative=True)
    circle_pixels_min: int = 100   # exclusive
    circle_pixels_max: int = 1000  # exclusive
    circle_aspect_min: float = 0.8
    circle_aspect_max: float = 1.2

    # Glyph text sub-test
    glyph_rect: Region = Region(0.45, 0.2, 0.5, 0.6, relative=True)
    glyph_density_min: float = 0.10
    accent_text_density_min: float = 0.03

    # Body colour sub-test (blue panels only)
    body_rect: Region = Region(0.35, 0.05, 0.3, 0.15, relative=True)
    body_density_min: float = 0.6

    # Green wash over the whole panel
    wash_density_min: float = 0.25

    # Absolute rectangles (frame coordinates) that never produce a detection;
    # tested against the panel's top-left corner
    exclusion_zones: Tuple[Region, ...] = (
        Region(149, 901, 10, 10),  # fixed UI element at (154, 906) +/- 5
    )

    segment_predicate: ColorPredicate = color.PANEL_BODY
    body_predicate: ColorPredicate = color.PANEL_BLUE
    accent_predicate: ColorPredicate = color.ACCENT
    glyph_predicate: ColorPredicate = color.GLYPH_WHITE
    wash_predicate: ColorPredicate = color.WASH_GREEN


@dataclass
class PanelFeatures:
    """Secondary features measured on one panel (diagnostics only)."""
    grey_toned: bool = False
    has_accent_circle: bool = False
    has_glyph_text: bool = False
    has_accent_text: bool = False
    body_dominant: bool = False
    wash_density: float = 0.0

    def to_attributes(self) -> Dict[str, bool]:
        return {
            "grey_toned": self.grey_toned,
            "has_accent_circle": self.has_accent_circle,
            "has_glyph_text": self.has_glyph_text,
            "has_accent_text": self.has_accent_text,
            "body_dominant": self.body_dominant,
        }


def decide_state(features: PanelFeatures, config: PanelDetectorConfig) -> PanelState:
    """Fixed decision order from measured features to a panel state."""
    if features.wash_density > config.wash_density_min:
        return PanelState.EXCLUDED_WASH
    if features.grey_toned and features.has_glyph_text and not features.has_accent_text:
        return PanelState.PRIMARY_MUTED
    if features.grey_toned and features.has_glyph_text and features.has_accent_text:
        return PanelState.SECONDARY_VARIANT
    if (not features.grey_toned and features.has_accent_circle
            and features.has_glyph_text and features.body_dominant):
        return PanelState.PRIMARY_ACTIVE
    return PanelState.UNRECOGNIZED


def post_filter(detections: List[Detection]) -> List[Detection]:
    """
    Drop low-confidence candidates.

    With at least one primary_active panel present, unrecognized and
    excluded_wash panels are noise; otherwise only excluded_wash is dropped.
    """
    if any(d.state == PanelState.PRIMARY_ACTIVE for d in detections):
        dropped = (PanelState.UNRECOGNIZED, PanelState.EXCLUDED_WASH)
    else:
        dropped = (PanelState.EXCLUDED_WASH,)
    return [d for d in detections if d.state not in dropped]


class PanelDetector:
    """Detects and classifies build panels in a capture region."""

    def __init__(self, config: Optional[PanelDetectorConfig] = None):
        self.config = config or PanelDetectorConfig()

    def passes_size_gate(self, width: int, height: int) -> bool:
        cfg = self.config
        if not (cfg.width_min <= width <= cfg.width_max and cfg.height_min <= height <= cfg.height_max):
            return False
        aspect = width / height
        return cfg.aspect_min < aspect < cfg.aspect_max

    def _sub_pixels(self, buffer: np.ndarray, blob: Blob, rect: Region) -> Optional[np.ndarray]:
        x, y, w, h = rect.within(blob.min_x, blob.min_y, blob.width, blob.height)
        clipped = clip_rect(buffer.shape[1], buffer.shape[0], x, y, w, h)
        if clipped is None:
            return None
        cx, cy, cw, ch = clipped
        return buffer[cy:cy + ch, cx:cx + cw]

    def _has_accent_circle(self, sub: Optional[np.ndarray]) -> bool:
        if sub is None:
            return False
        cfg = self.config
        accepted = [
            b for b in segment(sub, cfg.accent_predicate)
            if cfg.circle_pixels_min < b.pixel_count < cfg.circle_pixels_max
            and cfg.circle_aspect_min < b.aspect_ratio < cfg.circle_aspect_max
        ]
        return len(accepted) == 1

    def measure(self, buffer: np.ndarray, blob: Blob) -> PanelFeatures:
        """Run every sub-test for one size-gated blob (buffer-local coordinates)."""
        cfg = self.config
        body = buffer[blob.min_y:blob.max_y + 1, blob.min_x:blob.max_x + 1]
        avg = region_average_color(body)

        features = PanelFeatures()
        features.grey_toned = color.is_grey_toned(avg, cfg.grey_sat_max, cfg.grey_spread_max)
        features.wash_density = color.density(body, cfg.wash_predicate)
        features.has_accent_circle = self._has_accent_circle(
            self._sub_pixels(buffer, blob, cfg.circle_rect)
        )

        glyph = self._sub_pixels(buffer, blob, cfg.glyph_rect)
        if glyph is not None:
            features.has_glyph_text = color.density(glyph, cfg.glyph_predicate) > cfg.glyph_density_min
            features.has_accent_text = color.density(glyph, cfg.accent_predicate) > cfg.accent_text_density_min

        if not features.grey_toned:
            body_band = self._sub_pixels(buffer, blob, cfg.body_rect)
            if body_band is not None:
                features.body_dominant = color.density(body_band, cfg.body_predicate) > cfg.body_density_min

        return features

    def _excluded(self, x: float, y: float) -> bool:
        return any(zone.contains(x, y) for zone in self.config.exclusion_zones)

    def detect(self, frame: np.ndarray, region: Region) -> DetectionSet:
        """
        Detect panels in a frame.

        Args:
            frame: Full frame pixels (H x W x C, RGB order)
            region: Absolute capture region inside the frame

        Returns:
            DetectionSet of classified panels in absolute coordinates
        """
        start = time.perf_counter()
        buffer = extract_region(frame, region)
        ox, oy = int(region.x), int(region.y)

        candidates: List[Detection] = []
        for blob in segment(buffer, self.config.segment_predicate):
            if not self.passes_size_gate(blob.width, blob.height):
                continue
            features = self.measure(buffer, blob)
            state = decide_state(features, self.config)
            abs_x, abs_y = blob.min_x + ox, blob.min_y + oy
            if self._excluded(abs_x, abs_y):
                logger.debug(f"Panel at ({abs_x}, {abs_y}) suppressed by exclusion zone")
                continue
            candidates.append(Detection(
                id=0,
                x=abs_x,
                y=abs_y,
                width=blob.width,
                height=blob.height,
                kind="panel",
                state=state,
                attributes=features.to_attributes(),
            ))

        kept = post_filter(candidates)
        result = DetectionSet(tuple(
            replace(d, id=i) for i, d in enumerate(kept, start=1)
        ))

        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.debug(
            f"Panels: {len(candidates)} candidates, {len(result)} kept "
            f"({', '.join(d.state.value for d in result) or 'none'}) in {elapsed_ms:.1f}ms"
        )
        return result
