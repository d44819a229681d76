"""
Colour predicates over RGB pixel buffers.

Each predicate is a pure function from an RGB(A) buffer (H x W x C, uint8) to a
boolean mask of the same height and width. Predicates work pixel-by-pixel, so
running one on a single-pixel buffer answers "is this pixel in the family".

Hue is in degrees (0-360), saturation and value in percent (0-100), matching
the thresholds the detectors were tuned with.
"""

from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Tuple

import cv2
import numpy as np


ColorPredicate = Callable[[np.ndarray], np.ndarray]


def hsv_planes(pixels: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Convert an RGB(A) buffer to float HSV planes.

    Returns:
        (h, s, v) arrays with h in [0, 360), s and v in [0, 100]
    """
    rgb = np.ascontiguousarray(pixels[:, :, :3], dtype=np.float32) / 255.0
    hsv = cv2.cvtColor(rgb, cv2.COLOR_RGB2HSV)
    return hsv[:, :, 0], hsv[:, :, 1] * 100.0, hsv[:, :, 2] * 100.0


def rgb_to_hsv(r: int, g: int, b: int) -> Tuple[float, float, float]:
    """Scalar conversion for a single pixel (used for average colours)."""
    h, s, v = hsv_planes(np.array([[[r, g, b]]], dtype=np.uint8))
    return float(h[0, 0]), float(s[0, 0]), float(v[0, 0])


def _channels(pixels: np.ndarray):
    rgb = pixels[:, :, :3].astype(np.int16)
    return rgb[:, :, 0], rgb[:, :, 1], rgb[:, :, 2]


@dataclass(frozen=True)
class HueRule:
    """
    Hue/saturation/value window.

    Hue bounds are inclusive; saturation and value floors are strict.
    When hue_min > hue_max the window wraps through 0 (e.g. reds 345..15).
    """
    hue_min: float
    hue_max: float
    sat_min: float
    val_min: float
    sat_max: Optional[float] = None

    def __call__(self, pixels: np.ndarray) -> np.ndarray:
        h, s, v = hsv_planes(pixels)
        if self.hue_min <= self.hue_max:
            hue_ok = (h >= self.hue_min) & (h <= self.hue_max)
        else:
            hue_ok = (h >= self.hue_min) | (h <= self.hue_max)
        mask = hue_ok & (s > self.sat_min) & (v > self.val_min)
        if self.sat_max is not None:
            mask &= s < self.sat_max
        return mask


@dataclass(frozen=True)
class DominantChannel:
    """Blue (or red/green) must beat both other channels by a margin."""
    channel: int
    margin: int

    def __call__(self, pixels: np.ndarray) -> np.ndarray:
        chans = _channels(pixels)
        target = chans[self.channel]
        others = [c for i, c in enumerate(chans) if i != self.channel]
        return (target > others[0] + self.margin) & (target > others[1] + self.margin)


@dataclass(frozen=True)
class GreyTone:
    """Low-saturation pixel with R, G and B close together, inside a value band."""
    sat_max: float
    spread_max: int
    val_min: float
    val_max: float

    def __call__(self, pixels: np.ndarray) -> np.ndarray:
        _, s, v = hsv_planes(pixels)
        r, g, b = _channels(pixels)
        spread = np.maximum(np.maximum(r, g), b) - np.minimum(np.minimum(r, g), b)
        return (s < self.sat_max) & (spread <= self.spread_max) & (v >= self.val_min) & (v <= self.val_max)


@dataclass(frozen=True)
class NearWhite:
    """All three channels strictly above a threshold."""
    threshold: int

    def __call__(self, pixels: np.ndarray) -> np.ndarray:
        r, g, b = _channels(pixels)
        return (r > self.threshold) & (g > self.threshold) & (b > self.threshold)


def all_of(*predicates: ColorPredicate) -> ColorPredicate:
    def _all(pixels: np.ndarray) -> np.ndarray:
        mask = predicates[0](pixels)
        for pred in predicates[1:]:
            mask = mask & pred(pixels)
        return mask
    return _all


def any_of(*predicates: ColorPredicate) -> ColorPredicate:
    def _any(pixels: np.ndarray) -> np.ndarray:
        mask = predicates[0](pixels)
        for pred in predicates[1:]:
            mask = mask | pred(pixels)
        return mask
    return _any


def density(pixels: np.ndarray, predicate: ColorPredicate) -> float:
    """Fraction of pixels in the buffer matching the predicate (0 for empty buffers)."""
    if pixels.size == 0:
        return 0.0
    mask = predicate(pixels)
    return float(np.count_nonzero(mask)) / mask.size


def matches(predicate: ColorPredicate, r: int, g: int, b: int) -> bool:
    """Evaluate a predicate for one pixel."""
    return bool(predicate(np.array([[[r, g, b]]], dtype=np.uint8))[0, 0])


# Named colour families. Thresholds are empirically tuned against one visual
# theme; changing them changes detection behaviour.

#: Blue build panel body
PANEL_BLUE: ColorPredicate = all_of(
    HueRule(hue_min=180, hue_max=260, sat_min=20, val_min=20),
    DominantChannel(channel=2, margin=10),
)

#: Muted (grey) build panel body
PANEL_GREY: ColorPredicate = GreyTone(sat_max=15, spread_max=12, val_min=25, val_max=85)

#: Segmentation admits blue and grey panels in one connected pass
PANEL_BODY: ColorPredicate = any_of(PANEL_BLUE, PANEL_GREY)

#: Red-orange accent circle / accent text inside a panel
ACCENT: ColorPredicate = HueRule(hue_min=5, hue_max=55, sat_min=60, val_min=60)

#: Light glyph text inside a panel
GLYPH_WHITE: ColorPredicate = NearWhite(threshold=230)

#: Green wash laid over panels that cannot be used
WASH_GREEN: ColorPredicate = HueRule(hue_min=90, hue_max=150, sat_min=30, val_min=30)

#: Round red marker
MARKER_RED: ColorPredicate = HueRule(hue_min=345, hue_max=15, sat_min=70, val_min=60)

#: Indicator glyph (arrow) inside a marker
MARKER_GLYPH: ColorPredicate = NearWhite(threshold=240)


def is_grey_toned(rgb: Sequence[int], sat_max: float = 15.0, spread_max: int = 12) -> bool:
    """Classify an average colour as grey: low saturation and R, G, B within a tolerance."""
    r, g, b = (int(c) for c in rgb[:3])
    _, s, _ = rgb_to_hsv(r, g, b)
    return s < sat_max and (max(r, g, b) - min(r, g, b)) <= spread_max
