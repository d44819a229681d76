"""
Rectangular regions of a captured frame.

Provides:
- Region: absolute rectangle in frame coordinates, or fractional rectangle
  expressed relative to another rectangle (used for panel/marker sub-tests)
- extract_region: strict crop of a frame to a configured region
- clip_rect: lenient crop used by sub-tests (clamps to the buffer)
- region_average_color: mean RGB colour of a crop
"""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import cv2
import numpy as np


class RegionError(Exception):
    """Raised when a configured region does not fit the frame."""


@dataclass(frozen=True)
class Region:
    """
    A rectangle of interest.

    Coordinates can be:
    - Absolute pixels: x=0, y=100, width=450, height=900
    - Relative (0.0-1.0) to a parent rectangle: x=0.05, y=0.1, width=0.35, height=0.8
    """
    x: float
    y: float
    width: float
    height: float
    relative: bool = False  # True if coordinates are fractions of a parent rectangle

    def validate(self) -> "Region":
        if self.width <= 0 or self.height <= 0:
            raise RegionError(f"Region must have positive size, got {self.width}x{self.height}")
        if not self.relative and (self.x < 0 or self.y < 0):
            raise RegionError(f"Region origin must be non-negative, got ({self.x}, {self.y})")
        return self

    def within(self, parent_x: int, parent_y: int, parent_w: int, parent_h: int) -> Tuple[int, int, int, int]:
        """
        Resolve a relative region against a parent rectangle.

        Fractions are floored the same way for offset and size, so the result
        scales with the parent and never depends on absolute pixel counts.

        Returns:
            Tuple of (x, y, width, height) in the parent's coordinate space
        """
        if not self.relative:
            return (int(self.x), int(self.y), int(self.width), int(self.height))
        return (
            parent_x + int(parent_w * self.x),
            parent_y + int(parent_h * self.y),
            int(parent_w * self.width),
            int(parent_h * self.height),
        )

    @property
    def center(self) -> Tuple[float, float]:
        return (self.x + self.width / 2, self.y + self.height / 2)

    def contains(self, px: float, py: float) -> bool:
        """Inclusive point test (both edges count as inside)."""
        return self.x <= px <= self.x + self.width and self.y <= py <= self.y + self.height

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


def extract_region(pixels: np.ndarray, region: Region) -> np.ndarray:
    """
    Crop a full frame to an absolute region.

    Args:
        pixels: Frame pixels (H x W x C numpy array)
        region: Absolute region; must lie inside the frame

    Returns:
        View of the cropped pixels

    Raises:
        RegionError: if the region is empty or exceeds the frame bounds
    """
    region.validate()
    height, width = pixels.shape[:2]
    x, y, w, h = int(region.x), int(region.y), int(region.width), int(region.height)
    if x + w > width or y + h > height:
        raise RegionError(
            f"Region {region.to_dict()} exceeds frame bounds {width}x{height}"
        )
    return pixels[y:y + h, x:x + w]


def clip_rect(
    buffer_w: int, buffer_h: int, x: int, y: int, w: int, h: int
) -> Optional[Tuple[int, int, int, int]]:
    """
    Clamp a rectangle to a buffer.

    Returns:
        (x, y, width, height) of the clamped rectangle, or None when nothing
        of it remains inside the buffer
    """
    left = max(0, x)
    top = max(0, y)
    right = min(buffer_w, x + w)
    bottom = min(buffer_h, y + h)
    if right <= left or bottom <= top:
        return None
    return (left, top, right - left, bottom - top)


def region_average_color(pixels: np.ndarray) -> Tuple[int, int, int]:
    """Average (R, G, B) of a crop, ignoring alpha."""
    if pixels.size == 0:
        return (0, 0, 0)
    avg = cv2.mean(np.ascontiguousarray(pixels[:, :, :3]))[:3]
    return tuple(int(round(c)) for c in avg)
