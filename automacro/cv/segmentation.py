"""
Connected-component segmentation over a colour predicate.

A blob is a maximal 4-connected set of pixels satisfying the predicate,
reported by its bounding box in buffer-local coordinates.
"""

from dataclasses import dataclass
from typing import List

import cv2
import numpy as np

from .color import ColorPredicate


@dataclass(frozen=True)
class Blob:
    """Bounding box of one connected component (inclusive bounds)."""
    min_x: int
    max_x: int
    min_y: int
    max_y: int
    pixel_count: int = 0

    @property
    def width(self) -> int:
        return self.max_x - self.min_x + 1

    @property
    def height(self) -> int:
        return self.max_y - self.min_y + 1

    @property
    def area(self) -> int:
        return self.width * self.height

    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height

    def offset(self, dx: int, dy: int) -> "Blob":
        return Blob(self.min_x + dx, self.max_x + dx, self.min_y + dy, self.max_y + dy, self.pixel_count)


def segment_mask(mask: np.ndarray) -> List[Blob]:
    """
    Label 4-connected components of a boolean mask.

    Components are returned in discovery order: raster scan (top-to-bottom,
    left-to-right) of the first pixel touched. No size filtering.
    """
    if mask.size == 0 or not mask.any():
        return []

    _, labels, stats, _ = cv2.connectedComponentsWithStats(mask.astype(np.uint8), connectivity=4)

    # Order by each label's first pixel in raster order; label 0 is the background
    ids, first = np.unique(labels.ravel(), return_index=True)
    order = [int(label) for _, label in sorted(zip(first, ids)) if label != 0]

    blobs: List[Blob] = []
    for label in order:
        x, y, w, h, area = (int(v) for v in stats[label])
        blobs.append(Blob(x, x + w - 1, y, y + h - 1, area))
    return blobs


def segment(pixels: np.ndarray, predicate: ColorPredicate) -> List[Blob]:
    """
    Segment a pixel buffer into blobs of predicate-matching pixels.

    Args:
        pixels: RGB(A) buffer (H x W x C)
        predicate: Colour predicate producing a boolean mask

    Returns:
        List of Blob in discovery order
    """
    if pixels.size == 0:
        return []
    return segment_mask(np.asarray(predicate(pixels), dtype=bool))
