"""
Level name recognition with Tesseract.

Reads the level title from a fixed rectangle of the screen. Recognition is
best effort: any failure yields the placeholder name.
"""

import logging
from typing import Optional

import cv2
import numpy as np
import pytesseract

from ..cv.capture import Frame, FrameSource
from ..cv.region import Region, RegionError, extract_region

logger = logging.getLogger(__name__)

UNKNOWN_LEVEL = "Unknown Level"
LEVEL_NAME_REGION = Region(x=110, y=429, width=235, height=48)


def preprocess(pixels: np.ndarray) -> np.ndarray:
    """Grayscale, upscale and binarize for single-line OCR."""
    gray = cv2.cvtColor(np.ascontiguousarray(pixels[:, :, :3]), cv2.COLOR_RGB2GRAY)
    gray = cv2.resize(gray, None, fx=2, fy=2, interpolation=cv2.INTER_CUBIC)
    _, binary = cv2.threshold(gray, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)
    return binary


class LevelNameReader:
    """OCR collaborator for the level title."""

    def __init__(
        self,
        source: FrameSource,
        region: Region = LEVEL_NAME_REGION,
        tesseract_config: str = "--psm 7",
    ):
        self.source = source
        self.region = region
        self.tesseract_config = tesseract_config

    def recognize(self, frame: Frame) -> str:
        try:
            crop = extract_region(frame.pixels, self.region)
            text = pytesseract.image_to_string(preprocess(crop), config=self.tesseract_config)
        except (RegionError, pytesseract.TesseractError, OSError) as e:
            logger.warning(f"Level name OCR failed: {e}")
            return UNKNOWN_LEVEL
        text = " ".join(text.split())
        if not text:
            logger.info("Level name OCR returned no text")
            return UNKNOWN_LEVEL
        logger.info(f"Level name recognized: '{text}'")
        return text

    async def read_level_name(self) -> str:
        try:
            frame = await self.source.capture_frame()
        except Exception as e:
            logger.warning(f"Could not capture frame for level name: {e}")
            return UNKNOWN_LEVEL
        return self.recognize(frame)


class StaticLevelNames:
    """Reader used when OCR is disabled."""

    def __init__(self, name: Optional[str] = None):
        self.name = name or UNKNOWN_LEVEL

    async def read_level_name(self) -> str:
        return self.name
