"""
Computer vision for the automation protocols.

This module provides:
- Frame sources (live screen capture, still images)
- Colour predicates and 4-connected blob segmentation
- Panel detection and state classification
- Round marker detection (two merged passes, named markers)
- DetectionService: capture + detect in one call
"""

from .capture import CaptureError, Frame, FrameSource, ImageFileSource, ScreenCapture
from .detection import (
    BUILD_CAPABLE_STATES,
    Detection,
    DetectionSet,
    PanelState,
    merge_detections,
)
from .marker_detection import (
    BOUNDARY_PASS,
    EXIT_MARKER,
    GENERAL_PASS,
    RESEARCH_MARKER,
    CombinedMarkerDetector,
    MarkerDetector,
    MarkerPassConfig,
)
from .panel_detection import PanelDetector, PanelDetectorConfig
from .region import Region, RegionError, extract_region
from .segmentation import Blob, segment, segment_mask
from .vision import DetectionService, Scan

__all__ = [
    # Capture
    "CaptureError",
    "Frame",
    "FrameSource",
    "ImageFileSource",
    "ScreenCapture",

    # Detection results
    "BUILD_CAPABLE_STATES",
    "Detection",
    "DetectionSet",
    "PanelState",
    "merge_detections",

    # Detectors
    "BOUNDARY_PASS",
    "EXIT_MARKER",
    "GENERAL_PASS",
    "RESEARCH_MARKER",
    "CombinedMarkerDetector",
    "MarkerDetector",
    "MarkerPassConfig",
    "PanelDetector",
    "PanelDetectorConfig",

    # Regions and segmentation
    "Region",
    "RegionError",
    "extract_region",
    "Blob",
    "segment",
    "segment_mask",

    "DetectionService",
    "Scan",
]
