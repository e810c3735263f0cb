# Detection module
# Finds the document boundary in a photo:
# - Rectangle-detection primitives (OpenCV contours)
# - Best-candidate selection and coordinate conversion
# - Inset-bounds fallback when nothing is found

from .corner_detector import CornerDetector, CornerDetectorConfig, Detection
from .rectangles import (
    RectangleDetector,
    ContourRectangleDetector,
    DetectorConfig,
    RectangleObservation,
)

__all__ = [
    "CornerDetector",
    "CornerDetectorConfig",
    "Detection",
    "RectangleDetector",
    "ContourRectangleDetector",
    "DetectorConfig",
    "RectangleObservation",
]
