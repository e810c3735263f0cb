"""
Corner Detector - Locates the document boundary in a photo
"""
from dataclasses import dataclass, field
from typing import Optional
import logging

import numpy as np

from ..errors import DetectionFailed
from ..geometry import Quad, normalized_to_pixel
from .rectangles import ContourRectangleDetector, DetectorConfig, RectangleDetector, RectangleObservation

logger = logging.getLogger(__name__)

MIN_FALLBACK_MARGIN = 0.05
MAX_FALLBACK_MARGIN = 0.10


@dataclass
class CornerDetectorConfig:
    """Configuration for corner detection"""
    thresholds: DetectorConfig = field(default_factory=DetectorConfig)
    use_fallback: bool = True
    fallback_margin: float = 0.05  # fraction of min(width, height)

    def __post_init__(self):
        if not MIN_FALLBACK_MARGIN <= self.fallback_margin <= MAX_FALLBACK_MARGIN:
            raise ValueError(
                f"fallback_margin must be within [{MIN_FALLBACK_MARGIN}, {MAX_FALLBACK_MARGIN}], "
                f"got {self.fallback_margin}"
            )


@dataclass
class Detection:
    """Outcome of a corner detection run"""
    quad: Quad
    confidence: float
    used_fallback: bool = False


class CornerDetector:
    """
    Produces a 4-point document boundary for a raster.

    The primary rectangle detector runs first and the highest-confidence
    candidate wins (ties keep the detector's order). When the primary finds
    nothing or errors, the fallback returns the image bounds inset by a
    margin, so the pipeline can continue with a near-full-frame result.
    """

    def __init__(
        self,
        config: Optional[CornerDetectorConfig] = None,
        primary: Optional[RectangleDetector] = None,
    ):
        self.config = config or CornerDetectorConfig()
        self.primary = primary or ContourRectangleDetector()

    def detect(self, image: np.ndarray) -> Quad:
        """Return the document quadrilateral in pixel coordinates"""
        return self.locate(image).quad

    def locate(self, image: np.ndarray) -> Detection:
        """
        Detect the document boundary.

        Args:
            image: BGR raster

        Returns:
            Detection with the chosen quad and whether the fallback produced it

        Raises:
            DetectionFailed: the primary found nothing and the fallback is
                disabled or cannot run on this raster
        """
        height, width = _raster_size(image)

        try:
            candidates = self.primary.detect_rectangles(image, self.config.thresholds)
        except Exception as e:
            logger.warning(f"Rectangle detector {self.primary.name} failed: {e}")
            candidates = []

        if candidates:
            best = self._select_best(candidates)
            quad = Quad(*(
                normalized_to_pixel(p, width, height)
                for p in (best.top_left, best.top_right, best.bottom_right, best.bottom_left)
            ))
            logger.info(f"Detected document corners (confidence {best.confidence:.2f}): {quad.to_list()}")
            return Detection(quad=quad, confidence=best.confidence)

        if not self.config.use_fallback:
            raise DetectionFailed("No document rectangle detected")

        logger.warning("No document rectangle detected, using inset image bounds")
        return Detection(quad=self.fallback_quad(width, height), confidence=0.0, used_fallback=True)

    def fallback_quad(self, width: int, height: int) -> Quad:
        """Image bounds inset by the configured margin"""
        margin = min(width, height) * self.config.fallback_margin
        return Quad.from_rect(margin, margin, width - 2 * margin, height - 2 * margin)

    @staticmethod
    def _select_best(candidates) -> RectangleObservation:
        # max() keeps the first of equal maxima
        return max(candidates, key=lambda c: c.confidence)


def _raster_size(image):
    shape = getattr(image, "shape", None)
    if shape is None or len(shape) < 2 or shape[0] == 0 or shape[1] == 0:
        raise DetectionFailed("Cannot detect corners on an empty raster")
    return shape[0], shape[1]
