"""
Rectangle Detectors - Primitives that propose document rectangles

A primitive reports candidates the way platform vision frameworks do:
normalized coordinates in [0, 1] with the origin at the bottom-left corner,
plus a confidence score. Converting them to pixel space is the corner
detector's job.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Tuple
import logging

import cv2
import numpy as np

from ..geometry import Point, order_corners, pixel_to_normalized

logger = logging.getLogger(__name__)


@dataclass
class DetectorConfig:
    """Thresholds applied by rectangle detectors"""
    min_aspect_ratio: float = 0.2   # short side / long side
    max_aspect_ratio: float = 1.0
    min_size: float = 0.2           # short side relative to the image's short side
    min_confidence: float = 0.3
    max_observations: int = 10


@dataclass
class RectangleObservation:
    """A candidate rectangle in normalized, bottom-left-origin coordinates"""
    top_left: Point
    top_right: Point
    bottom_right: Point
    bottom_left: Point
    confidence: float


class RectangleDetector(ABC):
    """Base class for rectangle-detection primitives"""

    @property
    @abstractmethod
    def name(self) -> str:
        """Detector name"""
        pass

    @abstractmethod
    def detect_rectangles(self, image: np.ndarray, config: DetectorConfig) -> List[RectangleObservation]:
        """Return candidate rectangles, possibly empty"""
        pass


class ContourRectangleDetector(RectangleDetector):
    """
    Finds convex four-sided contours with OpenCV.

    Pipeline:
    1. Downscale so the long side is at most `working_size`
    2. Grayscale, Gaussian blur, Canny edges, dilation to close gaps
    3. External contours, largest first
    4. Polygon approximation; keep convex quadrilaterals
    5. Filter by relative size, aspect ratio and confidence

    Confidence is the polygon area divided by the area of its minimum-area
    bounding rectangle, so a clean rectangle scores close to 1.0.
    """

    def __init__(
        self,
        working_size: int = 1000,
        canny_low: int = 50,
        canny_high: int = 150,
        approx_epsilon: float = 0.02,
    ):
        self.working_size = working_size
        self.canny_low = canny_low
        self.canny_high = canny_high
        self.approx_epsilon = approx_epsilon

    @property
    def name(self) -> str:
        return "opencv-contours"

    def detect_rectangles(self, image: np.ndarray, config: DetectorConfig) -> List[RectangleObservation]:
        small, _ = self._downscale(image)
        height, width = small.shape[:2]
        short_side = min(width, height)

        edges = self._edge_map(small)
        contours, _ = cv2.findContours(edges, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
        contours = sorted(contours, key=cv2.contourArea, reverse=True)

        # A passing candidate covers at least min_confidence * (min_size * short_side)^2
        min_area = 0.5 * config.min_confidence * (config.min_size * short_side) ** 2

        observations = []
        for contour in contours:
            if cv2.contourArea(contour) < min_area:
                break

            perimeter = cv2.arcLength(contour, True)
            approx = cv2.approxPolyDP(contour, self.approx_epsilon * perimeter, True)
            if len(approx) != 4 or not cv2.isContourConvex(approx):
                continue

            (_, _), (rect_w, rect_h), _ = cv2.minAreaRect(approx)
            if rect_w <= 0 or rect_h <= 0:
                continue

            short, long_ = sorted((rect_w, rect_h))
            if short / short_side < config.min_size:
                continue

            aspect = short / long_
            if not config.min_aspect_ratio <= aspect <= config.max_aspect_ratio:
                continue

            confidence = float(min(1.0, cv2.contourArea(approx) / (rect_w * rect_h)))
            if confidence < config.min_confidence:
                continue

            corners = order_corners(approx.reshape(4, 2))
            tl, tr, br, bl = (pixel_to_normalized(p, width, height) for p in corners)
            observations.append(RectangleObservation(tl, tr, br, bl, confidence))

            if len(observations) >= config.max_observations:
                break

        logger.debug(f"{self.name}: {len(observations)} candidate(s)")
        return observations

    def _downscale(self, image: np.ndarray) -> Tuple[np.ndarray, float]:
        height, width = image.shape[:2]
        scale = min(1.0, self.working_size / max(width, height))
        if scale >= 1.0:
            return image, 1.0
        size = (max(1, int(round(width * scale))), max(1, int(round(height * scale))))
        return cv2.resize(image, size, interpolation=cv2.INTER_AREA), scale

    def _edge_map(self, image: np.ndarray) -> np.ndarray:
        gray = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY) if image.ndim == 3 else image
        blurred = cv2.GaussianBlur(gray, (5, 5), 0)
        edges = cv2.Canny(blurred, self.canny_low, self.canny_high)
        kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (3, 3))
        return cv2.dilate(edges, kernel, iterations=1)
