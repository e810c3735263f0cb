"""
Perspective Rectifier - Flattens a document quadrilateral into a rectangle
"""
from itertools import combinations
import logging

import cv2
import numpy as np

from ..errors import RectificationFailed
from ..geometry import (
    DEFAULT_MAX_DIMENSION,
    DEFAULT_MIN_DIMENSION,
    QuadLike,
    as_quad,
    estimate_target_size,
)

logger = logging.getLogger(__name__)

# Minimum area of the triangle spanned by any three corners, in px^2
COLLINEAR_TOLERANCE = 1.0


class PerspectiveRectifier:
    """
    Maps a source quadrilateral onto an axis-aligned rectangle.

    Corner convention: both the quad and the output use top-left-origin pixel
    coordinates, and corners map directly:

        top_left     -> (0, 0)
        top_right    -> (w, 0)
        bottom_right -> (w, h)
        bottom_left  -> (0, h)

    where (w, h) is estimate_target_size(quad). No origin flip is applied.
    """

    def __init__(
        self,
        min_dimension: int = DEFAULT_MIN_DIMENSION,
        max_dimension: int = DEFAULT_MAX_DIMENSION,
        interpolation: int = cv2.INTER_CUBIC,
    ):
        self.min_dimension = min_dimension
        self.max_dimension = max_dimension
        self.interpolation = interpolation

    def target_size(self, quad: QuadLike):
        return estimate_target_size(quad, self.min_dimension, self.max_dimension)

    def rectify(self, image: np.ndarray, quad: QuadLike) -> np.ndarray:
        """
        Warp the quad region of image into a new raster.

        Args:
            image: BGR raster
            quad: Quad or 4 (x, y) points in TL, TR, BR, BL order

        Returns:
            Raster of exactly target_size(quad)

        Raises:
            InvalidCornerCount: quad does not have 4 points
            RectificationFailed: degenerate geometry
        """
        q = as_quad(quad)
        src = q.as_array()
        if not np.all(np.isfinite(src)):
            raise RectificationFailed("Corner coordinates must be finite")
        self._check_degenerate(src)

        width, height = self.target_size(q)
        dst = np.array(
            [[0, 0], [width, 0], [width, height], [0, height]],
            dtype=np.float32,
        )

        try:
            matrix = cv2.getPerspectiveTransform(src, dst)
        except cv2.error as e:
            raise RectificationFailed(f"Could not compute perspective transform: {e}") from e

        if not np.all(np.isfinite(matrix)) or abs(np.linalg.det(matrix)) < 1e-12:
            raise RectificationFailed("Perspective transform is singular")

        try:
            warped = cv2.warpPerspective(
                image,
                matrix,
                (width, height),
                flags=self.interpolation,
                borderMode=cv2.BORDER_REPLICATE,
            )
        except cv2.error as e:
            raise RectificationFailed(f"Perspective warp failed: {e}") from e

        logger.info(f"Rectified document to {width}x{height}")
        return warped

    @staticmethod
    def _check_degenerate(points: np.ndarray):
        for a, b, c in combinations(points, 3):
            twice_area = abs((b[0] - a[0]) * (c[1] - a[1]) - (c[0] - a[0]) * (b[1] - a[1]))
            if twice_area / 2.0 < COLLINEAR_TOLERANCE:
                raise RectificationFailed("Three or more corners are collinear or coincide")
