"""
Geometry utilities - Quadrilaterals, edge lengths and coordinate conversion
"""
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple, Union
import math

import numpy as np

from .errors import InvalidCornerCount

Point = Tuple[float, float]

DEFAULT_MIN_DIMENSION = 300
DEFAULT_MAX_DIMENSION = 4000


@dataclass(frozen=True)
class Quad:
    """
    Document boundary in source-image pixel coordinates.

    Origin is the top-left corner of the image, y grows downward. Points are
    ordered top-left, top-right, bottom-right, bottom-left. Convexity is not
    enforced.
    """
    top_left: Point
    top_right: Point
    bottom_right: Point
    bottom_left: Point

    @classmethod
    def from_points(cls, points: Iterable[Sequence[float]]) -> "Quad":
        """Build a Quad from 4 (x, y) pairs in TL, TR, BR, BL order"""
        pts = [(float(p[0]), float(p[1])) for p in points]
        if len(pts) != 4:
            raise InvalidCornerCount(len(pts))
        return cls(*pts)

    @classmethod
    def from_rect(cls, x: float, y: float, width: float, height: float) -> "Quad":
        """Axis-aligned rectangle with its top-left corner at (x, y)"""
        return cls(
            (x, y),
            (x + width, y),
            (x + width, y + height),
            (x, y + height),
        )

    @property
    def points(self) -> List[Point]:
        return [self.top_left, self.top_right, self.bottom_right, self.bottom_left]

    def as_array(self) -> np.ndarray:
        """4x2 float32 array, the layout OpenCV transforms expect"""
        return np.array(self.points, dtype=np.float32)

    def rotated(self, steps: int = 1) -> "Quad":
        """Cyclically shift the corner labels (1 step: TR becomes TL)"""
        pts = self.points
        steps %= 4
        return Quad(*(pts[steps:] + pts[:steps]))

    def scaled(self, sx: float, sy: Optional[float] = None) -> "Quad":
        """Scale every corner about the origin; sy defaults to sx"""
        sy = sx if sy is None else sy
        return Quad(*[(x * sx, y * sy) for x, y in self.points])

    def area(self) -> float:
        """Shoelace area (absolute value)"""
        pts = self.points
        total = 0.0
        for i in range(4):
            x1, y1 = pts[i]
            x2, y2 = pts[(i + 1) % 4]
            total += x1 * y2 - x2 * y1
        return abs(total) / 2.0

    def is_within(self, width: float, height: float) -> bool:
        return all(0 <= x <= width and 0 <= y <= height for x, y in self.points)

    def to_list(self) -> List[List[float]]:
        return [[x, y] for x, y in self.points]


QuadLike = Union[Quad, Sequence[Sequence[float]]]


def as_quad(value: QuadLike) -> Quad:
    """Accept a Quad or any sequence of points; raises InvalidCornerCount"""
    if isinstance(value, Quad):
        return value
    return Quad.from_points(value)


def edge_length(p1: Sequence[float], p2: Sequence[float]) -> float:
    """Euclidean distance between two points"""
    return math.hypot(p2[0] - p1[0], p2[1] - p1[1])


def estimate_target_size(
    quad: QuadLike,
    min_dimension: int = DEFAULT_MIN_DIMENSION,
    max_dimension: int = DEFAULT_MAX_DIMENSION,
) -> Tuple[int, int]:
    """
    Size of the rectified output for a quadrilateral.

    Width is the longer of the top and bottom edges, height the longer of the
    left and right edges. Both are rounded to whole pixels and clamped to
    [min_dimension, max_dimension].

    Returns:
        (width, height) in pixels
    """
    q = as_quad(quad)
    width = max(edge_length(q.top_left, q.top_right), edge_length(q.bottom_left, q.bottom_right))
    height = max(edge_length(q.top_left, q.bottom_left), edge_length(q.top_right, q.bottom_right))
    return (
        _clamp(int(round(width)), min_dimension, max_dimension),
        _clamp(int(round(height)), min_dimension, max_dimension),
    )


def normalized_to_pixel(point: Sequence[float], width: float, height: float) -> Point:
    """Normalized bottom-left-origin coordinates to top-left-origin pixels"""
    return (point[0] * width, (1.0 - point[1]) * height)


def pixel_to_normalized(point: Sequence[float], width: float, height: float) -> Point:
    """Top-left-origin pixels to normalized bottom-left-origin coordinates"""
    return (point[0] / width, 1.0 - point[1] / height)


def order_corners(points: np.ndarray) -> np.ndarray:
    """
    Order 4 arbitrary points as TL, TR, BR, BL (top-left origin).

    TL has the smallest x + y, BR the largest; TR has the smallest y - x,
    BL the largest.
    """
    pts = np.asarray(points, dtype=np.float32).reshape(4, 2)
    ordered = np.zeros((4, 2), dtype=np.float32)
    s = pts.sum(axis=1)
    diff = np.diff(pts, axis=1).ravel()
    ordered[0] = pts[np.argmin(s)]
    ordered[2] = pts[np.argmax(s)]
    ordered[1] = pts[np.argmin(diff)]
    ordered[3] = pts[np.argmax(diff)]
    return ordered


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))
