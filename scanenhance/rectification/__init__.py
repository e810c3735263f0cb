# Rectification module
# Perspective correction of a detected document quadrilateral
# into an axis-aligned raster of estimated size

from .rectifier import PerspectiveRectifier

__all__ = ["PerspectiveRectifier"]
