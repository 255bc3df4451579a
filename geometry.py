"""
Pinball Geometry Kernel
Primitive collision tests shared by every obstacle handler.
"""

from typing import NamedTuple

import numpy as np

# Below this separation two centres are treated as coincident.
ZERO_DISTANCE: float = 1e-9


class Separation(NamedTuple):
    """Result of a circle-circle test, reusable by collision response."""
    overlapping: bool
    offset: np.ndarray   # c1 - c2  (dx, dy)
    distance: float

    @property
    def degenerate(self) -> bool:
        return self.distance < ZERO_DISTANCE

    def normal(self) -> np.ndarray | None:
        """Unit vector from c2 towards c1, or None when the centres coincide."""
        if self.degenerate:
            return None
        return self.offset / self.distance


def circle_overlap(c1, r1: float, c2, r2: float) -> Separation:
    """Euclidean overlap test between two circles.

    Returns the separating offset and distance alongside the boolean so the
    caller can build a response without recomputing them.
    """
    offset = np.asarray(c1, dtype=float) - np.asarray(c2, dtype=float)
    distance = float(np.hypot(offset[0], offset[1]))
    return Separation(distance < r1 + r2, offset, distance)


def circle_rect_overlap(center, radius: float, rect) -> bool:
    """Closest-point test of a circle against an axis-aligned rectangle.

    ``rect`` is ``(x, y, width, height)`` with (x, y) the top-left corner.
    """
    x, y, w, h = rect
    cx, cy = float(center[0]), float(center[1])
    closest_x = max(x, min(cx, x + w))
    closest_y = max(y, min(cy, y + h))
    dx = cx - closest_x
    dy = cy - closest_y
    return (dx * dx + dy * dy) < radius * radius


def point_to_segment_distance(point, a, b) -> float:
    """Distance from ``point`` to the segment a-b (projection, clamped to [0, 1])."""
    p = np.asarray(point, dtype=float)
    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float)
    ab = b - a
    len_sq = float(np.dot(ab, ab))
    if len_sq == 0.0:
        closest = a
    else:
        t = max(0.0, min(1.0, float(np.dot(p - a, ab)) / len_sq))
        closest = a + t * ab
    d = p - closest
    return float(np.hypot(d[0], d[1]))
