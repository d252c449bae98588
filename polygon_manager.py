"""
Polygon Manager Module
Polygon containment tests and selection polygon state
"""

import math
from collections.abc import Mapping
from typing import List, NamedTuple, Optional, Sequence

import numpy as np

MIN_POLYGON_POINTS = 3


class Point(NamedTuple):
    """2D point in pixel coordinates (origin top-left, y down)"""
    x: float
    y: float


def as_point(value) -> Point:
    """Accept a Point, an (x, y) pair or a {'x': .., 'y': ..} mapping"""
    if isinstance(value, Point):
        return value
    if isinstance(value, Mapping):
        return Point(float(value['x']), float(value['y']))
    x, y = value
    return Point(float(x), float(y))


def is_complete(polygon: Optional[Sequence]) -> bool:
    """A polygon needs at least three points to enclose anything"""
    return polygon is not None and len(polygon) >= MIN_POLYGON_POINTS


def contains(polygon: Optional[Sequence], x: float, y: float) -> bool:
    """
    Ray-casting point in polygon test

    A horizontal ray is cast rightward from (x, y). An edge counts as a
    crossing when exactly one endpoint lies strictly below y (larger y) and
    its intersection with the ray is strictly right of x. On an axis-aligned
    rectangle this makes the left and top edges inside and the right and
    bottom edges outside.

    Args:
        polygon: Ordered vertices, implicitly closed
        x, y: Point to test

    Returns:
        True if inside; always False for fewer than three vertices
    """
    if not is_complete(polygon):
        return False

    points = [as_point(p) for p in polygon]
    inside = False
    for i, (x1, y1) in enumerate(points):
        x2, y2 = points[(i + 1) % len(points)]
        if (y1 > y) != (y2 > y):
            intersect_x = (x2 - x1) * (y - y1) / (y2 - y1) + x1
            if x < intersect_x:
                inside = not inside
    return inside


def contains_points(polygon: Optional[Sequence], xs, ys) -> np.ndarray:
    """Vectorized contains() over coordinate arrays of equal shape"""
    xs = np.asarray(xs, dtype=np.float64)
    ys = np.asarray(ys, dtype=np.float64)
    inside = np.zeros(np.broadcast(xs, ys).shape, dtype=bool)
    if not is_complete(polygon):
        return inside

    points = [as_point(p) for p in polygon]
    for i, (x1, y1) in enumerate(points):
        x2, y2 = points[(i + 1) % len(points)]
        if y1 == y2:
            # Horizontal edges never cross the ray
            continue
        crosses = (y1 > ys) != (y2 > ys)
        intersect_x = (x2 - x1) * (ys - y1) / (y2 - y1) + x1
        inside ^= crosses & (xs < intersect_x)
    return inside


def polygon_mask(polygon: Optional[Sequence], width: int, height: int) -> np.ndarray:
    """Boolean (height, width) mask of the pixels the polygon contains"""
    ys, xs = np.mgrid[0:height, 0:width]
    return contains_points(polygon, xs, ys)


class PolygonManager:
    """Selection polygon built up point by point"""

    def __init__(self, hit_radius=5):
        self.points: List[Point] = []
        self.is_complete = False
        self.dragging_point_index: Optional[int] = None
        self.hit_radius = hit_radius

    def add_point(self, x, y):
        self.points.append(Point(float(x), float(y)))

    def remove_last_point(self):
        if self.points:
            self.points.pop()

    def clear(self):
        self.points = []
        self.is_complete = False
        self.dragging_point_index = None

    def check_point_intersection(self, x, y, radius=None) -> int:
        """Index of the first point within radius of (x, y), or -1"""
        if radius is None:
            radius = self.hit_radius
        for index, point in enumerate(self.points):
            if math.hypot(point.x - x, point.y - y) < radius:
                return index
        return -1

    def update_point(self, index, x, y):
        """Move an existing point (used while dragging)"""
        if 0 <= index < len(self.points):
            self.points[index] = Point(float(x), float(y))

    def is_point_in_polygon(self, x, y) -> bool:
        return contains(self.points, x, y)

    def set_complete(self, complete):
        self.is_complete = complete

    def is_valid(self) -> bool:
        return len(self.points) >= MIN_POLYGON_POINTS

    def get_points(self) -> List[Point]:
        return list(self.points)

    def to_list(self):
        """Points as [[x, y], ...] for JSON storage"""
        return [[p.x, p.y] for p in self.points]

    def from_list(self, points, complete=False):
        """Replace the current points with stored [[x, y], ...] data"""
        self.points = [as_point(p) for p in points]
        self.is_complete = bool(complete) and self.is_valid()
        self.dragging_point_index = None
