"""
Geometric primitives for canvas coordinates.

Canvas coordinates grow to the right (x) and downwards (y). A block's
position is its top-left corner.
"""

from __future__ import annotations

import math


class Point:
    """2D point."""

    def __init__(self, x: float = 0.0, y: float = 0.0):
        self.x = x
        self.y = y

    def __repr__(self) -> str:
        return f"Point({self.x!r}, {self.y!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Point):
            return NotImplemented
        return self.x == other.x and self.y == other.y

    def __hash__(self) -> int:
        return hash((self.x, self.y))

    def __add__(self, other: Point) -> Point:
        return Point(self.x + other.x, self.y + other.y)

    def __sub__(self, other: Point) -> Point:
        return Point(self.x - other.x, self.y - other.y)

    def copy(self) -> Point:
        return Point(self.x, self.y)

    def distance_to(self, other: Point) -> float:
        """Euclidean distance to another point."""
        return math.hypot(self.x - other.x, self.y - other.y)

    def close_to(self, other: Point, threshold: float) -> bool:
        """
        Check whether both coordinates differ by at most threshold.

        Args:
            other: Point to compare against
            threshold: Largest tolerated per-axis difference

        Returns:
            True if neither |dx| nor |dy| exceeds threshold
        """
        return abs(self.x - other.x) <= threshold and abs(self.y - other.y) <= threshold


def midpoint(a: Point, b: Point) -> Point:
    """Return the point halfway between a and b."""
    return Point((a.x + b.x) / 2.0, (a.y + b.y) / 2.0)
