"""
Axis-aligned rectangle operations.

Rectangles are stored by their edges: x (left), X (right), y (top) and
Y (bottom), which keeps union and inflate cheap.
"""

from __future__ import annotations

from .geom import Point


class Rectangle:
    """Axis-aligned rectangle."""

    def __init__(self, x: float, X: float, y: float, Y: float):
        """
        Initialize rectangle.

        Args:
            x: Left edge
            X: Right edge
            y: Top edge
            Y: Bottom edge
        """
        self.x = x
        self.X = X
        self.y = y
        self.Y = Y

    def __repr__(self) -> str:
        return f"Rectangle(x={self.x}, X={self.X}, y={self.y}, Y={self.Y})"

    @staticmethod
    def empty() -> Rectangle:
        """Create an empty rectangle."""
        inf = float('inf')
        return Rectangle(inf, -inf, inf, -inf)

    @staticmethod
    def from_origin(origin: Point, width: float, height: float) -> Rectangle:
        """Create a rectangle from its top-left corner and size."""
        return Rectangle(origin.x, origin.x + width, origin.y, origin.y + height)

    def is_empty(self) -> bool:
        return self.X < self.x or self.Y < self.y

    def intersects(self, r: Rectangle) -> bool:
        """Strict intersection test; touching edges do not intersect."""
        return self.x < r.X and self.X > r.x and self.y < r.Y and self.Y > r.y

    def contains(self, r: Rectangle) -> bool:
        """Check whether r lies entirely inside this rectangle."""
        return self.x <= r.x and r.X <= self.X and self.y <= r.y and r.Y <= self.Y

    def union(self, r: Rectangle) -> Rectangle:
        """Get union with another rectangle."""
        return Rectangle(
            min(self.x, r.x),
            max(self.X, r.X),
            min(self.y, r.y),
            max(self.Y, r.Y)
        )

    def inflate(self, pad: float) -> Rectangle:
        """
        Inflate rectangle by padding on all sides.

        Args:
            pad: Padding amount (negative values shrink)

        Returns:
            New inflated rectangle
        """
        return Rectangle(self.x - pad, self.X + pad, self.y - pad, self.Y + pad)
