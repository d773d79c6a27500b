"""
Geometric utilities for the spring layout.

This module provides the 2D point primitive used at the package boundary
and a few NaN-aware helpers used by consumers of node positions.
"""

from __future__ import annotations

from typing import Iterable, Optional
import math


class Point:
    """2D point."""

    def __init__(self, x: float = 0.0, y: float = 0.0):
        self.x = x
        self.y = y

    def __repr__(self) -> str:
        return f"Point({self.x!r}, {self.y!r})"

    def __eq__(self, other) -> bool:
        if not isinstance(other, Point):
            return NotImplemented
        return self.x == other.x and self.y == other.y

    def __hash__(self) -> int:
        return hash((self.x, self.y))

    def __iter__(self):
        yield self.x
        yield self.y

    def __add__(self, other: Point) -> Point:
        return Point(self.x + other.x, self.y + other.y)

    def __sub__(self, other: Point) -> Point:
        return Point(self.x - other.x, self.y - other.y)


def is_finite(p: Point) -> bool:
    """Check that both coordinates of p are finite (not NaN, not infinite)."""
    return math.isfinite(p.x) and math.isfinite(p.y)


def centroid(points: Iterable[Point]) -> Point:
    """
    Average of a set of points.

    Args:
        points: Points to average

    Returns:
        The centroid, or the origin for an empty input
    """
    sx = 0.0
    sy = 0.0
    n = 0
    for p in points:
        sx += p.x
        sy += p.y
        n += 1
    if n == 0:
        return Point(0.0, 0.0)
    return Point(sx / n, sy / n)


def halfway(a: float, b: float) -> float:
    """
    Midpoint of two coordinates.

    Returns 0 when either coordinate is NaN so a label anchor never
    becomes NaN itself.
    """
    if math.isnan(a) or math.isnan(b):
        return 0.0
    if a < b:
        return a + (b - a) / 2
    return b + (a - b) / 2


def label_position(a: Point, b: Point) -> Point:
    """Anchor point for the label of the edge a-b (its midpoint)."""
    return Point(halfway(a.x, b.x), halfway(a.y, b.y))


def as_point(p: Optional[object]) -> Optional[Point]:
    """
    Coerce a point-like value to a Point.

    Accepts a Point, an (x, y) pair or None.
    """
    if p is None or isinstance(p, Point):
        return p
    x, y = p
    return Point(float(x), float(y))
