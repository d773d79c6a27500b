"""Tests for geometry module."""

import math
import pytest
from pyspring.geom import (
    Point, is_finite, centroid, halfway, label_position, as_point
)


class TestPoint:
    """Test Point class."""

    def test_create_point(self):
        """Test point creation."""
        p = Point(10, 20)
        assert p.x == 10
        assert p.y == 20

    def test_default_point(self):
        """Test default point at origin."""
        p = Point()
        assert p.x == 0.0
        assert p.y == 0.0

    def test_equality(self):
        """Test points compare by coordinates."""
        assert Point(1, 2) == Point(1, 2)
        assert Point(1, 2) != Point(2, 1)

    def test_arithmetic(self):
        """Test addition and subtraction."""
        assert Point(1, 2) + Point(3, 4) == Point(4, 6)
        assert Point(5, 5) - Point(2, 3) == Point(3, 2)

    def test_unpack(self):
        """Test unpacking into coordinates."""
        x, y = Point(7, 8)
        assert (x, y) == (7, 8)


class TestHelpers:
    """Test NaN-aware helpers."""

    def test_is_finite(self):
        assert is_finite(Point(1, 2))
        assert not is_finite(Point(math.nan, 0))
        assert not is_finite(Point(0, math.inf))

    def test_centroid(self):
        """Test centroid of several points."""
        c = centroid([Point(0, 0), Point(2, 0), Point(2, 2), Point(0, 2)])
        assert c == Point(1, 1)

    def test_centroid_empty(self):
        """Test centroid of nothing is the origin."""
        assert centroid([]) == Point(0, 0)

    def test_halfway(self):
        """Test midpoint regardless of argument order."""
        assert halfway(2, 6) == 4
        assert halfway(6, 2) == 4

    def test_halfway_nan(self):
        """Test NaN coordinates produce 0 instead of NaN."""
        assert halfway(math.nan, 3) == 0.0
        assert halfway(3, math.nan) == 0.0

    def test_label_position(self):
        assert label_position(Point(0, 0), Point(10, 20)) == Point(5, 10)

    def test_as_point(self):
        """Test coercion of point-like values."""
        assert as_point(None) is None
        p = Point(1, 2)
        assert as_point(p) is p
        assert as_point((3, 4)) == Point(3.0, 4.0)
