"""Tests for polygon measurements."""
import numpy as np
import pytest

from hotspotvec.geometry import bounding_box, centroid, normalize_winding, polygon_area, signed_area

# Clockwise on screen (y down)
SQUARE = np.array([[0, 0], [2, 0], [2, 2], [0, 2]], dtype=float)


class TestArea:
    """Test shoelace area and winding."""

    def test_screen_clockwise_is_positive(self):
        assert signed_area(SQUARE) == pytest.approx(4.0)
        assert signed_area(SQUARE[::-1]) == pytest.approx(-4.0)

    def test_polygon_area_is_absolute(self):
        assert polygon_area(SQUARE[::-1]) == pytest.approx(4.0)

    def test_fewer_than_three_points(self):
        assert signed_area(np.array([[0, 0], [1, 1]], dtype=float)) == 0.0

    def test_normalize_winding(self):
        assert signed_area(normalize_winding(SQUARE[::-1])) == pytest.approx(4.0)
        np.testing.assert_array_equal(normalize_winding(SQUARE), SQUARE)


class TestCentroid:
    """Test area-weighted centroid and its degenerate fallback."""

    def test_rectangle(self):
        rect = np.array([[1, 2], [7, 2], [7, 6], [1, 6]], dtype=float)
        assert centroid(rect) == pytest.approx((4.0, 4.0))

    def test_winding_does_not_matter(self):
        tri = np.array([[0, 0], [3, 0], [0, 3]], dtype=float)
        assert centroid(tri) == pytest.approx((1.0, 1.0))
        assert centroid(tri[::-1]) == pytest.approx((1.0, 1.0))

    def test_collinear_falls_back_to_bbox_center(self):
        line = np.array([[0, 0], [2, 2], [6, 6]], dtype=float)
        assert centroid(line) == pytest.approx((3.0, 3.0))

    def test_bounding_box(self):
        assert bounding_box(SQUARE + [1, 3]) == (1.0, 3.0, 3.0, 5.0)

    def test_bounding_box_empty(self):
        with pytest.raises(ValueError):
            bounding_box(np.zeros((0, 2)))
