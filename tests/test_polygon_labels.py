"""
Tests for polygon_labels module.

Run with: pytest tests/test_polygon_labels.py -v
"""

import pytest

from map_utils import Bounds
from polygon_labels import area_centroid, label_anchor, label_rotation, simple_centroid
from polygon_types import LabelPlacement, ProjectedPolygon, SourcePolygon

SQUARE = [(0, 0), (0, 10), (10, 10), (10, 0)]


def projected(exterior, holes=()):
    source = SourcePolygon(exterior=exterior, holes=holes)
    return ProjectedPolygon(
        source=source,
        exterior=source.exterior,
        holes=source.holes,
        bounds=Bounds.from_points(source.exterior),
    )


class TestCentroids:
    """Tests for the centroid helpers."""

    def test_square(self):
        assert simple_centroid(SQUARE) == (5, 5)
        assert area_centroid(SQUARE) == pytest.approx((5, 5))

    def test_area_weighting(self):
        """Test extra vertices pull the vertex mean but not the area centroid."""
        ring = [(0, 0), (0, 10), (10, 10), (10, 0), (9, 0), (8, 0), (7, 0)]
        assert simple_centroid(ring)[1] < 5
        assert area_centroid(ring) == pytest.approx((5, 5))

    def test_either_winding(self):
        assert area_centroid(list(reversed(SQUARE))) == pytest.approx((5, 5))

    def test_flat_ring_falls_back(self):
        assert area_centroid([(0, 0), (2, 2), (4, 4)]) == (2, 2)


class TestLabelAnchor:
    """Tests for label_anchor."""

    def test_centroid(self):
        assert label_anchor(projected(SQUARE)) == pytest.approx((5, 5))

    def test_simple_centroid(self):
        assert label_anchor(projected(SQUARE), LabelPlacement.SIMPLE_CENTROID) == (5, 5)

    def test_polylabel_avoids_hole(self):
        """Test polylabel places the label in the filled area, not the hole."""
        donut = projected(SQUARE, [[(2, 2), (2, 8), (8, 8), (8, 2)]])
        x, y = label_anchor(donut, LabelPlacement.POLYLABEL, precision=0.1)
        assert not (2 < x < 8 and 2 < y < 8)
        assert 0 <= x <= 10 and 0 <= y <= 10

    def test_unknown_placement(self):
        with pytest.raises(ValueError):
            label_anchor(projected(SQUARE), "middle")


class TestLabelRotation:
    """Tests for label_rotation."""

    def test_counter_rotates(self):
        assert label_rotation(30, True) == -30

    def test_fixed(self):
        assert label_rotation(30, False) == 0
