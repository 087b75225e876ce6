"""
Tests for projection module.

Run with: pytest tests/test_projection.py -v
"""

import pytest

from map_utils import Bounds
from polygon_types import SourcePolygon
from projection import ProjectionCache, project_polygon, project_ring, world_copies

ANTIMERIDIAN = [(170, 0), (-170, 0), (-170, 10), (170, 10)]


class TestProjectRing:
    """Tests for project_ring."""

    def test_plain_projection(self, camera):
        """Test points are projected in order."""
        ring = project_ring([(0, 0), (0, 10), (10, 10), (10, 0)], camera)
        assert ring == ((0, 0), (0, 10), (10, 10), (10, 0))

    def test_without_unwrap_spans_world(self, make_camera):
        """Test a ring across the antimeridian spans the world without unwrap."""
        camera = make_camera(world_width=360)
        ring = project_ring(ANTIMERIDIAN, camera, unwrap=False)
        assert Bounds.from_points(ring).width == 340

    def test_unwrap_keeps_ring_contiguous(self, make_camera):
        """Test unwrapping keeps consecutive points within half a world."""
        camera = make_camera(world_width=360)
        ring = project_ring(ANTIMERIDIAN, camera, unwrap=True)
        assert ring == ((170, 0), (190, 0), (190, 10), (170, 10))
        assert Bounds.from_points(ring).width == 20

    def test_reference_pulls_first_point(self, make_camera):
        """Test the reference X moves the first point onto the same copy."""
        camera = make_camera(world_width=360)
        ring = project_ring([(-175, 2), (-172, 2), (-172, 5)], camera, unwrap=True, reference_x=170)
        assert ring[0] == (185, 2)
        assert ring[2] == (188, 5)


class TestProjectPolygon:
    """Tests for project_polygon."""

    def test_bounds_from_exterior(self, camera, square_with_hole):
        """Test bounds come from the projected exterior."""
        projected = project_polygon(square_with_hole, camera)
        assert projected.bounds.as_tuple() == (0, 0, 10, 10)
        assert projected.world == 0
        assert projected.source is square_with_hole
        assert len(projected.holes) == 1

    def test_holes_follow_exterior_across_antimeridian(self, make_camera):
        """Test holes are unwrapped onto the exterior's world copy."""
        camera = make_camera(world_width=360)
        source = SourcePolygon(
            exterior=ANTIMERIDIAN,
            holes=[[(175, 2), (-175, 2), (-175, 8), (175, 8)]],
        )
        projected = project_polygon(source, camera)
        hole_bounds = Bounds.from_points(projected.holes[0])
        assert hole_bounds.min_x == 175
        assert hole_bounds.max_x == 185

    def test_single_world_disables_unwrap(self, make_camera):
        """Test draw_in_single_world projects without unwrapping."""
        camera = make_camera(world_width=360)
        projected = project_polygon(SourcePolygon(exterior=ANTIMERIDIAN), camera, draw_in_single_world=True)
        assert projected.bounds.width == 340


class TestWorldCopies:
    """Tests for world_copies."""

    def test_no_wrap(self, camera):
        """Test cameras without wrap always draw the primary world."""
        assert world_copies(Bounds(500, 510, 0, 10), camera) == [0]

    def test_single_copy(self, make_camera):
        """Test a polygon inside the viewport is drawn once."""
        camera = make_camera(world_width=256)
        assert world_copies(Bounds(0, 10, 0, 10), camera) == [0]

    def test_nearest_copy(self, make_camera):
        """Test a polygon near the next world is drawn on the visible copy."""
        camera = make_camera(world_width=256)
        assert world_copies(Bounds(250, 260, 0, 10), camera) == [-1]

    def test_wide_viewport_repeats(self, make_camera):
        """Test a viewport wider than the world shows several copies."""
        camera = make_camera(visible=(0, 600, 0, 100), world_width=256)
        assert world_copies(Bounds(0, 10, 0, 10), camera) == [0, 1, 2]

    def test_single_world_flag(self, make_camera):
        """Test draw_in_single_world suppresses replication."""
        camera = make_camera(visible=(0, 600, 0, 100), world_width=256)
        assert world_copies(Bounds(0, 10, 0, 10), camera, draw_in_single_world=True) == [0]

    def test_invisible_polygon_gets_nearest(self, make_camera):
        """Test a polygon off screen vertically still gets one copy."""
        camera = make_camera(world_width=256)
        assert world_copies(Bounds(0, 10, 500, 510), camera) == [0]


class TestProjectionCache:
    """Tests for ProjectionCache."""

    def test_reuses_entry(self, camera, square):
        """Test the same source and camera hit the cache."""
        cache = ProjectionCache()
        first = cache.get(square, camera)
        second = cache.get(square, camera)
        assert first is second
        assert cache.misses == 1

    def test_new_camera_replaces_entry(self, make_camera, square):
        """Test a different projection replaces the entry."""
        cache = ProjectionCache()
        first = cache.get(square, make_camera())
        second = cache.get(square, make_camera())
        assert first is not second
        assert cache.misses == 2
        assert len(cache) == 1

    def test_equal_sources_cached_separately(self, camera, filled):
        """Test identity, not equality, keys the cache."""
        cache = ProjectionCache()
        a = SourcePolygon(exterior=[(0, 0), (0, 1), (1, 1)], style=filled)
        b = SourcePolygon(exterior=[(0, 0), (0, 1), (1, 1)], style=filled)
        assert cache.get(a, camera).source is a
        assert cache.get(b, camera).source is b
        assert len(cache) == 2

    def test_prune(self, camera, square, square_with_hole):
        """Test entries of dropped sources are removed."""
        cache = ProjectionCache()
        cache.get(square, camera)
        cache.get(square_with_hole, camera)
        cache.prune([square])
        assert len(cache) == 1
        cache.clear()
        assert len(cache) == 0


def test_projection_of_points_is_exact(camera):
    """Test pass-through projection leaves coordinates untouched."""
    assert project_ring([(1.5, 2.5)], camera)[0] == pytest.approx((1.5, 2.5))
