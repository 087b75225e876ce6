"""
Shared fixtures for polygon pipeline tests.

Most tests use a pass-through camera where (lon, lat) maps straight to
pixels, so expected geometry can be read off the input.
"""

import pytest

from map_utils import Bounds, CallableCamera, RotationConfig
from polygon_types import PolygonStyle, SourcePolygon

SQUARE = [(0, 0), (0, 10), (10, 10), (10, 0)]
SQUARE_HOLE = [(3, 3), (3, 7), (7, 7), (7, 3)]


def identity(point):
    return point


@pytest.fixture
def make_camera():
    """Factory for pass-through cameras."""
    def factory(visible=(0, 100, 0, 100), world_width=0.0, rotation_deg=0.0):
        min_x, max_x, min_y, max_y = visible
        bounds = Bounds(min_x=min_x, max_x=max_x, min_y=min_y, max_y=max_y)
        rotation = None
        if rotation_deg:
            cx, cy = bounds.center
            rotation = RotationConfig(rotation_deg, cx, cy)
        return CallableCamera(
            identity,
            bounds,
            supports_world_wrap=world_width > 0,
            world_width=world_width,
            unproject_fn=identity,
            rotation=rotation,
        )
    return factory


@pytest.fixture
def camera(make_camera):
    return make_camera()


@pytest.fixture
def filled():
    return PolygonStyle(fill_color="#336699")


@pytest.fixture
def square(filled):
    return SourcePolygon(exterior=SQUARE, style=filled, user_data="square")


@pytest.fixture
def square_with_hole(filled):
    return SourcePolygon(exterior=SQUARE, holes=[SQUARE_HOLE], style=filled, user_data="donut")
