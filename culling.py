"""
Viewport culling of simplified polygons by bounding box.
"""

from typing import List, Sequence

from map_utils import Bounds
from polygon_types import SimplifiedPolygon


def is_visible(bounds: Bounds, visible_bounds: Bounds, enabled: bool = True) -> bool:
    """Whether a polygon with these bounds should be drawn.

    Bounds that merely touch the viewport edge are kept. With culling
    disabled every polygon is drawn.
    """
    if not enabled:
        return True
    return bounds.overlaps(visible_bounds)


def cull_polygons(
    polygons: Sequence[SimplifiedPolygon],
    visible_bounds: Bounds,
    enabled: bool = True
) -> List[SimplifiedPolygon]:
    """Filter polygons to those intersecting the viewport, keeping paint order."""
    return [p for p in polygons if is_visible(p.bounds, visible_bounds, enabled)]
