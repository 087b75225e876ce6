"""
Label anchor computation for polygons.

Only the anchor point is computed here; text layout and painting belong to
the rasterizer.
"""

from shapely.geometry import Polygon
from shapely.ops import polylabel

from polygon_types import LabelPlacement, Point, ProjectedPolygon, Ring, signed_area


def simple_centroid(ring: Ring) -> Point:
    """Mean of the ring's vertices."""
    n = len(ring)
    return (
        sum(p[0] for p in ring) / n,
        sum(p[1] for p in ring) / n
    )


def area_centroid(ring: Ring) -> Point:
    """Area-weighted centroid of a ring.

    Falls back to the vertex mean for rings with no area.
    """
    area = signed_area(ring)
    if area == 0:
        return simple_centroid(ring)

    cx = cy = 0.0
    n = len(ring)
    for i in range(n):
        x1, y1 = ring[i]
        x2, y2 = ring[(i + 1) % n]
        cross = x1 * y2 - x2 * y1
        cx += (x1 + x2) * cross
        cy += (y1 + y2) * cross
    return (cx / (6 * area), cy / (6 * area))


def label_anchor(
    polygon: ProjectedPolygon,
    placement: LabelPlacement = LabelPlacement.CENTROID,
    precision: float = 1.0
) -> Point:
    """Anchor point for a polygon's label, in the polygon's coordinates.

    Args:
        polygon: Projected polygon (one world copy)
        placement: Anchor method
        precision: Polylabel search precision in pixels

    Returns:
        (x, y) anchor
    """
    if placement is LabelPlacement.SIMPLE_CENTROID:
        return simple_centroid(polygon.exterior)
    if placement is LabelPlacement.CENTROID:
        return area_centroid(polygon.exterior)
    if placement is LabelPlacement.POLYLABEL:
        shape = Polygon(polygon.exterior, polygon.holes)
        point = polylabel(shape, tolerance=precision)
        return (point.x, point.y)
    raise ValueError(f"Unknown label placement: {placement}")


def label_rotation(camera_rotation_deg: float, rotate_label: bool) -> float:
    """Rotation to apply to a label so it stays upright on screen."""
    if not rotate_label:
        return 0.0
    return -camera_rotation_deg
