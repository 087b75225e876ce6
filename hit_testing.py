"""
Point hit-testing against the polygons drawn in a frame.

Tests run against the same simplified, culled and world-replicated rings
that were painted, so hit regions match what is on screen.
"""

from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence, Tuple

from polygon_types import Point, ProjectedPolygon, SourcePolygon


@dataclass(frozen=True)
class HitResult:
    """One polygon under a queried point.

    Attributes:
        polygon: The source polygon that was hit
        user_data: The polygon's opaque payload
        world: World copy the hit landed on
        point: Queried point in layer pixels
    """
    polygon: SourcePolygon
    user_data: Any
    world: int
    point: Point


HitNotifier = Callable[[List[HitResult]], None]


def point_in_ring(x: float, y: float, ring: Sequence[Point]) -> bool:
    """Ray-casting test: is (x, y) inside the ring?

    A horizontal ray is cast towards +X; an odd number of edge crossings
    means the point is inside.
    """
    inside = False
    n = len(ring)
    if n < 3:
        return False

    j = n - 1
    for i in range(n):
        xi, yi = ring[i]
        xj, yj = ring[j]
        if (yi > y) != (yj > y) and x < (xj - xi) * (y - yi) / (yj - yi) + xi:
            inside = not inside
        j = i
    return inside


def winding_number(x: float, y: float, ring: Sequence[Point]) -> int:
    """Signed number of times the ring winds around (x, y).

    Positive for rings with positive shoelace area (counter-clockwise in
    x/y-up axes).
    """
    winding = 0
    n = len(ring)
    for i in range(n):
        x1, y1 = ring[i]
        x2, y2 = ring[(i + 1) % n]
        cross = (x2 - x1) * (y - y1) - (x - x1) * (y2 - y1)
        if y1 <= y:
            if y2 > y and cross > 0:
                winding += 1
        elif y2 <= y and cross < 0:
            winding -= 1
    return winding


def polygon_contains(polygon: ProjectedPolygon, x: float, y: float) -> bool:
    """Inside the exterior ring and outside every hole."""
    if not polygon.bounds.contains(x, y):
        return False
    if not point_in_ring(x, y, polygon.exterior):
        return False
    return not any(point_in_ring(x, y, hole) for hole in polygon.holes)


def hit_test(polygons: Sequence[ProjectedPolygon], point: Tuple[float, float]) -> List[HitResult]:
    """Polygons containing a point, topmost first.

    Args:
        polygons: Drawn polygons in paint order
        point: Query point in layer pixels

    Returns:
        One result per source polygon, in reverse paint order
    """
    x, y = point
    results = []
    seen = set()
    for polygon in reversed(polygons):
        source = polygon.source
        if id(source) in seen:
            continue
        if polygon_contains(polygon, x, y):
            seen.add(id(source))
            results.append(HitResult(
                polygon=source,
                user_data=source.user_data,
                world=polygon.world,
                point=(x, y),
            ))
    return results


def notify_hits(
    polygons: Sequence[ProjectedPolygon],
    point: Tuple[float, float],
    notifier: Optional[HitNotifier] = None
) -> List[HitResult]:
    """Run a hit test and deliver the (possibly empty) results to notifier."""
    results = hit_test(polygons, point)
    if notifier is not None:
        notifier(results)
    return results
