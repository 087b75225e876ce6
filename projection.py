"""
Projection of geographic polygons into screen space.

Handles antimeridian unwrapping and picks which horizontally repeated copies
of the world a polygon must be drawn in.
"""

import math
from dataclasses import dataclass
from typing import Dict, Hashable, List, Optional, Sequence

from map_utils import Bounds, MapCamera
from polygon_types import Point, ProjectedPolygon, Ring, SourcePolygon


def wraps_worlds(camera: MapCamera, draw_in_single_world: bool) -> bool:
    """Whether polygons are unwrapped and replicated across world copies."""
    return camera.supports_world_wrap and not draw_in_single_world


def project_ring(
    ring: Sequence[Point],
    camera: MapCamera,
    unwrap: bool = False,
    reference_x: Optional[float] = None
) -> Ring:
    """Project a geographic ring into screen pixels.

    With unwrap, every point is moved by whole world widths so it lies
    within half a world of the previous point. A ring crossing the
    antimeridian then stays one contiguous shape instead of spanning the
    whole world.

    Args:
        ring: (lon, lat) points
        camera: Camera for the frame
        unwrap: Keep consecutive points on the same world copy
        reference_x: Screen X the first point is pulled towards (used to keep
            holes on the same copy as their exterior)

    Returns:
        Projected ring
    """
    projected = camera.project_points(ring)
    if not unwrap or not projected:
        return tuple(projected)

    world_width = camera.world_width
    half = world_width / 2
    result = []
    prev_x = reference_x
    for x, y in projected:
        if prev_x is not None:
            while x - prev_x > half:
                x -= world_width
            while prev_x - x > half:
                x += world_width
        result.append((x, y))
        prev_x = x
    return tuple(result)


def project_polygon(
    source: SourcePolygon,
    camera: MapCamera,
    draw_in_single_world: bool = False
) -> ProjectedPolygon:
    """Project a SourcePolygon onto the primary world copy.

    The exterior and every hole go through the same projection so relative
    geometry is preserved. The bounds come from the projected exterior.
    """
    unwrap = wraps_worlds(camera, draw_in_single_world)
    exterior = project_ring(source.exterior, camera, unwrap=unwrap)
    reference_x = exterior[0][0] if exterior else None
    holes = tuple(
        project_ring(hole, camera, unwrap=unwrap, reference_x=reference_x)
        for hole in source.holes
    )
    return ProjectedPolygon(
        source=source,
        exterior=exterior,
        holes=holes,
        bounds=Bounds.from_points(exterior),
    )


def world_copies(
    bounds: Bounds,
    camera: MapCamera,
    draw_in_single_world: bool = False
) -> List[int]:
    """World indices a polygon with these bounds should be drawn in.

    Without world wrap (or with draw_in_single_world) this is always the
    primary world. Otherwise every copy whose shifted bounds overlap the
    visible bounds is returned in ascending order; the search is centered on
    the copy nearest the viewport. When no copy is visible the nearest copy
    is returned alone and culling decides.

    Args:
        bounds: Bounds of the polygon on world 0
        camera: Camera for the frame
        draw_in_single_world: Never replicate

    Returns:
        Sorted list of world indices
    """
    if not wraps_worlds(camera, draw_in_single_world):
        return [0]

    world_width = camera.world_width
    visible = camera.visible_bounds
    nearest = round((visible.center[0] - bounds.center[0]) / world_width)
    reach = math.ceil((visible.width + bounds.width) / world_width) + 1

    copies = [
        k for k in range(nearest - reach, nearest + reach + 1)
        if bounds.shifted(k * world_width).overlaps(visible)
    ]
    return copies or [nearest]


@dataclass
class _ProjectionEntry:
    source: SourcePolygon
    key: Hashable
    projected: ProjectedPolygon


class ProjectionCache:
    """Projected polygons keyed by source identity.

    An entry is reused only while the same source object is projected with
    the same camera projection key and wrap policy; otherwise the whole entry
    is replaced.
    """

    def __init__(self):
        self._entries: Dict[int, _ProjectionEntry] = {}
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def get(
        self,
        source: SourcePolygon,
        camera: MapCamera,
        draw_in_single_world: bool = False
    ) -> ProjectedPolygon:
        key = (camera.projection_key, wraps_worlds(camera, draw_in_single_world))
        entry = self._entries.get(id(source))
        if entry is None or entry.source is not source or entry.key != key:
            self.misses += 1
            entry = _ProjectionEntry(
                source=source,
                key=key,
                projected=project_polygon(source, camera, draw_in_single_world),
            )
            self._entries[id(source)] = entry
        return entry.projected

    def prune(self, live_sources: Sequence[SourcePolygon]):
        """Drop entries for sources that are no longer drawn."""
        live = {id(s) for s in live_sources}
        for key in [k for k in self._entries if k not in live]:
            del self._entries[key]

    def clear(self):
        self._entries.clear()
