"""
Ear-clipping triangulation of polygons with holes for mesh rendering.

Winding convention: before flattening, exteriors are oriented to a positive
shoelace area and holes to a negative one (in screen axes, where Y grows
downward, that is clockwise exteriors and counter-clockwise holes on
screen). Rings with zero area cannot be oriented and fail triangulation.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import mapbox_earcut as earcut
import numpy as np

from polygon_types import (
    ProjectedPolygon,
    Ring,
    TriangleMesh,
    is_degenerate,
    signed_area,
)


class TriangulationError(ValueError):
    """A polygon could not be triangulated."""


def hole_offsets(exterior_size: int, hole_sizes: Sequence[int]) -> List[int]:
    """Vertex index at which each hole starts in the flattened buffer.

    Example:
        hole_offsets(10, [4, 6]) == [10, 14]
    """
    offsets = []
    offset = exterior_size
    for size in hole_sizes:
        offsets.append(offset)
        offset += size
    return offsets


def expected_triangle_count(exterior_size: int, hole_sizes: Sequence[int]) -> int:
    """Triangles in an ear-clipping of a simple polygon with holes.

    Each hole is bridged into the exterior with two extra edges, so a
    polygon with n vertices and h holes yields n - 2 + 2h triangles.
    """
    return exterior_size + sum(hole_sizes) - 2 + 2 * len(hole_sizes)


def orient_ring(ring: Ring, positive: bool) -> Ring:
    """Return the ring wound so its signed area has the requested sign."""
    area = signed_area(ring)
    if area == 0:
        raise TriangulationError("Cannot orient a ring with zero area")
    if (area > 0) != positive:
        return tuple(reversed(ring))
    return ring


def oriented_rings(polygon: ProjectedPolygon) -> Tuple[Ring, ...]:
    """Exterior and holes in the mesh winding convention."""
    if is_degenerate(polygon.exterior):
        raise TriangulationError(
            f"Exterior ring has fewer than 3 distinct points ({len(polygon.exterior)} given)"
        )
    exterior = orient_ring(polygon.exterior, positive=True)
    holes = tuple(orient_ring(hole, positive=False) for hole in polygon.holes)
    return (exterior,) + holes


def triangulate_polygon(polygon: ProjectedPolygon) -> TriangleMesh:
    """Triangulate a projected (or simplified) polygon.

    The exterior and all holes are flattened into one coordinate buffer and
    ear-clipped with the hole start offsets.

    Args:
        polygon: Polygon in screen space

    Returns:
        TriangleMesh whose indices refer only to its own coordinate buffer

    Raises:
        TriangulationError: On degenerate rings or when ear clipping yields
            no triangles
    """
    rings = oriented_rings(polygon)
    offsets = hole_offsets(len(rings[0]), [len(h) for h in rings[1:]])

    vertices = np.array([p for ring in rings for p in ring], dtype=np.float64).reshape(-1, 2)
    ring_ends = np.array(offsets + [len(vertices)], dtype=np.uint32)

    indices = np.asarray(earcut.triangulate_float64(vertices, ring_ends), dtype=np.uint32)
    if len(indices) == 0:
        raise TriangulationError(
            f"Ear clipping produced no triangles for {len(vertices)} vertices"
        )

    return TriangleMesh(
        coordinates=vertices.ravel(),
        hole_offsets=tuple(offsets),
        indices=indices,
    )


@dataclass
class _MeshEntry:
    polygon: ProjectedPolygon
    mesh: Optional[TriangleMesh]


class MeshCache:
    """Triangle meshes keyed by (source identity, world copy).

    A mesh is recomputed whenever the polygon instance it was built from is
    replaced, and dropped once its world copy is no longer drawn. Failures
    are cached too, so a polygon that cannot be triangulated is reported
    once rather than every frame.
    """

    def __init__(self):
        self._entries: Dict[Tuple[int, int], _MeshEntry] = {}
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, polygon: ProjectedPolygon) -> Optional[TriangleMesh]:
        """Mesh for a polygon.

        Raises:
            TriangulationError: The first time a polygon instance fails.
                Later lookups of the same instance return None.
        """
        key = (id(polygon.source), polygon.world)
        entry = self._entries.get(key)
        if entry is not None and entry.polygon is polygon:
            return entry.mesh

        self.misses += 1
        entry = _MeshEntry(polygon=polygon, mesh=None)
        self._entries[key] = entry
        entry.mesh = triangulate_polygon(polygon)
        return entry.mesh

    def prune(self, drawn: Sequence[ProjectedPolygon]):
        """Drop meshes of world copies that are no longer drawn."""
        live = {(id(p.source), p.world) for p in drawn}
        for key in [k for k in self._entries if k not in live]:
            del self._entries[key]

    def clear(self):
        self._entries.clear()
