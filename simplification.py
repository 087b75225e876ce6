"""
Douglas-Peucker simplification of projected rings, and the per-polygon cache.

Tolerances are in screen pixels. Rings are simplified independently, so the
exterior and each hole of one polygon may lose different amounts of detail.
"""

from dataclasses import dataclass, field
from typing import Dict, Sequence

import numpy as np

from polygon_types import (
    Point,
    ProjectedPolygon,
    Ring,
    SimplifiedPolygon,
    SourcePolygon,
)

# Rings this short are returned as-is outside high-quality mode
LOW_QUALITY_MIN_POINTS = 4


def _sq_segment_distances(points: np.ndarray, start: np.ndarray, end: np.ndarray) -> np.ndarray:
    """Squared distance from each point to the segment start-end."""
    seg = end - start
    seg_len_sq = float(seg @ seg)
    if seg_len_sq == 0:
        diff = points - start
        return np.einsum("ij,ij->i", diff, diff)

    t = np.clip(((points - start) @ seg) / seg_len_sq, 0.0, 1.0)
    closest = start + t[:, None] * seg
    diff = points - closest
    return np.einsum("ij,ij->i", diff, diff)


def _douglas_peucker_mask(coords: np.ndarray, sq_tolerance: float) -> np.ndarray:
    """Boolean mask of the points Douglas-Peucker keeps."""
    n = len(coords)
    keep = np.zeros(n, dtype=bool)
    keep[0] = keep[-1] = True

    stack = [(0, n - 1)]
    while stack:
        first, last = stack.pop()
        if last - first < 2:
            continue
        sq = _sq_segment_distances(coords[first + 1:last], coords[first], coords[last])
        idx = int(np.argmax(sq))
        if sq[idx] > sq_tolerance:
            split = first + 1 + idx
            keep[split] = True
            stack.append((first, split))
            stack.append((split, last))
    return keep


def _radial_distance_mask(coords: np.ndarray, sq_tolerance: float) -> np.ndarray:
    """Drop points closer than the tolerance to the last kept point."""
    n = len(coords)
    keep = np.zeros(n, dtype=bool)
    keep[0] = keep[-1] = True
    prev = coords[0]
    for i in range(1, n - 1):
        diff = coords[i] - prev
        if float(diff @ diff) > sq_tolerance:
            keep[i] = True
            prev = coords[i]
    return keep


def simplify_ring(
    ring: Sequence[Point],
    tolerance: float,
    high_quality: bool = True
) -> Ring:
    """Simplify a ring so no removed point deviates more than tolerance.

    The first and last points are always kept and the result never has more
    points than the input. A tolerance of zero disables simplification.

    High-quality mode runs Douglas-Peucker alone, which bounds the deviation
    of every removed point by the tolerance. Otherwise short rings are
    returned untouched and a radial-distance pass runs first; that is faster
    but only bounds the deviation by twice the tolerance.

    Args:
        ring: Points to simplify
        tolerance: Maximum perpendicular deviation in pixels
        high_quality: Skip the shortcuts described above

    Returns:
        Simplified ring
    """
    ring = tuple(ring)
    if tolerance < 0:
        raise ValueError(f"Simplification tolerance must be >= 0, got {tolerance}")
    if tolerance == 0 or len(ring) <= 2:
        return ring
    if not high_quality and len(ring) <= LOW_QUALITY_MIN_POINTS:
        return ring

    coords = np.asarray(ring, dtype=np.float64)
    sq_tolerance = tolerance * tolerance
    indices = np.arange(len(ring))

    if not high_quality:
        radial = _radial_distance_mask(coords, sq_tolerance)
        coords = coords[radial]
        indices = indices[radial]

    keep = _douglas_peucker_mask(coords, sq_tolerance)
    return tuple(ring[i] for i in indices[keep])


def simplify_polygon(
    projected: ProjectedPolygon,
    tolerance: float,
    high_quality: bool = True
) -> SimplifiedPolygon:
    """Simplify every ring of a projected polygon.

    Holes that collapse below three points no longer bound any area and are
    dropped. The exterior is kept even when it collapses; the pipeline skips
    such polygons.
    """
    exterior = simplify_ring(projected.exterior, tolerance, high_quality)
    holes = []
    for hole in projected.holes:
        simplified = simplify_ring(hole, tolerance, high_quality)
        if len(simplified) >= 3:
            holes.append(simplified)
    return SimplifiedPolygon(
        source=projected.source,
        exterior=exterior,
        holes=tuple(holes),
        bounds=projected.bounds,
        world=projected.world,
        tolerance=tolerance,
    )


@dataclass
class _SimplificationEntry:
    projected: ProjectedPolygon
    tolerance: float
    simplified: SimplifiedPolygon
    copies: Dict[int, SimplifiedPolygon] = field(default_factory=dict)


class SimplificationCache:
    """Simplified polygons keyed by source identity.

    Entries are replaced whole whenever the projected polygon or tolerance
    changes, so a frame never mixes rings simplified at two tolerances.
    World copies are memoized inside the entry they were shifted from.
    """

    def __init__(self, high_quality: bool = True):
        self.high_quality = high_quality
        self._entries: Dict[int, _SimplificationEntry] = {}
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, projected: ProjectedPolygon, tolerance: float) -> SimplifiedPolygon:
        key = id(projected.source)
        entry = self._entries.get(key)
        if (entry is None or entry.projected is not projected
                or entry.tolerance != tolerance):
            self.misses += 1
            entry = _SimplificationEntry(
                projected=projected,
                tolerance=tolerance,
                simplified=simplify_polygon(projected, tolerance, self.high_quality),
            )
            self._entries[key] = entry
        return entry.simplified

    def world_copy(
        self,
        simplified: SimplifiedPolygon,
        world: int,
        world_width: float
    ) -> SimplifiedPolygon:
        """The copy of a cached polygon on another world."""
        if world == simplified.world:
            return simplified
        entry = self._entries.get(id(simplified.source))
        if entry is None or entry.simplified is not simplified:
            return simplified.shifted(world, world_width)
        copy = entry.copies.get(world)
        if copy is None:
            copy = simplified.shifted(world, world_width)
            entry.copies[world] = copy
        return copy

    def prune(self, live_sources: Sequence[SourcePolygon]):
        """Drop entries for sources that are no longer drawn."""
        live = {id(s) for s in live_sources}
        for key in [k for k in self._entries if k not in live]:
            del self._entries[key]

    def clear(self):
        self._entries.clear()
