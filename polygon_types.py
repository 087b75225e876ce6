"""
Geometry types shared by every stage of the polygon rendering pipeline.

Rings are open tuples of (x, y) points: geographic rings hold (lon, lat)
degrees, projected rings hold screen pixels. All records are immutable so a
frame can never observe a half-updated polygon.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, Iterator, Optional, Sequence, Tuple, TypeVar

import numpy as np

from map_utils import Bounds

Point = Tuple[float, float]
Ring = Tuple[Point, ...]

R = TypeVar("R")


class FillMethod(Enum):
    """Strategy used to fill a polygon and resolve holes and overlaps."""
    EVEN_ODD = "even_odd"
    EXACT_COMBINE = "exact_combine"
    TRIANGULATED = "triangulated"


class LabelPlacement(Enum):
    """Where a polygon label is anchored."""
    CENTROID = "centroid"
    SIMPLE_CENTROID = "simple_centroid"
    POLYLABEL = "polylabel"


def to_ring(points: Sequence[Sequence[float]]) -> Ring:
    """Freeze a sequence of coordinate pairs into a Ring.

    A repeated closing point (as shapely and GeoJSON emit) is dropped.
    """
    ring = tuple((float(p[0]), float(p[1])) for p in points)
    if len(ring) > 1 and ring[0] == ring[-1]:
        ring = ring[:-1]
    return ring


def signed_area(ring: Sequence[Point]) -> float:
    """Shoelace area of a ring; positive when counter-clockwise in x/y-up axes."""
    total = 0.0
    n = len(ring)
    for i in range(n):
        x1, y1 = ring[i]
        x2, y2 = ring[(i + 1) % n]
        total += x1 * y2 - x2 * y1
    return total / 2


def distinct_point_count(ring: Sequence[Point]) -> int:
    return len(set(ring))


def is_degenerate(ring: Sequence[Point]) -> bool:
    """A ring needs three distinct points to bound any area."""
    return distinct_point_count(ring) < 3


def shift_ring(ring: Ring, dx: float) -> Ring:
    if dx == 0:
        return ring
    return tuple((x + dx, y) for x, y in ring)


@dataclass(frozen=True)
class PolygonStyle:
    """Paint settings for one polygon.

    Attributes:
        fill_color: Fill color, or None for an unfilled outline
        stroke_color: Border color, or None for no border
        stroke_width: Border width in pixels
        fill_method: Per-polygon override of the layer fill strategy
        disable_holes_border: Only stroke the exterior ring
        label_placement: How the label anchor is computed
        label_color: Label text color
        label_font_size: Label text size in pixels
        rotate_label: Keep the label upright when the camera rotates
    """
    fill_color: Optional[str] = None
    stroke_color: Optional[str] = None
    stroke_width: float = 0.0
    fill_method: Optional[FillMethod] = None
    disable_holes_border: bool = False
    label_placement: LabelPlacement = LabelPlacement.CENTROID
    label_color: str = "#000000"
    label_font_size: float = 12.0
    rotate_label: bool = True

    @property
    def has_stroke(self) -> bool:
        return bool(self.stroke_color) and self.stroke_width > 0


@dataclass(frozen=True, eq=False)
class SourcePolygon(Generic[R]):
    """A caller-owned polygon in geographic coordinates.

    Equality and hashing are by identity: two polygons with the same rings are
    still different sources for caching and hit-testing.

    Attributes:
        exterior: Outer ring as (lon, lat) points
        holes: Inner rings subtracted from the exterior
        style: Paint settings
        label: Optional label text
        user_data: Opaque payload returned by hit tests
    """
    exterior: Ring
    holes: Tuple[Ring, ...] = ()
    style: PolygonStyle = field(default_factory=PolygonStyle)
    label: Optional[str] = None
    user_data: Optional[R] = None

    def __post_init__(self):
        object.__setattr__(self, "exterior", to_ring(self.exterior))
        object.__setattr__(self, "holes", tuple(to_ring(h) for h in self.holes))


@dataclass(frozen=True, eq=False)
class ProjectedPolygon:
    """A SourcePolygon projected into screen space for one world copy.

    Attributes:
        source: The polygon this was projected from
        exterior: Screen-space exterior ring
        holes: Screen-space hole rings
        bounds: Axis-aligned bounds of the unsimplified exterior
        world: World copy index; the copy is offset by world * world_width
    """
    source: SourcePolygon
    exterior: Ring
    holes: Tuple[Ring, ...]
    bounds: Bounds
    world: int = 0

    @property
    def rings(self) -> Tuple[Ring, ...]:
        """Exterior followed by every hole."""
        return (self.exterior,) + self.holes


@dataclass(frozen=True, eq=False)
class SimplifiedPolygon(ProjectedPolygon):
    """A ProjectedPolygon whose rings were simplified at `tolerance` pixels.

    The bounds are those of the unsimplified geometry so culling decisions
    do not depend on the tolerance.
    """
    tolerance: float = 0.0

    def shifted(self, world: int, world_width: float) -> "SimplifiedPolygon":
        """Return the copy of this polygon for another world index."""
        dx = (world - self.world) * world_width
        return SimplifiedPolygon(
            source=self.source,
            exterior=shift_ring(self.exterior, dx),
            holes=tuple(shift_ring(h, dx) for h in self.holes),
            bounds=self.bounds.shifted(dx),
            world=world,
            tolerance=self.tolerance,
        )


@dataclass(frozen=True, eq=False)
class TriangleMesh:
    """Ear-clipped triangles of one polygon.

    Attributes:
        coordinates: Flat float64 buffer [x0, y0, x1, y1, ...] of the exterior
            followed by every hole
        hole_offsets: Vertex index where each hole starts in the buffer
        indices: Flat triangle vertex indices, three per triangle
    """
    coordinates: np.ndarray
    hole_offsets: Tuple[int, ...]
    indices: np.ndarray

    @property
    def vertex_count(self) -> int:
        return len(self.coordinates) // 2

    @property
    def triangle_count(self) -> int:
        return len(self.indices) // 3

    def vertex(self, index: int) -> Point:
        return (float(self.coordinates[2 * index]), float(self.coordinates[2 * index + 1]))

    def triangles(self) -> Iterator[Tuple[Point, Point, Point]]:
        """Iterate over triangles as point triples."""
        for i in range(0, len(self.indices), 3):
            a, b, c = self.indices[i:i + 3]
            yield (self.vertex(int(a)), self.vertex(int(b)), self.vertex(int(c)))
