"""
Fill resolution: turn the polygons drawn in a frame into draw instructions.

Three strategies are available (see FillMethod):

- EVEN_ODD: one compound path per batch filled with the even-odd rule.
  Cheapest, but overlapping polygons in a batch, overlapping holes, and
  inverted fills over overlapping input render as holes.
- EXACT_COMBINE: exterior minus the union of holes computed with shapely,
  unioned across the batch and filled with the nonzero rule. Correct for
  overlaps, costs more CPU, and needs a backend that can draw it.
- TRIANGULATED: ear-clipped triangle meshes filled as opaque triangles.

On well-formed input (no overlaps, holes nested in their exterior) all three
cover the same area.
"""

from dataclasses import dataclass
from itertools import groupby
from typing import Callable, List, Optional, Sequence, Tuple, Union

from shapely.errors import ShapelyError
from shapely.geometry import Polygon, box
from shapely.geometry.polygon import orient
from shapely.ops import unary_union

from hit_testing import point_in_ring, winding_number
from layer_config import (
    DEBUG_TRIANGLE_COLOR,
    DEBUG_TRIANGLE_WIDTH,
    EXACT_COMBINE_FAILED,
    EXACT_COMBINE_UNAVAILABLE,
    INVERTED_FILL_DEGRADED,
    LABEL_FALLBACK,
    TRIANGULATION_FAILED,
    Diagnostic,
    PolygonLayerOptions,
    RenderBackend,
)
from map_utils import Bounds
from polygon_labels import area_centroid, label_anchor, label_rotation
from polygon_types import (
    FillMethod,
    Point,
    Ring,
    SimplifiedPolygon,
    SourcePolygon,
    TriangleMesh,
    to_ring,
)
from triangulation import MeshCache, TriangulationError

EVEN_ODD_RULE = "evenodd"
NONZERO_RULE = "nonzero"


@dataclass(frozen=True, eq=False)
class PathInstruction:
    """Fill a compound path.

    Attributes:
        rings: Closed subpaths making up the path
        fill_rule: EVEN_ODD_RULE or NONZERO_RULE
        color: Fill color
        method: Strategy that produced the path
        polygons: Polygons painted by this path
        inverted: True for the inverted-fill background
    """
    rings: Tuple[Ring, ...]
    fill_rule: str
    color: str
    method: FillMethod
    polygons: Tuple[SimplifiedPolygon, ...] = ()
    inverted: bool = False

    def covers(self, x: float, y: float) -> bool:
        """Whether the fill rule paints (x, y)."""
        if self.fill_rule == EVEN_ODD_RULE:
            crossings = sum(1 for ring in self.rings if point_in_ring(x, y, ring))
            return crossings % 2 == 1
        return sum(winding_number(x, y, ring) for ring in self.rings) != 0


@dataclass(frozen=True, eq=False)
class MeshInstruction:
    """Fill the triangles of a mesh with one opaque color."""
    mesh: TriangleMesh
    color: str
    polygon: SimplifiedPolygon

    def covers(self, x: float, y: float) -> bool:
        return any(_point_in_triangle(x, y, *tri) for tri in self.mesh.triangles())


@dataclass(frozen=True, eq=False)
class StrokeInstruction:
    """Outline closed rings.

    Attributes:
        rings: Rings to outline
        color: Stroke color
        width: Stroke width in pixels
        polygons: Polygons the rings belong to
        debug: True for the triangulation debug overlay
    """
    rings: Tuple[Ring, ...]
    color: str
    width: float
    polygons: Tuple[SimplifiedPolygon, ...] = ()
    debug: bool = False


@dataclass(frozen=True, eq=False)
class LabelInstruction:
    """Draw a polygon label centered on an anchor.

    Attributes:
        text: Label text
        anchor: Center of the label in layer pixels
        max_width: Width of the polygon's bounds; wider labels should be
            skipped by the rasterizer
        color: Text color
        font_size: Text size in pixels
        rotation: Rotation in degrees around the anchor
        polygon: Labelled polygon
    """
    text: str
    anchor: Point
    max_width: float
    color: str
    font_size: float
    rotation: float
    polygon: SimplifiedPolygon


DrawInstruction = Union[PathInstruction, MeshInstruction, StrokeInstruction, LabelInstruction]


def _point_in_triangle(x: float, y: float, a: Point, b: Point, c: Point) -> bool:
    def cross(p, q):
        return (q[0] - p[0]) * (y - p[1]) - (q[1] - p[1]) * (x - p[0])

    d1 = cross(a, b)
    d2 = cross(b, c)
    d3 = cross(c, a)
    has_neg = d1 < 0 or d2 < 0 or d3 < 0
    has_pos = d1 > 0 or d2 > 0 or d3 > 0
    return not (has_neg and has_pos)


def polygon_shape(polygon: SimplifiedPolygon) -> Polygon:
    """Exterior minus the union of all holes, as a shapely geometry."""
    shape = Polygon(polygon.exterior)
    if not polygon.holes:
        return shape
    return shape.difference(unary_union([Polygon(hole) for hole in polygon.holes]))


def _polygon_parts(geom) -> List[Polygon]:
    if geom.is_empty:
        return []
    if geom.geom_type == "Polygon":
        return [geom]
    if geom.geom_type in ("MultiPolygon", "GeometryCollection"):
        return [part for g in geom.geoms for part in _polygon_parts(g)]
    return []


def geometry_rings(geom) -> Tuple[Ring, ...]:
    """Rings of a shapely geometry wound for the nonzero fill rule.

    Exteriors get a positive shoelace area and holes a negative one.
    """
    rings = []
    for part in _polygon_parts(geom):
        part = orient(part, sign=1.0)
        rings.append(to_ring(part.exterior.coords))
        rings.extend(to_ring(interior.coords) for interior in part.interiors)
    return tuple(rings)


def resolve_fill_method(
    source: SourcePolygon,
    options: PolygonLayerOptions,
    backend: RenderBackend
) -> Tuple[FillMethod, bool]:
    """Pick the fill strategy for a polygon.

    The polygon's style override wins; otherwise meshes are used when alt
    rendering is on, and the painter fill method otherwise.

    Returns:
        (method, degraded) where degraded is True when EXACT_COMBINE was
        requested on a backend without it and EVEN_ODD is used instead
    """
    method = source.style.fill_method
    if method is None:
        method = FillMethod.TRIANGULATED if options.use_alt_rendering else options.painter_fill_method
    if method is FillMethod.EXACT_COMBINE and not backend.supports_exact_combine:
        return FillMethod.EVEN_ODD, True
    return method, False


class FillResolver:
    """Builds the draw instructions for one frame.

    Args:
        options: Layer options
        backend: Capabilities of the consuming rasterizer
        mesh_cache: Cache of triangle meshes owned by the layer
        report: Diagnostics callback
        rotation_deg: Camera rotation, used to keep labels upright
    """

    def __init__(
        self,
        options: PolygonLayerOptions,
        backend: RenderBackend,
        mesh_cache: MeshCache,
        report: Callable[[Diagnostic], None],
        rotation_deg: float = 0.0
    ):
        self.options = options
        self.backend = backend
        self.mesh_cache = mesh_cache
        self.report = report
        self.rotation_deg = rotation_deg

    def resolve(self, source: SourcePolygon) -> FillMethod:
        method, degraded = resolve_fill_method(source, self.options, self.backend)
        if degraded:
            self.report(Diagnostic(
                EXACT_COMBINE_UNAVAILABLE,
                f"Exact combine is not supported by the '{self.backend.name}' backend; "
                f"falling back to even-odd fills. Overlapping polygons or holes may "
                f"render incorrectly.",
            ))
        return method

    def build(
        self,
        polygons: Sequence[SimplifiedPolygon],
        visible_bounds: Bounds
    ) -> List[DrawInstruction]:
        """Draw instructions for the culled polygons, in paint order.

        Consecutive polygons sharing a strategy and paint are batched into a
        single path, as a painter would.
        """
        instructions: List[DrawInstruction] = []
        trailing_labels: List[LabelInstruction] = []

        if self.options.inverted_fill_color:
            inverted = self._inverted_fill(polygons, visible_bounds)
            if inverted is not None:
                instructions.append(inverted)

        resolved = [(p, self.resolve(p.source)) for p in polygons]

        def batch_key(item):
            polygon, method = item
            if method is FillMethod.TRIANGULATED:
                return (method, id(polygon))
            style = polygon.source.style
            return (method, style.fill_color, style.stroke_color,
                    style.stroke_width, style.disable_holes_border)

        for key, group in groupby(resolved, key=batch_key):
            method = key[0]
            batch = [polygon for polygon, _ in group]
            if method is FillMethod.TRIANGULATED:
                painted = self._paint_mesh(batch[0])
                instructions.extend(painted)
                # no label over a fill that failed to triangulate
                if batch[0].source.style.fill_color and not any(
                        isinstance(i, MeshInstruction) for i in painted):
                    continue
            else:
                instructions.extend(self._paint_paths(method, batch))

            labels = self._labels(batch)
            if self.options.draw_labels_last:
                trailing_labels.extend(labels)
            else:
                instructions.extend(labels)

        instructions.extend(trailing_labels)
        return instructions

    def _paint_paths(self, method: FillMethod, batch: List[SimplifiedPolygon]) -> List[DrawInstruction]:
        style = batch[0].source.style
        out: List[DrawInstruction] = []

        if style.fill_color:
            fill = None
            if method is FillMethod.EXACT_COMBINE:
                try:
                    combined = unary_union([polygon_shape(p) for p in batch])
                    fill = PathInstruction(
                        rings=geometry_rings(combined),
                        fill_rule=NONZERO_RULE,
                        color=style.fill_color,
                        method=FillMethod.EXACT_COMBINE,
                        polygons=tuple(batch),
                    )
                except ShapelyError as e:
                    self.report(Diagnostic(
                        EXACT_COMBINE_FAILED,
                        f"Exact combine failed ({e}); drawing {len(batch)} polygon(s) with even-odd",
                        batch[0].source,
                    ))
            if fill is None:
                fill = PathInstruction(
                    rings=tuple(ring for p in batch for ring in p.rings),
                    fill_rule=EVEN_ODD_RULE,
                    color=style.fill_color,
                    method=FillMethod.EVEN_ODD,
                    polygons=tuple(batch),
                )
            if fill.rings:
                out.append(fill)

        out.extend(self._strokes(batch))
        return out

    def _paint_mesh(self, polygon: SimplifiedPolygon) -> List[DrawInstruction]:
        style = polygon.source.style
        out: List[DrawInstruction] = []

        mesh = None
        if style.fill_color:
            try:
                mesh = self.mesh_cache.get(polygon)
            except TriangulationError as e:
                self.report(Diagnostic(
                    TRIANGULATION_FAILED,
                    f"Could not triangulate polygon{_describe(polygon.source)}: {e}",
                    polygon.source,
                ))

            if mesh is not None:
                out.append(MeshInstruction(mesh=mesh, color=style.fill_color, polygon=polygon))

        out.extend(self._strokes([polygon]))

        if mesh is not None and self.options.debug_alt_renderer:
            out.extend(
                StrokeInstruction(
                    rings=(triangle,),
                    color=DEBUG_TRIANGLE_COLOR,
                    width=DEBUG_TRIANGLE_WIDTH,
                    polygons=(polygon,),
                    debug=True,
                )
                for triangle in mesh.triangles()
            )
        return out

    def _strokes(self, batch: List[SimplifiedPolygon]) -> List[StrokeInstruction]:
        style = batch[0].source.style
        if not style.has_stroke:
            return []
        if style.disable_holes_border:
            rings = tuple(p.exterior for p in batch)
        else:
            rings = tuple(ring for p in batch for ring in p.rings)
        return [StrokeInstruction(
            rings=rings,
            color=style.stroke_color,
            width=style.stroke_width,
            polygons=tuple(batch),
        )]

    def _labels(self, batch: List[SimplifiedPolygon]) -> List[LabelInstruction]:
        if not self.options.polygon_labels:
            return []

        labels = []
        for polygon in batch:
            source = polygon.source
            if not source.label:
                continue
            style = source.style
            try:
                anchor = label_anchor(polygon, style.label_placement, self.options.polylabel_precision)
            except ShapelyError as e:
                self.report(Diagnostic(
                    LABEL_FALLBACK,
                    f"Label placement failed for '{source.label}' ({e}); using centroid",
                    source,
                ))
                anchor = area_centroid(polygon.exterior)
            labels.append(LabelInstruction(
                text=source.label,
                anchor=anchor,
                max_width=polygon.bounds.width,
                color=style.label_color,
                font_size=style.label_font_size,
                rotation=label_rotation(self.rotation_deg, style.rotate_label),
                polygon=polygon,
            ))
        return labels

    def _inverted_fill(
        self,
        polygons: Sequence[SimplifiedPolygon],
        visible_bounds: Bounds
    ) -> Optional[PathInstruction]:
        """Background filling the viewport everywhere no polygon is drawn."""
        color = self.options.inverted_fill_color
        method = self.options.painter_fill_method
        if method is FillMethod.EXACT_COMBINE and not self.backend.supports_exact_combine:
            self.report(Diagnostic(
                INVERTED_FILL_DEGRADED,
                f"Inverted fill on the '{self.backend.name}' backend uses even-odd fills and "
                f"may not render as expected. Avoid intersecting polygons and holes.",
            ))
            method = FillMethod.EVEN_ODD

        if method is FillMethod.EXACT_COMBINE:
            try:
                covered = unary_union([polygon_shape(p) for p in polygons])
                uncovered = box(*visible_bounds.as_tuple()).difference(covered)
                rings = geometry_rings(uncovered)
                if not rings:
                    return None
                return PathInstruction(
                    rings=rings,
                    fill_rule=NONZERO_RULE,
                    color=color,
                    method=FillMethod.EXACT_COMBINE,
                    polygons=tuple(polygons),
                    inverted=True,
                )
            except ShapelyError as e:
                self.report(Diagnostic(
                    EXACT_COMBINE_FAILED,
                    f"Exact combine failed for the inverted fill ({e}); using even-odd",
                ))

        rings = (visible_bounds.corners(),) + tuple(ring for p in polygons for ring in p.rings)
        return PathInstruction(
            rings=rings,
            fill_rule=EVEN_ODD_RULE,
            color=color,
            method=FillMethod.EVEN_ODD,
            polygons=tuple(polygons),
            inverted=True,
        )


def _describe(source: SourcePolygon) -> str:
    return f" '{source.label}'" if source.label else ""
