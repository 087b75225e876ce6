"""
polygon_layer.py - Per-frame polygon rendering pipeline

A PolygonLayer turns caller-owned geographic polygons into draw instructions
once per redraw:

    project -> simplify -> cull -> resolve fills

and answers hit tests against the geometry of the last frame. The layer
owns its caches; the view that drives it only calls recompute, hit_test and
teardown.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from shapely.geometry import Polygon
from shapely.validation import explain_validity

from culling import cull_polygons
from fill_methods import DrawInstruction, FillResolver, LabelInstruction, MeshInstruction
from hit_testing import HitNotifier, HitResult, notify_hits
from layer_config import (
    INVALID_POLYGON,
    ONE_TIME_CODES,
    Diagnostic,
    DiagnosticCallback,
    PolygonLayerOptions,
    RenderBackend,
    print_diagnostic,
)
from map_utils import MapCamera
from polygon_types import SimplifiedPolygon, SourcePolygon, TriangleMesh, is_degenerate
from projection import ProjectionCache, world_copies
from simplification import SimplificationCache
from triangulation import MeshCache


@dataclass
class FrameInputs:
    """Everything a frame is computed from.

    Attributes:
        polygons: Source polygons in paint order (first is painted first)
        camera: Camera state for the frame
        backend: Capabilities of the rasterizer
    """
    polygons: Sequence[SourcePolygon]
    camera: MapCamera
    backend: RenderBackend = field(default_factory=RenderBackend)


@dataclass
class FrameOutput:
    """Result of one recompute.

    Attributes:
        instructions: Draw instructions in paint order
        drawn: Polygons that survived culling, in paint order; hit tests run
            against these
        camera: Camera the frame was computed with
        diagnostics: Conditions reported while building the frame
    """
    instructions: List[DrawInstruction]
    drawn: List[SimplifiedPolygon]
    camera: MapCamera
    diagnostics: List[Diagnostic] = field(default_factory=list)

    @property
    def meshes(self) -> List[TriangleMesh]:
        return [i.mesh for i in self.instructions if isinstance(i, MeshInstruction)]

    @property
    def labels(self) -> List[LabelInstruction]:
        return [i for i in self.instructions if isinstance(i, LabelInstruction)]


def explain_ring_problem(polygon: SimplifiedPolygon) -> Optional[str]:
    """Why a polygon's rings are malformed, or None when they are valid.

    Catches self-intersecting rings and holes that are not contained in the
    exterior.
    """
    shape = Polygon(polygon.exterior, polygon.holes)
    if shape.is_valid:
        return None
    return explain_validity(shape)


class PolygonLayer:
    """Projection, simplification, culling and fill pipeline for polygons.

    Args:
        options: Layer options (defaults to PolygonLayerOptions())
        hit_notifier: Called with the results of every hit test
        diagnostics: Called with every recoverable condition; defaults to
            printing a warning. Pass None to silence.
    """

    def __init__(
        self,
        options: Optional[PolygonLayerOptions] = None,
        hit_notifier: Optional[HitNotifier] = None,
        diagnostics: Optional[DiagnosticCallback] = print_diagnostic
    ):
        self.options = options if options is not None else PolygonLayerOptions()
        self.hit_notifier = hit_notifier
        self._diagnostics = diagnostics

        self._projections = ProjectionCache()
        self._simplifications = SimplificationCache(high_quality=True)
        self._meshes = MeshCache()

        self._advised = set()
        self._frame: Optional[FrameOutput] = None
        self._torn_down = False

    @property
    def last_frame(self) -> Optional[FrameOutput]:
        return self._frame

    @property
    def cache_sizes(self) -> Tuple[int, int, int]:
        """(projected, simplified, meshes) entries currently cached."""
        return (len(self._projections), len(self._simplifications), len(self._meshes))

    def recompute(self, frame: FrameInputs) -> FrameOutput:
        """Build the draw instructions for a frame.

        Raises:
            ValueError: If the camera is missing or the options are invalid.
                Nothing is drawn in that case.
            RuntimeError: If the layer was torn down
        """
        if self._torn_down:
            raise RuntimeError("PolygonLayer has been torn down")
        if frame.camera is None:
            raise ValueError("A camera is required to project polygons")
        self.options.validate()

        options = self.options
        camera = frame.camera
        reported: List[Diagnostic] = []

        def report(diagnostic: Diagnostic):
            if diagnostic.code in ONE_TIME_CODES:
                if diagnostic.code in self._advised:
                    return
                self._advised.add(diagnostic.code)
            reported.append(diagnostic)
            if self._diagnostics is not None:
                self._diagnostics(diagnostic)

        live = []
        candidates = []
        for source in frame.polygons:
            if is_degenerate(source.exterior):
                continue
            live.append(source)

            projected = self._projections.get(source, camera, options.draw_in_single_world)
            simplified = self._simplifications.get(projected, options.simplification_tolerance)
            if is_degenerate(simplified.exterior):
                continue

            if options.validate_rings:
                problem = explain_ring_problem(simplified)
                if problem:
                    label = f" '{source.label}'" if source.label else ""
                    report(Diagnostic(INVALID_POLYGON, f"Skipping invalid polygon{label}: {problem}", source))
                    continue

            for world in world_copies(simplified.bounds, camera, options.draw_in_single_world):
                candidates.append(
                    self._simplifications.world_copy(simplified, world, camera.world_width)
                )

        drawn = cull_polygons(candidates, camera.visible_bounds, options.polygon_culling)

        resolver = FillResolver(options, frame.backend, self._meshes, report, camera.rotation_deg)
        instructions = resolver.build(drawn, camera.visible_bounds)

        self._projections.prune(live)
        self._simplifications.prune(live)
        self._meshes.prune(drawn)

        self._frame = FrameOutput(
            instructions=instructions,
            drawn=drawn,
            camera=camera,
            diagnostics=reported,
        )
        return self._frame

    def hit_test(self, point: Tuple[float, float]) -> List[HitResult]:
        """Polygons under a screen point in the last frame, topmost first.

        The results are also delivered to the hit notifier. Before the first
        frame nothing can be hit.
        """
        if self._frame is None:
            return notify_hits([], point, self.hit_notifier)
        layer_point = self._frame.camera.screen_to_layer(*point)
        return notify_hits(self._frame.drawn, layer_point, self.hit_notifier)

    def teardown(self):
        """Release caches and the last frame. The layer cannot be reused."""
        self._projections.clear()
        self._simplifications.clear()
        self._meshes.clear()
        self._frame = None
        self._torn_down = True
