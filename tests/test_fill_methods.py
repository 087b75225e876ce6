"""
Tests for fill_methods module.

Run with: pytest tests/test_fill_methods.py -v
"""

import pytest
from shapely.errors import ShapelyError
from shapely.geometry import Polygon

import fill_methods
from fill_methods import (
    EVEN_ODD_RULE,
    NONZERO_RULE,
    FillResolver,
    LabelInstruction,
    MeshInstruction,
    PathInstruction,
    StrokeInstruction,
    geometry_rings,
    polygon_shape,
    resolve_fill_method,
)
from layer_config import (
    EXACT_COMBINE_FAILED,
    EXACT_COMBINE_UNAVAILABLE,
    INVERTED_FILL_DEGRADED,
    LABEL_FALLBACK,
    TRIANGULATION_FAILED,
    PolygonLayerOptions,
    RenderBackend,
)
from map_utils import Bounds
from polygon_types import FillMethod, LabelPlacement, PolygonStyle, SimplifiedPolygon, SourcePolygon, signed_area
from triangulation import MeshCache

SQUARE = [(0, 0), (0, 10), (10, 10), (10, 0)]
HOLE = [(3, 3), (3, 7), (7, 7), (7, 3)]
OVERLAPPING = [(5, 5), (5, 15), (15, 15), (15, 5)]
VIEWPORT = Bounds(min_x=-5, max_x=25, min_y=-5, max_y=25)

BLUE = PolygonStyle(fill_color="#0000ff")
RED = PolygonStyle(fill_color="#ff0000")


def drawn(exterior, holes=(), style=BLUE, label=None):
    source = SourcePolygon(exterior=exterior, holes=holes, style=style, label=label)
    return SimplifiedPolygon(
        source=source,
        exterior=source.exterior,
        holes=source.holes,
        bounds=Bounds.from_points(source.exterior),
    )


def make_resolver(reported, backend=None, **options):
    return FillResolver(
        PolygonLayerOptions(**options),
        backend or RenderBackend(),
        MeshCache(),
        reported.append,
    )


def fills(instructions):
    return [i for i in instructions if isinstance(i, (PathInstruction, MeshInstruction))]


def sample_points():
    """Points on a half-unit grid, never on a ring edge of the test shapes."""
    return [(x + 0.5, y + 0.5) for x in range(-2, 17) for y in range(-2, 17)]


class TestResolveFillMethod:
    """Tests for resolve_fill_method."""

    def test_painter_default(self):
        polygon = drawn(SQUARE).source
        assert resolve_fill_method(polygon, PolygonLayerOptions(), RenderBackend()) == (
            FillMethod.EXACT_COMBINE, False)

    def test_alt_rendering(self):
        polygon = drawn(SQUARE).source
        options = PolygonLayerOptions(use_alt_rendering=True)
        assert resolve_fill_method(polygon, options, RenderBackend())[0] is FillMethod.TRIANGULATED

    def test_style_override_wins(self):
        style = PolygonStyle(fill_color="#000", fill_method=FillMethod.EVEN_ODD)
        polygon = drawn(SQUARE, style=style).source
        options = PolygonLayerOptions(use_alt_rendering=True)
        assert resolve_fill_method(polygon, options, RenderBackend())[0] is FillMethod.EVEN_ODD

    def test_unsupported_backend_degrades(self):
        polygon = drawn(SQUARE).source
        backend = RenderBackend(name="canvas", supports_exact_combine=False)
        assert resolve_fill_method(polygon, PolygonLayerOptions(), backend) == (FillMethod.EVEN_ODD, True)


class TestGeometryHelpers:
    """Tests for polygon_shape and geometry_rings."""

    def test_polygon_shape_subtracts_holes(self):
        assert polygon_shape(drawn(SQUARE, [HOLE])).area == pytest.approx(84)

    def test_overlapping_holes_subtracted_once(self):
        """Test overlapping holes are unioned before subtraction."""
        holes = [[(2, 2), (2, 6), (6, 6), (6, 2)], [(4, 4), (4, 8), (8, 8), (8, 4)]]
        assert polygon_shape(drawn(SQUARE, holes)).area == pytest.approx(100 - 28)

    def test_geometry_rings_winding(self):
        """Test exteriors wind positive and holes negative."""
        rings = geometry_rings(Polygon(SQUARE, [HOLE]))
        assert signed_area(rings[0]) > 0
        assert signed_area(rings[1]) < 0

    def test_empty_geometry(self):
        assert geometry_rings(Polygon()) == ()


class TestOverlappingPolygons:
    """Two overlapping squares drawn in one batch."""

    def test_even_odd_overlap_renders_as_hole(self):
        """Test the even-odd rule cancels the overlap."""
        reported = []
        resolver = make_resolver(reported, painter_fill_method=FillMethod.EVEN_ODD)
        instructions = resolver.build([drawn(SQUARE), drawn(OVERLAPPING)], VIEWPORT)
        [path] = fills(instructions)
        assert path.fill_rule == EVEN_ODD_RULE
        assert len(path.rings) == 2
        assert path.covers(7, 7) is False
        assert path.covers(2, 2) is True
        assert path.covers(12, 12) is True

    def test_exact_combine_overlap_is_solid(self):
        """Test exact combine unions the overlap."""
        reported = []
        resolver = make_resolver(reported)
        instructions = resolver.build([drawn(SQUARE), drawn(OVERLAPPING)], VIEWPORT)
        [path] = fills(instructions)
        assert path.fill_rule == NONZERO_RULE
        assert path.method is FillMethod.EXACT_COMBINE
        assert path.covers(7, 7) is True
        assert path.covers(2, 2) is True
        assert path.covers(12, 12) is True
        assert path.covers(2, 12) is False
        assert reported == []

    def test_different_styles_not_batched(self):
        """Test consecutive polygons with different paint get separate paths."""
        reported = []
        resolver = make_resolver(reported, painter_fill_method=FillMethod.EVEN_ODD)
        instructions = resolver.build(
            [drawn(SQUARE), drawn(OVERLAPPING, style=RED), drawn(SQUARE)], VIEWPORT
        )
        paths = fills(instructions)
        assert [p.color for p in paths] == ["#0000ff", "#ff0000", "#0000ff"]
        assert all(len(p.rings) == 1 for p in paths)


class TestStrategiesAgree:
    """All strategies cover the same pixels on well-formed input."""

    @pytest.mark.parametrize("holes", [[], [HOLE]])
    def test_same_coverage(self, holes):
        polygon = drawn(SQUARE, holes)
        reported = []
        even_odd = fills(make_resolver(reported, painter_fill_method=FillMethod.EVEN_ODD)
                         .build([polygon], VIEWPORT))[0]
        exact = fills(make_resolver(reported).build([polygon], VIEWPORT))[0]
        mesh = fills(make_resolver(reported, use_alt_rendering=True).build([polygon], VIEWPORT))[0]
        assert isinstance(mesh, MeshInstruction)

        for x, y in sample_points():
            expected = even_odd.covers(x, y)
            assert exact.covers(x, y) is expected, (x, y)
            assert mesh.covers(x, y) is expected, (x, y)
        assert reported == []


class TestMeshFills:
    """Tests for triangulated fills."""

    def test_per_polygon_override(self):
        """Test a TRIANGULATED style is meshed while others use paths."""
        meshed = PolygonStyle(fill_color="#00ff00", fill_method=FillMethod.TRIANGULATED)
        reported = []
        instructions = make_resolver(reported).build(
            [drawn(SQUARE), drawn(OVERLAPPING, style=meshed)], VIEWPORT
        )
        kinds = [type(i) for i in fills(instructions)]
        assert kinds == [PathInstruction, MeshInstruction]

    def test_debug_outlines(self):
        """Test the debug overlay outlines every triangle."""
        reported = []
        instructions = make_resolver(reported, use_alt_rendering=True, debug_alt_renderer=True).build(
            [drawn(SQUARE, [HOLE])], VIEWPORT
        )
        [mesh] = fills(instructions)
        debug = [i for i in instructions if isinstance(i, StrokeInstruction) and i.debug]
        assert len(debug) == mesh.mesh.triangle_count == 8

    def test_triangulation_failure_skips_polygon(self):
        """Test a polygon that cannot be meshed is reported and not filled."""
        reported = []
        instructions = make_resolver(reported, use_alt_rendering=True).build(
            [drawn([(0, 0), (5, 5), (10, 10)]), drawn(OVERLAPPING)], VIEWPORT
        )
        meshes = fills(instructions)
        assert len(meshes) == 1
        assert meshes[0].polygon.exterior[0] == (5, 5)
        assert [d.code for d in reported] == [TRIANGULATION_FAILED]

    def test_triangulation_failure_drops_label(self):
        """Test an unfilled polygon gets no label while meshed ones do."""
        reported = []
        instructions = make_resolver(reported, use_alt_rendering=True).build(
            [drawn([(0, 0), (5, 5), (10, 10)], label="flat"), drawn(OVERLAPPING, label="ok")],
            VIEWPORT,
        )
        labels = [i.text for i in instructions if isinstance(i, LabelInstruction)]
        assert labels == ["ok"]


class TestStrokes:
    """Tests for border instructions."""

    def test_holes_stroked_by_default(self):
        style = PolygonStyle(fill_color="#fff", stroke_color="#000", stroke_width=2)
        instructions = make_resolver([]).build([drawn(SQUARE, [HOLE], style=style)], VIEWPORT)
        [stroke] = [i for i in instructions if isinstance(i, StrokeInstruction)]
        assert len(stroke.rings) == 2
        assert stroke.width == 2

    def test_disable_holes_border(self):
        style = PolygonStyle(fill_color="#fff", stroke_color="#000", stroke_width=2,
                             disable_holes_border=True)
        instructions = make_resolver([]).build([drawn(SQUARE, [HOLE], style=style)], VIEWPORT)
        [stroke] = [i for i in instructions if isinstance(i, StrokeInstruction)]
        assert stroke.rings == (tuple(map(tuple, SQUARE)),)

    def test_no_stroke_without_width(self):
        style = PolygonStyle(fill_color="#fff", stroke_color="#000", stroke_width=0)
        instructions = make_resolver([]).build([drawn(SQUARE, style=style)], VIEWPORT)
        assert not [i for i in instructions if isinstance(i, StrokeInstruction)]

    def test_outline_only(self):
        """Test polygons without a fill only get a border."""
        style = PolygonStyle(stroke_color="#000", stroke_width=1)
        instructions = make_resolver([]).build([drawn(SQUARE, style=style)], VIEWPORT)
        assert fills(instructions) == []
        assert len(instructions) == 1


class TestLabels:
    """Tests for label instructions."""

    def test_label_follows_its_batch(self):
        reported = []
        instructions = make_resolver(reported).build(
            [drawn(SQUARE, label="A"), drawn(OVERLAPPING, style=RED, label="B")], VIEWPORT
        )
        kinds = [type(i).__name__ for i in instructions]
        assert kinds == ["PathInstruction", "LabelInstruction", "PathInstruction", "LabelInstruction"]
        label = instructions[1]
        assert label.text == "A"
        assert label.anchor == pytest.approx((5, 5))
        assert label.max_width == 10

    def test_labels_last(self):
        instructions = make_resolver([], draw_labels_last=True).build(
            [drawn(SQUARE, label="A"), drawn(OVERLAPPING, style=RED, label="B")], VIEWPORT
        )
        assert [type(i).__name__ for i in instructions] == [
            "PathInstruction", "PathInstruction", "LabelInstruction", "LabelInstruction"
        ]

    def test_labels_disabled(self):
        instructions = make_resolver([], polygon_labels=False).build([drawn(SQUARE, label="A")], VIEWPORT)
        assert not [i for i in instructions if isinstance(i, LabelInstruction)]

    def test_label_fallback(self, monkeypatch):
        """Test a failing polylabel falls back to the centroid."""
        def broken(*args, **kwargs):
            raise ShapelyError("polylabel failed")

        monkeypatch.setattr(fill_methods, "label_anchor", broken)
        style = PolygonStyle(fill_color="#fff", label_placement=LabelPlacement.POLYLABEL)
        reported = []
        instructions = make_resolver(reported).build([drawn(SQUARE, style=style, label="A")], VIEWPORT)
        [label] = [i for i in instructions if isinstance(i, LabelInstruction)]
        assert label.anchor == pytest.approx((5, 5))
        assert [d.code for d in reported] == [LABEL_FALLBACK]


class TestExactCombineFallback:
    """Tests for recovering from failed boolean operations."""

    def test_falls_back_to_even_odd(self, monkeypatch):
        def broken(*args, **kwargs):
            raise ShapelyError("TopologyException")

        monkeypatch.setattr(fill_methods, "unary_union", broken)
        reported = []
        instructions = make_resolver(reported).build([drawn(SQUARE, [HOLE])], VIEWPORT)
        [path] = fills(instructions)
        assert path.fill_rule == EVEN_ODD_RULE
        assert path.covers(5, 5) is False
        assert path.covers(1, 1) is True
        assert [d.code for d in reported] == [EXACT_COMBINE_FAILED]

    def test_self_intersecting_hole_falls_back(self):
        """Test a bow-tie hole that shapely cannot union is drawn even-odd."""
        reported = []
        bowtie = [(2, 2), (8, 8), (8, 2), (2, 8)]
        instructions = make_resolver(reported).build([drawn(SQUARE, [bowtie])], VIEWPORT)
        [path] = fills(instructions)
        assert path.fill_rule == EVEN_ODD_RULE
        assert path.method is FillMethod.EVEN_ODD
        assert path.covers(1, 1) is True
        assert [d.code for d in reported] == [EXACT_COMBINE_FAILED]

    def test_unsupported_backend_advisory(self):
        reported = []
        backend = RenderBackend(name="canvas", supports_exact_combine=False)
        instructions = make_resolver(reported, backend=backend).build(
            [drawn(SQUARE), drawn(OVERLAPPING)], VIEWPORT
        )
        [path] = fills(instructions)
        assert path.fill_rule == EVEN_ODD_RULE
        assert [d.code for d in reported] == [EXACT_COMBINE_UNAVAILABLE, EXACT_COMBINE_UNAVAILABLE]


class TestInvertedFill:
    """Tests for the inverted fill background."""

    def test_exact_inverted_fill(self):
        reported = []
        instructions = make_resolver(reported, inverted_fill_color="#000000").build(
            [drawn(SQUARE, [HOLE])], VIEWPORT
        )
        inverted = instructions[0]
        assert inverted.inverted is True
        assert inverted.fill_rule == NONZERO_RULE
        assert inverted.covers(20, 20) is True
        assert inverted.covers(1, 1) is False
        assert inverted.covers(5, 5) is True

    def test_even_odd_inverted_fill(self):
        instructions = make_resolver(
            [], inverted_fill_color="#000000", painter_fill_method=FillMethod.EVEN_ODD
        ).build([drawn(SQUARE, [HOLE])], VIEWPORT)
        inverted = instructions[0]
        assert inverted.fill_rule == EVEN_ODD_RULE
        assert inverted.covers(20, 20) is True
        assert inverted.covers(1, 1) is False
        assert inverted.covers(5, 5) is True

    def test_fully_covered_viewport(self):
        """Test no background is emitted when nothing is uncovered."""
        big = [(-10, -10), (-10, 30), (30, 30), (30, -10)]
        instructions = make_resolver([], inverted_fill_color="#000000").build([drawn(big)], VIEWPORT)
        assert not any(getattr(i, "inverted", False) for i in instructions)

    def test_degraded_advisory(self):
        reported = []
        backend = RenderBackend(name="canvas", supports_exact_combine=False)
        instructions = make_resolver(reported, backend=backend, inverted_fill_color="#000000").build(
            [drawn(SQUARE)], VIEWPORT
        )
        assert instructions[0].fill_rule == EVEN_ODD_RULE
        assert reported[0].code == INVERTED_FILL_DEGRADED
