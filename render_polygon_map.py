#!/usr/bin/env python3
"""
Render the polygons of a vector file to an SVG map.

Reads any format geopandas can open (GeoJSON, GeoPackage, Shapefile),
runs the polygons through a PolygonLayer and writes the draw instructions
as SVG.

Usage:
    # Fit the whole file on screen
    python render_polygon_map.py data/countries.geojson -o output/countries.svg

    # Explicit camera, rotated, with triangle meshes and their debug outlines
    python render_polygon_map.py data/lakes.gpkg --center 8.2 46.8 --zoom 7 \\
        --rotation 30 --alt-rendering --debug-alt

    # Label polygons from a column and report what lies under a screen point
    python render_polygon_map.py data/zones.geojson --label-column name --hit 400 300
"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional

import geopandas as gpd
import pandas as pd

from layer_config import DEFAULT_SIMPLIFICATION_TOLERANCE, PolygonLayerOptions, RenderBackend
from map_utils import WGS84, Bounds, WebMercatorCamera
from polygon_layer import FrameInputs, PolygonLayer
from polygon_types import FillMethod, LabelPlacement, PolygonStyle, SourcePolygon
from render_helpers import create_frame_svg

# === Default paint ===
DEFAULT_FILL = "#b5d3a7"
DEFAULT_STROKE = "#3c5a32"
DEFAULT_STROKE_WIDTH = 1.0
DEFAULT_SIZE = (1024, 768)

FILL_METHOD_CHOICES = {
    "even-odd": FillMethod.EVEN_ODD,
    "exact": FillMethod.EXACT_COMBINE,
}

LABEL_PLACEMENT_CHOICES = {
    "centroid": LabelPlacement.CENTROID,
    "simple-centroid": LabelPlacement.SIMPLE_CENTROID,
    "polylabel": LabelPlacement.POLYLABEL,
}


def polygons_from_geodataframe(
    gdf: gpd.GeoDataFrame,
    fill_color: Optional[str] = DEFAULT_FILL,
    stroke_color: Optional[str] = DEFAULT_STROKE,
    stroke_width: float = DEFAULT_STROKE_WIDTH,
    label_column: Optional[str] = None,
    color_column: Optional[str] = None,
    label_placement: LabelPlacement = LabelPlacement.CENTROID
) -> List[SourcePolygon]:
    """
    Build source polygons from the Polygon and MultiPolygon rows of a frame.

    Geometries are reprojected to WGS84 first. Each part of a MultiPolygon
    becomes its own polygon sharing the row's label and style. Other
    geometry types are ignored.

    Args:
        gdf: Vector data
        fill_color: Fill for rows without a color column value
        stroke_color: Border color
        stroke_width: Border width in pixels
        label_column: Column holding label text
        color_column: Column holding per-row fill colors
        label_placement: Label anchor method

    Returns:
        Source polygons in row order; user_data is the row index
    """
    if gdf is None or gdf.empty:
        return []

    if gdf.crs is not None and gdf.crs.to_epsg() != 4326:
        gdf = gdf.to_crs(WGS84)

    polygons = []
    for idx, row in gdf.iterrows():
        geom = row.geometry
        if geom is None or geom.is_empty:
            continue

        if geom.geom_type == "Polygon":
            parts = [geom]
        elif geom.geom_type == "MultiPolygon":
            parts = list(geom.geoms)
        else:
            continue

        label = None
        if label_column and pd.notna(row.get(label_column)):
            label = str(row[label_column])

        fill = fill_color
        if color_column and pd.notna(row.get(color_column)):
            fill = str(row[color_column])

        style = PolygonStyle(
            fill_color=fill,
            stroke_color=stroke_color,
            stroke_width=stroke_width,
            label_placement=label_placement,
        )

        for part in parts:
            polygons.append(SourcePolygon(
                exterior=part.exterior.coords,
                holes=[interior.coords for interior in part.interiors],
                style=style,
                label=label,
                user_data=idx,
            ))

    return polygons


def geographic_bounds(gdf: gpd.GeoDataFrame) -> Bounds:
    """Lon/lat bounds of a frame."""
    if gdf.crs is not None and gdf.crs.to_epsg() != 4326:
        gdf = gdf.to_crs(WGS84)
    min_x, min_y, max_x, max_y = gdf.total_bounds
    return Bounds(min_x=float(min_x), max_x=float(max_x), min_y=float(min_y), max_y=float(max_y))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Render the polygons of a vector file to SVG"
    )
    parser.add_argument("input", type=Path, help="Vector file to render")
    parser.add_argument("-o", "--output", type=Path, help="Output SVG path (default: <input>.svg)")
    parser.add_argument("--width", type=int, default=DEFAULT_SIZE[0], help="Screen width in pixels")
    parser.add_argument("--height", type=int, default=DEFAULT_SIZE[1], help="Screen height in pixels")
    parser.add_argument("--center", type=float, nargs=2, metavar=("LON", "LAT"),
                        help="Screen center (default: fit the data)")
    parser.add_argument("--zoom", type=float, help="Zoom level (required with --center)")
    parser.add_argument("--rotation", type=float, default=0.0, help="Camera rotation in degrees")

    parser.add_argument("--fill-method", choices=sorted(FILL_METHOD_CHOICES), default="exact",
                        help="Path fill strategy")
    parser.add_argument("--no-exact-combine", action="store_true",
                        help="Treat the backend as unable to draw exact combined paths")
    parser.add_argument("--alt-rendering", action="store_true", help="Fill polygons as triangle meshes")
    parser.add_argument("--debug-alt", action="store_true", help="Outline every mesh triangle")
    parser.add_argument("--no-culling", action="store_true", help="Draw polygons outside the view")
    parser.add_argument("--single-world", action="store_true", help="Do not repeat polygons across worlds")
    parser.add_argument("--tolerance", type=float, default=DEFAULT_SIMPLIFICATION_TOLERANCE,
                        help="Simplification tolerance in pixels (0 disables)")
    parser.add_argument("--validate", action="store_true", help="Skip polygons with invalid rings")

    parser.add_argument("--fill", default=DEFAULT_FILL, help="Fill color")
    parser.add_argument("--stroke", default=DEFAULT_STROKE, help="Border color")
    parser.add_argument("--stroke-width", type=float, default=DEFAULT_STROKE_WIDTH, help="Border width")
    parser.add_argument("--color-column", help="Column holding per-feature fill colors")
    parser.add_argument("--inverted-fill", metavar="COLOR", help="Fill the area outside all polygons")
    parser.add_argument("--background", help="Background color")

    parser.add_argument("--label-column", help="Column holding label text")
    parser.add_argument("--label-placement", choices=sorted(LABEL_PLACEMENT_CHOICES), default="centroid")
    parser.add_argument("--no-labels", action="store_true", help="Do not draw labels")
    parser.add_argument("--labels-last", action="store_true", help="Draw labels above every polygon")

    parser.add_argument("--hit", type=float, nargs=2, metavar=("X", "Y"),
                        help="Report the features under a screen point")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.center is not None and args.zoom is None:
        parser.error("--zoom is required with --center")

    if not args.input.exists():
        print(f"ERROR: Input file not found: {args.input}")
        return 1

    print(f"Loading {args.input.name}...")
    try:
        gdf = gpd.read_file(args.input)
    except Exception as e:
        print(f"ERROR reading {args.input.name}: {e}")
        return 1

    polygons = polygons_from_geodataframe(
        gdf,
        fill_color=args.fill,
        stroke_color=args.stroke,
        stroke_width=args.stroke_width,
        label_column=args.label_column,
        color_column=args.color_column,
        label_placement=LABEL_PLACEMENT_CHOICES[args.label_placement],
    )
    if not polygons:
        print("No polygons to render.")
        return 1
    print(f"  {len(polygons)} polygons from {len(gdf)} features")

    if args.center is not None:
        camera = WebMercatorCamera(args.center[0], args.center[1], args.zoom,
                                   args.width, args.height, rotation_deg=args.rotation)
    else:
        camera = WebMercatorCamera.fit_bounds(geographic_bounds(gdf), args.width, args.height,
                                              rotation_deg=args.rotation)
    print(f"  Camera: zoom {camera.zoom:.2f} at ({camera.center_lon:.4f}, {camera.center_lat:.4f})")

    options = PolygonLayerOptions(
        use_alt_rendering=args.alt_rendering,
        debug_alt_renderer=args.debug_alt,
        polygon_culling=not args.no_culling,
        polygon_labels=not args.no_labels,
        draw_labels_last=args.labels_last,
        draw_in_single_world=args.single_world,
        painter_fill_method=FILL_METHOD_CHOICES[args.fill_method],
        inverted_fill_color=args.inverted_fill,
        simplification_tolerance=args.tolerance,
        validate_rings=args.validate,
    )
    backend = RenderBackend(name="svg", supports_exact_combine=not args.no_exact_combine)

    layer = PolygonLayer(options)
    try:
        frame = layer.recompute(FrameInputs(polygons=polygons, camera=camera, backend=backend))
    except ValueError as e:
        print(f"ERROR: {e}")
        return 1
    print(f"  Drawing {len(frame.drawn)} polygons ({len(frame.instructions)} draw instructions)")

    output = args.output or args.input.with_suffix(".svg")
    output.parent.mkdir(parents=True, exist_ok=True)
    dwg, counts = create_frame_svg(
        frame,
        (args.width, args.height),
        background=args.background,
        title=args.input.stem,
        filename=str(output),
    )
    dwg.save()
    print(f"  Paths: {counts['paths']}, triangles: {counts['triangles']}, "
          f"strokes: {counts['strokes']}, labels: {counts['labels']}")
    print(f"Saved: {output}")

    if args.hit is not None:
        hits = layer.hit_test(tuple(args.hit))
        if not hits:
            print(f"Nothing at ({args.hit[0]}, {args.hit[1]})")
        for hit in hits:
            name = f" '{hit.polygon.label}'" if hit.polygon.label else ""
            print(f"  Hit: feature {hit.user_data}{name} (world {hit.world})")

    layer.teardown()
    return 0


if __name__ == "__main__":
    sys.exit(main())
