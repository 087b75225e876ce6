"""
Rendering helper functions that rasterize polygon draw instructions to SVG.

The polygon pipeline only emits draw instructions; these helpers are one
consumer of them, writing svgwrite elements into layer groups.
"""

from typing import Dict, Iterable, Optional, Sequence, Tuple

import svgwrite

from fill_methods import (
    LabelInstruction,
    MeshInstruction,
    PathInstruction,
    StrokeInstruction,
)
from map_utils import LayerManager, LayerZOrder
from polygon_types import Ring

# Average glyph width as a fraction of the font size, for label fitting
LABEL_CHAR_WIDTH_RATIO = 0.6
LABEL_FONT_FAMILY = "sans-serif"


def format_point(x: float, y: float) -> str:
    return f"{x:.2f},{y:.2f}"


def ring_path_data(rings: Iterable[Ring]) -> str:
    """SVG path data with one closed subpath per ring.

    Args:
        rings: Rings of (x, y) points, without a repeated closing point

    Returns:
        Path data such as "M 0.00,0.00 L 10.00,0.00 L 10.00,10.00 Z"
    """
    parts = []
    for ring in rings:
        if len(ring) < 2:
            continue
        head, *tail = ring
        segment = [f"M {format_point(*head)}"]
        segment.extend(f"L {format_point(x, y)}" for x, y in tail)
        segment.append("Z")
        parts.append(" ".join(segment))
    return " ".join(parts)


def estimate_text_width(text: str, font_size: float) -> float:
    """Rough rendered width of a label."""
    return len(text) * font_size * LABEL_CHAR_WIDTH_RATIO


def render_path(instruction: PathInstruction, layer, dwg) -> bool:
    """Add a filled compound path to a layer.

    Returns:
        True if anything was drawn
    """
    data = ring_path_data(instruction.rings)
    if not data:
        return False
    layer.add(dwg.path(
        d=data,
        fill=instruction.color,
        fill_rule=instruction.fill_rule,
        stroke="none",
    ))
    return True


def render_mesh(instruction: MeshInstruction, layer, dwg) -> int:
    """Add every triangle of a mesh to a layer.

    Triangles are grouped so the mesh stays one element in the document.

    Returns:
        Number of triangles rendered
    """
    group = dwg.g(fill=instruction.color, stroke="none")
    count = 0
    for triangle in instruction.mesh.triangles():
        group.add(dwg.polygon(points=list(triangle)))
        count += 1
    layer.add(group)
    return count


def render_stroke(instruction: StrokeInstruction, layer, dwg) -> bool:
    """Add ring outlines to a layer."""
    data = ring_path_data(instruction.rings)
    if not data:
        return False
    layer.add(dwg.path(
        d=data,
        fill="none",
        stroke=instruction.color,
        stroke_width=instruction.width,
        stroke_linejoin="round",
    ))
    return True


def render_label(instruction: LabelInstruction, layer, dwg) -> bool:
    """Add a polygon label, unless it is wider than its polygon.

    Returns:
        True if the label was drawn
    """
    if estimate_text_width(instruction.text, instruction.font_size) > instruction.max_width:
        return False

    x, y = instruction.anchor
    text_elem = dwg.text(
        instruction.text,
        insert=(x, y),
        text_anchor="middle",
        font_size=instruction.font_size,
        fill=instruction.color,
        font_family=LABEL_FONT_FAMILY,
        dominant_baseline="middle",
    )
    if instruction.rotation:
        text_elem["transform"] = f"rotate({instruction.rotation}, {x}, {y})"
    layer.add(text_elem)
    return True


def render_instructions(
    instructions: Sequence,
    layers: LayerManager,
    dwg
) -> Dict[str, int]:
    """Render draw instructions into the standard layers.

    Instructions are written in order into the polygon layer, except the
    inverted-fill background and the triangulation debug overlay, which go
    to their own layers.

    Args:
        instructions: Draw instructions in paint order
        layers: LayerManager with the layers from register_polygon_layers
        dwg: svgwrite Drawing object

    Returns:
        Dict of element counts by kind
    """
    counts = {"paths": 0, "triangles": 0, "strokes": 0, "labels": 0, "debug": 0}
    polygons_layer = layers.get_layer("Polygons")

    for instruction in instructions:
        if isinstance(instruction, PathInstruction):
            target = layers.get_layer("Inverted_Fill") if instruction.inverted else polygons_layer
            if render_path(instruction, target, dwg):
                counts["paths"] += 1
        elif isinstance(instruction, MeshInstruction):
            counts["triangles"] += render_mesh(instruction, polygons_layer, dwg)
        elif isinstance(instruction, StrokeInstruction):
            if instruction.debug:
                if render_stroke(instruction, layers.get_layer("Alt_Render_Debug"), dwg):
                    counts["debug"] += 1
            elif render_stroke(instruction, polygons_layer, dwg):
                counts["strokes"] += 1
        elif isinstance(instruction, LabelInstruction):
            if render_label(instruction, polygons_layer, dwg):
                counts["labels"] += 1
        else:
            raise TypeError(f"Unknown draw instruction: {type(instruction).__name__}")

    return counts


def register_polygon_layers(layers: LayerManager, width: float, height: float,
                            background: Optional[str] = None):
    """Create the standard layer groups for a polygon map."""
    background_layer = layers.register_layer("Background", LayerZOrder.BACKGROUND, rotates=False)
    if background:
        background_layer.add(layers.dwg.rect(insert=(0, 0), size=(width, height), fill=background))
    layers.register_layer("Inverted_Fill", LayerZOrder.INVERTED_FILL)
    layers.register_layer("Polygons", LayerZOrder.POLYGONS)
    layers.register_layer("Alt_Render_Debug", LayerZOrder.ALT_RENDER_DEBUG)
    layers.register_layer("Map_Data", LayerZOrder.MAP_DATA, rotates=False)


def create_frame_svg(
    frame,
    size: Tuple[float, float],
    background: Optional[str] = None,
    title: Optional[str] = None,
    filename: str = "noname.svg"
) -> Tuple[svgwrite.Drawing, Dict[str, int]]:
    """Build an SVG document for one computed frame.

    Args:
        frame: FrameOutput from PolygonLayer.recompute
        size: (width, height) of the screen in pixels
        background: Optional background color
        title: Optional caption drawn in the fixed data layer
        filename: Path the drawing will be saved to

    Returns:
        Tuple of (drawing, element counts)
    """
    width, height = size
    dwg = svgwrite.Drawing(filename, size=(width, height), viewBox=f"0 0 {width} {height}")
    layers = LayerManager(dwg)
    register_polygon_layers(layers, width, height, background=background)

    counts = render_instructions(frame.instructions, layers, dwg)

    if title:
        layers.get_layer("Map_Data").add(dwg.text(
            title,
            insert=(10, height - 10),
            font_size=12,
            fill="#333333",
            font_family=LABEL_FONT_FAMILY,
        ))

    layers.assemble(frame.camera.rotation)
    return dwg, counts
