"""
Configuration and diagnostics for the polygon layer.

Options are plain dataclasses validated once per frame before any work is
done. Recoverable per-polygon problems are reported through a diagnostics
callback instead of being raised.
"""

import math
from dataclasses import dataclass
from typing import Callable, Optional

from polygon_types import FillMethod, SourcePolygon

# === Defaults ===
DEFAULT_SIMPLIFICATION_TOLERANCE = 0.3  # pixels
DEFAULT_POLYLABEL_PRECISION = 1.0       # pixels
DEBUG_TRIANGLE_COLOR = "#ff00ff"
DEBUG_TRIANGLE_WIDTH = 0.5

# === Diagnostic codes ===
EXACT_COMBINE_UNAVAILABLE = "exact_combine_unavailable"
INVERTED_FILL_DEGRADED = "inverted_fill_degraded"
EXACT_COMBINE_FAILED = "exact_combine_failed"
TRIANGULATION_FAILED = "triangulation_failed"
INVALID_POLYGON = "invalid_polygon"
LABEL_FALLBACK = "label_fallback"

# Advisories about the backend only need saying once per layer
ONE_TIME_CODES = frozenset({EXACT_COMBINE_UNAVAILABLE, INVERTED_FILL_DEGRADED})


@dataclass(frozen=True)
class RenderBackend:
    """Capabilities of the rasterizer consuming the draw instructions.

    Attributes:
        name: Backend name used in messages
        supports_exact_combine: Whether exact boolean path combination can
            be rendered faithfully
    """
    name: str = "svg"
    supports_exact_combine: bool = True


@dataclass(frozen=True)
class Diagnostic:
    """A recoverable condition detected while building a frame.

    Attributes:
        code: One of the diagnostic code constants
        message: Human readable description
        polygon: Source polygon concerned, if any
    """
    code: str
    message: str
    polygon: Optional[SourcePolygon] = None


DiagnosticCallback = Callable[[Diagnostic], None]


def print_diagnostic(diagnostic: Diagnostic):
    """Default diagnostics callback: print a warning line."""
    print(f"  Warning: {diagnostic.message}")


@dataclass
class PolygonLayerOptions:
    """Settings for a polygon layer.

    Attributes:
        use_alt_rendering: Fill polygons as triangle meshes
        debug_alt_renderer: Outline every mesh triangle (any mesh, including
            per-polygon TRIANGULATED overrides)
        polygon_culling: Skip polygons whose bounds are off screen
        polygon_labels: Emit label instructions
        draw_labels_last: Put every label after all polygons
        draw_in_single_world: Never replicate polygons across world copies
        painter_fill_method: EVEN_ODD or EXACT_COMBINE for path fills
        inverted_fill_color: Color for the area not covered by any polygon
        simplification_tolerance: Douglas-Peucker tolerance in pixels
        validate_rings: Skip polygons whose rings are not simple or whose
            holes escape the exterior
        polylabel_precision: Search precision for POLYLABEL anchors
    """
    use_alt_rendering: bool = False
    debug_alt_renderer: bool = False
    polygon_culling: bool = True
    polygon_labels: bool = True
    draw_labels_last: bool = False
    draw_in_single_world: bool = False
    painter_fill_method: FillMethod = FillMethod.EXACT_COMBINE
    inverted_fill_color: Optional[str] = None
    simplification_tolerance: float = DEFAULT_SIMPLIFICATION_TOLERANCE
    validate_rings: bool = False
    polylabel_precision: float = DEFAULT_POLYLABEL_PRECISION

    def validate(self):
        """Raise ValueError for settings that cannot produce a frame."""
        if not isinstance(self.painter_fill_method, FillMethod):
            raise ValueError(f"Unknown painter fill method: {self.painter_fill_method!r}")
        if self.painter_fill_method is FillMethod.TRIANGULATED:
            raise ValueError(
                "painter_fill_method must be EVEN_ODD or EXACT_COMBINE; "
                "enable use_alt_rendering for triangulated fills"
            )
        tolerance = self.simplification_tolerance
        if not math.isfinite(tolerance) or tolerance < 0:
            raise ValueError(f"simplification_tolerance must be a finite value >= 0, got {tolerance}")
        if not math.isfinite(self.polylabel_precision) or self.polylabel_precision <= 0:
            raise ValueError(f"polylabel_precision must be > 0, got {self.polylabel_precision}")
        if self.inverted_fill_color is not None and not isinstance(self.inverted_fill_color, str):
            raise ValueError(f"inverted_fill_color must be a color string, got {self.inverted_fill_color!r}")
