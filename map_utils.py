"""
Utility classes for polygon map rendering.

This module provides the viewport bounds, rotation handling, camera
collaborators that project geographic coordinates to screen pixels, and SVG
layer management.
"""

import math
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Callable, Dict, Hashable, List, Optional, Sequence, Tuple

import numpy as np
from pyproj import Transformer

WGS84 = "EPSG:4326"
WEB_MERCATOR = "EPSG:3857"

# Half the equatorial circumference used by EPSG:3857, in meters
EARTH_HALF_CIRCUMFERENCE = 20037508.342789244
MAX_LATITUDE = 85.0511287798
TILE_SIZE = 256


@lru_cache(maxsize=None)
def get_transformer(src_crs: str, dst_crs: str) -> Transformer:
    """Shared pyproj transformer for a CRS pair (x/y axis order)."""
    return Transformer.from_crs(src_crs, dst_crs, always_xy=True)


@dataclass
class Bounds:
    """Represents a rectangular bounds in a coordinate system.

    Attributes:
        min_x: Western/left boundary
        max_x: Eastern/right boundary
        min_y: Southern/top boundary (screen Y grows downward)
        max_y: Northern/bottom boundary
    """
    min_x: float
    max_x: float
    min_y: float
    max_y: float

    @classmethod
    def from_points(cls, points: Sequence[Tuple[float, float]]) -> 'Bounds':
        """Smallest bounds containing every point."""
        if not points:
            raise ValueError("Cannot compute bounds of an empty point sequence")
        xs = [p[0] for p in points]
        ys = [p[1] for p in points]
        return cls(min_x=min(xs), max_x=max(xs), min_y=min(ys), max_y=max(ys))

    @property
    def width(self) -> float:
        """Width of the bounds (east-west extent)."""
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        """Height of the bounds (north-south extent)."""
        return self.max_y - self.min_y

    @property
    def center(self) -> Tuple[float, float]:
        """Center point of the bounds as (x, y)."""
        return (
            (self.min_x + self.max_x) / 2,
            (self.min_y + self.max_y) / 2
        )

    def contains(self, x: float, y: float) -> bool:
        """Check if a point is within bounds."""
        return (self.min_x <= x <= self.max_x and
                self.min_y <= y <= self.max_y)

    def overlaps(self, other: 'Bounds') -> bool:
        """Check if two bounds overlap. Touching edges count as overlap."""
        return (self.min_x <= other.max_x and other.min_x <= self.max_x and
                self.min_y <= other.max_y and other.min_y <= self.max_y)

    def shifted(self, dx: float) -> 'Bounds':
        """Return a new Bounds moved horizontally by dx."""
        if dx == 0:
            return self
        return Bounds(
            min_x=self.min_x + dx,
            max_x=self.max_x + dx,
            min_y=self.min_y,
            max_y=self.max_y
        )

    def corners(self) -> Tuple[Tuple[float, float], ...]:
        """Corner points in drawing order, starting top-left."""
        return (
            (self.min_x, self.min_y),
            (self.max_x, self.min_y),
            (self.max_x, self.max_y),
            (self.min_x, self.max_y),
        )

    def as_tuple(self) -> Tuple[float, float, float, float]:
        """Return bounds as (min_x, min_y, max_x, max_y) tuple."""
        return (self.min_x, self.min_y, self.max_x, self.max_y)


@dataclass
class RotationConfig:
    """Configuration for camera rotation.

    Polygons are projected into an unrotated layer; the rasterizer rotates
    the whole layer around the center. Hit tests map screen points back
    with inverse_rotate_point.

    Attributes:
        angle_deg: Rotation angle in degrees (positive = clockwise in SVG)
        center_x: X coordinate of rotation center
        center_y: Y coordinate of rotation center
    """
    angle_deg: float
    center_x: float
    center_y: float

    @property
    def angle_rad(self) -> float:
        """Rotation angle in radians."""
        return math.radians(self.angle_deg)

    @property
    def is_rotated(self) -> bool:
        """Check if any rotation is applied."""
        return self.angle_deg % 360 != 0

    @property
    def cos_angle(self) -> float:
        """Cosine of rotation angle."""
        return math.cos(self.angle_rad)

    @property
    def sin_angle(self) -> float:
        """Sine of rotation angle."""
        return math.sin(self.angle_rad)

    def inverse_rotate_point(self, x: float, y: float) -> Tuple[float, float]:
        """Map a rotated (screen) point back into the unrotated layer."""
        if not self.is_rotated:
            return (x, y)

        dx = x - self.center_x
        dy = y - self.center_y

        layer_x = self.center_x + dx * self.cos_angle + dy * self.sin_angle
        layer_y = self.center_y - dx * self.sin_angle + dy * self.cos_angle

        return (layer_x, layer_y)

    def calculate_expanded_bounds(
        self,
        width: float,
        height: float,
        buffer: float = 0.0
    ) -> Tuple[float, float]:
        """Calculate how much to expand bounds to cover rotated rectangle.

        When a rectangle is rotated, its axis-aligned bounding box is larger.
        This calculates how much extra space is needed in each direction.

        Args:
            width: Width of the original rectangle
            height: Height of the original rectangle
            buffer: Extra margin added on each side

        Returns:
            Tuple of (expand_x, expand_y) - extra space needed in each direction
        """
        if not self.is_rotated:
            return (0.0, 0.0)

        # For rectangle W x H rotated by θ:
        #   rotated_width = |W * cos(θ)| + |H * sin(θ)|
        #   rotated_height = |W * sin(θ)| + |H * cos(θ)|
        abs_cos = abs(self.cos_angle)
        abs_sin = abs(self.sin_angle)

        rotated_width = width * abs_cos + height * abs_sin
        rotated_height = width * abs_sin + height * abs_cos

        expand_x = (rotated_width - width) / 2 + buffer
        expand_y = (rotated_height - height) / 2 + buffer

        return (expand_x, expand_y)

    def get_svg_transform(self) -> str:
        """Get SVG transform attribute string for this rotation."""
        if not self.is_rotated:
            return ""
        return f"rotate({self.angle_deg}, {self.center_x}, {self.center_y})"


class MapCamera:
    """Camera state for one frame: projection, visible bounds and world wrap.

    Subclasses implement project (and unproject where an inverse exists).
    Cameras are treated as immutable for the frame they describe; a view
    layer builds a new camera whenever the map moves.

    Attributes:
        visible_bounds: Visible area in (unrotated) layer pixels
        zoom: Zoom level
        rotation: Optional camera rotation applied by the rasterizer
    """

    supports_world_wrap = False

    def __init__(
        self,
        visible_bounds: Bounds,
        zoom: float = 0.0,
        rotation: Optional[RotationConfig] = None
    ):
        self.visible_bounds = visible_bounds
        self.zoom = zoom
        self.rotation = rotation

    @property
    def world_width(self) -> float:
        """Width in pixels of one copy of the world (0 when not wrapping)."""
        return 0.0

    @property
    def projection_key(self) -> Hashable:
        """Hashable identity of the projection parameters.

        Projected geometry is reusable for as long as this key is unchanged.
        The default is the camera object itself.
        """
        return self

    @property
    def rotation_deg(self) -> float:
        return self.rotation.angle_deg if self.rotation else 0.0

    def project(self, point: Tuple[float, float]) -> Tuple[float, float]:
        """Project a (lon, lat) point to layer pixels."""
        raise NotImplementedError

    def project_points(self, points: Sequence[Tuple[float, float]]) -> List[Tuple[float, float]]:
        """Project many (lon, lat) points with the same parameters."""
        return [self.project(p) for p in points]

    def unproject(self, point: Tuple[float, float]) -> Tuple[float, float]:
        """Inverse of project, where the camera has one."""
        raise NotImplementedError(f"{type(self).__name__} has no inverse projection")

    def screen_to_layer(self, x: float, y: float) -> Tuple[float, float]:
        """Map a screen point to layer pixels by undoing the rotation."""
        if self.rotation is None:
            return (x, y)
        return self.rotation.inverse_rotate_point(x, y)


class CallableCamera(MapCamera):
    """Camera wrapping a caller-supplied projection function.

    Args:
        project_fn: Function (lon, lat) -> (x, y) in layer pixels
        visible_bounds: Visible area in layer pixels
        zoom: Zoom level
        supports_world_wrap: Whether the projected world repeats horizontally
        world_width: Width of one world copy in pixels (required with wrap)
        unproject_fn: Optional inverse of project_fn
        rotation: Optional camera rotation
    """

    def __init__(
        self,
        project_fn: Callable[[Tuple[float, float]], Tuple[float, float]],
        visible_bounds: Bounds,
        zoom: float = 0.0,
        supports_world_wrap: bool = False,
        world_width: float = 0.0,
        unproject_fn: Optional[Callable[[Tuple[float, float]], Tuple[float, float]]] = None,
        rotation: Optional[RotationConfig] = None
    ):
        if supports_world_wrap and world_width <= 0:
            raise ValueError(f"World wrap needs a positive world width, got {world_width}")
        super().__init__(visible_bounds, zoom=zoom, rotation=rotation)
        self._project_fn = project_fn
        self._unproject_fn = unproject_fn
        self.supports_world_wrap = supports_world_wrap
        self._world_width = float(world_width)

    @property
    def world_width(self) -> float:
        return self._world_width if self.supports_world_wrap else 0.0

    def project(self, point: Tuple[float, float]) -> Tuple[float, float]:
        x, y = self._project_fn(point)
        return (float(x), float(y))

    def unproject(self, point: Tuple[float, float]) -> Tuple[float, float]:
        if self._unproject_fn is None:
            return super().unproject(point)
        lon, lat = self._unproject_fn(point)
        return (float(lon), float(lat))


class WebMercatorCamera(MapCamera):
    """Slippy-map camera: WGS84 to EPSG:3857 to screen pixels.

    The world is TILE_SIZE * 2**zoom pixels wide and repeats horizontally.

    Args:
        center_lon: Longitude at the center of the screen
        center_lat: Latitude at the center of the screen
        zoom: Zoom level (fractional zooms allowed)
        width: Screen width in pixels
        height: Screen height in pixels
        rotation_deg: Camera rotation, clockwise in degrees
        tile_size: Pixel size of one tile at zoom 0
    """

    supports_world_wrap = True

    def __init__(
        self,
        center_lon: float,
        center_lat: float,
        zoom: float,
        width: float,
        height: float,
        rotation_deg: float = 0.0,
        tile_size: int = TILE_SIZE
    ):
        if width <= 0 or height <= 0:
            raise ValueError(f"Screen size must be positive, got {width}x{height}")

        rotation = RotationConfig(rotation_deg, width / 2, height / 2)
        expand_x, expand_y = rotation.calculate_expanded_bounds(width, height)
        visible = Bounds(
            min_x=-expand_x,
            max_x=width + expand_x,
            min_y=-expand_y,
            max_y=height + expand_y
        )
        super().__init__(visible, zoom=zoom, rotation=rotation if rotation.is_rotated else None)

        self.center_lon = center_lon
        self.center_lat = clamp_latitude(center_lat)
        self.width = width
        self.height = height
        self.tile_size = tile_size

        self._to_mercator = get_transformer(WGS84, WEB_MERCATOR)
        self._from_mercator = get_transformer(WEB_MERCATOR, WGS84)

        # Pixels per Web Mercator meter at this zoom
        self.scale = tile_size * 2 ** zoom / (2 * EARTH_HALF_CIRCUMFERENCE)
        self.center_mx, self.center_my = self._to_mercator.transform(center_lon, self.center_lat)

    @classmethod
    def fit_bounds(
        cls,
        bounds: Bounds,
        width: float,
        height: float,
        padding: float = 20.0,
        rotation_deg: float = 0.0,
        tile_size: int = TILE_SIZE
    ) -> 'WebMercatorCamera':
        """Camera centered on lon/lat bounds, zoomed so they fill the screen.

        Args:
            bounds: Bounds in degrees (x = longitude, y = latitude)
            width: Screen width in pixels
            height: Screen height in pixels
            padding: Margin in pixels kept around the bounds

        Returns:
            A WebMercatorCamera showing the bounds
        """
        to_mercator = get_transformer(WGS84, WEB_MERCATOR)
        min_mx, min_my = to_mercator.transform(bounds.min_x, clamp_latitude(bounds.min_y))
        max_mx, max_my = to_mercator.transform(bounds.max_x, clamp_latitude(bounds.max_y))
        span_x = max(max_mx - min_mx, 1e-9)
        span_y = max(max_my - min_my, 1e-9)

        usable_w = max(width - 2 * padding, 1.0)
        usable_h = max(height - 2 * padding, 1.0)
        world_m = 2 * EARTH_HALF_CIRCUMFERENCE
        zoom = math.log2(min(
            usable_w * world_m / (span_x * tile_size),
            usable_h * world_m / (span_y * tile_size)
        ))

        from_mercator = get_transformer(WEB_MERCATOR, WGS84)
        center_lon, center_lat = from_mercator.transform(
            (min_mx + max_mx) / 2, (min_my + max_my) / 2
        )
        return cls(center_lon, center_lat, zoom, width, height,
                   rotation_deg=rotation_deg, tile_size=tile_size)

    @property
    def world_width(self) -> float:
        return self.tile_size * 2 ** self.zoom

    @property
    def projection_key(self) -> Hashable:
        return (WEB_MERCATOR, self.zoom, self.center_lon, self.center_lat,
                self.width, self.height, self.tile_size)

    def project(self, point: Tuple[float, float]) -> Tuple[float, float]:
        lon, lat = point
        mx, my = self._to_mercator.transform(lon, clamp_latitude(lat))
        return self._mercator_to_screen(mx, my)

    def project_points(self, points: Sequence[Tuple[float, float]]) -> List[Tuple[float, float]]:
        if not points:
            return []
        coords = np.asarray(points, dtype=np.float64)
        lats = np.clip(coords[:, 1], -MAX_LATITUDE, MAX_LATITUDE)
        mx, my = self._to_mercator.transform(coords[:, 0], lats)
        xs = (np.asarray(mx) - self.center_mx) * self.scale + self.width / 2
        ys = (self.center_my - np.asarray(my)) * self.scale + self.height / 2
        return list(zip(xs.tolist(), ys.tolist()))

    def unproject(self, point: Tuple[float, float]) -> Tuple[float, float]:
        x, y = point
        mx = (x - self.width / 2) / self.scale + self.center_mx
        my = self.center_my - (y - self.height / 2) / self.scale
        lon, lat = self._from_mercator.transform(mx, my)
        return (lon, lat)

    def _mercator_to_screen(self, mx: float, my: float) -> Tuple[float, float]:
        return (
            (mx - self.center_mx) * self.scale + self.width / 2,
            (self.center_my - my) * self.scale + self.height / 2
        )


class GridCamera(MapCamera):
    """Camera for a projected grid CRS (e.g. UTM) drawn onto a document.

    Grid coordinates are meters; document Y is inverted (increases
    downward). Grid CRSs do not repeat, so world wrap is never available.

    Attributes:
        grid_crs: The projected CRS used for calculations (usually UTM)
        map_bounds: The map bounds in grid CRS
        pixels_per_meter: Document scale
        svg_offset_x: X offset for SVG coordinate conversion
        svg_offset_y: Y offset for SVG coordinate conversion
    """

    def __init__(
        self,
        grid_crs: str,
        map_bounds: Bounds,
        pixels_per_meter: float = 1.0,
        svg_offset_x: float = 0,
        svg_offset_y: float = 0
    ):
        self.grid_crs = grid_crs
        self.map_bounds = map_bounds
        self.pixels_per_meter = pixels_per_meter
        self.svg_offset_x = svg_offset_x
        self.svg_offset_y = svg_offset_y

        visible = Bounds(
            min_x=svg_offset_x,
            max_x=svg_offset_x + map_bounds.width * pixels_per_meter,
            min_y=svg_offset_y,
            max_y=svg_offset_y + map_bounds.height * pixels_per_meter
        )
        super().__init__(visible)

        self._to_wgs84 = get_transformer(grid_crs, WGS84)
        self._from_wgs84 = get_transformer(WGS84, grid_crs)

    @property
    def projection_key(self) -> Hashable:
        return (self.grid_crs, self.map_bounds.as_tuple(), self.pixels_per_meter,
                self.svg_offset_x, self.svg_offset_y)

    def grid_to_svg(self, x: float, y: float) -> Tuple[float, float]:
        """Convert grid coordinates (meters) to SVG coordinates.

        SVG Y-axis is inverted (increases downward), so we flip Y.
        """
        svg_x = (x - self.map_bounds.min_x) * self.pixels_per_meter + self.svg_offset_x
        svg_y = (self.map_bounds.max_y - y) * self.pixels_per_meter + self.svg_offset_y
        return (svg_x, svg_y)

    def svg_to_grid(self, svg_x: float, svg_y: float) -> Tuple[float, float]:
        """Convert SVG coordinates back to grid coordinates."""
        x = (svg_x - self.svg_offset_x) / self.pixels_per_meter + self.map_bounds.min_x
        y = self.map_bounds.max_y - (svg_y - self.svg_offset_y) / self.pixels_per_meter
        return (x, y)

    def wgs84_to_grid(self, lon: float, lat: float) -> Tuple[float, float]:
        return self._from_wgs84.transform(lon, lat)

    def grid_to_wgs84(self, x: float, y: float) -> Tuple[float, float]:
        return self._to_wgs84.transform(x, y)

    def project(self, point: Tuple[float, float]) -> Tuple[float, float]:
        x, y = self.wgs84_to_grid(*point)
        return self.grid_to_svg(x, y)

    def unproject(self, point: Tuple[float, float]) -> Tuple[float, float]:
        x, y = self.svg_to_grid(*point)
        return self.grid_to_wgs84(x, y)


def clamp_latitude(lat: float) -> float:
    """Clamp latitude to the range Web Mercator can represent."""
    return max(-MAX_LATITUDE, min(MAX_LATITUDE, lat))


class LayerManager:
    """Manages SVG layer groups and their z-ordering.

    Layers are registered with a z-order value (higher = on top).
    Rotating layers are assembled under the camera rotation transform;
    fixed layers stay aligned with the screen.

    Attributes:
        layers: Dictionary mapping layer ID to layer info
    """

    def __init__(self, dwg):
        """Initialize the layer manager.

        Args:
            dwg: svgwrite Drawing object
        """
        self.dwg = dwg
        self.layers: Dict[str, Dict[str, Any]] = {}

    def register_layer(
        self,
        layer_id: str,
        z_order: int,
        rotates: bool = True,
        visible: bool = True
    ) -> Any:
        """Register and create a new layer group.

        Args:
            layer_id: Unique identifier for the layer
            z_order: Stacking order (higher values render on top)
            rotates: Whether this layer should rotate with the camera
            visible: Whether the layer is visible by default

        Returns:
            The created SVG group element
        """
        group = self.dwg.g(id=layer_id)

        if not visible:
            group['visibility'] = 'hidden'

        self.layers[layer_id] = {
            'group': group,
            'z_order': z_order,
            'rotates': rotates,
        }
        return group

    def get_layer(self, layer_id: str) -> Any:
        """Get a layer group by ID."""
        info = self.layers.get(layer_id)
        return info['group'] if info else None

    def get_layers_by_z_order(self, rotates: Optional[bool] = None) -> List[Any]:
        """Get layers sorted by z-order.

        Args:
            rotates: If specified, filter to only rotating or non-rotating layers

        Returns:
            List of layer groups sorted by z-order (lowest first)
        """
        filtered = self.layers.items()

        if rotates is not None:
            filtered = [(k, v) for k, v in filtered if v['rotates'] == rotates]

        sorted_layers = sorted(filtered, key=lambda x: x[1]['z_order'])
        return [info['group'] for _, info in sorted_layers]

    def assemble(self, rotation: Optional[RotationConfig] = None):
        """Add every layer to the drawing in z-order.

        Rotating layers are collected under one group, placed where the
        lowest rotating layer falls in the stack.
        """
        rotating_group = self.dwg.g(id="Rotated_Content")
        if rotation is not None and rotation.is_rotated:
            rotating_group['transform'] = rotation.get_svg_transform()

        rotating = {id(group) for group in self.get_layers_by_z_order(rotates=True)}
        group_placed = False
        for group in self.get_layers_by_z_order():
            if id(group) not in rotating:
                self.dwg.add(group)
                continue
            rotating_group.add(group)
            if not group_placed:
                self.dwg.add(rotating_group)
                group_placed = True


class LayerZOrder:
    """Standard z-order values for polygon map layers.

    Lower values render first (underneath).
    """
    BACKGROUND = 0
    INVERTED_FILL = 100
    POLYGONS = 200
    ALT_RENDER_DEBUG = 300

    # Fixed layers (don't rotate)
    MAP_DATA = 1000
