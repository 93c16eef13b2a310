"""Bounding boxes and camera fitting for the map viewport."""

import logging
import math
from dataclasses import dataclass
from typing import Iterator, Optional, Tuple

from .models import LonLat, ViewState

logger = logging.getLogger(__name__)

TILE_SIZE = 512
MAX_LATITUDE = 85.051129
MIN_ZOOM = 0.0
MAX_ZOOM = 22.0

DEFAULT_PADDING = 60
PANEL_MARGIN = 20
MAX_PANEL_SHARE = 0.6
EASE_DURATION_MS = 700
POINT_ZOOM = 14


@dataclass(frozen=True)
class BoundingBox:
    west: float
    south: float
    east: float
    north: float

    @property
    def is_degenerate(self) -> bool:
        return self.east - self.west == 0 or self.north - self.south == 0

    @property
    def center(self) -> LonLat:
        return (self.west + self.east) / 2, (self.south + self.north) / 2


@dataclass(frozen=True)
class Rect:
    """Screen rectangle in pixels."""
    left: float
    top: float
    right: float
    bottom: float

    @property
    def width(self) -> float:
        return self.right - self.left

    @property
    def height(self) -> float:
        return self.bottom - self.top


@dataclass(frozen=True)
class Padding:
    top: float = DEFAULT_PADDING
    right: float = DEFAULT_PADDING
    bottom: float = DEFAULT_PADDING
    left: float = DEFAULT_PADDING


def _positions(geometry: Optional[dict]) -> Iterator[Tuple[float, float]]:
    if not isinstance(geometry, dict):
        return
    kind = geometry.get("type")
    coords = geometry.get("coordinates")

    if kind == "GeometryCollection":
        for child in geometry.get("geometries") or []:
            yield from _positions(child)
        return

    # nesting depth of position arrays per geometry type
    depth = {
        "Point": 0,
        "MultiPoint": 1,
        "LineString": 1,
        "MultiLineString": 2,
        "Polygon": 2,
        "MultiPolygon": 3,
    }.get(kind)
    if depth is None or coords is None:
        return

    stack = [(coords, depth)]
    while stack:
        value, level = stack.pop()
        if not isinstance(value, (list, tuple)):
            continue
        if level == 0:
            try:
                yield float(value[0]), float(value[1])
            except (TypeError, ValueError, IndexError):
                continue
        else:
            for child in value:
                stack.append((child, level - 1))


def geometry_bounds(geojson) -> Optional[BoundingBox]:
    """
    Enclosing lon/lat box of a FeatureCollection, a feature, a geometry or a
    list of any of those. Returns None when nothing has coordinates.
    """
    west = south = math.inf
    east = north = -math.inf
    for lon, lat in _iter_positions(geojson):
        west, east = min(west, lon), max(east, lon)
        south, north = min(south, lat), max(north, lat)
    if west == math.inf:
        return None
    return BoundingBox(west, south, east, north)


def _iter_positions(geojson) -> Iterator[Tuple[float, float]]:
    if isinstance(geojson, (list, tuple)):
        for item in geojson:
            yield from _iter_positions(item)
    elif isinstance(geojson, dict):
        kind = geojson.get("type")
        if kind == "FeatureCollection":
            yield from _iter_positions(geojson.get("features") or [])
        elif kind == "Feature":
            yield from _positions(geojson.get("geometry"))
        else:
            yield from _positions(geojson)


def project(lon: float, lat: float) -> Tuple[float, float]:
    """Web Mercator projection into the unit square."""
    lat = max(-MAX_LATITUDE, min(MAX_LATITUDE, lat))
    x = (lon + 180.0) / 360.0
    sin_lat = math.sin(math.radians(lat))
    y = 0.5 - math.log((1 + sin_lat) / (1 - sin_lat)) / (4 * math.pi)
    return x, y


def unproject(x: float, y: float) -> LonLat:
    lon = x * 360.0 - 180.0
    lat = math.degrees(math.atan(math.sinh(math.pi * (1 - 2 * y))))
    return lon, lat


def panel_padding(viewport: Rect, panel: Optional[Rect], base: float = DEFAULT_PADDING) -> Padding:
    """
    Padding that keeps fitted content clear of a floating panel.

    The left edge grows by the horizontal overlap between the panel and the map,
    capped at a share of the map width, plus a fixed margin.
    """
    if panel is None:
        return Padding(base, base, base, base)
    overlap = max(0.0, min(panel.right, viewport.right) - max(panel.left, viewport.left))
    vertical = min(panel.bottom, viewport.bottom) - max(panel.top, viewport.top)
    if vertical <= 0:
        overlap = 0.0
    left = min(overlap, viewport.width * MAX_PANEL_SHARE) + PANEL_MARGIN
    return Padding(top=base, right=base, bottom=base, left=max(base, left))


def fit_view(
    box: BoundingBox,
    viewport: Rect,
    current_zoom: float,
    padding: Optional[Padding] = None,
) -> ViewState:
    """
    Camera that shows the whole box inside the padded viewport.

    A box with no width or height is centred at one zoom level below the current
    one. Otherwise the zoom that exactly fills the inner viewport is reduced by one
    level so content stays clear of the edges.
    """
    if box.is_degenerate or viewport.width <= 0 or viewport.height <= 0:
        return ViewState(center=box.center, zoom=max(MIN_ZOOM, current_zoom - 1))

    padding = padding or Padding()
    inner_width = viewport.width - padding.left - padding.right
    inner_height = viewport.height - padding.top - padding.bottom
    if inner_width <= 0 or inner_height <= 0:
        logger.debug("Padding exceeds viewport; fitting to the full map")
        padding = Padding(0, 0, 0, 0)
        inner_width, inner_height = viewport.width, viewport.height

    x0, y1 = project(box.west, box.south)
    x1, y0 = project(box.east, box.north)
    span_x = max(x1 - x0, 1e-12)
    span_y = max(y1 - y0, 1e-12)

    zoom = math.log2(min(inner_width / (span_x * TILE_SIZE), inner_height / (span_y * TILE_SIZE))) - 1
    zoom = max(MIN_ZOOM, min(MAX_ZOOM, zoom))

    # shift the centre so the box sits in the middle of the padded area
    world = TILE_SIZE * 2 ** zoom
    center_x = (x0 + x1) / 2 - (padding.left - padding.right) / 2 / world
    center_y = (y0 + y1) / 2 - (padding.top - padding.bottom) / 2 / world
    return ViewState(center=unproject(center_x, center_y), zoom=zoom)


def fit_geojson(
    geojson,
    viewport: Rect,
    current_zoom: float,
    panel: Optional[Rect] = None,
) -> Optional[ViewState]:
    """Fit arbitrary GeoJSON, or return None if it has no coordinates."""
    box = geometry_bounds(geojson)
    if box is None:
        return None
    return fit_view(box, viewport, current_zoom, panel_padding(viewport, panel))

