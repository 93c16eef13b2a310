"""Drawable layer descriptions and guarded calls into the map display."""

import logging
from typing import Any, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

NODES_SOURCE = "nodes-search"
SELECTED_SOURCE = "search-selected"
ROUTE_SOURCE = "search-route"

NODES_CIRCLE_LAYER = "nodes-search-circle"
NODES_LABEL_LAYER = "nodes-search-label"
SELECTED_CIRCLE_LAYER = "search-selected-circle"
SELECTED_LABEL_LAYER = "search-selected-label"
ROUTE_BASE_LAYER = "search-route-line-base"
ROUTE_RAIL_LAYER = "search-route-rail-symbol"
ROUTE_NARROW_LAYER = "search-route-rail-narrow-symbol"
ROUTE_FALLBACK_LAYER = "search-route-line-fallback"

RAIL_PATTERN = "ml-rail-pattern"
NARROW_RAIL_PATTERN = "ml-rail-narrow-pattern"

ROLE_COLORS = {"source": "#1976d2", "target": "#d32f2f"}
ROLE_SHORT_LABELS = {"source": "S", "target": "T"}


def empty_collection() -> dict:
    return {"type": "FeatureCollection", "features": []}


def nodes_layers() -> List[dict]:
    return [
        {
            "id": NODES_CIRCLE_LAYER,
            "type": "circle",
            "source": NODES_SOURCE,
            "paint": {
                "circle-radius": ["interpolate", ["linear"], ["get", "rank"], 1, 8, 50, 3],
                "circle-color": ["step", ["get", "rank"], "#d9534f", 2, "#f0ad4e", 5, "#5bc0de", 10, "#6c757d"],
                "circle-opacity": 0.8,
                "circle-stroke-width": 0.6,
                "circle-stroke-color": "#222",
            },
        },
        {
            "id": NODES_LABEL_LAYER,
            "type": "symbol",
            "source": NODES_SOURCE,
            "layout": {
                "text-field": ["coalesce", ["get", "name"], ["get", "id"]],
                "text-size": 11,
                "text-offset": [0, 1.2],
                "text-anchor": "top",
            },
            "paint": {"text-color": "#222"},
        },
    ]


def selected_layers() -> List[dict]:
    return [
        {
            "id": SELECTED_CIRCLE_LAYER,
            "type": "circle",
            "source": SELECTED_SOURCE,
            "paint": {
                "circle-radius": ["interpolate", ["linear"], ["get", "rank"], 1, 10, 50, 6],
                "circle-color": [
                    "match", ["get", "role"],
                    "source", ROLE_COLORS["source"],
                    "target", ROLE_COLORS["target"],
                    "#888",
                ],
                "circle-stroke-color": "#fff",
                "circle-stroke-width": 2,
            },
        },
        {
            "id": SELECTED_LABEL_LAYER,
            "type": "symbol",
            "source": SELECTED_SOURCE,
            "layout": {
                "text-field": ["coalesce", ["get", "shortLabel"], ["get", "name"], ["get", "id"]],
                "text-size": 12,
                "text-offset": [0, 1.2],
            },
            "paint": {"text-color": "#222"},
        },
    ]


def route_base_layer() -> dict:
    """Line layer for every route segment, styled by annotated mode and colour."""
    return {
        "id": ROUTE_BASE_LAYER,
        "type": "line",
        "source": ROUTE_SOURCE,
        "layout": {"line-join": "round", "line-cap": "round"},
        "paint": {
            "line-color": ["coalesce", ["get", "ml_color"], "#1a73e8"],
            "line-width": [
                "case",
                ["==", ["get", "ml_mode_lower"], "narrow-gauge railway"], 4.5,
                ["==", ["get", "ml_mode_lower"], "railway"], 6,
                ["in", ["get", "ml_mode_lower"], ["literal", ["road", "chaussee"]]], 6,
                ["in", ["get", "ml_mode_lower"], ["literal", ["connection", "transfer"]]], 2,
                4,
            ],
            "line-dasharray": [
                "case",
                ["in", ["get", "ml_mode_lower"], ["literal", ["connection", "transfer"]]], ["literal", [0, 4]],
                ["in", ["get", "ml_mode_lower"], ["literal", ["ferry", "ship"]]], ["literal", [4, 4]],
                ["literal", [1, 0]],
            ],
            "line-opacity": 0.95,
        },
    }


def rail_overlay_layer(layer_id: str, mode: str, image: str, spacing: int, has_image: bool) -> dict:
    """Fixed-size squares repeated along rail lines, or a dashed line without the image."""
    if has_image:
        return {
            "id": layer_id,
            "type": "symbol",
            "source": ROUTE_SOURCE,
            "filter": ["==", ["get", "ml_mode_lower"], mode],
            "layout": {
                "symbol-placement": "line",
                "symbol-spacing": spacing,
                "icon-image": image,
                "icon-size": 1,
                "icon-allow-overlap": True,
                "icon-ignore-placement": True,
            },
            "paint": {"icon-opacity": 1},
        }
    return {
        "id": layer_id,
        "type": "line",
        "source": ROUTE_SOURCE,
        "filter": ["==", ["get", "ml_mode_lower"], mode],
        "layout": {"line-join": "round", "line-cap": "butt"},
        "paint": {
            "line-color": "#ffffff",
            "line-width": spacing - 3,
            "line-dasharray": ["literal", [spacing // 2, spacing // 2]],
            "line-opacity": 1,
        },
    }


def route_fallback_layer() -> dict:
    return {
        "id": ROUTE_FALLBACK_LAYER,
        "type": "line",
        "source": ROUTE_SOURCE,
        "layout": {"line-join": "round", "line-cap": "round"},
        "paint": {"line-color": "#1a73e8", "line-width": 4, "line-opacity": 0.9},
    }


def square_pattern(size: int, square: int) -> Dict[str, Any]:
    """RGBA image of a centred white square on a transparent tile."""
    offset = (size - square) // 2
    data = bytearray(size * size * 4)
    for y in range(offset, offset + square):
        for x in range(offset, offset + square):
            i = (y * size + x) * 4
            data[i:i + 4] = b"\xff\xff\xff\xff"
    return {"width": size, "height": size, "data": bytes(data)}


def selected_markers(start, destination) -> dict:
    """Marker features for the filled selection slots."""
    features = []
    for role, location in (("source", start), ("target", destination)):
        if location is None:
            continue
        features.append({
            "type": "Feature",
            "geometry": location.geometry,
            "properties": {
                "role": role,
                "id": location.id,
                "name": location.name,
                "rank": location.rank,
                "shortLabel": ROLE_SHORT_LABELS[role],
            },
        })
    return {"type": "FeatureCollection", "features": features}


class MapLayers:
    """
    Wraps the map display so a failing call never escapes to the host.

    The display is expected to provide get_source/add_source/set_source_data/
    remove_source, get_layer/add_layer/remove_layer and has_image/add_image.
    """

    def __init__(self, display):
        self.display = display

    def update_source(self, source_id: str, data: dict, layers: Iterable[str] = ()) -> bool:
        """
        Replace a source's data, creating it if missing.

        If the update fails, the dependent layers and the source are removed and the
        source is added again with the new data.
        """
        try:
            if self.display.get_source(source_id):
                self.display.set_source_data(source_id, data)
            else:
                self.display.add_source(source_id, {"type": "geojson", "data": data})
            return True
        except Exception as e:
            logger.warning(f"Updating source {source_id} failed, recreating: {e}")

        for layer_id in layers:
            self.remove_layer(layer_id)
        try:
            if self.display.get_source(source_id):
                self.display.remove_source(source_id)
        except Exception as e:
            logger.warning(f"Removing source {source_id} failed: {e}")
        try:
            self.display.add_source(source_id, {"type": "geojson", "data": data})
            return True
        except Exception as e:
            logger.error(f"Could not add source {source_id}: {e}")
            return False

    def add_layer(self, layer: dict) -> bool:
        try:
            if not self.display.get_layer(layer["id"]):
                self.display.add_layer(layer)
            return True
        except Exception as e:
            logger.warning(f"Adding layer {layer['id']} failed: {e}")
            return False

    def remove_layer(self, layer_id: str) -> None:
        try:
            if self.display.get_layer(layer_id):
                self.display.remove_layer(layer_id)
        except Exception as e:
            logger.warning(f"Removing layer {layer_id} failed: {e}")

    def ensure_image(self, name: str, image: Dict[str, Any]) -> bool:
        try:
            if not self.display.has_image(name):
                self.display.add_image(name, image)
            return True
        except Exception as e:
            logger.warning(f"Adding image {name} failed: {e}")
            return False

    def show_nodes(self, collection: dict) -> None:
        self.update_source(NODES_SOURCE, collection, [NODES_CIRCLE_LAYER, NODES_LABEL_LAYER])
        for layer in nodes_layers():
            self.add_layer(layer)

    def show_selected(self, collection: dict) -> None:
        if self.update_source(SELECTED_SOURCE, collection, [SELECTED_CIRCLE_LAYER, SELECTED_LABEL_LAYER]):
            for layer in selected_layers():
                self.add_layer(layer)

    def show_route(self, collection: Optional[dict]) -> None:
        """Draw route segments, replacing any previous route layers."""
        route_layers = [ROUTE_BASE_LAYER, ROUTE_RAIL_LAYER, ROUTE_NARROW_LAYER, ROUTE_FALLBACK_LAYER]
        if not self.update_source(ROUTE_SOURCE, collection or empty_collection(), route_layers):
            return
        for layer_id in route_layers:
            self.remove_layer(layer_id)
        if not collection or not collection.get("features"):
            return

        has_rail = self.ensure_image(RAIL_PATTERN, square_pattern(8, 4))
        has_narrow = self.ensure_image(NARROW_RAIL_PATTERN, square_pattern(6, 3))
        complex_layers = [
            route_base_layer(),
            rail_overlay_layer(ROUTE_RAIL_LAYER, "railway", RAIL_PATTERN, 8, has_rail),
            rail_overlay_layer(ROUTE_NARROW_LAYER, "narrow-gauge railway", NARROW_RAIL_PATTERN, 6, has_narrow),
        ]
        if not all(self.add_layer(layer) for layer in complex_layers):
            logger.error("Adding complex route layers failed; using plain route line")
            for layer_id in route_layers:
                self.remove_layer(layer_id)
            self.add_layer(route_fallback_layer())
