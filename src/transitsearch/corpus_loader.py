"""Location corpus loading, normalization and indexing."""

import json
import logging
import math
from typing import Any, Dict, Iterable, List, Optional

from .models import Location, UNRANKED

logger = logging.getLogger(__name__)

# Keys consumed into Location fields; everything else is carried in Location.extra
_CANONICAL_KEYS = ("id", "name", "rank", "cluster")


def _coerce_rank(value: Any) -> int:
    if value is None or isinstance(value, bool):
        return UNRANKED
    try:
        number = float(value)
    except (TypeError, ValueError):
        return UNRANKED
    if math.isnan(number) or math.isinf(number):
        return UNRANKED
    return int(number)


def _coerce_cluster(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def normalize_feature(feature: dict) -> Location:
    """Turn one raw GeoJSON point feature into a Location."""
    feature = feature if isinstance(feature, dict) else {}
    props = feature.get("properties") or {}

    raw_id = feature.get("id")
    if raw_id is None:
        raw_id = props.get("id")
    if raw_id is None:
        raw_id = props.get("ID")
    location_id = "" if raw_id is None else str(raw_id)

    name = props.get("name")
    if name is None:
        name = props.get("title")
    name = "" if name is None else str(name)

    extra = {key: value for key, value in props.items() if key not in _CANONICAL_KEYS}

    return Location(
        id=location_id,
        name=name,
        rank=_coerce_rank(props.get("rank")),
        cluster=_coerce_cluster(props.get("cluster")),
        geometry=feature.get("geometry"),
        extra=extra,
    )


def normalize_features(features: Optional[Iterable[dict]]) -> List[Location]:
    """Normalize every raw record; nothing is dropped."""
    return [normalize_feature(feature) for feature in (features or [])]


class CorpusLoader:
    """Loads and indexes the location corpus."""

    def __init__(self):
        """Initialize an empty corpus."""
        self.locations: List[Location] = []
        self.locations_by_id: Dict[str, List[Location]] = {}  # id -> [locations sharing it]
        self.members_by_cluster: Dict[str, List[Location]] = {}  # header id -> [members]

    def load_from_client(self, client) -> None:
        """Fetch the corpus from the remote data service."""
        logger.info("Loading location corpus from remote service")
        self.load_from_data(client.fetch_nodes())

    def load_from_file(self, path: str) -> None:
        """Load a GeoJSON FeatureCollection from a local file."""
        logger.info(f"Loading location corpus from {path}")
        with open(path, "r", encoding="utf-8") as f:
            self.load_from_data(json.load(f))

    def load_from_data(self, data: dict) -> None:
        """Load an in-memory GeoJSON FeatureCollection."""
        if not isinstance(data, dict) or not isinstance(data.get("features"), list):
            raise ValueError("Corpus must be a FeatureCollection with a features list")
        self._index(normalize_features(data["features"]))
        logger.info(
            f"Loaded {len(self.locations)} locations, "
            f"{len(self.members_by_cluster)} clusters"
        )

    def _index(self, locations: List[Location]) -> None:
        self.locations = locations
        self.locations_by_id = {}
        self.members_by_cluster = {}

        for location in locations:
            self.locations_by_id.setdefault(location.id, []).append(location)
            if location.cluster is not None:
                self.members_by_cluster.setdefault(location.cluster, []).append(location)

    def __len__(self) -> int:
        return len(self.locations)

    def find(self, location_id: Any) -> Optional[Location]:
        """Return the first location with this id, or None."""
        if location_id is None:
            return None
        matches = self.locations_by_id.get(str(location_id))
        return matches[0] if matches else None

    def get_location(self, location_id: Any) -> Location:
        """Get a location by id."""
        location = self.find(location_id)
        if location is None:
            raise ValueError(f"Location {location_id} not found")
        return location

    def find_representative(self, location_id: str) -> Optional[Location]:
        """Prefer an entry with real point geometry among those sharing the id."""
        matches = self.locations_by_id.get(location_id, [])
        for location in matches:
            if location.has_usable_point:
                return location
        return matches[0] if matches else None

    def is_cluster_header(self, location: Location) -> bool:
        """True for a top-level location that other entries name as their cluster."""
        return location.cluster is None and bool(self.members_by_cluster.get(location.id))

    def get_members(self, header_id: str) -> List[Location]:
        """Members of a cluster, in corpus order."""
        return list(self.members_by_cluster.get(header_id, []))

    def names_for_id(self, location_id: str) -> List[str]:
        """Distinct (case-insensitive) non-empty names of entries sharing the id."""
        seen = set()
        names = []
        for location in self.locations_by_id.get(location_id, []):
            key = location.name.casefold()
            if location.name and key not in seen:
                seen.add(key)
                names.append(location.name)
        return names

    def nearest(self, lon: float, lat: float, tolerance: float) -> Optional[Location]:
        """Closest point location within tolerance degrees, or None."""
        best = None
        best_distance = tolerance
        for location in self.locations:
            point = location.point
            if point is None:
                continue
            distance = math.hypot(point[0] - lon, point[1] - lat)
            if distance <= best_distance and (best is None or distance < best_distance):
                best = location
                best_distance = distance
        return best

    def to_feature_collection(self) -> dict:
        """Render the corpus as a GeoJSON FeatureCollection for the map."""
        return {
            "type": "FeatureCollection",
            "features": [location.to_feature() for location in self.locations],
        }

    def clear(self) -> None:
        """Drop the loaded corpus."""
        self.locations = []
        self.locations_by_id.clear()
        self.members_by_cluster.clear()
        logger.info("Cleared location corpus")
