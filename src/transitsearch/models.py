"""Data models for the transit search control."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

# Rank assigned when a record carries no usable rank
UNRANKED = 9999

LonLat = Tuple[float, float]


class Role(str, Enum):
    """One of the two selection slots."""
    START = "start"
    DESTINATION = "destination"

    @property
    def other(self) -> "Role":
        return Role.DESTINATION if self is Role.START else Role.START


@dataclass(frozen=True)
class Location:
    """A named point location from the corpus."""
    id: str
    name: str = ""
    rank: int = UNRANKED
    cluster: Optional[str] = None  # id of the parent location this one is a variant of
    geometry: Optional[dict] = None  # GeoJSON geometry, passed through as received
    extra: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def point(self) -> Optional[LonLat]:
        """Return (lon, lat) for Point geometry, else None."""
        geom = self.geometry
        if not isinstance(geom, dict) or geom.get("type") != "Point":
            return None
        coords = geom.get("coordinates")
        try:
            return float(coords[0]), float(coords[1])
        except (TypeError, ValueError, IndexError):
            return None

    @property
    def has_usable_point(self) -> bool:
        """True when the location has a Point geometry away from the origin."""
        point = self.point
        return point is not None and point != (0.0, 0.0)

    @property
    def display_name(self) -> str:
        return self.name or self.id

    def to_feature(self) -> dict:
        """Render as a GeoJSON feature for the map."""
        properties = dict(self.extra)
        properties.update({"id": self.id, "name": self.name, "rank": self.rank})
        if self.cluster is not None:
            properties["cluster"] = self.cluster
        return {"type": "Feature", "geometry": self.geometry, "properties": properties}


@dataclass
class Selection:
    """The two named slots; each holds at most one location."""
    start: Optional[Location] = None
    destination: Optional[Location] = None

    def get(self, role: Role) -> Optional[Location]:
        return self.start if role is Role.START else self.destination

    def set(self, role: Role, location: Optional[Location]) -> None:
        if role is Role.START:
            self.start = location
        else:
            self.destination = location

    @property
    def is_complete(self) -> bool:
        return self.start is not None and self.destination is not None

    def copy(self) -> "Selection":
        return Selection(start=self.start, destination=self.destination)


@dataclass
class Segment:
    """One leg of a computed route."""
    source_id: str
    target_id: str
    line: str
    mode: str  # canonical mode tag, e.g. "railway"
    cost: float  # minutes
    geometry: Optional[dict] = None
    color: Optional[str] = None
    index: int = 0  # position in the route payload
    properties: Dict[str, Any] = field(default_factory=dict)

    def to_feature(self) -> dict:
        properties = dict(self.properties)
        properties.update({
            "source": self.source_id,
            "target": self.target_id,
            "line": self.line,
            "ml_mode_lower": self.mode,
            "cost": self.cost,
        })
        if self.color:
            properties["ml_color"] = self.color
        return {"type": "Feature", "geometry": self.geometry, "properties": properties}


@dataclass
class Route:
    """An annotated route between two locations."""
    source_id: str
    target_id: str
    segments: List[Segment]

    @property
    def total_cost(self) -> float:
        return sum(segment.cost for segment in self.segments)

    def to_feature_collection(self) -> dict:
        return {
            "type": "FeatureCollection",
            "features": [segment.to_feature() for segment in self.segments],
        }


@dataclass
class NodeStep:
    """Itinerary row for a place on the route."""
    location_id: str
    label: str
    rank_label: str = ""
    position: str = "via"  # "source", "via" or "destination"
    kind: str = "node"


@dataclass
class SegmentStep:
    """Itinerary row for a travelled leg."""
    source_id: str
    target_id: str
    line: str
    mode: str
    color: Optional[str]
    cost: float
    cost_text: str
    icon: str = ""
    segment_index: int = 0
    kind: str = "segment"


@dataclass
class Itinerary:
    """Readable summary of a route."""
    steps: list  # alternating NodeStep / SegmentStep
    summary_from: str = ""
    summary_to: str = ""
    total_text: str = ""

    @property
    def node_steps(self) -> List[NodeStep]:
        return [step for step in self.steps if step.kind == "node"]

    @property
    def segment_steps(self) -> List[SegmentStep]:
        return [step for step in self.steps if step.kind == "segment"]


@dataclass
class AlternateName:
    name: str
    lang: Optional[str] = None


@dataclass
class NodeDetail:
    """Alternate names and serving lines for one expanded itinerary node."""
    location_id: str
    alternate_names: List[AlternateName] = field(default_factory=list)
    lines: List[str] = field(default_factory=list)
    failed: bool = False


@dataclass
class SuggestionRow:
    """One rendered row in a suggestion list.

    Header rows are non-selectable dividers; option rows carry an index into the
    list of selectable rows.
    """
    kind: str  # "header" or "option"
    label: str
    sublabel: str = ""
    location: Optional[Location] = None
    option_index: int = -1
    score: float = 1.0
    synthetic: bool = False  # pulled in from the corpus, did not match the query

    @property
    def selectable(self) -> bool:
        return self.kind == "option"


@dataclass
class ViewState:
    """Map camera target."""
    center: LonLat
    zoom: float
