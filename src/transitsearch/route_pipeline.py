"""Route fetching, segment annotation and itinerary building."""

import logging
import math
import random
import zlib
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from .corpus_loader import CorpusLoader
from .geo_client import GeoClient, GeoClientError
from .labels import humanize_minutes, mode_symbol, mode_tag, rank_label
from .models import (
    AlternateName,
    Itinerary,
    Location,
    NodeDetail,
    NodeStep,
    Route,
    Segment,
    SegmentStep,
    Selection,
)

logger = logging.getLogger(__name__)

SWITCH_LINE = "switch"
DEFAULT_YEAR = 1914

LINE_PALETTE = ["#1a73e8", "#d32f2f", "#2e7d32", "#fbc02d", "#6a1b9a", "#fb8c00", "#1e88e5", "#ec407a"]
WATER_PALETTE = ["#1a73e8", "#0277bd", "#00838f", "#283593"]
DEFAULT_COLOR = "#1a73e8"

NEUTRAL_COLORS = {
    "walk": "#616161",
    "road": "#ffffff",
    "chaussee": "#ffffff",
    "connection": "#000000",
    "transfer": "#000000",
    "switch": "#000000",
}
WATER_MODES = ("ferry", "ship")
LINE_COLORED_KEYWORDS = ("tram", "metro", "railway", "funicular")


def is_line_colored(mode: str) -> bool:
    return any(keyword in mode for keyword in LINE_COLORED_KEYWORDS)


def is_switch(segment: Segment) -> bool:
    """A same-node line change: reserved line name and identical endpoints."""
    return segment.line.strip().casefold() == SWITCH_LINE and segment.source_id == segment.target_id


def _coerce_cost(value: Any) -> float:
    try:
        cost = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(cost) or cost < 0:
        return 0.0
    return cost


def _first_present(props: dict, *keys: str) -> Any:
    for key in keys:
        value = props.get(key)
        if value is not None:
            return value
    return None


def water_color(source_id: str, target_id: str) -> str:
    """Stable colour for a water leg, independent of travel direction."""
    key = "|".join(sorted((source_id, target_id))).encode("utf-8")
    return WATER_PALETTE[zlib.crc32(key) % len(WATER_PALETTE)]


def parse_segments(payload: dict) -> List[Segment]:
    """Read ordered segments from a route FeatureCollection."""
    if not isinstance(payload, dict) or not isinstance(payload.get("features"), list):
        raise GeoClientError("Invalid route GeoJSON")

    segments = []
    for index, feature in enumerate(payload["features"]):
        feature = feature if isinstance(feature, dict) else {}
        props = dict(feature.get("properties") or {})
        source = _first_present(props, "source", "src")
        target = _first_present(props, "target", "tgt")
        line = _first_present(props, "line", "name")
        segments.append(Segment(
            source_id="" if source is None else str(source),
            target_id="" if target is None else str(target),
            line="" if line is None else str(line),
            mode=mode_tag(props.get("mode")),
            cost=_coerce_cost(props.get("cost")),
            geometry=feature.get("geometry"),
            index=index,
            properties=props,
        ))
    return segments


def annotate_segments(segments: List[Segment], rng: Optional[random.Random] = None) -> List[Segment]:
    """
    Assign a display colour to every segment.

    Neutral modes get fixed colours, water legs a colour derived from their
    endpoints, and rail/tram-like legs one palette colour per distinct line. The
    palette is shuffled on every call, so line colours only hold within one render.
    A "colour" property from the service overrides all of these.
    """
    rng = rng or random.Random()
    palette = LINE_PALETTE[:]
    rng.shuffle(palette)

    line_keys: List[str] = []
    for segment in segments:
        if is_line_colored(segment.mode):
            key = _line_key(segment)
            if key not in line_keys:
                line_keys.append(key)
    line_colors = {key: palette[i % len(palette)] for i, key in enumerate(line_keys)}

    for segment in segments:
        override = segment.properties.get("colour")
        if override:
            segment.color = str(override)
        elif segment.mode in NEUTRAL_COLORS:
            segment.color = NEUTRAL_COLORS[segment.mode]
        elif segment.mode in WATER_MODES:
            segment.color = water_color(segment.source_id, segment.target_id)
        elif is_line_colored(segment.mode):
            segment.color = line_colors[_line_key(segment)]
        else:
            segment.color = DEFAULT_COLOR
    return segments


def _line_key(segment: Segment) -> str:
    return segment.line or str(segment.properties.get("id") or f"__line_{segment.index}")


def resolve_node(location_id: str, corpus: CorpusLoader, selection: Optional[Selection] = None) -> Optional[Location]:
    """
    Pick the location used to label a route node: the location held in a
    selection slot, then a corpus entry with real point geometry, then any entry.
    """
    if selection is not None:
        for held in (selection.start, selection.destination):
            if held is not None and held.id == location_id:
                return held
    return corpus.find_representative(location_id)


def build_itinerary(
    route: Route,
    resolve: Callable[[str], Optional[Location]],
) -> Itinerary:
    """
    Turn a route into alternating node and segment rows.

    Switch segments produce no row; the rank label of the switch node is attached
    to the node row for that place instead.
    """
    steps: list = []

    def node_label(location_id: str) -> str:
        location = resolve(location_id)
        return location.display_name if location is not None else location_id

    def node_rank(location_id: str) -> str:
        location = resolve(location_id)
        return rank_label(location.rank) if location is not None else ""

    pending_rank = ""
    for segment in route.segments:
        if is_switch(segment):
            label = node_rank(segment.source_id)
            last = steps[-1] if steps else None
            if last is not None and last.location_id == segment.source_id:
                last.rank_label = label or last.rank_label
            else:
                pending_rank = label
            continue

        if not steps:
            steps.append(NodeStep(
                location_id=segment.source_id,
                label=node_label(segment.source_id),
                rank_label=node_rank(segment.source_id) or pending_rank,
                position="source",
            ))
            pending_rank = ""

        steps.append(SegmentStep(
            source_id=segment.source_id,
            target_id=segment.target_id,
            line=segment.line,
            mode=segment.mode,
            color=segment.color,
            cost=segment.cost,
            cost_text=humanize_minutes(segment.cost),
            icon=mode_symbol(segment.mode),
            segment_index=segment.index,
        ))
        steps.append(NodeStep(
            location_id=segment.target_id,
            label=node_label(segment.target_id),
        ))

    if not steps and route.segments:
        first = route.segments[0].source_id
        steps.append(NodeStep(
            location_id=first,
            label=node_label(first),
            rank_label=node_rank(first) or pending_rank,
            position="source",
        ))

    if len(steps) > 1:
        last = steps[-1]
        last.position = "destination"
        last.rank_label = node_rank(last.location_id) or last.rank_label

    return Itinerary(
        steps=steps,
        summary_from=steps[0].label if steps else "",
        summary_to=steps[-1].label if steps else "",
        total_text=humanize_minutes(route.total_cost) if steps else "",
    )


@dataclass(frozen=True)
class RouteTicket:
    """Identifies one route request; completions for stale tickets are dropped."""
    generation: int
    source_id: str
    target_id: str
    year: Any


class RoutePipeline:
    """Fetches routes for a start/destination pair and derives their display form."""

    def __init__(
        self,
        corpus: CorpusLoader,
        client: Optional[GeoClient] = None,
        year: Any = DEFAULT_YEAR,
        rng: Optional[random.Random] = None,
    ):
        self.corpus = corpus
        self.client = client
        self.year = year
        self.rng = rng or random.Random()
        self._generation = 0
        self._detail_generation = 0
        self._details: Dict[str, NodeDetail] = {}

    def begin(self, source_id: str, target_id: str) -> RouteTicket:
        """Start a request, superseding any request still in flight."""
        self._generation += 1
        return RouteTicket(self._generation, source_id, target_id, self.year)

    def invalidate(self) -> None:
        """Supersede any in-flight request without starting a new one."""
        self._generation += 1

    def is_current(self, ticket: RouteTicket) -> bool:
        return ticket.generation == self._generation

    def fetch(self, ticket: RouteTicket) -> dict:
        """Fetch the raw route payload for a ticket."""
        if self.client is None:
            raise GeoClientError("No data service configured for route requests")
        return self.client.fetch_route(ticket.source_id, ticket.target_id, ticket.year)

    def complete(self, ticket: RouteTicket, payload: dict) -> Optional[Route]:
        """
        Annotate a fetched payload.

        Returns:
            The annotated Route, or None when a newer request has superseded this one.

        Raises:
            GeoClientError: If the payload lacks a segment list.
        """
        if not self.is_current(ticket):
            logger.debug(f"Dropping stale route {ticket.source_id} -> {ticket.target_id}")
            return None
        segments = annotate_segments(parse_segments(payload), self.rng)
        return Route(source_id=ticket.source_id, target_id=ticket.target_id, segments=segments)

    def itinerary(self, route: Route, selection: Optional[Selection] = None) -> Itinerary:
        return build_itinerary(route, lambda location_id: resolve_node(location_id, self.corpus, selection))

    def set_year(self, year: Any) -> None:
        """Change the time-context; line membership can change, so details are refetched."""
        if year == self.year:
            return
        self.year = year
        self._details.clear()
        self._detail_generation += 1
        if self.client is not None:
            self.client.clear_cache()

    def expand_node(self, location_id: str, primary_name: str = "") -> NodeDetail:
        """
        Alternate names and serving lines for an itinerary node, cached per id.

        Corpus names sharing the id are always included; the remote detail adds
        language-tagged names and lines. A failed fetch marks only this node as failed.
        """
        if location_id in self._details:
            return self._details[location_id]

        generation = self._detail_generation
        seen = {primary_name.casefold()} if primary_name else set()
        names: List[AlternateName] = []
        for name in self.corpus.names_for_id(location_id):
            if name.casefold() not in seen:
                seen.add(name.casefold())
                names.append(AlternateName(name=name))

        detail = NodeDetail(location_id=location_id, alternate_names=names)
        if self.client is None:
            self._details[location_id] = detail
            return detail

        try:
            remote = self.client.fetch_node_detail(location_id, self.year)
        except GeoClientError as e:
            logger.warning(f"Failed to load details for node {location_id}: {e}")
            detail.failed = True
            return detail

        for entry in remote["names"]:
            name = str(entry["name"])
            if name.casefold() not in seen:
                seen.add(name.casefold())
                names.append(AlternateName(name=name, lang=entry.get("lang")))
        detail.lines = list(remote["lines"])

        if generation == self._detail_generation:
            self._details[location_id] = detail
        else:
            logger.debug(f"Not caching details for {location_id}; time-context changed")
        return detail
