"""Main search control: one session tying search, selection, routing and the map together."""

import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from .corpus_loader import CorpusLoader
from .geo_client import CorpusLoadError, GeoClient, GeoClientError
from .map_layers import MapLayers, selected_markers
from .models import Itinerary, Location, NodeDetail, Role, Route, Selection, SuggestionRow
from .route_pipeline import DEFAULT_YEAR, RoutePipeline, RouteTicket
from .selection import DEFAULT_CLICK_TOLERANCE, SelectionStateMachine
from .suggestions import DEFAULT_MAX_SUGGESTIONS, SuggestionEngine, SuggestionList
from .viewport import EASE_DURATION_MS, POINT_ZOOM, fit_geojson

logger = logging.getLogger(__name__)


@dataclass
class SearchControlOptions:
    """Settings for one search control."""
    api_base: Optional[str] = None
    endpoint: str = "/v2/node"
    route_endpoint: str = "/v2/route"
    detail_endpoint: str = "/v2/node/{id}"
    year: Any = DEFAULT_YEAR
    max_suggestions: int = DEFAULT_MAX_SUGGESTIONS
    data: Optional[dict] = None  # in-memory corpus instead of fetching it
    debounce_seconds: float = 0.16
    click_tolerance: float = DEFAULT_CLICK_TOLERANCE
    timeout: float = 10


class SearchControl:
    """
    Start/destination search over a location corpus, with routing.

    This class provides methods to:
    - Search locations for either role as the user types, with keyboard navigation
    - Select locations from suggestions, map clicks or host calls
    - Fetch and annotate the route once both roles are filled, and build its itinerary
    - Keep the map's markers, route layers and camera in step

    The optional display is the map engine. Besides the source/layer/image calls
    used by MapLayers it may provide get_zoom(), get_viewport_rect(),
    get_panel_rect(), ease_to(center, zoom, duration) and set_cursor(name).
    """

    def __init__(
        self,
        display=None,
        options: Optional[SearchControlOptions] = None,
        client: Optional[GeoClient] = None,
        load_corpus: bool = True,
        clock: Callable[[], float] = time.monotonic,
        rng: Optional[random.Random] = None,
        route_requester: Optional[Callable[[RouteTicket], None]] = None,
    ):
        """
        Initialize the control.

        Args:
            display: Map display collaborator, or None to run headless.
            options: Control settings.
            client: Data service client; built from options when omitted.
            load_corpus: If True, load the corpus now (from options.data or the service).
            clock: Time source for input debouncing.
            rng: Random source for line colours.
            route_requester: If given, route fetches are left to the host: a completed
                selection only starts a request and passes its ticket here, and the
                host later calls complete_route_request with the payload or error.

        Raises:
            CorpusLoadError: If the corpus cannot be loaded.
        """
        self.options = options or SearchControlOptions()
        self.display = display
        self.layers = MapLayers(display) if display is not None else None
        self.client = client or GeoClient(
            api_base=self.options.api_base,
            endpoint=self.options.endpoint,
            route_endpoint=self.options.route_endpoint,
            detail_endpoint=self.options.detail_endpoint,
            timeout=self.options.timeout,
        )
        self.clock = clock
        self.route_requester = route_requester

        self.corpus = CorpusLoader()
        self.engine = SuggestionEngine(self.corpus, self.options.max_suggestions)
        self.selection = SelectionStateMachine(self.corpus, self.options.click_tolerance)
        self.pipeline = RoutePipeline(self.corpus, self.client, self.options.year, rng)
        self.suggestions: Dict[Role, SuggestionList] = {role: SuggestionList() for role in Role}
        self._pending: Dict[Role, Tuple[str, float, int]] = {}  # role -> (query, due, generation)

        self.route: Optional[Route] = None
        self.itinerary: Optional[Itinerary] = None
        self.status = "Loading points…"

        self.selection.on_change(self._on_selection_change)
        self.selection.on_focus(self._on_focus_change)

        if load_corpus:
            self.load_corpus()

    # Corpus

    def load_corpus(self) -> None:
        """Load the corpus from options.data, or fetch it from the data service."""
        try:
            if self.options.data is not None:
                self.corpus.load_from_data(self.options.data)
            else:
                self.corpus.load_from_client(self.client)
        except (GeoClientError, ValueError) as e:
            logger.error(f"Failed to load node data: {e}")
            self.status = "Error loading points"
            if isinstance(e, CorpusLoadError):
                raise
            raise CorpusLoadError(str(e)) from e
        self._on_corpus_loaded()

    def load_corpus_from_file(self, path: str) -> None:
        """Load the corpus from a local GeoJSON file."""
        self.corpus.load_from_file(path)
        self._on_corpus_loaded()

    def _on_corpus_loaded(self) -> None:
        self.engine = SuggestionEngine(self.corpus, self.options.max_suggestions)
        if self.layers is not None:
            self.layers.show_nodes(self.corpus.to_feature_collection())
        self.status = f"{len(self.corpus)} points loaded"
        self.selection.activate(Role.START)

    # Host API

    def set_source(self, value: Any) -> bool:
        """Set the start from a Location or a corpus id; None clears it."""
        return self.selection.select(Role.START, value)

    def set_target(self, value: Any) -> bool:
        """Set the destination from a Location or a corpus id; None clears it."""
        return self.selection.select(Role.DESTINATION, value)

    def get_selected(self) -> Selection:
        """Copy of the current selection."""
        return self.selection.selection.copy()

    def get_features(self) -> List[Location]:
        """The normalized corpus."""
        return list(self.corpus.locations)

    # Typed search

    def on_input(self, role: Role, text: str) -> None:
        """Record typed text; the search runs once the debounce delay has passed."""
        role = Role(role)
        suggestions = self.suggestions[role]
        suggestions.generation += 1
        self._pending[role] = (text, self.clock() + self.options.debounce_seconds, suggestions.generation)

    def poll(self) -> None:
        """Run searches whose debounce delay has expired."""
        now = self.clock()
        for role, (text, due, generation) in list(self._pending.items()):
            if due > now:
                continue
            del self._pending[role]
            if generation == self.suggestions[role].generation:
                self.search(role, text)

    def search(self, role: Role, query: str) -> List[SuggestionRow]:
        """Search immediately and show the rows for a role."""
        role = Role(role)
        rows = self.engine.search(query) if query and query.strip() else []
        if rows:
            self.suggestions[role].show(rows)
        else:
            self.suggestions[role].clear()
        return rows

    def key_down(self, role: Role, key: str) -> Optional[Location]:
        """
        Keyboard handling for a role's input.

        Returns:
            The location selected by Enter, if any.
        """
        role = Role(role)
        suggestions = self.suggestions[role]
        if key == "ArrowDown":
            suggestions.move(1)
        elif key == "ArrowUp":
            suggestions.move(-1)
        elif key == "Enter":
            row = suggestions.current()
            if row is not None:
                return self.choose(role, row.option_index)
        elif key == "Escape":
            self.dismiss_suggestions()
        return None

    def choose(self, role: Role, option_index: int) -> Optional[Location]:
        """Select a suggestion row by its index among selectable rows."""
        role = Role(role)
        row = self.suggestions[role].option_at(option_index)
        if row is None:
            return None
        self._pending.pop(role, None)
        self.suggestions[role].clear()
        if not self.selection.set_role(role, row.location):
            self.selection.activate(role)
            return None
        self.selection.advance_focus(role)
        return row.location

    def dismiss_suggestions(self) -> None:
        """Close both suggestion lists; selections are untouched."""
        self._pending.clear()
        for suggestions in self.suggestions.values():
            suggestions.clear()

    # Focus and map clicks

    def focus(self, role: Role) -> None:
        """Make a role the active one, as when its input gains focus."""
        self.selection.activate(role)

    def click_outside(self, on_map: bool = False) -> None:
        """A click outside the control closes suggestions; off the map it also drops focus."""
        self.dismiss_suggestions()
        if not on_map:
            self.selection.deactivate()

    def map_click(self, lon: float, lat: float) -> Optional[Location]:
        """Select the nearest location for the active role, if any is within tolerance."""
        role = self.selection.active_role
        if role is None:
            return None
        location = self.selection.click(lon, lat)
        if location is not None:
            self.suggestions[role].clear()
            self.selection.advance_focus(role)
        return location

    def clear(self) -> None:
        """Clear both roles, suggestions, route and itinerary."""
        self.selection.clear()
        self.dismiss_suggestions()
        self.status = f"{len(self.corpus)} points loaded"

    # Routing

    def set_year(self, year: Any) -> None:
        """Change the time-context and refetch the route."""
        if year == self.pipeline.year:
            return
        self.pipeline.set_year(year)
        self.refresh_route()

    def refresh_route(self) -> Optional[Route]:
        """
        Fetch and display the route when both roles are filled, else clear it.

        With a route_requester the fetch is handed to the host and None is returned.
        """
        selected = self.selection.selection
        if not selected.is_complete:
            self.pipeline.invalidate()
            self._show_route(None)
            return None

        ticket = self.begin_route_request()
        if self.route_requester is not None:
            self.route_requester(ticket)
            return None
        try:
            payload = self.pipeline.fetch(ticket)
        except GeoClientError as e:
            return self.complete_route_request(ticket, error=e)
        return self.complete_route_request(ticket, payload)

    def begin_route_request(self) -> RouteTicket:
        """Start a route request for the current selection, superseding older ones."""
        selected = self.selection.selection
        self.status = "Loading route…"
        return self.pipeline.begin(selected.start.id, selected.destination.id)

    def complete_route_request(
        self,
        ticket: RouteTicket,
        payload: Optional[dict] = None,
        error: Optional[Exception] = None,
    ) -> Optional[Route]:
        """
        Apply a finished route request.

        Stale tickets are ignored. Failures clear the route and itinerary but leave
        the selection alone.
        """
        if not self.pipeline.is_current(ticket):
            logger.debug(f"Ignoring superseded route request {ticket.generation}")
            return None

        if error is None:
            try:
                route = self.pipeline.complete(ticket, payload)
            except GeoClientError as e:
                error = e
        if error is not None:
            logger.error(f"Failed to fetch/render route: {error}")
            self._show_route(None)
            self.status = "Error loading route"
            return None

        self._show_route(route)
        self.fit(route.to_feature_collection())
        self.status = "Route loaded"
        return route

    def _show_route(self, route: Optional[Route]) -> None:
        self.route = route
        self.itinerary = self.pipeline.itinerary(route, self.selection.selection) if route else None
        if self.layers is not None:
            self.layers.show_route(route.to_feature_collection() if route else None)

    def expand_node(self, location_id: str) -> NodeDetail:
        """Alternate names and lines for an itinerary node the user expanded."""
        primary = ""
        if self.itinerary is not None:
            for step in self.itinerary.node_steps:
                if step.location_id == location_id:
                    primary = step.label
                    break
        return self.pipeline.expand_node(location_id, primary)

    def focus_segment(self, segment_index: int) -> None:
        """Fit the map to one route segment."""
        if self.route is None:
            return
        for segment in self.route.segments:
            if segment.index == segment_index:
                self.fit({"type": "FeatureCollection", "features": [segment.to_feature()]})
                return

    # Map view

    def fit(self, geojson) -> None:
        """Ease the map to show the given GeoJSON clear of the control panel."""
        if self.display is None:
            return
        try:
            view = fit_geojson(
                geojson,
                self.display.get_viewport_rect(),
                self.display.get_zoom(),
                self.display.get_panel_rect(),
            )
            if view is not None:
                self.display.ease_to(center=view.center, zoom=view.zoom, duration=EASE_DURATION_MS)
        except Exception as e:
            logger.warning(f"Fitting map view failed: {e}")

    def _zoom_to(self, location: Location) -> None:
        point = location.point
        if self.display is None or point is None:
            return
        try:
            self.display.ease_to(center=point, zoom=POINT_ZOOM, duration=EASE_DURATION_MS)
        except Exception as e:
            logger.warning(f"Zooming to {location.id} failed: {e}")

    def _on_selection_change(self, role: Role, location: Optional[Location]) -> None:
        selected = self.selection.selection
        if self.layers is not None:
            self.layers.show_selected(selected_markers(selected.start, selected.destination))
        if location is not None:
            self._zoom_to(location)
        self.refresh_route()

    def _on_focus_change(self, role: Optional[Role]) -> None:
        if self.display is None:
            return
        try:
            self.display.set_cursor("crosshair" if role is not None else "")
        except Exception as e:
            logger.warning(f"Setting map cursor failed: {e}")
