"""TransitSearch - start/destination search, routing and itineraries over a location corpus."""

__version__ = "0.1.0"

from .models import Location, Selection, Route, Segment, Itinerary, NodeStep, SegmentStep, NodeDetail, Role
from .corpus_loader import CorpusLoader, normalize_features
from .geo_client import GeoClient, GeoClientError, CorpusLoadError
from .suggestions import SuggestionEngine, SuggestionList
from .selection import SelectionStateMachine
from .route_pipeline import RoutePipeline, build_itinerary
from .viewport import fit_view, fit_geojson, geometry_bounds
from .search_control import SearchControl, SearchControlOptions

__all__ = [
    "SearchControl",
    "SearchControlOptions",
    "CorpusLoader",
    "normalize_features",
    "GeoClient",
    "GeoClientError",
    "CorpusLoadError",
    "SuggestionEngine",
    "SuggestionList",
    "SelectionStateMachine",
    "RoutePipeline",
    "build_itinerary",
    "fit_view",
    "fit_geojson",
    "geometry_bounds",
    "Location",
    "Selection",
    "Route",
    "Segment",
    "Itinerary",
    "NodeStep",
    "SegmentStep",
    "NodeDetail",
    "Role",
]
