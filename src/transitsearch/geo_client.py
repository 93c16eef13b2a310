"""Client for the remote location/route data service."""

import logging
import os
import time
from typing import Any, Dict, Optional, Tuple
from urllib.parse import quote

import requests

logger = logging.getLogger(__name__)

DEFAULT_API_BASE = "https://geo.jaxartes.net"
API_BASE_ENV = "TRANSITSEARCH_API_BASE"


class GeoClientError(Exception):
    """Raised when the data service cannot be reached or returns bad data."""
    pass


class CorpusLoadError(GeoClientError):
    """Raised when the location corpus cannot be loaded."""
    pass


def resolve_api_base(api_base: Optional[str] = None) -> str:
    """Explicit value, then the environment, then the public service."""
    if api_base:
        return str(api_base).rstrip("/")
    from_env = os.getenv(API_BASE_ENV)
    if from_env:
        return from_env.rstrip("/")
    return DEFAULT_API_BASE


def normalize_path(path: str) -> str:
    return path if path.startswith("/") else "/" + path


class GeoClient:
    """Fetches the location corpus, routes and per-node details."""

    def __init__(
        self,
        api_base: Optional[str] = None,
        endpoint: str = "/v2/node",
        route_endpoint: str = "/v2/route",
        detail_endpoint: str = "/v2/node/{id}",
        timeout: float = 10,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the client.

        Args:
            api_base: Service root URL. Falls back to $TRANSITSEARCH_API_BASE, then the public service.
            endpoint: Path of the corpus endpoint.
            route_endpoint: Path of the route endpoint.
            detail_endpoint: Path template of the per-node detail endpoint.
            timeout: Seconds to wait for each request.
            session: Optional requests session to reuse.
        """
        self.api_base = resolve_api_base(api_base)
        self.endpoint = normalize_path(endpoint)
        self.route_endpoint = normalize_path(route_endpoint)
        self.detail_endpoint = normalize_path(detail_endpoint)
        self.timeout = timeout
        self.session = session or requests.Session()
        self._cache: Dict[Tuple[str, Any], Tuple[dict, float]] = {}  # (id, year) -> (detail, timestamp)
        self._max_cache_size = 512

    def fetch_nodes(self) -> dict:
        """
        Fetch the location corpus.

        Returns:
            GeoJSON FeatureCollection of point records.

        Raises:
            CorpusLoadError: On network failure or a payload without a features list.
        """
        url = self.api_base + self.endpoint
        try:
            data = self._get_json(url)
        except GeoClientError as e:
            raise CorpusLoadError(str(e)) from e
        if not isinstance(data, dict) or not isinstance(data.get("features"), list):
            raise CorpusLoadError(f"Invalid GeoJSON from {url}")
        return data

    def fetch_route(self, source_id: str, target_id: str, year: Any) -> dict:
        """
        Fetch the route between two locations.

        Args:
            source_id: Start location id.
            target_id: Destination location id.
            year: Time-context passed through to the service.

        Returns:
            GeoJSON FeatureCollection of ordered segments.

        Raises:
            GeoClientError: On network failure, error status or a payload without a features list.
        """
        url = self.api_base + self.route_endpoint
        data = self._get_json(url, params={"source": source_id, "target": target_id, "year": year})
        if not isinstance(data, dict) or not isinstance(data.get("features"), list):
            raise GeoClientError("Invalid route GeoJSON")
        return data

    def fetch_node_detail(self, location_id: str, year: Any) -> dict:
        """
        Fetch alternate names and serving lines for a node, cached per (id, year).

        Returns:
            {"names": [{"name": str, "lang": str|None}, ...], "lines": [str, ...]}
        """
        key = (location_id, year)
        if key in self._cache:
            logger.debug(f"Using cached detail for {location_id} ({year})")
            return self._cache[key][0]

        if len(self._cache) >= self._max_cache_size:
            oldest_key = min(self._cache.keys(), key=lambda k: self._cache[k][1])
            del self._cache[oldest_key]

        url = self.api_base + self.detail_endpoint.format(id=quote(str(location_id), safe=""))
        data = self._get_json(url, params={"year": year})
        if not isinstance(data, dict):
            raise GeoClientError(f"Invalid node detail from {url}")

        detail = {
            "names": [n for n in (data.get("names") or []) if isinstance(n, dict) and n.get("name")],
            "lines": [str(line) for line in (data.get("lines") or [])],
        }
        self._cache[key] = (detail, time.time())
        return detail

    def _get_json(self, url: str, params: Optional[dict] = None) -> Any:
        logger.debug(f"Fetching {url} {params or ''}")
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.RequestException as e:
            logger.error(f"Failed to fetch {url}: {e}")
            raise GeoClientError(f"Fetch failed for {url}: {e}") from e
        except ValueError as e:
            logger.error(f"Invalid JSON from {url}: {e}")
            raise GeoClientError(f"Invalid JSON from {url}") from e

    def clear_cache(self) -> None:
        """Manually clear the node detail cache."""
        self._cache.clear()
