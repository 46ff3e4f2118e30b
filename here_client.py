"""
HERE platform client: geocoding, car routing with traffic, and browse.

All three endpoints share one requests.Session per client instance.
Sessions are not thread-safe; concurrent callers should build one client
per worker thread (see routing_traffic and property_analyzer).
"""

import os
import time
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests
from dotenv import load_dotenv

from geo_math import Coordinate, InvalidCoordinates, coerce_coordinate
from pl_trace import current_stage, get_trace

logger = logging.getLogger(__name__)

load_dotenv()

HERE_GEOCODE_URL = "https://geocode.search.hereapi.com/v1"
HERE_ROUTING_URL = "https://router.hereapi.com/v8"

# Top-level HERE category groups requested from /browse. Narrower codes
# (e.g. 700-7600-0116 for fuel) are resolved by poi_classifier.
BROWSE_CATEGORIES = ("100", "200", "300", "400", "600", "700", "800")


class UpstreamUnavailable(Exception):
    """A provider could not be reached or answered with a non-2xx status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RoutingUnavailable(UpstreamUnavailable):
    """The routing provider answered but produced no usable route."""


class GeocodeNotFound(Exception):
    """The geocoder returned zero results for an address."""


@dataclass(frozen=True)
class GeocodeResult:
    coordinates: Coordinate
    formatted_address: str
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None


@dataclass(frozen=True)
class RouteSection:
    """Summary of one section of a HERE route."""
    length_m: float
    base_duration_s: float
    duration_s: float
    mode: str = "car"


class HereClient:
    """Client for the HERE Geocoding & Search and Routing v8 APIs."""

    # Per-call timeout in seconds. No retries: a slow provider surfaces as
    # UpstreamUnavailable and the caller degrades.
    DEFAULT_TIMEOUT = 10

    def __init__(self, api_key: Optional[str] = None):
        self.api_key = api_key or os.environ.get("HERE_API_KEY", "")
        self.geocode_url = HERE_GEOCODE_URL
        self.routing_url = HERE_ROUTING_URL
        self.session = requests.Session()
        self.session.trust_env = False

    def _traced_get(self, endpoint_name: str, url: str, params: dict) -> dict:
        """GET with trace recording; raises UpstreamUnavailable on failure."""
        params = dict(params, apiKey=self.api_key)
        t0 = time.time()
        try:
            response = self.session.get(url, params=params, timeout=self.DEFAULT_TIMEOUT)
        except requests.RequestException as exc:
            self._record(endpoint_name, t0, 0)
            raise UpstreamUnavailable(f"HERE {endpoint_name} request failed: {exc}") from exc

        self._record(endpoint_name, t0, response.status_code)
        if not response.ok:
            raise UpstreamUnavailable(
                f"HERE {endpoint_name} failed with status: {response.status_code}",
                status_code=response.status_code,
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise UpstreamUnavailable(f"HERE {endpoint_name} returned invalid JSON") from exc
        # Every HERE endpoint answers with a JSON object
        if not isinstance(data, dict):
            raise UpstreamUnavailable(
                f"HERE {endpoint_name} returned {type(data).__name__}, expected an object",
                status_code=response.status_code,
            )
        return data

    @staticmethod
    def _record(endpoint_name: str, t0: float, status_code: int):
        trace = get_trace()
        if trace:
            trace.record_call(
                service="here",
                endpoint=endpoint_name,
                elapsed_ms=int((time.time() - t0) * 1000),
                status_code=status_code,
                stage=current_stage(),
            )

    def geocode(self, address: str) -> GeocodeResult:
        """Resolve free-text *address* to the best-ranked HERE match."""
        data = self._traced_get("geocode", f"{self.geocode_url}/geocode", {"q": address})

        items = data.get("items") or []
        if not items:
            raise GeocodeNotFound(f"No results found for address: {address}")

        item = items[0]
        if not isinstance(item, dict):
            raise GeocodeNotFound(f"No usable result for address: {address}")
        try:
            coordinates = coerce_coordinate(item.get("position") or {})
        except InvalidCoordinates as exc:
            raise GeocodeNotFound(f"No usable position for address: {address}") from exc

        addr = item.get("address") or {}
        return GeocodeResult(
            coordinates=coordinates,
            formatted_address=addr.get("label") or item.get("title") or address,
            city=addr.get("city"),
            state=addr.get("stateCode") or addr.get("state"),
            postal_code=addr.get("postalCode"),
            country=addr.get("countryCode"),
        )

    def route(self, origin: Coordinate, destination: Coordinate) -> List[RouteSection]:
        """Car route with current traffic between two points.

        Returns the section summaries of the first route. `base_duration_s`
        is the free-flow time; `duration_s` includes live traffic.
        """
        params = {
            "transportMode": "car",
            "origin": f"{origin.lat},{origin.lng}",
            "destination": f"{destination.lat},{destination.lng}",
            "return": "summary,travelSummary",
            "departureTime": "now",
        }
        data = self._traced_get("route", f"{self.routing_url}/routes", params)

        routes = data.get("routes") or []
        if not routes:
            raise RoutingUnavailable("No route found between these points")

        sections = routes[0].get("sections") or []
        if not sections:
            raise RoutingUnavailable("Invalid route data received")

        return [_parse_section(s) for s in sections]

    def browse(
        self,
        center: Coordinate,
        limit: int = 50,
        radius_m: Optional[int] = None,
        categories=BROWSE_CATEGORIES,
    ) -> List[Dict[str, Any]]:
        """Places around *center*; each item has title/position/address/categories."""
        params: Dict[str, Any] = {
            "at": f"{center.lat},{center.lng}",
            "limit": limit,
        }
        if radius_m:
            params["in"] = f"circle:{center.lat},{center.lng};r={int(radius_m)}"
        if categories:
            params["categories"] = ",".join(categories)

        data = self._traced_get("browse", f"{self.geocode_url}/browse", params)
        items = data.get("items")
        return items if isinstance(items, list) else []


def _parse_section(section: Dict[str, Any]) -> RouteSection:
    summary = section.get("summary") or {}
    duration = summary.get("duration") or 0
    transport = section.get("transport") or {}
    return RouteSection(
        length_m=float(summary.get("length") or 0),
        # HERE omits baseDuration when it equals duration
        base_duration_s=float(summary.get("baseDuration") or duration),
        duration_s=float(duration),
        mode=transport.get("mode", "car"),
    )
