"""
Area demographics from the Geoapify Places API.

Looks up the administrative area containing the property and reports its
population and a "City, State" label. Median income has no free source
and is always "Data unavailable". This is context only: any failure
(missing key, network error, empty result) returns the defaults.
"""

import os
import time
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests
from dotenv import load_dotenv

from geo_math import InvalidCoordinates, coerce_coordinate
from pl_trace import current_stage, get_trace

logger = logging.getLogger(__name__)

load_dotenv()

_PLACES_URL = "https://api.geoapify.com/v2/places"
_API_TIMEOUT = 10  # seconds

UNAVAILABLE = "Data unavailable"


@dataclass(frozen=True)
class DemographicsSnapshot:
    population: str = UNAVAILABLE
    location: str = ""
    median_income: str = UNAVAILABLE


def _record_api(endpoint: str, t0: float, status_code: int):
    trace = get_trace()
    if trace:
        trace.record_call(
            service="geoapify",
            endpoint=endpoint,
            elapsed_ms=int((time.time() - t0) * 1000),
            status_code=status_code,
            stage=current_stage(),
        )


def _location_label(props: Dict[str, Any]) -> str:
    city = props.get("city") or props.get("name")
    state = props.get("state") or props.get("county")
    if city and state:
        return f"{city}, {state}"
    return city or ""


def _population_label(props: Dict[str, Any]) -> str:
    population = props.get("population")
    if isinstance(population, bool) or not isinstance(population, (int, float)) or population <= 0:
        return UNAVAILABLE
    return f"{int(population):,}"


def get_demographics(coordinates: Any, api_key: Optional[str] = None) -> DemographicsSnapshot:
    """Demographics for the area around *coordinates*; never raises."""
    api_key = api_key or os.environ.get("GEOAPIFY_API_KEY", "")
    if not api_key:
        logger.info("GEOAPIFY_API_KEY not set, skipping demographics")
        return DemographicsSnapshot()

    try:
        point = coerce_coordinate(coordinates)
    except InvalidCoordinates as exc:
        logger.warning("Demographics skipped: %s", exc)
        return DemographicsSnapshot()

    params = {
        "lat": point.lat,
        "lon": point.lng,
        "type": "administrative",
        "limit": 1,
        "apiKey": api_key,
    }
    t0 = time.time()
    try:
        resp = requests.get(_PLACES_URL, params=params, timeout=_API_TIMEOUT)
    except requests.RequestException as exc:
        _record_api("places", t0, 0)
        logger.warning("Geoapify places request failed: %s", exc)
        return DemographicsSnapshot()

    _record_api("places", t0, resp.status_code)
    if resp.status_code != 200:
        logger.warning("Geoapify places failed with status: %d", resp.status_code)
        return DemographicsSnapshot()

    try:
        features = resp.json().get("features") or []
    except (ValueError, AttributeError):
        logger.warning("Geoapify places returned an unreadable payload")
        return DemographicsSnapshot()

    if not features or not isinstance(features[0], dict):
        return DemographicsSnapshot()

    props = features[0].get("properties") or {}
    if not isinstance(props, dict):
        return DemographicsSnapshot()
    return DemographicsSnapshot(
        population=_population_label(props),
        location=_location_label(props),
    )


def serialize_for_result(snapshot: Optional[DemographicsSnapshot]) -> Optional[dict]:
    if snapshot is None:
        return None
    return {
        "population": snapshot.population,
        "location": snapshot.location,
        "median_income": snapshot.median_income,
    }
