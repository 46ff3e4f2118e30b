"""
Nearby points of interest around a property.

One HERE browse call, then poi_classifier buckets the items. A provider
outage or a bad coordinate produces an empty collection (all eight keys,
no entries), so the profile always has a POI section.
"""

import os
import logging
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from geo_math import InvalidCoordinates, coerce_coordinate
from here_client import HereClient, UpstreamUnavailable
from poi_classifier import POI_CATEGORIES, Poi, classify_pois, empty_collection

logger = logging.getLogger(__name__)

load_dotenv()

POI_BROWSE_LIMIT = int(os.environ.get("POI_BROWSE_LIMIT", "50"))
POI_SEARCH_RADIUS_M = int(os.environ.get("POI_SEARCH_RADIUS_M", "1000"))


def aggregate_nearby_pois(
    coordinates: Any,
    client: Optional[HereClient] = None,
    limit: Optional[int] = None,
    radius_m: Optional[int] = None,
) -> Dict[str, List[Poi]]:
    """Classified nearby POIs; empty collection on any failure."""
    try:
        center = coerce_coordinate(coordinates)
    except InvalidCoordinates as exc:
        logger.warning("POI lookup skipped: %s", exc)
        return empty_collection()

    client = client or HereClient()
    try:
        items = client.browse(
            center,
            limit=limit or POI_BROWSE_LIMIT,
            radius_m=radius_m if radius_m is not None else POI_SEARCH_RADIUS_M,
        )
    except UpstreamUnavailable as exc:
        logger.warning("POI browse failed: %s", exc)
        return empty_collection()

    try:
        collection = classify_pois(items, center)
    except Exception:
        logger.exception("POI classification failed on provider payload")
        return empty_collection()

    logger.info(
        "POIs near %.4f,%.4f: %s",
        center.lat, center.lng,
        ", ".join(f"{cat}={len(collection[cat])}" for cat in POI_CATEGORIES),
    )
    return collection


def poi_counts(collection: Dict[str, List[Poi]]) -> Dict[str, int]:
    return {cat: len(collection.get(cat, [])) for cat in POI_CATEGORIES}
