#!/usr/bin/env python3
"""
Property analysis: geocode an address, then estimate traffic, classify
nearby points of interest and look up area demographics around it.

Usage:
    python property_analyzer.py "123 Main St, Springfield, IL"
    python property_analyzer.py "123 Main St, Springfield, IL" --json --strategy live

Environment:
    HERE_API_KEY       required (geocoding, browse, routing)
    GEOAPIFY_API_KEY   optional (demographics)
    TRAFFIC_STRATEGY   heuristic (default) | live
"""

import os
import sys
import json
import time
import logging
import argparse
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

import demographics
from demographics import DemographicsSnapshot, get_demographics
from geo_math import Coordinate
from here_client import GeocodeResult, HereClient
from nearby_pois import aggregate_nearby_pois, poi_counts
from pl_trace import get_trace, set_current_stage, set_trace
from poi_classifier import POI_CATEGORIES, Poi, empty_collection, serialize_collection
from traffic_config import TRAFFIC_MODEL
from traffic_estimator import fallback_traffic_report, estimate_traffic
from traffic_report import TrafficReport, serialize_for_result

load_dotenv()

logger = logging.getLogger(__name__)


@dataclass
class PropertyProfile:
    """Everything known about one analysed address."""
    address: str
    formatted_address: str
    coordinates: Coordinate
    traffic: TrafficReport
    pois: Dict[str, List[Poi]] = field(default_factory=empty_collection)
    demographics: DemographicsSnapshot = field(default_factory=DemographicsSnapshot)
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    analyzed_at: str = field(default_factory=lambda: datetime.now().isoformat(timespec="seconds"))
    elapsed_ms: int = 0
    model_version: str = TRAFFIC_MODEL.version


def _timed_stage(stage_name, fn, *args, **kwargs):
    """Run *fn* with timing.  Logs duration and re-raises on failure."""
    trace = get_trace()
    set_current_stage(stage_name)
    t0 = time.time()
    try:
        result = fn(*args, **kwargs)
        t1 = time.time()
        if trace:
            trace.record_stage(stage_name, t0, t1)
        else:
            logger.info("  [stage] %s OK (%.1fs)", stage_name, t1 - t0)
        return result
    except Exception as exc:
        t1 = time.time()
        if trace:
            trace.record_stage(
                stage_name, t0, t1,
                error_class=type(exc).__name__,
                error_message=str(exc)[:200],
            )
        else:
            logger.warning("  [stage] %s FAILED (%.1fs)", stage_name, t1 - t0, exc_info=True)
        raise
    finally:
        set_current_stage("")


def analyze_property(
    address: str,
    api_key: Optional[str] = None,
    strategy: Optional[str] = None,
) -> PropertyProfile:
    """Geocode *address* and build its profile.

    Geocoding is the only stage whose failure propagates (GeocodeNotFound
    or UpstreamUnavailable). Traffic, POIs and demographics then run
    concurrently and each degrades on its own, so a profile always has
    all three sections.
    """
    started = time.time()
    here = HereClient(api_key)

    geo: GeocodeResult = _timed_stage("geocode", here.geocode, address)
    point = geo.coordinates

    parent_trace = get_trace()

    def _threaded_stage(stage_name, fn, *args, **kwargs):
        # requests.Session is not thread-safe: swap the shared client
        # for a per-thread one
        set_trace(parent_trace)
        thread_client = HereClient(api_key)
        new_args = tuple(thread_client if a is here else a for a in args)
        return _timed_stage(stage_name, fn, *new_args, **kwargs)

    futures: Dict[str, Any] = {}
    with ThreadPoolExecutor(max_workers=3) as pool:
        futures["traffic"] = pool.submit(
            _threaded_stage, "traffic", estimate_traffic, point,
            strategy=strategy, api_key=api_key,
        )
        futures["pois"] = pool.submit(
            _threaded_stage, "pois", aggregate_nearby_pois, point, here,
        )
        futures["demographics"] = pool.submit(
            _threaded_stage, "demographics", get_demographics, point,
        )

        results: Dict[str, Any] = {}
        for stage_name, future in futures.items():
            try:
                results[stage_name] = future.result()
            except Exception:
                # Stage functions do not raise; _timed_stage has logged it
                results[stage_name] = None

    traffic = results.get("traffic") or fallback_traffic_report(point, "Traffic stage failed")
    profile = PropertyProfile(
        address=address,
        formatted_address=geo.formatted_address,
        coordinates=point,
        traffic=traffic,
        pois=results.get("pois") or empty_collection(),
        demographics=results.get("demographics") or DemographicsSnapshot(),
        city=geo.city,
        state=geo.state,
        postal_code=geo.postal_code,
    )
    profile.elapsed_ms = int((time.time() - started) * 1000)

    logger.info(
        "Analyzed %r in %dms: %s vehicles/day (%s), %d POIs",
        geo.formatted_address, profile.elapsed_ms, f"{traffic.vehicle_count:,}",
        traffic.source, sum(poi_counts(profile.pois).values()),
    )
    return profile


def profile_to_dict(profile: PropertyProfile) -> Dict[str, Any]:
    """JSON-ready profile for the API and --json output."""
    return {
        "address": profile.address,
        "formatted_address": profile.formatted_address,
        "coordinates": profile.coordinates.to_dict(),
        "city": profile.city,
        "state": profile.state,
        "postal_code": profile.postal_code,
        "traffic": serialize_for_result(profile.traffic),
        "pois": serialize_collection(profile.pois),
        "poi_counts": poi_counts(profile.pois),
        "demographics": demographics.serialize_for_result(profile.demographics),
        "analyzed_at": profile.analyzed_at,
        "elapsed_ms": profile.elapsed_ms,
        "model_version": profile.model_version,
    }


def format_profile(profile: PropertyProfile, max_per_category: int = 3) -> str:
    """Format a profile as a readable report"""
    lines = []
    t = profile.traffic

    lines.append("=" * 70)
    lines.append(f"PROPERTY: {profile.formatted_address}")
    lines.append(f"COORDINATES: {profile.coordinates.lat:.6f}, {profile.coordinates.lng:.6f}")
    lines.append("=" * 70)

    lines.append("\nTRAFFIC:")
    lines.append(f"  Average: {t.average}")
    lines.append(f"  Current: {t.current}")
    lines.append(f"  Peak hours: {t.peak_hours}")
    lines.append(f"  Foot traffic: {t.foot_traffic}")
    lines.append(f"  Area: {t.details.area_type}")
    if t.details.nearest_city:
        lines.append(f"  Nearest city: {t.details.nearest_city} ({t.details.distance_to_city:.1f} km)")
    lines.append(f"  Source: {t.source} (confidence {t.confidence})")
    if t.error:
        lines.append(f"  Note: {t.error}")

    lines.append("\nNEARBY:")
    for cat in POI_CATEGORIES:
        pois = profile.pois.get(cat, [])
        lines.append(f"  {cat.title()} ({len(pois)})")
        for poi in pois[:max_per_category]:
            lines.append(f"    - {poi.name}: {poi.distance}")

    d = profile.demographics
    lines.append("\nDEMOGRAPHICS:")
    lines.append(f"  Location: {d.location or 'Unknown'}")
    lines.append(f"  Population: {d.population}")
    lines.append(f"  Median income: {d.median_income}")

    return "\n".join(lines)


# =============================================================================
# CLI
# =============================================================================

def main():
    parser = argparse.ArgumentParser(
        description="Analyze traffic, nearby places and demographics for an address"
    )
    parser.add_argument(
        "address",
        nargs="?",
        help="Property address to analyze"
    )
    parser.add_argument(
        "--strategy",
        choices=["heuristic", "live"],
        help="Traffic strategy (default: TRAFFIC_STRATEGY env var or heuristic)"
    )
    parser.add_argument(
        "--api-key",
        default=os.environ.get("HERE_API_KEY"),
        help="HERE API key (or set HERE_API_KEY env var)"
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output as JSON instead of formatted text"
    )

    args = parser.parse_args()

    if not args.address:
        parser.print_help()
        sys.exit(1)

    if not args.api_key:
        print("Error: HERE API key required. Set HERE_API_KEY or use --api-key")
        sys.exit(1)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    try:
        profile = analyze_property(args.address, args.api_key, strategy=args.strategy)
    except Exception as exc:
        print(f"Error: could not analyze {args.address!r}: {exc}")
        sys.exit(1)

    if args.json:
        print(json.dumps(profile_to_dict(profile), indent=2))
    else:
        print(format_profile(profile))


if __name__ == "__main__":
    main()
