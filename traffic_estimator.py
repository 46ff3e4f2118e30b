"""
Traffic estimation for a property coordinate.

Primary strategy is a proximity-to-urban-center heuristic: the nearest
known metro's density and the distance to it set a base daily vehicle
count, which is then shaped by day of week, hour of day and a small
coordinate-derived variation so neighbouring addresses differ while the
same address always gets the same answer.

The live-routing variant (routing_traffic.py) is available as an opt-in
strategy via TRAFFIC_STRATEGY=live. Whatever the strategy, estimate_traffic
never raises: live failures degrade to the heuristic, heuristic failures
degrade to a digit-derived fallback.
"""

import os
import logging
import math
from dataclasses import replace
from datetime import datetime
from typing import Any, Optional

from dotenv import load_dotenv

from geo_math import Coordinate, InvalidCoordinates, coerce_coordinate
from here_client import HereClient
from traffic_config import (
    TRAFFIC_MODEL,
    area_label,
    hour_multiplier,
    step_value,
    tier_label,
)
from traffic_report import (
    SOURCE_FALLBACK,
    SOURCE_HEURISTIC,
    TrafficDetails,
    TrafficReport,
)
from urban_centers import nearest_urban_center

logger = logging.getLogger(__name__)

load_dotenv()

STRATEGY_HEURISTIC = "heuristic"
STRATEGY_LIVE = "live"
STRATEGIES = (STRATEGY_HEURISTIC, STRATEGY_LIVE)

AREA_UNKNOWN = "Unknown"


def configured_strategy() -> str:
    """TRAFFIC_STRATEGY from the environment; unknown values mean heuristic."""
    strategy = os.environ.get("TRAFFIC_STRATEGY", STRATEGY_HEURISTIC).strip().lower()
    if strategy not in STRATEGIES:
        logger.warning("Unknown TRAFFIC_STRATEGY=%r, using %s", strategy, STRATEGY_HEURISTIC)
        return STRATEGY_HEURISTIC
    return strategy


# =============================================================================
# Heuristic model pieces
# =============================================================================

def is_weekend(now: datetime) -> bool:
    return now.weekday() >= 5


def distance_factor(distance_to_city_km: float) -> float:
    h = TRAFFIC_MODEL.heuristic
    return step_value(h.distance_factors, distance_to_city_km, h.beyond_factor)


def area_type(distance_to_city_km: float) -> str:
    h = TRAFFIC_MODEL.heuristic
    return area_label(h.area_types, distance_to_city_km, h.beyond_area_type)


def day_factor(weekend: bool) -> float:
    h = TRAFFIC_MODEL.heuristic
    return h.weekend_factor if weekend else h.weekday_factor


def time_factor(hour: int, weekend: bool) -> float:
    return hour_multiplier(TRAFFIC_MODEL.heuristic.time_profile, hour, weekend)


def variation_factor(point: Coordinate) -> float:
    """Stable pseudo-random multiplier in [variation_min, variation_max].

    Averages the fractional degrees of |lat| and |lng|, so it is a pure
    function of the coordinate.
    """
    h = TRAFFIC_MODEL.heuristic
    lat_frac = math.modf(abs(point.lat))[0]
    lng_frac = math.modf(abs(point.lng))[0]
    blend = (lat_frac + lng_frac) / 2
    return h.variation_min + (h.variation_max - h.variation_min) * blend


def foot_traffic_label(daily_vehicles: int, distance_to_city_km: float) -> str:
    """Tier label with the pedestrian estimate, e.g. "High (estimated 2,400 pedestrians/day)"."""
    h = TRAFFIC_MODEL.heuristic
    share = step_value(h.foot_shares, distance_to_city_km, h.beyond_foot_share)
    pedestrians = round(daily_vehicles * share)
    label = tier_label(h.foot_tiers, pedestrians) or "Very Low"
    noun = "pedestrian" if pedestrians == 1 else "pedestrians"
    return f"{label} (estimated {pedestrians:,} {noun}/day)"


def peak_hours(weekend: bool) -> str:
    p = TRAFFIC_MODEL.peak_hours
    return p.weekend if weekend else p.weekday


def _heuristic_report(point: Coordinate, now: datetime) -> TrafficReport:
    h = TRAFFIC_MODEL.heuristic
    center, shortest = nearest_urban_center(point)
    if center is None:
        raise LookupError("Urban center table is empty")

    weekend = is_weekend(now)
    base_traffic = center.density * h.vehicles_per_density * distance_factor(shortest)
    variation = variation_factor(point)

    daily = round(base_traffic * day_factor(weekend) * variation)
    hourly = round(daily / 24 * time_factor(now.hour, weekend) * variation)

    logger.debug(
        "Heuristic traffic: center=%s dist=%.1fkm density=%d base=%.0f daily=%d hourly=%d",
        center.name, shortest, center.density, base_traffic, daily, hourly,
    )

    return TrafficReport(
        vehicle_count=daily,
        peak_hours=peak_hours(weekend),
        foot_traffic=foot_traffic_label(daily, shortest),
        details=TrafficDetails(
            avg_delay=0.0,
            current_hourly_volume=hourly,
            area_type=area_type(shortest),
            nearest_city=center.name,
            distance_to_city=shortest,
        ),
        source=SOURCE_HEURISTIC,
        confidence="medium",
        model_version=TRAFFIC_MODEL.version,
    )


# =============================================================================
# Fallback
# =============================================================================

def _digit_sum(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        return None
    return sum(int(ch) for ch in f"{abs(value):.4f}" if ch.isdigit())


def fallback_traffic_report(coordinates: Any, error: str) -> TrafficReport:
    """Estimate from the coordinate's digits alone, no table lookup.

    Used when the coordinate is unusable or the model itself failed.
    """
    f = TRAFFIC_MODEL.fallback
    lat = lng = None
    if isinstance(coordinates, Coordinate):
        lat, lng = coordinates.lat, coordinates.lng
    elif isinstance(coordinates, dict):
        lat, lng = coordinates.get("lat"), coordinates.get("lng")
    elif isinstance(coordinates, (tuple, list)) and len(coordinates) == 2:
        lat, lng = coordinates

    lat_digits, lng_digits = _digit_sum(lat), _digit_sum(lng)
    if lat_digits is None or lng_digits is None:
        vehicles = f.default_vehicle_count
    else:
        vehicles = min(f.cap, f.base + ((lat_digits + lng_digits) * f.digit_multiplier) % f.spread)

    logger.warning("Using fallback traffic estimate (%d vehicles/day): %s", vehicles, error)

    return TrafficReport(
        vehicle_count=vehicles,
        peak_hours=TRAFFIC_MODEL.peak_hours.weekday,
        foot_traffic=f.foot_traffic,
        details=TrafficDetails(
            avg_delay=0.0,
            current_hourly_volume=round(vehicles / 24),
            area_type=AREA_UNKNOWN,
        ),
        source=SOURCE_FALLBACK,
        confidence="low",
        is_fallback=True,
        error=error,
        model_version=TRAFFIC_MODEL.version,
    )


# =============================================================================
# PUBLIC API
# =============================================================================

def estimate_heuristic_traffic(coordinates: Any, now: Optional[datetime] = None) -> TrafficReport:
    """Heuristic estimate; never raises (falls back on any failure)."""
    try:
        point = coerce_coordinate(coordinates)
        return _heuristic_report(point, now or datetime.now())
    except InvalidCoordinates as exc:
        return fallback_traffic_report(coordinates, str(exc))
    except Exception as exc:
        logger.exception("Heuristic traffic estimate failed")
        return fallback_traffic_report(coordinates, str(exc) or type(exc).__name__)


def estimate_traffic(
    coordinates: Any,
    strategy: Optional[str] = None,
    client: Optional[HereClient] = None,
    now: Optional[datetime] = None,
    api_key: Optional[str] = None,
) -> TrafficReport:
    """Traffic report for *coordinates* using the configured strategy.

    Always returns a well-formed TrafficReport. With the live strategy,
    a routing failure (including every probe failing) yields the
    heuristic report with the routing error kept in `error`.
    """
    strategy = (strategy or configured_strategy()).lower()
    if strategy != STRATEGY_LIVE:
        return estimate_heuristic_traffic(coordinates, now)

    try:
        point = coerce_coordinate(coordinates)
    except InvalidCoordinates as exc:
        return fallback_traffic_report(coordinates, str(exc))

    # Imported here so the heuristic path has no routing dependency
    from routing_traffic import estimate_live_traffic

    try:
        return estimate_live_traffic(point, client=client, now=now, api_key=api_key)
    except Exception as exc:
        logger.warning("Live routing estimate failed, using heuristic model: %s", exc)
        report = estimate_heuristic_traffic(point, now)
        if report.is_fallback:
            return report
        return replace(report, error=f"Live routing unavailable: {exc}")
