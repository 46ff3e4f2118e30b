"""
Live-routing traffic estimate.

Places probe points about 1 km around the property (N/S/E/W plus the
NE/SW diagonal), asks the routing provider for car routes across the
property between opposing probes, and turns the average traffic delay
and route geometry into a daily vehicle estimate.

Probes run concurrently and fail independently: the estimate proceeds
with whatever subset succeeds. Only when every probe fails does
estimate_live_traffic raise RoutingUnavailable, which estimate_traffic
turns into the heuristic estimate.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from geo_math import Coordinate, offset_point
from here_client import HereClient, RouteSection, RoutingUnavailable
from pl_trace import get_trace, set_current_stage, set_trace, current_stage
from traffic_config import (
    TRAFFIC_MODEL,
    area_label,
    hour_multiplier,
    road_bracket,
)
from traffic_report import SOURCE_LIVE, TrafficDetails, TrafficReport
from urban_centers import nearest_urban_center

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RouteTraffic:
    """Traffic summary for one probe route."""
    total_distance: float       # metres
    base_time: float            # free-flow seconds
    traffic_time: float         # seconds with current traffic
    delay_s: float
    condition: str              # Normal | Moderate | Heavy
    sections: Tuple[RouteSection, ...]
    delay_estimated: bool = False


def probe_pairs(point: Coordinate) -> List[Tuple[str, Coordinate, Coordinate]]:
    """(label, origin, destination) for each opposing probe pair."""
    live = TRAFFIC_MODEL.live
    d = live.probe_distance_km
    diag = d * live.diagonal_scale

    north = offset_point(point, north_km=d)
    south = offset_point(point, north_km=-d)
    east = offset_point(point, east_km=d)
    west = offset_point(point, east_km=-d)
    north_east = offset_point(point, north_km=diag, east_km=diag)
    south_west = offset_point(point, north_km=-diag, east_km=-diag)

    return [
        ("N-S", north, south),
        ("E-W", east, west),
        ("NE-SW", north_east, south_west),
    ]


def is_urban_section(section: RouteSection) -> bool:
    live = TRAFFIC_MODEL.live
    return section.length_m < live.urban_section_max_m and section.duration_s > live.urban_section_min_s


def is_highway_section(section: RouteSection) -> bool:
    live = TRAFFIC_MODEL.live
    if section.mode != "car" or section.length_m <= live.highway_section_min_m:
        return False
    return section.duration_s / section.length_m < live.highway_max_s_per_m


def estimated_delay(sections: Tuple[RouteSection, ...], base_time: float, hour: int) -> int:
    """Synthesize a delay from road type and time of day.

    Used when the provider reports no positive delay for a route.
    """
    live = TRAFFIC_MODEL.live
    urban = any(is_urban_section(s) for s in sections)
    highway = any(is_highway_section(s) for s in sections)

    if urban and highway:
        factor = live.delay_factor_urban_highway
    elif urban:
        factor = live.delay_factor_urban
    elif highway:
        factor = live.delay_factor_highway
    else:
        factor = live.delay_factor_rural

    multiplier = hour_multiplier(live.delay_time_profile, hour, is_weekend=False)
    return round(base_time * factor * multiplier)


def traffic_condition(delay_s: float) -> str:
    live = TRAFFIC_MODEL.live
    if delay_s <= live.condition_normal_max_s:
        return "Normal"
    if delay_s <= live.condition_moderate_max_s:
        return "Moderate"
    return "Heavy"


def route_with_traffic(
    client: HereClient,
    origin: Coordinate,
    destination: Coordinate,
    hour: int,
) -> RouteTraffic:
    sections = tuple(client.route(origin, destination))

    total_distance = sum(s.length_m for s in sections)
    base_time = sum(s.base_duration_s for s in sections)
    traffic_time = sum(s.duration_s for s in sections)

    delay = traffic_time - base_time
    estimated = False
    if delay <= 0:
        delay = estimated_delay(sections, base_time, hour)
        estimated = True

    return RouteTraffic(
        total_distance=total_distance,
        base_time=base_time,
        traffic_time=traffic_time,
        delay_s=delay,
        condition=traffic_condition(delay),
        sections=sections,
        delay_estimated=estimated,
    )


def classify_road(routes: List[RouteTraffic], avg_distance: float) -> str:
    live = TRAFFIC_MODEL.live
    all_sections = [s for r in routes for s in r.sections]
    if any(is_highway_section(s) for s in all_sections):
        return "highway"
    if any(live.arterial_min_m < s.length_m <= live.urban_section_max_m for s in all_sections):
        return "arterial"
    if avg_distance > live.collector_avg_min_m:
        return "collector"
    return "local"


def pedestrian_score(vehicle_count: int, highway: bool, weekend: bool) -> float:
    live = TRAFFIC_MODEL.live
    score = next(b.score for b in live.pedestrian_bands if vehicle_count > b.above)

    if highway:
        score = min(score, live.pedestrian_highway_cap)

    if weekend:
        # Mid-volume roads are likely commercial strips that fill up on weekends
        if 8000 < vehicle_count < 25000:
            score += live.weekend_commercial_bonus
        else:
            score -= live.weekend_other_penalty
    return score


def pedestrian_label(score: float) -> str:
    for tier in TRAFFIC_MODEL.live.pedestrian_labels:
        if score > tier.minimum:
            return tier.label
    return "Very Low (estimated <100 pedestrians/day)"


def _run_probes(
    point: Coordinate,
    client_factory: Callable[[], HereClient],
    hour: int,
) -> Tuple[List[RouteTraffic], int]:
    pairs = probe_pairs(point)
    parent_trace = get_trace()
    parent_stage = current_stage()

    def _probe(origin: Coordinate, destination: Coordinate) -> RouteTraffic:
        set_trace(parent_trace)
        set_current_stage(parent_stage)
        return route_with_traffic(client_factory(), origin, destination, hour)

    successes: List[RouteTraffic] = []
    with ThreadPoolExecutor(max_workers=len(pairs)) as pool:
        futures = [(label, pool.submit(_probe, o, d)) for label, o, d in pairs]
        for label, future in futures:
            try:
                successes.append(future.result())
                if parent_trace:
                    parent_trace.record_probe(label, ok=True)
            except Exception as exc:
                logger.warning("Routing probe %s failed: %s", label, exc)
                if parent_trace:
                    parent_trace.record_probe(label, ok=False, error=str(exc)[:200])

    return successes, len(pairs)


def estimate_live_traffic(
    point: Coordinate,
    client: Optional[HereClient] = None,
    now: Optional[datetime] = None,
    api_key: Optional[str] = None,
) -> TrafficReport:
    """Traffic report from live route probes.

    Raises RoutingUnavailable when no probe succeeds. When *client* is
    given it is shared by every probe (tests); otherwise each probe
    thread gets its own HereClient.
    """
    live = TRAFFIC_MODEL.live
    now = now or datetime.now()
    weekend = now.weekday() >= 5

    if client is not None:
        client_factory = lambda: client  # noqa: E731
    else:
        client_factory = lambda: HereClient(api_key)  # noqa: E731

    routes, attempted = _run_probes(point, client_factory, now.hour)
    if not routes:
        raise RoutingUnavailable("Could not calculate traffic for any routes")
    if len(routes) < attempted:
        logger.info("Live traffic using %d of %d routing probes", len(routes), attempted)

    avg_delay = sum(r.delay_s for r in routes) / len(routes)
    avg_distance = sum(r.total_distance for r in routes) / len(routes)

    road_type = classify_road(routes, avg_distance)
    bracket = road_bracket(road_type)
    base_estimate = bracket.weekend if weekend else bracket.weekday

    hourly_multiplier = hour_multiplier(live.hourly_profile, now.hour, weekend)
    delay_multiplier = 1 + min(avg_delay / live.delay_divisor_s, live.delay_multiplier_cap)

    daily = round(base_estimate * delay_multiplier)
    hourly = round(daily / 24 * hourly_multiplier)

    logger.debug(
        "Live traffic: road=%s base=%d delay=%.0fs mult=%.2f daily=%d hourly=%d",
        road_type, base_estimate, avg_delay, delay_multiplier, daily, hourly,
    )

    center, shortest = nearest_urban_center(point)
    h = TRAFFIC_MODEL.heuristic
    peaks = TRAFFIC_MODEL.peak_hours

    return TrafficReport(
        vehicle_count=daily,
        peak_hours=peaks.weekend if weekend else peaks.weekday,
        foot_traffic=pedestrian_label(pedestrian_score(daily, road_type == "highway", weekend)),
        details=TrafficDetails(
            avg_delay=max(0.0, float(avg_delay)),
            current_hourly_volume=hourly,
            area_type=area_label(h.area_types, shortest, h.beyond_area_type),
            nearest_city=center.name if center else None,
            distance_to_city=shortest if center else None,
            avg_distance=avg_distance,
            road_type=road_type,
            probes_attempted=attempted,
            probes_succeeded=len(routes),
        ),
        source=SOURCE_LIVE,
        confidence="high" if len(routes) == attempted else "medium",
        model_version=TRAFFIC_MODEL.version,
    )
