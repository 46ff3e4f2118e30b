"""
Traffic report types shared by every traffic strategy.

A TrafficReport is built once per analysis and never mutated. Every
strategy (heuristic, live routing, digit fallback) produces the same
shape so the presentation layer never branches on how it was computed;
`source`, `confidence`, `is_fallback` and `error` say how much to trust it.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

SOURCE_HEURISTIC = "heuristic"
SOURCE_LIVE = "live_routing"
SOURCE_FALLBACK = "fallback"

AREA_TYPES = ("Downtown", "Urban", "Suburban", "Exurban", "Rural")


@dataclass(frozen=True)
class TrafficDetails:
    avg_delay: float                      # seconds, >= 0
    current_hourly_volume: int
    area_type: str                        # one of AREA_TYPES
    nearest_city: Optional[str] = None
    distance_to_city: Optional[float] = None   # km
    avg_distance: Optional[float] = None       # metres, live routing only
    road_type: Optional[str] = None             # live routing only
    probes_attempted: int = 0
    probes_succeeded: int = 0


@dataclass(frozen=True)
class TrafficReport:
    vehicle_count: int                    # estimated vehicles/day
    peak_hours: str
    foot_traffic: str
    details: TrafficDetails
    source: str = SOURCE_HEURISTIC
    confidence: str = "medium"            # high | medium | low
    is_fallback: bool = False
    error: Optional[str] = None
    model_version: str = ""

    @property
    def average(self) -> str:
        return f"{self.vehicle_count:,} vehicles/day"

    @property
    def current(self) -> str:
        if self.is_fallback:
            return "Data unavailable"
        return f"{self.details.current_hourly_volume:,} vehicles/hour"


def serialize_for_result(report: Optional[TrafficReport]) -> Optional[Dict[str, Any]]:
    """Plain dict for JSON responses; None passes through."""
    if report is None:
        return None
    d = report.details
    details: Dict[str, Any] = {
        "avg_delay": d.avg_delay,
        "current_hourly_volume": d.current_hourly_volume,
        "area_type": d.area_type,
        "nearest_city": d.nearest_city,
        "distance_to_city": round(d.distance_to_city, 1) if d.distance_to_city is not None else None,
    }
    if report.source == SOURCE_LIVE:
        details.update({
            "avg_distance": d.avg_distance,
            "road_type": d.road_type,
            "probes_attempted": d.probes_attempted,
            "probes_succeeded": d.probes_succeeded,
        })
    return {
        "average": report.average,
        "current": report.current,
        "vehicle_count": report.vehicle_count,
        "peak_hours": report.peak_hours,
        "foot_traffic": report.foot_traffic,
        "traffic_details": details,
        "source": report.source,
        "confidence": report.confidence,
        "is_fallback": report.is_fallback,
        "error": report.error,
        "model_version": report.model_version,
    }
