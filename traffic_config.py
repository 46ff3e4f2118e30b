"""
Traffic model configuration for ParcelLens.

Owns every numeric constant that affects a traffic estimate: distance
steps, time-of-day windows, road-type brackets, foot-traffic tiers and
the fallback formula. Estimation code in traffic_estimator.py and
routing_traffic.py reads these through the TRAFFIC_MODEL singleton.

Frozen dataclasses provide type checking and IDE support without
the indirection of YAML/JSON config files.
"""

from dataclasses import dataclass
from typing import Optional, Tuple


# =============================================================================
# Dataclasses
# =============================================================================

@dataclass(frozen=True)
class DistanceStep:
    """One step of a distance-keyed step function: applies when d < max_km."""
    max_km: float
    value: float


@dataclass(frozen=True)
class AreaStep:
    max_km: float
    label: str


@dataclass(frozen=True)
class HourWindow:
    """Inclusive hour range [start, end] on a 24h clock and its multiplier."""
    start: int
    end: int
    multiplier: float

    def contains(self, hour: int) -> bool:
        return self.start <= hour <= self.end


@dataclass(frozen=True)
class TimeProfile:
    """Hour windows evaluated first-match-wins, separately for weekends."""
    weekday: Tuple[HourWindow, ...]
    weekend: Tuple[HourWindow, ...]
    weekday_default: float = 1.0
    weekend_default: float = 1.0


@dataclass(frozen=True)
class Tier:
    """Lower bound (inclusive) for a qualitative label."""
    minimum: float
    label: str


@dataclass(frozen=True)
class CountBand:
    """Score applied when a vehicle count is strictly above `above`."""
    above: int
    score: float


@dataclass(frozen=True)
class RoadBracket:
    """Base daily vehicle counts for a road class."""
    road_type: str
    weekday: int
    weekend: int


@dataclass(frozen=True)
class PeakHours:
    weekday: str
    weekend: str


@dataclass(frozen=True)
class HeuristicModel:
    """Proximity-to-urban-center model (the default strategy)."""
    vehicles_per_density: int
    distance_factors: Tuple[DistanceStep, ...]
    beyond_factor: float
    area_types: Tuple[AreaStep, ...]
    beyond_area_type: str
    weekday_factor: float
    weekend_factor: float
    time_profile: TimeProfile
    variation_min: float
    variation_max: float
    foot_shares: Tuple[DistanceStep, ...]
    beyond_foot_share: float
    foot_tiers: Tuple[Tier, ...]


@dataclass(frozen=True)
class LiveRoutingModel:
    """Constants for the live-routing variant."""
    probe_distance_km: float
    diagonal_scale: float
    # Section heuristics used when the provider reports no delay
    urban_section_max_m: float
    urban_section_min_s: float
    highway_section_min_m: float
    highway_max_s_per_m: float
    arterial_min_m: float
    collector_avg_min_m: float
    delay_factor_urban_highway: float
    delay_factor_urban: float
    delay_factor_highway: float
    delay_factor_rural: float
    delay_time_profile: TimeProfile
    condition_normal_max_s: float
    condition_moderate_max_s: float
    brackets: Tuple[RoadBracket, ...]
    hourly_profile: TimeProfile
    delay_divisor_s: float
    delay_multiplier_cap: float
    pedestrian_bands: Tuple[CountBand, ...]
    pedestrian_highway_cap: float
    weekend_commercial_bonus: float
    weekend_other_penalty: float
    pedestrian_labels: Tuple[Tier, ...]


@dataclass(frozen=True)
class FallbackModel:
    """Digit-derived estimate used when no model can run."""
    base: int
    spread: int
    digit_multiplier: int
    cap: int
    default_vehicle_count: int
    foot_traffic: str


@dataclass(frozen=True)
class TrafficModel:
    """Top-level container. Bump `version` on any change to outputs."""
    version: str
    heuristic: HeuristicModel
    live: LiveRoutingModel
    fallback: FallbackModel
    peak_hours: PeakHours


# =============================================================================
# Pure lookup functions
# =============================================================================

def step_value(steps: Tuple[DistanceStep, ...], distance_km: float, beyond: float) -> float:
    """Value of the first step whose bound exceeds *distance_km*."""
    for step in steps:
        if distance_km < step.max_km:
            return step.value
    return beyond


def area_label(steps: Tuple[AreaStep, ...], distance_km: float, beyond: str) -> str:
    for step in steps:
        if distance_km < step.max_km:
            return step.label
    return beyond


def hour_multiplier(profile: TimeProfile, hour: int, is_weekend: bool) -> float:
    """First matching window for the day type, else that day type's default."""
    windows = profile.weekend if is_weekend else profile.weekday
    for window in windows:
        if window.contains(hour):
            return window.multiplier
    return profile.weekend_default if is_weekend else profile.weekday_default


def tier_label(tiers: Tuple[Tier, ...], value: float) -> Optional[str]:
    """Label of the first tier (highest first) whose minimum <= value."""
    for tier in tiers:
        if value >= tier.minimum:
            return tier.label
    return None


# =============================================================================
# TRAFFIC_MODEL: current production values
# =============================================================================

# Late night wraps midnight, so it is expressed as two windows.
_LATE_NIGHT = (HourWindow(22, 23, 0.3), HourWindow(0, 5, 0.3))

_HEURISTIC_TIME = TimeProfile(
    weekday=(
        HourWindow(7, 9, 1.8),     # morning rush
        HourWindow(16, 18, 1.9),   # evening rush
        HourWindow(10, 15, 1.2),   # midday
    ) + _LATE_NIGHT,
    weekend=(
        HourWindow(10, 15, 1.2),   # weekend shopping hours
    ) + _LATE_NIGHT,
    weekday_default=1.0,
    weekend_default=0.8,
)

_DISTANCE_FACTORS = (
    DistanceStep(5, 2.0),
    DistanceStep(15, 1.5),
    DistanceStep(30, 1.2),
    DistanceStep(60, 0.9),
    DistanceStep(100, 0.7),
)

_AREA_TYPES = (
    AreaStep(5, "Downtown"),
    AreaStep(15, "Urban"),
    AreaStep(30, "Suburban"),
    AreaStep(60, "Exurban"),
)

# Share of daily vehicle count that walks past the property
_FOOT_SHARES = (
    DistanceStep(5, 0.20),
    DistanceStep(15, 0.10),
    DistanceStep(30, 0.05),
    DistanceStep(60, 0.02),
)

_FOOT_TIERS = (
    Tier(5000, "Very High"),
    Tier(2000, "High"),
    Tier(1000, "Moderate to High"),
    Tier(500, "Moderate"),
    Tier(200, "Low to Moderate"),
    Tier(50, "Low"),
    Tier(0, "Very Low"),
)

_DELAY_TIME = TimeProfile(
    weekday=(
        HourWindow(7, 9, 1.5),
        HourWindow(16, 19, 1.8),
        HourWindow(22, 23, 0.5),
        HourWindow(0, 5, 0.5),
    ),
    weekend=(
        HourWindow(7, 9, 1.5),
        HourWindow(16, 19, 1.8),
        HourWindow(22, 23, 0.5),
        HourWindow(0, 5, 0.5),
    ),
)

_LIVE_HOURLY = TimeProfile(
    weekday=(
        HourWindow(7, 9, 1.4),
        HourWindow(16, 19, 1.5),
    ) + _LATE_NIGHT + (
        HourWindow(10, 15, 0.8),
    ),
    weekend=(
        HourWindow(10, 16, 0.9),
    ),
    weekday_default=1.0,
    weekend_default=0.6,
)

# Higher vehicle counts mean fewer pedestrians (highways vs. main streets)
_PEDESTRIAN_BANDS = (
    CountBand(40000, 0.5),
    CountBand(25000, 1.0),
    CountBand(15000, 1.5),
    CountBand(8000, 2.0),
    CountBand(-1, 2.5),
)

# Minimum is exclusive here: a score must exceed it (see pedestrian_label)
_PEDESTRIAN_LABELS = (
    Tier(3.0, "Very High (estimated 2,000+ pedestrians/day)"),
    Tier(2.5, "High (estimated 1,000-2,000 pedestrians/day)"),
    Tier(2.0, "Moderate to High (estimated 800-1,000 pedestrians/day)"),
    Tier(1.5, "Moderate (estimated 500-800 pedestrians/day)"),
    Tier(1.0, "Low to Moderate (estimated 300-500 pedestrians/day)"),
    Tier(0.5, "Low (estimated 100-300 pedestrians/day)"),
)


TRAFFIC_MODEL = TrafficModel(
    version="2.1.0",

    heuristic=HeuristicModel(
        vehicles_per_density=4000,
        distance_factors=_DISTANCE_FACTORS,
        beyond_factor=0.5,
        area_types=_AREA_TYPES,
        beyond_area_type="Rural",
        weekday_factor=1.0,
        weekend_factor=0.7,
        time_profile=_HEURISTIC_TIME,
        variation_min=0.9,
        variation_max=1.1,
        foot_shares=_FOOT_SHARES,
        beyond_foot_share=0.01,
        foot_tiers=_FOOT_TIERS,
    ),

    live=LiveRoutingModel(
        probe_distance_km=1.0,
        diagonal_scale=0.7,
        urban_section_max_m=5000,
        urban_section_min_s=300,
        highway_section_min_m=5000,
        highway_max_s_per_m=0.1,
        arterial_min_m=2000,
        collector_avg_min_m=2000,
        delay_factor_urban_highway=0.3,
        delay_factor_urban=0.4,
        delay_factor_highway=0.15,
        delay_factor_rural=0.1,
        delay_time_profile=_DELAY_TIME,
        condition_normal_max_s=60,
        condition_moderate_max_s=300,
        brackets=(
            RoadBracket("highway", weekday=45000, weekend=30000),
            RoadBracket("arterial", weekday=25000, weekend=15000),
            RoadBracket("collector", weekday=15000, weekend=8000),
            RoadBracket("local", weekday=6000, weekend=3000),
        ),
        hourly_profile=_LIVE_HOURLY,
        delay_divisor_s=600,
        delay_multiplier_cap=0.5,
        pedestrian_bands=_PEDESTRIAN_BANDS,
        pedestrian_highway_cap=0.8,
        weekend_commercial_bonus=0.5,
        weekend_other_penalty=0.2,
        pedestrian_labels=_PEDESTRIAN_LABELS,
    ),

    fallback=FallbackModel(
        base=5000,
        spread=10000,
        digit_multiplier=397,
        cap=15000,
        default_vehicle_count=12000,
        foot_traffic="Moderate (estimated 500-800 pedestrians/day)",
    ),

    peak_hours=PeakHours(
        weekday="7-9 AM, 4-6 PM",
        weekend="11 AM-1 PM, 2-4 PM",
    ),
)


def road_bracket(road_type: str) -> RoadBracket:
    for bracket in TRAFFIC_MODEL.live.brackets:
        if bracket.road_type == road_type:
            return bracket
    raise ValueError(f"Unknown road type: {road_type!r}")
