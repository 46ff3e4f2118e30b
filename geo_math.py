"""
Geographic helpers shared by the traffic and POI pipelines.

Great-circle distance (haversine, mean Earth radius 6371 km) and the
km -> degree conversion used to place routing probes around a property.
"""

import math
from dataclasses import dataclass
from typing import Any, Dict, Tuple, Union

EARTH_RADIUS_KM = 6371.0

# Length of one degree of latitude; longitude degrees shrink by cos(lat).
KM_PER_DEGREE = 111.32


class InvalidCoordinates(ValueError):
    """Raised when a coordinate is missing, non-numeric or out of range."""


@dataclass(frozen=True)
class Coordinate:
    lat: float
    lng: float

    def as_tuple(self) -> Tuple[float, float]:
        return (self.lat, self.lng)

    def to_dict(self) -> Dict[str, float]:
        return {"lat": self.lat, "lng": self.lng}


@dataclass(frozen=True)
class DegreeOffsets:
    """Degree deltas equivalent to a distance at a given latitude."""
    lat_offset: float
    lon_offset: float


CoordinateLike = Union[Coordinate, Tuple[float, float], Dict[str, Any]]


def _finite_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def is_valid_coordinate(lat: Any, lng: Any) -> bool:
    """True when lat/lng are finite numbers inside the WGS84 ranges."""
    if not (_finite_number(lat) and _finite_number(lng)):
        return False
    return -90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0


def coerce_coordinate(value: CoordinateLike) -> Coordinate:
    """Normalize a Coordinate, (lat, lng) tuple or {"lat", "lng"} dict.

    Raises InvalidCoordinates for anything that is not a usable point.
    """
    if isinstance(value, Coordinate):
        lat, lng = value.lat, value.lng
    elif isinstance(value, dict):
        lat = value.get("lat")
        lng = value.get("lng", value.get("lon"))
    elif isinstance(value, (tuple, list)) and len(value) == 2:
        lat, lng = value
    else:
        raise InvalidCoordinates(f"Unsupported coordinate value: {value!r}")

    if not is_valid_coordinate(lat, lng):
        raise InvalidCoordinates(f"Invalid coordinates: lat={lat!r}, lng={lng!r}")
    return Coordinate(float(lat), float(lng))


def distance_km(a: Coordinate, b: Coordinate) -> float:
    """Haversine great-circle distance in kilometres."""
    lat1, lon1 = math.radians(a.lat), math.radians(a.lng)
    lat2, lon2 = math.radians(b.lat), math.radians(b.lng)

    dlat = lat2 - lat1
    dlon = lon2 - lon1

    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    # Rounding can push h a hair past 1.0 for antipodal points
    c = 2 * math.asin(math.sqrt(min(1.0, h)))

    return EARTH_RADIUS_KM * c


def distance_meters(a: Coordinate, b: Coordinate) -> float:
    return distance_km(a, b) * 1000.0


def degree_offsets(latitude: float, distance: float = 1.0) -> DegreeOffsets:
    """Convert *distance* km at *latitude* into lat/lon degree deltas.

    The longitude delta grows without bound toward the poles, so the
    poles themselves are rejected.
    """
    if not _finite_number(latitude) or abs(latitude) >= 90.0:
        raise InvalidCoordinates(f"Cannot compute longitude offset at latitude {latitude!r}")

    lat_offset = distance / KM_PER_DEGREE
    lon_offset = distance / (KM_PER_DEGREE * math.cos(math.radians(latitude)))
    return DegreeOffsets(lat_offset=lat_offset, lon_offset=lon_offset)


def offset_point(origin: Coordinate, north_km: float = 0.0, east_km: float = 0.0) -> Coordinate:
    """Point displaced from *origin* by the given km north and east."""
    offsets = degree_offsets(origin.lat)
    return Coordinate(
        lat=origin.lat + offsets.lat_offset * north_km,
        lng=origin.lng + offsets.lon_offset * east_km,
    )


def format_distance_km(meters: float) -> str:
    """Display form used alongside the raw meter value, e.g. "1.2 km"."""
    return f"{meters / 1000:.1f} km"
