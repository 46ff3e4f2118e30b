"""
Static table of known urban centers used by the heuristic traffic model.

Density is a 1-10 rating of how much vehicle activity the core of each
metro generates; it scales the base daily vehicle count. The table is
loaded once at import time and never mutated.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

from geo_math import Coordinate, distance_km


@dataclass(frozen=True)
class UrbanCenter:
    name: str
    lat: float
    lng: float
    density: int  # 1-10

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(self.lat, self.lng)


URBAN_CENTERS: Tuple[UrbanCenter, ...] = (
    # United States
    UrbanCenter("New York", 40.7128, -74.0060, 10),
    UrbanCenter("Los Angeles", 34.0522, -118.2437, 9),
    UrbanCenter("Chicago", 41.8781, -87.6298, 9),
    UrbanCenter("Houston", 29.7604, -95.3698, 8),
    UrbanCenter("Phoenix", 33.4484, -112.0740, 7),
    UrbanCenter("Philadelphia", 39.9526, -75.1652, 8),
    UrbanCenter("San Antonio", 29.4241, -98.4936, 6),
    UrbanCenter("San Diego", 32.7157, -117.1611, 7),
    UrbanCenter("Dallas", 32.7767, -96.7970, 8),
    UrbanCenter("San Jose", 37.3382, -121.8863, 7),
    UrbanCenter("Austin", 30.2672, -97.7431, 7),
    UrbanCenter("Jacksonville", 30.3322, -81.6557, 5),
    UrbanCenter("Fort Worth", 32.7555, -97.3308, 6),
    UrbanCenter("Columbus", 39.9612, -82.9988, 6),
    UrbanCenter("Charlotte", 35.2271, -80.8431, 6),
    UrbanCenter("San Francisco", 37.7749, -122.4194, 9),
    UrbanCenter("Indianapolis", 39.7684, -86.1581, 6),
    UrbanCenter("Seattle", 47.6062, -122.3321, 8),
    UrbanCenter("Denver", 39.7392, -104.9903, 7),
    UrbanCenter("Washington", 38.9072, -77.0369, 9),
    UrbanCenter("Boston", 42.3601, -71.0589, 9),
    UrbanCenter("Nashville", 36.1627, -86.7816, 6),
    UrbanCenter("Detroit", 42.3314, -83.0458, 7),
    UrbanCenter("Portland", 45.5152, -122.6784, 7),
    UrbanCenter("Las Vegas", 36.1699, -115.1398, 7),
    UrbanCenter("Memphis", 35.1495, -90.0490, 5),
    UrbanCenter("Baltimore", 39.2904, -76.6122, 7),
    UrbanCenter("Milwaukee", 43.0389, -87.9065, 6),
    UrbanCenter("Albuquerque", 35.0844, -106.6504, 5),
    UrbanCenter("Sacramento", 38.5816, -121.4944, 6),
    UrbanCenter("Kansas City", 39.0997, -94.5786, 6),
    UrbanCenter("Atlanta", 33.7490, -84.3880, 8),
    UrbanCenter("Miami", 25.7617, -80.1918, 8),
    UrbanCenter("Minneapolis", 44.9778, -93.2650, 7),
    UrbanCenter("New Orleans", 29.9511, -90.0715, 6),
    UrbanCenter("Cleveland", 41.4993, -81.6944, 6),
    UrbanCenter("Tampa", 27.9506, -82.4572, 6),
    UrbanCenter("Pittsburgh", 40.4406, -79.9959, 6),
    UrbanCenter("St. Louis", 38.6270, -90.1994, 6),
    UrbanCenter("Orlando", 28.5383, -81.3792, 6),
    UrbanCenter("Salt Lake City", 40.7608, -111.8910, 6),
    UrbanCenter("Raleigh", 35.7796, -78.6382, 5),
    UrbanCenter("Honolulu", 21.3069, -157.8583, 6),
    UrbanCenter("Anchorage", 61.2181, -149.9003, 4),
    # Canada
    UrbanCenter("Toronto", 43.6532, -79.3832, 9),
    UrbanCenter("Montreal", 45.5017, -73.5673, 8),
    UrbanCenter("Vancouver", 49.2827, -123.1207, 8),
    UrbanCenter("Calgary", 51.0447, -114.0719, 7),
    UrbanCenter("Edmonton", 53.5461, -113.4938, 6),
    UrbanCenter("Ottawa", 45.4215, -75.6972, 7),
    UrbanCenter("Winnipeg", 49.8951, -97.1384, 6),
    UrbanCenter("Quebec City", 46.8139, -71.2080, 6),
    UrbanCenter("Hamilton", 43.2557, -79.8711, 6),
    UrbanCenter("Kitchener", 43.4516, -80.4925, 5),
    UrbanCenter("Halifax", 44.6488, -63.5752, 5),
    UrbanCenter("Victoria", 48.4284, -123.3656, 5),
)

for _c in URBAN_CENTERS:
    if not 1 <= _c.density <= 10:
        raise ValueError(f"Urban center {_c.name!r} has density {_c.density}, expected 1-10")


def nearest_urban_center(
    point: Coordinate,
    centers: Tuple[UrbanCenter, ...] = URBAN_CENTERS,
) -> Tuple[Optional[UrbanCenter], float]:
    """Return (closest center, distance in km); (None, inf) for an empty table."""
    nearest = None
    shortest = float("inf")
    for center in centers:
        d = distance_km(point, center.coordinate)
        if d < shortest:
            nearest, shortest = center, d
    return nearest, shortest
