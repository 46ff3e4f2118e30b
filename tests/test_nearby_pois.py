"""Tests for aggregate_nearby_pois: browse call, classification, failure handling."""

from unittest.mock import MagicMock, patch

from conftest import make_place
from geo_math import Coordinate
from here_client import HereClient, UpstreamUnavailable
from nearby_pois import aggregate_nearby_pois, poi_counts
from poi_classifier import POI_CATEGORIES

CENTER = Coordinate(40.0, -75.0)


def _client(items=None, error=None):
    client = MagicMock()
    if error is not None:
        client.browse.side_effect = error
    else:
        client.browse.return_value = items or []
    return client


class TestAggregateNearbyPois:
    def test_empty_browse_response(self):
        result = aggregate_nearby_pois(CENTER, client=_client([]))
        assert list(result.keys()) == list(POI_CATEGORIES)
        assert all(result[cat] == [] for cat in POI_CATEGORIES)

    def test_browse_called_with_defaults(self):
        client = _client([])
        aggregate_nearby_pois({"lat": 40.0, "lng": -75.0}, client=client)
        client.browse.assert_called_once_with(CENTER, limit=50, radius_m=1000)

    def test_explicit_limit_and_radius(self):
        client = _client([])
        aggregate_nearby_pois(CENTER, client=client, limit=10, radius_m=250)
        client.browse.assert_called_once_with(CENTER, limit=10, radius_m=250)

    def test_items_classified(self):
        items = [
            make_place("Shell", 40.002, -75.0, [("700-7600-0116", "Petrol Station")]),
            make_place("Joe's Diner", 40.001, -75.0, [("100-1000-0000", "Restaurant")]),
        ]
        result = aggregate_nearby_pois(CENTER, client=_client(items))
        assert [p.title for p in result["fuel"]] == ["Shell"]
        assert [p.title for p in result["restaurants"]] == ["Joe's Diner"]
        assert poi_counts(result)["fuel"] == 1
        assert sum(poi_counts(result).values()) == 2

    def test_upstream_failure_returns_empty_collection(self):
        client = _client(error=UpstreamUnavailable("HERE browse failed with status: 503", 503))
        result = aggregate_nearby_pois(CENTER, client=client)
        assert set(result.keys()) == set(POI_CATEGORIES)
        assert sum(len(v) for v in result.values()) == 0

    def test_invalid_coordinates_skip_browse(self):
        client = _client([])
        result = aggregate_nearby_pois({"lat": None, "lng": None}, client=client)
        client.browse.assert_not_called()
        assert sum(len(v) for v in result.values()) == 0

    def test_classification_crash_returns_empty_collection(self):
        with patch("nearby_pois.classify_pois", side_effect=TypeError("bad payload")):
            result = aggregate_nearby_pois(CENTER, client=_client([{"title": "x"}]))
        assert set(result.keys()) == set(POI_CATEGORIES)

    def test_builds_client_when_none_given(self):
        with patch("nearby_pois.HereClient") as cls:
            cls.return_value.browse.return_value = []
            aggregate_nearby_pois(CENTER)
        cls.assert_called_once_with()

    def test_null_browse_body_returns_empty_collection(self):
        here = HereClient("fake-key")
        here.session = MagicMock()
        here.session.get.return_value = MagicMock(status_code=200, ok=True, json=MagicMock(return_value=None))
        result = aggregate_nearby_pois(CENTER, client=here)
        assert list(result.keys()) == list(POI_CATEGORIES)
        assert sum(len(v) for v in result.values()) == 0
