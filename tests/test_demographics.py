"""Tests for demographics.py: Geoapify lookup and its defaults."""

from unittest.mock import MagicMock, patch

import requests

from demographics import UNAVAILABLE, DemographicsSnapshot, get_demographics, serialize_for_result
from geo_math import Coordinate

POINT = Coordinate(39.8, -89.65)


def _mock_resp(status_code=200, payload=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = payload if payload is not None else {}
    return resp


class TestGetDemographics:
    def test_no_key_skips_request(self, monkeypatch):
        monkeypatch.delenv("GEOAPIFY_API_KEY", raising=False)
        with patch("demographics.requests.get") as mock_get:
            result = get_demographics(POINT)
        mock_get.assert_not_called()
        assert result == DemographicsSnapshot()

    @patch("demographics.requests.get")
    def test_population_and_location(self, mock_get):
        mock_get.return_value = _mock_resp(payload={"features": [{"properties": {
            "city": "Springfield", "state": "Illinois", "population": 114394,
        }}]})
        result = get_demographics(POINT, api_key="k")

        assert result.population == "114,394"
        assert result.location == "Springfield, Illinois"
        assert result.median_income == UNAVAILABLE
        params = mock_get.call_args.kwargs["params"]
        assert params["type"] == "administrative"
        assert params["lon"] == -89.65

    @patch("demographics.requests.get")
    def test_name_and_county_used_when_city_missing(self, mock_get):
        mock_get.return_value = _mock_resp(payload={"features": [{"properties": {
            "name": "Sangamon Township", "county": "Sangamon County",
        }}]})
        result = get_demographics(POINT, api_key="k")
        assert result.location == "Sangamon Township, Sangamon County"
        assert result.population == UNAVAILABLE

    @patch("demographics.requests.get")
    def test_non_200(self, mock_get):
        mock_get.return_value = _mock_resp(status_code=401)
        assert get_demographics(POINT, api_key="k") == DemographicsSnapshot()

    @patch("demographics.requests.get")
    def test_timeout(self, mock_get):
        mock_get.side_effect = requests.Timeout("slow")
        assert get_demographics(POINT, api_key="k") == DemographicsSnapshot()

    @patch("demographics.requests.get")
    def test_empty_features(self, mock_get):
        mock_get.return_value = _mock_resp(payload={"features": []})
        assert get_demographics(POINT, api_key="k") == DemographicsSnapshot()

    def test_invalid_coordinates(self):
        with patch("demographics.requests.get") as mock_get:
            result = get_demographics({"lat": "x"}, api_key="k")
        mock_get.assert_not_called()
        assert result.population == UNAVAILABLE


def test_serialize():
    assert serialize_for_result(DemographicsSnapshot()) == {
        "population": UNAVAILABLE,
        "location": "",
        "median_income": UNAVAILABLE,
    }
    assert serialize_for_result(None) is None
