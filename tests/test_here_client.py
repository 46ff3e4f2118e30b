"""Tests for HereClient request building, response parsing and error mapping."""

from unittest.mock import MagicMock

import pytest
import requests

from geo_math import Coordinate
from here_client import (
    GeocodeNotFound,
    HereClient,
    RouteSection,
    RoutingUnavailable,
    UpstreamUnavailable,
)
from pl_trace import AnalysisTrace, set_current_stage, set_trace


def _response(status_code=200, payload=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.ok = 200 <= status_code < 300
    resp.json.return_value = payload if payload is not None else {}
    return resp


def _make_client(response=None, error=None):
    client = HereClient("fake-key")
    client.session = MagicMock()
    if error is not None:
        client.session.get.side_effect = error
    else:
        client.session.get.return_value = response
    return client


class TestTracedGet:
    def test_api_key_and_timeout_sent(self):
        client = _make_client(_response(payload={"items": []}))
        client._traced_get("browse", "https://example.test/browse", {"at": "1,2"})
        _, kwargs = client.session.get.call_args
        assert kwargs["params"] == {"at": "1,2", "apiKey": "fake-key"}
        assert kwargs["timeout"] == HereClient.DEFAULT_TIMEOUT

    def test_network_error(self):
        client = _make_client(error=requests.ConnectionError("refused"))
        with pytest.raises(UpstreamUnavailable) as exc_info:
            client._traced_get("geocode", "https://example.test", {})
        assert exc_info.value.status_code is None

    def test_non_2xx(self):
        client = _make_client(_response(status_code=401))
        with pytest.raises(UpstreamUnavailable) as exc_info:
            client._traced_get("geocode", "https://example.test", {})
        assert exc_info.value.status_code == 401
        assert "401" in str(exc_info.value)

    def test_invalid_json(self):
        resp = _response()
        resp.json.side_effect = ValueError("not json")
        client = _make_client(resp)
        with pytest.raises(UpstreamUnavailable):
            client._traced_get("geocode", "https://example.test", {})

    @pytest.mark.parametrize("body", [None, [], "busy", 7])
    def test_non_object_json(self, body):
        resp = _response()
        resp.json.return_value = body
        client = _make_client(resp)
        with pytest.raises(UpstreamUnavailable) as exc_info:
            client._traced_get("browse", "https://example.test", {})
        assert exc_info.value.status_code == 200

    def test_call_recorded_on_trace(self):
        trace = AnalysisTrace(trace_id="t-1")
        set_trace(trace)
        set_current_stage("pois")
        client = _make_client(_response(payload={"items": []}))
        client._traced_get("browse", "https://example.test", {})

        assert len(trace.calls) == 1
        call = trace.calls[0]
        assert (call.service, call.endpoint, call.status_code, call.stage) == ("here", "browse", 200, "pois")

    def test_env_key_used_by_default(self, monkeypatch):
        monkeypatch.setenv("HERE_API_KEY", "env-key")
        assert HereClient().api_key == "env-key"
        assert HereClient().session.trust_env is False


class TestGeocode:
    PAYLOAD = {
        "items": [{
            "title": "123 Main St, Springfield, IL 62701, United States",
            "position": {"lat": 39.8, "lng": -89.65},
            "address": {
                "label": "123 Main St, Springfield, IL 62701, United States",
                "city": "Springfield",
                "stateCode": "IL",
                "postalCode": "62701",
                "countryCode": "USA",
            },
        }],
    }

    def test_first_item_parsed(self):
        client = _make_client(_response(payload=self.PAYLOAD))
        result = client.geocode("123 Main St, Springfield")
        assert result.coordinates == Coordinate(39.8, -89.65)
        assert result.city == "Springfield"
        assert result.state == "IL"
        assert result.postal_code == "62701"
        assert result.formatted_address.startswith("123 Main St")

    def test_zero_items(self):
        client = _make_client(_response(payload={"items": []}))
        with pytest.raises(GeocodeNotFound):
            client.geocode("nowhere at all")

    @pytest.mark.parametrize("item", [
        {"title": "X"},
        {"title": "X", "position": {"lat": None, "lng": None}},
        {"title": "X", "position": {"lat": 120, "lng": 0}},
        "X",
    ])
    def test_item_without_usable_position(self, item):
        client = _make_client(_response(payload={"items": [item]}))
        with pytest.raises(GeocodeNotFound):
            client.geocode("123 Main St")

    def test_null_body_is_upstream_failure(self):
        resp = _response()
        resp.json.return_value = None
        client = _make_client(resp)
        with pytest.raises(UpstreamUnavailable):
            client.geocode("123 Main St")


class TestRoute:
    def test_sections_parsed(self):
        payload = {"routes": [{"sections": [
            {"summary": {"length": 1800, "duration": 260, "baseDuration": 200}, "transport": {"mode": "car"}},
            {"summary": {"length": 500, "duration": 60}},
        ]}]}
        client = _make_client(_response(payload=payload))
        sections = client.route(Coordinate(40.0, -75.0), Coordinate(40.01, -75.0))

        assert sections == [
            RouteSection(length_m=1800.0, base_duration_s=200.0, duration_s=260.0, mode="car"),
            RouteSection(length_m=500.0, base_duration_s=60.0, duration_s=60.0, mode="car"),
        ]
        _, kwargs = client.session.get.call_args
        assert kwargs["params"]["transportMode"] == "car"
        assert kwargs["params"]["origin"] == "40.0,-75.0"

    def test_no_routes(self):
        client = _make_client(_response(payload={"routes": []}))
        with pytest.raises(RoutingUnavailable):
            client.route(Coordinate(0.0, 0.0), Coordinate(0.0, 0.01))

    def test_route_without_sections(self):
        client = _make_client(_response(payload={"routes": [{"sections": []}]}))
        with pytest.raises(RoutingUnavailable):
            client.route(Coordinate(0.0, 0.0), Coordinate(0.0, 0.01))

    def test_routing_unavailable_is_upstream_unavailable(self):
        assert issubclass(RoutingUnavailable, UpstreamUnavailable)


class TestBrowse:
    def test_params(self):
        client = _make_client(_response(payload={"items": [{"title": "x"}]}))
        items = client.browse(Coordinate(40.0, -75.0), limit=20, radius_m=800)

        assert items == [{"title": "x"}]
        _, kwargs = client.session.get.call_args
        params = kwargs["params"]
        assert params["at"] == "40.0,-75.0"
        assert params["limit"] == 20
        assert params["in"] == "circle:40.0,-75.0;r=800"
        assert params["categories"] == "100,200,300,400,600,700,800"

    def test_missing_items(self):
        client = _make_client(_response(payload={}))
        assert client.browse(Coordinate(40.0, -75.0)) == []

    def test_null_body(self):
        resp = _response()
        resp.json.return_value = None
        client = _make_client(resp)
        with pytest.raises(UpstreamUnavailable):
            client.browse(Coordinate(40.0, -75.0))
