"""Tests for the live-routing traffic variant.

The HERE client is a MagicMock; probes still run on the thread pool, so
route side effects must not depend on call order.
"""

from datetime import datetime
from unittest.mock import MagicMock

import pytest

from geo_math import Coordinate, distance_km
from here_client import RouteSection, RoutingUnavailable, UpstreamUnavailable
from pl_trace import AnalysisTrace, set_trace
from routing_traffic import (
    RouteTraffic,
    classify_road,
    estimate_live_traffic,
    estimated_delay,
    pedestrian_label,
    pedestrian_score,
    probe_pairs,
    route_with_traffic,
    traffic_condition,
)
from traffic_report import SOURCE_LIVE

NYC = Coordinate(40.7128, -74.0060)
MONDAY_8AM = datetime(2024, 6, 3, 8, 0)
SATURDAY_NOON = datetime(2024, 6, 8, 12, 0)


def _client(sections):
    client = MagicMock()
    client.route.return_value = sections
    return client


def _route(sections, delay=60.0):
    return RouteTraffic(
        total_distance=sum(s.length_m for s in sections),
        base_time=0, traffic_time=0, delay_s=delay,
        condition="Normal", sections=tuple(sections),
    )


class TestProbePairs:
    def test_three_opposing_pairs(self):
        pairs = probe_pairs(NYC)
        assert [label for label, _, _ in pairs] == ["N-S", "E-W", "NE-SW"]

    def test_probes_symmetric_around_property(self):
        for _, origin, destination in probe_pairs(NYC):
            assert distance_km(NYC, origin) == pytest.approx(distance_km(NYC, destination), rel=1e-3)

    def test_cardinal_probes_about_one_km(self):
        _, north, south = probe_pairs(NYC)[0]
        assert distance_km(NYC, north) == pytest.approx(1.0, abs=0.01)
        assert north.lng == NYC.lng


class TestDelay:
    def test_reported_delay_used(self):
        client = _client([RouteSection(1800, 200, 260)])
        route = route_with_traffic(client, NYC, NYC, hour=8)
        assert route.delay_s == 60
        assert route.delay_estimated is False
        assert route.condition == "Normal"

    def test_zero_delay_is_estimated(self):
        # urban section (short, slow), rush hour: 400s * 0.4 * 1.5
        client = _client([RouteSection(1000, 400, 400)])
        route = route_with_traffic(client, NYC, NYC, hour=8)
        assert route.delay_s == 240
        assert route.delay_estimated is True
        assert route.condition == "Moderate"

    def test_rural_estimate_off_peak(self):
        sections = (RouteSection(1000, 100, 100),)
        assert estimated_delay(sections, 100, hour=12) == 10

    @pytest.mark.parametrize("delay,expected", [
        (0, "Normal"), (60, "Normal"), (61, "Moderate"), (300, "Moderate"), (301, "Heavy"),
    ])
    def test_traffic_condition(self, delay, expected):
        assert traffic_condition(delay) == expected


class TestRoadClassification:
    def test_highway(self):
        routes = [_route([RouteSection(6000, 300, 300)])]
        assert classify_road(routes, 6000) == "highway"

    def test_arterial(self):
        routes = [_route([RouteSection(3000, 400, 400)])]
        assert classify_road(routes, 3000) == "arterial"

    def test_collector_from_average_distance(self):
        routes = [_route([RouteSection(1500, 200, 200), RouteSection(1500, 200, 200)])]
        assert classify_road(routes, 3000) == "collector"

    def test_local(self):
        routes = [_route([RouteSection(1500, 200, 200)])]
        assert classify_road(routes, 1500) == "local"


class TestPedestrians:
    def test_busy_roads_have_fewer_pedestrians(self):
        assert pedestrian_score(50000, False, False) == 0.5
        assert pedestrian_score(6000, False, False) == 2.5

    def test_highway_cap(self):
        assert pedestrian_score(6000, True, False) == pytest.approx(0.8)

    def test_weekend_adjustments(self):
        assert pedestrian_score(10000, False, True) == pytest.approx(2.5)
        assert pedestrian_score(30000, False, True) == pytest.approx(0.8)

    def test_labels(self):
        assert pedestrian_label(3.5).startswith("Very High")
        assert pedestrian_label(2.5).startswith("Moderate to High")
        assert pedestrian_label(0.3) == "Very Low (estimated <100 pedestrians/day)"


class TestEstimateLiveTraffic:
    def test_all_probes_succeed(self):
        client = _client([RouteSection(1800, 200, 260)])
        report = estimate_live_traffic(NYC, client=client, now=MONDAY_8AM)

        assert client.route.call_count == 3
        assert report.source == SOURCE_LIVE
        assert report.confidence == "high"
        assert report.details.road_type == "local"
        assert report.details.avg_delay == 60
        # local weekday bracket 6000 * (1 + 60/600)
        assert report.vehicle_count == 6600
        assert report.details.current_hourly_volume == round(6600 / 24 * 1.4)
        assert report.details.probes_attempted == 3
        assert report.details.probes_succeeded == 3
        assert report.details.area_type == "Downtown"
        assert report.foot_traffic.startswith("Moderate to High")

    def test_delay_multiplier_capped(self):
        client = _client([RouteSection(1800, 200, 2000)])
        report = estimate_live_traffic(NYC, client=client, now=MONDAY_8AM)
        assert report.vehicle_count == 9000

    def test_weekend_bracket(self):
        client = _client([RouteSection(1800, 200, 260)])
        report = estimate_live_traffic(NYC, client=client, now=SATURDAY_NOON)
        assert report.vehicle_count == round(3000 * 1.1)
        assert report.peak_hours == "11 AM-1 PM, 2-4 PM"

    def test_partial_failure_uses_remaining_probes(self):
        def route(origin, destination):
            # the N-S probe starts due north, so shares the property's longitude
            if origin.lng == NYC.lng:
                raise UpstreamUnavailable("HERE route failed with status: 500", status_code=500)
            return [RouteSection(1800, 200, 260)]

        client = MagicMock()
        client.route.side_effect = route
        trace = AnalysisTrace(trace_id="t-1")
        set_trace(trace)

        report = estimate_live_traffic(NYC, client=client, now=MONDAY_8AM)

        assert report.details.probes_attempted == 3
        assert report.details.probes_succeeded == 2
        assert report.confidence == "medium"
        assert report.vehicle_count == 6600
        summary = trace.summary_dict()
        assert summary["probes_ok"] == 2
        assert summary["probes_failed"] == 1

    def test_all_probes_fail_raises(self):
        client = MagicMock()
        client.route.side_effect = UpstreamUnavailable("network down")
        with pytest.raises(RoutingUnavailable, match="any routes"):
            estimate_live_traffic(NYC, client=client, now=MONDAY_8AM)
