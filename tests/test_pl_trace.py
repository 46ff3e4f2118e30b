"""Unit tests for pl_trace.py: request-scoped tracing.

Tests cover: AnalysisTrace stage/call/probe recording, summary
computation, serialization, and thread-local storage.
"""

import threading

from pl_trace import (
    AnalysisTrace,
    clear_trace,
    current_stage,
    get_trace,
    set_current_stage,
    set_trace,
)


class TestRecording:
    def test_defaults(self):
        ctx = AnalysisTrace(trace_id="test-1")
        assert ctx.stages == []
        assert ctx.calls == []
        assert ctx.probes == []
        assert ctx.started_at > 0

    def test_record_stage(self):
        ctx = AnalysisTrace(trace_id="test-1")
        ctx.record_stage("geocode", 1000.0, 1000.5)

        assert len(ctx.stages) == 1
        assert ctx.stages[0].stage_name == "geocode"
        assert ctx.stages[0].elapsed_ms == 500
        assert ctx.stages[0].error_class == ""

    def test_stage_counts_its_calls(self):
        ctx = AnalysisTrace(trace_id="test-1")
        ctx.record_call("here", "route", 120, 200, stage="traffic")
        ctx.record_call("here", "route", 130, 200, stage="traffic")
        ctx.record_call("here", "browse", 90, 200, stage="pois")
        ctx.record_stage("traffic", 1000.0, 1001.0)
        assert ctx.stages[0].provider_calls == 2

    def test_record_probe(self):
        ctx = AnalysisTrace(trace_id="test-1")
        ctx.record_probe("N-S", ok=True)
        ctx.record_probe("E-W", ok=False, error="timeout")
        assert [p.ok for p in ctx.probes] == [True, False]
        assert ctx.probes[1].error == "timeout"


class TestSummary:
    def test_empty(self):
        assert AnalysisTrace(trace_id="t").summary_dict()["outcome"] == "empty"

    def test_success(self):
        ctx = AnalysisTrace(trace_id="t")
        ctx.record_stage("geocode", 1000.0, 1000.1)
        assert ctx.summary_dict()["outcome"] == "success"

    def test_partial(self):
        ctx = AnalysisTrace(trace_id="t")
        ctx.record_stage("geocode", 1000.0, 1000.1)
        ctx.record_stage("pois", 1000.0, 1000.1, error_class="UpstreamUnavailable", error_message="503")
        summary = ctx.summary_dict()
        assert summary["outcome"] == "partial"
        assert summary["stages_errored"] == 1

    def test_error(self):
        ctx = AnalysisTrace(trace_id="t")
        ctx.record_stage("geocode", 1000.0, 1000.1, error_class="GeocodeNotFound", error_message="none")
        assert ctx.summary_dict()["outcome"] == "error"

    def test_probe_counts(self):
        ctx = AnalysisTrace(trace_id="t")
        ctx.record_probe("N-S", ok=True)
        ctx.record_probe("E-W", ok=False)
        summary = ctx.summary_dict()
        assert (summary["probes_ok"], summary["probes_failed"]) == (1, 1)

    def test_to_dict(self):
        ctx = AnalysisTrace(trace_id="t")
        ctx.record_call("geoapify", "places", 50, 0, stage="demographics")
        ctx.record_stage("demographics", 1000.0, 1000.05, error_class="X", error_message="y")
        ctx.record_probe("NE-SW", ok=False, error="boom")

        data = ctx.to_dict()
        assert data["stages"][0]["error"] == "X: y"
        assert data["calls"][0]["service"] == "geoapify"
        assert data["probes"] == [{"label": "NE-SW", "ok": False, "error": "boom"}]

    def test_log_summary_does_not_raise(self):
        AnalysisTrace(trace_id="t").log_summary()


class TestThreadLocal:
    def test_set_get_clear(self):
        ctx = AnalysisTrace(trace_id="t")
        set_trace(ctx)
        assert get_trace() is ctx
        clear_trace()
        assert get_trace() is None

    def test_stage_name(self):
        set_current_stage("traffic")
        assert current_stage() == "traffic"
        set_trace(None)
        assert current_stage() == ""

    def test_not_inherited_by_threads(self):
        set_trace(AnalysisTrace(trace_id="t"))
        seen = []
        worker = threading.Thread(target=lambda: seen.append(get_trace()))
        worker.start()
        worker.join()
        assert seen == [None]
