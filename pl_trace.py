"""
Request-scoped tracing for ParcelLens analyses.

A thread-local AnalysisTrace collects:
  - stage timing (geocode, traffic, pois, demographics)
  - outbound provider calls (HERE geocode/route/browse, Geoapify)
  - routing probe outcomes, so a partially failed live estimate is
    visible without digging through logs

Usage:
    from pl_trace import AnalysisTrace, get_trace, set_trace, clear_trace

    trace = AnalysisTrace(trace_id=request_id)
    set_trace(trace)
    ...
    trace.log_summary()
    clear_trace()

Worker threads do not inherit thread-locals; stages fanned out to a pool
must call set_trace(parent) first.
"""

import threading
import time
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class ProviderCall:
    service: str          # "here" | "geoapify"
    endpoint: str         # "geocode", "route", "browse", "places"
    elapsed_ms: int
    status_code: int      # 0 when the request never got a response
    stage: str = ""


@dataclass
class StageTiming:
    stage_name: str
    elapsed_ms: int = 0
    provider_calls: int = 0
    error_class: str = ""
    error_message: str = ""


@dataclass
class ProbeOutcome:
    """One routing probe pair (e.g. "N-S") and whether it produced a route."""
    label: str
    ok: bool
    error: str = ""


@dataclass
class AnalysisTrace:
    trace_id: str
    started_at: float = field(default_factory=time.time)
    stages: List[StageTiming] = field(default_factory=list)
    calls: List[ProviderCall] = field(default_factory=list)
    probes: List[ProbeOutcome] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def record_stage(
        self,
        stage_name: str,
        start_ts: float,
        end_ts: float,
        error_class: str = "",
        error_message: str = "",
    ):
        with self._lock:
            calls_in_stage = sum(1 for c in self.calls if c.stage == stage_name)
            rec = StageTiming(
                stage_name=stage_name,
                elapsed_ms=int((end_ts - start_ts) * 1000),
                provider_calls=calls_in_stage,
                error_class=error_class,
                error_message=error_message,
            )
            self.stages.append(rec)

        status = "ERR" if error_class else "OK"
        err_info = f" err={error_class}: {error_message}" if error_class else ""
        logger.info(
            "  [stage] trace=%s %s %s %dms calls=%d%s",
            self.trace_id, stage_name, status, rec.elapsed_ms, calls_in_stage, err_info,
        )

    def record_call(
        self,
        service: str,
        endpoint: str,
        elapsed_ms: int,
        status_code: int,
        stage: str = "",
    ):
        with self._lock:
            self.calls.append(ProviderCall(
                service=service,
                endpoint=endpoint,
                elapsed_ms=elapsed_ms,
                status_code=status_code,
                stage=stage,
            ))
        logger.info(
            "  [api] trace=%s stage=%s svc=%s ep=%s ms=%d http=%d",
            self.trace_id, stage or "-", service, endpoint, elapsed_ms, status_code,
        )

    def record_probe(self, label: str, ok: bool, error: str = ""):
        with self._lock:
            self.probes.append(ProbeOutcome(label=label, ok=ok, error=error))

    def summary_dict(self) -> Dict[str, Any]:
        errored = [s for s in self.stages if s.error_class]
        if errored and len(errored) == len(self.stages):
            outcome = "error"
        elif errored:
            outcome = "partial"
        elif not self.stages:
            outcome = "empty"
        else:
            outcome = "success"

        return {
            "trace_id": self.trace_id,
            "total_elapsed_ms": int((time.time() - self.started_at) * 1000),
            "total_calls": len(self.calls),
            "stages_errored": len(errored),
            "probes_ok": sum(1 for p in self.probes if p.ok),
            "probes_failed": sum(1 for p in self.probes if not p.ok),
            "outcome": outcome,
        }

    def log_summary(self):
        s = self.summary_dict()
        logger.info(
            "[trace-summary] trace=%s total_ms=%d calls=%d errored=%d probes=%d/%d outcome=%s",
            s["trace_id"],
            s["total_elapsed_ms"],
            s["total_calls"],
            s["stages_errored"],
            s["probes_ok"],
            s["probes_ok"] + s["probes_failed"],
            s["outcome"],
        )

    def to_dict(self) -> Dict[str, Any]:
        """Full trace for the ?trace=1 API response."""
        summary = self.summary_dict()
        summary["stages"] = [
            {
                "stage": s.stage_name,
                "elapsed_ms": s.elapsed_ms,
                "calls": s.provider_calls,
                "error": f"{s.error_class}: {s.error_message}" if s.error_class else None,
            }
            for s in self.stages
        ]
        summary["calls"] = [
            {
                "service": c.service,
                "endpoint": c.endpoint,
                "stage": c.stage,
                "elapsed_ms": c.elapsed_ms,
                "status_code": c.status_code,
            }
            for c in self.calls
        ]
        summary["probes"] = [
            {"label": p.label, "ok": p.ok, "error": p.error or None}
            for p in self.probes
        ]
        return summary


_trace_local = threading.local()


def get_trace() -> Optional[AnalysisTrace]:
    return getattr(_trace_local, "ctx", None)


def set_trace(ctx: Optional[AnalysisTrace]):
    _trace_local.ctx = ctx
    _trace_local.stage = ""


def clear_trace():
    _trace_local.ctx = None
    _trace_local.stage = ""


def current_stage() -> str:
    """Stage name running on this thread ("" outside a timed stage)."""
    return getattr(_trace_local, "stage", "")


def set_current_stage(name: str):
    _trace_local.stage = name
