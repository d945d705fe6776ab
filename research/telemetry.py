"""Research session observability.

Stage events go to a pluggable observer, and each search gets a metrics
collector. The collector emits one structured ``search_complete`` log line
when the search ends. Tracked:
- stage outcomes and latencies (visual, titles, web, merge, parse, verify)
- result counts before and after dedup
- provider credits consumed
- end-to-end latency
"""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Protocol

logger = logging.getLogger("research.telemetry")


@dataclass
class StageEvent:
    """One lifecycle event of a pipeline stage."""
    stage: str
    phase: str  # start, end, error, skip
    fields: Dict[str, Any] = field(default_factory=dict)


class ResearchObserver(Protocol):
    def on_event(self, event: StageEvent) -> None:
        ...


class LoggingObserver:
    """Default observer: one structured log line per event."""

    def on_event(self, event: StageEvent) -> None:
        log_data = {"event": f"stage_{event.phase}", "stage": event.stage, **event.fields}
        if event.phase == "error":
            logger.warning(f"Stage {event.stage} failed", extra=log_data)
        elif event.phase == "skip":
            logger.info(f"Stage {event.stage} skipped", extra=log_data)
        else:
            logger.info(f"Stage {event.stage} {event.phase}", extra=log_data)


class RecordingObserver:
    """Keeps every event in memory."""

    def __init__(self) -> None:
        self.events: List[StageEvent] = []

    def on_event(self, event: StageEvent) -> None:
        self.events.append(event)

    def stages(self, phase: Optional[str] = None) -> List[str]:
        return [e.stage for e in self.events if phase is None or e.phase == phase]


@dataclass
class StageMetrics:
    """Metrics for a single stage execution."""
    stage: str
    status: str  # ok, error, skipped
    result_count: int
    latency_ms: float
    credits_used: int = 0
    error_message: Optional[str] = None


@dataclass
class SearchMetrics:
    """Aggregated metrics for a single research session."""
    has_image: bool = False
    query: str = ""
    visual_results: int = 0
    web_results: int = 0
    total_results: int = 0
    unique_results: int = 0
    queries_run: int = 0
    credits_used: int = 0
    stages: List[StageMetrics] = field(default_factory=list)
    total_latency_ms: float = 0.0
    outcome: str = "ok"

    def stages_failed(self) -> int:
        return sum(1 for s in self.stages if s.status == "error")

    def stages_run(self) -> int:
        return sum(1 for s in self.stages if s.status != "skipped")

    def has_results(self) -> bool:
        return self.unique_results > 0


class SearchMetricsCollector:
    """Collector for one research session, created per search."""

    def __init__(self, observer: Optional[ResearchObserver] = None):
        self.observer = observer or LoggingObserver()
        self._current_metrics: Optional[SearchMetrics] = None
        self._start_time: Optional[float] = None

    @property
    def metrics(self) -> Optional[SearchMetrics]:
        return self._current_metrics

    @contextmanager
    def track_search(self, has_image: bool = False, query: str = "") -> Iterator[SearchMetrics]:
        """Context manager to track a research session."""
        self._current_metrics = SearchMetrics(has_image=has_image, query=query)
        self._start_time = time.monotonic()
        try:
            yield self._current_metrics
        finally:
            if self._current_metrics and self._start_time is not None:
                self._current_metrics.total_latency_ms = (time.monotonic() - self._start_time) * 1000
                self._log_metrics()

    @contextmanager
    def track_stage(self, stage: str, **fields: Any) -> Iterator[Dict[str, Any]]:
        """Time a stage. The yielded dict collects ``result_count``/``credits_used``/``error``."""
        self.observer.on_event(StageEvent(stage=stage, phase="start", fields=dict(fields)))
        outcome: Dict[str, Any] = {"result_count": 0, "credits_used": 0, "error": None}
        started = time.monotonic()
        try:
            yield outcome
        except Exception as e:
            outcome["error"] = f"{type(e).__name__}: {e}"
            self._finish_stage(stage, started, outcome, status="error")
            raise
        else:
            self._finish_stage(stage, started, outcome, status="error" if outcome["error"] else "ok")

    def skip_stage(self, stage: str, reason: str) -> None:
        self.observer.on_event(StageEvent(stage=stage, phase="skip", fields={"reason": reason}))
        if self._current_metrics:
            self._current_metrics.stages.append(
                StageMetrics(stage=stage, status="skipped", result_count=0, latency_ms=0.0)
            )

    def _finish_stage(self, stage: str, started: float, outcome: Dict[str, Any], status: str) -> None:
        latency_ms = (time.monotonic() - started) * 1000
        record = StageMetrics(
            stage=stage,
            status=status,
            result_count=int(outcome.get("result_count") or 0),
            latency_ms=latency_ms,
            credits_used=int(outcome.get("credits_used") or 0),
            error_message=outcome.get("error"),
        )
        if self._current_metrics:
            self._current_metrics.stages.append(record)
            self._current_metrics.credits_used += record.credits_used
        fields = {
            "result_count": record.result_count,
            "credits_used": record.credits_used,
            "latency_ms": round(latency_ms, 1),
        }
        if record.error_message:
            fields["error"] = record.error_message
        self.observer.on_event(
            StageEvent(stage=stage, phase="error" if status == "error" else "end", fields=fields)
        )

    def record_results(self, visual: int, web: int, unique: int) -> None:
        if not self._current_metrics:
            return
        self._current_metrics.visual_results = visual
        self._current_metrics.web_results = web
        self._current_metrics.total_results = visual + web
        self._current_metrics.unique_results = unique

    def record_queries(self, count: int) -> None:
        if self._current_metrics:
            self._current_metrics.queries_run = count

    def record_outcome(self, outcome: str) -> None:
        if self._current_metrics:
            self._current_metrics.outcome = outcome

    def _log_metrics(self) -> None:
        """Log the collected metrics in structured format."""
        m = self._current_metrics
        if not m:
            return

        stage_summary = [
            {
                "stage": s.stage,
                "status": s.status,
                "results": s.result_count,
                "credits": s.credits_used,
                "latency_ms": round(s.latency_ms, 1),
            }
            for s in m.stages
        ]

        log_data = {
            "event": "search_complete",
            "outcome": m.outcome,
            "has_image": m.has_image,
            "query_length": len(m.query),
            "results": {
                "visual": m.visual_results,
                "web": m.web_results,
                "total": m.total_results,
                "unique": m.unique_results,
            },
            "queries_run": m.queries_run,
            "credits_used": m.credits_used,
            "stages": stage_summary,
            "latency_ms": round(m.total_latency_ms, 1),
            "success": m.has_results(),
        }

        # Determine log level based on outcome
        if m.outcome != "ok":
            logger.warning(f"Search not attempted: {m.outcome}", extra=log_data)
        elif m.stages_run() > 0 and m.stages_failed() == m.stages_run():
            logger.error("Search failed - all stages failed", extra=log_data)
        elif m.stages_failed() > 0:
            logger.warning("Search completed with stage failures", extra=log_data)
        elif not m.has_results():
            logger.warning("Search completed but no results", extra=log_data)
        else:
            logger.info("Search completed successfully", extra=log_data)
