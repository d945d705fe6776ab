import json
import logging

import pytest

from observability.logging import (
    ResearchJsonFormatter,
    SensitiveDataFilter,
    SessionContextFilter,
    StageTextFormatter,
    correlation_id_context,
    get_correlation_id,
)
from research.telemetry import LoggingObserver, RecordingObserver, SearchMetricsCollector, StageEvent


def test_stage_events_and_metrics():
    observer = RecordingObserver()
    collector = SearchMetricsCollector(observer)

    with collector.track_search(has_image=True, query="carlu") as metrics:
        with collector.track_stage("visual_search") as stage:
            stage["result_count"] = 12
            stage["credits_used"] = 1
        collector.skip_stage("web_search", "disabled")
        collector.record_results(visual=12, web=0, unique=10)

    assert [(e.stage, e.phase) for e in observer.events] == [
        ("visual_search", "start"),
        ("visual_search", "end"),
        ("web_search", "skip"),
    ]
    assert observer.events[1].fields["result_count"] == 12
    assert metrics.credits_used == 1
    assert metrics.unique_results == 10
    assert metrics.stages_run() == 1
    assert metrics.total_latency_ms >= 0


def test_stage_error_from_outcome():
    observer = RecordingObserver()
    collector = SearchMetricsCollector(observer)

    with collector.track_search():
        with collector.track_stage("visual_search") as stage:
            stage["error"] = "API error: 500"

    assert observer.events[-1].phase == "error"
    assert observer.events[-1].fields["error"] == "API error: 500"
    assert collector.metrics.stages_failed() == 1


def test_stage_exception_is_recorded_and_reraised():
    observer = RecordingObserver()
    collector = SearchMetricsCollector(observer)

    with pytest.raises(RuntimeError):
        with collector.track_search():
            with collector.track_stage("sellers"):
                raise RuntimeError("registry down")

    assert observer.stages("error") == ["sellers"]


def test_search_complete_log_level(caplog):
    collector = SearchMetricsCollector(RecordingObserver())
    with caplog.at_level(logging.INFO, logger="research.telemetry"):
        with collector.track_search(query="carlu"):
            collector.record_results(visual=1, web=0, unique=1)

    record = [r for r in caplog.records if getattr(r, "event", None) == "search_complete"][0]
    assert record.levelno == logging.INFO
    assert record.results["unique"] == 1


def test_logging_observer_uses_extra(caplog):
    with caplog.at_level(logging.INFO, logger="research.telemetry"):
        LoggingObserver().on_event(StageEvent(stage="merge", phase="end", fields={"result_count": 3}))

    assert caplog.records[-1].stage == "merge"
    assert caplog.records[-1].result_count == 3


def test_correlation_id_context():
    assert get_correlation_id() is None
    with correlation_id_context() as correlation_id:
        assert correlation_id.startswith("research-")
        assert get_correlation_id() == correlation_id
    assert get_correlation_id() is None


def test_sensitive_data_filter_redacts_extra_fields():
    record = logging.LogRecord("x", logging.INFO, __file__, 1, "calling provider", None, None)
    record.api_key = "serper-123"
    SensitiveDataFilter().filter(record)
    assert record.api_key != "serper-123"


def _record(msg, args=None, **extra):
    record = logging.LogRecord("research.telemetry", logging.INFO, __file__, 1, msg, args, None)
    for key, value in extra.items():
        setattr(record, key, value)
    SessionContextFilter().filter(record)
    SensitiveDataFilter().filter(record)
    return record


def test_sensitive_data_filter_redacts_message_and_args():
    record = _record("lens failed for https://serper.test/lens?api_key=abc123 %s", ("x-api-key: XYZ",))
    line = record.getMessage()
    assert "abc123" not in line
    assert "XYZ" not in line
    assert "[REDACTED]" in line


def test_text_formatter_shows_session_and_stage_fields():
    with correlation_id_context("research-feedface") as correlation_id:
        record = _record("Stage merge end", stage="merge", result_count=3, credits_used=0)

    line = StageTextFormatter().format(record)

    assert f"| {correlation_id} | merge |" in line
    assert line.endswith("Stage merge end [result_count=3 credits_used=0]")


def test_text_formatter_without_stage():
    line = StageTextFormatter().format(_record("plain message"))
    assert "| none | - |" in line
    assert line.endswith("plain message")


def test_json_formatter_carries_pipeline_fields():
    with correlation_id_context("research-cafebabe"):
        record = _record("Stage web_search end", stage="web_search", event="stage_end", result_count=5)

    payload = json.loads(ResearchJsonFormatter("%(message)s").format(record))

    assert payload["correlation_id"] == "research-cafebabe"
    assert payload["service"] == "poster-research"
    assert payload["stage"] == "web_search"
    assert payload["result_count"] == 5
    assert "environment" not in payload


def test_json_formatter_drops_placeholder_stage():
    payload = json.loads(ResearchJsonFormatter("%(message)s").format(_record("no stage here")))
    assert "stage" not in payload
