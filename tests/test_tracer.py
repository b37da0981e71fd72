from __future__ import annotations

import asyncio

import pytest

from api.profiles.tracer import Tracer


def test_spans_record_duration_and_root_finalizes_trace(clock) -> None:
    tracer = Tracer(now=clock)
    trace_id, root = tracer.start_trace("profile.lookup", {"clientIp": "1.2.3.4"})
    span_id = tracer.add_span(trace_id, "source.fetch", {"platform": "github"})
    clock.advance(0.25)
    tracer.end_span(trace_id, span_id, {"status": "ok"})

    trace = tracer.get_trace(trace_id)
    assert trace is not None
    assert trace.duration is None
    assert trace.spans[0].duration == pytest.approx(0.25)

    clock.advance(0.05)
    tracer.end_span(trace_id, root)
    assert trace.duration == pytest.approx(0.3)
    payload = trace.to_dict()
    assert payload["traceId"] == trace_id
    assert payload["spans"][0]["operation"] == "source.fetch"
    assert payload["spans"][0]["result"] == {"status": "ok"}


def test_unknown_trace_is_ignored(clock) -> None:
    tracer = Tracer(now=clock)
    assert tracer.add_span("missing", "noop") is None
    tracer.end_span("missing", "span")
    assert tracer.get_trace("missing") is None


def test_span_context_manager_marks_errors(clock) -> None:
    tracer = Tracer(now=clock)
    trace_id, _ = tracer.start_trace("lookup")

    async def scenario() -> None:
        async with tracer.span(trace_id, "cache.get") as result:
            result["hit"] = False
        with pytest.raises(KeyError):
            async with tracer.span(trace_id, "normalize"):
                raise KeyError("rating")

    asyncio.run(scenario())
    cache_span, normalize_span = tracer.get_trace(trace_id).spans
    assert cache_span.result == {"hit": False, "status": "ok"}
    assert normalize_span.result == {"status": "error", "error": "KeyError"}


def test_cleanup_drops_traces_past_retention(clock) -> None:
    tracer = Tracer(retention_seconds=300, now=clock)
    old_id, _ = tracer.start_trace("old")
    clock.advance(200)
    new_id, _ = tracer.start_trace("new")
    clock.advance(150)

    assert tracer.cleanup() == 1
    assert tracer.get_trace(old_id) is None
    assert tracer.get_trace(new_id) is not None
    assert len(tracer) == 1


def test_background_cleanup_runs_until_stopped(clock) -> None:
    tracer = Tracer(retention_seconds=0, cleanup_interval_seconds=0.01, now=clock)
    tracer.start_trace("stale")
    clock.advance(1)

    async def scenario() -> None:
        tracer.start()
        await asyncio.sleep(0.05)
        await tracer.stop()

    asyncio.run(scenario())
    assert len(tracer) == 0


def test_log_trace_writes_each_span(clock, caplog: pytest.LogCaptureFixture) -> None:
    tracer = Tracer(now=clock)
    trace_id, root = tracer.start_trace("lookup")
    span_id = tracer.add_span(trace_id, "detect")
    tracer.end_span(trace_id, span_id, {"status": "ok"})
    tracer.end_span(trace_id, root)

    with caplog.at_level("INFO"):
        tracer.log_trace(trace_id)
    assert f"trace={trace_id}" in caplog.text
    assert "span=detect" in caplog.text
