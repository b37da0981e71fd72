from __future__ import annotations

import asyncio
import contextlib
import logging
import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Callable, Dict, List, Mapping, Optional, Tuple


@dataclass
class Span:
    span_id: str
    operation: str
    start_time: float
    metadata: Dict[str, object] = field(default_factory=dict)
    end_time: Optional[float] = None
    duration: Optional[float] = None
    result: Optional[Dict[str, object]] = None

    def finish(self, end_time: float, result: Mapping[str, object]) -> None:
        self.end_time = end_time
        self.duration = end_time - self.start_time
        self.result = dict(result)

    def to_dict(self) -> Dict[str, object]:
        return {
            "spanId": self.span_id,
            "operation": self.operation,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "duration": self.duration,
            "metadata": dict(self.metadata),
            "result": dict(self.result) if self.result is not None else None,
        }


@dataclass
class PipelineTrace:
    trace_id: str
    root: Span
    spans: List[Span] = field(default_factory=list)

    @property
    def start_time(self) -> float:
        return self.root.start_time

    @property
    def duration(self) -> Optional[float]:
        return self.root.duration

    def find(self, span_id: str) -> Optional[Span]:
        if self.root.span_id == span_id:
            return self.root
        for span in self.spans:
            if span.span_id == span_id:
                return span
        return None

    def to_dict(self) -> Dict[str, object]:
        return {
            "traceId": self.trace_id,
            "root": self.root.to_dict(),
            "duration": self.duration,
            "spans": [span.to_dict() for span in self.spans],
        }


class Tracer:
    """Record timed spans for each pipeline stage under one trace id."""

    def __init__(
        self,
        retention_seconds: float = 300.0,
        cleanup_interval_seconds: float = 300.0,
        now: Callable[[], float] = time.time,
        logger: Optional[logging.Logger] = None,
    ):
        self.retention_seconds = retention_seconds
        self.cleanup_interval_seconds = cleanup_interval_seconds
        self._now = now
        self.logger = logger or logging.getLogger(__name__)
        self._traces: Dict[str, PipelineTrace] = {}
        self._cleanup_task: Optional[asyncio.Task[None]] = None

    def __len__(self) -> int:
        return len(self._traces)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self) -> None:
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.get_running_loop().create_task(
                self._cleanup_loop()
            )

    async def stop(self) -> None:
        task, self._cleanup_task = self._cleanup_task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.cleanup_interval_seconds)
            self.cleanup()

    # ------------------------------------------------------------------
    # Spans
    # ------------------------------------------------------------------
    def start_trace(
        self, operation: str, metadata: Optional[Mapping[str, object]] = None
    ) -> Tuple[str, str]:
        trace_id = str(uuid.uuid4())
        root = Span(
            span_id=str(uuid.uuid4()),
            operation=operation,
            start_time=self._now(),
            metadata=dict(metadata or {}),
        )
        self._traces[trace_id] = PipelineTrace(trace_id=trace_id, root=root)
        return trace_id, root.span_id

    def add_span(
        self, trace_id: str, operation: str, metadata: Optional[Mapping[str, object]] = None
    ) -> Optional[str]:
        trace = self._traces.get(trace_id)
        if trace is None:
            return None
        span = Span(
            span_id=str(uuid.uuid4()),
            operation=operation,
            start_time=self._now(),
            metadata=dict(metadata or {}),
        )
        trace.spans.append(span)
        return span.span_id

    def end_span(
        self,
        trace_id: str,
        span_id: Optional[str],
        result: Optional[Mapping[str, object]] = None,
    ) -> None:
        trace = self._traces.get(trace_id)
        if trace is None or span_id is None:
            return
        span = trace.find(span_id)
        if span is not None:
            span.finish(self._now(), result or {})

    @asynccontextmanager
    async def span(
        self, trace_id: str, operation: str, metadata: Optional[Mapping[str, object]] = None
    ) -> AsyncIterator[Dict[str, object]]:
        """Record ``operation`` as a span; the yielded dict becomes its result."""

        span_id = self.add_span(trace_id, operation, metadata)
        result: Dict[str, object] = {}
        try:
            yield result
        except BaseException as exc:
            result.setdefault("status", "error")
            result.setdefault("error", type(exc).__name__)
            self.end_span(trace_id, span_id, result)
            raise
        result.setdefault("status", "ok")
        self.end_span(trace_id, span_id, result)

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------
    def get_trace(self, trace_id: str) -> Optional[PipelineTrace]:
        return self._traces.get(trace_id)

    def log_trace(self, trace_id: str) -> None:
        trace = self._traces.get(trace_id)
        if trace is None:
            return
        self.logger.info(
            "trace=%s operation=%s duration=%s",
            trace.trace_id,
            trace.root.operation,
            _format_duration(trace.duration),
        )
        for span in trace.spans:
            self.logger.info(
                "  span=%s duration=%s result=%s",
                span.operation,
                _format_duration(span.duration),
                span.result,
            )

    def cleanup(self) -> int:
        cutoff = self._now() - self.retention_seconds
        expired = [
            trace_id for trace_id, trace in self._traces.items() if trace.start_time < cutoff
        ]
        for trace_id in expired:
            del self._traces[trace_id]
        return len(expired)


def _format_duration(value: Optional[float]) -> str:
    return "pending" if value is None else f"{value * 1000:.1f}ms"


__all__ = ["PipelineTrace", "Span", "Tracer"]
