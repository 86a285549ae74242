"""
Tracer used by the retrieval engine.

The engine opens one span per search or ingest call and only ever sets
attributes, marks a failed ingest and records its exception. The span
and tracer protocols below cover exactly that. `get_tracer()` returns a
NoOpTracer until tracing is enabled and `init_tracing()` has installed
an SDK TracerProvider.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator, Protocol

from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.trace import StatusCode

from edu_retrieval.observability.config import get_config

_STATUS_CODES = {"ok": StatusCode.OK, "error": StatusCode.ERROR}


class SpanProtocol(Protocol):
    def set_attribute(self, key: str, value: Any) -> None: ...

    def set_status(self, status: str, description: str | None = None) -> None: ...

    def record_exception(self, exception: BaseException) -> None: ...


class TracerProtocol(Protocol):
    def start_span(
        self, name: str, attributes: dict[str, Any] | None = None
    ) -> Iterator[SpanProtocol]: ...


# ---------------------------------------------------------------------------
# DISABLED TRACING
# ---------------------------------------------------------------------------


class NoOpSpan:
    """Span that drops everything."""

    def set_attribute(self, key: str, value: Any) -> None:
        pass

    def set_status(self, status: str, description: str | None = None) -> None:
        pass

    def record_exception(self, exception: BaseException) -> None:
        pass


_NOOP_SPAN = NoOpSpan()


class NoOpTracer:
    @contextmanager
    def start_span(self, name: str, attributes: dict[str, Any] | None = None) -> Iterator[NoOpSpan]:
        yield _NOOP_SPAN


# ---------------------------------------------------------------------------
# OPENTELEMETRY
# ---------------------------------------------------------------------------


class OTelSpan:
    """Adapts an OTel span; status is given as "ok" or "error"."""

    def __init__(self, span: Any):
        self._span = span

    def set_attribute(self, key: str, value: Any) -> None:
        self._span.set_attribute(key, value)

    def set_status(self, status: str, description: str | None = None) -> None:
        code = _STATUS_CODES.get(status, StatusCode.UNSET)
        # OTel only keeps a description on ERROR
        self._span.set_status(code, description if code is StatusCode.ERROR else None)

    def record_exception(self, exception: BaseException) -> None:
        self._span.record_exception(exception)


class OTelTracer:
    def __init__(self, tracer: Any):
        self._tracer = tracer

    @contextmanager
    def start_span(self, name: str, attributes: dict[str, Any] | None = None) -> Iterator[OTelSpan]:
        with self._tracer.start_as_current_span(name, attributes=attributes) as span:
            yield OTelSpan(span)


# ---------------------------------------------------------------------------
# FACTORY
# ---------------------------------------------------------------------------


_tracer: TracerProtocol | None = None


def get_tracer(service_name: str | None = None) -> TracerProtocol:
    """
    Shared tracer for retrieval spans.

    Decided once per process (see `reset_tracer`): OTelTracer when tracing
    is enabled and an SDK TracerProvider is installed, NoOpTracer otherwise.

    Args:
        service_name: Instrumentation name (defaults to TRACING_PROJECT_NAME)
    """
    global _tracer
    if _tracer is None:
        config = get_config()
        if config.enabled and isinstance(trace.get_tracer_provider(), TracerProvider):
            _tracer = OTelTracer(trace.get_tracer(service_name or config.project_name))
        else:
            _tracer = NoOpTracer()
    return _tracer


def reset_tracer() -> None:
    """Forget the shared tracer (tests, or after init_tracing)."""
    global _tracer
    _tracer = None
