"""
Observability Module - OpenTelemetry tracing for retrieval calls.

Spans are exported over OTLP/HTTP when TRACING_COLLECTOR_ENDPOINT is set,
or to a local Arize Phoenix UI when the `phoenix` extra is installed.
With tracing disabled every span is a no-op.

USAGE:
------
# At application startup:
from edu_retrieval.observability import init_tracing

init_tracing()  # No-op unless TRACING_ENABLED=true

# In code that needs tracing:
from edu_retrieval.observability import get_tracer

tracer = get_tracer()
with tracer.start_span("retrieval.hybrid_search", attributes={"retrieval.k": 5}) as span:
    # ... do work ...
    span.set_attribute("retrieval.result_count", 5)
"""

from __future__ import annotations

import logging

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from edu_retrieval.observability.config import (
    TracingConfig,
    get_config,
    reset_config,
)
from edu_retrieval.observability.tracer import (
    TracerProtocol,
    SpanProtocol,
    NoOpTracer,
    NoOpSpan,
    get_tracer,
    reset_tracer,
)
from edu_retrieval.observability.attributes import (
    DB_SYSTEM,
    DB_COLLECTION_NAME,
    RETRIEVAL_JOB_ID,
    RETRIEVAL_STRATEGY,
    RETRIEVAL_STAGE,
    RETRIEVAL_RESULT_COUNT,
    RETRIEVAL_TOP_SCORE,
    search_attributes,
    result_attributes,
)

logger = logging.getLogger(__name__)

_tracing_initialized = False


def _build_exporter(config: TracingConfig):
    if config.collector_endpoint:
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter

        logger.info(f"Exporting traces to: {config.collector_endpoint}")
        return OTLPSpanExporter(endpoint=config.collector_endpoint)

    # Local Phoenix UI (optional extra)
    import phoenix as px
    from phoenix.otel import HTTPSpanExporter

    session = px.launch_app()
    logger.info(f"Phoenix UI available at: {session.url}")
    return HTTPSpanExporter()


def init_tracing(config: TracingConfig | None = None) -> bool:
    """
    Initialize tracing.

    This should be called once at application startup.
    Installs an OpenTelemetry TracerProvider with a batching exporter.

    Args:
        config: Optional config (uses env vars if not provided)

    Returns:
        True if tracing was initialized, False if disabled or failed
    """
    global _tracing_initialized
    if _tracing_initialized:
        return True

    config = config or get_config()

    if not config.enabled:
        logger.debug("Tracing disabled")
        return False

    try:
        exporter = _build_exporter(config)
    except ImportError as e:
        logger.warning(
            f"No collector endpoint and Phoenix not installed, tracing disabled: {e}"
        )
        return False
    except Exception as e:
        logger.error(f"Failed to initialize tracing: {e}")
        return False

    provider = TracerProvider(resource=Resource.create({"service.name": config.project_name}))
    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)

    # Tracers handed out before init were no-ops
    reset_tracer()
    _tracing_initialized = True
    return True


def shutdown_tracing() -> None:
    """Flush pending spans and reset module state."""
    global _tracing_initialized

    if not _tracing_initialized:
        return

    provider = trace.get_tracer_provider()
    if hasattr(provider, "shutdown"):
        try:
            provider.shutdown()
        except Exception as e:
            logger.warning(f"Error shutting down tracing: {e}")

    reset_tracer()
    reset_config()
    _tracing_initialized = False


__all__ = [
    # Initialization
    "init_tracing",
    "shutdown_tracing",
    # Config
    "TracingConfig",
    "get_config",
    "reset_config",
    # Tracer
    "TracerProtocol",
    "SpanProtocol",
    "NoOpTracer",
    "NoOpSpan",
    "get_tracer",
    "reset_tracer",
    # Attributes
    "DB_SYSTEM",
    "DB_COLLECTION_NAME",
    "RETRIEVAL_JOB_ID",
    "RETRIEVAL_STRATEGY",
    "RETRIEVAL_STAGE",
    "RETRIEVAL_RESULT_COUNT",
    "RETRIEVAL_TOP_SCORE",
    "search_attributes",
    "result_attributes",
]
