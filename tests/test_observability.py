"""
Unit Tests for Observability Module

Tests the OpenTelemetry integration with focus on:
1. Graceful degradation (NoOpTracer when disabled)
2. Configuration loading from environment
3. Span creation and attribute setting
4. Exporter selection in init_tracing

STAFF ENGINEER PATTERNS:
------------------------
1. Tests work WITHOUT Phoenix installed (graceful degradation)
2. Environment variable handling tested with patch.dict
3. Exporters and the global provider are patched, never installed for real
4. Zero-overhead when disabled
"""

from unittest.mock import MagicMock, patch

import pytest
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.trace import StatusCode

from edu_retrieval.observability import init_tracing, shutdown_tracing
from edu_retrieval.observability.attributes import (
    DB_COLLECTION_NAME,
    RETRIEVAL_JOB_ID,
    RETRIEVAL_K,
    RETRIEVAL_RESULT_COUNT,
    RETRIEVAL_STRATEGY,
    RETRIEVAL_TOP_SCORE,
    result_attributes,
    search_attributes,
)
from edu_retrieval.observability.config import TracingConfig, get_config, reset_config
from edu_retrieval.observability.tracer import (
    NoOpSpan,
    NoOpTracer,
    OTelSpan,
    OTelTracer,
    get_tracer,
    reset_tracer,
)


# ---------------------------------------------------------------------------
# CONFIG TESTS
# ---------------------------------------------------------------------------


class TestTracingConfig:
    """Test configuration loading."""

    def setup_method(self):
        reset_config()

    def teardown_method(self):
        reset_config()

    def test_config_defaults(self):
        """Tracing is off by default."""
        with patch.dict("os.environ", {}, clear=True):
            config = TracingConfig.from_env()

        assert config.enabled is False
        assert config.project_name == "edu-retrieval"
        assert config.collector_endpoint is None

    def test_config_enabled_values(self):
        """TRACING_ENABLED accepts true / 1 / yes."""
        for value in ("true", "1", "yes", "TRUE"):
            with patch.dict("os.environ", {"TRACING_ENABLED": value}):
                assert TracingConfig.from_env().enabled is True

        with patch.dict("os.environ", {"TRACING_ENABLED": "0"}):
            assert TracingConfig.from_env().enabled is False

    def test_config_project_and_endpoint(self):
        env = {
            "TRACING_PROJECT_NAME": "question-gen",
            "TRACING_COLLECTOR_ENDPOINT": "http://collector:4318/v1/traces",
        }
        with patch.dict("os.environ", env):
            config = TracingConfig.from_env()

        assert config.project_name == "question-gen"
        assert config.collector_endpoint == "http://collector:4318/v1/traces"

    def test_empty_endpoint_is_none(self):
        with patch.dict("os.environ", {"TRACING_COLLECTOR_ENDPOINT": ""}):
            assert TracingConfig.from_env().collector_endpoint is None

    def test_get_config_singleton(self):
        assert get_config() is get_config()


# ---------------------------------------------------------------------------
# TRACER TESTS
# ---------------------------------------------------------------------------


class TestNoOpTracer:
    """Test NoOpTracer for graceful degradation."""

    def test_noop_tracer_creates_spans(self):
        with NoOpTracer().start_span("retrieval.hybrid_search", attributes={"k": 5}) as span:
            assert isinstance(span, NoOpSpan)
            span.set_attribute("retrieval.result_count", 3)
            span.set_status("ok")
            span.record_exception(ValueError("ignored"))

    def test_exceptions_propagate(self):
        raised = False
        try:
            with NoOpTracer().start_span("failing"):
                raise ValueError("boom")
        except ValueError:
            raised = True

        assert raised


class TestGetTracer:
    """Test the get_tracer factory function."""

    def setup_method(self):
        reset_tracer()
        reset_config()

    def teardown_method(self):
        reset_tracer()
        reset_config()

    def test_noop_when_disabled(self):
        with patch.dict("os.environ", {"TRACING_ENABLED": "false"}):
            assert isinstance(get_tracer(), NoOpTracer)

    def test_singleton(self):
        with patch.dict("os.environ", {"TRACING_ENABLED": "false"}):
            assert get_tracer() is get_tracer()

    def test_noop_when_enabled_without_provider(self):
        with patch.dict("os.environ", {"TRACING_ENABLED": "true"}), \
             patch("edu_retrieval.observability.tracer.trace") as mock_trace:
            mock_trace.get_tracer_provider.return_value = MagicMock()
            assert isinstance(get_tracer(), NoOpTracer)

    def test_otel_tracer_when_provider_installed(self):
        with patch.dict("os.environ", {"TRACING_ENABLED": "true"}), \
             patch("edu_retrieval.observability.tracer.trace") as mock_trace:
            mock_trace.get_tracer_provider.return_value = TracerProvider()
            tracer = get_tracer("edu-retrieval-test")

        assert isinstance(tracer, OTelTracer)
        mock_trace.get_tracer.assert_called_once_with("edu-retrieval-test")

    def test_otel_span_forwards_attributes(self):
        otel_tracer = MagicMock()
        otel_span = otel_tracer.start_as_current_span.return_value.__enter__.return_value

        with OTelTracer(otel_tracer).start_span("retrieval.ingest", attributes={"a": 1}) as span:
            span.set_attribute("retrieval.ingest.count", 4)

        otel_tracer.start_as_current_span.assert_called_once_with("retrieval.ingest", attributes={"a": 1})
        otel_span.set_attribute.assert_called_once_with("retrieval.ingest.count", 4)

    def test_default_name_is_project_name(self):
        env = {"TRACING_ENABLED": "true", "TRACING_PROJECT_NAME": "question-gen"}
        with patch.dict("os.environ", env), \
             patch("edu_retrieval.observability.tracer.trace") as mock_trace:
            mock_trace.get_tracer_provider.return_value = TracerProvider()
            get_tracer()

        mock_trace.get_tracer.assert_called_once_with("question-gen")

    @pytest.mark.parametrize(
        "status,code,description",
        [
            ("ok", StatusCode.OK, None),
            ("error", StatusCode.ERROR, "embedding failed"),
            ("unknown", StatusCode.UNSET, None),
        ],
    )
    def test_otel_span_status(self, status, code, description):
        otel_span = MagicMock()

        OTelSpan(otel_span).set_status(status, "embedding failed")

        otel_span.set_status.assert_called_once_with(code, description)


# ---------------------------------------------------------------------------
# INIT / SHUTDOWN
# ---------------------------------------------------------------------------


class TestInitTracing:
    """Test init_tracing() exporter selection and failure handling."""

    def setup_method(self):
        reset_tracer()
        reset_config()

    def teardown_method(self):
        shutdown_tracing()
        reset_tracer()
        reset_config()

    def test_disabled_is_noop(self):
        assert init_tracing(TracingConfig(enabled=False)) is False

    def test_collector_endpoint_uses_otlp(self):
        config = TracingConfig(enabled=True, collector_endpoint="http://collector:4318/v1/traces")

        with patch(
            "opentelemetry.exporter.otlp.proto.http.trace_exporter.OTLPSpanExporter"
        ) as mock_exporter, \
             patch("edu_retrieval.observability.BatchSpanProcessor"), \
             patch("edu_retrieval.observability.trace") as mock_trace:
            assert init_tracing(config) is True

        mock_exporter.assert_called_once_with(endpoint="http://collector:4318/v1/traces")
        provider = mock_trace.set_tracer_provider.call_args[0][0]
        assert isinstance(provider, TracerProvider)
        assert provider.resource.attributes["service.name"] == "edu-retrieval"

    def test_second_init_is_noop(self):
        config = TracingConfig(enabled=True, collector_endpoint="http://collector:4318/v1/traces")

        with patch("opentelemetry.exporter.otlp.proto.http.trace_exporter.OTLPSpanExporter"), \
             patch("edu_retrieval.observability.BatchSpanProcessor"), \
             patch("edu_retrieval.observability.trace") as mock_trace:
            init_tracing(config)
            assert init_tracing(config) is True

        assert mock_trace.set_tracer_provider.call_count == 1

    def test_missing_phoenix_disables_tracing(self):
        with patch("edu_retrieval.observability._build_exporter", side_effect=ImportError("phoenix")), \
             patch("edu_retrieval.observability.trace") as mock_trace:
            assert init_tracing(TracingConfig(enabled=True)) is False

        mock_trace.set_tracer_provider.assert_not_called()

    def test_exporter_failure_disables_tracing(self):
        with patch("edu_retrieval.observability._build_exporter", side_effect=RuntimeError("port in use")):
            assert init_tracing(TracingConfig(enabled=True)) is False


# ---------------------------------------------------------------------------
# ATTRIBUTE HELPER TESTS
# ---------------------------------------------------------------------------


class TestAttributeHelpers:
    """Test attribute helper functions."""

    def test_search_attributes(self):
        attrs = search_attributes("hybrid", "grade6_science", "중력", 5, job_id="job-1")

        assert attrs[RETRIEVAL_STRATEGY] == "hybrid"
        assert attrs[DB_COLLECTION_NAME] == "grade6_science"
        assert attrs[RETRIEVAL_K] == 5
        assert attrs[RETRIEVAL_JOB_ID] == "job-1"

    def test_search_attributes_without_job(self):
        assert RETRIEVAL_JOB_ID not in search_attributes("diversity", "c01", "q", 3)

    def test_result_attributes(self):
        assert result_attributes(3, 0.9) == {RETRIEVAL_RESULT_COUNT: 3, RETRIEVAL_TOP_SCORE: 0.9}
        assert result_attributes(0) == {RETRIEVAL_RESULT_COUNT: 0}
