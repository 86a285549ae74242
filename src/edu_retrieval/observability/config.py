"""
Tracing Configuration

Loads observability settings from environment variables.
Tracing is off unless TRACING_ENABLED is set.
"""

import os
from dataclasses import dataclass


@dataclass
class TracingConfig:
    """Configuration for OpenTelemetry tracing.

    Environment Variables:
        TRACING_ENABLED: Enable tracing (default: false)
        TRACING_PROJECT_NAME: Project/service name (default: edu-retrieval)
        TRACING_COLLECTOR_ENDPOINT: OTLP/HTTP endpoint (optional, local Phoenix if empty)
    """

    enabled: bool = False
    project_name: str = "edu-retrieval"
    collector_endpoint: str | None = None

    @classmethod
    def from_env(cls) -> "TracingConfig":
        """Load config from environment variables."""
        return cls(
            enabled=os.environ.get("TRACING_ENABLED", "false").lower() in ("true", "1", "yes"),
            project_name=os.environ.get("TRACING_PROJECT_NAME", "edu-retrieval"),
            collector_endpoint=os.environ.get("TRACING_COLLECTOR_ENDPOINT") or None,
        )


# Global config singleton
_config: TracingConfig | None = None


def get_config() -> TracingConfig:
    """Get the global tracing config (lazy-loaded from env)."""
    global _config
    if _config is None:
        _config = TracingConfig.from_env()
    return _config


def reset_config() -> None:
    """Reset config (useful for testing)."""
    global _config
    _config = None
