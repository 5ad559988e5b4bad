"""OpenTelemetry tracing configuration for blobfs.

Tracing is opt-in. Adapter operations emit spans through
``blobfs.tracing.traced_operation`` once a provider is configured here.

Environment Variables:
    BLOBFS_OTEL_ENABLED: Set to "1" to enable tracing (default: disabled)
    BLOBFS_REQUIRE_OTEL: Set to "1" to raise if tracing cannot initialize
    BLOBFS_OTEL_SERVICE_NAME: Service name for spans (default: "blobfs")
    BLOBFS_OTEL_EXPORTER: Exporter type - "otlp" or "console" (default: "console")
    BLOBFS_OTEL_RESOURCE_ATTRS: Comma-separated k=v pairs for resource attributes
    BLOBFS_OTEL_TEST_CAPTURE: Set to "1" to use in-memory exporter for tests

Security:
    - Never export payload bytes or credentials (connection strings)
    - Keys are exported only as SHA256 digests
"""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
    from opentelemetry.sdk.trace.export import SpanExporter

logger = logging.getLogger(__name__)

BLOBFS_OTEL_ENABLED_ENV = "BLOBFS_OTEL_ENABLED"
BLOBFS_OTEL_TEST_CAPTURE_ENV = "BLOBFS_OTEL_TEST_CAPTURE"

_tracer_provider: TracerProvider | None = None
_is_configured: bool = False
_test_exporter: Any = None  # InMemorySpanExporter when test capture is on


class TracingConfigError(Exception):
    """Raised when tracing configuration fails and BLOBFS_REQUIRE_OTEL=1."""

    pass


def get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean from environment variable."""
    val = os.environ.get(key, "").strip().lower()
    if val in ("1", "true", "yes"):
        return True
    if val in ("0", "false", "no"):
        return False
    return default


def _get_env_str(key: str, default: str = "") -> str:
    return os.environ.get(key, default).strip()


def _parse_resource_attrs(attrs_str: str) -> dict[str, str]:
    """Parse comma-separated k=v resource attributes."""
    result: dict[str, str] = {}
    if not attrs_str:
        return result
    for pair in attrs_str.split(","):
        pair = pair.strip()
        if "=" in pair:
            k, v = pair.split("=", 1)
            result[k.strip()] = v.strip()
    return result


def is_tracing_enabled() -> bool:
    """Check if OpenTelemetry tracing is enabled."""
    return get_env_bool(BLOBFS_OTEL_ENABLED_ENV, False)


def _create_otlp_exporter() -> Any:
    from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter

    return OTLPSpanExporter()


def _create_console_exporter() -> SpanExporter:
    from opentelemetry.sdk.trace.export import ConsoleSpanExporter

    return ConsoleSpanExporter()


def configure_tracing() -> bool:
    """Configure OpenTelemetry tracing for blobfs.

    Idempotent - safe to call multiple times.

    Returns:
        True if tracing is enabled and configured, False otherwise.

    Raises:
        TracingConfigError: If BLOBFS_REQUIRE_OTEL=1 and configuration fails.
    """
    global _tracer_provider, _is_configured, _test_exporter

    enabled = is_tracing_enabled()
    require_otel = get_env_bool("BLOBFS_REQUIRE_OTEL", False)
    test_capture = get_env_bool(BLOBFS_OTEL_TEST_CAPTURE_ENV, False)

    if not enabled:
        _is_configured = True
        logger.debug("OpenTelemetry tracing disabled (%s not set)", BLOBFS_OTEL_ENABLED_ENV)
        return False

    # The global TracerProvider can only be set once; reuse the capture exporter.
    if _test_exporter is not None and test_capture:
        return True

    if _is_configured and _tracer_provider is not None:
        return True

    _is_configured = True

    try:
        from opentelemetry import trace
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor, SimpleSpanProcessor

        service_name = _get_env_str("BLOBFS_OTEL_SERVICE_NAME", "blobfs")
        exporter_type = _get_env_str("BLOBFS_OTEL_EXPORTER", "console")

        resource_attrs = {"service.name": service_name}
        resource_attrs.update(_parse_resource_attrs(_get_env_str("BLOBFS_OTEL_RESOURCE_ATTRS")))
        provider = TracerProvider(resource=Resource.create(resource_attrs))

        if test_capture:
            from opentelemetry.sdk.trace.export.in_memory_span_exporter import (
                InMemorySpanExporter,
            )

            _test_exporter = InMemorySpanExporter()
            provider.add_span_processor(SimpleSpanProcessor(_test_exporter))
        elif exporter_type == "otlp":
            provider.add_span_processor(BatchSpanProcessor(_create_otlp_exporter()))
        else:
            provider.add_span_processor(SimpleSpanProcessor(_create_console_exporter()))

        trace.set_tracer_provider(provider)
        _tracer_provider = provider

        logger.info(
            "OpenTelemetry tracing configured: service=%s, exporter=%s",
            service_name,
            exporter_type if not test_capture else "in-memory",
        )
        return True

    except Exception as e:
        logger.error("Failed to configure OpenTelemetry tracing: %s", e)
        if require_otel:
            raise TracingConfigError(
                f"OpenTelemetry tracing required but configuration failed: {e}"
            ) from e
        return False


def instrument_sqlalchemy(engine: Any) -> None:
    """Instrument a SQLAlchemy engine with OpenTelemetry.

    Call once per engine, where the engine is created.

    Args:
        engine: SQLAlchemy Engine instance.
    """
    if not is_tracing_enabled():
        return

    try:
        from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor

        SQLAlchemyInstrumentor().instrument(engine=engine, enable_commenter=False)
        logger.debug("SQLAlchemy engine instrumented with OpenTelemetry")
    except Exception as e:
        logger.warning("Failed to instrument SQLAlchemy: %s", e)


def get_test_spans() -> list[ReadableSpan]:
    """Get captured spans from the in-memory exporter (for testing).

    Returns:
        List of captured spans if BLOBFS_OTEL_TEST_CAPTURE=1, else empty list.
    """
    if _test_exporter is not None and hasattr(_test_exporter, "get_finished_spans"):
        return list(_test_exporter.get_finished_spans())
    return []


def clear_test_spans() -> None:
    """Clear captured spans from the in-memory exporter (for testing)."""
    if _test_exporter is not None and hasattr(_test_exporter, "clear"):
        _test_exporter.clear()


def reset_tracing() -> None:
    """Reset tracing configuration (for testing).

    The TracerProvider cannot be replaced once set, so the test exporter is
    kept and only its spans are cleared.
    """
    global _is_configured

    clear_test_spans()
    _is_configured = False
