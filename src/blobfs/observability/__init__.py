"""blobfs observability module.

Provides the opt-in OpenTelemetry tracing baseline for adapter operations.
"""

from blobfs.observability.tracing import configure_tracing, is_tracing_enabled

__all__ = ["configure_tracing", "is_tracing_enabled"]
