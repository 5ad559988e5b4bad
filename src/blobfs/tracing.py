"""OpenTelemetry spans for adapter operations.

Security:
    - Raw keys are never exported; spans carry their SHA256 digest
    - Payload bytes and backend credentials are never exported
"""

from __future__ import annotations

import functools
import hashlib
import logging
from collections.abc import Callable
from typing import Any, TypeVar, cast

from opentelemetry import trace

from blobfs.observability.tracing import is_tracing_enabled

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

_TRACER_NAME = "blobfs.adapter"
_KEY_ATTRIBUTES = ("blobfs.key_sha256", "blobfs.target_key_sha256")


def key_digest(key: str) -> str:
    """Return the SHA256 hex digest used to correlate a key in spans."""
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


def traced_operation(operation: str) -> Callable[[F], F]:
    """Decorator to trace an adapter method with OpenTelemetry.

    Leading string arguments are treated as keys (source and target for
    ``rename``) and exported only as digests.

    Args:
        operation: Operation name (e.g., "read", "write", "rename").

    Returns:
        Decorated method that emits a ``blobfs.adapter.<operation>`` span
        when tracing is enabled.
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(self: Any, *args: Any, **kwargs: Any) -> Any:
            if not is_tracing_enabled():
                return func(self, *args, **kwargs)

            tracer = trace.get_tracer(_TRACER_NAME)
            with tracer.start_as_current_span(f"{_TRACER_NAME}.{operation}") as span:
                span.set_attribute("storage.backend", getattr(self, "backend_name", "unknown"))
                span.set_attribute("blobfs.operation", operation)
                for attr, arg in zip(_KEY_ATTRIBUTES, args[:2], strict=False):
                    if isinstance(arg, str):
                        span.set_attribute(attr, key_digest(arg))

                try:
                    result = func(self, *args, **kwargs)
                except Exception as e:
                    span.set_attribute("error", True)
                    span.set_attribute("error.type", type(e).__name__)
                    raise

                _add_result_attributes(span, result, operation)
                return result

        return cast(F, wrapper)

    return decorator


def _add_result_attributes(span: Any, result: Any, operation: str) -> None:
    """Add safe, result-derived attributes to a span."""
    if isinstance(result, bool):
        span.set_attribute("blobfs.result", result)
    elif operation == "write" and isinstance(result, int):
        span.set_attribute("blobfs.bytes_written", result)
    elif isinstance(result, (set, frozenset)):
        span.set_attribute("blobfs.key_count", len(result))
