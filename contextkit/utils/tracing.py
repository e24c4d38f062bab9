"""OpenTelemetry helpers.

Only the OpenTelemetry API is used here. Without a configured SDK tracer
provider every span is a no-op, so the library stays silent unless the host
application installs one.
"""

from collections.abc import Mapping
from typing import Any

from opentelemetry import trace
from opentelemetry.trace import Span, Status, StatusCode

TRACER_NAME = "contextkit"


def get_tracer():
    """Get the tracer used by the compaction engine."""
    return trace.get_tracer(TRACER_NAME)


def set_span_attributes(span: Span, attributes: Mapping[str, Any]) -> None:
    """Set attributes, skipping None values and joining lists into strings."""
    for key, value in attributes.items():
        if value is None:
            continue
        if isinstance(value, (list, tuple, set)):
            value = ",".join(str(v) for v in value)
        span.set_attribute(key, value)


def mark_span_ok(span: Span) -> None:
    span.set_status(Status(StatusCode.OK))


def mark_span_error(span: Span, error: BaseException) -> None:
    span.set_status(Status(StatusCode.ERROR, str(error)))
    span.record_exception(error)
