"""Utility functions for contextkit."""

from .retry import retry_with_backoff
from .serializer import is_json_serializable, json_serialize, safe_serialize, serialize
from .tracing import get_tracer

__all__ = [
    "get_tracer",
    "is_json_serializable",
    "json_serialize",
    "retry_with_backoff",
    "safe_serialize",
    "serialize",
]
