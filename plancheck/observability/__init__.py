"""Observability helpers."""

from plancheck.observability.otel import (
    initialize,
    shutdown,
    start_span,
    record_collection_error,
    record_evaluation,
    record_run,
)

__all__ = [
    "initialize",
    "shutdown",
    "start_span",
    "record_collection_error",
    "record_evaluation",
    "record_run",
]
