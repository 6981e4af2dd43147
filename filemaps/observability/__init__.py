"""Observability helpers."""

from filemaps.observability.otel import (
    initialize,
    shutdown,
    start_span,
    record_scan,
    record_store_io,
)

__all__ = [
    "initialize",
    "shutdown",
    "start_span",
    "record_scan",
    "record_store_io",
]
