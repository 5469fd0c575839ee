"""Observability helpers."""

from taskhub.observability.otel import (
    initialize,
    shutdown,
    start_span,
    record_transaction,
    record_link,
)

__all__ = [
    "initialize",
    "shutdown",
    "start_span",
    "record_transaction",
    "record_link",
]
