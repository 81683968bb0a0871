"""Shared telemetry: logging setup, OpenTelemetry config, and tracing helpers."""

from echohub.shared.telemetry.logging import setup_logging
from echohub.shared.telemetry.telemetry import (
    TelemetryConfig,
    get_telemetry,
    set_telemetry,
)
from echohub.shared.telemetry.tracing import (
    TracedOperation,
    add_span_event,
    set_span_error,
)

__all__ = [
    "setup_logging",
    "TelemetryConfig",
    "get_telemetry",
    "set_telemetry",
    "TracedOperation",
    "add_span_event",
    "set_span_error",
]
