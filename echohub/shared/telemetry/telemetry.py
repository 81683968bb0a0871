"""OpenTelemetry tracer provider for the echohub service.

Each WebSocket session runs inside a ``ws.connection`` span (see tracing.py);
malformed frames, queue overflows, registry corruption and transport errors are
recorded on that span. This module decides where those spans go: console,
OTLP gRPC, or nowhere (``none`` keeps recording for in-process consumers).
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.logging import LoggingInstrumentor
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SpanExporter,
)
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased

if TYPE_CHECKING:
    from echohub.core.config import Settings

logger = logging.getLogger(__name__)

# Health probes are frequent and carry no session context.
_EXCLUDED_URLS = "/api/v1/health"


def _build_exporter(exporter_type: str, otlp_endpoint: str | None) -> SpanExporter | None:
    """Return the span exporter for ``exporter_type``; None means record only."""
    if exporter_type == "none":
        return None
    if exporter_type == "otlp":
        if otlp_endpoint:
            return OTLPSpanExporter(
                endpoint=otlp_endpoint,
                insecure=otlp_endpoint.startswith("http://"),
            )
        logger.warning("TELEMETRY_EXPORTER=otlp without an endpoint; using console")
    return ConsoleSpanExporter()


class TelemetryConfig:
    """Owns the tracer provider and the FastAPI/logging instrumentation for one app."""

    def __init__(
        self,
        service_name: str,
        service_version: str,
        enabled: bool = True,
        environment: str = "development",
    ) -> None:
        self.service_name = service_name
        self.service_version = service_version
        self.enabled = enabled
        self.environment = environment
        self.exporter_type: str | None = None
        self.tracer_provider: TracerProvider | None = None
        self._instrumented_app: FastAPI | None = None
        self._logging_instrumented = False

    @classmethod
    def from_settings(cls, settings: Settings) -> TelemetryConfig:
        """Build and start telemetry from TELEMETRY_* settings."""
        telemetry = cls(
            service_name=settings.app_name,
            service_version=settings.app_version,
            enabled=settings.telemetry_enabled,
            environment=settings.telemetry_environment,
        )
        telemetry.setup_telemetry(
            exporter_type=settings.telemetry_exporter,
            otlp_endpoint=settings.telemetry_otlp_endpoint,
            sample_rate=settings.telemetry_sample_rate,
        )
        return telemetry

    def setup_telemetry(
        self,
        exporter_type: str = "console",
        otlp_endpoint: str | None = None,
        sample_rate: float = 1.0,
    ) -> TracerProvider | None:
        """Create the tracer provider and install it as the global provider.

        Returns:
            The provider, or None when telemetry is disabled or setup failed.
        """
        if not self.enabled:
            logger.info("Telemetry disabled")
            return None
        try:
            provider = TracerProvider(
                resource=Resource(
                    attributes={
                        SERVICE_NAME: self.service_name,
                        SERVICE_VERSION: self.service_version,
                        "deployment.environment": self.environment,
                    }
                ),
                sampler=TraceIdRatioBased(sample_rate),
            )
            exporter = _build_exporter(exporter_type, otlp_endpoint)
            if exporter is not None:
                provider.add_span_processor(BatchSpanProcessor(exporter))
            trace.set_tracer_provider(provider)
        except Exception as e:
            logger.exception("Failed to initialize telemetry: %s", e)
            return None
        self.tracer_provider = provider
        self.exporter_type = exporter_type
        logger.info(
            "OpenTelemetry initialized: service=%s, version=%s, exporter=%s, sample_rate=%s",
            self.service_name,
            self.service_version,
            exporter_type,
            sample_rate,
        )
        return provider

    @property
    def active(self) -> bool:
        return self.enabled and self.tracer_provider is not None

    def instrument_fastapi(self, app: FastAPI) -> None:
        """Trace HTTP requests (health probes excluded)."""
        if not self.active:
            return
        try:
            FastAPIInstrumentor.instrument_app(
                app,
                tracer_provider=self.tracer_provider,
                excluded_urls=_EXCLUDED_URLS,
            )
        except Exception as e:
            logger.exception("Failed to instrument FastAPI: %s", e)
            return
        self._instrumented_app = app
        logger.info("FastAPI instrumentation enabled")

    def instrument_logging(self) -> None:
        """Inject trace_id/span_id into log records so session logs join their span."""
        if not self.active:
            return
        instrumentor = LoggingInstrumentor()
        if instrumentor.is_instrumented_by_opentelemetry:
            return
        try:
            instrumentor.instrument(tracer_provider=self.tracer_provider)
        except Exception as e:
            logger.exception("Failed to instrument logging: %s", e)
            return
        self._logging_instrumented = True
        logger.info("Logging instrumentation enabled")

    def shutdown(self) -> None:
        """Remove instrumentation and flush remaining spans."""
        if self._instrumented_app is not None:
            FastAPIInstrumentor.uninstrument_app(self._instrumented_app)
            self._instrumented_app = None
        if self._logging_instrumented:
            LoggingInstrumentor().uninstrument()
            self._logging_instrumented = False
        if self.tracer_provider is not None:
            try:
                self.tracer_provider.shutdown()
                logger.info("Telemetry shutdown complete")
            except Exception as e:
                logger.exception("Error during telemetry shutdown: %s", e)
            self.tracer_provider = None


_telemetry: TelemetryConfig | None = None
_telemetry_lock = threading.RLock()


def get_telemetry() -> TelemetryConfig | None:
    """Return the telemetry instance installed at startup, if any."""
    with _telemetry_lock:
        return _telemetry


def set_telemetry(telemetry: TelemetryConfig | None) -> None:
    """Install (or clear, with None) the process-wide telemetry instance."""
    global _telemetry
    with _telemetry_lock:
        _telemetry = telemetry
