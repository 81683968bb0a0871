"""Tracing helpers for WebSocket sessions.

Spans are no-ops unless a TracerProvider was installed by TelemetryConfig.
"""

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

_tracer_name = "echohub.websocket"


def get_tracer() -> trace.Tracer:
    """Tracer for WebSocket session spans (resolved through the global provider)."""
    return trace.get_tracer(_tracer_name)


def add_span_event(name: str, attributes: dict | None = None) -> None:
    """Add an event to the current span."""
    span = trace.get_current_span()
    if span and span.is_recording():
        span.add_event(name, attributes=attributes or {})


def set_span_error(exception: BaseException) -> None:
    """Mark the current span as error and record the exception."""
    span = trace.get_current_span()
    if span and span.is_recording():
        span.set_status(Status(StatusCode.ERROR, str(exception)))
        span.record_exception(exception)


class TracedOperation:
    """Context manager that runs a block inside a current span (sync or async).

    Used around a whole WebSocket session so span events emitted by the
    dispatcher attach to the connection that caused them.
    """

    def __init__(self, operation_name: str, attributes: dict | None = None) -> None:
        self.operation_name = operation_name
        self.attributes = attributes or {}
        self.tracer = get_tracer()
        self._cm = None
        self.span: trace.Span | None = None

    def __enter__(self) -> "TracedOperation":
        self._cm = self.tracer.start_as_current_span(
            self.operation_name, record_exception=False, set_status_on_exception=False
        )
        self.span = self._cm.__enter__()
        for key, value in self.attributes.items():
            self.span.set_attribute(key, value)
        return self

    def __exit__(
        self, exc_type: type | None, exc_val: BaseException | None, exc_tb: object
    ) -> None:
        if self._cm is None or self.span is None:
            return
        if exc_val is not None:
            self.span.set_status(Status(StatusCode.ERROR, str(exc_val)))
            self.span.record_exception(exc_val)
        self._cm.__exit__(exc_type, exc_val, exc_tb)

    async def __aenter__(self) -> "TracedOperation":
        return self.__enter__()

    async def __aexit__(
        self,
        exc_type: type | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        self.__exit__(exc_type, exc_val, exc_tb)
