"""Application lifespan: startup and shutdown.

Single place for startup/shutdown wiring: logging, telemetry, and the
WebSocket registry and dispatcher on app.state.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from echohub.core.config import get_settings
from echohub.shared.telemetry.logging import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def create_lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Run startup then yield; on exit run shutdown.

    Startup order: logging, WebSocket registry + dispatcher, telemetry (if
    enabled). Shutdown order: registry (closes every connection), telemetry.
    """
    settings = get_settings()
    setup_logging()

    # ---- Startup ----
    from echohub.api.websocket import ConnectionRegistry, Dispatcher

    registry = ConnectionRegistry(
        max_queue_size=settings.ws_max_queue_size,
        close_timeout=settings.ws_close_timeout_seconds,
        welcome_text=settings.ws_welcome_message if settings.ws_send_welcome else None,
        strict=settings.debug,
    )
    app.state.ws_registry = registry
    app.state.ws_dispatcher = Dispatcher(
        registry,
        max_message_bytes=settings.ws_max_message_bytes,
        strict_types=settings.ws_strict_message_types,
    )
    logger.info(
        "WebSocket registry ready (queue=%d, close_timeout=%.1fs, max_message=%d bytes)",
        settings.ws_max_queue_size,
        settings.ws_close_timeout_seconds,
        settings.ws_max_message_bytes,
    )

    if settings.telemetry_enabled:
        from echohub.shared.telemetry.telemetry import TelemetryConfig, set_telemetry

        telemetry = TelemetryConfig.from_settings(settings)
        set_telemetry(telemetry)
        telemetry.instrument_fastapi(app)
        telemetry.instrument_logging()
        logger.info("Telemetry initialized")

    yield

    # ---- Shutdown ----
    await registry.shutdown()

    from echohub.shared.telemetry.telemetry import get_telemetry, set_telemetry

    telemetry_instance = get_telemetry()
    if telemetry_instance is not None:
        telemetry_instance.shutdown()
        set_telemetry(None)
