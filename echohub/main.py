"""FastAPI application entry point.

Wiring only: lifespan, exception handlers, middleware, routers.
No business logic here. See echohub.core.lifespan and echohub.core.exception_handlers.

Settings are loaded inside create_app() so that tests can set env (and optionally
clear get_settings cache) before importing or calling create_app().
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from echohub.api.v1 import api_router
from echohub.core.config import get_settings
from echohub.core.exception_handlers import register_exception_handlers
from echohub.core.lifespan import create_lifespan
from echohub.middleware import RequestIDMiddleware


def create_app() -> FastAPI:
    """Build and return the FastAPI application. Settings are resolved here (deferred from import)."""
    settings = get_settings()
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        lifespan=create_lifespan,
    )

    register_exception_handlers(app)

    # Middleware: last added = outermost, so request ID wraps CORS.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in settings.allowed_origins.split(",") if o.strip()],
        allow_credentials=settings.allowed_origins.strip() != "*",
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestIDMiddleware, header_name=settings.request_id_header)

    app.include_router(api_router, prefix="/api/v1")

    @app.get("/")
    def root() -> dict[str, str]:
        """Service banner with the public endpoints."""
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "health": "/api/v1/health",
            "websocket": "/api/v1/ws",
        }

    return app


app = create_app()
