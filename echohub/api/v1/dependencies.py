"""Presentation-layer dependency injection.

Routes get the registry from app.state (set in lifespan) through these
dependencies rather than reaching into app.state directly.
"""

from typing import Annotated

from fastapi import Depends, Request

from echohub.api.websocket import ConnectionRegistry


def get_registry(request: Request) -> ConnectionRegistry:
    """Return the process-wide connection registry."""
    return request.app.state.ws_registry


RegistryDep = Annotated[ConnectionRegistry, Depends(get_registry)]
