"""API v1 router aggregation.

Includes all endpoint modules with consistent prefix and tags.
"""

from fastapi import APIRouter

from echohub.api.v1.endpoints import health, websocket as ws_endpoint

api_router = APIRouter()

api_router.include_router(health.router, prefix="/health", tags=["health"])
api_router.include_router(ws_endpoint.router, tags=["websocket"])
