"""Wire message schemas for the WebSocket endpoint.

Inbound structured frames are JSON objects with a ``type`` string and optional
``data``. Outbound frames reuse the same envelope plus kind-specific fields.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class WireMessage(BaseModel):
    """Inbound structured message (text frame decoded as JSON)."""

    model_config = ConfigDict(extra="allow", frozen=True)

    type: str = Field(..., min_length=1, description="Message kind tag, e.g. 'ping'")
    data: Any = Field(default=None, description="Optional payload")


class ErrorMessage(BaseModel):
    """Outbound reply for a frame that could not be handled."""

    type: str = Field(default="error", description="Always 'error'")
    error: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable description")
    details: dict[str, Any] = Field(default_factory=dict)
