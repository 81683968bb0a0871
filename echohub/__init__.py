"""echohub: REST health endpoint plus WebSocket echo/broadcast server."""

__version__ = "1.0.0"
