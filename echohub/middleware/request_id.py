"""Request ID middleware.

Generates or forwards X-Request-ID for HTTP requests and WebSocket upgrades.
HTTP responses carry it as a header; WebSocket handshakes carry it on the
accept message. Client-provided values are sanitized (length + character set)
to prevent log injection. Raw ASGI (no BaseHTTPMiddleware) so WebSocket scopes
pass through untouched apart from the header.
"""

import re
import uuid
from typing import Callable

# Safe for logging: alphanumeric, hyphen, underscore; max length to avoid abuse.
REQUEST_ID_MAX_LENGTH = 64
REQUEST_ID_ALLOWED_PATTERN = re.compile(
    r"^[a-zA-Z0-9_-]{1," + str(REQUEST_ID_MAX_LENGTH) + r"}$"
)

# ASGI message that starts the response for each scope type.
_START_MESSAGES = {
    "http": "http.response.start",
    "websocket": "websocket.accept",
}


def _get_header(scope: dict, name: str) -> str | None:
    """Return first header value for name (case-insensitive). Headers are (bytes, bytes)."""
    want = name.lower().encode()
    for k, v in scope.get("headers", []):
        if k.lower() == want:
            return v.decode("utf-8", errors="replace")
    return None


def _sanitize_request_id(raw: str | None) -> str:
    """Return raw if valid and safe; otherwise return a new UUID."""
    if not raw or not REQUEST_ID_ALLOWED_PATTERN.match(raw.strip()):
        return str(uuid.uuid4())
    return raw.strip()


def RequestIDMiddleware(app: Callable, header_name: str = "X-Request-ID") -> Callable:
    """Add or forward a request ID on HTTP responses and WebSocket accepts. Raw ASGI."""

    async def asgi_app(scope: dict, receive: Callable, send: Callable) -> None:
        start_type = _START_MESSAGES.get(scope["type"])
        if start_type is None:
            await app(scope, receive, send)
            return
        request_id = _sanitize_request_id(_get_header(scope, header_name))
        scope.setdefault("state", {})["request_id"] = request_id

        async def send_wrapper(message: dict) -> None:
            if message["type"] == start_type:
                headers = list(message.get("headers", []))
                headers.append((header_name.encode(), request_id.encode()))
                message["headers"] = headers
            await send(message)

        await app(scope, receive, send_wrapper)

    return asgi_app
