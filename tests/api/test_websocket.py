"""End-to-end WebSocket tests through the FastAPI app (Starlette TestClient)."""

from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

import pytest

WS_PATH = "/api/v1/ws"


def _welcome(ws) -> str:
    """Consume the greeting and return the connection id it carries."""
    message = ws.receive_json()
    assert message["type"] == "welcome"
    assert message["data"] == "Welcome to the WebSocket server!"
    return message["connection_id"]


def test_connect_receives_welcome(ws_client: TestClient) -> None:
    with ws_client.websocket_connect(WS_PATH) as ws:
        connection_id = _welcome(ws)
        assert connection_id


def test_ping_pong(ws_client: TestClient) -> None:
    with ws_client.websocket_connect(WS_PATH) as ws:
        _welcome(ws)
        ws.send_json({"type": "ping"})
        assert ws.receive_json() == {"type": "pong"}


def test_echo_default_for_unknown_type(ws_client: TestClient) -> None:
    with ws_client.websocket_connect(WS_PATH) as ws:
        _welcome(ws)
        ws.send_json({"type": "chat", "data": "hello"})
        assert ws.receive_json() == {"type": "echo", "data": "hello"}


def test_binary_echo(ws_client: TestClient) -> None:
    with ws_client.websocket_connect(WS_PATH) as ws:
        _welcome(ws)
        ws.send_bytes(b"\x01\x02\x03")
        assert ws.receive_bytes() == b"\x01\x02\x03"


def test_malformed_text_keeps_connection_open(ws_client: TestClient) -> None:
    with ws_client.websocket_connect(WS_PATH) as ws:
        _welcome(ws)
        ws.send_text("not json")
        reply = ws.receive_json()
        assert reply["type"] == "error"
        assert reply["error"] == "MALFORMED_MESSAGE"

        ws.send_json({"type": "ping"})
        assert ws.receive_json() == {"type": "pong"}


def test_broadcast_excludes_sender(ws_client: TestClient) -> None:
    """A broadcasts; B and C get exactly one tagged message; A gets nothing from it."""
    with (
        ws_client.websocket_connect(WS_PATH) as a,
        ws_client.websocket_connect(WS_PATH) as b,
        ws_client.websocket_connect(WS_PATH) as c,
    ):
        a_id = _welcome(a)
        _welcome(b)
        _welcome(c)

        a.send_json({"type": "broadcast", "data": "hi"})

        expected = {"type": "broadcast", "data": "hi", "from": a_id}
        assert b.receive_json() == expected
        assert c.receive_json() == expected

        # FIFO per connection: if A had received the broadcast it would precede the pong.
        a.send_json({"type": "ping"})
        assert a.receive_json() == {"type": "pong"}
        b.send_json({"type": "ping"})
        assert b.receive_json() == {"type": "pong"}


def test_connection_count_reported_while_connected(ws_client: TestClient) -> None:
    with ws_client.websocket_connect(WS_PATH) as a, ws_client.websocket_connect(WS_PATH) as b:
        _welcome(a)
        _welcome(b)
        assert ws_client.get("/api/v1/health").json() == {"status": "UP", "connections": 2}
        assert ws_client.get("/api/v1/ws/status").json() == {"total_connections": 2}


def test_websocket_accept_carries_request_id(ws_client: TestClient) -> None:
    with ws_client.websocket_connect(WS_PATH, headers={"X-Request-ID": "ws-req-1"}) as ws:
        _welcome(ws)
        assert ws.extra_headers is not None
        assert (b"x-request-id", b"ws-req-1") in [
            (k.lower(), v) for k, v in ws.extra_headers
        ]


def test_welcome_can_be_disabled(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("WS_SEND_WELCOME", "false")
    from echohub.core.config import get_settings
    from echohub.main import create_app

    get_settings.cache_clear()
    with TestClient(create_app()) as client, client.websocket_connect(WS_PATH) as ws:
        ws.send_json({"type": "ping"})
        assert ws.receive_json() == {"type": "pong"}


def test_server_close_after_shutdown_refuses_connection(ws_client: TestClient) -> None:
    """Connecting after the registry shut down is closed with 1001."""
    ws_client.portal.call(ws_client.app.state.ws_registry.shutdown)
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with ws_client.websocket_connect(WS_PATH) as ws:
            ws.receive_json()
    assert exc_info.value.code == 1001


def test_session_runs_with_telemetry_enabled(monkeypatch: pytest.MonkeyPatch) -> None:
    """TELEMETRY_ENABLED wires a tracer provider for the app's lifetime and tears it down."""
    monkeypatch.setenv("TELEMETRY_ENABLED", "true")
    monkeypatch.setenv("TELEMETRY_EXPORTER", "none")
    from echohub.core.config import get_settings
    from echohub.main import create_app
    from echohub.shared.telemetry import get_telemetry

    get_settings.cache_clear()
    with TestClient(create_app()) as client:
        telemetry = get_telemetry()
        assert telemetry is not None
        assert telemetry.active
        assert telemetry.exporter_type == "none"
        with client.websocket_connect(WS_PATH) as ws:
            _welcome(ws)
            ws.send_text("not json")
            assert ws.receive_json()["error"] == "MALFORMED_MESSAGE"
        assert client.get("/api/v1/health").json()["status"] == "UP"

    assert get_telemetry() is None
    assert telemetry.tracer_provider is None
