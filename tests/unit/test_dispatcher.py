"""Dispatcher routing (ping, echo, broadcast, malformed) and the inbound loop."""

import asyncio

from echohub.api.websocket import ConnectionRegistry, Dispatcher
from echohub.domain.enums import ConnectionState


async def test_broadcast_reaches_everyone_but_sender(
    dispatcher: Dispatcher, open_connection
) -> None:
    a, ta = open_connection()
    _, tb = open_connection()
    _, tc = open_connection()

    dispatcher.dispatch(a, '{"type": "broadcast", "data": "hi"}')

    await tb.wait_sent(1)
    await tc.wait_sent(1)
    await asyncio.sleep(0.01)
    expected = [{"type": "broadcast", "data": "hi", "from": a.id}]
    assert tb.messages() == expected
    assert tc.messages() == expected
    assert ta.sent == []


async def test_ping_gets_single_pong_and_no_broadcast(
    dispatcher: Dispatcher, open_connection
) -> None:
    a, ta = open_connection()
    _, tb = open_connection()

    dispatcher.dispatch(a, '{"type": "ping"}')

    await ta.wait_sent(1)
    await asyncio.sleep(0.01)
    assert ta.messages() == [{"type": "pong"}]
    assert tb.sent == []


async def test_ping_data_is_returned_in_pong(dispatcher: Dispatcher, open_connection) -> None:
    a, ta = open_connection()
    dispatcher.dispatch(a, '{"type": "ping", "data": 42}')
    await ta.wait_sent(1)
    assert ta.messages() == [{"type": "pong", "data": 42}]


async def test_malformed_text_gets_error_and_stays_open(
    dispatcher: Dispatcher, open_connection
) -> None:
    a, ta = open_connection()

    dispatcher.dispatch(a, "not json")

    await ta.wait_sent(1)
    [reply] = ta.messages()
    assert reply["type"] == "error"
    assert reply["error"] == "MALFORMED_MESSAGE"
    assert a.state is ConnectionState.OPEN


async def test_json_without_type_is_malformed(dispatcher: Dispatcher, open_connection) -> None:
    a, ta = open_connection()
    for frame in ('{"data": 1}', "[1, 2]", '"text"', '{"type": 5}', '{"type": ""}'):
        dispatcher.dispatch(a, frame)
    await ta.wait_sent(5)
    assert [m["error"] for m in ta.messages()] == ["MALFORMED_MESSAGE"] * 5
    assert a.state is ConnectionState.OPEN


async def test_echo_and_unknown_types_are_echoed(dispatcher: Dispatcher, open_connection) -> None:
    a, ta = open_connection()
    dispatcher.dispatch(a, '{"type": "echo", "data": {"k": "v"}}')
    dispatcher.dispatch(a, '{"type": "chat", "data": "hello"}')
    await ta.wait_sent(2)
    assert ta.messages() == [
        {"type": "echo", "data": {"k": "v"}},
        {"type": "echo", "data": "hello"},
    ]


async def test_strict_mode_rejects_unknown_types(
    registry: ConnectionRegistry, open_connection
) -> None:
    strict = Dispatcher(registry, strict_types=True)
    a, ta = open_connection()
    strict.dispatch(a, '{"type": "chat"}')
    await ta.wait_sent(1)
    [reply] = ta.messages()
    assert reply["error"] == "MALFORMED_MESSAGE"
    assert reply["details"]["type"] == "chat"


async def test_oversized_frame_rejected_not_truncated(
    dispatcher: Dispatcher, open_connection
) -> None:
    a, ta = open_connection()
    _, tb = open_connection()
    big = '{"type": "broadcast", "data": "' + "x" * 2000 + '"}'

    dispatcher.dispatch(a, big)

    await ta.wait_sent(1)
    await asyncio.sleep(0.01)
    [reply] = ta.messages()
    assert reply["error"] == "MALFORMED_MESSAGE"
    assert reply["details"]["max_size"] == 1024
    assert tb.sent == []


async def test_binary_frame_is_echoed_verbatim(dispatcher: Dispatcher, open_connection) -> None:
    a, ta = open_connection()
    dispatcher.dispatch(a, b"\x00\x01\x02")
    await ta.wait_sent(1)
    assert ta.sent == [b"\x00\x01\x02"]


async def test_run_routes_until_peer_closes(
    registry: ConnectionRegistry, dispatcher: Dispatcher, open_connection
) -> None:
    a, ta = open_connection()
    ta.feed_json({"type": "ping"})
    ta.feed_json({"type": "echo", "data": "x"})
    ta.disconnect()

    await asyncio.wait_for(dispatcher.run(a), timeout=1.0)

    assert ta.messages() == [{"type": "pong"}, {"type": "echo", "data": "x"}]
    assert a.state is ConnectionState.CLOSED
    assert registry.get(a.id) is None
    assert ta.closed_with == (1000, "Peer closed")


async def test_run_survives_malformed_frames(
    dispatcher: Dispatcher, open_connection
) -> None:
    a, ta = open_connection()
    ta.feed("not json")
    ta.feed_json({"type": "ping"})
    ta.disconnect()

    await asyncio.wait_for(dispatcher.run(a), timeout=1.0)

    types = [m["type"] for m in ta.messages()]
    assert types == ["error", "pong"]


async def test_transport_error_is_isolated(
    registry: ConnectionRegistry, dispatcher: Dispatcher, open_connection
) -> None:
    """A broken stream closes only its own connection; others keep receiving."""
    broken, tb = open_connection()
    healthy, th = open_connection()
    sender, ts = open_connection()
    tb.break_stream()

    await asyncio.wait_for(dispatcher.run(broken), timeout=1.0)

    assert broken.state is ConnectionState.CLOSED
    assert registry.get(broken.id) is None
    dispatcher.dispatch(sender, '{"type": "broadcast", "data": "still here"}')
    await th.wait_sent(1)
    assert th.messages() == [{"type": "broadcast", "data": "still here", "from": sender.id}]
    assert healthy.state is ConnectionState.OPEN


async def test_run_returns_when_connection_closed_elsewhere(
    registry: ConnectionRegistry, dispatcher: Dispatcher, open_connection
) -> None:
    a, _ = open_connection()
    reader = asyncio.create_task(dispatcher.run(a))
    await asyncio.sleep(0.01)

    a.close("server side")

    await asyncio.wait_for(reader, timeout=1.0)
    assert a.state is ConnectionState.CLOSED
