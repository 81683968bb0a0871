"""A single WebSocket client: bounded outbound queue, writer task, lifecycle.

Each Connection owns exactly one writer task that drains its queue through the
transport, so frames for one client are always written in enqueue order and
never concurrently. Producers only ever call send(), which never blocks: when the
queue is full the connection is closed instead of buffering without bound.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Awaitable, Callable

from echohub.api.websocket.transport import Frame, Transport
from echohub.domain.enums import ConnectionState
from echohub.domain.exceptions import (
    ConnectionClosedException,
    InvalidStateTransitionException,
    QueueFullException,
    TransportException,
)

logger = logging.getLogger(__name__)

CLOSE_NORMAL = 1000
CLOSE_GOING_AWAY = 1001
CLOSE_INTERNAL_ERROR = 1011
CLOSE_TRY_AGAIN_LATER = 1013

CloseListener = Callable[["Connection"], None]


async def _first_or_none(awaitable: Awaitable, event: asyncio.Event):
    """Await ``awaitable`` unless ``event`` fires first.

    Returns (True, result) when the awaitable finished, (False, None) when the
    event won. The loser is cancelled; exceptions from the awaitable propagate.
    """
    work = asyncio.ensure_future(awaitable)
    stop = asyncio.ensure_future(event.wait())
    try:
        await asyncio.wait({work, stop}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        stop.cancel()
        if not work.done():
            work.cancel()
    if work.done() and not work.cancelled():
        return True, work.result()
    return False, None


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class Connection:
    """One client's duplex channel and its outbound queue.

    State moves CONNECTING -> OPEN -> CLOSING -> CLOSED; abort() jumps to CLOSED
    from any live state. Close listeners run synchronously the moment the
    connection stops being live (CLOSING, or CLOSED via abort), which is how the
    registry evicts it before anyone can target it again.

    The queue, timers and tasks belong to the event loop the connection was
    created (or started) on. send(), close() and abort() called from any other
    thread are handed to that loop with call_soon_threadsafe and take effect
    there, in call order.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        connection_id: str | None = None,
        max_queue_size: int = 256,
        close_timeout: float = 5.0,
    ) -> None:
        self.id = connection_id or uuid.uuid4().hex
        self.transport = transport
        self.remote_address = transport.remote_address
        self.connected_at = time.time()
        self.max_queue_size = max_queue_size
        self.close_timeout = close_timeout
        self.close_code: int | None = None
        self.close_reason: str | None = None

        self._state = ConnectionState.CONNECTING
        self._queue: asyncio.Queue[Frame] = asyncio.Queue(maxsize=max_queue_size)
        self._closing = asyncio.Event()
        self._closed = asyncio.Event()
        self._writer_task: asyncio.Task | None = None
        self._close_deadline: asyncio.TimerHandle | None = None
        self._release_task: asyncio.Task | None = None
        self._close_listeners: list[CloseListener] = []
        self._listeners_notified = False
        self._loop = _running_loop()

    def __repr__(self) -> str:
        return f"<Connection {self.id} {self._state.value} {self.remote_address}>"

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def pending(self) -> int:
        """Number of frames waiting in the outbound queue."""
        return self._queue.qsize()

    def add_close_listener(self, listener: CloseListener) -> None:
        """Call ``listener(self)`` once, synchronously, when the connection stops being live."""
        if self._listeners_notified:
            listener(self)
            return
        self._close_listeners.append(listener)

    def open(self) -> None:
        """Mark the handshake complete (CONNECTING -> OPEN)."""
        if self._state is not ConnectionState.CONNECTING:
            raise InvalidStateTransitionException(
                self.id, self._state.value, ConnectionState.OPEN.value
            )
        self._state = ConnectionState.OPEN
        logger.debug("Connection %s open (%s)", self.id, self.remote_address)

    def start(self) -> None:
        """Start the writer task (idempotent). Requires a running event loop."""
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        if self._writer_task is None:
            self._writer_task = asyncio.create_task(
                self._write_loop(), name=f"ws-writer-{self.id}"
            )
            self._writer_task.add_done_callback(self._on_writer_done)

    def _on_writer_done(self, task: asyncio.Task) -> None:
        # A writer cancelled before its first step never ran its finally block.
        if not self._closed.is_set() and self._release_task is None:
            self._release_task = asyncio.get_running_loop().create_task(self._release())

    def _off_loop(self) -> bool:
        return self._loop is not None and _running_loop() is not self._loop

    def send(self, frame: Frame) -> None:
        """Enqueue a frame without blocking.

        From another thread the enqueue is scheduled on the connection's loop;
        an overflow there closes the connection but is not raised to the caller.

        Raises:
            ConnectionClosedException: The connection is closing or closed.
            QueueFullException: The outbound queue is at capacity; the connection
                has started closing as a side effect.
        """
        if not self._state.is_live:
            raise ConnectionClosedException(self.id, self._state.value)
        if self._off_loop():
            self._loop.call_soon_threadsafe(self._send_on_loop, frame)
            return
        try:
            self._queue.put_nowait(frame)
        except asyncio.QueueFull:
            logger.warning(
                "Outbound queue full for %s (%d pending); closing connection",
                self.id,
                self.max_queue_size,
            )
            self.close("outbound queue overflow", code=CLOSE_TRY_AGAIN_LATER)
            raise QueueFullException(self.id, self.max_queue_size) from None

    def _send_on_loop(self, frame: Frame) -> None:
        try:
            self.send(frame)
        except (QueueFullException, ConnectionClosedException) as exc:
            logger.debug("Frame for %s dropped: %s", self.id, exc.message)

    def close(self, reason: str = "", code: int = CLOSE_NORMAL) -> None:
        """Request a graceful close. Idempotent: no-op once closing or closed.

        The writer drains what is already queued, then closes the transport and
        marks the connection CLOSED. If that takes longer than close_timeout
        (e.g. the peer stopped reading) the writer is cancelled and the
        remaining frames are dropped.
        """
        if not self._state.is_live:
            return
        if self._off_loop():
            self._loop.call_soon_threadsafe(self.close, reason, code)
            return
        self.close_code = code
        self.close_reason = reason
        self._state = ConnectionState.CLOSING
        self._closing.set()
        logger.info("Connection %s closing (code=%s, reason=%s)", self.id, code, reason)
        self._notify_close_listeners()
        # An unstarted writer still has to run the drain-and-release path.
        self.start()
        self._close_deadline = asyncio.get_running_loop().call_later(
            self.close_timeout, self._close_timed_out
        )

    def abort(self, error: BaseException | None = None) -> None:
        """Move straight to CLOSED on a fatal error, discarding pending frames."""
        if self._state is ConnectionState.CLOSED:
            return
        if self._off_loop():
            self._loop.call_soon_threadsafe(self.abort, error)
            return
        if self.close_code is None:
            self.close_code = CLOSE_INTERNAL_ERROR
            self.close_reason = str(error) if error else "aborted"
        self._state = ConnectionState.CLOSED
        self._closing.set()
        logger.info("Connection %s aborted: %s", self.id, error)
        self._notify_close_listeners()
        self._discard_pending()
        current = asyncio.current_task()
        if self._writer_task is not None and self._writer_task is not current:
            # The writer's finally block releases the transport.
            self._writer_task.cancel()
        elif self._writer_task is None and self._release_task is None:
            self._release_task = asyncio.get_running_loop().create_task(self._release())

    async def receive(self) -> Frame | None:
        """Return the next inbound frame, or None once closed by either side.

        Closing the connection unblocks a pending receive promptly.

        Raises:
            TransportException: The transport failed while reading.
        """
        if not self._state.is_live:
            return None
        finished, frame = await _first_or_none(self.transport.receive(), self._closing)
        if not finished:
            return None
        return frame

    async def wait_closed(self) -> None:
        """Wait until the connection reaches CLOSED and its transport is released."""
        await self._closed.wait()

    async def _next_frame(self) -> Frame | None:
        if not self._queue.empty():
            return self._queue.get_nowait()
        finished, frame = await _first_or_none(self._queue.get(), self._closing)
        return frame if finished else None

    async def _drain(self) -> None:
        while not self._queue.empty():
            await self.transport.send(self._queue.get_nowait())

    def _close_timed_out(self) -> None:
        if self._writer_task is not None and not self._writer_task.done():
            logger.warning(
                "Close timeout for %s after %.1fs; dropping %d pending frames",
                self.id,
                self.close_timeout,
                self._queue.qsize(),
            )
            self._writer_task.cancel()

    async def _write_loop(self) -> None:
        try:
            while self._state.is_live:
                frame = await self._next_frame()
                if frame is None:
                    break
                await self.transport.send(frame)
            if self._state is ConnectionState.CLOSING:
                await self._drain()
        except TransportException as exc:
            logger.info("Transport error on %s: %s", self.id, exc.message)
            self.abort(exc)
        except asyncio.CancelledError:
            logger.debug("Writer for %s cancelled", self.id)
        except Exception as exc:
            logger.exception("Writer for %s failed: %s", self.id, exc)
            self.abort(exc)
        finally:
            await self._release()

    async def _release(self) -> None:
        if self._close_deadline is not None:
            self._close_deadline.cancel()
            self._close_deadline = None
        self._discard_pending()
        if self._state is not ConnectionState.CLOSED:
            if self.close_code is None:
                self.close_code = CLOSE_GOING_AWAY
                self.close_reason = "writer stopped"
            self._state = ConnectionState.CLOSED
            self._closing.set()
            self._notify_close_listeners()
        try:
            await asyncio.wait_for(
                self.transport.close(self.close_code or CLOSE_NORMAL, self.close_reason or ""),
                timeout=self.close_timeout,
            )
        except TransportException as exc:
            logger.debug("Ignoring close failure on %s: %s", self.id, exc.message)
        except asyncio.TimeoutError:
            logger.warning("Transport close for %s timed out", self.id)
        self._closed.set()
        logger.info("Connection %s closed", self.id)

    def _discard_pending(self) -> None:
        while not self._queue.empty():
            self._queue.get_nowait()

    def _notify_close_listeners(self) -> None:
        if self._listeners_notified:
            return
        self._listeners_notified = True
        listeners, self._close_listeners = self._close_listeners, []
        for listener in listeners:
            try:
                listener(self)
            except Exception:
                logger.exception("Close listener failed for %s", self.id)
