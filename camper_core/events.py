"""
Event Stream - Live push events with fixed-delay reconnection

EventStreamClient keeps one WebSocket open to the Forest server and hands
decoded DomainEvents to a handler. It is a three-state machine:

    connecting --> connected --> disconnected
        |                            |
        +------------>---------------+
    disconnected --(retry delay)--> connecting

Reconnection is unbounded and uses the same delay every time. The only way
out is unsubscribe(), which cancels the pending reconnect timer and closes
the socket (gracefully if open, aborted otherwise).

Nothing here raises into the caller: bad frames, handler failures and
transport errors all go to the on_error callback.
"""

import asyncio
import inspect
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional, Sequence, Set

from websockets.asyncio.client import connect as ws_connect
from websockets.protocol import State

from camper_core.envelope import unwrap_envelope
from camper_core.exceptions import EventDecodeError, TransportError
from camper_core.normalize import normalize_event
from camper_core.resilience import CancellationToken, ReconnectTimer
from camper_core.types import DomainEvent, EventStreamStatus

logger = logging.getLogger(__name__)

DEFAULT_EVENTS_PATH = "/ws"
DEFAULT_RETRY_DELAY_MS = 5000

EventHandler = Callable[[DomainEvent], Any]

ALLOWED_TRANSITIONS: Dict[Optional[EventStreamStatus], Set[EventStreamStatus]] = {
    None: {EventStreamStatus.CONNECTING},
    EventStreamStatus.CONNECTING: {EventStreamStatus.CONNECTED, EventStreamStatus.DISCONNECTED},
    EventStreamStatus.CONNECTED: {EventStreamStatus.DISCONNECTED},
    EventStreamStatus.DISCONNECTED: {EventStreamStatus.CONNECTING},
}


# =============================================================================
# Frames
# =============================================================================

def decode_frame(data: Any) -> str:
    """
    Text of a frame: str as-is, a single binary buffer, or a sequence of
    buffer fragments joined before UTF-8 decoding.
    """
    if isinstance(data, str):
        return data
    if isinstance(data, (bytes, bytearray, memoryview)):
        return bytes(data).decode("utf-8")
    if isinstance(data, (list, tuple)):
        return b"".join(bytes(fragment) for fragment in data).decode("utf-8")
    raise EventDecodeError(f"Unsupported frame type: {type(data).__name__}", frame=data)


def parse_frame(data: Any) -> DomainEvent:
    """
    Decode, JSON-parse and envelope-unwrap one frame into an event.

    Raises:
        EventDecodeError: Undecodable text, invalid JSON or no string `type`
        ProtocolError: Envelope with success: false
    """
    try:
        text = decode_frame(data)
    except UnicodeDecodeError as e:
        raise EventDecodeError(f"Event frame is not valid UTF-8: {e}", frame=data) from e
    try:
        payload = json.loads(text)
    except ValueError as e:
        raise EventDecodeError(f"Event frame is not valid JSON: {e}", frame=text) from e

    event = normalize_event(unwrap_envelope(payload))
    if event is None:
        raise EventDecodeError("Event frame has no string 'type' field", frame=text)
    return event


# =============================================================================
# Sockets
# =============================================================================

class EventSocket(ABC):
    """Receive-only socket as seen by the event stream."""

    @property
    @abstractmethod
    def open(self) -> bool:
        """True while the connection is established."""

    @abstractmethod
    def __aiter__(self) -> AsyncIterator[Any]:
        """Yield frames; end on a clean close, raise on an abnormal one."""

    @abstractmethod
    async def close(self):
        """Close with a proper closing handshake."""

    @abstractmethod
    def abort(self):
        """Drop the connection immediately."""


class WebSocketEventSocket(EventSocket):
    """EventSocket backed by a `websockets` client connection."""

    def __init__(self, connection):
        self._connection = connection

    @property
    def open(self) -> bool:
        return self._connection.state is State.OPEN

    def __aiter__(self) -> AsyncIterator[Any]:
        return self._connection.__aiter__()

    async def close(self):
        await self._connection.close()

    def abort(self):
        transport = getattr(self._connection, "transport", None)
        if transport is not None:
            transport.abort()


Connector = Callable[[str, Optional[Sequence[str]]], Awaitable[EventSocket]]


async def websocket_connector(url: str, protocols: Optional[Sequence[str]] = None) -> EventSocket:
    """Default connector: open a WebSocket with the `websockets` library."""
    if isinstance(protocols, str):
        protocols = [protocols]
    connection = await ws_connect(url, subprotocols=list(protocols) if protocols else None)
    return WebSocketEventSocket(connection)


# =============================================================================
# Stream client
# =============================================================================

@dataclass
class EventStreamOptions:
    """Subscription settings and callbacks."""
    path: str = DEFAULT_EVENTS_PATH
    protocols: Optional[Sequence[str]] = None
    retry_delay_ms: float = DEFAULT_RETRY_DELAY_MS
    on_open: Optional[Callable[[], Any]] = None
    on_close: Optional[Callable[[], Any]] = None
    on_error: Optional[Callable[[Exception], Any]] = None
    on_status_change: Optional[Callable[[EventStreamStatus], Any]] = None


class EventStreamClient:
    """
    Reconnecting consumer of the Forest event stream.

    Example:
        stream = EventStreamClient("ws://localhost:3000/ws", handler, options)
        subscription = stream.subscribe()
        ...
        subscription.unsubscribe()
    """

    def __init__(
        self,
        url: str,
        handler: EventHandler,
        options: Optional[EventStreamOptions] = None,
        connector: Optional[Connector] = None,
    ):
        """
        Args:
            url: ws:// or wss:// URL of the event endpoint
            handler: Called with each DomainEvent; may be a coroutine function
            options: Callbacks, subprotocols and retry delay
            connector: Socket factory (defaults to websocket_connector)
        """
        self.url = url
        self.options = options or EventStreamOptions()
        self._handler = handler
        self._connector = connector or websocket_connector
        self._status: Optional[EventStreamStatus] = None
        self._token = CancellationToken()
        self._timer = ReconnectTimer(self.options.retry_delay_ms / 1000.0)
        self._token.add_callback(self._timer.cancel)
        self._socket: Optional[EventSocket] = None
        self._connecting = False
        self._task: Optional[asyncio.Task] = None
        self._closing: Optional[asyncio.Future] = None
        self._handler_tasks: Set[asyncio.Future] = set()

        # Statistics
        self.connection_attempts = 0
        self.events_received = 0
        self.frames_dropped = 0

    @property
    def status(self) -> EventStreamStatus:
        if self._status is None:
            return EventStreamStatus.DISCONNECTED if self._token.cancelled else EventStreamStatus.CONNECTING
        return self._status

    @property
    def closed(self) -> bool:
        return self._token.cancelled

    # -----------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------

    def subscribe(self) -> "Subscription":
        """Start the connection loop on the running event loop."""
        if self._task is None:
            self._task = asyncio.ensure_future(self._run())
        return Subscription(self)

    def stop(self):
        """Tear down: no further connection attempts, ever."""
        if not self._token.cancel():
            return
        socket = self._socket
        if socket is not None and socket.open:
            logger.debug("Closing event stream socket")
            self._closing = asyncio.ensure_future(socket.close())
        elif socket is not None:
            socket.abort()
        elif self._connecting and self._task is not None:
            # Connection attempt still in flight
            self._task.cancel()

    async def wait_closed(self):
        """Wait until the connection loop has exited."""
        if self._task is not None:
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        if self._closing is not None:
            try:
                await self._closing
            except Exception as e:
                logger.debug(f"Error while closing event socket: {e}")

    # -----------------------------------------------------------------
    # State machine
    # -----------------------------------------------------------------

    def _transition(self, new_status: EventStreamStatus):
        if new_status not in ALLOWED_TRANSITIONS[self._status]:
            logger.warning(f"Ignoring event stream transition {self._status} -> {new_status}")
            return
        self._status = new_status
        logger.debug(f"Event stream {new_status.value}")
        self._callback(self.options.on_status_change, new_status)

    async def _run(self):
        try:
            while not self._token.cancelled:
                self._transition(EventStreamStatus.CONNECTING)
                await self._connect_and_pump()
                self._disconnected()
                if self._token.cancelled:
                    break
                logger.info(
                    f"Event stream disconnected, reconnecting in {self._timer.delay:g}s"
                )
                if not await self._timer.wait():
                    break
        except asyncio.CancelledError:
            logger.debug("Event stream task cancelled")
        finally:
            # A stream stopped before its first attempt never opened
            if self._status not in (None, EventStreamStatus.DISCONNECTED):
                self._disconnected()

    def _disconnected(self):
        self._callback(self.options.on_close)
        self._transition(EventStreamStatus.DISCONNECTED)

    async def _connect_and_pump(self):
        # on_status_change may have unsubscribed during the CONNECTING transition
        if self._token.cancelled:
            return
        self.connection_attempts += 1
        logger.debug(f"Event stream connection attempt {self.connection_attempts} to {self.url}")
        self._connecting = True
        try:
            socket = await self._connector(self.url, self.options.protocols)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._report_error(TransportError(f"Event stream connection to {self.url} failed: {e}"))
            return
        finally:
            self._connecting = False

        if self._token.cancelled:
            await socket.close()
            return

        self._socket = socket
        self._transition(EventStreamStatus.CONNECTED)
        self._callback(self.options.on_open)

        try:
            async for frame in socket:
                self._dispatch(frame)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if not self._token.cancelled:
                self._report_error(TransportError(f"Event stream closed unexpectedly: {e}"))
        finally:
            self._socket = None

    # -----------------------------------------------------------------
    # Dispatch
    # -----------------------------------------------------------------

    def _dispatch(self, frame: Any):
        try:
            event = parse_frame(frame)
        except Exception as e:
            self.frames_dropped += 1
            self._report_error(e)
            return

        self.events_received += 1
        try:
            result = self._handler(event)
        except Exception as e:
            self._report_error(e)
            return

        # Async handlers run alongside the stream; the next frame does not wait
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._handler_tasks.add(task)
            task.add_done_callback(self._handler_done)

    def _handler_done(self, task: asyncio.Future):
        self._handler_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self._report_error(error)

    def _report_error(self, error: BaseException):
        logger.debug(f"Event stream error: {error}")
        if not isinstance(error, Exception):
            error = RuntimeError(str(error))
        self._callback(self.options.on_error, error)

    def _callback(self, callback: Optional[Callable[..., Any]], *args: Any):
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            logger.warning(f"Event stream callback {getattr(callback, '__name__', callback)} failed: {e}")


class Subscription:
    """Handle returned by subscribe(); call unsubscribe() to stop the stream."""

    def __init__(self, stream: EventStreamClient):
        self._stream = stream

    @property
    def status(self) -> EventStreamStatus:
        return self._stream.status

    @property
    def closed(self) -> bool:
        return self._stream.closed

    @property
    def stream(self) -> EventStreamClient:
        return self._stream

    def unsubscribe(self):
        self._stream.stop()

    __call__ = unsubscribe

    async def wait_closed(self):
        await self._stream.wait_closed()

    async def aclose(self):
        """Unsubscribe and wait for the connection loop to finish."""
        self.unsubscribe()
        await self.wait_closed()
