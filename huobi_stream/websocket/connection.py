"""
One physical socket to the push feed and its lifecycle.

A Connection is created at subscribe time, becomes OPEN when the transport
opens, and ends CLOSED. Reconnecting always builds a fresh Connection.
All registry and timer changes happen inside the ``handle_*`` transitions.
"""
import asyncio
import time
from typing import Any, Callable, Dict, List, Optional, TYPE_CHECKING

import websockets
from websockets.exceptions import ConnectionClosed, InvalidHandshake

from huobi_stream.exceptions import FrameDecodeError
from huobi_stream.utils.logging import EventLog, get_logger
from huobi_stream.websocket.adapter import WebSocketAdapter
from huobi_stream.websocket.codec import Inflate, decode_frame, encode_message, gzip_inflate
from huobi_stream.websocket.models import (
    ConnectionState,
    Mode,
    PingMessage,
    PongMessage,
    RequestMessage,
    SubscribeMessage,
    next_request_id,
    summarize,
)

if TYPE_CHECKING:
    from huobi_stream.websocket.manager import ConnectionManager

logger = get_logger("websocket.connection")

# Application callback: receives one decoded envelope
EventCallback = Callable[[Dict[str, Any]], Any]

# Builds the replacement Connection; receives the consecutive failure count
ReconnectAction = Callable[[int], Optional["Connection"]]


class Connection:
    """
    A socket plus its logical identity.

    ``key`` addresses the connection in the registry: the stream name for
    single mode, a hash of the stream list for combined mode, a hash of the
    request for request-once mode.
    """

    def __init__(
        self,
        key: str,
        mode: Mode,
        url: str,
        manager: "ConnectionManager",
        events: EventLog,
        listeners: Optional[List[EventCallback]] = None,
        streams: Optional[List[str]] = None,
        request: Optional[RequestMessage] = None,
        auto_reconnect: bool = False,
        on_reconnect: Optional[ReconnectAction] = None,
        attempt: int = 0,
        inflate: Inflate = gzip_inflate,
        connect: Callable[..., Any] = websockets.connect,
        connect_options: Optional[Dict[str, Any]] = None,
    ):
        self.key = key
        self.mode = mode
        self.url = url
        self.manager = manager
        self.events = events
        self.listeners: List[EventCallback] = list(listeners or [])
        self.streams: List[str] = list(streams or [])
        self.request = request
        self.auto_reconnect = auto_reconnect
        self.on_reconnect = on_reconnect
        self.attempt = attempt

        self._inflate = inflate
        self._connect = connect
        self._connect_options = connect_options or {}

        # Connection state
        self.state = ConnectionState.CONNECTING
        self.is_alive = False
        self.opened = False
        self.manual = False
        self.transport: Optional[WebSocketAdapter] = None
        self.replacement: Optional["Connection"] = None
        self._resolved = False
        self._task: Optional[asyncio.Task] = None

        # Stats
        self.created_at = time.time()
        self.messages_received = 0

    def __repr__(self) -> str:
        return f"<Connection {self.key} {self.mode.value} {self.state.value}>"

    @property
    def task(self) -> Optional[asyncio.Task]:
        """Driver task, once started."""
        return self._task

    @property
    def is_open(self) -> bool:
        return self.state is ConnectionState.OPEN and self.transport is not None

    @property
    def is_retired(self) -> bool:
        """Stopped by the caller or already closed; never reused for new listeners."""
        return self.manual or self.state is ConnectionState.CLOSED

    def add_listener(self, callback: EventCallback):
        """Attach another application callback to this socket."""
        self.listeners.append(callback)

    # ------------------------------------------------------------------
    # Driver
    # ------------------------------------------------------------------

    def start(self, delay: float = 0.0) -> asyncio.Task:
        """Run the connection in a background task (non-blocking)."""
        self._task = asyncio.get_running_loop().create_task(self.run(delay))
        # A task cancelled before its first step never enters run()
        self._task.add_done_callback(lambda _task: self.handle_close())
        return self._task

    async def run(self, delay: float = 0.0):
        """Dial, pump frames until the socket ends, then run the close transition."""
        code: Optional[int] = None
        reason = ""
        try:
            if delay > 0:
                await asyncio.sleep(delay)

            async with self._connect(self.url, **self._connect_options) as ws:
                await self.handle_open(WebSocketAdapter(ws))
                async for raw in ws:
                    await self.handle_message(raw)

        except ConnectionClosed:
            pass
        except (OSError, InvalidHandshake, asyncio.TimeoutError) as e:
            self.handle_error(e)
        except Exception as e:
            logger.error(f"Connection {self.key} failed: {e}", exc_info=True)
            self.handle_error(e)
        finally:
            if self.transport is not None:
                code, reason = self.transport.close_code, self.transport.close_reason
            self.handle_close(code, reason)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def handle_open(self, transport: WebSocketAdapter):
        """CONNECTING -> OPEN: register, then activate the channel."""
        self.transport = transport
        self.state = ConnectionState.OPEN
        self.is_alive = True
        self.opened = True
        self.manager.register(self)
        await self.activate()

    def handle_pong(self):
        self.is_alive = True

    def handle_error(self, error: BaseException):
        """Transport errors are reported only; the close transition follows."""
        code = getattr(error, "code", None) or getattr(error, "errno", None)
        self.events.error(
            "WebSocket error: " + self.key
            + (f" ({code})" if code else "")
            + (f" {error}" if str(error) else f" {type(error).__name__}")
        )

    def handle_close(self, code: Optional[int] = None, reason: str = ""):
        """-> CLOSED: unregister, then reconnect when allowed. Runs once."""
        if self.state is ConnectionState.CLOSED:
            return
        self.state = ConnectionState.CLOSED
        self.is_alive = False
        self.manager.unregister(self)

        self.events.info(
            "WebSocket closed: " + self.key
            + (f" ({code})" if code else "")
            + (f" {reason}" if reason else "")
        )

        if self.manual or not (self.auto_reconnect and self.on_reconnect):
            return

        attempt = 0 if self.opened else self.attempt + 1
        self.events.info(f"WebSocket reconnecting: {self.key}...")
        try:
            self.replacement = self.on_reconnect(attempt)
        except Exception as e:
            self.events.error(f"WebSocket reconnect error: {e}")

    async def handle_message(self, raw: Any):
        """Decode one frame; answer pings, deliver everything else."""
        try:
            envelope = decode_frame(raw, self._inflate)
        except FrameDecodeError as e:
            self.events.error(f"Parse error: {self.key}: {e}")
            return

        if PingMessage.is_ping(envelope):
            await self._send(PongMessage(pong=envelope["ping"]))
            return

        if self._resolved:
            return
        self.messages_received += 1

        if self.mode is Mode.REQUEST_ONCE:
            self._resolved = True
            self.events.verbose(f"Request once answered: {self.key} {summarize(envelope)}")
            await self._deliver(envelope)
            await self.close()
            return

        await self._deliver(envelope)

    # ------------------------------------------------------------------
    # Channel activation
    # ------------------------------------------------------------------

    async def activate(self):
        """Send whatever starts the data flow for this connection's mode."""
        if self.mode is Mode.REQUEST_ONCE:
            await self._send(self.request)
            return
        for stream in self.streams:
            await self._send(SubscribeMessage(id=next_request_id(), sub=stream))

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def ping(self):
        """Heartbeat probe; the pong marks the connection alive again."""
        if self.is_open:
            await self.transport.ping(self.handle_pong)

    async def close(self, code: int = 1000, reason: str = ""):
        """Graceful close; the close transition runs when the socket ends."""
        if self.is_open:
            await self.transport.close(code, reason)

    def terminate(self, manual: bool = False):
        """
        Hard stop. ``manual`` marks a caller-requested stop, which never
        reconnects; heartbeat terminations are organic closes.
        """
        if manual:
            self.manual = True
        if self.state is ConnectionState.CLOSED:
            return

        if self.is_open:
            self.transport.terminate()
        elif self._task is not None and not self._task.done():
            self._task.cancel()
        else:
            self.handle_close()

    async def _send(self, message):
        await self.transport.send_text(encode_message(message))

    async def _deliver(self, envelope: Dict[str, Any]):
        for callback in list(self.listeners):
            try:
                result = callback(envelope)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error(f"Callback error on {self.key}: {e}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "mode": self.mode.value,
            "state": self.state.value,
            "streams": list(self.streams),
            "request": self.request.req if self.request else None,
            "is_alive": self.is_alive,
            "auto_reconnect": self.auto_reconnect,
            "listeners": len(self.listeners),
            "messages_received": self.messages_received,
            "uptime_seconds": time.time() - self.created_at,
        }
