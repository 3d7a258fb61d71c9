"""
Public streaming client.
Creates or reuses connections for subscriptions and one-shot requests,
and rebuilds them after organic closes when reconnection was requested.
"""
import asyncio
from typing import Any, Callable, Dict, List, Optional, Union

import websockets
from pydantic import ValidationError

from huobi_stream.config import Settings, settings as default_settings
from huobi_stream.exceptions import ContractViolation
from huobi_stream.utils.logging import EventLog, LogSink, get_logger
from huobi_stream.websocket.codec import Inflate, gzip_inflate
from huobi_stream.websocket.connection import Connection, EventCallback
from huobi_stream.websocket.manager import ConnectionManager
from huobi_stream.websocket.models import (
    CombinedStreams,
    Mode,
    RequestMessage,
    combined_key,
    depth_stream,
    detail_stream,
    kline_stream,
    next_request_id,
    request_key,
    trade_stream,
)

logger = get_logger("client")

# Bounds accepted by the kline history request
KLINE_TIME_MIN = 1501171200
KLINE_TIME_MAX = 2524579200


class HuobiStreamClient:
    """
    Entry point for applications.

    Features:
    - One socket per stream, per combined stream list, or per one-shot request
    - Duplicate subscriptions share the socket already open for that key
    - Shared heartbeat that terminates sockets which stop answering pings
    - Automatic resubscription after organic closes, with backoff on failures
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        log: Optional[LogSink] = None,
        inflate: Inflate = gzip_inflate,
        connect: Callable[..., Any] = websockets.connect,
    ):
        self.settings = settings or default_settings.model_copy()
        self.events = EventLog(sink=log, verbose=self.settings.HUOBI_VERBOSE)
        self.manager = ConnectionManager(
            heartbeat_interval=self.settings.HEARTBEAT_INTERVAL,
            events=self.events,
        )
        self._inflate = inflate
        self._connect = connect

    # ------------------------------------------------------------------
    # Options
    # ------------------------------------------------------------------

    @property
    def options(self) -> Settings:
        return self.settings

    def set_option(self, name: str, value: Any):
        """Change one setting; affects connections created afterwards."""
        name = name.upper()
        if name not in Settings.model_fields:
            raise ContractViolation(f"Unknown option: {name}")
        setattr(self.settings, name, value)
        if name == "HUOBI_VERBOSE":
            self.events.verbose_enabled = bool(value)
        elif name == "HEARTBEAT_INTERVAL":
            self.manager.heartbeat_interval = float(value)

    def _connect_options(self) -> Dict[str, Any]:
        return {
            "ping_interval": None,  # Heartbeat is driven by the manager
            "ping_timeout": None,
            "close_timeout": self.settings.WS_CLOSE_TIMEOUT,
            "max_size": self.settings.WS_MAX_MESSAGE_SIZE,
            "open_timeout": self.settings.HUOBI_OPEN_TIMEOUT,
        }

    def reconnect_delay(self, attempt: int) -> float:
        """
        Delay before dialing a replacement socket.
        Immediate after a healthy session, exponential while dials keep failing.
        """
        if attempt <= 0:
            return 0.0
        delay = self.settings.RECONNECT_DELAY_INITIAL * (
            self.settings.RECONNECT_DELAY_MULTIPLIER ** (attempt - 1)
        )
        return min(delay, self.settings.RECONNECT_DELAY_MAX)

    # ------------------------------------------------------------------
    # Public subscribe API
    # ------------------------------------------------------------------

    def subscribe(self, stream: str, on_event: EventCallback, reconnect: bool = False) -> str:
        """
        Subscribe to one stream, e.g. ``market.btcusdt.trade.detail``.

        Returns:
            The registry key (the stream name itself)
        """
        if not stream:
            raise ContractViolation("Stream name must not be empty")
        self.events.verbose(f"Subscribed to {stream}")
        return self._open(Mode.SINGLE, stream, [stream], [on_event], reconnect).key

    def subscribe_combined(self, streams: List[str], on_event: EventCallback, reconnect: bool = False) -> str:
        """
        Subscribe to several streams over one socket.

        Order matters: the same list in another order is another socket.
        Raises ContractViolation for an empty list or duplicate streams.
        """
        try:
            streams = CombinedStreams(streams=streams).streams
        except ValidationError as e:
            raise ContractViolation(_first_error(e)) from e

        key = combined_key(streams)
        self.events.verbose(f"CombinedStream: Subscribed to [{key}] {'/'.join(streams)}")
        return self._open(Mode.COMBINED, key, streams, [on_event], reconnect).key

    def request_once(self, payload: Union[RequestMessage, Dict[str, Any]], on_event: EventCallback) -> str:
        """
        Send one ``req`` message and deliver the first reply, then close.
        The payload must carry ``req``; its ``id`` is assigned here.
        """
        try:
            if isinstance(payload, RequestMessage):
                request = payload.model_copy()
            else:
                request = RequestMessage.model_validate(payload)
        except ValidationError as e:
            raise ContractViolation(f"Wrong params format: {payload}: {_first_error(e)}") from e

        request.id = next_request_id()
        self.events.verbose(f"Request once to {request.req}")
        connection = self._open(Mode.REQUEST_ONCE, request_key(request), [], [on_event], False, request=request)
        return connection.key

    def list_active_connections(self) -> Dict[str, Connection]:
        """Registry snapshot: key -> open connection."""
        return self.manager.get_all_connections()

    def terminate(self, key: str) -> bool:
        """
        Stop the socket behind ``key`` without reconnecting.

        Returns:
            True if a connection was found
        """
        connection = self.manager.find(key)
        if connection is None:
            return False
        self.events.verbose(f"Terminating WebSocket: {key}")
        connection.terminate(manual=True)
        return True

    async def close(self):
        """Terminate every connection and wait for their drivers to finish."""
        connections = list(self.manager.get_all_connections().values())
        connections += list(self.manager.get_pending_connections().values())
        self.manager.terminate_all()

        tasks = [c.task for c in connections if c.task is not None and not c.task.done()]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Streaming client closed")

    # ------------------------------------------------------------------
    # Market feeds
    # ------------------------------------------------------------------

    def sub_kline(self, symbols: Union[str, List[str]], interval: str, on_event: EventCallback) -> str:
        """Candles for one symbol, or for a list over one combined socket."""
        if isinstance(symbols, str):
            return self.subscribe(kline_stream(symbols, interval), on_event, reconnect=True)
        return self.subscribe_combined(
            [kline_stream(s, interval) for s in symbols], on_event, reconnect=True
        )

    def sub_depth(self, symbols: Union[str, List[str]], on_event: EventCallback, depth_type: str = "step0") -> str:
        """Order book depth for one symbol or a list of symbols."""
        if isinstance(symbols, str):
            return self.subscribe(depth_stream(symbols, depth_type), on_event, reconnect=True)
        return self.subscribe_combined(
            [depth_stream(s, depth_type) for s in symbols], on_event, reconnect=True
        )

    def sub_trade(self, symbol: str, on_event: EventCallback) -> str:
        return self.subscribe(trade_stream(symbol), on_event, reconnect=True)

    def req_kline(
        self,
        symbol: str,
        period: str,
        on_event: EventCallback,
        start: Optional[int] = None,
        end: Optional[int] = None,
    ) -> str:
        """
        Kline history between ``start`` and ``end`` (unix seconds).
        Bounds are clamped to the range the exchange serves.
        """
        if start is not None:
            start = max(min(start, KLINE_TIME_MAX), KLINE_TIME_MIN)
        if end is not None:
            end = max(min(end, KLINE_TIME_MAX), KLINE_TIME_MIN)
        if start is not None and end is not None and start >= end:
            raise ContractViolation(f"from {start} >= to {end}")

        request = RequestMessage(req=kline_stream(symbol, period), from_=start, to=end)
        return self.request_once(request, on_event)

    def req_depth(self, symbol: str, on_event: EventCallback, depth_type: str = "step0") -> str:
        return self.request_once(RequestMessage(req=depth_stream(symbol, depth_type)), on_event)

    def req_trade(self, symbol: str, on_event: EventCallback) -> str:
        return self.request_once(RequestMessage(req=trade_stream(symbol)), on_event)

    def req_detail(self, symbol: str, on_event: EventCallback) -> str:
        return self.request_once(RequestMessage(req=detail_stream(symbol)), on_event)

    # ------------------------------------------------------------------
    # Connection construction
    # ------------------------------------------------------------------

    def _open(
        self,
        mode: Mode,
        key: str,
        streams: List[str],
        listeners: List[EventCallback],
        reconnect: bool,
        request: Optional[RequestMessage] = None,
        attempt: int = 0,
    ) -> Connection:
        """Reuse the socket already on file for ``key`` or start a new one."""
        existing = self.manager.find(key)
        if existing is not None:
            for callback in listeners:
                if callback not in existing.listeners:
                    existing.add_listener(callback)
            logger.debug(f"Reusing connection {key} ({len(existing.listeners)} listeners)")
            return existing

        connection = Connection(
            key=key,
            mode=mode,
            url=self.settings.ws_url,
            manager=self.manager,
            events=self.events,
            listeners=listeners,
            streams=streams,
            request=request,
            auto_reconnect=self.settings.HUOBI_RECONNECT,
            attempt=attempt,
            inflate=self._inflate,
            connect=self._connect,
            connect_options=self._connect_options(),
        )
        if reconnect:
            connection.on_reconnect = lambda next_attempt: self._reopen(connection, next_attempt)

        self.manager.track(connection)
        connection.start(self.reconnect_delay(attempt))
        return connection

    def _reopen(self, closed: Connection, attempt: int) -> Optional[Connection]:
        """Build the replacement for a closed connection."""
        max_attempts = self.settings.RECONNECT_MAX_ATTEMPTS
        if max_attempts is not None and attempt > max_attempts:
            self.events.error(f"WebSocket reconnect abandoned after {max_attempts} attempts: {closed.key}")
            return None

        if attempt > 0:
            logger.info(f"Reconnecting {closed.key} in {self.reconnect_delay(attempt):.1f}s (attempt {attempt})")

        return self._open(
            closed.mode,
            closed.key,
            closed.streams,
            closed.listeners,
            True,
            request=closed.request,
            attempt=attempt,
        )

    def get_stats(self) -> Dict[str, Any]:
        """Get client statistics."""
        stats = self.manager.get_stats()
        stats["url"] = self.settings.ws_url
        stats["reconnect"] = self.settings.HUOBI_RECONNECT
        return stats


def _first_error(error: ValidationError) -> str:
    """Human-readable message of the first validation failure."""
    errors = error.errors()
    if not errors:
        return str(error)
    message = errors[0].get("msg", str(error))
    return message.removeprefix("Value error, ")
