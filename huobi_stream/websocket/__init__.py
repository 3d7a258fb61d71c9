"""WebSocket package for push-feed connection handling."""
from .adapter import WebSocketAdapter
from .codec import decode_frame, encode_message, gzip_inflate
from .connection import Connection
from .manager import ConnectionManager
from .models import (
    ConnectionState,
    Mode,
    SubscribeMessage,
    RequestMessage,
    PongMessage,
    PingMessage,
    CombinedStreams,
    combined_key,
    request_key,
    stream_hash,
    next_request_id,
)

__all__ = [
    "WebSocketAdapter",
    "decode_frame",
    "encode_message",
    "gzip_inflate",
    "Connection",
    "ConnectionManager",
    "ConnectionState",
    "Mode",
    "SubscribeMessage",
    "RequestMessage",
    "PongMessage",
    "PingMessage",
    "CombinedStreams",
    "combined_key",
    "request_key",
    "stream_hash",
    "next_request_id",
]
