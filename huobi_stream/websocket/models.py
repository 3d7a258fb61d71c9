"""
Pydantic models for the Huobi push protocol envelopes.
Only the fields needed for protocol handling are modelled; data envelopes
are passed to callers untouched.
"""
import itertools
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Mode(str, Enum):
    """How a connection obtains its data."""
    SINGLE = "single"
    COMBINED = "combined"
    REQUEST_ONCE = "request_once"


class ConnectionState(str, Enum):
    """Lifecycle of one physical socket."""
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


# Process-wide channel id counter: id0, id1, ... never reused
_channel_idx = itertools.count()


def next_request_id() -> str:
    """Allocate the next control message id."""
    return f"id{next(_channel_idx)}"


# =============================================================================
# Client -> Server Messages
# =============================================================================

class SubscribeMessage(BaseModel):
    """
    Subscription control message.

    Example:
    {"id": "id3", "sub": "market.btcusdt.kline.1min"}
    """
    id: str
    sub: str = Field(..., min_length=1)


class RequestMessage(BaseModel):
    """
    One-shot request.

    Example:
    {"id": "id4", "req": "market.btcusdt.kline.1min", "from": 1501171200, "to": 1501174800}
    """
    model_config = ConfigDict(populate_by_name=True, extra="allow")  # Extra request fields are sent as given

    id: Optional[str] = None
    req: str = Field(..., min_length=1)
    from_: Optional[int] = Field(default=None, alias="from")
    to: Optional[int] = None


class PongMessage(BaseModel):
    """Reply to a server heartbeat; echoes the ping value."""
    pong: Any


# =============================================================================
# Server -> Client Messages
# =============================================================================

class PingMessage(BaseModel):
    """Server heartbeat."""
    ping: Any

    @classmethod
    def is_ping(cls, envelope: Any) -> bool:
        return isinstance(envelope, dict) and "ping" in envelope


# =============================================================================
# Stream Names & Keys
# =============================================================================

class CombinedStreams(BaseModel):
    """Ordered, duplicate-free list of stream names for one socket."""
    streams: List[str] = Field(..., min_length=1)

    @field_validator("streams")
    @classmethod
    def validate_unique(cls, v: List[str]) -> List[str]:
        if len(set(v)) != len(v):
            raise ValueError("symbols contain duplicate elements.")
        return v


def stream_hash(text: str) -> str:
    """
    Stable 32-bit string hash (djb2 with xor, walked from the end).
    Used as the registry key for combined streams and one-shot requests.
    """
    h = 5381
    for ch in reversed(text):
        h = ((h * 33) ^ ord(ch)) & 0xFFFFFFFF
    return str(h)


def combined_key(streams: List[str]) -> str:
    """Registry key for an ordered list of streams."""
    return stream_hash("/".join(streams))


def request_key(request: RequestMessage) -> str:
    """Registry key for a one-shot request (includes its id)."""
    return stream_hash(request.model_dump_json(by_alias=True, exclude_none=True))


def kline_stream(symbol: str, interval: str) -> str:
    return f"market.{symbol.lower()}.kline.{interval}"


def depth_stream(symbol: str, depth_type: str = "step0") -> str:
    return f"market.{symbol.lower()}.depth.{depth_type}"


def trade_stream(symbol: str) -> str:
    return f"market.{symbol.lower()}.trade.detail"


def detail_stream(symbol: str) -> str:
    return f"market.{symbol.lower()}.detail"


def summarize(envelope: Dict[str, Any]) -> str:
    """Short description of an envelope for log lines."""
    for field in ("ch", "rep", "subbed", "status"):
        if field in envelope:
            return f"{field}={envelope[field]}"
    return ",".join(sorted(envelope))[:80]
