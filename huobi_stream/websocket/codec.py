"""
Envelope codec for the push feed.
Inbound binary frames are compressed JSON; outbound control messages are
compact JSON text.
"""
import json
import zlib
from typing import Any, Callable, Dict, Union

from pydantic import BaseModel

from huobi_stream.exceptions import FrameDecodeError

# Pluggable inflate step: compressed bytes -> UTF-8 text
Inflate = Callable[[bytes], str]

# wbits for zlib that accept both gzip and zlib headers
_AUTO_HEADER_WBITS = zlib.MAX_WBITS | 32


def gzip_inflate(data: bytes) -> str:
    """Inflate a gzip (or zlib) compressed frame into text."""
    return zlib.decompress(data, _AUTO_HEADER_WBITS).decode("utf-8")


def decode_frame(data: Union[bytes, str], inflate: Inflate = gzip_inflate) -> Dict[str, Any]:
    """
    Decode one inbound frame into an envelope.

    Binary frames go through ``inflate``; text frames are parsed as-is.
    Raises FrameDecodeError when the frame cannot be turned into a JSON object.
    """
    if isinstance(data, (bytes, bytearray, memoryview)):
        # inflate is caller-supplied, so any failure counts as a bad frame
        try:
            text = inflate(bytes(data))
        except Exception as e:
            raise FrameDecodeError(f"Inflate failed: {e}") from e
    else:
        text = data

    try:
        envelope = json.loads(text)
    except (TypeError, ValueError) as e:
        raise FrameDecodeError(str(e)) from e

    if not isinstance(envelope, dict):
        raise FrameDecodeError(f"Expected a JSON object, got {type(envelope).__name__}")
    return envelope


def encode_message(message: Union[BaseModel, Dict[str, Any]]) -> str:
    """Serialize an outbound control message as compact JSON."""
    if isinstance(message, BaseModel):
        return message.model_dump_json(by_alias=True, exclude_none=True)
    return json.dumps(message, separators=(",", ":"))
