"""
Thin adapter around a ``websockets`` client connection so the connection
state machine only sees the handful of operations it needs: send text,
ping with a pong callback, graceful close and hard terminate.
"""
import asyncio
from typing import Any, Callable, Optional


class WebSocketAdapter:
    """
    Transport seen by a Connection.

    ``websockets`` exposes ``send()``, ``ping()``, ``close()`` and the
    underlying asyncio transport; this class maps the lifecycle verbs onto
    those.
    """

    def __init__(self, connection) -> None:
        self._conn = connection

    async def send_text(self, text: str) -> None:
        """Send a pre-serialized text frame."""
        await self._conn.send(text)

    async def ping(self, on_pong: Callable[[], Any]) -> None:
        """
        Send a protocol ping; ``on_pong`` runs when the matching pong arrives.
        A ping that is never answered simply never calls back.
        """
        waiter = await self._conn.ping()

        def _done(fut: "asyncio.Future") -> None:
            if fut.cancelled() or fut.exception() is not None:
                return
            on_pong()

        waiter.add_done_callback(_done)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        """Initiate the closing handshake."""
        await self._conn.close(code, reason)

    def terminate(self) -> None:
        """Drop the TCP connection without a closing handshake."""
        self._conn.transport.abort()

    @property
    def close_code(self) -> Optional[int]:
        return getattr(self._conn, "close_code", None)

    @property
    def close_reason(self) -> str:
        return getattr(self._conn, "close_reason", None) or ""
