"""
Tests for the transport adapter against a real local websockets server.
"""
import asyncio

import pytest
import websockets
from websockets.exceptions import ConnectionClosed

from huobi_stream.websocket.adapter import WebSocketAdapter


async def drain(ws):
    try:
        async for _ in ws:
            pass
    except ConnectionClosed:
        pass


@pytest.mark.asyncio
class TestLoopback:
    """Ping, send and abort over 127.0.0.1."""

    async def test_pong_runs_callback(self):
        async with websockets.serve(drain, "127.0.0.1", 0) as server:
            port = server.sockets[0].getsockname()[1]
            async with websockets.connect(f"ws://127.0.0.1:{port}", ping_interval=None) as ws:
                adapter = WebSocketAdapter(ws)
                ponged = asyncio.Event()

                await adapter.ping(ponged.set)
                await asyncio.wait_for(ponged.wait(), timeout=5)
                await adapter.send_text('{"sub": "market.btcusdt.trade.detail"}')

    async def test_terminate_aborts_without_handshake(self):
        async with websockets.serve(drain, "127.0.0.1", 0) as server:
            port = server.sockets[0].getsockname()[1]
            async with websockets.connect(f"ws://127.0.0.1:{port}", ping_interval=None) as ws:
                adapter = WebSocketAdapter(ws)
                adapter.terminate()

                with pytest.raises(ConnectionClosed):
                    await asyncio.wait_for(ws.recv(), timeout=5)
                assert adapter.close_code == 1006
                assert adapter.close_reason == ""

    async def test_graceful_close(self):
        async with websockets.serve(drain, "127.0.0.1", 0) as server:
            port = server.sockets[0].getsockname()[1]
            async with websockets.connect(f"ws://127.0.0.1:{port}", ping_interval=None) as ws:
                adapter = WebSocketAdapter(ws)
                await adapter.close(1000, "done")

                assert adapter.close_code == 1000
