"""
Shared fixtures: an in-memory stand-in for a ``websockets`` client connection
and a connect factory that hands them out.
"""
import asyncio
import gzip
import json
from typing import Any, Dict, List

import pytest
import pytest_asyncio

from huobi_stream.client import HuobiStreamClient
from huobi_stream.config import Settings

_CLOSED = object()


class FakeTransport:
    def __init__(self, socket: "FakeSocket"):
        self.socket = socket

    def abort(self):
        self.socket.aborted = True
        self.socket.finish(1006, "")


class FakeSocket:
    """Behaves like an open client connection until closed or aborted."""

    def __init__(self, url: str, **options):
        self.url = url
        self.options = options
        self.sent: List[str] = []
        self.pings: List[asyncio.Future] = []
        self.incoming: asyncio.Queue = asyncio.Queue()
        self.close_code = None
        self.close_reason = None
        self.aborted = False
        self.transport = FakeTransport(self)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        self.finish(1000, "")
        return False

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self.incoming.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item

    async def send(self, text: str):
        self.sent.append(text)

    async def ping(self):
        waiter = asyncio.get_running_loop().create_future()
        self.pings.append(waiter)
        return waiter

    async def close(self, code: int = 1000, reason: str = ""):
        self.finish(code, reason)

    def finish(self, code: int, reason: str):
        if self.close_code is None:
            self.close_code = code
            self.close_reason = reason
            self.incoming.put_nowait(_CLOSED)

    # Test helpers

    def feed(self, envelope: Dict[str, Any]):
        """Queue a gzip-compressed JSON frame, as the exchange sends them."""
        self.incoming.put_nowait(gzip.compress(json.dumps(envelope).encode("utf-8")))

    def feed_raw(self, data):
        self.incoming.put_nowait(data)

    def answer_pings(self):
        for waiter in self.pings:
            if not waiter.done():
                waiter.set_result(0.0)

    @property
    def closed(self) -> bool:
        return self.close_code is not None

    def sent_json(self) -> List[Dict[str, Any]]:
        return [json.loads(text) for text in self.sent]


class RefusedConnect:
    async def __aenter__(self):
        raise OSError(111, "Connection refused")

    async def __aexit__(self, *exc):
        return False


class FakeConnector:
    """Stand-in for ``websockets.connect``; records every socket it opens."""

    def __init__(self):
        self.sockets: List[FakeSocket] = []
        self.attempts = 0
        self.refuse = 0

    def __call__(self, url: str, **options):
        self.attempts += 1
        if self.refuse:
            self.refuse -= 1
            return RefusedConnect()
        socket = FakeSocket(url, **options)
        self.sockets.append(socket)
        return socket

    @property
    def last(self) -> FakeSocket:
        return self.sockets[-1]


async def settle(rounds: int = 20):
    """Let pending callbacks and tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
def messages() -> List[str]:
    return []


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        HUOBI_RECONNECT=True,
        HUOBI_VERBOSE=True,
        HEARTBEAT_INTERVAL=3600,
        RECONNECT_DELAY_INITIAL=0.0,
        RECONNECT_MAX_ATTEMPTS=None,
    )


@pytest_asyncio.fixture
async def client(connector, messages, test_settings):
    client = HuobiStreamClient(settings=test_settings, log=messages.append, connect=connector)
    yield client
    await client.close()
