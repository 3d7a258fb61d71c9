"""
Connection registry and shared heartbeat.
Tracks every open socket by key and runs the single liveness timer.
"""
import asyncio
from typing import Dict, Optional, Any

from huobi_stream.utils.logging import EventLog, get_logger
from huobi_stream.websocket.connection import Connection

logger = get_logger("websocket.manager")


class ConnectionManager:
    """
    Owns the subscription registry and the heartbeat timer.

    Invariants:
    - a key is registered iff its Connection has opened and not yet closed
    - the heartbeat task runs iff the registry is non-empty
    Connections that are still dialing are kept in a separate pending map so
    duplicate subscriptions can find them.
    """

    def __init__(self, heartbeat_interval: float = 30.0, events: Optional[EventLog] = None):
        self.heartbeat_interval = heartbeat_interval
        self.events = events or EventLog()

        self._registry: Dict[str, Connection] = {}
        self._pending: Dict[str, Connection] = {}
        self._heartbeat_task: Optional[asyncio.Task] = None

        # Stats
        self._total_opened = 0
        self._total_terminated = 0

    @property
    def active_count(self) -> int:
        """Number of currently open connections."""
        return len(self._registry)

    @property
    def heartbeat_running(self) -> bool:
        return self._heartbeat_task is not None and not self._heartbeat_task.done()

    def track(self, connection: Connection):
        """Remember a connection that has not opened yet."""
        self._pending[connection.key] = connection

    def find(self, key: str) -> Optional[Connection]:
        """Open connection for ``key``, else one still dialing, else None. Retired ones are skipped."""
        for connection in (self._registry.get(key), self._pending.get(key)):
            if connection is not None and not connection.is_retired:
                return connection
        return None

    def get_all_connections(self) -> Dict[str, Connection]:
        """Snapshot of the registry."""
        return self._registry.copy()

    def get_pending_connections(self) -> Dict[str, Connection]:
        return self._pending.copy()

    def register(self, connection: Connection):
        """Open transition: move from pending to the registry."""
        if self._pending.get(connection.key) is connection:
            del self._pending[connection.key]

        if not self._registry:
            self._start_heartbeat()
        self._registry[connection.key] = connection
        self._total_opened += 1
        logger.debug(f"Registered {connection.key}. Active: {self.active_count}")

    def unregister(self, connection: Connection):
        """Close transition: forget the connection if it is still the one on file."""
        if self._pending.get(connection.key) is connection:
            del self._pending[connection.key]

        if self._registry.get(connection.key) is connection:
            del self._registry[connection.key]
            if not self._registry:
                self._stop_heartbeat()
            logger.debug(f"Unregistered {connection.key}. Active: {self.active_count}")

    # ------------------------------------------------------------------
    # Heartbeat
    # ------------------------------------------------------------------

    def _start_heartbeat(self):
        if self.heartbeat_running:
            return
        self._heartbeat_task = asyncio.get_running_loop().create_task(self._heartbeat())
        logger.debug("Heartbeat started")

    def _stop_heartbeat(self):
        task, self._heartbeat_task = self._heartbeat_task, None
        if task is not None and not task.done():
            task.cancel()
            logger.debug("Heartbeat stopped")

    async def _heartbeat(self):
        """Check every open connection once per interval."""
        try:
            while True:
                await asyncio.sleep(self.heartbeat_interval)
                await self.tick()
        except asyncio.CancelledError:
            pass

    async def tick(self):
        """
        One liveness pass. A connection that answered the previous ping is
        pinged again; one that did not is terminated, and its close signal
        takes care of unregistering and reconnecting.
        """
        for connection in list(self._registry.values()):
            # Closed by an earlier step of this pass
            if self._registry.get(connection.key) is not connection:
                continue
            try:
                if connection.is_alive:
                    connection.is_alive = False
                    await connection.ping()
                else:
                    self.events.verbose(f"Terminating inactive/broken WebSocket: {connection.key}")
                    self._total_terminated += 1
                    connection.terminate()
            except Exception as e:
                logger.warning(f"Heartbeat failed for {connection.key}: {e}")

    # ------------------------------------------------------------------
    # Shutdown & stats
    # ------------------------------------------------------------------

    def terminate_all(self):
        """Manually terminate every open and pending connection."""
        for connection in list(self._registry.values()) + list(self._pending.values()):
            connection.terminate(manual=True)

    def get_stats(self) -> Dict[str, Any]:
        """Get registry statistics."""
        return {
            "active_connections": self.active_count,
            "pending_connections": len(self._pending),
            "heartbeat_running": self.heartbeat_running,
            "heartbeat_interval": self.heartbeat_interval,
            "total_opened_lifetime": self._total_opened,
            "total_terminated_by_heartbeat": self._total_terminated,
            "connections": {key: conn.to_dict() for key, conn in self._registry.items()},
        }
