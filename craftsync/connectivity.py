"""
Craftify Sync - Connectivity Monitor

Tracks reachability transitions. The platform reachability callback (or the
built-in health probe loop) calls set_connected(); every remote operation
reads is_connected to short-circuit network calls.
"""

import asyncio
import logging
from typing import Callable, Optional

import httpx

logger = logging.getLogger(__name__)

Listener = Callable[[bool], None]


class ConnectivityMonitor:
    """Boolean reachability signal with change listeners."""

    def __init__(self, initially_connected: bool = True):
        self._connected = initially_connected
        self._listeners: list[Listener] = []
        self._probe_task: Optional[asyncio.Task] = None

    @property
    def is_connected(self) -> bool:
        return self._connected

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Register a transition listener; returns a function that removes it."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def set_connected(self, connected: bool) -> None:
        """Record a reachability update; listeners fire only on transitions."""
        if connected == self._connected:
            return
        self._connected = connected
        logger.info(f"Connectivity changed: {'online' if connected else 'offline'}")
        for listener in list(self._listeners):
            listener(connected)

    # === Health Probing ===

    async def probe(self, client: httpx.AsyncClient, url: str) -> bool:
        """Probe the health endpoint once and record the outcome."""
        try:
            response = await client.get(url)
            connected = response.status_code == 200
        except httpx.RequestError as e:
            logger.debug(f"Health probe failed: {e}")
            connected = False
        self.set_connected(connected)
        return connected

    async def _probe_loop(self, client: httpx.AsyncClient, url: str, interval: float) -> None:
        while True:
            await self.probe(client, url)
            await asyncio.sleep(interval)

    def start_probing(self, client: httpx.AsyncClient, url: str, interval: float) -> None:
        """Start probing in the background."""
        if self._probe_task and not self._probe_task.done():
            logger.warning("Connectivity probing already running")
            return
        self._probe_task = asyncio.create_task(self._probe_loop(client, url, interval))

    async def stop_probing(self) -> None:
        """Stop background probing."""
        if self._probe_task:
            self._probe_task.cancel()
            try:
                await self._probe_task
            except asyncio.CancelledError:
                pass
            self._probe_task = None
