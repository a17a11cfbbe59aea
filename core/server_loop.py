"""
Server Loop: single-threaded control loop of the relay.
Each tick polls every occupied slot in index order, redistributes the lines
it finds, then tries to admit one pending connection.
"""

from __future__ import annotations
import asyncio
import socket
from typing import Optional, TYPE_CHECKING
from transport.listener import try_accept
from transport.models import CloseReason, RelayStats
from room.broadcast import BroadcastEngine
from room.registry import ClientRegistry
import logging

if TYPE_CHECKING:
    from config import ServerConfig

logger = logging.getLogger(__name__)


class ServerLoop:
    """
    Runs ticks until stopped or until the listening socket fails.
    ListenerError from the admission phase is not caught here.
    """

    def __init__(
        self,
        config: "ServerConfig",
        listener: socket.socket,
        registry: Optional[ClientRegistry] = None,
    ):
        self.config = config
        self.listener = listener
        self.stats = RelayStats()
        self.registry = registry or ClientRegistry(config)
        self.broadcast = BroadcastEngine(self.registry, self.stats)
        self._running = False
        self._closed = False

    @property
    def is_running(self) -> bool:
        return self._running

    def tick(self):
        """One poll phase followed by one admission attempt."""
        self.stats.ticks += 1
        self._poll_phase()
        self._admission_phase()

    def _poll_phase(self):
        # Re-read each index: redistribution may have emptied a later slot.
        for index in range(self.registry.capacity):
            slot = self.registry.slot_at(index)
            if slot is None:
                continue

            result = slot.channel.try_read_line()
            if result.is_line:
                slot.lines_received += 1
                self.stats.lines_received += 1
                logger.info(
                    f"[SERVER] Received message from client {index}: "
                    f"{result.line.decode('utf-8', errors='replace').rstrip()}"
                )
                evictions = self.broadcast.redistribute(index, result.line)
                if evictions:
                    logger.info(
                        f"[SERVER] Relaying from client {index} evicted slots "
                        f"{[e.slot_index for e in evictions]}. "
                        f"{self.registry.count_occupied()}/{self.registry.capacity} occupied"
                    )
            elif result.is_closed:
                if result.reason == CloseReason.EOF:
                    logger.info(f"[SLOT {index}] Client reached EOF (closed connection)")
                else:
                    logger.warning(
                        f"[SLOT {index}] Read failed ({result.reason.value}): {result.detail}"
                    )
                if self.registry.evict(index):
                    self.stats.evicted += 1

    def _admission_phase(self):
        accepted = try_accept(self.listener)
        if accepted is None:
            return
        conn, peer = accepted
        result = self.registry.try_admit(conn, peer)
        if result.admitted:
            self.stats.admitted += 1
        else:
            self.stats.rejected += 1

    async def start(self):
        """Tick, then yield for tick_interval, until stopped."""
        self._running = True
        logger.info(
            f"[SERVER] Relay running. Capacity: {self.registry.capacity} slots. "
            f"Tick: {self.config.tick_interval}s"
        )
        try:
            while self._running:
                self.tick()
                await asyncio.sleep(self.config.tick_interval)
        finally:
            self._running = False

    async def stop(self):
        self._running = False

    def close(self):
        """Drop every client and release the listening socket."""
        if self._closed:
            return
        self._closed = True
        self.registry.close_all()
        self.listener.close()
        logger.info(
            f"[SERVER] Closed. Admitted: {self.stats.admitted}, "
            f"rejected: {self.stats.rejected}, relayed: {self.stats.lines_received} lines"
        )
