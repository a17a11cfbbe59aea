"""
Broadcast Engine: fans one received line out to every other client.
"""

from __future__ import annotations
from typing import List, Optional, TYPE_CHECKING
from transport.models import CloseReason, Eviction, RelayStats
import logging

if TYPE_CHECKING:
    from room.registry import ClientRegistry

logger = logging.getLogger(__name__)


class BroadcastEngine:
    """
    Delivers in ascending slot order. A recipient whose write fails is
    evicted on the spot and the broadcast carries on with the rest.
    """

    def __init__(self, registry: "ClientRegistry", stats: Optional[RelayStats] = None):
        self.registry = registry
        self.stats = stats if stats is not None else RelayStats()

    def redistribute(self, source_index: int, line: bytes) -> List[Eviction]:
        evictions: List[Eviction] = []

        for index, channel in self.registry.occupied_slots():
            if index == source_index:
                continue

            result = channel.write_line(line)
            if result.ok:
                self.stats.lines_delivered += 1
                continue

            logger.warning(f"[BROADCAST] Write to slot {index} failed: {result.detail}")
            if self.registry.evict(index):
                self.stats.evicted += 1
            evictions.append(Eviction(index, CloseReason.WRITE_ERROR, result.detail))
            logger.info(f"[BROADCAST] Client {index} disconnected during message redistribution")

        return evictions
