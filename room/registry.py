"""
Client Registry: Fixed-capacity slot table of connected clients.
Handles admission (lowest free index first), capacity rejection and eviction.
"""

from __future__ import annotations
import socket
from typing import List, Optional, Tuple, TYPE_CHECKING
from transport.channel import LineChannel
from transport.models import AdmitResult, AdmitStatus, Slot, SlotState
import logging

if TYPE_CHECKING:
    from config import ServerConfig

logger = logging.getLogger(__name__)


class ClientRegistry:
    """
    Owns every client connection of the room.
    Slot indexes never shift: an evicted entry becomes None in place.
    Only touched from the server loop, so no locking.
    """

    def __init__(self, config: "ServerConfig"):
        self.config = config
        self._slots: List[Optional[Slot]] = [None] * config.capacity

    @property
    def capacity(self) -> int:
        return len(self._slots)

    def try_admit(self, connection: socket.socket, peer: str = "") -> AdmitResult:
        """
        Assign a new connection to the first empty slot.
        When the room is full the connection gets the room-full notice and
        is closed; nothing is queued.
        """
        try:
            channel = LineChannel(
                connection,
                max_line_bytes=self.config.max_line_bytes,
                write_timeout=self.config.write_timeout,
            )
        except OSError as e:
            logger.error(f"[REGISTRY] Cannot set non-blocking mode for {peer}: {e}")
            connection.close()
            return AdmitResult(AdmitStatus.REJECTED, detail=f"nonblocking: {e}")

        for index, slot in enumerate(self._slots):
            if slot is None:
                self._slots[index] = Slot(index=index, channel=channel, peer=peer)
                logger.info(f"[SLOT {index}] Client {peer} connected")
                return AdmitResult(AdmitStatus.ADMITTED, slot_index=index)

        result = channel.write_line(self.config.room_full_notice)
        if not result.ok:
            logger.warning(f"[REGISTRY] Could not send room-full notice to {peer}: {result.detail}")
        channel.close()
        logger.info(f"[REGISTRY] Rejected {peer}: room is full ({self.capacity} slots)")
        return AdmitResult(AdmitStatus.REJECTED, detail="full")

    def slot_at(self, index: int) -> Optional[Slot]:
        if 0 <= index < len(self._slots):
            return self._slots[index]
        return None

    def channel_at(self, index: int) -> Optional[LineChannel]:
        slot = self.slot_at(index)
        return slot.channel if slot else None

    def occupied_slots(self) -> List[Tuple[int, LineChannel]]:
        """(index, channel) pairs in ascending index order."""
        return [(s.index, s.channel) for s in self._slots if s is not None]

    def get_all_slots(self) -> List[Optional[Slot]]:
        return list(self._slots)

    def evict(self, index: int) -> bool:
        """
        Close the channel in a slot and mark it empty.
        Returns False if the slot was already empty.
        """
        slot = self.slot_at(index)
        if slot is None:
            return False
        self._slots[index] = None
        slot.channel.close()
        logger.info(f"[SLOT {index}] Client {slot.peer} disconnected")
        return True

    def close_all(self):
        for index, _ in self.occupied_slots():
            self.evict(index)

    def count_occupied(self) -> int:
        return sum(1 for s in self._slots if s is not None)

    def count_available(self) -> int:
        return self.capacity - self.count_occupied()

    def is_full(self) -> bool:
        return self.count_available() == 0

    def state_of(self, index: int) -> SlotState:
        return SlotState.OCCUPIED if self.slot_at(index) else SlotState.EMPTY

    def get_status_summary(self) -> str:
        """Formatted slot table for logs and the dashboard."""
        lines = ["=== SLOT STATUS ==="]
        for index, slot in enumerate(self._slots):
            if slot is None:
                lines.append(f"Slot {index}: [{SlotState.EMPTY.value}]")
            else:
                lines.append(
                    f"Slot {index}: [{SlotState.OCCUPIED.value}] {slot.peer} "
                    f"since {slot.admitted_at:%H:%M:%S}, {slot.lines_received} lines"
                )
        lines.append(f"=== {self.count_occupied()}/{self.capacity} OCCUPIED ===")
        return "\n".join(lines)
