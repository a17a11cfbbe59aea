"""
Data models for the line relay.
Reads, writes and admissions report outcomes as values; only setup and
listener failures are raised.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from transport.channel import LineChannel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReadStatus(Enum):
    LINE = "LINE"
    NO_DATA = "NO_DATA"
    CLOSED = "CLOSED"


class CloseReason(Enum):
    EOF = "EOF"
    READ_ERROR = "READ_ERROR"
    WRITE_ERROR = "WRITE_ERROR"
    OVERFLOW = "OVERFLOW"
    SHUTDOWN = "SHUTDOWN"


class AdmitStatus(Enum):
    ADMITTED = "ADMITTED"
    REJECTED = "REJECTED"


class SlotState(Enum):
    EMPTY = "EMPTY"
    OCCUPIED = "OCCUPIED"


@dataclass
class ReadResult:
    """Outcome of one non-blocking line read."""
    status: ReadStatus
    line: Optional[bytes] = None
    reason: Optional[CloseReason] = None
    detail: str = ""

    @property
    def is_line(self) -> bool:
        return self.status == ReadStatus.LINE

    @property
    def is_closed(self) -> bool:
        return self.status == ReadStatus.CLOSED


@dataclass
class WriteResult:
    ok: bool
    detail: str = ""


@dataclass
class AdmitResult:
    status: AdmitStatus
    slot_index: Optional[int] = None
    detail: str = ""

    @property
    def admitted(self) -> bool:
        return self.status == AdmitStatus.ADMITTED


@dataclass
class Eviction:
    """A slot torn down while redistributing a line."""
    slot_index: int
    reason: CloseReason
    detail: str = ""


@dataclass
class Slot:
    """Occupied registry entry. Empty entries are stored as None."""
    index: int
    channel: "LineChannel"
    peer: str = ""
    admitted_at: datetime = field(default_factory=_utcnow)
    lines_received: int = 0


@dataclass
class RelayStats:
    """Session counters, reset on every server start."""
    admitted: int = 0
    rejected: int = 0
    evicted: int = 0
    lines_received: int = 0
    lines_delivered: int = 0
    ticks: int = 0
    started_at: datetime = field(default_factory=_utcnow)


class LineTooLongError(Exception):
    """Buffered data reached the line bound without a terminator."""


class SetupError(Exception):
    """Socket creation, bind, listen, connect or mode configuration failed."""

    def __init__(self, stage: str, cause: BaseException):
        super().__init__(f"{stage}: {cause}")
        self.stage = stage
        self.cause = cause


class ListenerError(Exception):
    """Accept failed for a reason other than no pending connection."""
