"""
Line Channels: non-blocking, line-buffered wrappers over a stream socket
(LineChannel) or a local file descriptor (LocalInput).
"""

from __future__ import annotations
import os
import select
import socket
import sys
import time
from typing import Optional
from transport.models import (
    CloseReason, LineTooLongError, ReadResult, ReadStatus, WriteResult,
)
import logging

logger = logging.getLogger(__name__)

TERMINATOR = b"\n"
DEFAULT_MAX_LINE_BYTES = 1024


class LineBuffer:
    """
    Accumulates raw bytes and hands out complete lines.
    A line includes its terminator and may be at most max_line_bytes long.
    """

    def __init__(self, max_line_bytes: int = DEFAULT_MAX_LINE_BYTES):
        if max_line_bytes < 2:
            raise ValueError("max_line_bytes must leave room for a terminator")
        self.max_line_bytes = max_line_bytes
        self._buf = bytearray()

    def feed(self, data: bytes):
        self._buf.extend(data)

    def pending(self) -> int:
        return len(self._buf)

    def room(self) -> int:
        """Bytes that can be read before the buffer is full."""
        return max(self.max_line_bytes - len(self._buf), 0)

    def pop_line(self) -> Optional[bytes]:
        """
        Return the next complete line, or None if none is buffered yet.
        Raises LineTooLongError when the bound is reached with no terminator.
        """
        idx = self._buf.find(TERMINATOR, 0, self.max_line_bytes)
        if idx >= 0:
            line = bytes(self._buf[:idx + 1])
            del self._buf[:idx + 1]
            return line
        if len(self._buf) >= self.max_line_bytes:
            raise LineTooLongError(
                f"no terminator within {self.max_line_bytes} bytes"
            )
        return None

    def clear(self):
        self._buf.clear()


class _LineReader:
    """Shared try_read_line logic. Subclasses supply _read_chunk()."""

    def __init__(self, max_line_bytes: int = DEFAULT_MAX_LINE_BYTES):
        self._buffer = LineBuffer(max_line_bytes)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _read_chunk(self, size: int) -> bytes:
        raise NotImplementedError

    def try_read_line(self) -> ReadResult:
        """
        Return one buffered line, or perform at most one non-blocking read.
        Never blocks. A CLOSED result leaves the handle open; tearing it
        down is up to the owner.
        """
        if self._closed:
            return ReadResult(ReadStatus.CLOSED, reason=CloseReason.SHUTDOWN,
                              detail="channel already closed")
        try:
            line = self._buffer.pop_line()
            if line is not None:
                return ReadResult(ReadStatus.LINE, line=line)

            try:
                data = self._read_chunk(self._buffer.room())
            except BlockingIOError:
                return ReadResult(ReadStatus.NO_DATA)
            except OSError as e:
                return ReadResult(ReadStatus.CLOSED, reason=CloseReason.READ_ERROR,
                                  detail=str(e))

            if not data:
                if self._buffer.pending():
                    logger.debug(
                        f"[CHANNEL] Dropping {self._buffer.pending()} "
                        f"unterminated bytes at end of stream"
                    )
                    self._buffer.clear()
                return ReadResult(ReadStatus.CLOSED, reason=CloseReason.EOF,
                                  detail="end of stream")

            self._buffer.feed(data)
            line = self._buffer.pop_line()
        except LineTooLongError as e:
            return ReadResult(ReadStatus.CLOSED, reason=CloseReason.OVERFLOW,
                              detail=str(e))

        if line is None:
            return ReadResult(ReadStatus.NO_DATA)
        return ReadResult(ReadStatus.LINE, line=line)


class LineChannel(_LineReader):
    """
    One accepted (or connected) stream socket in non-blocking mode.
    Raises OSError from the constructor if the mode cannot be set.
    """

    def __init__(
        self,
        sock: socket.socket,
        max_line_bytes: int = DEFAULT_MAX_LINE_BYTES,
        write_timeout: float = 0.5,
    ):
        super().__init__(max_line_bytes)
        self.sock = sock
        self.write_timeout = write_timeout
        self.sock.setblocking(False)

    def fileno(self) -> int:
        return -1 if self._closed else self.sock.fileno()

    def _read_chunk(self, size: int) -> bytes:
        return self.sock.recv(size)

    def write_line(self, line: bytes) -> WriteResult:
        """
        Send the whole line. Waits for writability at most write_timeout
        seconds in total before reporting failure.
        """
        if self._closed:
            return WriteResult(False, "channel closed")

        view = memoryview(line)
        deadline = time.monotonic() + self.write_timeout
        while view:
            try:
                sent = self.sock.send(view)
                view = view[sent:]
            except BlockingIOError:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return WriteResult(False, f"write not accepted within {self.write_timeout}s")
                select.select([], [self.sock], [], remaining)
            except OSError as e:
                return WriteResult(False, str(e))
        return WriteResult(True)

    def close(self):
        """Release the socket. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._buffer.clear()
        try:
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass  # peer already gone
        self.sock.close()


class LocalInput(_LineReader):
    """Non-blocking line reader over a local file descriptor (stdin by default)."""

    def __init__(self, fd: Optional[int] = None, max_line_bytes: int = DEFAULT_MAX_LINE_BYTES):
        super().__init__(max_line_bytes)
        self.fd = sys.stdin.fileno() if fd is None else fd
        os.set_blocking(self.fd, False)

    def _read_chunk(self, size: int) -> bytes:
        return os.read(self.fd, size)

    def close(self):
        # The descriptor belongs to the caller; only restore its mode.
        if self._closed:
            return
        self._closed = True
        try:
            os.set_blocking(self.fd, True)
        except OSError:
            pass
