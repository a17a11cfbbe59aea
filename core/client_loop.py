"""
Client Loop: forwards local input to the relay and displays what comes back.
One upstream line and one downstream line per tick, at most.
"""

from __future__ import annotations
import asyncio
import os
import select
import sys
from typing import Callable, Optional, TextIO, TYPE_CHECKING
from transport.models import CloseReason
import logging

if TYPE_CHECKING:
    from config import ClientConfig
    from transport.channel import LineChannel, LocalInput

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1


def write_console(text: str, stream: Optional[TextIO] = None):
    """
    Write one line to the console. stdin and stdout may share a terminal
    description, so stdout can be non-blocking too; short writes are retried.
    """
    stream = stream or sys.stdout
    if not text.endswith("\n"):
        text += "\n"
    try:
        fd = stream.fileno()
    except (OSError, ValueError):
        # Not backed by a descriptor (captured or in-memory stream).
        stream.write(text)
        stream.flush()
        return

    stream.flush()
    view = memoryview(text.encode(getattr(stream, "encoding", None) or "utf-8", errors="replace"))
    while view:
        try:
            written = os.write(fd, view)
            view = view[written:]
        except BlockingIOError:
            select.select([], [fd], [])


class ClientLoop:
    """Half-duplex polling loop between local input and the server channel."""

    def __init__(
        self,
        config: "ClientConfig",
        server: "LineChannel",
        local_input: "LocalInput",
        display: Optional[Callable[[str], None]] = None,
    ):
        self.config = config
        self.server = server
        self.local_input = local_input
        self.display = display or write_console
        self.exit_status: Optional[int] = None
        self.lines_sent = 0
        self.lines_shown = 0
        self._local_done = False

    @property
    def finished(self) -> bool:
        return self.exit_status is not None

    def _finish(self, status: int):
        if self.exit_status is None:
            self.exit_status = status

    def _forward_local(self):
        """Send at most one local line upstream. EOF only stops local polling."""
        user = self.local_input.try_read_line()
        if user.is_line:
            result = self.server.write_line(user.line)
            if not result.ok:
                logger.error(f"[CLIENT] Error writing to the server: {result.detail}")
                self._finish(EXIT_ERROR)
                return
            self.lines_sent += 1
        elif user.is_closed:
            if user.reason == CloseReason.EOF:
                logger.info("[CLIENT] Local input closed. Still listening to the server.")
                self._local_done = True
            else:
                logger.error(f"[CLIENT] Error reading local input ({user.reason.value}): {user.detail}")
                self._finish(EXIT_ERROR)

    def tick(self) -> bool:
        """Run one tick. Returns False once the loop should end."""
        if self.finished:
            return False

        if not self._local_done:
            self._forward_local()
            if self.finished:
                return False

        incoming = self.server.try_read_line()
        if incoming.is_line:
            text = incoming.line.decode("utf-8", errors="replace")
            self.display(f"{self.config.display_prefix}{text}")
            self.lines_shown += 1
        elif incoming.is_closed:
            if incoming.reason == CloseReason.EOF:
                logger.info("[CLIENT] Server closed the connection.")
                self._finish(EXIT_OK)
            else:
                logger.error(
                    f"[CLIENT] Error reading from the server ({incoming.reason.value}): "
                    f"{incoming.detail}"
                )
                self._finish(EXIT_ERROR)
            return False

        return True

    async def run(self) -> int:
        """Tick until the loop ends. Returns the process exit status."""
        try:
            while self.tick():
                await asyncio.sleep(self.config.tick_interval)
        finally:
            self.server.close()
            self.local_input.close()
        logger.info(f"[CLIENT] Done. Sent {self.lines_sent} lines, received {self.lines_shown}.")
        return self.exit_status if self.exit_status is not None else EXIT_OK

    def stop(self):
        self._finish(EXIT_OK)
