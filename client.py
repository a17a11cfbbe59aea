"""
Line Relay Client.
Connects to the relay, forwards lines typed on stdin and prints lines
relayed from the other clients.
"""

from __future__ import annotations
import asyncio
import sys
from typing import Optional
import logging

from config import RelayConfig
from transport.channel import LineChannel, LocalInput
from transport.listener import open_connection
from transport.models import SetupError
from core.client_loop import ClientLoop, EXIT_ERROR

logger = logging.getLogger(__name__)


def setup_logging(level: str = "WARNING", log_file: Optional[str] = None):
    # stdout carries the conversation; diagnostics go to stderr.
    handlers = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s | %(levelname)-7s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=handlers,
    )


async def main(config: RelayConfig, stdin_fd: Optional[int] = None) -> int:
    cfg = config.client
    try:
        sock = open_connection(cfg.host, cfg.port, timeout=cfg.connect_timeout)
    except SetupError as e:
        logger.critical(f"[CLIENT] Setup failed at {e.stage}: {e.cause}")
        return EXIT_ERROR

    try:
        server = LineChannel(sock, max_line_bytes=cfg.max_line_bytes, write_timeout=cfg.write_timeout)
    except OSError as e:
        sock.close()
        logger.critical(f"[CLIENT] Cannot make the socket non-blocking: {e}")
        return EXIT_ERROR

    try:
        local_input = LocalInput(stdin_fd, max_line_bytes=cfg.max_line_bytes)
    except OSError as e:
        server.close()
        logger.critical(f"[CLIENT] Cannot make stdin non-blocking: {e}")
        return EXIT_ERROR

    return await ClientLoop(cfg, server, local_input).run()


def run() -> int:
    try:
        config = RelayConfig.from_env()
    except ValueError as e:
        setup_logging()
        logger.critical(f"[BOOT] Invalid configuration: {e}")
        return EXIT_ERROR

    setup_logging(config.client_log_level, config.log_file)
    try:
        return asyncio.run(main(config))
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(run())
