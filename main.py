"""
Line Relay Server: Main Orchestrator.
Ties the components together: configuration, listening socket, control
loop, optional dashboard, signals and shutdown.
"""

from __future__ import annotations
import asyncio
import signal
import sys
from typing import Optional
import logging

from config import RelayConfig
from transport.listener import open_listener
from transport.models import ListenerError, SetupError
from core.server_loop import ServerLoop
from dashboard import Dashboard

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: str = "INFO", log_file: Optional[str] = None):
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
        handlers=handlers,
    )


class RelayServer:
    """Owns the listening socket, the server loop and the dashboard."""

    def __init__(self, config: RelayConfig):
        self.config = config
        self.loop: Optional[ServerLoop] = None
        self.dashboard: Optional[Dashboard] = None

    def setup(self):
        """Bind the listener and build the loop. Raises SetupError."""
        server_cfg = self.config.server
        listener = open_listener(server_cfg.host, server_cfg.port, server_cfg.backlog)
        self.loop = ServerLoop(server_cfg, listener)

    async def start(self):
        """Full startup sequence, then run until stopped."""
        if self.loop is None:
            self.setup()

        if self.config.dashboard.enabled:
            self.dashboard = Dashboard(
                self.loop,
                host=self.config.dashboard.host,
                port=self.config.dashboard.port,
            )
            try:
                await self.dashboard.start()
            except OSError as e:
                raise SetupError("dashboard", e) from e

        await self.loop.start()

    async def stop(self):
        """Ask the loop to finish after the current tick."""
        logger.info("[SHUTDOWN] Stopping relay...")
        if self.loop is not None:
            await self.loop.stop()

    async def close(self):
        if self.dashboard is not None:
            await self.dashboard.stop()
        if self.loop is not None:
            logger.info(self.loop.registry.get_status_summary())
            self.loop.close()
        logger.info("[SHUTDOWN] Complete.")


async def main(config: RelayConfig, relay: Optional[RelayServer] = None) -> int:
    """Run the relay. Returns the process exit status."""
    relay = relay or RelayServer(config)

    if sys.platform != "win32":
        loop = asyncio.get_running_loop()

        def handle_signal(sig):
            logger.info(f"Received signal {sig}. Initiating shutdown...")
            asyncio.ensure_future(relay.stop())

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, lambda s=sig: handle_signal(s))

    status = 0
    try:
        await relay.start()
    except SetupError as e:
        logger.critical(f"[BOOT] Setup failed at {e.stage}: {e.cause}")
        status = 1
    except ListenerError as e:
        logger.critical(f"[SERVER] Fatal listener error: {e}")
        status = 1
    except Exception as e:
        logger.critical(f"Fatal error: {e}", exc_info=True)
        status = 1
    finally:
        await relay.close()
    return status


def run() -> int:
    try:
        config = RelayConfig.from_env()
    except ValueError as e:
        setup_logging()
        logger.critical(f"[BOOT] Invalid configuration: {e}")
        return 1

    setup_logging(config.log_level, config.log_file)
    try:
        return asyncio.run(main(config))
    except KeyboardInterrupt:
        logger.info("KeyboardInterrupt received in main loop.")
        return 0


if __name__ == "__main__":
    sys.exit(run())
