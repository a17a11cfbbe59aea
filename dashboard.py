"""
Dashboard: Lightweight status server for the relay.
Uses aiohttp.web on the relay's own event loop, so the registry is still
only ever read from one thread.
"""

from __future__ import annotations
import json
from datetime import datetime, timezone
from typing import Optional, TYPE_CHECKING
from aiohttp import web
import logging

if TYPE_CHECKING:
    from core.server_loop import ServerLoop

logger = logging.getLogger(__name__)


class StatusEncoder(json.JSONEncoder):
    """JSON encoder that handles datetimes."""
    def default(self, o):
        if isinstance(o, datetime):
            return o.isoformat()
        return super().default(o)


def json_response(data, status=200):
    return web.Response(
        text=json.dumps(data, cls=StatusEncoder),
        content_type="application/json",
        status=status,
    )


class Dashboard:
    """Read-only web view of slots and session counters."""

    def __init__(self, server: "ServerLoop", host: str = "127.0.0.1", port: int = 8080):
        self.server = server
        self.host = host
        self.port = port
        self.app = web.Application()
        self._runner: Optional[web.AppRunner] = None
        self._setup_routes()

    def _setup_routes(self):
        self.app.router.add_get("/", self._serve_summary)
        self.app.router.add_get("/api/status", self._api_status)

    async def start(self):
        """Start the dashboard web server."""
        self._runner = web.AppRunner(self.app, access_log=None)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info(f"[DASHBOARD] Running on http://{self.host}:{self.port}")

    async def stop(self):
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None

    # ─── Routes ───

    async def _serve_summary(self, request: web.Request) -> web.Response:
        return web.Response(text=self.server.registry.get_status_summary() + "\n")

    async def _api_status(self, request: web.Request) -> web.Response:
        """Occupancy, per-slot details and counters in one call."""
        try:
            registry = self.server.registry
            stats = self.server.stats
            now = datetime.now(timezone.utc)

            slots = []
            for index, slot in enumerate(registry.get_all_slots()):
                if slot is None:
                    slots.append({"index": index, "state": registry.state_of(index).value})
                    continue
                slots.append({
                    "index": index,
                    "state": registry.state_of(index).value,
                    "peer": slot.peer,
                    "admitted_at": slot.admitted_at,
                    "lines_received": slot.lines_received,
                })

            return json_response({
                "running": self.server.is_running,
                "capacity": registry.capacity,
                "occupied": registry.count_occupied(),
                "slots": slots,
                "stats": {
                    "admitted": stats.admitted,
                    "rejected": stats.rejected,
                    "evicted": stats.evicted,
                    "lines_received": stats.lines_received,
                    "lines_delivered": stats.lines_delivered,
                    "ticks": stats.ticks,
                    "uptime_seconds": int((now - stats.started_at).total_seconds()),
                },
                "timestamp": now,
            })

        except Exception as e:
            logger.error(f"[DASHBOARD] API error: {e}", exc_info=True)
            return json_response({"error": str(e)}, status=500)
