"""
Line Relay: Configuration
All tunable parameters in one place. Defaults are the reference values;
environment variables (or a .env file) override them.
"""

import os
from dataclasses import dataclass, field
from typing import Optional
from dotenv import load_dotenv


ROOM_FULL_NOTICE = b"Room is full. Try again later.\n"


@dataclass
class ServerConfig:
    host: str = "127.0.0.1"             # Loopback only
    port: int = 7878
    capacity: int = 4                   # Concurrent client slots
    backlog: int = 5
    tick_interval: float = 0.1          # Seconds between ticks
    max_line_bytes: int = 1024          # Terminator included
    write_timeout: float = 0.5          # Per write_line, seconds
    room_full_notice: bytes = ROOM_FULL_NOTICE


@dataclass
class ClientConfig:
    host: str = "127.0.0.1"
    port: int = 7878
    tick_interval: float = 0.1
    max_line_bytes: int = 1024
    write_timeout: float = 0.5
    connect_timeout: float = 5.0
    display_prefix: str = "Server: "


@dataclass
class DashboardConfig:
    host: str = "127.0.0.1"
    port: int = 0                       # 0 = disabled

    @property
    def enabled(self) -> bool:
        return self.port > 0


@dataclass
class RelayConfig:
    server: ServerConfig = field(default_factory=ServerConfig)
    client: ClientConfig = field(default_factory=ClientConfig)
    dashboard: DashboardConfig = field(default_factory=DashboardConfig)
    log_level: str = "INFO"
    client_log_level: str = "WARNING"   # Client logs share the terminal
    log_file: Optional[str] = None

    @classmethod
    def from_env(cls, load_dotenv_file: bool = True) -> "RelayConfig":
        """Load config with environment variable overrides."""
        if load_dotenv_file:
            load_dotenv()

        config = cls()
        host = os.getenv("RELAY_HOST", config.server.host)
        port = _int_env("RELAY_PORT", config.server.port)
        tick = _float_env("RELAY_TICK_INTERVAL", config.server.tick_interval)
        max_line = _int_env("RELAY_MAX_LINE_BYTES", config.server.max_line_bytes)
        write_timeout = _float_env("RELAY_WRITE_TIMEOUT", config.server.write_timeout)

        config.server.host = config.client.host = host
        config.server.port = config.client.port = port
        config.server.tick_interval = config.client.tick_interval = tick
        config.server.max_line_bytes = config.client.max_line_bytes = max_line
        config.server.write_timeout = config.client.write_timeout = write_timeout
        config.server.capacity = _int_env("RELAY_CAPACITY", config.server.capacity)
        config.server.backlog = _int_env("RELAY_BACKLOG", config.server.backlog)

        config.dashboard.host = os.getenv("RELAY_DASHBOARD_HOST", config.dashboard.host)
        config.dashboard.port = _int_env("RELAY_DASHBOARD_PORT", config.dashboard.port)

        config.log_level = os.getenv("LOG_LEVEL", "INFO").upper()
        config.client_log_level = os.getenv("CLIENT_LOG_LEVEL", "WARNING").upper()
        config.log_file = os.getenv("LOG_FILE") or None

        config.validate()
        return config

    def validate(self):
        """Reject values the relay cannot run with."""
        if self.server.capacity < 1:
            raise ValueError(f"capacity must be at least 1, got {self.server.capacity}")
        if not 0 <= self.server.port <= 65535:
            raise ValueError(f"port out of range: {self.server.port}")
        if self.server.tick_interval < 0:
            raise ValueError(f"tick interval must not be negative: {self.server.tick_interval}")
        if self.server.max_line_bytes < 2:
            raise ValueError(f"max line bytes too small: {self.server.max_line_bytes}")
        if self.server.write_timeout < 0:
            raise ValueError(f"write timeout must not be negative: {self.server.write_timeout}")
        if not 0 <= self.dashboard.port <= 65535:
            raise ValueError(f"dashboard port out of range: {self.dashboard.port}")


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
