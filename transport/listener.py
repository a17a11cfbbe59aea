"""
Socket setup for the relay: the listening socket on the server side and
the outbound connection on the client side.
"""

from __future__ import annotations
import socket
from typing import Optional, Tuple
from transport.models import ListenerError, SetupError
import logging

logger = logging.getLogger(__name__)


def open_listener(host: str, port: int, backlog: int = 5) -> socket.socket:
    """
    Create, bind and listen on a TCP socket, then switch it to non-blocking
    mode so accept returns immediately. Raises SetupError naming the stage.
    """
    try:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    except OSError as e:
        raise SetupError("socket", e) from e

    stage = "setsockopt"
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        stage = "bind"
        sock.bind((host, port))
        stage = "listen"
        sock.listen(backlog)
        stage = "nonblocking"
        sock.setblocking(False)
    except OSError as e:
        sock.close()
        raise SetupError(stage, e) from e

    bound_host, bound_port = sock.getsockname()[:2]
    logger.info(f"[SERVER] Listening on {bound_host}:{bound_port} (backlog {backlog})")
    return sock


def try_accept(listener: socket.socket) -> Optional[Tuple[socket.socket, str]]:
    """
    One non-blocking accept. Returns (connection, "host:port") or None when
    no connection is pending. Any other failure raises ListenerError.
    """
    try:
        conn, addr = listener.accept()
    except BlockingIOError:
        return None
    except OSError as e:
        raise ListenerError(f"accept failed: {e}") from e

    if isinstance(addr, tuple) and len(addr) >= 2:
        peer = f"{addr[0]}:{addr[1]}"
    else:
        peer = str(addr)
    return conn, peer


def open_connection(host: str, port: int, timeout: Optional[float] = 5.0) -> socket.socket:
    """Connect to the relay server. Raises SetupError on failure."""
    try:
        sock = socket.create_connection((host, port), timeout=timeout)
    except OSError as e:
        raise SetupError("connect", e) from e
    logger.info(f"[CLIENT] Connected to {host}:{port}")
    return sock
