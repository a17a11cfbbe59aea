import socket

import pytest

from config import ServerConfig
from room.registry import ClientRegistry
from transport.listener import open_listener


@pytest.fixture
def server_config():
    return ServerConfig(port=0, tick_interval=0.01, write_timeout=0.2)


@pytest.fixture
def registry(server_config):
    reg = ClientRegistry(server_config)
    yield reg
    reg.close_all()


@pytest.fixture
def sockets():
    """Tracks test-side sockets and closes them afterwards."""
    opened = []
    yield opened
    for s in opened:
        s.close()


@pytest.fixture
def admit_pair(registry, sockets):
    """Admit one end of a socketpair; return (admit result, remote end)."""
    def _admit(peer="pair"):
        local, remote = socket.socketpair()
        sockets.append(remote)
        return registry.try_admit(local, peer), remote
    return _admit


@pytest.fixture
def listener():
    sock = open_listener("127.0.0.1", 0)
    yield sock
    sock.close()


@pytest.fixture
def connect(listener, sockets):
    """Open a client TCP connection to the test listener."""
    def _connect():
        sock = socket.create_connection(listener.getsockname()[:2], timeout=2.0)
        sockets.append(sock)
        return sock
    return _connect
