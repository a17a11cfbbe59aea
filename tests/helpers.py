import socket
import time

import pytest


def recv_line(sock, timeout=2.0):
    """Read from a blocking test socket up to and including a newline."""
    sock.settimeout(timeout)
    data = b""
    while not data.endswith(b"\n"):
        chunk = sock.recv(1)
        if not chunk:
            break
        data += chunk
    return data


def assert_silent(sock, timeout=0.2):
    """Nothing arrives on sock within timeout."""
    sock.settimeout(timeout)
    with pytest.raises(socket.timeout):
        sock.recv(4096)


def assert_eof(sock, timeout=2.0):
    sock.settimeout(timeout)
    assert sock.recv(4096) == b""


def tick_until(loop, predicate, max_ticks=100, delay=0.01):
    for _ in range(max_ticks):
        loop.tick()
        if predicate():
            return True
        time.sleep(delay)
    return predicate()
