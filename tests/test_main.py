import asyncio
import os
import signal
import socket

import pytest

from config import RelayConfig
from main import RelayServer, main
from transport.listener import open_listener

from helpers import recv_line


def _config(port=0):
    config = RelayConfig()
    config.server.port = port
    config.server.tick_interval = 0.01
    return config


async def test_relay_server_relays_between_clients():
    relay = RelayServer(_config())
    relay.setup()
    address = relay.loop.listener.getsockname()[:2]
    task = asyncio.ensure_future(relay.start())

    a = socket.create_connection(address, timeout=2.0)
    b = socket.create_connection(address, timeout=2.0)
    try:
        for _ in range(100):
            if relay.loop.registry.count_occupied() == 2:
                break
            await asyncio.sleep(0.01)
        assert relay.loop.registry.count_occupied() == 2

        a.sendall(b"over the relay\n")
        line = await asyncio.get_running_loop().run_in_executor(None, recv_line, b)
        assert line == b"over the relay\n"
    finally:
        await relay.stop()
        await asyncio.wait_for(task, timeout=1.0)
        await relay.close()
        a.close()
        b.close()


async def test_bind_failure_exits_nonzero():
    taken = open_listener("127.0.0.1", 0)
    try:
        status = await main(_config(port=taken.getsockname()[1]))
    finally:
        taken.close()
    assert status == 1


async def test_listener_failure_exits_nonzero():
    config = _config()
    relay = RelayServer(config)
    relay.setup()
    relay.loop.listener.close()

    status = await asyncio.wait_for(main(config, relay), timeout=2.0)

    assert status == 1
    assert not relay.loop.is_running


@pytest.mark.skipif(os.name != "posix", reason="POSIX signals")
async def test_sigterm_stops_gracefully():
    config = _config()
    relay = RelayServer(config)
    relay.setup()
    listener = relay.loop.listener
    task = asyncio.ensure_future(main(config, relay))

    for _ in range(100):
        if relay.loop.is_running:
            break
        await asyncio.sleep(0.01)
    assert relay.loop.is_running

    os.kill(os.getpid(), signal.SIGTERM)
    status = await asyncio.wait_for(task, timeout=2.0)

    assert status == 0
    assert listener.fileno() == -1
