import pytest
import websockets

from wsecho.app import echo
from wsecho.ws import connect, serve


def port_of(server) -> int:
    return list(server.sockets)[0].getsockname()[1]


@pytest.mark.asyncio
async def test_websockets_client_against_echo_server():
    async with serve(echo, "127.0.0.1", 0) as server:
        uri = f"ws://127.0.0.1:{port_of(server)}/"
        async with websockets.connect(uri) as websocket:
            await websocket.send("ping")
            assert await websocket.recv() == "echo: ping"
            await websocket.send("x" * 70000)
            assert await websocket.recv() == "echo: " + "x" * 70000


@pytest.mark.asyncio
async def test_client_against_websockets_server():
    async def handler(websocket):
        async for message in websocket:
            await websocket.send("echo: " + message)

    async with websockets.serve(handler, "127.0.0.1", 0) as server:
        async with connect("127.0.0.1", port_of(server)) as ws:
            await ws.send("ping")
            assert await ws.recv() == "echo: ping"

        assert ws.close_ok
