import asyncio

import pytest

from wsecho.app import PREFIX, EchoClient, echo
from wsecho.config import Config
from wsecho.ws import WebsocketException, connect, serve
from wsecho.ws.misc import State


def port_of(server) -> int:
    return server.sockets[0].getsockname()[1]


@pytest.mark.asyncio
async def test_connect_and_echo():
    async with serve(echo, "127.0.0.1", 0) as server:
        async with connect("127.0.0.1", port_of(server)) as ws:
            await ws.send("ping")
            assert await ws.recv() == "echo: ping"
            await ws.send("pong")
            assert await ws.recv() == "echo: pong"

        assert ws.state is State.CLOSED
        assert ws.close_ok


@pytest.mark.asyncio
async def test_server_sees_path():
    paths = []

    async def handler(ws):
        paths.append(ws.path)
        async for message in ws:
            await ws.send(message)

    async with serve(handler, "127.0.0.1", 0) as server:
        async with connect("127.0.0.1", port_of(server), "/room/1") as ws:
            await ws.send("x")
            await ws.recv()

    assert paths == ["/room/1"]


@pytest.mark.asyncio
async def test_unicode_and_empty_messages():
    async with serve(echo, "127.0.0.1", 0) as server:
        async with connect("127.0.0.1", port_of(server)) as ws:
            await ws.send("")
            assert await ws.recv() == PREFIX
            await ws.send("héllo wörld ✓")
            assert await ws.recv() == "echo: héllo wörld ✓"


@pytest.mark.asyncio
async def test_async_iteration_ends_when_server_closes():
    async def handler(ws):
        await ws.send("one")
        await ws.send("two")

    async with serve(handler, "127.0.0.1", 0) as server:
        async with connect("127.0.0.1", port_of(server)) as ws:
            messages = [message async for message in ws]

    assert messages == ["one", "two"]


@pytest.mark.asyncio
async def test_send_after_close():
    async with serve(echo, "127.0.0.1", 0) as server:
        ws = await connect("127.0.0.1", port_of(server))
        await ws.close()
        await ws.close()

        with pytest.raises(WebsocketException) as excinfo:
            await ws.send("too late")
        assert excinfo.value.type == "ConnectionClosed"

        with pytest.raises(WebsocketException) as excinfo:
            await ws.recv()
        assert excinfo.value.type == "ConnectionClosed"


@pytest.mark.asyncio
async def test_invalid_status():
    async def handle(reader, writer):
        await reader.readuntil(b"\r\n\r\n")
        writer.write(b"HTTP/1.1 404 Not Found\r\nContent-Length: 0\r\n\r\n")
        await writer.drain()
        writer.close()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    async with server:
        with pytest.raises(WebsocketException) as excinfo:
            await connect("127.0.0.1", port_of(server))
        assert excinfo.value.type == "InvalidStatus"


@pytest.mark.asyncio
async def test_invalid_response():
    async def handle(reader, writer):
        await reader.readuntil(b"\r\n\r\n")
        writer.write(b"SSH-2.0-OpenSSH\r\n\r\n")
        await writer.drain()
        writer.close()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    async with server:
        with pytest.raises(WebsocketException) as excinfo:
            await connect("127.0.0.1", port_of(server))
        assert excinfo.value.type == "InvalidMessage"


@pytest.mark.asyncio
async def test_unexpected_disconnect_during_handshake():
    async def handle(reader, writer):
        await reader.readuntil(b"\r\n\r\n")
        writer.close()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    async with server:
        with pytest.raises(WebsocketException) as excinfo:
            await connect("127.0.0.1", port_of(server))
        assert excinfo.value.type == "UnexpectedDisconnect"


@pytest.mark.asyncio
async def test_client_frames_are_masked():
    received = []

    async def handle(reader, writer):
        await reader.readuntil(b"\r\n\r\n")
        writer.write(
            b"HTTP/1.1 101 Switching Protocols\r\n"
            b"Upgrade: websocket\r\n"
            b"Connection: Upgrade\r\n"
            b"\r\n"
        )
        received.append(await reader.readexactly(2 + 4 + 5))
        writer.write(b"\x81\x05hello\x88\x00")
        await writer.drain()
        received.append(await reader.readexactly(2 + 4))
        writer.close()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    async with server:
        async with connect("127.0.0.1", port_of(server)) as ws:
            await ws.send("hello")
            assert await ws.recv() == "hello"

    assert received[0][:2] == b"\x81\x85"
    assert received[1][:2] == b"\x88\x80"


@pytest.mark.asyncio
async def test_echo_client(capsys):
    config = Config(host="127.0.0.1", message="hello from client")
    async with serve(echo, "127.0.0.1", 0) as server:
        config.port = port_of(server)
        reply = await EchoClient(config).run_async()

    assert reply == "echo: hello from client"
    assert capsys.readouterr().out == "Received: echo: hello from client\n"
