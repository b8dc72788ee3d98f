import asyncio
import http

import pytest

from wsecho.ws.exception import WebsocketException
from wsecho.ws.http11 import Headers, plain_response, read_request, read_response


def make_stream(data: bytes) -> asyncio.StreamReader:
    stream = asyncio.StreamReader()
    stream.feed_data(data)
    stream.feed_eof()
    return stream


@pytest.mark.asyncio
async def test_read_request():
    stream = make_stream(
        b"GET /chat?room=1 HTTP/1.1\r\n"
        b"Host: localhost:3000\r\n"
        b"Upgrade: websocket\r\n"
        b"\r\n"
    )

    request = await read_request(stream)

    assert request.method == "GET"
    assert request.path == "/chat"
    assert request.query == "room=1"
    assert request.headers["host"] == "localhost:3000"
    assert request.headers["Upgrade"] == "websocket"


@pytest.mark.asyncio
async def test_read_request_any_method():
    request = await read_request(make_stream(b"POST / HTTP/1.0\r\n\r\n"))
    assert request.method == "POST"
    assert len(request.headers) == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("data", [
    b"garbage\r\n\r\n",
    b"GET / HTTP/2.0\r\n\r\n",
    b"GET / HTTP/1.1\r\nno colon\r\n\r\n",
])
async def test_read_request_invalid(data):
    with pytest.raises(ValueError):
        await read_request(make_stream(data))


@pytest.mark.asyncio
async def test_read_request_truncated():
    with pytest.raises(EOFError):
        await read_request(make_stream(b"GET / HTTP/1.1\r\nHost: loc"))


@pytest.mark.asyncio
async def test_read_request_line_too_long():
    with pytest.raises(WebsocketException) as excinfo:
        await read_request(make_stream(b"GET /" + b"a" * 9000 + b" HTTP/1.1\r\n\r\n"))
    assert excinfo.value.type == "SecurityError"


@pytest.mark.asyncio
async def test_read_response_leaves_frames_in_stream():
    stream = make_stream(
        b"HTTP/1.1 101 Switching Protocols\r\n"
        b"Upgrade: websocket\r\n"
        b"Connection: Upgrade\r\n"
        b"\r\n"
        b"\x81\x00"
    )

    response = await read_response(stream)

    assert response.status_code == 101
    assert response.reason == "Switching Protocols"
    assert response.headers["connection"] == "Upgrade"
    assert await stream.read() == b"\x81\x00"


@pytest.mark.asyncio
async def test_read_response_without_reason():
    response = await read_response(make_stream(b"HTTP/1.1 200\r\n\r\n"))
    assert response.status_code == 200
    assert response.reason == ""


@pytest.mark.asyncio
@pytest.mark.parametrize("data", [
    b"HTTP/1.1\r\n\r\n",
    b"SPDY/3 200 OK\r\n\r\n",
    b"HTTP/1.1 abc OK\r\n\r\n",
    b"HTTP/1.1 42 OK\r\n\r\n",
])
async def test_read_response_invalid(data):
    with pytest.raises(ValueError):
        await read_response(make_stream(data))


@pytest.mark.asyncio
async def test_read_response_truncated():
    with pytest.raises(EOFError):
        await read_response(make_stream(b"HTTP/1.1 101 Switching Protocols\r\n"))


def test_headers_are_case_insensitive():
    headers = Headers()
    headers["Sec-WebSocket-Key"] = "abc"
    assert "sec-websocket-key" in headers
    assert headers["SEC-WEBSOCKET-KEY"] == "abc"
    assert str(headers) == "Sec-WebSocket-Key: abc\r\n\r\n"


def test_headers_duplicates():
    headers = Headers([("Upgrade", "h2c"), ("Upgrade", "websocket")])
    assert headers.get_all("upgrade") == ["h2c", "websocket"]
    with pytest.raises(WebsocketException) as excinfo:
        headers["Upgrade"]
    assert excinfo.value.type == "InvalidHeader"


def test_delete_header():
    headers = Headers({"A": "1", "B": "2"})
    del headers["a"]
    assert list(headers.raw_items()) == [("B", "2")]


def test_plain_response():
    response = plain_response(http.HTTPStatus.OK, "Use a WebSocket client to connect\n")
    assert response.serialize() == (
        b"HTTP/1.1 200 OK\r\n"
        b"Content-Type: text/plain\r\n"
        b"Content-Length: 34\r\n"
        b"Connection: close\r\n"
        b"\r\n"
        b"Use a WebSocket client to connect\n"
    )
