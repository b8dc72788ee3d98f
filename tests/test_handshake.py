import base64

import pytest

from wsecho.ws.exception import WebsocketException
from wsecho.ws.http11 import Headers, Response
from wsecho.ws.misc import (
    accept_key,
    build_request,
    build_response,
    check_request,
    check_response,
    generate_key,
    is_upgrade_request,
)

KEY = "dGhlIHNhbXBsZSBub25jZQ=="
ACCEPT = "s3pPLMBiTxaQ9kYGzzhZRbK+xOo="


def test_accept_key():
    assert accept_key(KEY) == ACCEPT


def test_generate_key():
    key = generate_key()
    assert len(base64.b64decode(key)) == 16
    assert key != generate_key()


def test_build_request():
    request = build_request("/", "localhost", 3000, KEY)
    assert request.serialize() == (
        b"GET / HTTP/1.1\r\n"
        b"Host: localhost:3000\r\n"
        b"Upgrade: websocket\r\n"
        b"Connection: Upgrade\r\n"
        b"Sec-WebSocket-Key: dGhlIHNhbXBsZSBub25jZQ==\r\n"
        b"Sec-WebSocket-Version: 13\r\n"
        b"\r\n"
    )


def test_build_request_with_query():
    request = build_request("/chat?room=1", "example.com", 80, KEY)
    assert request.path == "/chat"
    assert request.query == "room=1"
    assert request.serialize().startswith(b"GET /chat?room=1 HTTP/1.1\r\n")


def test_check_response_accepts_101():
    check_response(Response(101, "Switching Protocols", Headers()))


def test_check_response_rejects_other_status():
    with pytest.raises(WebsocketException) as excinfo:
        check_response(Response(404, "Not Found", Headers()))
    assert excinfo.value.type == "InvalidStatus"
    assert "404" in str(excinfo.value)


@pytest.mark.parametrize("value, expected", [
    ("websocket", True),
    ("WebSocket", True),
    ("h2c, websocket", True),
    ("h2c", False),
])
def test_is_upgrade_request(value, expected):
    assert is_upgrade_request(Headers({"Upgrade": value})) is expected


def test_is_upgrade_request_without_header():
    assert not is_upgrade_request(Headers({"Host": "localhost"}))


def test_check_request():
    assert check_request(Headers({"Sec-WebSocket-Key": KEY})) == KEY


def test_check_request_ignores_other_headers():
    # Connection and Sec-WebSocket-Version aren't looked at.
    headers = Headers({"Connection": "keep-alive", "Sec-WebSocket-Version": "8", "Sec-WebSocket-Key": KEY})
    assert check_request(headers) == KEY


def test_check_request_missing_key():
    with pytest.raises(WebsocketException) as excinfo:
        check_request(Headers({"Upgrade": "websocket"}))
    assert excinfo.value.type == "InvalidHeader"


@pytest.mark.parametrize("key", [
    "not base64!",
    base64.b64encode(b"too short").decode(),
])
def test_check_request_invalid_key(key):
    with pytest.raises(WebsocketException) as excinfo:
        check_request(Headers({"Sec-WebSocket-Key": key}))
    assert excinfo.value.type == "InvalidHeaderValue"


def test_build_response():
    headers = Headers()
    build_response(headers, KEY)
    assert list(headers.raw_items()) == [
        ("Upgrade", "websocket"),
        ("Connection", "Upgrade"),
        ("Sec-WebSocket-Accept", ACCEPT),
    ]
