"""
Copyright (c) Aymeric Augustin and contributors

Redistribution and use in source and binary forms, with or without
modification, are permitted provided that the following conditions are met:

    * Redistributions of source code must retain the above copyright notice,
      this list of conditions and the following disclaimer.
    * Redistributions in binary form must reproduce the above copyright notice,
      this list of conditions and the following disclaimer in the documentation
      and/or other materials provided with the distribution.
    * Neither the name of the copyright holder nor the names of its contributors
      may be used to endorse or promote products derived from this software
      without specific prior written permission.

THIS SOFTWARE IS PROVIDED BY THE COPYRIGHT HOLDERS AND CONTRIBUTORS "AS IS" AND
ANY EXPRESS OR IMPLIED WARRANTIES, INCLUDING, BUT NOT LIMITED TO, THE IMPLIED
WARRANTIES OF MERCHANTABILITY AND FITNESS FOR A PARTICULAR PURPOSE ARE
DISCLAIMED. IN NO EVENT SHALL THE COPYRIGHT HOLDER OR CONTRIBUTORS BE LIABLE
FOR ANY DIRECT, INDIRECT, INCIDENTAL, SPECIAL, EXEMPLARY, OR CONSEQUENTIAL
DAMAGES (INCLUDING, BUT NOT LIMITED TO, PROCUREMENT OF SUBSTITUTE GOODS OR
SERVICES; LOSS OF USE, DATA, OR PROFITS; OR BUSINESS INTERRUPTION) HOWEVER
CAUSED AND ON ANY THEORY OF LIABILITY, WHETHER IN CONTRACT, STRICT LIABILITY,
OR TORT (INCLUDING NEGLIGENCE OR OTHERWISE) ARISING IN ANY WAY OUT OF THE USE
OF THIS SOFTWARE, EVEN IF ADVISED OF THE POSSIBILITY OF SUCH DAMAGE.
"""


import base64
import binascii
import enum
import hashlib
import secrets

from wsecho.ws.exception import WebsocketException
from wsecho.ws.http11 import Headers, Request, Response


class State(enum.IntEnum):
    """A WebSocket connection is in one of these four states."""

    CONNECTING, OPEN, CLOSING, CLOSED = range(4)


GUID = "258EAFA5-E914-47DA-95CA-C5AB0DC85B11"


def generate_key() -> str:
    """
    Generate a random key for the Sec-WebSocket-Key header.

    """
    key = secrets.token_bytes(16)
    return base64.b64encode(key).decode()


def accept_key(key: str) -> str:
    """
    Compute the value of the Sec-WebSocket-Accept header.

    Args:
        key: value of the Sec-WebSocket-Key header.

    """
    sha1 = hashlib.sha1((key + GUID).encode()).digest()
    return base64.b64encode(sha1).decode()


def build_request(path: str, host: str, port: int, key: str) -> Request:
    """
    Build the opening handshake request of a client.

    Headers are kept in the order they're written on the wire.

    Args:
        path: resource to request, e.g. ``/``.
        host: server host name, sent in the Host header with ``port``.
        port: server port.
        key: returned by :func:`generate_key`.

    """
    headers = Headers()
    headers["Host"] = f"{host}:{port}"
    headers["Upgrade"] = "websocket"
    headers["Connection"] = "Upgrade"
    headers["Sec-WebSocket-Key"] = key
    headers["Sec-WebSocket-Version"] = "13"
    path, _, query = path.partition("?")
    return Request("GET", path, query, headers)


def check_response(response: Response) -> None:
    """
    Check the handshake response received from the server.

    Only the status code is checked: anything but 101 fails the handshake.

    Raises:
        WebsocketException: ``InvalidStatus`` if the server didn't switch
            protocols.

    """
    if response.status_code != 101:
        raise WebsocketException(
            f"InvalidStatus: server rejected WebSocket connection: "
            f"HTTP {response.status_code} {response.reason}".rstrip()
        )


def is_upgrade_request(headers: Headers) -> bool:
    """
    Tell whether a request asks to be upgraded to the WebSocket protocol.

    The Upgrade header is a comma-separated list; the RFC always writes
    ``websocket`` but case is ignored for compatibility with non-strict
    implementations.

    """
    protocols = [
        protocol.strip().lower()
        for value in headers.get_all("Upgrade")
        for protocol in value.split(",")
    ]
    return "websocket" in protocols


def check_request(headers: Headers) -> str:
    """
    Check a handshake request received from the client.

    Only the Sec-WebSocket-Key header is looked at; whether the request asks
    for an upgrade at all is decided by :func:`is_upgrade_request`.

    Args:
        headers: handshake request headers.

    Returns:
        str: ``key`` that must be passed to :func:`build_response`.

    Raises:
        WebsocketException: ``InvalidHeader`` or ``InvalidHeaderValue`` if the
            key is missing or malformed; then the server must return 400 Bad
            Request.

    """
    try:
        s_w_key = headers["Sec-WebSocket-Key"]
    except KeyError as exc:
        raise WebsocketException("InvalidHeader: missing Sec-WebSocket-Key") from exc

    try:
        raw_key = base64.b64decode(s_w_key.encode(), validate=True)
    except binascii.Error as exc:
        raise WebsocketException(f"InvalidHeaderValue: Sec-WebSocket-Key {s_w_key}") from exc
    if len(raw_key) != 16:
        raise WebsocketException(f"InvalidHeaderValue: Sec-WebSocket-Key {s_w_key}")

    return s_w_key


def build_response(headers: Headers, key: str) -> None:
    """
    Build a handshake response to send to the client.

    Update response headers passed in argument.

    Args:
        headers: handshake response headers.
        key: returned by :func:`check_request`.

    """
    headers["Upgrade"] = "websocket"
    headers["Connection"] = "Upgrade"
    headers["Sec-WebSocket-Accept"] = accept_key(key)
