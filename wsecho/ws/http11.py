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


import asyncio
import dataclasses
import http
import re
from typing import Dict, Iterator, List, MutableMapping, Optional, Tuple

from wsecho.ws.exception import WebsocketException
from wsecho.ws.typings import HeadersLike

# Maximum total size of headers is around 128 * 8 KiB = 1 MiB.

MAX_HEADERS = 128

# Limit request line and header lines. 8KiB is the most common default
# configuration of popular HTTP servers.

MAX_LINE = 8192


# Regex for validating header names.

_token_re = re.compile(rb"[-!#$%&\'*+.^_`|~0-9a-zA-Z]+")

# Regex for validating header values.

_value_re = re.compile(rb"[\x09\x20-\x7e\x80-\xff]*")


class Headers(MutableMapping[str, str]):
    """
    Case-insensitive mapping of HTTP headers keeping their original order.

    A header may appear more than once; :meth:`get_all` returns every value
    while item access insists on a single one.

    """
    __slots__ = ["_dict", "_list"]

    def __init__(self, *args: HeadersLike, **kwargs: str) -> None:
        self._dict: Dict[str, List[str]] = {}
        self._list: List[Tuple[str, str]] = []
        self.update(*args, **kwargs)

    def __str__(self) -> str:
        return "".join(f"{key}: {value}\r\n" for key, value in self._list) + "\r\n"

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self._list!r})"

    def serialize(self) -> bytes:
        # Since headers only contain ASCII characters, we can keep this simple.
        return str(self).encode()

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and key.lower() in self._dict

    def __iter__(self) -> Iterator[str]:
        return iter(self._dict)

    def __len__(self) -> int:
        return len(self._dict)

    def __getitem__(self, key: str) -> str:
        value = self._dict[key.lower()]
        if len(value) == 1:
            return value[0]
        else:
            raise WebsocketException(f"InvalidHeader: more than one {key} header found")

    def __setitem__(self, key: str, value: str) -> None:
        self._dict.setdefault(key.lower(), []).append(value)
        self._list.append((key, value))

    def __delitem__(self, key: str) -> None:
        key_lower = key.lower()
        self._dict.__delitem__(key_lower)
        self._list = [(k, v) for k, v in self._list if k.lower() != key_lower]

    def get_all(self, key: str) -> List[str]:
        """
        Return the (possibly empty) list of all values for a header.

        """
        return self._dict.get(key.lower(), [])

    def raw_items(self) -> Iterator[Tuple[str, str]]:
        """
        Return an iterator of all values as ``(name, value)`` pairs.

        """
        return iter(self._list)


def d(value: bytes) -> str:
    """
    Decode a bytestring for interpolating into an error message.

    """
    return value.decode(errors="backslashreplace")


@dataclasses.dataclass
class Request:
    """
    The environment handed over by the request parser.

    Attributes:
        method: Request method, e.g. ``GET``.
        path: Request path without the query string.
        query: Query string without the leading ``?``, possibly empty.
        headers: Request headers.

    """

    method: str
    path: str
    query: str
    headers: Headers

    def serialize(self) -> bytes:
        target = f"{self.path}?{self.query}" if self.query else self.path
        return f"{self.method} {target} HTTP/1.1\r\n".encode() + self.headers.serialize()


@dataclasses.dataclass
class Response:
    """
    HTTP response head, plus an optional body when the server writes one.

    """

    status_code: int
    reason: str
    headers: Headers
    body: Optional[bytes] = None

    def serialize(self) -> bytes:
        response = f"HTTP/1.1 {self.status_code} {self.reason}\r\n".encode()
        response += self.headers.serialize()
        if self.body is not None:
            response += self.body
        return response


def plain_response(status: http.HTTPStatus, body: str) -> Response:
    """
    Build a ``text/plain`` response which closes the connection.

    """
    raw_body = body.encode()
    headers = Headers()
    headers["Content-Type"] = "text/plain"
    headers["Content-Length"] = str(len(raw_body))
    headers["Connection"] = "close"
    return Response(status.value, status.phrase, headers, raw_body)


async def read_request(stream: asyncio.StreamReader) -> Request:
    """
    Read an HTTP/1.x request head from ``stream``.

    ``path`` isn't URL-decoded or validated in any way. Any method is
    accepted; deciding what to do with it is the caller's business.

    The request body, if any, isn't read.

    Raises:
        EOFError: if the connection is closed without a full HTTP request
        ValueError: if the request isn't well formatted
        WebsocketException: if the request exceeds a security limit

    """
    # https://www.rfc-editor.org/rfc/rfc7230.html#section-3.1.1

    try:
        request_line = await read_line(stream)
    except EOFError as exc:
        raise EOFError("connection closed while reading HTTP request line") from exc

    try:
        method, raw_target, version = request_line.split(b" ", 2)
    except ValueError:  # not enough values to unpack (expected 3, got 1-2)
        raise ValueError(f"invalid HTTP request line: {d(request_line)}") from None

    if not _token_re.fullmatch(method):
        raise ValueError(f"invalid HTTP method: {d(method)}")
    if version not in (b"HTTP/1.0", b"HTTP/1.1"):
        raise ValueError(f"unsupported HTTP version: {d(version)}")
    target = raw_target.decode("ascii", "surrogateescape")
    path, _, query = target.partition("?")

    headers = await read_headers(stream)

    return Request(method.decode("ascii"), path, query, headers)


async def read_response(stream: asyncio.StreamReader) -> Response:
    """
    Read an HTTP/1.x response head from ``stream``.

    Bytes are consumed up to and including the blank line ending the head;
    whatever follows stays in ``stream``.

    Raises:
        EOFError: if the connection is closed before the end of the head
        ValueError: if the status line or a header isn't well formatted
        WebsocketException: if the head exceeds a security limit

    """
    # https://www.rfc-editor.org/rfc/rfc7230.html#section-3.1.2

    try:
        head = await stream.readuntil(b"\r\n\r\n")
    except asyncio.IncompleteReadError as exc:
        raise EOFError("connection closed while reading HTTP response") from exc
    except asyncio.LimitOverrunError as exc:
        raise WebsocketException("SecurityError: HTTP response head too long") from exc

    status_line, *lines = head[:-4].split(b"\r\n")

    parts = status_line.split(b" ", 2)
    if len(parts) < 2:
        raise ValueError(f"invalid HTTP status line: {d(status_line)}")
    version, raw_status_code = parts[0], parts[1]
    raw_reason = parts[2] if len(parts) == 3 else b""

    if not version.startswith(b"HTTP/"):
        raise ValueError(f"unsupported HTTP version: {d(version)}")
    try:
        status_code = int(raw_status_code)
    except ValueError:  # invalid literal for int() with base 10
        raise ValueError(f"invalid HTTP status code: {d(raw_status_code)}") from None
    if not 100 <= status_code < 1000:
        raise ValueError(f"unsupported HTTP status code: {d(raw_status_code)}")
    if not _value_re.fullmatch(raw_reason):
        raise ValueError(f"invalid HTTP reason phrase: {d(raw_reason)}")

    if len(lines) > MAX_HEADERS:
        raise WebsocketException("SecurityError: too many HTTP headers")
    headers = Headers()
    for line in lines:
        name, value = parse_header_line(line)
        headers[name] = value

    return Response(status_code, raw_reason.decode(), headers)


async def read_headers(stream: asyncio.StreamReader) -> Headers:
    """
    Read HTTP headers from ``stream`` up to the blank line.

    Non-ASCII characters are represented with surrogate escapes.

    """
    # https://www.rfc-editor.org/rfc/rfc7230.html#section-3.2

    # We don't attempt to support obsolete line folding.

    headers = Headers()
    for _ in range(MAX_HEADERS + 1):
        try:
            line = await read_line(stream)
        except EOFError as exc:
            raise EOFError("connection closed while reading HTTP headers") from exc
        if line == b"":
            break

        name, value = parse_header_line(line)
        headers[name] = value

    else:
        raise WebsocketException("SecurityError: too many HTTP headers")

    return headers


def parse_header_line(line: bytes) -> Tuple[str, str]:
    """
    Split one ``Name: value`` line, CRLF already stripped.

    Raises:
        ValueError: if the line isn't a valid header.

    """
    try:
        raw_name, raw_value = line.split(b":", 1)
    except ValueError:  # not enough values to unpack (expected 2, got 1)
        raise ValueError(f"invalid HTTP header line: {d(line)}") from None
    if not _token_re.fullmatch(raw_name):
        raise ValueError(f"invalid HTTP header name: {d(raw_name)}")
    raw_value = raw_value.strip(b" \t")
    if not _value_re.fullmatch(raw_value):
        raise ValueError(f"invalid HTTP header value: {d(raw_value)}")

    name = raw_name.decode("ascii")  # guaranteed to be ASCII at this point
    value = raw_value.decode("ascii", "surrogateescape")
    return name, value


async def read_line(stream: asyncio.StreamReader) -> bytes:
    """
    Read a single line from ``stream``.

    CRLF is stripped from the return value.

    """
    # Security: this is bounded by the StreamReader's limit.
    try:
        line = await stream.readline()
    except ValueError as exc:  # raised by readline when the limit is overrun
        raise WebsocketException("SecurityError: line too long") from exc
    # Security: this guarantees header values are small (hard-coded = 8 KiB)
    if len(line) > MAX_LINE:
        raise WebsocketException("SecurityError: line too long")
    # Not mandatory but safe - https://www.rfc-editor.org/rfc/rfc7230.html#section-3.5
    if not line.endswith(b"\r\n"):
        raise EOFError("line without CRLF")
    return line[:-2]
