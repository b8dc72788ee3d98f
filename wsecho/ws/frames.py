"""
Encoding and decoding of single WebSocket frames (RFC 6455, section 5.2).

Nothing in this module performs I/O::

    0                   1                   2                   3
    0 1 2 3 4 5 6 7 8 9 0 1 2 3 4 5 6 7 8 9 0 1 2 3 4 5 6 7 8 9 0 1
   +-+-+-+-+-------+-+-------------+-------------------------------+
   |F|R|R|R| opcode|M| Payload len |    Extended payload length    |
   |I|S|S|S|  (4)  |A|     (7)     |             (16/64)           |
   |N|V|V|V|       |S|             |   (if payload len==126/127)   |
   | |1|2|3|       |K|             |                               |
   +-+-+-+-+-------+-+-------------+ - - - - - - - - - - - - - - - +
   |     Extended payload length continued, if payload len == 127  |
   + - - - - - - - - - - - - - - - +-------------------------------+
   |                               |Masking-key, if MASK set to 1  |
   +-------------------------------+-------------------------------+
   | Masking-key (continued)       |          Payload Data         |
   +-------------------------------- - - - - - - - - - - - - - - - +
"""
import dataclasses
import enum
import secrets
import struct
import sys
from typing import Callable, Optional, Tuple, Union

from wsecho.ws.exception import WebsocketException
from wsecho.ws.typings import BytesLike, Data


class Opcode(enum.IntEnum):
    """Opcode values for WebSocket frames."""

    CONT, TEXT, BINARY = 0x00, 0x01, 0x02
    CLOSE, PING, PONG = 0x08, 0x09, 0x0A


OP_CONT = Opcode.CONT
OP_TEXT = Opcode.TEXT
OP_BINARY = Opcode.BINARY
OP_CLOSE = Opcode.CLOSE
OP_PING = Opcode.PING
OP_PONG = Opcode.PONG


CLOSE_NO_STATUS = 1005

OK_CLOSE_CODES = {1000, 1001, CLOSE_NO_STATUS}

SHORT = struct.Struct('!H')
LONGLONG = struct.Struct('!Q')

# Bit masks of the first two header bytes.
FIN_BIT = 0b10000000
OPCODE_BITS = 0b00001111
MASK_BIT = 0b10000000
LENGTH_BITS = 0b01111111


def _try_opcode(value: int) -> Union[Opcode, int]:
    try:
        return Opcode(value)
    except ValueError:
        return value


def apply_mask(data: BytesLike, mask: bytes) -> bytes:
    """
    XOR ``data`` with ``mask``, repeating the 4-byte mask over the payload.

    Applying the same mask twice returns the original bytes.

    """
    if len(mask) != 4:
        raise ValueError("mask must contain 4 bytes")

    data = bytes(data)
    data_int = int.from_bytes(data, sys.byteorder)
    mask_repeated = mask * (len(data) // 4) + mask[: len(data) % 4]
    mask_int = int.from_bytes(mask_repeated, sys.byteorder)
    return (data_int ^ mask_int).to_bytes(len(data), sys.byteorder)


def encode_frame(
    opcode: int,
    data: BytesLike,
    *,
    mask: bool = False,
    mask_key: Optional[bytes] = None,
) -> bytes:
    """
    Serialize one complete frame with the FIN bit set.

    The payload length is written inline when it's below 126, as a 16-bit
    extension when it's below 65536 and as a 64-bit extension otherwise.

    Args:
        opcode: frame opcode.
        data: payload.
        mask: whether to mask the payload, which clients must always do.
        mask_key: fixed masking key; a random one is drawn when omitted.

    """
    data = bytes(data)
    length = len(data)

    output = bytearray()
    output.append(FIN_BIT | opcode)

    mask_bit = MASK_BIT if mask else 0
    if length < 126:
        output.append(mask_bit | length)
    elif length < 65536:
        output.append(mask_bit | 126)
        output += SHORT.pack(length)
    else:
        output.append(mask_bit | 127)
        output += LONGLONG.pack(length)

    if mask:
        if mask_key is None:
            mask_key = secrets.token_bytes(4)
        output += mask_key
        data = apply_mask(data, mask_key)

    output += data
    return bytes(output)


def try_decode(
    buffer: BytesLike, max_size: Optional[int] = None
) -> Tuple[Optional['Frame'], int]:
    """
    Decode the frame at the start of ``buffer`` if it's complete.

    ``buffer`` is never modified. Return ``(frame, consumed)`` where
    ``consumed`` counts the header, length extension, mask and payload bytes,
    or ``(None, 0)`` when more bytes must arrive first. Calling it again with
    the same bytes plus more gives the same answer.

    Args:
        buffer: received bytes, starting at a frame boundary.
        max_size: largest payload accepted; :obj:`None` disables the check.

    Raises:
        WebsocketException: ``PayloadTooBig`` as soon as the length field
            exceeds ``max_size``.

    """
    available = len(buffer)
    if available < 2:
        return None, 0

    head1, head2 = buffer[0], buffer[1]
    fin = bool(head1 & FIN_BIT)
    opcode = _try_opcode(head1 & OPCODE_BITS)
    masked = bool(head2 & MASK_BIT)
    length = head2 & LENGTH_BITS
    offset = 2

    if length == 126:
        if available < offset + 2:
            return None, 0
        (length,) = SHORT.unpack_from(buffer, offset)
        offset += 2
    elif length == 127:
        if available < offset + 8:
            return None, 0
        (length,) = LONGLONG.unpack_from(buffer, offset)
        offset += 8

    if max_size is not None and length > max_size:
        raise WebsocketException(
            f"PayloadTooBig: frame of {length} bytes exceeds limit of {max_size} bytes"
        )

    mask_key = b""
    if masked:
        if available < offset + 4:
            return None, 0
        mask_key = bytes(buffer[offset:offset + 4])
        offset += 4

    if available < offset + length:
        return None, 0

    data = bytes(buffer[offset:offset + length])
    if masked:
        data = apply_mask(data, mask_key)

    return Frame(opcode, data, fin, masked, mask_key), offset + length


@dataclasses.dataclass
class Frame:
    """
    WebSocket frame.

    Attributes:
        opcode: Opcode; unknown values are kept as plain integers.
        data: Payload data, unmasked.
        fin: FIN bit.
        masked: Whether the frame arrived masked.
        mask_key: The 4-byte masking key, empty when unmasked.

    """

    opcode: Union[Opcode, int]
    data: bytes
    fin: bool = True
    masked: bool = False
    mask_key: bytes = b""

    def __str__(self) -> str:
        name = self.opcode.name if isinstance(self.opcode, Opcode) else hex(self.opcode)
        coding = None
        if self.opcode == OP_TEXT:
            coding = "text"
        elif self.opcode == OP_CLOSE:
            coding = "close"

        if coding == "text":
            try:
                data = repr(self.data.decode())
            except UnicodeDecodeError:
                data = f"{len(self.data)} undecodable bytes"
        elif coding == "close":
            data = str(Close.parse(self.data))
        elif self.data:
            data = f"{len(self.data)} bytes"
        else:
            data = "''"

        if len(data) > 75:
            data = data[:48] + "..." + data[-24:]

        non_final = "" if self.fin else " [continued]"
        return f"{name} {data}{non_final}"

    def serialize(self, *, mask: bool) -> bytes:
        return encode_frame(self.opcode, self.data, mask=mask)

    def write(self, write: Callable[[bytes], None], *, mask: bool) -> None:
        """
        Write the frame with the given ``write`` callable, e.g. a transport's.

        """
        write(self.serialize(mask=mask))


@dataclasses.dataclass
class Close:
    """
    Code and reason carried by a close frame.

    """

    code: int
    reason: str

    def __str__(self) -> str:
        result = f"{self.code}"
        if self.reason:
            result = f"{result} {self.reason}"
        return result

    @classmethod
    def parse(cls, data: bytes) -> 'Close':
        """
        Parse the payload of a close frame.

        An empty payload, or one too short to hold a code, means no status.

        """
        if len(data) >= 2:
            (code,) = SHORT.unpack(data[:2])
            reason = data[2:].decode("utf-8", "backslashreplace")
            return cls(code, reason)
        return cls(CLOSE_NO_STATUS, "")

    def serialize(self) -> bytes:
        if self.code == CLOSE_NO_STATUS:
            return b""
        return SHORT.pack(self.code) + self.reason.encode()


def prepare_data(data: Data) -> Tuple[int, bytes]:
    """
    Convert a message to an opcode and a payload.

    :class:`str` goes out as a text frame, bytes-like objects as binary.

    Raises:
        TypeError: if ``data`` doesn't have a supported type.

    """
    if isinstance(data, str):
        return OP_TEXT, data.encode("utf-8")
    elif isinstance(data, BytesLike):
        return OP_BINARY, bytes(data)
    else:
        raise TypeError("data must be str or bytes-like")
