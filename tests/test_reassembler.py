import pytest

from wsecho.ws.exception import WebsocketException
from wsecho.ws.frames import OP_CLOSE, OP_TEXT, encode_frame
from wsecho.ws.reassembler import FrameReassembler


@pytest.mark.parametrize("mask", [False, True])
def test_every_split_point_yields_one_frame(mask):
    payload = b"x" * 300
    raw = encode_frame(OP_TEXT, payload, mask=mask)

    for split in range(len(raw) + 1):
        reassembler = FrameReassembler()
        frames = list(reassembler.feed(raw[:split]))
        frames += list(reassembler.feed(raw[split:]))

        assert len(frames) == 1, split
        assert frames[0].data == payload
        assert len(reassembler) == 0


def test_byte_by_byte():
    raw = encode_frame(OP_TEXT, b"hello", mask=True)
    reassembler = FrameReassembler()

    frames = []
    for i in range(len(raw)):
        frames += reassembler.feed(raw[i:i + 1])

    assert [frame.data for frame in frames] == [b"hello"]


def test_several_frames_in_one_chunk():
    raw = (
        encode_frame(OP_TEXT, b"one")
        + encode_frame(OP_TEXT, b"two")
        + encode_frame(OP_CLOSE, b"")
    )
    reassembler = FrameReassembler()

    frames = list(reassembler.feed(raw))

    assert [(frame.opcode, frame.data) for frame in frames] == [
        (OP_TEXT, b"one"),
        (OP_TEXT, b"two"),
        (OP_CLOSE, b""),
    ]
    assert len(reassembler) == 0


def test_leftover_is_kept():
    first = encode_frame(OP_TEXT, b"one")
    second = encode_frame(OP_TEXT, b"two")
    reassembler = FrameReassembler()

    frames = list(reassembler.feed(first + second[:3]))
    assert [frame.data for frame in frames] == [b"one"]
    assert len(reassembler) == 3

    frames = list(reassembler.feed(second[3:]))
    assert [frame.data for frame in frames] == [b"two"]
    assert len(reassembler) == 0


def test_data_is_buffered_without_iterating():
    reassembler = FrameReassembler()
    reassembler.feed(b"\x81")
    reassembler.feed(b"\x02hi")
    assert [frame.data for frame in reassembler.feed(b"")] == [b"hi"]


def test_max_size():
    reassembler = FrameReassembler(max_size=10)
    with pytest.raises(WebsocketException) as excinfo:
        list(reassembler.feed(encode_frame(OP_TEXT, b"x" * 11)))
    assert excinfo.value.type == "PayloadTooBig"


def test_no_limit():
    reassembler = FrameReassembler(max_size=None)
    payload = b"x" * (2 ** 20 + 1)
    frames = list(reassembler.feed(encode_frame(OP_TEXT, payload)))
    assert frames[0].data == payload
