from typing import Iterator, Optional

from wsecho.ws.frames import Frame, try_decode
from wsecho.ws.typings import BytesLike


class FrameReassembler:
    """
    Turn arbitrarily chunked reads into complete frames.

    One instance belongs to exactly one connection. Bytes handed to
    :meth:`feed` are appended to an internal buffer; every complete frame at
    the front of the buffer is removed and yielded, and whatever is left over
    waits for the next call::

        reassembler = FrameReassembler()
        for frame in reassembler.feed(chunk):
            handle(frame)

    After each :meth:`feed` has been iterated to the end, the buffer holds at
    most one incomplete frame, so ``max_size`` also bounds its growth.

    Args:
        max_size: largest payload accepted, see
            :func:`~wsecho.ws.frames.try_decode`; :obj:`None` disables it.

    """

    def __init__(self, max_size: Optional[int] = 2 ** 20) -> None:
        self.max_size = max_size
        self.buffer = bytearray()

    def __len__(self) -> int:
        return len(self.buffer)

    def feed(self, data: BytesLike) -> Iterator[Frame]:
        """
        Append ``data`` and return an iterator over the frames now complete.

        The bytes are buffered immediately, even if the iterator is never
        consumed. Stopping the iteration early leaves the remaining frames in
        the buffer.

        Raises:
            WebsocketException: ``PayloadTooBig`` while iterating, when a
                frame header declares a length above ``max_size``.

        """
        self.buffer += data
        return self._frames()

    def _frames(self) -> Iterator[Frame]:
        while self.buffer:
            frame, consumed = try_decode(self.buffer, self.max_size)
            if frame is None:
                return
            del self.buffer[:consumed]
            yield frame
