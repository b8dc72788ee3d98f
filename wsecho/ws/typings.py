import logging
from typing import Iterable, Mapping, MutableMapping, Tuple, TypeVar, Union


HeadersLike = Union[
    MutableMapping[str, str],
    Mapping[str, str],
    Iterable[Tuple[str, str]]
]


Data = Union[str, bytes]


LoggerLike = TypeVar('LoggerLike', bound=logging.Logger)

BytesLike = bytes, bytearray, memoryview
