import asyncio
import functools
from types import TracebackType
from typing import Any, Generator, Optional, Type

from wsecho.logs import Logger
from wsecho.ws.protocol import WebSocketClientProtocol
from wsecho.ws.typings import LoggerLike


class Connect:
    """
    Connect to the WebSocket server at ``ws://host:port/path``.

    Awaiting :func:`connect` yields a :class:`WebSocketClientProtocol` once
    the opening handshake succeeded::

        ws = await connect("localhost", 3000)
        await ws.send("hello")
        print(await ws.recv())
        await ws.close()

    :func:`connect` can also be used as an asynchronous context manager, in
    which case the connection is closed when exiting the context.

    There's no retry: when the handshake fails the TCP connection is closed
    and the error is raised to the caller.

    Args:
        host: server host name.
        port: server port.
        path: resource requested in the handshake.
        logger: logger for this connection;
            defaults to ``Logger.get_logger("wsecho.client")``.
        max_size: largest incoming frame payload; :obj:`None` disables it.
        close_timeout: timeout of the closing handshake.
        read_limit: size of the chunks read from the connection.

    Raises:
        WebsocketException: ``InvalidStatus``, ``InvalidMessage`` or
            ``UnexpectedDisconnect`` if the handshake fails.
        OSError: if the TCP connection fails.

    """

    def __init__(
            self,
            host: str = "localhost",
            port: int = 3000,
            path: str = "/",
            *,
            logger: Optional['LoggerLike'] = None,
            max_size: Optional[int] = 2 ** 20,
            close_timeout: float = 10,
            read_limit: int = 2 ** 16,
            **kwargs: Any,
    ) -> None:
        if logger is None:
            logger = Logger.get_logger("wsecho.client")

        self._factory = functools.partial(
            WebSocketClientProtocol,
            logger=logger,
            max_size=max_size,
            close_timeout=close_timeout,
            read_limit=read_limit,
        )
        self.host = host
        self.port = port
        self.path = path
        self.kwargs = kwargs
        self.logger = logger

    async def __aenter__(self) -> WebSocketClientProtocol:
        self.protocol = await self
        return self.protocol

    async def __aexit__(
            self,
            exc_type: Optional[Type[BaseException]],
            exc_value: Optional[BaseException],
            traceback: Optional[TracebackType],
    ) -> None:
        await self.protocol.close()

    def __await__(self) -> Generator[Any, None, WebSocketClientProtocol]:
        # Create a suitable iterator by calling __await__ on a coroutine.
        return self.__await_impl__().__await__()

    async def __await_impl__(self) -> WebSocketClientProtocol:
        loop = asyncio.get_running_loop()
        _transport, protocol = await loop.create_connection(
            self._factory, self.host, self.port, **self.kwargs
        )
        try:
            await protocol.handshake(self.host, self.port, self.path)
        except BaseException as exc:
            self.logger.error(f"opening handshake failed: {exc}")
            protocol.fail_connection()
            await protocol.close_connection_task
            raise
        return protocol


connect = Connect
