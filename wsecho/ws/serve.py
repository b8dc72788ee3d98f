import asyncio
import functools
import socket
from types import TracebackType
from typing import Any, Awaitable, Callable, Generator, List, Optional, Sequence, Set, Type, Union

from wsecho.logs import Logger
from wsecho.ws.misc import State
from wsecho.ws.protocol import WebSocketServerProtocol
from wsecho.ws.typings import LoggerLike


def _describe(sock: socket.socket) -> str:
    address = sock.getsockname()
    if sock.family == socket.AF_INET:
        return "%s:%d" % address
    if sock.family == socket.AF_INET6:
        return "[%s]:%d" % address[:2]
    return str(address)


class WebSocketServer:
    """
    Listening server handed back by :func:`serve`.

    Besides the :class:`asyncio.Server` it wraps, it remembers which
    connections are alive, so that shutting down can run the closing
    handshake on each of them. Connections add and remove themselves from
    the event loop thread only.

    Args:
        logger: where ``listening``/``closing`` events go;
            ``Logger.get_logger("wsecho.server")`` if omitted.

    """

    def __init__(self, logger: Optional['LoggerLike'] = None):
        self.logger = logger if logger is not None else Logger.get_logger("wsecho.server")
        self.websockets: Set[WebSocketServerProtocol] = set()
        self.server: asyncio.base_events.Server
        self.close_task: Optional[asyncio.Task[None]] = None
        # Resolved once every connection is gone.
        self.closed_waiter: asyncio.Future[None]

    def wrap(self, server: asyncio.base_events.Server) -> None:
        self.server = server
        self.closed_waiter = server.get_loop().create_future()
        for sock in server.sockets:
            self.logger.info("server listening on %s", _describe(sock))

    def register(self, protocol: WebSocketServerProtocol) -> None:
        self.websockets.add(protocol)

    def unregister(self, protocol: WebSocketServerProtocol) -> None:
        self.websockets.discard(protocol)

    @property
    def sockets(self) -> List[socket.socket]:
        return list(self.server.sockets)

    def close(self) -> None:
        """
        Start shutting down; calling it again does nothing.

        Use :meth:`wait_closed` to know when it's over.

        """
        if self.close_task is None:
            self.close_task = self.server.get_loop().create_task(self.shutdown())

    async def shutdown(self) -> None:
        """
        Stop listening, drop connections that haven't completed the opening
        handshake, close every open connection with the closing handshake,
        then wait for their handlers.

        """
        self.logger.info("server closing")
        self.server.close()

        # Let connections accepted just before close() reach connection_made().
        await asyncio.sleep(0)

        # Connections still waiting for a handshake request have nothing to
        # close gracefully; dropping TCP ends their handler.
        for ws in self.websockets:
            if ws.state is State.CONNECTING and ws.transport is not None:
                ws.transport.close()

        open_connections = [ws for ws in self.websockets if ws.state is State.OPEN]
        if open_connections:
            await asyncio.wait([asyncio.create_task(ws.close()) for ws in open_connections])

        handlers = [ws.handler_task for ws in self.websockets]
        if handlers:
            await asyncio.wait(handlers)

        # On Python 3.12+ this returns only when the accepted sockets are gone.
        await self.server.wait_closed()

        self.closed_waiter.set_result(None)
        self.logger.info("server closed")

    async def wait_closed(self) -> None:
        await asyncio.shield(self.closed_waiter)

    async def __aenter__(self) -> 'WebSocketServer':
        return self

    async def __aexit__(
            self,
            exc_type: Optional[Type[BaseException]],
            exc_value: Optional[BaseException],
            traceback: Optional[TracebackType],
    ) -> None:
        self.close()
        await self.wait_closed()


class Serve:
    """
    Listen on ``host`` and ``port`` and run ``ws_handler`` for every
    WebSocket connection.

    Each accepted TCP connection gets its own
    :class:`WebSocketServerProtocol` and its own task: opening handshake,
    ``ws_handler(ws)``, closing handshake. A failure on one connection is
    logged and never reaches the listener.

    Await it for a :class:`WebSocketServer`, or use it with ``async with``
    to have the server closed on exit::

        async with serve(echo, "localhost", 3000) as server:
            await asyncio.Future()

    Args:
        ws_handler: coroutine function called with each open connection.
        host: interface(s) to bind, as for :meth:`~asyncio.loop.create_server`.
        port: TCP port, ``0`` for any free one.
        logger: logger shared by the server and its connections.
        max_size: largest frame payload accepted, :obj:`None` for no limit.
        close_timeout: seconds given to the closing handshake.
        read_limit: size of each read from a connection.

    Other keyword arguments go to :meth:`~asyncio.loop.create_server`.

    """

    def __init__(
            self,
            ws_handler: Callable[[WebSocketServerProtocol], Awaitable[Any]],
            host: Optional[Union[str, Sequence[str]]] = "localhost",
            port: Optional[int] = 3000,
            *,
            logger: Optional['LoggerLike'] = None,
            max_size: Optional[int] = 2 ** 20,
            close_timeout: float = 10,
            read_limit: int = 2 ** 16,
            **kwargs: Any,
    ) -> None:
        if logger is None:
            logger = Logger.get_logger("wsecho.server")
        self.ws_server = WebSocketServer(logger=logger)
        self.protocol_factory = functools.partial(
            WebSocketServerProtocol,
            ws_handler,
            self.ws_server,
            logger=logger,
            max_size=max_size,
            close_timeout=close_timeout,
            read_limit=read_limit,
        )
        self.host = host
        self.port = port
        self.create_server_kwargs = kwargs

    async def start(self) -> WebSocketServer:
        loop = asyncio.get_running_loop()
        server = await loop.create_server(
            self.protocol_factory, self.host, self.port, **self.create_server_kwargs
        )
        self.ws_server.wrap(server)
        return self.ws_server

    def __await__(self) -> Generator[Any, None, WebSocketServer]:
        return self.start().__await__()

    async def __aenter__(self) -> WebSocketServer:
        return await self.start()

    async def __aexit__(
            self,
            exc_type: Optional[Type[BaseException]],
            exc_value: Optional[BaseException],
            traceback: Optional[TracebackType],
    ) -> None:
        await self.ws_server.__aexit__(exc_type, exc_value, traceback)


serve = Serve
