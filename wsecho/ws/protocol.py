import asyncio
import collections
import http
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Deque, Optional, cast

from wsecho.logs import Logger
from wsecho.ws.exception import WebsocketException
from wsecho.ws.frames import CLOSE_NO_STATUS, OK_CLOSE_CODES, OP_CLOSE, OP_TEXT, Close, Frame, prepare_data
from wsecho.ws.http11 import Headers, Request, Response, plain_response, read_request, read_response
from wsecho.ws.misc import State, build_request, build_response, check_request, check_response, generate_key, \
    is_upgrade_request
from wsecho.ws.reassembler import FrameReassembler
from wsecho.ws.typings import Data, LoggerLike


PLAIN_HTTP_BODY = "Use a WebSocket client to connect\n"


class WebSocketCommonProtocol(asyncio.Protocol):
    """
    WebSocket connection, shared by the server and the client side.

    The transport pushes received bytes into :attr:`reader`. During the
    opening handshake the HTTP head is read from it line by line; once the
    connection is OPEN, :meth:`transfer_data` reads whatever chunk is
    available, feeds it to a :class:`FrameReassembler` owned by this
    connection only and dispatches each complete frame:

    * text frames are decoded and queued for :meth:`recv`;
    * a close frame is answered by exactly one close frame with an empty
      payload, once the text messages received before it were consumed,
      then the transport is closed;
    * every other opcode is ignored.

    Outgoing frames are encoded and written to the transport immediately.
    Concurrent :meth:`send` calls aren't serialized; callers must do it.

    Args:
        logger: logger for this connection.
        max_size: largest incoming frame payload, :obj:`None` for no limit.
        close_timeout: how long the closing handshake and the TCP teardown
            may take before the transport is aborted.
        read_limit: size of the chunks read from the transport, also the
            limit of the handshake reader.

    """

    is_client: bool
    side: str = "undefined"

    def __init__(
        self,
        *,
        logger: Optional['LoggerLike'] = None,
        max_size: Optional[int] = 2 ** 20,
        close_timeout: float = 10,
        read_limit: int = 2 ** 16,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        if logger is None:
            logger = Logger.get_logger(f"wsecho.{self.side}")
        self.logger = logger
        self.debug = logger.isEnabledFor(logging.DEBUG)

        if loop is None:
            loop = asyncio.get_running_loop()
        self.loop = loop

        self.max_size = max_size
        self.close_timeout = close_timeout
        self.read_limit = read_limit

        self.state = State.CONNECTING
        if self.debug:
            self.logger.debug("= connection is CONNECTING")

        self.reader = asyncio.StreamReader(limit=read_limit)
        self.reassembler = FrameReassembler(max_size)
        self.transport: Optional[asyncio.Transport] = None

        # Completed when connection_lost() is called.
        self.connection_lost_waiter: asyncio.Future[None] = loop.create_future()

        # Close frames sent and received, for reporting.
        self.close_sent: Optional[Close] = None
        self.close_rcvd: Optional[Close] = None

        # Exception that ended the data transfer, if any.
        self.transfer_data_exc: Optional[BaseException] = None

        # Text messages not yet consumed by recv().
        self.messages: Deque[str] = collections.deque()
        self._message_waiter: Optional[asyncio.Future[None]] = None

        # Set by transfer_data() while a received close frame waits for the
        # messages queued before it to be consumed.
        self._close_waiter: Optional[asyncio.Future[None]] = None

        # Task reading frames, created by connection_open().
        self.transfer_data_task: asyncio.Task[None]

        # Closes TCP once transfer_data() is over.
        self.close_connection_task: asyncio.Task[None]

    @property
    def open(self) -> bool:
        """
        Whether frames can still be sent and received.

        """
        return self.state is State.OPEN and not self.transfer_data_task.done()

    @property
    def closed(self) -> bool:
        """
        Whether the TCP connection is gone. Neither :attr:`open` nor
        :attr:`closed` holds while handshaking or closing.

        """
        return self.state is State.CLOSED

    # asyncio.Protocol callbacks

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        transport = cast(asyncio.Transport, transport)
        self.transport = transport
        self.reader.set_transport(transport)

    def data_received(self, data: bytes) -> None:
        self.reader.feed_data(data)

    def eof_received(self) -> None:
        self.reader.feed_eof()

    def connection_lost(self, exc: Optional[Exception]) -> None:
        # RFC 6455 7.1.4: the connection is CLOSED once TCP is gone.
        self.state = State.CLOSED
        if self.debug:
            self.logger.debug("= connection is CLOSED")

        if not self.connection_lost_waiter.done():
            self.connection_lost_waiter.set_result(None)
        self.release_close()

        if exc is None:
            self.reader.feed_eof()
        else:
            self.reader.set_exception(exc)

    # Opening handshake

    def connection_open(self) -> None:
        """
        Switch to OPEN after a successful handshake and start reading frames.

        """
        assert self.state is State.CONNECTING
        self.state = State.OPEN
        if self.debug:
            self.logger.debug("= connection is OPEN")
        self.transfer_data_task = self.loop.create_task(self.transfer_data())
        self.close_connection_task = self.loop.create_task(self.close_connection())

    # Data transfer

    async def transfer_data(self) -> None:
        """
        Read chunks from the transport and process the frames they complete.

        This coroutine runs in a task until a close frame is received or the
        connection fails.

        """
        try:
            while True:
                data = await self.reader.read(self.read_limit)
                if not data:
                    if len(self.reassembler):
                        raise EOFError("connection closed in the middle of a frame")
                    raise EOFError("connection closed without a close frame")

                for frame in self.reassembler.feed(data):
                    if not self.process_frame(frame):
                        await self.answer_close()
                        return

        except asyncio.CancelledError as exc:
            self.transfer_data_exc = exc
            raise

        except WebsocketException as exc:
            self.transfer_data_exc = exc
            self.logger.error(f"connection failed: {exc}")
            if exc.type == 'PayloadTooBig':
                self.fail_connection(1009)
            else:
                self.fail_connection(1002)

        except UnicodeDecodeError as exc:
            self.transfer_data_exc = exc
            self.logger.error(f"connection failed: invalid UTF-8 in text frame: {exc}")
            self.fail_connection(1007)

        except (ConnectionError, EOFError) as exc:
            self.transfer_data_exc = WebsocketException(f"UnexpectedDisconnect: {exc}")
            self.transfer_data_exc.__cause__ = exc
            if self.state is State.OPEN:
                self.logger.info(f"connection lost: {exc}")
            self.fail_connection(1006)

        except Exception as exc:
            self.logger.exception("data transfer failed")
            self.transfer_data_exc = exc
            self.fail_connection(1011)

    def process_frame(self, frame: Frame) -> bool:
        """
        Dispatch one received frame.

        Return :obj:`False` when the frame ends the data transfer.

        """
        if self.debug:
            self.logger.debug(f"< {frame}")

        if frame.opcode == OP_CLOSE:
            self.close_rcvd = Close.parse(frame.data)
            return False

        # 7.1.3. No more data frames are processed once Close was sent.
        if self.state is not State.OPEN:
            return True

        if not frame.fin:
            raise WebsocketException("ProtocolError: fragmented messages aren't supported")

        if frame.opcode == OP_TEXT:
            self.put_message(frame.data.decode("utf-8"))

        return True

    async def answer_close(self) -> None:
        """
        Reply to the received close frame.

        Text messages that arrived before it are handled first: the reply
        waits until the handler asks :meth:`recv` for more than the queue
        holds, or calls :meth:`close`.

        """
        if self.messages and self.state is State.OPEN:
            self._close_waiter = self.loop.create_future()
            await self._close_waiter
        self.write_close_frame()

    def release_close(self) -> None:
        if self._close_waiter is not None and not self._close_waiter.done():
            self._close_waiter.set_result(None)

    def put_message(self, message: str) -> None:
        self.messages.append(message)

        if self._message_waiter is not None and not self._message_waiter.done():
            self._message_waiter.set_result(None)

    # Writing

    def write_frame_sync(self, opcode: int, data: bytes) -> None:
        frame = Frame(opcode, data)
        if self.debug:
            self.logger.debug(f"> {frame}")
        frame.write(self.transport.write, mask=self.is_client)

    def write_close_frame(self, close: Optional[Close] = None) -> None:
        """
        Move from OPEN to CLOSING and write a close frame, by default with an
        empty payload. Does nothing in any other state, so at most one close
        frame is ever sent.

        """
        if self.state is not State.OPEN:
            return
        if close is None:
            close = Close(CLOSE_NO_STATUS, "")
        self.state = State.CLOSING
        if self.debug:
            self.logger.debug("= connection is CLOSING")
        self.close_sent = close
        self.write_frame_sync(OP_CLOSE, close.serialize())

    async def send(self, message: Data) -> None:
        """
        Send a message.

        A string (:class:`str`) is sent as a Text frame, a bytes-like object
        as a Binary frame. Client frames are masked.

        Raises:
            WebsocketException: ``ConnectionClosed`` when the connection is
                closed or closing.
            TypeError: if ``message`` doesn't have a supported type.

        """
        self.ensure_open()
        opcode, data = prepare_data(message)
        self.write_frame_sync(opcode, data)

    async def recv(self) -> str:
        """
        Receive the next text message.

        Messages received before the connection closed are still returned;
        once they're exhausted :meth:`recv` raises.

        Raises:
            WebsocketException: ``ConnectionClosed`` when the connection is
                closed.
            RuntimeError: if two coroutines call :meth:`recv` concurrently.

        """
        if self._message_waiter is not None:
            raise RuntimeError("recv() is already awaited by another coroutine")
        if self.state is State.CONNECTING:
            raise WebsocketException("InvalidState: WebSocket connection isn't established yet")
        if not hasattr(self, "transfer_data_task"):
            # The opening handshake failed.
            raise self.connection_closed_exc()

        while not self.messages and not self.transfer_data_task.done():
            self.release_close()
            self._message_waiter = self.loop.create_future()
            try:
                # Woken by put_message() or by the end of transfer_data().
                await asyncio.wait(
                    {self._message_waiter, self.transfer_data_task},
                    return_when=asyncio.FIRST_COMPLETED,
                )
            finally:
                self._message_waiter = None

        if not self.messages:
            raise self.connection_closed_exc()

        return self.messages.popleft()

    async def __aiter__(self) -> AsyncIterator[str]:
        """
        Iterate on incoming text messages until the connection closes.

        """
        try:
            while True:
                yield await self.recv()
        except WebsocketException as exc:
            if exc.type != 'ConnectionClosed':
                raise

    # Closing

    def ensure_open(self) -> None:
        """
        Raise unless frames may be sent.

        """
        if self.state is State.OPEN and not self.transfer_data_task.done():
            return
        if self.state is State.CONNECTING:
            raise WebsocketException("InvalidState: WebSocket connection isn't established yet")
        raise self.connection_closed_exc()

    def connection_closed_exc(self) -> WebsocketException:
        exc = WebsocketException(
            f"ConnectionClosed: sent {self.close_sent}, received {self.close_rcvd}"
        )
        exc.__cause__ = self.transfer_data_exc
        return exc

    @property
    def close_ok(self) -> bool:
        """
        :obj:`True` when close frames were exchanged with non-error codes.

        """
        return (
            self.close_rcvd is not None
            and self.close_rcvd.code in OK_CLOSE_CODES
            and self.close_sent is not None
            and self.close_sent.code in OK_CLOSE_CODES
        )

    async def close(self) -> None:
        """
        Run the closing handshake from this side.

        Send a close frame if none was sent yet, wait up to
        :attr:`close_timeout` for the peer's close frame, then close the TCP
        connection. :meth:`close` is idempotent.

        """
        if self.state is State.CONNECTING:
            raise WebsocketException("InvalidState: WebSocket connection isn't established yet")
        if not hasattr(self, "close_connection_task"):
            return

        self.release_close()
        self.write_close_frame()

        try:
            await asyncio.wait_for(
                asyncio.shield(self.transfer_data_task),
                self.close_timeout,
            )
        except asyncio.TimeoutError:
            self.transfer_data_task.cancel()
        except asyncio.CancelledError:
            if not self.transfer_data_task.cancelled():
                raise

        await asyncio.shield(self.close_connection_task)

    async def wait_closed(self) -> None:
        """
        Wait until the TCP connection is closed.

        """
        await asyncio.shield(self.connection_lost_waiter)

    def fail_connection(self, code: int = 1006, reason: str = "") -> None:
        """
        Stop reading, send a close frame carrying ``code`` if the connection
        is OPEN, and tear the TCP connection down.

        """
        if self.debug:
            self.logger.debug(f"! failing connection with code {code}")

        # When called from transfer_data() the task simply returns afterwards.
        if (
            hasattr(self, "transfer_data_task")
            and self.transfer_data_task is not asyncio.current_task()
        ):
            self.transfer_data_task.cancel()

        # 1006 means the network is gone: nothing can be sent.
        if code != 1006:
            self.write_close_frame(Close(code, reason))

        if not hasattr(self, "close_connection_task"):
            self.close_connection_task = self.loop.create_task(self.close_connection())

    async def close_connection(self) -> None:
        """
        Wait for the data transfer phase to complete, then close the TCP
        connection.

        """
        try:
            if hasattr(self, "transfer_data_task"):
                try:
                    await self.transfer_data_task
                except asyncio.CancelledError:
                    pass
        finally:
            # Runs even when cancelled.
            await self.close_transport()

    async def wait_for_connection_lost(self) -> bool:
        """
        Give the peer :attr:`close_timeout` seconds to drop TCP; return
        whether it did.

        """
        if not self.connection_lost_waiter.done():
            try:
                await asyncio.wait_for(
                    asyncio.shield(self.connection_lost_waiter),
                    self.close_timeout,
                )
            except asyncio.TimeoutError:
                pass
        return self.connection_lost_waiter.done()

    async def close_transport(self) -> None:
        """
        Close the TCP connection, aborting it if it doesn't close in time.

        """
        if self.connection_lost_waiter.done():
            return

        if self.debug:
            self.logger.debug("x closing TCP connection")
        self.transport.close()

        if await self.wait_for_connection_lost():
            return
        if self.debug:
            self.logger.debug("! timed out waiting for TCP close")

        self.transport.abort()
        await self.wait_for_connection_lost()


class WebSocketServerProtocol(WebSocketCommonProtocol):
    """
    Server side of a WebSocket connection.

    One instance is created per accepted TCP connection. It runs
    :meth:`handler` in its own task: the opening handshake, then
    ``ws_handler``, then the closing handshake. Failures are logged and only
    ever end this connection.

    Args:
        ws_handler: connection handler, receives this protocol.
        ws_server: server that accepted the connection.

    """

    is_client = False
    side = "server"

    def __init__(
        self,
        ws_handler: Callable[['WebSocketServerProtocol'], Awaitable[Any]],
        ws_server: 'WebSocketServer',
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.ws_handler = ws_handler
        self.ws_server = ws_server
        self.request: Optional[Request] = None

    @property
    def path(self) -> Optional[str]:
        return self.request.path if self.request is not None else None

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        super().connection_made(transport)
        # Registered first: shutdown waits on handler_task of registered connections.
        self.ws_server.register(self)
        self.handler_task = self.loop.create_task(self.handler())

    async def handler(self) -> None:
        """
        Handshake, application handler, closing handshake.

        Nothing awaits this task, so every error is logged here and the
        transport is closed on the way out.

        """
        try:

            try:
                await self.handshake()
            except asyncio.CancelledError:
                raise
            except WebsocketException as exc:
                if exc.type == 'AbortHandshake':
                    if self.debug:
                        self.logger.debug(f"! {exc}")
                    response = None
                elif exc.type == 'UnexpectedDisconnect':
                    self.logger.info(f"opening handshake failed: {exc}")
                    response = None
                elif exc.type in ('InvalidMessage', 'InvalidHeader', 'InvalidHeaderValue'):
                    self.logger.info(f"opening handshake failed: {exc}")
                    response = plain_response(
                        http.HTTPStatus.BAD_REQUEST,
                        f"Failed to open a WebSocket connection: {exc}.\n",
                    )
                else:
                    self.logger.error(f"opening handshake failed: {exc}")
                    response = plain_response(
                        http.HTTPStatus.INTERNAL_SERVER_ERROR,
                        "Failed to open a WebSocket connection.\n"
                        "See server log for more information.\n",
                    )

                if response is not None:
                    self.write_http_response(response)
                    self.logger.info(
                        f"connection failed ({response.status_code} {response.reason})"
                    )
                await self.close_transport()
                return

            try:
                await self.ws_handler(self)
            except WebsocketException as exc:
                if exc.type != 'ConnectionClosed':
                    self.logger.exception("connection handler failed")
                    self.fail_connection(1011)
                    raise
                self.logger.info(f"connection handler stopped: {exc}")
            except Exception:
                self.logger.exception("connection handler failed")
                if not self.closed:
                    self.fail_connection(1011)
                raise

            await self.close()

        except Exception:
            if self.transport is not None:
                self.transport.close()

        finally:
            self.ws_server.unregister(self)
            self.logger.info("connection closed")

    async def read_http_request(self) -> Request:
        """
        Read request line and headers from the HTTP request.

        Raises:
            WebsocketException: ``UnexpectedDisconnect`` if the connection
                closes first, ``InvalidMessage`` if the request is malformed.

        """
        try:
            request = await read_request(self.reader)
        except asyncio.CancelledError:  # pragma: no cover
            raise
        except (EOFError, ConnectionError) as exc:
            raise WebsocketException(f"UnexpectedDisconnect: {exc}") from exc
        except Exception as exc:
            raise WebsocketException(f"InvalidMessage: did not receive a valid HTTP request: {exc}") from exc

        if self.debug:
            self.logger.debug("< %s %s HTTP/1.1", request.method, request.path)
            for key, value in request.headers.raw_items():
                self.logger.debug("< %s: %s", key, value)

        self.request = request
        return request

    def write_http_response(self, response: Response) -> None:
        if self.debug:
            self.logger.debug("> HTTP/1.1 %d %s", response.status_code, response.reason)
            for key, value in response.headers.raw_items():
                self.logger.debug("> %s: %s", key, value)
            if response.body is not None:
                self.logger.debug("> [body] (%d bytes)", len(response.body))

        self.transport.write(response.serialize())

    async def handshake(self) -> str:
        """
        Perform the server side of the opening handshake.

        A request without ``Upgrade: websocket`` gets a plain ``200`` text
        response and isn't upgraded.

        Returns:
            str: path of the URI of the request.

        Raises:
            WebsocketException: if the handshake fails, or ``AbortHandshake``
                after answering a plain HTTP request.

        """
        request = await self.read_http_request()

        if not is_upgrade_request(request.headers):
            self.write_http_response(plain_response(http.HTTPStatus.OK, PLAIN_HTTP_BODY))
            self.logger.info(f"plain HTTP request {request.method} {request.path}")
            raise WebsocketException(f"AbortHandshake: {request.method} {request.path} isn't a WebSocket upgrade")

        key = check_request(request.headers)

        response_headers = Headers()
        build_response(response_headers, key)
        self.write_http_response(Response(
            http.HTTPStatus.SWITCHING_PROTOCOLS.value,
            http.HTTPStatus.SWITCHING_PROTOCOLS.phrase,
            response_headers,
        ))

        self.logger.info("connection open")
        self.connection_open()

        return request.path


class WebSocketClientProtocol(WebSocketCommonProtocol):
    """
    Client side of a WebSocket connection, created by
    :func:`~wsecho.ws.client.connect`.

    Frames sent by the client are always masked.

    """

    is_client = True
    side = "client"

    async def handshake(self, host: str, port: int, path: str = "/") -> None:
        """
        Perform the client side of the opening handshake.

        The request is written, then the response head is read up to the
        blank line. Only a ``101`` status opens the connection.

        Raises:
            WebsocketException: ``InvalidStatus`` for any other status,
                ``UnexpectedDisconnect`` if the server closes the connection
                first, ``InvalidMessage`` if the response is malformed.

        """
        request = build_request(path, host, port, generate_key())
        if self.debug:
            self.logger.debug("> GET %s HTTP/1.1", request.path)
            for key, value in request.headers.raw_items():
                self.logger.debug("> %s: %s", key, value)
        self.transport.write(request.serialize())

        try:
            response = await read_response(self.reader)
        except asyncio.CancelledError:  # pragma: no cover
            raise
        except (EOFError, ConnectionError) as exc:
            raise WebsocketException(f"UnexpectedDisconnect: {exc}") from exc
        except Exception as exc:
            raise WebsocketException(f"InvalidMessage: did not receive a valid HTTP response: {exc}") from exc

        if self.debug:
            self.logger.debug("< HTTP/1.1 %d %s", response.status_code, response.reason)
            for key, value in response.headers.raw_items():
                self.logger.debug("< %s: %s", key, value)

        check_response(response)

        self.logger.info("connection open")
        self.connection_open()
