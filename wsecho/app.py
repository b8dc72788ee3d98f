import asyncio
import functools
from typing import Optional

from wsecho.config import Config
from wsecho.logs import Logger
from wsecho.ws import Websocket, connect, serve
from wsecho.ws.typings import LoggerLike

PREFIX = "echo: "


async def echo(ws: Websocket) -> None:
    """
    Answer every text message with the same text behind ``"echo: "``.

    """
    async for message in ws:
        await ws.send(PREFIX + message)


class EchoServer:
    """
    Run the echo handler on ``config.host`` and ``config.port`` until the
    process is interrupted.

    """

    def __init__(self, config: Config, *, logger: Optional['LoggerLike'] = None):
        self.config = config
        self.serve = None

        if logger is None:
            logger = Logger.get_logger('wsecho.server')
        self.logger = logger

    def _build_serve(self):
        assert self.serve is None
        self.serve = functools.partial(serve,
                                       ws_handler=echo,
                                       host=self.config.host,
                                       port=self.config.port,
                                       logger=self.logger,
                                       max_size=self.config.max_size,
                                       close_timeout=self.config.close_timeout
                                       )

    def _run(self) -> serve:
        if self.serve is None:
            self._build_serve()
        return self.serve()

    async def run_async(self) -> None:
        async with self._run():
            await asyncio.Future()

    def run(self):
        asyncio.run(self.run_async())


class EchoClient:
    """
    Connect once, send ``config.message``, print the first text reply and
    close the connection.

    """

    def __init__(self, config: Config, *, logger: Optional['LoggerLike'] = None):
        self.config = config

        if logger is None:
            logger = Logger.get_logger('wsecho.client')
        self.logger = logger

    async def run_async(self) -> str:
        """
        Returns:
            str: The reply of the server.

        """
        async with connect(self.config.host,
                           self.config.port,
                           self.config.path,
                           logger=self.logger,
                           max_size=self.config.max_size,
                           close_timeout=self.config.close_timeout) as ws:
            await ws.send(self.config.message)
            reply = await ws.recv()
            print(f"Received: {reply}")
            return reply

    def run(self) -> str:
        return asyncio.run(self.run_async())
