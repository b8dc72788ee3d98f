"""
This package implements a minimal WebSocket according to `RFC 6455`_.

The connection machinery is modelled on the Python project `websockets`_ by
Aymeric Augustin and other contributors, stripped down to what an echo
service needs: no extensions, subprotocols, origin checking, ping/pong,
compression or fragmented messages. Both sides share the frame codec, the
reassembler and the connection protocol, and all exceptions are flattened
into :exc:`WebsocketException`.

Serving is done the same way as with ``websockets``::

    from wsecho.ws import Websocket, serve


    async def echo(ws: Websocket):
        async for message in ws:
            await ws.send(message)

    async def main():
        async with serve(echo, "localhost", 3000):
            await asyncio.Future()

    asyncio.run(main())

and so is connecting::

    async with connect("localhost", 3000) as ws:
        await ws.send("hello")
        print(await ws.recv())


.. _`RFC 6455`: https://datatracker.ietf.org/doc/html/rfc6455.html
.. _`websockets`: https://github.com/python-websockets/websockets
"""

from wsecho.ws.client import connect
from wsecho.ws.exception import WebsocketException
from wsecho.ws.protocol import WebSocketClientProtocol as WebsocketClient
from wsecho.ws.protocol import WebSocketServerProtocol as Websocket
from wsecho.ws.serve import WebSocketServer, serve


__all__ = ['Websocket', 'WebsocketClient', 'WebSocketServer', 'serve', 'connect', 'WebsocketException']
