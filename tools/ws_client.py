import asyncio
import sys

from websockets import connect


async def make_conn(uri, message):
    async with connect(uri) as websocket:
        await websocket.send(message)
        res = await websocket.recv()
        print(str(res))


if __name__ == '__main__':
    uri = sys.argv[1] if len(sys.argv) > 1 else "ws://localhost:3000/"
    message = sys.argv[2] if len(sys.argv) > 2 else "hello from client"
    asyncio.run(make_conn(uri, message))
