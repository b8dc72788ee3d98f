"""
An RFC 6455 echo server and client built on asyncio.

"""
