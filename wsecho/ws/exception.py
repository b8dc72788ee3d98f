class WebsocketException(RuntimeError):
    """
    the single exception raised by the ws package

    Every failure is flattened into this class. The kind of failure is carried
    as a tag in front of the message, separated by a colon, for example
    ``"InvalidStatus: HTTP/1.1 404 Not Found"``. The tags in use are:

    * ``InvalidMessage``: the HTTP head of the handshake can't be parsed.
    * ``InvalidStatus``: the server answered the upgrade with anything but 101.
    * ``InvalidHeader`` / ``InvalidHeaderValue``: the upgrade request lacks a
      usable ``Sec-WebSocket-Key``.
    * ``AbortHandshake``: the server answered a plain HTTP request instead of
      upgrading it.
    * ``UnexpectedDisconnect``: the peer went away during the handshake or in
      the middle of a frame.
    * ``PayloadTooBig``: a frame declared a length above ``max_size``.
    * ``ProtocolError``: the peer sent something this implementation refuses,
      such as a fragmented frame.
    * ``InvalidState``: the connection isn't in a state allowing the call.
    * ``ConnectionClosed``: sending or receiving on a closed connection.
    """

    def __init__(self, msg: str):
        super().__init__(msg)
        self._msg = msg
        if ':' in msg:
            self._type = msg.split(':', 1)[0]
        else:
            self._type = self.__class__.__name__

    @property
    def msg(self):
        """
        the message of the Exception
        """
        return self._msg

    @property
    def type(self):
        """
        the type tag of the exception, e.g. ``PayloadTooBig``
        """
        return self._type
