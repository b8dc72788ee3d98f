import dataclasses
import logging
import os
from typing import Mapping, Optional


@dataclasses.dataclass
class Config:
    """
    Settings shared by the echo server and the echo client.

    Values come from the environment through :meth:`from_env`; the command
    line overrides them afterwards.

    Attributes:
        host: Interface the server binds, or host the client connects to.
        port: TCP port.
        path: Resource requested by the client.
        max_size: Largest incoming frame payload, :obj:`None` for no limit.
        close_timeout: Seconds allowed for the closing handshake.
        log_level: Name of the root logging level.
        message: Text the client sends once connected.

    """

    host: str = "localhost"
    port: int = 3000
    path: str = "/"
    max_size: Optional[int] = 2 ** 20
    close_timeout: float = 10
    log_level: str = "INFO"
    message: str = "hello from client"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'Config':
        """
        Build a :class:`Config` from ``HOST``, ``PORT``, ``WS_PATH``,
        ``WS_MAX_SIZE``, ``WS_CLOSE_TIMEOUT``, ``LOG_LEVEL`` and
        ``WS_MESSAGE``. Unset variables keep their defaults.

        ``WS_MAX_SIZE=0`` disables the frame size limit.

        Raises:
            ValueError: if a numeric variable can't be parsed; the message
                names the variable.

        """
        if environ is None:
            environ = os.environ
        cfg = cls()

        cfg.host = environ.get("HOST", cfg.host)
        cfg.port = _int(environ, "PORT", cfg.port)
        cfg.path = environ.get("WS_PATH", cfg.path)
        max_size = _int(environ, "WS_MAX_SIZE", cfg.max_size)
        cfg.max_size = max_size or None
        cfg.close_timeout = _float(environ, "WS_CLOSE_TIMEOUT", cfg.close_timeout)
        cfg.log_level = environ.get("LOG_LEVEL", cfg.log_level).upper()
        cfg.message = environ.get("WS_MESSAGE", cfg.message)

        if not 0 <= cfg.port < 65536:
            raise ValueError(f"PORT must be between 0 and 65535, got {cfg.port}")
        if not cfg.path.startswith("/"):
            raise ValueError(f"WS_PATH must start with '/', got {cfg.path!r}")
        if not isinstance(logging.getLevelName(cfg.log_level), int):
            raise ValueError(f"LOG_LEVEL must be a logging level name, got {cfg.log_level!r}")
        return cfg


def _int(environ: Mapping[str, str], name: str, default):
    raw = environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _float(environ: Mapping[str, str], name: str, default):
    raw = environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
