import datetime
import logging
import sys
from os import PathLike
from typing import Optional, Union

__all__ = ['Logger']


class LogColor:
    RED = 31
    YELLOW = 33
    DEFAULT = 38


class Logger(logging.Logger):
    """
    The logger implementation for the whole project.

    :class:`Logger` wraps a real :class:`logging.Logger` obtained from
    :func:`logging.getLogger` and decorates every message with a timestamp
    and an ANSI colour depending on the severity. Handlers, levels and
    propagation are those of the wrapped logger, so the usual :mod:`logging`
    configuration applies::

        logger = Logger.get_logger('wsecho.server')
        logger.info("server listening on %s", name)

    Attributes:
        _logger: The wrapped :class:`logging.Logger` which receives the
            records.

    """

    def __init__(self, logger: logging.Logger):
        super().__init__(logger.name, logger.level)
        self._logger = logger

    @classmethod
    def get_logger(cls, name: Optional[str] = None) -> 'Logger':
        """
        Get the :class:`Logger` wrapping the stdlib logger called ``name``.

        It behaves like the function :func:`logging.getLogger`.

        """
        return cls(logging.getLogger(name))

    @staticmethod
    def setup(level: Union[int, str] = logging.INFO,
              filename: Optional[PathLike] = None) -> None:
        """
        Attach a handler to the root logger and set its level.

        Messages go to ``stderr``, or are appended to ``filename`` when given.
        The messages already carry their timestamp, so the handler prints
        them as they are.

        """
        if filename is not None:
            handler = logging.FileHandler(filename, 'a', encoding='utf-8', errors='backslashreplace')
        else:
            handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter('%(levelname)s %(name)s %(message)s'))
        root = logging.getLogger()
        root.addHandler(handler)
        root.setLevel(level)

    def isEnabledFor(self, level: int) -> bool:
        return self._logger.isEnabledFor(level)

    def _decorate(self, msg, color: int) -> str:
        now = datetime.datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        return f'\033[{color}m[{now}]{msg}\033[0m'

    def _emit(self, level: int, color: int, msg, args, **kwargs) -> None:
        _logger = self._logger
        if _logger.isEnabledFor(level):
            kwargs.setdefault('stacklevel', 3)
            _logger._log(level, self._decorate(msg, color), args, **kwargs)

    def debug(self, msg, *args, **kwargs):
        """
        Log 'msg % args' with severity 'DEBUG'.
        """
        self._emit(logging.DEBUG, LogColor.DEFAULT, msg, args, **kwargs)

    def info(self, msg, *args, **kwargs):
        """
        Log 'msg % args' with severity 'INFO'.
        """
        self._emit(logging.INFO, LogColor.DEFAULT, msg, args, **kwargs)

    def warning(self, msg, *args, **kwargs):
        """
        Log 'msg % args' with severity 'WARNING'.
        """
        self._emit(logging.WARNING, LogColor.YELLOW, msg, args, **kwargs)

    def error(self, msg, *args, **kwargs):
        """
        Log 'msg % args' with severity 'ERROR'.

        To pass exception information, use the keyword argument exc_info with
        a true value, e.g.

        logger.error("Houston, we have a %s", "major problem", exc_info=1)
        """
        self._emit(logging.ERROR, LogColor.RED, msg, args, **kwargs)

    def exception(self, msg, *args, exc_info=True, **kwargs):
        """
        Convenience method for logging an ERROR with exception information.
        """
        self._emit(logging.ERROR, LogColor.RED, msg, args, exc_info=exc_info, **kwargs)

    def critical(self, msg, *args, **kwargs):
        """
        Log 'msg % args' with severity 'CRITICAL'.
        """
        self._emit(logging.CRITICAL, LogColor.RED, msg, args, **kwargs)
