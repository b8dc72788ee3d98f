import getopt
import logging
import os
import sys
from typing import List, Mapping, Optional

from wsecho.app import EchoClient, EchoServer
from wsecho.config import Config
from wsecho.logs import Logger
from wsecho.ws import WebsocketException


class Cmd:

    usage = '''
    Usages: wsecho COMMAND [OPTIONS] [OPTION_ARGS]

    Commands:

        server:      Run the echo server until interrupted.
        client:      Connect once, send a message and print the reply.

    Options:

        -H --host:    The interface to bind, or the server to connect to. Defaults to $HOST or localhost.
        -p --port:    The TCP port. Defaults to $PORT or 3000.
        -P --path:    The resource requested by the client. Defaults to $WS_PATH or /.
        -m --message: The message sent by the client. Defaults to $WS_MESSAGE or "hello from client".
        -o --output:  Append the log to this file instead of stderr.
        -v --verbose: Log frames and handshakes as well.
        -h --help:    The help message.
    '''

    commands = ('server', 'client')

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        self.environ = environ if environ is not None else os.environ
        self.command = None
        self.config = None
        self.output = None

    def parse(self, argv: List[str]) -> None:
        """
        Parse ``argv``, the command line without the program name.

        Options override the values read from the environment.

        Raises:
            getopt.GetoptError: if an option is unknown or lacks its argument.
            ValueError: if the command or a value is invalid.

        """
        opts, args = getopt.gnu_getopt(argv,
                                       'H:p:P:m:o:vh',
                                       ['host=', 'port=', 'path=', 'message=', 'output=', 'verbose', 'help'])

        if any(opt in ['-h', '--help'] for opt, optarg in opts):
            print(self.usage)
            sys.exit()

        if len(args) != 1 or args[0] not in self.commands:
            raise ValueError(f"expected one command among {', '.join(self.commands)}, got {' '.join(args) or 'none'}")
        self.command = args[0]

        config = Config.from_env(self.environ)
        for opt, optarg in opts:
            if opt in ['-H', '--host']:
                config.host = optarg
            elif opt in ['-p', '--port']:
                try:
                    config.port = int(optarg)
                except ValueError:
                    raise ValueError(f"port must be an integer, got {optarg!r}") from None
                if not 0 <= config.port < 65536:
                    raise ValueError(f"port must be between 0 and 65535, got {config.port}")
            elif opt in ['-P', '--path']:
                config.path = optarg
            elif opt in ['-m', '--message']:
                config.message = optarg
            elif opt in ['-o', '--output']:
                self.output = optarg
            elif opt in ['-v', '--verbose']:
                config.log_level = 'DEBUG'
        self.config = config

    def run(self):
        assert self.config is not None
        Logger.setup(logging.getLevelName(self.config.log_level), self.output)

        if self.command == 'server':
            EchoServer(self.config).run()
        else:
            EchoClient(self.config).run()


def main(argv: Optional[List[str]] = None) -> None:
    logger = Logger.get_logger('wsecho.cli')
    cmd = Cmd()
    try:
        cmd.parse(sys.argv[1:] if argv is None else argv)
    except (getopt.GetoptError, ValueError) as exc:
        print(f"wsecho: {exc}", file=sys.stderr)
        print(cmd.usage, file=sys.stderr)
        sys.exit(2)

    try:
        cmd.run()
    except KeyboardInterrupt:
        logger.info("interrupted")
    except (WebsocketException, OSError) as exc:
        logger.error(f"{cmd.command} failed: {exc}")
        sys.exit(1)
