"""
Command line entry point for localsecret.

Prints the share URL as the first line on stdout, serves the secret until
the orchestrator stops, then exits with a code derived from the reason.
"""

import argparse
import socket
import sys
from typing import List, Optional, Tuple

from . import __version__
from .config import (
    DEFAULT_MAXIMUM_FAILED_ATTEMPTS,
    DEFAULT_MAXIMUM_USES,
    DEFAULT_URL_PREFIX_LENGTH,
    ConfigurationError,
    bind_socket,
    build_share_url,
    generate_url_path,
    get_local_ip,
    validate_and_get_absolute_path,
    validate_positive,
)
from .logger import create_logger
from .orchestrator import DEFAULT_GRACE_PERIOD, ShutdownReason
from .responders import create_responder
from .server import LocalSecretServer


EXIT_CODES = {
    ShutdownReason.CONSUMED: 0,
    ShutdownReason.INTERRUPTED: 0,
    ShutdownReason.ABUSE: 1,
    ShutdownReason.FAULT: 1,
}
EXIT_CONFIGURATION_ERROR = 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="localsecret",
        description="Share secrets via a local http server"
    )
    parser.add_argument(
        "-s", "--secret-file",
        help="The secret file to share. Reads stdin when omitted and input is piped"
    )
    parser.add_argument(
        "-u", "--url-prefix-length", type=int, default=DEFAULT_URL_PREFIX_LENGTH,
        help="Length of the randomly generated url prefix (default: %(default)s)"
    )
    parser.add_argument(
        "-a", "--attempts", type=int, default=DEFAULT_MAXIMUM_USES,
        help="How often the shared url can be used (default: %(default)s)"
    )
    parser.add_argument(
        "-f", "--max-failed-attempts", type=int, default=DEFAULT_MAXIMUM_FAILED_ATTEMPTS,
        help="Requests to wrong paths before the server shuts down (default: %(default)s)"
    )
    parser.add_argument(
        "-b", "--bind-ip",
        help="IP address to bind to (default: the local network address)"
    )
    parser.add_argument(
        "-p", "--port", type=int, default=0,
        help="Port to listen on (default: any free port)"
    )
    parser.add_argument(
        "--ignore-exhausted-hits", action="store_true",
        help="Don't count requests to the secret url after it was used up as failed attempts"
    )
    parser.add_argument(
        "--grace-period", type=float, default=DEFAULT_GRACE_PERIOD,
        help="Seconds running requests get to finish on shutdown (default: %(default)s)"
    )
    parser.add_argument(
        "--log-level",
        help="DEBUG, INFO, WARNING or ERROR (default: $LOCALSECRET_LOG_LEVEL or INFO)"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def read_piped_secret(stream=None) -> bytes:
    """
    Read the secret from piped stdin.

    Raises:
        ConfigurationError: If stdin is a terminal or empty
    """
    stream = stream if stream is not None else sys.stdin
    if stream is None or stream.isatty():
        raise ConfigurationError("No secret file given and nothing piped on stdin")
    data = stream.buffer.read() if hasattr(stream, "buffer") else stream.read()
    if isinstance(data, str):
        data = data.encode('utf-8')
    if not data:
        raise ConfigurationError("Nothing to share: stdin was empty")
    return data


def prepare(args: argparse.Namespace, stdin=None) -> Tuple[LocalSecretServer, socket.socket, str]:
    """
    Validate the arguments and set up everything needed to serve.

    Returns:
        tuple: (server, bound listening socket, share URL)

    Raises:
        ConfigurationError: If anything is invalid; no socket is left open
    """
    maximum_uses = validate_positive("attempts", args.attempts)
    maximum_failed_attempts = validate_positive("max_failed_attempts", args.max_failed_attempts)
    url_prefix_length = validate_positive("url_prefix_length", args.url_prefix_length)
    if not 0 <= args.port <= 65535:
        raise ConfigurationError(f"port must be between 0 and 65535, got {args.port}")
    if args.grace_period < 0:
        raise ConfigurationError(f"grace_period must not be negative, got {args.grace_period}")

    if args.secret_file is not None:
        file_path = validate_and_get_absolute_path(args.secret_file)
        url_path = generate_url_path(file_path, url_prefix_length)
        responder = create_responder(url_path, file_path=file_path)
    else:
        data = read_piped_secret(stdin)
        url_path = generate_url_path(None, url_prefix_length)
        responder = create_responder(url_path, data=data)

    host = get_local_ip(args.bind_ip)
    server = LocalSecretServer(
        responder,
        maximum_uses=maximum_uses,
        maximum_failed_attempts=maximum_failed_attempts,
        count_exhausted_hits=not args.ignore_exhausted_hits,
        grace_period=args.grace_period,
        log_level=args.log_level
    )

    sock = bind_socket(host, args.port)
    port = sock.getsockname()[1]
    return server, sock, build_share_url(host, port, url_path)


def main(argv: Optional[List[str]] = None) -> int:
    """Run the CLI and return the process exit code."""
    args = build_parser().parse_args(argv)
    logger = create_logger('LocalSecret.CLI', level=args.log_level)

    try:
        server, sock, url = prepare(args)
    except ConfigurationError as error:
        print(error, file=sys.stderr)
        return EXIT_CONFIGURATION_ERROR

    # From here on an interrupt is a graceful stop, even before serving starts
    server.orchestrator.install_signal_handlers()
    try:
        print(url, flush=True)
        logger.info(
            f"Serving {server.responder.describe()} for "
            f"{server.session.uses.maximum} use(s), "
            f"{server.session.failures.maximum} failed attempt(s) allowed"
        )
        reason = server.serve([sock])
    except KeyboardInterrupt:
        sock.close()
        server.orchestrator.request_shutdown(ShutdownReason.INTERRUPTED)
        reason = ShutdownReason.INTERRUPTED

    exit_code = EXIT_CODES[reason]
    if reason is ShutdownReason.ABUSE:
        logger.error("Stopped after too many failed attempts")
    logger.debug(f"Exiting with code {exit_code}")
    return exit_code
