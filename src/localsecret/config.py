"""
Startup configuration helpers for localsecret

Validation of the secret file and limits, random URL path generation and
bind address resolution. Everything here runs before a listener is opened.
"""

import ipaddress
import secrets
import socket
import string
from pathlib import Path
from typing import Optional, Union
from urllib.parse import quote


DEFAULT_URL_PREFIX_LENGTH = 42
DEFAULT_MAXIMUM_USES = 1
DEFAULT_MAXIMUM_FAILED_ATTEMPTS = 3

URL_PREFIX_ALPHABET = string.ascii_letters + string.digits

# Any routable address works; connecting a UDP socket sends no packets
_ROUTE_TARGETS = {
    socket.AF_INET: ("10.255.255.255", 1),
    socket.AF_INET6: ("fd00::1", 1),
}


class ConfigurationError(ValueError):
    """Invalid startup configuration. Fatal, reported before serving."""


def validate_positive(name: str, value: int) -> int:
    """
    Check that a limit is a positive integer.

    Raises:
        ConfigurationError: If it is not
    """
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ConfigurationError(f"{name} must be a positive integer, got {value!r}")
    return value


def validate_and_get_absolute_path(file_path: Union[str, Path]) -> Path:
    """
    Resolve the secret file to an absolute path.

    Args:
        file_path: Path given by the operator

    Returns:
        Path: Canonical absolute path

    Raises:
        ConfigurationError: If the file doesn't exist, is not a regular file
                            or is not readable
    """
    file_path = Path(file_path)
    if not file_path.is_file():
        raise ConfigurationError(
            f"The provided secret file doesn't exist or is not a file: {file_path}"
        )
    try:
        absolute_path = file_path.resolve(strict=True)
        with absolute_path.open('rb'):
            pass
    except OSError as error:
        raise ConfigurationError(f"Can't read secret file '{file_path}': {error}") from error
    return absolute_path


def generate_url_prefix(length: int = DEFAULT_URL_PREFIX_LENGTH) -> str:
    """Random alphanumeric prefix from a cryptographically secure source."""
    validate_positive("url_prefix_length", length)
    return ''.join(secrets.choice(URL_PREFIX_ALPHABET) for _ in range(length))


def generate_url_path(
    file_path: Optional[Union[str, Path]] = None,
    url_prefix_length: int = DEFAULT_URL_PREFIX_LENGTH
) -> str:
    """
    Build the secret path.

    Files are served as ``/<prefix>/<file name>`` so the receiver's browser
    picks a sensible name; piped input is served as ``/<prefix>``.

    Args:
        file_path: The secret file, or None for piped input
        url_prefix_length: Length of the random prefix

    Returns:
        str: Decoded URL path
    """
    prefix = generate_url_prefix(url_prefix_length)
    if file_path is None:
        return f"/{prefix}"

    file_name = Path(file_path).name
    if not file_name:
        raise ConfigurationError(f"Can't determine file name from: {file_path}")
    return f"/{prefix}/{file_name}"


def get_local_ip(bind_ip: Optional[str] = None) -> str:
    """
    Pick the address to bind to and advertise.

    Args:
        bind_ip: Explicit address; used as is after validation

    Returns:
        str: IP address, the machine's network address when none was given

    Raises:
        ConfigurationError: If bind_ip is not an IP address
    """
    if bind_ip is not None:
        try:
            return str(ipaddress.ip_address(bind_ip))
        except ValueError as error:
            raise ConfigurationError(f"Invalid bind IP: {bind_ip}") from error

    for family, target in _ROUTE_TARGETS.items():
        try:
            with socket.socket(family, socket.SOCK_DGRAM) as udp_socket:
                udp_socket.connect(target)
                address = udp_socket.getsockname()[0]
        except OSError:
            continue
        if not ipaddress.ip_address(address).is_loopback:
            return address
    return "127.0.0.1"


def bind_socket(host: str, port: int = 0) -> socket.socket:
    """
    Open the listening socket. Port 0 picks a free port.

    Raises:
        ConfigurationError: If the address can't be bound
    """
    family = socket.AF_INET6 if ipaddress.ip_address(host).version == 6 else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
        sock.listen(128)
    except OSError as error:
        sock.close()
        raise ConfigurationError(f"Can't listen on {host}:{port}: {error}") from error
    sock.set_inheritable(True)
    return sock


def build_share_url(host: str, port: int, url_path: str) -> str:
    """Format the URL printed for the receiver."""
    if ipaddress.ip_address(host).version == 6:
        host = f"[{host}]"
    return f"http://{host}:{port}{quote(url_path)}"
