"""Create bound server sockets from a service name or port."""
import socket
from typing import Literal, Optional, Union

from arithmetic_gpa_server.common.logger import logger

# Pending connections queue capacity
BACKLOG: int = 10

Transport = Literal["tcp", "udp"]

_SOCKET_TYPES: dict[str, int] = {
    "tcp": socket.SOCK_STREAM,
    "udp": socket.SOCK_DGRAM,
}


def _enable_reuse(sock: socket.socket) -> None:
    """Allow quick restarts on the same address (and port sharing where supported)."""
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    if hasattr(socket, "SO_REUSEPORT"):
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)


def create_socket(
    service: Union[str, int], transport: Transport = "tcp", host: Optional[str] = None
) -> socket.socket:
    """
    Resolve the service and return a socket bound to the first usable address.

    Every address returned by getaddrinfo is tried in turn: failing to create
    or bind a socket moves on to the next one, while failing to configure or
    listen on it is fatal.

    :param service: Port number or service name (e.g. "9000" or "http")
    :param str transport: "tcp" or "udp"
    :param Optional[str] host: Address to bind, every local address when None

    :return: Bound socket, already listening for TCP
    :rtype: socket.socket
    :raises ValueError: If the transport is unknown
    :raises OSError: If the service cannot be resolved or no address can be bound
    """
    if transport not in _SOCKET_TYPES:
        raise ValueError(f"🔌❌ Invalid transport {transport!r} (expected 'tcp' or 'udp')")

    candidates = socket.getaddrinfo(
        host, str(service), socket.AF_UNSPEC, _SOCKET_TYPES[transport], 0, socket.AI_PASSIVE
    )

    for family, sock_type, proto, _, address in candidates:
        try:
            sock = socket.socket(family, sock_type, proto)
        except OSError as exc:
            logger.warning(f"🔌 Could not create socket for {address}: {exc}")
            continue

        try:
            _enable_reuse(sock)
        except OSError:
            sock.close()
            raise

        try:
            sock.bind(address)
        except OSError as exc:
            sock.close()
            logger.warning(f"🔌 Could not bind {address}: {exc}")
            continue

        if sock_type == socket.SOCK_STREAM:
            try:
                sock.listen(BACKLOG)
            except OSError:
                sock.close()
                raise

        logger.info(f"🔌✅ Bound {transport.upper()} socket on {sock.getsockname()}")
        return sock

    raise OSError(f"🔌❌ Failed to bind any address for service {service!r}")
