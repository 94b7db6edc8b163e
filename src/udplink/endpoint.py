"""Endpoint resolution for UDP sockets.

Turns a textual host (name or literal IPv4 address) into a bindable or
sendable address.  No host means the wildcard address.

Example:
    >>> from udplink.endpoint import Endpoint, resolve_host
    >>> resolve_host("localhost")
    '127.0.0.1'
    >>> Endpoint.resolve(None, 0)
    Endpoint(address='0.0.0.0', port=0)
"""

import socket
from dataclasses import dataclass

from udplink.errors import HostResolutionError, InvalidArgumentError

WILDCARD_ADDRESS = "0.0.0.0"
MAX_PORT = 65535


def resolve_host(host: str | None) -> str:
    """Resolve *host* to a dotted-quad IPv4 address.

    ``None`` or an empty string yields :data:`WILDCARD_ADDRESS`.
    DNS failures are not retried.

    Raises:
        HostResolutionError: If the name does not resolve.
    """
    if not host:
        return WILDCARD_ADDRESS
    try:
        return socket.gethostbyname(host)
    except (socket.gaierror, UnicodeError) as exc:
        raise HostResolutionError("cannot resolve host '%s'" % host) from exc


def check_port(port: int) -> int:
    """Validate a local port (0 means "choose automatically").

    Raises:
        InvalidArgumentError: If *port* is not an int in 0..65535.
    """
    if not isinstance(port, int) or isinstance(port, bool):
        raise InvalidArgumentError(
            "port must be int, got %s" % type(port).__name__
        )
    if port < 0 or port > MAX_PORT:
        raise InvalidArgumentError("port out of range: %d" % port)
    return port


@dataclass(frozen=True)
class Endpoint:
    """An (address, port) pair for one side of a UDP conversation."""

    address: str
    port: int

    @classmethod
    def resolve(cls, host: str | None, port: int) -> "Endpoint":
        """Build an endpoint from an unresolved host and a port."""
        return cls(resolve_host(host), check_port(port))

    @property
    def is_wildcard(self) -> bool:
        return self.address == WILDCARD_ADDRESS

    def as_tuple(self) -> tuple[str, int]:
        """Return the ``(address, port)`` form used by ``socket``."""
        return (self.address, self.port)

    def __str__(self) -> str:
        return "%s:%d" % (self.address, self.port)
