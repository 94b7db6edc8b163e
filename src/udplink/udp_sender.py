"""UDP sender with a lazily opened outbound socket.

The socket is bound on first send (or an explicit
:meth:`UdpSender.open_socket`) and reused for every later send.  A
default remote endpoint can be configured; each send may override it.

Example:
    >>> from udplink.udp_sender import UdpSender
    >>> with UdpSender(11002, host="127.0.0.1") as sender:
    ...     sender.set_remote_endpoint("127.0.0.1", 11001).send("hello")
"""

import logging
import socket
import threading

from udplink.endpoint import Endpoint, MAX_PORT, check_port, resolve_host
from udplink.errors import (
    BindError,
    InvalidArgumentError,
    MissingDestinationError,
    SendError,
    SocketClosedError,
)

log = logging.getLogger(__name__)

Payload = bytes | bytearray | memoryview | str


class UdpSender:
    """Sends datagrams from one local endpoint.

    Args:
        port: Local port; 0 lets the OS choose.
        host: Local host name or address; ``None`` or ``""`` binds the
            wildcard address.

    Raises:
        HostResolutionError: If *host* does not resolve.
        InvalidArgumentError: If *port* is out of range.

    Example:
        >>> sender = UdpSender()
        >>> sender.set_remote_endpoint("127.0.0.1", 11001)
        >>> sender.send(b"\\x00\\x01")
        >>> sender.local_port > 0
        True
        >>> sender.close()
    """

    def __init__(self, port: int = 0, host: str | None = None):
        """Resolve the local endpoint; the socket is opened later."""
        self._local = Endpoint.resolve(host, port)
        self._remote_address: str | None = None
        self._remote_port = 0
        self._broadcast = False
        self._sock: socket.socket | None = None
        self._closed = False
        self._lock = threading.Lock()

    # -- Configuration -------------------------------------------------------

    def set_remote_address(self, host: str | None) -> "UdpSender":
        """Set the default destination host (``None`` clears it)."""
        self._remote_address = resolve_host(host) if host else None
        return self

    def set_remote_port(self, port: int) -> "UdpSender":
        """Set the default destination port."""
        self._remote_port = port
        return self

    def set_remote_endpoint(self, host: str | None, port: int) -> "UdpSender":
        """Set the default destination for sends without explicit target."""
        return self.set_remote_address(host).set_remote_port(port)

    def set_broadcast(self, on: bool) -> "UdpSender":
        """Enable or disable SO_BROADCAST; applied on the next send."""
        self._broadcast = bool(on)
        return self

    @property
    def broadcast(self) -> bool:
        return self._broadcast

    @property
    def remote_endpoint(self) -> Endpoint | None:
        """Configured default destination, or None if incomplete."""
        if self._remote_address is None or self._remote_port <= 0:
            return None
        return Endpoint(self._remote_address, self._remote_port)

    # -- Socket lifecycle ----------------------------------------------------

    def open_socket(self) -> "UdpSender":
        """Bind the outbound socket now rather than on first send.

        Useful to check early that the local endpoint is bindable.
        Does nothing if the socket is already open.

        Raises:
            BindError: If the socket cannot be opened or bound.
            SocketClosedError: If the sender was closed.
        """
        with self._lock:
            self._ensure_open()
        return self

    def _ensure_open(self) -> socket.socket:
        """Open and bind the socket if needed.  Caller holds the lock."""
        if self._closed:
            raise SocketClosedError("sender is closed")
        if self._sock is not None:
            return self._sock

        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        except OSError as exc:
            raise BindError("cannot open socket: %s" % exc) from exc
        try:
            sock.bind(self._local.as_tuple())
        except OSError as exc:
            sock.close()
            raise BindError("cannot bind %s: %s" % (self._local, exc)) from exc

        self._sock = sock
        log.info("sender bound to %s:%d", *sock.getsockname())
        return sock

    def close(self) -> None:
        """Release the socket.  No-op if never opened; safe to repeat."""
        with self._lock:
            self._closed = True
            sock, self._sock = self._sock, None
        if sock is None:
            return
        try:
            sock.close()
        except OSError:
            pass
        log.info("sender on %s closed", self._local)

    @property
    def is_open(self) -> bool:
        return self._sock is not None

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    # -- Introspection -------------------------------------------------------

    @property
    def local_endpoint(self) -> Endpoint:
        """Endpoint the socket is bound to.

        Raises:
            SocketClosedError: If the socket is not open.
        """
        with self._lock:
            if self._sock is None:
                raise SocketClosedError("socket is not open")
            return Endpoint(*self._sock.getsockname())

    @property
    def local_address(self) -> str:
        return self.local_endpoint.address

    @property
    def local_port(self) -> int:
        return self.local_endpoint.port

    # -- Sending -------------------------------------------------------------

    def send(self, payload: Payload, remote_host: str | None = None,
             remote_port: int | None = None) -> "UdpSender":
        """Send one datagram.

        *payload* may be bytes-like or a str (encoded as UTF-8).  The
        destination defaults to the configured remote endpoint; each of
        *remote_host* and *remote_port* overrides its half.  Returns
        once the OS has accepted the datagram; there is no delivery
        acknowledgment.

        Raises:
            InvalidArgumentError: If *payload* is None or not bytes/str,
                or the port exceeds 65535.
            MissingDestinationError: If no remote address or no
                positive remote port is available.
            HostResolutionError: If *remote_host* does not resolve.
            BindError: If the implicit socket open fails.
            SocketClosedError: If the sender was closed.
            SendError: If the OS rejects the transmit.

        Example:
            >>> sender.send("ping", "127.0.0.1", 11001)
        """
        data = _to_bytes(payload)
        dest = self._destination(remote_host, remote_port)

        with self._lock:
            sock = self._ensure_open()
            try:
                sock.setsockopt(
                    socket.SOL_SOCKET, socket.SO_BROADCAST, int(self._broadcast)
                )
                sock.sendto(data, dest.as_tuple())
            except OSError as exc:
                raise SendError("send to %s failed: %s" % (dest, exc)) from exc

        log.debug("sent %d bytes to %s", len(data), dest)
        return self

    def _destination(self, remote_host: str | None,
                     remote_port: int | None) -> Endpoint:
        """Combine explicit arguments with the configured defaults."""
        if remote_host:
            address = resolve_host(remote_host)
        else:
            address = self._remote_address
        port = self._remote_port if remote_port is None else remote_port

        if address is None:
            raise MissingDestinationError("no receiver address given")
        if not isinstance(port, int) or isinstance(port, bool) or port <= 0:
            raise MissingDestinationError("no receiver port given")
        if port > MAX_PORT:
            raise InvalidArgumentError("receiver port out of range: %d" % port)
        return Endpoint(address, port)


def _to_bytes(payload: Payload) -> bytes:
    """Normalize a send payload to bytes."""
    if payload is None:
        raise InvalidArgumentError("payload must not be None")
    if isinstance(payload, str):
        return payload.encode("utf-8")
    if isinstance(payload, (bytes, bytearray, memoryview)):
        return bytes(payload)
    raise InvalidArgumentError(
        "payload must be bytes or str, got %s" % type(payload).__name__
    )


class UdpSenderBuilder:
    """Collects sender settings and builds a configured :class:`UdpSender`.

    Host names are resolved as they are set, so a bad name fails at
    the setter rather than at :meth:`build`.

    Example:
        >>> sender = (UdpSenderBuilder()
        ...           .set_local_address("127.0.0.1").set_local_port(11002)
        ...           .set_remote_address("127.0.0.1").set_remote_port(11001)
        ...           .build())
    """

    def __init__(self):
        self._local_address: str | None = None
        self._local_port = 0
        self._remote_address: str | None = None
        self._remote_port = 0
        self._broadcast = False

    def set_local_address(self, host: str | None) -> "UdpSenderBuilder":
        self._local_address = resolve_host(host) if host else None
        return self

    def set_local_port(self, port: int) -> "UdpSenderBuilder":
        self._local_port = check_port(port)
        return self

    def set_remote_address(self, host: str | None) -> "UdpSenderBuilder":
        self._remote_address = resolve_host(host) if host else None
        return self

    def set_remote_port(self, port: int) -> "UdpSenderBuilder":
        self._remote_port = port
        return self

    def set_broadcast(self, on: bool) -> "UdpSenderBuilder":
        self._broadcast = bool(on)
        return self

    def build(self) -> UdpSender:
        """Return a new sender; its socket is not opened yet."""
        sender = UdpSender(self._local_port, host=self._local_address)
        sender.set_remote_endpoint(self._remote_address, self._remote_port)
        sender.set_broadcast(self._broadcast)
        return sender
