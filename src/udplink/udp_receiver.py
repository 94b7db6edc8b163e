"""UDP receiver with a background dispatch thread.

Binds a local endpoint, receives datagrams on its own thread and hands
each one to the registered handler(s).  Handlers run synchronously on
that thread, one datagram at a time, in arrival order.

Example:
    >>> from udplink.udp_receiver import UdpReceiver
    >>> def on_message(address, port, message):
    ...     print("%s:%d %s" % (address, port, message))
    >>> receiver = UdpReceiver(11001, host="127.0.0.1")
    >>> receiver.set_message_handler(on_message).start()
    >>> # ... datagrams arrive in the background ...
    >>> receiver.stop()
"""

import logging
import socket
import threading
from collections.abc import Callable
from dataclasses import dataclass

from udplink.config import POLL_INTERVAL_S, RECV_BUFSIZE
from udplink.endpoint import Endpoint
from udplink.errors import BindError, InvalidArgumentError, TransientReceiveError

log = logging.getLogger(__name__)

PacketHandler = Callable[[str, int, int, bytes], None]
MessageHandler = Callable[[str, int, str], None]


@dataclass(frozen=True)
class Datagram:
    """One inbound datagram.

    ``truncated`` is set when the payload did not fit the receive
    buffer; ``data`` then holds only the leading bytes.
    """

    address: str
    port: int
    data: bytes
    truncated: bool = False

    @property
    def length(self) -> int:
        return len(self.data)

    def text(self) -> str:
        """Decode the payload as UTF-8, replacing invalid bytes."""
        return self.data.decode("utf-8", errors="replace")


class UdpReceiver:
    """Listens on a UDP endpoint and dispatches datagrams to handlers.

    Configure handlers first, then call :meth:`start`.  A receiver is
    single-use: once stopped it cannot be started again.

    Args:
        port: Local port to bind (0 picks a free port).
        host: Local host name or address; ``None`` binds the wildcard
            address.
        bufsize: Receive buffer size in bytes.  Longer datagrams are
            truncated, never reassembled.

    Raises:
        HostResolutionError: If *host* does not resolve.
        InvalidArgumentError: If *port* or *bufsize* is out of range.

    Example:
        >>> receiver = UdpReceiver(0, host="127.0.0.1")
        >>> receiver.set_packet_handler(print).start()
        >>> receiver.endpoint.port > 0
        True
        >>> receiver.stop()
    """

    def __init__(self, port: int, host: str | None = None,
                 bufsize: int = RECV_BUFSIZE):
        """Resolve the listen endpoint; nothing is bound yet."""
        if not isinstance(bufsize, int) or bufsize <= 0:
            raise InvalidArgumentError("bufsize must be a positive int")
        self._endpoint = Endpoint.resolve(host, port)
        self._bufsize = bufsize
        self._packet_handler: PacketHandler | None = None
        self._message_handler: MessageHandler | None = None
        self._sock: socket.socket | None = None
        self._thread: threading.Thread | None = None
        self._stop = threading.Event()

    def set_packet_handler(self, handler: PacketHandler | None) -> "UdpReceiver":
        """Register ``handler(address, port, length, data)``."""
        self._packet_handler = handler
        return self

    def set_message_handler(self, handler: MessageHandler | None) -> "UdpReceiver":
        """Register ``handler(address, port, message)``.

        The payload is decoded as UTF-8 before the call.
        """
        self._message_handler = handler
        return self

    @property
    def endpoint(self) -> Endpoint:
        """Bound endpoint once started, else the configured one."""
        return self._endpoint

    @property
    def bufsize(self) -> int:
        return self._bufsize

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> "UdpReceiver":
        """Bind the socket and spawn the receive thread.

        Returns immediately; datagrams are handled in the background.

        Raises:
            BindError: If the socket cannot be opened or bound.
            RuntimeError: If the receiver was already started or stopped.
        """
        if self._thread is not None or self._stop.is_set():
            raise RuntimeError("receiver is single-use; already started or stopped")

        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        except OSError as exc:
            raise BindError("cannot open socket: %s" % exc) from exc
        try:
            sock.bind(self._endpoint.as_tuple())
        except OSError as exc:
            sock.close()
            raise BindError("cannot bind %s: %s" % (self._endpoint, exc)) from exc

        # Bounded wait so the loop sees stop() where shutdown() cannot wake it.
        sock.settimeout(POLL_INTERVAL_S)
        self._sock = sock
        self._endpoint = Endpoint(*sock.getsockname())

        self._thread = threading.Thread(
            target=self._run, args=(sock,),
            name="udp-receiver-%d" % self._endpoint.port, daemon=True,
        )
        self._thread.start()
        log.info("listening on %s", self._endpoint)
        return self

    def stop(self) -> None:
        """Cancel the receive loop and close the socket.

        Does not wait for the thread to exit; use :meth:`join` for
        that.  A handler already running may still complete, but no
        new dispatch starts after this returns.  Safe to call more than
        once.
        """
        self._stop.set()
        sock, self._sock = self._sock, None
        if sock is None:
            return
        # Wakes a recv blocked in the receive thread (Linux).
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        try:
            sock.close()
        except OSError:
            pass
        log.info("stopped listening on %s", self._endpoint)

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the receive thread to exit.

        Returns:
            True if the thread has exited (or never started).
        """
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.stop()

    # -- Background thread ---------------------------------------------------

    def _run(self, sock: socket.socket) -> None:
        """Receive loop: runs until stop() is called."""
        while not self._stop.is_set():
            try:
                data, addr, truncated = self._recv(sock)
            except socket.timeout:
                continue
            except OSError as exc:
                if self._stop.is_set() or sock.fileno() == -1:
                    break
                err = TransientReceiveError(
                    "receive failed on %s: %s" % (self._endpoint, exc)
                )
                log.error("%s", err)
                continue

            if self._stop.is_set():
                break
            if not addr:
                continue
            self._dispatch(Datagram(addr[0], addr[1], data, truncated))

        log.debug("receive loop for %s exited", self._endpoint)

    def _recv(self, sock: socket.socket) -> tuple[bytes, tuple | None, bool]:
        """Block for the next datagram (up to the poll interval).

        Returns ``(data, sender_address, truncated)``.
        """
        if hasattr(sock, "recvmsg"):
            data, _, flags, addr = sock.recvmsg(self._bufsize)
            return data, addr, bool(flags & socket.MSG_TRUNC)
        data, addr = sock.recvfrom(self._bufsize)
        return data, addr, False

    def _dispatch(self, datagram: Datagram) -> None:
        """Call packet handler, then message handler; contain failures."""
        log.debug(
            "datagram from %s:%d, %d bytes",
            datagram.address, datagram.port, datagram.length,
        )
        if datagram.truncated:
            log.warning(
                "datagram from %s:%d truncated to %d bytes",
                datagram.address, datagram.port, self._bufsize,
            )

        packet_handler = self._packet_handler
        message_handler = self._message_handler

        if packet_handler is None and message_handler is None:
            log.warning(
                "no packet or message handler set; dropped datagram from %s:%d",
                datagram.address, datagram.port,
            )
            return

        # stop() may run between or during handler calls.
        if packet_handler is not None and not self._stop.is_set():
            try:
                packet_handler(
                    datagram.address, datagram.port,
                    datagram.length, datagram.data,
                )
            except Exception:
                log.exception(
                    "packet handler failed for datagram from %s:%d",
                    datagram.address, datagram.port,
                )

        if message_handler is not None and not self._stop.is_set():
            try:
                message_handler(datagram.address, datagram.port, datagram.text())
            except Exception:
                log.exception(
                    "message handler failed for datagram from %s:%d",
                    datagram.address, datagram.port,
                )
