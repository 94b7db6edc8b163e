"""Exception types raised by the udplink transport.

Every error derives from :class:`UdpError` so callers can catch the
whole family at once.  Socket-level ``OSError`` causes are chained
with ``raise ... from exc``.

Example:
    >>> from udplink.errors import HostResolutionError
    >>> from udplink.endpoint import resolve_host
    >>> try:
    ...     resolve_host("abc")
    ... except HostResolutionError as exc:
    ...     print(exc)
    cannot resolve host 'abc'
"""


class UdpError(Exception):
    """Base class for all udplink errors."""


class HostResolutionError(UdpError):
    """A host name could not be resolved to an address."""


class BindError(UdpError):
    """A socket could not be created or bound to its local endpoint."""


class SendError(UdpError):
    """The OS refused to transmit a datagram."""


class MissingDestinationError(SendError):
    """No usable remote address or a non-positive remote port."""


class SocketClosedError(SendError):
    """The socket was used after close() or before it was opened."""


class InvalidArgumentError(UdpError, ValueError):
    """An argument (payload, port) is absent or out of range."""


class TransientReceiveError(UdpError):
    """A single inbound read failed; the receive loop keeps running.

    Only ever logged from the background thread.
    """
