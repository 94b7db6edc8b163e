"""Shared pytest helpers for udplink tests."""

import socket
import threading
import time


def find_free_port() -> int:
    """Find an available UDP port on localhost."""
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def send_udp(port: int, data: bytes) -> None:
    """Send a UDP datagram to localhost:port from an ephemeral socket."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.sendto(data, ("127.0.0.1", port))
    sock.close()


def wait_until(predicate, timeout_s: float = 2.0) -> bool:
    """Poll *predicate* until it is true or *timeout_s* elapses."""
    deadline = time.monotonic() + timeout_s
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class Recorder:
    """Test double handler: records every call's arguments."""

    def __init__(self):
        """Start with no recorded calls."""
        self.calls = []
        self._lock = threading.Lock()

    def __call__(self, *args) -> None:
        """Record *args*."""
        with self._lock:
            self.calls.append(args)

    def wait_for(self, count: int, timeout_s: float = 2.0) -> bool:
        """Wait until at least *count* calls have been recorded."""
        return wait_until(lambda: len(self.calls) >= count, timeout_s)
