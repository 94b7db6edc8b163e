"""Command-line front end -- interactive sender and console listener.

``udplink send`` asks for any endpoint settings not given by flags or
the config file, then sends each input line as one datagram until the
line ``exit`` (or end of input).  Lines are length-prefixed unless
``--raw`` is given.

``udplink listen`` prints every received message until SIGINT or
SIGTERM.

Example:
    Run from the command line::

        udplink send --remote-host 127.0.0.1 --remote-port 11001
        udplink listen --port 11001 --framed -v
"""

import argparse
import logging
import signal
import sys
import threading

from udplink.config import RECV_BUFSIZE, load_config
from udplink.errors import SendError, UdpError
from udplink.framing import frame_message, unframe_message
from udplink.paths import find_default_config, resolve_config
from udplink.udp_receiver import UdpReceiver
from udplink.udp_sender import UdpSender, UdpSenderBuilder

log = logging.getLogger(__name__)

EXIT_TOKEN = "exit"

_shutdown = threading.Event()


def _on_signal(signum: int, frame) -> None:
    """Set the module-level shutdown event on SIGINT/SIGTERM."""
    _shutdown.set()


# -- Interactive prompts -----------------------------------------------------


def _prompt(label: str, default: str | None, stdin, stdout) -> str:
    """Print a prompt and return the stripped answer.

    Raises:
        EOFError: If input ends before an answer is given.
    """
    if default is not None:
        stdout.write("%s [%s]:\t" % (label, default))
    else:
        stdout.write("%s:\t" % label)
    stdout.flush()
    line = stdin.readline()
    if not line:
        raise EOFError("no answer for %s" % label)
    return line.strip()


def _parse_port(text: str, label: str) -> int:
    try:
        return int(text)
    except ValueError:
        raise ValueError("%s must be a number, got '%s'" % (label, text)) from None


def prompt_settings(settings: dict, stdin, stdout) -> dict:
    """Ask for every sender setting that is still ``None``.

    Empty answers for the local host or port select the wildcard
    address and an automatic port.  The remote host and port are
    required.

    Raises:
        ValueError: If a port is not a number or a required answer is empty.
        EOFError: If input ends early.

    Example:
        >>> prompt_settings({"local_host": "", "local_port": 0,
        ...                  "remote_host": None, "remote_port": None},
        ...                 io.StringIO("127.0.0.1\\n11001\\n"), sys.stdout)
        {'local_host': '', 'local_port': 0, 'remote_host': '127.0.0.1', 'remote_port': 11001}
    """
    result = dict(settings)

    if result.get("local_host") is None:
        result["local_host"] = _prompt("Local ip", "any", stdin, stdout)
    if result.get("local_port") is None:
        answer = _prompt("Local port", "random", stdin, stdout)
        result["local_port"] = _parse_port(answer, "local port") if answer else 0
    if result.get("remote_host") is None:
        answer = _prompt("Remote ip", None, stdin, stdout)
        if not answer:
            raise ValueError("remote ip is required")
        result["remote_host"] = answer
    if result.get("remote_port") is None:
        answer = _prompt("Remote port", None, stdin, stdout)
        if not answer:
            raise ValueError("remote port is required")
        result["remote_port"] = _parse_port(answer, "remote port")

    return result


# -- Run loops ---------------------------------------------------------------


def run_sender(sender: UdpSender, stdin, stdout, framed: bool = True) -> int:
    """Send one datagram per input line until ``exit`` or end of input.

    A failed send is logged and the loop continues.  Returns the
    number of datagrams sent.

    Example:
        >>> run_sender(sender, io.StringIO("hello\\nexit\\n"), sys.stdout)
        1
    """
    stdout.write("Message (type '%s' to quit)\n" % EXIT_TOKEN)
    count = 0

    while True:
        stdout.write("> ")
        stdout.flush()
        line = stdin.readline()
        if not line:
            break
        message = line.rstrip("\r\n")
        if message == EXIT_TOKEN:
            break

        data = frame_message(message) if framed else message.encode("utf-8")
        stdout.write("Sending: %s\n" % list(data))
        try:
            sender.send(data)
        except SendError as exc:
            log.error("%s", exc)
            continue
        count += 1

    stdout.write("Bye bye!\n")
    stdout.flush()
    return count


def run_listener(receiver: UdpReceiver, shutdown: threading.Event, stdout,
                 framed: bool = False) -> int:
    """Print received messages until *shutdown* is set.

    Starts *receiver*, waits, then stops it.  Returns the number of
    messages printed.

    Example:
        >>> run_listener(UdpReceiver(11001), ev, sys.stdout)
        3
    """
    count = 0
    lock = threading.Lock()

    def _emit(address: str, port: int, message: str) -> None:
        nonlocal count
        with lock:
            stdout.write("%s:%d %s\n" % (address, port, message))
            stdout.flush()
            count += 1

    def _on_packet(address: str, port: int, length: int, data: bytes) -> None:
        try:
            message = unframe_message(data)
        except ValueError as exc:
            log.warning("bad frame from %s:%d: %s", address, port, exc)
            return
        _emit(address, port, message)

    if framed:
        receiver.set_packet_handler(_on_packet)
    else:
        receiver.set_message_handler(_emit)

    receiver.start()
    try:
        while not shutdown.is_set():
            shutdown.wait(0.5)
    finally:
        receiver.stop()
        receiver.join(1.0)

    return count


# -- Entry point -------------------------------------------------------------


def _load_settings(config: str | None) -> dict:
    """Load the config file named by *config*, or the default one."""
    path = resolve_config(config) if config else find_default_config()
    if path is None:
        return {}
    log.debug("using config %s", path)
    return load_config(path)


def _sender_settings(args, cfg: dict) -> dict:
    """Merge config values and command-line flags; None means "ask"."""
    if cfg:
        settings = {
            "local_host": cfg["local_host"] or "",
            "local_port": cfg["local_port"],
            "remote_host": cfg["remote_host"],
            "remote_port": cfg["remote_port"] or None,
            "broadcast": cfg["broadcast"],
        }
    else:
        settings = {
            "local_host": None,
            "local_port": None,
            "remote_host": None,
            "remote_port": None,
            "broadcast": False,
        }

    for key in ("local_host", "local_port", "remote_host", "remote_port"):
        value = getattr(args, key)
        if value is not None:
            settings[key] = value
    if args.broadcast:
        settings["broadcast"] = True
    if args.no_prompt:
        if settings["local_host"] is None:
            settings["local_host"] = ""
        if settings["local_port"] is None:
            settings["local_port"] = 0
    return settings


def _cmd_send(args, cfg: dict, stdin, stdout) -> int:
    settings = prompt_settings(_sender_settings(args, cfg), stdin, stdout)

    builder = (
        UdpSenderBuilder()
        .set_local_address(settings["local_host"])
        .set_local_port(settings["local_port"])
        .set_remote_address(settings["remote_host"])
        .set_remote_port(settings["remote_port"])
        .set_broadcast(settings["broadcast"])
    )
    with builder.build() as sender:
        sender.open_socket()
        log.info(
            "sending from %s to %s%s",
            sender.local_endpoint, sender.remote_endpoint,
            " (broadcast)" if sender.broadcast else "",
        )
        run_sender(sender, stdin, stdout, framed=not args.raw)
    return 0


def _cmd_listen(args, cfg: dict, stdout) -> int:
    host = args.host if args.host is not None else cfg.get("listen_host")
    port = args.port if args.port is not None else cfg.get("listen_port", 0)
    bufsize = args.bufsize or cfg.get("bufsize", RECV_BUFSIZE)

    _shutdown.clear()
    signal.signal(signal.SIGINT, _on_signal)
    signal.signal(signal.SIGTERM, _on_signal)

    receiver = UdpReceiver(port, host=host, bufsize=bufsize)
    count = run_listener(receiver, _shutdown, stdout, framed=args.framed)
    log.info("shutting down after %d messages", count)
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Return the argument parser for the ``udplink`` command."""
    parser = argparse.ArgumentParser(description="udplink UDP send/listen tool")
    parser.add_argument(
        "-c", "--config", help="TOML config file (default: ./udplink.toml "
        "or /etc/udplink/udplink.toml if present)",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="enable debug logging",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    send = sub.add_parser("send", help="send lines from stdin as datagrams")
    send.add_argument("--local-host", help="local bind address")
    send.add_argument("--local-port", type=int, help="local bind port")
    send.add_argument("--remote-host", help="destination address")
    send.add_argument("--remote-port", type=int, help="destination port")
    send.add_argument(
        "--broadcast", action="store_true", help="enable SO_BROADCAST",
    )
    send.add_argument(
        "--raw", action="store_true", help="send lines without length prefix",
    )
    send.add_argument(
        "--no-prompt", action="store_true",
        help="do not ask for local host/port; use wildcard and random port",
    )

    listen = sub.add_parser("listen", help="print received datagrams")
    listen.add_argument("--host", help="local bind address")
    listen.add_argument("--port", type=int, help="local bind port")
    listen.add_argument("--bufsize", type=int, help="receive buffer size")
    listen.add_argument(
        "--framed", action="store_true",
        help="strip a 4-byte length prefix from each datagram",
    )
    return parser


def main(argv: list[str] | None = None, stdin=None, stdout=None) -> int:
    """CLI entry point -- parse args, load config, run the command.

    Returns the process exit status.

    Example:
        From the shell::

            udplink send --remote-host 127.0.0.1 --remote-port 11001
            udplink -v listen --port 11001
    """
    stdin = stdin or sys.stdin
    stdout = stdout or sys.stdout

    args = build_parser().parse_args(argv)

    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        level=level,
    )

    try:
        cfg = _load_settings(args.config)
        if args.command == "send":
            return _cmd_send(args, cfg, stdin, stdout)
        return _cmd_listen(args, cfg, stdout)
    except (UdpError, ValueError, FileNotFoundError, EOFError) as exc:
        log.error("%s", exc)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
