"""Tests for udplink.cli."""

import io
import socket
import threading

import pytest

import udplink.cli as cli_mod
import udplink.paths as paths_mod
from conftest import find_free_port, send_udp, wait_until
from udplink.cli import _on_signal, main, prompt_settings, run_listener, run_sender
from udplink.errors import SendError
from udplink.framing import frame_message
from udplink.udp_receiver import UdpReceiver


class FakeSender:
    """Test double for UdpSender: records payloads, can fail on demand."""

    def __init__(self, fail_on: bytes | None = None):
        """Initialize with an optional payload that triggers SendError."""
        self.sent = []
        self._fail_on = fail_on

    def send(self, data: bytes) -> "FakeSender":
        """Record *data*, or raise SendError if it matches fail_on."""
        if data == self._fail_on:
            raise SendError("refused")
        self.sent.append(data)
        return self


@pytest.fixture
def isolated(tmp_path, monkeypatch):
    """Run with no default config file visible."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(paths_mod, "ETC_DIR", str(tmp_path / "no_etc"))
    monkeypatch.delenv(paths_mod.ENV_VAR, raising=False)
    return tmp_path


class TestPromptSettings:
    """Tests for prompt_settings()."""

    def test_prompts_for_missing(self):
        """Every None value is asked for, in order."""
        stdin = io.StringIO("127.0.0.1\n11002\n10.0.0.1\n11001\n")
        stdout = io.StringIO()
        settings = {k: None for k in
                    ("local_host", "local_port", "remote_host", "remote_port")}

        result = prompt_settings(settings, stdin, stdout)

        assert result == {
            "local_host": "127.0.0.1",
            "local_port": 11002,
            "remote_host": "10.0.0.1",
            "remote_port": 11001,
        }
        out = stdout.getvalue()
        assert "Local ip [any]:" in out
        assert "Local port [random]:" in out
        assert "Remote ip:" in out
        assert "Remote port:" in out

    def test_empty_local_answers_use_defaults(self):
        """Blank local answers mean wildcard address and random port."""
        stdin = io.StringIO("\n\n")
        result = prompt_settings(
            {"local_host": None, "local_port": None,
             "remote_host": "127.0.0.1", "remote_port": 11001},
            stdin, io.StringIO(),
        )
        assert result["local_host"] == ""
        assert result["local_port"] == 0

    def test_known_values_not_asked(self):
        """Values already set are kept without prompting."""
        stdout = io.StringIO()
        settings = {"local_host": "", "local_port": 0,
                    "remote_host": "127.0.0.1", "remote_port": 11001}

        assert prompt_settings(settings, io.StringIO(""), stdout) == settings
        assert stdout.getvalue() == ""

    def test_bad_port(self):
        """A non-numeric port raises ValueError."""
        with pytest.raises(ValueError, match="remote port"):
            prompt_settings(
                {"local_host": "", "local_port": 0,
                 "remote_host": "127.0.0.1", "remote_port": None},
                io.StringIO("eleven\n"), io.StringIO(),
            )

    def test_remote_host_required(self):
        """A blank remote host raises ValueError."""
        with pytest.raises(ValueError, match="remote ip"):
            prompt_settings(
                {"local_host": "", "local_port": 0,
                 "remote_host": None, "remote_port": 11001},
                io.StringIO("\n"), io.StringIO(),
            )

    def test_eof(self):
        """Input ending early raises EOFError."""
        with pytest.raises(EOFError):
            prompt_settings(
                {"local_host": None, "local_port": 0,
                 "remote_host": "x", "remote_port": 1},
                io.StringIO(""), io.StringIO(),
            )


class TestRunSender:
    """Tests for run_sender()."""

    def test_frames_lines_until_exit(self):
        """Each line is length-prefixed; 'exit' ends the loop."""
        sender = FakeSender()
        stdout = io.StringIO()

        count = run_sender(sender, io.StringIO("hello\nworld\nexit\nlater\n"),
                           stdout)

        assert count == 2
        assert sender.sent == [frame_message("hello"), frame_message("world")]
        assert "Bye bye!" in stdout.getvalue()
        assert "Sending: [0, 0, 0, 5, 104" in stdout.getvalue()

    def test_raw_mode(self):
        """framed=False sends the UTF-8 line as-is."""
        sender = FakeSender()
        run_sender(sender, io.StringIO("hi\nexit\n"), io.StringIO(), framed=False)
        assert sender.sent == [b"hi"]

    def test_eof_ends_loop(self):
        """End of input ends the loop like 'exit'."""
        sender = FakeSender()
        assert run_sender(sender, io.StringIO("one\n"), io.StringIO()) == 1

    def test_empty_line_is_sent(self):
        """A blank line sends an empty message."""
        sender = FakeSender()
        run_sender(sender, io.StringIO("\nexit\n"), io.StringIO(), framed=False)
        assert sender.sent == [b""]

    def test_send_error_continues(self):
        """A failed send is logged and the next line still goes out."""
        sender = FakeSender(fail_on=b"bad")
        count = run_sender(sender, io.StringIO("bad\ngood\nexit\n"),
                           io.StringIO(), framed=False)
        assert count == 1
        assert sender.sent == [b"good"]


class TestRunListener:
    """Tests for run_listener()."""

    def _run(self, framed: bool, payloads: list[bytes]) -> tuple[int, str]:
        port = find_free_port()
        receiver = UdpReceiver(port, host="127.0.0.1")
        shutdown = threading.Event()
        stdout = io.StringIO()
        result = {}

        t = threading.Thread(target=lambda: result.setdefault(
            "count", run_listener(receiver, shutdown, stdout, framed=framed)))
        t.start()
        assert wait_until(lambda: receiver.is_running)
        for p in payloads:
            send_udp(port, p)
        wait_until(lambda: stdout.getvalue().count("\n") >= 1)
        shutdown.set()
        t.join(5.0)
        return result["count"], stdout.getvalue()

    def test_prints_messages(self):
        """Plain mode prints address:port and the text."""
        count, out = self._run(False, [b"hello"])
        assert count == 1
        assert out.startswith("127.0.0.1:")
        assert out.rstrip().endswith(" hello")

    def test_framed_strips_prefix(self):
        """Framed mode decodes the length prefix; bad frames are skipped."""
        count, out = self._run(True, [b"\x01", frame_message("framed")])
        assert count == 1
        assert out.rstrip().endswith(" framed")

    def test_shutdown_before_start(self):
        """A pre-set shutdown event returns at once and stops the receiver."""
        receiver = UdpReceiver(0, host="127.0.0.1")
        shutdown = threading.Event()
        shutdown.set()

        assert run_listener(receiver, shutdown, io.StringIO()) == 0
        assert not receiver.is_running

    def test_on_signal_sets_shutdown(self):
        """_on_signal sets the module-level shutdown event."""
        cli_mod._shutdown.clear()
        _on_signal(2, None)
        assert cli_mod._shutdown.is_set()
        cli_mod._shutdown.clear()


class TestMain:
    """Tests for main()."""

    def test_send_with_flags(self, isolated):
        """send with full flags needs no prompts and delivers lines."""
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sink:
            sink.bind(("127.0.0.1", 0))
            sink.settimeout(2.0)
            port = sink.getsockname()[1]
            stdout = io.StringIO()

            rc = main(
                ["send", "--no-prompt", "--remote-host", "127.0.0.1",
                 "--remote-port", str(port)],
                stdin=io.StringIO("ping\nexit\n"), stdout=stdout,
            )

            assert rc == 0
            assert sink.recvfrom(1024)[0] == frame_message("ping")

    def test_send_from_config(self, isolated):
        """Settings come from a config file given with -c."""
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sink:
            sink.bind(("127.0.0.1", 0))
            sink.settimeout(2.0)
            port = sink.getsockname()[1]
            local_port = find_free_port()
            cfg = isolated / "my.toml"
            cfg.write_text(
                '[local]\nhost = "127.0.0.1"\nport = %d\n'
                '[remote]\nhost = "127.0.0.1"\nport = %d\n' % (local_port, port)
            )

            rc = main(["-c", str(cfg), "send", "--raw"],
                      stdin=io.StringIO("cfg\nexit\n"), stdout=io.StringIO())

            assert rc == 0
            data, addr = sink.recvfrom(1024)
            assert data == b"cfg"
            assert addr == ("127.0.0.1", local_port)

    def test_send_prompts(self, isolated):
        """Without flags or config, send asks for every setting."""
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sink:
            sink.bind(("127.0.0.1", 0))
            sink.settimeout(2.0)
            port = sink.getsockname()[1]
            stdin = io.StringIO("127.0.0.1\n\n127.0.0.1\n%d\nasked\nexit\n" % port)

            rc = main(["send"], stdin=stdin, stdout=io.StringIO())

            assert rc == 0
            assert sink.recvfrom(1024)[0] == frame_message("asked")

    def test_bad_host_returns_error(self, isolated):
        """An unresolvable remote host exits with status 1."""
        rc = main(
            ["send", "--no-prompt", "--remote-host", "abc",
             "--remote-port", "11001"],
            stdin=io.StringIO("exit\n"), stdout=io.StringIO(),
        )
        assert rc == 1

    def test_missing_config_returns_error(self, isolated):
        """A -c path that does not exist exits with status 1."""
        rc = main(["-c", "./nope.toml", "send"],
                  stdin=io.StringIO(""), stdout=io.StringIO())
        assert rc == 1

    def test_listen_bind_error(self, isolated, monkeypatch):
        """listen on a busy port exits with status 1."""
        monkeypatch.setattr(cli_mod.signal, "signal", lambda *a: None)
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as holder:
            holder.bind(("127.0.0.1", 0))
            port = holder.getsockname()[1]
            rc = main(["listen", "--host", "127.0.0.1", "--port", str(port)],
                      stdout=io.StringIO())
        assert rc == 1

    def test_command_required(self):
        """Running without a subcommand is a usage error."""
        with pytest.raises(SystemExit):
            main([])
