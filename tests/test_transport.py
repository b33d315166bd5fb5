"""paramiko adapter, exercised against mocked paramiko objects."""

from unittest.mock import MagicMock

import paramiko
import pytest

from sshmob.runner import transport
from sshmob.runner.errors import CommandExitError, SessionError
from sshmob.runner.transport import SSHConnection, SSHSession, dial


@pytest.fixture
def channel():
    chan = MagicMock(spec_set=["set_combine_stderr", "exec_command", "makefile",
                               "recv_exit_status", "get_pty", "invoke_shell",
                               "sendall", "recv", "recv_stderr", "close"])
    chan.makefile.return_value = MagicMock()
    chan.makefile.return_value.__enter__.return_value.read.return_value = b"root\n"
    chan.recv_exit_status.return_value = 0
    return chan


class TestSSHSession:

    def test_run_and_capture_merges_stderr(self, channel):
        output = SSHSession(channel).run_and_capture("whoami")

        assert output == b"root\n"
        channel.set_combine_stderr.assert_called_once_with(True)
        channel.exec_command.assert_called_once_with("whoami")

    def test_non_zero_exit_raises(self, channel):
        channel.recv_exit_status.return_value = 127

        with pytest.raises(CommandExitError) as excinfo:
            SSHSession(channel).run_and_capture("nope")

        assert isinstance(excinfo.value, SessionError)
        assert excinfo.value.exit_status == 127
        assert excinfo.value.output == b"root\n"

    def test_terminal_shell_and_write(self, channel):
        session = SSHSession(channel)

        session.request_terminal("xterm-256color", 100, 30)
        session.start_shell()
        session.write(b"ls\r")

        channel.get_pty.assert_called_once_with(term="xterm-256color", width=100, height=30)
        channel.invoke_shell.assert_called_once_with()
        channel.sendall.assert_called_once_with(b"ls\r")

    def test_reads_and_close(self, channel):
        channel.recv.return_value = b"out"
        channel.recv_stderr.return_value = b""
        session = SSHSession(channel)

        assert session.read_stdout(16) == b"out"
        assert session.read_stderr(16) == b""
        session.close()

        channel.close.assert_called_once_with()


class TestSSHConnection:

    def test_open_session_on_active_transport(self):
        client = MagicMock()
        client.get_transport.return_value.is_active.return_value = True

        session = SSHConnection(client).open_session()

        assert isinstance(session, SSHSession)
        client.get_transport.return_value.open_session.assert_called_once_with()

    def test_open_session_on_dead_transport(self):
        client = MagicMock()
        client.get_transport.return_value.is_active.return_value = False

        with pytest.raises(paramiko.SSHException):
            SSHConnection(client).open_session()

    def test_open_session_without_transport(self):
        client = MagicMock()
        client.get_transport.return_value = None

        with pytest.raises(paramiko.SSHException):
            SSHConnection(client).open_session()

    def test_close(self):
        client = MagicMock()

        SSHConnection(client).close()

        client.close.assert_called_once_with()


class TestDial:

    def test_password_only_login(self, monkeypatch):
        client = MagicMock()
        monkeypatch.setattr(transport.paramiko, "SSHClient", lambda: client)

        conn = dial("10.0.0.5", 2222, "mob", "pw", timeout=3.0)

        assert isinstance(conn, SSHConnection)
        client.connect.assert_called_once_with(
            "10.0.0.5",
            port=2222,
            username="mob",
            password="pw",
            timeout=3.0,
            banner_timeout=3.0,
            auth_timeout=3.0,
            allow_agent=False,
            look_for_keys=False,
        )
        policy = client.set_missing_host_key_policy.call_args.args[0]
        assert isinstance(policy, paramiko.AutoAddPolicy)

    def test_failed_dial_closes_client(self, monkeypatch):
        client = MagicMock()
        client.connect.side_effect = paramiko.AuthenticationException("bad password")
        monkeypatch.setattr(transport.paramiko, "SSHClient", lambda: client)

        with pytest.raises(paramiko.AuthenticationException):
            dial("10.0.0.5", 22, "mob", "wrong")

        client.close.assert_called_once_with()
