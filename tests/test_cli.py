"""
Tests for the command-line entry points.
"""

from click.testing import CliRunner

from room_sync import __version__
from room_sync.cli.main import ChatPrinter, cli
from room_sync.client.coordinator import ReadModel
from room_sync.core.models import ConnectionStatus
from conftest import make_message


def test_version():
    result = CliRunner().invoke(cli, ["version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_commands_require_token():
    result = CliRunner().invoke(cli, ["rooms"], env={"ROOM_SYNC_TOKEN": ""})

    assert result.exit_code == 2
    assert "token is required" in result.output


def test_invalid_server_url():
    result = CliRunner().invoke(cli, ["--server-url", "ftp://chat", "version"])

    assert result.exit_code == 2


def test_chat_printer_prints_each_message_once():
    lines = []

    class Recorder:
        def print(self, text):
            lines.append(text)

    printer = ChatPrinter(Recorder())
    first = ReadModel(None, (), (make_message(1),), ConnectionStatus.OPEN)
    second = ReadModel(None, (), (make_message(1), make_message(2)), ConnectionStatus.OPEN)

    printer(first)
    printer(second)

    assert len(lines) == 3
    assert "open" in lines[0]
    assert "message 2" in lines[2]


def test_chat_printer_hints_retry_on_failure():
    lines = []

    class Recorder:
        def print(self, text):
            lines.append(text)

    ChatPrinter(Recorder())(ReadModel(None, (), (), ConnectionStatus.FAILED))

    assert "/retry" in lines[0]
