"""Tests for the command line."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from docserver import cli
from docserver.types import BrokenInvariant


def test_defaults():
    args = cli.parse_args([])

    assert args.transport == "stdio"
    assert args.port == 3000
    assert args.host == "localhost"
    assert args.log_level == "INFO"


@pytest.mark.parametrize(
    "argv",
    [
        ["--transport", "sse", "--port", "9000"],
        ["--transport=sse", "--port=9000"],
        ["-t", "sse", "-p", "9000"],
    ],
)
def test_transport_and_port_forms(argv):
    args = cli.parse_args(argv)

    assert args.transport == "sse"
    assert args.port == 9000


def test_log_level_is_case_insensitive():
    assert cli.parse_args(["--log-level", "debug"]).log_level == "DEBUG"


@pytest.mark.parametrize(
    "argv",
    [
        ["--port", "0"],
        ["--port", "65536"],
        ["--port", "abc"],
        ["--transport", "websocket"],
        ["--idle-timeout", "-1"],
        ["--unknown"],
    ],
)
def test_invalid_arguments_exit_with_usage_error(argv, capsys):
    with pytest.raises(SystemExit) as exc_info:
        cli.parse_args(argv)

    assert exc_info.value.code == 2
    assert "usage:" in capsys.readouterr().err


def test_port_error_message(capsys):
    with pytest.raises(SystemExit):
        cli.parse_args(["--port", "70000"])

    assert "Port must be a number between 1 and 65535" in capsys.readouterr().err


def test_startup_failure_exits_with_status_1(monkeypatch):
    monkeypatch.setattr(cli, "setup_logging", MagicMock())
    monkeypatch.setattr(cli, "serve", AsyncMock(side_effect=BrokenInvariant("Port 3000 is already in use")))

    with pytest.raises(SystemExit) as exc_info:
        cli.run_server(["--transport", "sse"])

    assert exc_info.value.code == 1


def test_stdio_transport(monkeypatch):
    server = MagicMock()
    server.run_async = AsyncMock()
    monkeypatch.setattr(cli, "setup_logging", MagicMock())
    monkeypatch.setattr(cli, "create_server", MagicMock(return_value=server))

    cli.run_server([])

    server.run_async.assert_awaited_once_with(transport="stdio")


def test_sse_transport(monkeypatch):
    transport_server = MagicMock()
    transport_server.serve = AsyncMock()
    server_class = MagicMock(return_value=transport_server)
    monkeypatch.setattr(cli, "setup_logging", MagicMock())
    monkeypatch.setattr(cli, "SseTransportServer", server_class)

    cli.run_server(["-t", "sse", "--host", "0.0.0.0", "-p", "8123", "--idle-timeout", "30"])

    kwargs = server_class.call_args.kwargs
    assert kwargs["host"] == "0.0.0.0"
    assert kwargs["port"] == 8123
    assert kwargs["transport"].idle_timeout == 30
    transport_server.serve.assert_awaited_once()
