"""Tests for the ari-relay CLI."""

from unittest.mock import AsyncMock, patch

import click
import pytest
from typer.testing import CliRunner

from ari_relay import __version__
from ari_relay.cli import app
from ari_relay.core.errors import ConnectError

runner = CliRunner()

REQUIRED = ("VOIP_HOST", "VOIP_USER", "VOIP_PASS", "VOIP_APP", "BROKER_HOST")


def strip_ansi(text: str) -> str:
    """Strip ANSI escape codes from text."""
    return click.unstyle(text)


@pytest.fixture
def env_file(tmp_path, monkeypatch):
    """A .env file with every required setting, and a clean environment."""
    for key in REQUIRED:
        monkeypatch.delenv(key, raising=False)
    path = tmp_path / ".env"
    path.write_text(
        "VOIP_HOST=pbx.local\n"
        "VOIP_USER=asterisk\n"
        "VOIP_PASS=secret\n"
        "VOIP_APP=relay\n"
        "BROKER_HOST=nats.local\n"
    )
    return path


class TestVersion:
    """Tests for the version command."""

    def test_version_shows_version(self):
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert f"ARI Relay v{__version__}" in result.stdout


class TestHelp:

    def test_main_help(self):
        result = runner.invoke(app, ["--help"])
        output = strip_ansi(result.stdout)
        assert result.exit_code == 0
        assert "run" in output
        assert "version" in output

    def test_run_help(self):
        result = runner.invoke(app, ["run", "--help"])
        output = strip_ansi(result.stdout)
        assert result.exit_code == 0
        assert "--env-file" in output
        assert "--log-level" in output


class TestRun:

    def test_missing_configuration_exits_non_zero(self, tmp_path, monkeypatch):
        for key in REQUIRED:
            monkeypatch.delenv(key, raising=False)

        result = runner.invoke(app, ["run", "--env-file", str(tmp_path / "missing.env")])

        assert result.exit_code == 1
        assert "Invalid configuration" in result.output

    def test_connect_error_exits_non_zero(self, env_file):
        serve = AsyncMock(side_effect=ConnectError("Error connecting to websocket: refused"))

        with patch("ari_relay.cli.serve", new=serve):
            result = runner.invoke(app, ["run", "--env-file", str(env_file)])

        assert result.exit_code == 1
        assert "refused" in result.output

    def test_invalid_log_level_in_env_file_exits_non_zero(self, env_file):
        env_file.write_text(env_file.read_text() + "LOG_LEVEL=verbose\n")

        result = runner.invoke(app, ["run", "--env-file", str(env_file)])

        assert result.exit_code == 1
        assert "LOG_LEVEL" in result.output

    def test_invalid_log_level_option_exits_non_zero(self, env_file):
        serve = AsyncMock(return_value={})

        with patch("ari_relay.cli.serve", new=serve):
            result = runner.invoke(app, ["run", "--env-file", str(env_file), "--log-level", "verbose"])

        assert result.exit_code == 1
        assert "Invalid log level 'verbose'" in result.output
        serve.assert_not_called()

    def test_keyboard_interrupt_exits_cleanly(self, env_file):
        serve = AsyncMock(side_effect=KeyboardInterrupt)

        with patch("ari_relay.cli.serve", new=serve):
            result = runner.invoke(app, ["run", "--env-file", str(env_file)])

        assert result.exit_code == 130
        assert "Interrupted" in result.output

    def test_run_serves_loaded_settings(self, env_file):
        serve = AsyncMock(return_value={})

        with patch("ari_relay.cli.serve", new=serve):
            result = runner.invoke(app, ["run", "--env-file", str(env_file), "--log-level", "debug"])

        assert result.exit_code == 0
        settings = serve.await_args.args[0]
        assert settings.voip_host == "pbx.local"
        assert settings.broker_host == "nats.local"
