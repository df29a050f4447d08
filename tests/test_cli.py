"""CLI tests with typer's CliRunner."""

import pytest
from typer.testing import CliRunner

from sneakytunnel import __version__
from sneakytunnel.cli.commands import connect as connect_cmd
from sneakytunnel.cli.main import app
from sneakytunnel.models.enums import DisconnectReason, LogLevel
from sneakytunnel.tunnel.protocol import PortByteOrder

runner = CliRunner()


@pytest.fixture
def fake_run(monkeypatch):
    """Replace the tunnel run with a stub returning a chosen reason."""
    calls = []

    def install(reason: DisconnectReason):
        async def run(tunnel_config, settings):
            calls.append((tunnel_config, settings))
            return reason

        monkeypatch.setattr(connect_cmd, "_run_tunnel", run)
        monkeypatch.setattr(connect_cmd, "configure_logging", lambda level: None)
        return calls

    return install


def test_version():
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_config_show_applies_env():
    result = runner.invoke(
        app,
        ["config", "show"],
        env={"SNEAKYTUNNEL_KEEPALIVE_TIMEOUT_SECONDS": "42"},
    )
    assert result.exit_code == 0
    assert "42.0" in result.output


def test_connect_passes_config_and_options(fake_run):
    calls = fake_run(DisconnectReason.USER_REQUESTED)

    result = runner.invoke(
        app,
        [
            "connect",
            "--byte-order",
            "little",
            "--keepalive-timeout",
            "30",
            "--log-level",
            "debug",
            "203.0.113.7",
            "https://negotiator.example.com/",
            "51820",
        ],
    )

    assert result.exit_code == 0, result.output
    tunnel_config, settings = calls[0]
    assert tunnel_config.server_address == "203.0.113.7"
    assert tunnel_config.negotiator_url == "https://negotiator.example.com"
    assert tunnel_config.service_port == 51820
    assert settings.ANNOUNCE_PORT_BYTE_ORDER is PortByteOrder.LITTLE
    assert settings.KEEPALIVE_TIMEOUT_SECONDS == 30.0
    assert settings.LOG_LEVEL is LogLevel.DEBUG


def test_connect_reads_arguments_from_env(fake_run):
    calls = fake_run(DisconnectReason.USER_REQUESTED)

    result = runner.invoke(
        app,
        ["connect"],
        env={
            "SNEAKYTUNNEL_SERVER": "203.0.113.7",
            "SNEAKYTUNNEL_NEGOTIATOR": "http://negotiator.local",
            "SNEAKYTUNNEL_SERVICE_PORT": "27015",
        },
    )

    assert result.exit_code == 0, result.output
    assert calls[0][0].service_port == 27015


def test_connect_error_reason_exits_nonzero(fake_run):
    fake_run(DisconnectReason.KEEPALIVE_TIMEOUT)
    result = runner.invoke(
        app, ["connect", "203.0.113.7", "https://negotiator.example.com", "51820"]
    )
    assert result.exit_code == 1


def test_connect_rejects_bad_address(fake_run):
    calls = fake_run(DisconnectReason.USER_REQUESTED)
    result = runner.invoke(
        app, ["connect", "not-an-ip", "https://negotiator.example.com", "51820"]
    )
    assert result.exit_code == 1
    assert calls == []
