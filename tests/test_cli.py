"""Tests for the command line interface."""

import json
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from fakes import FakeTransportFactory, lines
from ic_bn_logs import __version__
from ic_bn_logs.cli import cli
from ic_bn_logs.errors import RegistryError
from ic_bn_logs.models import Endpoint
from ic_bn_logs.registry import HttpRegistry, StateTreeRegistry


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def transports(monkeypatch):
    """Replace websocket transports with scripted ones."""
    factory = FakeTransportFactory(default={"frames": lines("log", 3), "end": "lost"})
    monkeypatch.setattr("ic_bn_logs.supervisor.websocket_transport_factory", lambda config: factory)
    return factory


class TestCli:
    """Test CLI commands."""

    def test_version(self, runner):
        """Test the version command."""
        result = runner.invoke(cli, ["version"])
        assert result.exit_code == 0
        assert f"ic-bn-logs version {__version__}" in result.output

    def test_invalid_canister_id(self, runner, transports):
        """Test that malformed canister ids are rejected before connecting."""
        result = runner.invoke(cli, ["tail", "-c", "not-a-canister", "-e", "bn1.example.org"])
        assert result.exit_code == 2
        assert "not a valid canister id" in result.output
        assert transports.created == {}

    def test_missing_canister_id(self, runner):
        """Test that the canister id is required."""
        result = runner.invoke(cli, ["tail", "-e", "bn1.example.org"])
        assert result.exit_code == 2

    def test_endpoints(self, runner):
        """Test listing explicit endpoints."""
        result = runner.invoke(cli, ["endpoints", "-e", "bn1.example.org", "-e", "bn2.example.org"])
        assert result.exit_code == 0
        assert "bn1.example.org\twss://bn1.example.org" in result.output
        assert "bn2.example.org\twss://bn2.example.org" in result.output

    def test_endpoints_from_environment(self, runner):
        """Test listing endpoints configured in the environment."""
        result = runner.invoke(cli, ["endpoints"], env={"IC_BN_LOGS_ENDPOINTS": "bn3.example.org"})
        assert result.exit_code == 0
        assert "bn3.example.org\twss://bn3.example.org" in result.output

    def test_registry_failure(self, runner, canister_id):
        """Test that an unreachable registry exits with an error."""
        with patch.object(HttpRegistry, "fetch", side_effect=RegistryError("Registry request failed")) as fetch:
            result = runner.invoke(cli, ["tail", "-c", canister_id,
                                         "--registry-url", "https://registry.example.org/nodes.json"])
        assert result.exit_code == 1
        fetch.assert_called_once()

    def test_endpoints_from_registry(self, runner):
        """Test listing endpoints from a registry URL."""
        fetched = (Endpoint.from_domain("bn4.example.org"),)
        with patch.object(HttpRegistry, "fetch", return_value=fetched):
            result = runner.invoke(cli, ["endpoints", "--registry-url", "https://registry.example.org/nodes.json"])
        assert result.exit_code == 0
        assert "bn4.example.org\twss://bn4.example.org" in result.output

    def test_no_endpoints(self, runner, transports, canister_id):
        """Test that an empty endpoint list exits with an error."""
        with patch.object(StateTreeRegistry, "fetch", return_value=()) as fetch:
            result = runner.invoke(cli, ["tail", "-c", canister_id])
        assert result.exit_code == 1
        fetch.assert_called_once()
        assert transports.created == {}

    def test_discovered_endpoints(self, runner, transports, canister_id):
        """Test that boundary nodes are discovered when none are configured."""
        fetched = (Endpoint.from_domain("bn5.example.org"),)
        with patch.object(StateTreeRegistry, "fetch", return_value=fetched):
            result = runner.invoke(cli, ["tail", "-c", canister_id])
        assert result.exit_code == 0
        assert "[bn5.example.org] log 0" in result.output
        assert sorted(transports.created) == ["bn5.example.org"]

    def test_invalid_configuration(self, runner):
        """Test that bad environment settings are reported as usage errors."""
        result = runner.invoke(cli, ["version"], env={"IC_BN_LOGS_SHUTDOWN_GRACE": "-1"})
        assert result.exit_code == 2
        assert "Invalid configuration" in result.output


class TestTailCommand:
    """Test streaming through the tail command."""

    def test_human_output(self, runner, transports, canister_id):
        """Test prefixed log lines from every endpoint."""
        result = runner.invoke(cli, ["tail", "-c", canister_id,
                                     "-e", "bn1.example.org", "-e", "bn2.example.org"])

        assert result.exit_code == 0
        for endpoint_id in ("bn1.example.org", "bn2.example.org"):
            for i in range(3):
                assert f"[{endpoint_id}] log {i}" in result.output
        assert sorted(transports.created) == ["bn1.example.org", "bn2.example.org"]
        assert transports.created["bn1.example.org"].subscribe_calls[0].resource_id == canister_id

    def test_no_prefix(self, runner, transports, canister_id):
        """Test bare log lines."""
        result = runner.invoke(cli, ["tail", "-c", canister_id, "-e", "bn1.example.org", "--no-prefix"])
        assert result.exit_code == 0
        assert "log 0\n" in result.output
        assert "[bn1.example.org] log 0" not in result.output

    def test_json_output_file(self, runner, transports, canister_id, tmp_path):
        """Test JSON lines written to a file, notices and summary included."""
        output = tmp_path / "logs.jsonl"
        result = runner.invoke(cli, ["tail", "-c", canister_id, "-e", "bn1.example.org",
                                     "--json", "-o", str(output)])
        assert result.exit_code == 0

        records = [json.loads(line) for line in output.read_text().splitlines() if line.strip()]
        kinds = [record["event"] for record in records]
        assert kinds == ["log", "log", "log", "notice", "summary"]
        assert [r["payload"] for r in records if r["event"] == "log"] == ["log 0", "log 1", "log 2"]
        assert records[3]["reason"] == "connection_lost"
        assert records[4]["total_events"] == 3

    def test_all_endpoints_fail(self, runner, monkeypatch, canister_id):
        """Test that the command fails when no endpoint could be subscribed to."""
        factory = FakeTransportFactory(default={"refuse_connect": True})
        monkeypatch.setattr("ic_bn_logs.supervisor.websocket_transport_factory", lambda config: factory)

        result = runner.invoke(cli, ["tail", "-c", canister_id,
                                     "-e", "bn1.example.org", "-e", "bn2.example.org"])
        assert result.exit_code == 1

    def test_partial_failure_succeeds(self, runner, monkeypatch, canister_id):
        """Test that one working endpoint is enough."""
        factory = FakeTransportFactory(
            scripts={"bad.example.org": {"refuse_subscribe": True}},
            default={"frames": lines("log", 1), "end": "lost"},
        )
        monkeypatch.setattr("ic_bn_logs.supervisor.websocket_transport_factory", lambda config: factory)

        result = runner.invoke(cli, ["tail", "-c", canister_id,
                                     "-e", "bad.example.org", "-e", "good.example.org"])
        assert result.exit_code == 0
        assert "[good.example.org] log 0" in result.output

    def test_duration(self, runner, monkeypatch, canister_id, tmp_path):
        """Test that --duration stops a stream that would otherwise run forever."""
        factory = FakeTransportFactory(default={"frames": lines("log", 2)})
        monkeypatch.setattr("ic_bn_logs.supervisor.websocket_transport_factory", lambda config: factory)

        output = tmp_path / "logs.jsonl"
        result = runner.invoke(cli, ["tail", "-c", canister_id, "-e", "bn1.example.org",
                                     "--duration", "0.2", "--grace", "1", "--json", "-o", str(output)])
        assert result.exit_code == 0

        records = [json.loads(line) for line in output.read_text().splitlines() if line.strip()]
        notices = [r for r in records if r["event"] == "notice"]
        assert len(notices) == 1
        assert notices[0]["reason"] == "cancelled"
        assert factory.created["bn1.example.org"].close_calls == 1
