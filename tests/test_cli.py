"""
Tests for CLI commands — help, check and the non-interactive guard.
"""

from conftest import HEALTHY_TOOLS, FakeRunner, missing
from typer.testing import CliRunner

from steel_cli import app


class TestCLIGlobal:
    """Tests for global CLI behavior."""

    def test_help(self):
        runner = CliRunner()
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "create" in result.output
        assert "check" in result.output

    def test_no_command_shows_banner(self):
        runner = CliRunner()
        result = runner.invoke(app, [])
        assert result.exit_code == 0
        assert "RISC Zero Steel" in result.output

    def test_create_help_lists_options(self):
        runner = CliRunner()
        result = runner.invoke(app, ["create", "--help"])
        assert result.exit_code == 0
        for option in ("--base-dir", "--bonsai-api-key", "--local", "--rpc-url", "--debug"):
            assert option in result.output


class TestCheckCommand:
    """Tests for the check command."""

    def test_all_tools_present(self, monkeypatch):
        monkeypatch.setattr("steel_cli.ProcessRunner", lambda: FakeRunner(HEALTHY_TOOLS))
        result = CliRunner().invoke(app, ["check"])
        assert result.exit_code == 0
        assert "ready to use" in result.output
        assert "1.2.1" in result.output

    def test_missing_tool_fails(self, monkeypatch):
        responses = {**HEALTHY_TOOLS, ("forge",): missing("forge --version")}
        del responses[("forge", "--version")]
        monkeypatch.setattr("steel_cli.ProcessRunner", lambda: FakeRunner(responses))
        result = CliRunner().invoke(app, ["check"])
        assert result.exit_code == 1
        assert "Missing Tools" in result.output
        assert "Foundry not found" in result.output


class TestCreateCommand:
    def test_refuses_without_terminal(self, tmp_path):
        result = CliRunner().invoke(app, ["create", "demo", "--base-dir", str(tmp_path)])
        assert result.exit_code == 1
        assert "interactive terminal" in result.output
        assert not (tmp_path / "demo").exists()
