"""
Tests for settings, option/environment resolution and logging setup.
"""

import logging
from pathlib import Path

import pytest

from steel_cli.config import Settings, _bonsai_api_key, _log_level
from steel_cli.e2e import E2EEnvironment
from steel_cli.logging_config import default_log_file, setup_logging


class TestBonsaiApiKey:
    def test_option_wins(self, monkeypatch):
        monkeypatch.setenv("BONSAI_API_KEY", "from-env")
        assert _bonsai_api_key("from-cli") == "from-cli"

    def test_env_fallback(self, monkeypatch):
        monkeypatch.setenv("BONSAI_API_KEY", "  from-env \n")
        assert _bonsai_api_key(None) == "from-env"

    def test_nothing(self, monkeypatch):
        monkeypatch.delenv("BONSAI_API_KEY", raising=False)
        assert _bonsai_api_key(None) is None
        assert _bonsai_api_key("   ") is None


class TestLogLevel:
    def test_debug_flag(self, monkeypatch):
        monkeypatch.setenv("STEEL_LOG_LEVEL", "warning")
        assert _log_level(True) == "DEBUG"

    def test_env(self, monkeypatch):
        monkeypatch.setenv("STEEL_LOG_LEVEL", "warning")
        assert _log_level() == "WARNING"

    def test_default(self, monkeypatch):
        monkeypatch.delenv("STEEL_LOG_LEVEL", raising=False)
        assert _log_level() == "INFO"


class TestSettings:
    def test_defaults(self):
        settings = Settings(base_dir=Path("/work"))
        assert settings.workspace("demo") == Path("/work/demo")
        assert settings.template_subtree == "examples/erc20-counter"
        assert [name for name, _, _ in settings.submodules] == [
            "forge-std", "openzeppelin-contracts", "risc0-ethereum",
        ]
        assert settings.broad_kill_command == ("pkill", "anvil")

    def test_environment_hides_secrets(self, settings):
        env = E2EEnvironment.from_settings(settings, "secret")
        assert "secret" not in repr(env)
        assert settings.wallet_private_key not in repr(env)
        assert env.as_env()["BONSAI_API_KEY"] == "secret"


class TestSetupLogging:
    """Tests for the log file handler."""

    @pytest.fixture(autouse=True)
    def restore_root(self):
        root = logging.getLogger()
        level = root.level
        yield
        for handler in root.handlers[:]:
            if isinstance(handler, logging.FileHandler):
                root.removeHandler(handler)
                handler.close()
        root.setLevel(level)

    def test_writes_to_file(self, tmp_path):
        path = setup_logging("DEBUG", tmp_path / "logs" / "steel.log")
        logging.getLogger("steel_cli.test").debug("hello from the test")
        for handler in logging.getLogger().handlers:
            handler.flush()
        assert "hello from the test" in path.read_text()

    def test_level_filters(self, tmp_path):
        path = setup_logging("WARNING", tmp_path / "steel.log")
        logging.getLogger("steel_cli.test").info("quiet")
        assert "quiet" not in path.read_text()

    def test_bad_level_falls_back_to_info(self, tmp_path):
        setup_logging("LOUD", tmp_path / "steel.log")
        assert logging.getLogger().level == logging.INFO

    def test_default_location(self):
        assert default_log_file().name == "steel.log"
        assert "steel-cli" in str(default_log_file())
