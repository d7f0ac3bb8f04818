"""
Tests for configuration loading and validation.
"""

import logging

import pytest

import config_manager
from config_manager import ConfigManager, ConfigurationError, configure_logging, get_config


@pytest.fixture(autouse=True)
def fresh_singleton():
    ConfigManager.reset_instance()
    yield
    ConfigManager.reset_instance()


def write_config(tmp_path, text):
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return str(path)


class TestLoading:
    """Tests for reading config.yaml."""

    def test_defaults_when_file_missing(self, tmp_path):
        """A missing file leaves every section at its defaults."""
        config = ConfigManager(str(tmp_path / "absent.yaml"))
        assert config.posting.default_governance_tier == 3
        assert config.posting.journal_number_prefix == "JE-"
        assert config.posting.guard_error_prefix == "PostingGuard: "
        assert config.metadata.usage_logging is True
        assert config.api.journal_list_limit == 50

    def test_sections_parsed(self, tmp_path):
        """Values from the file override the defaults."""
        path = write_config(tmp_path, """
posting:
  default_governance_tier: 4
  amount_precision: 3
  journal_number_prefix: "GL-"
metadata:
  usage_logging: false
  tool_name: agent.lookup
  default_actor_type: SYSTEM
logging:
  level: DEBUG
  audit_to_file: false
api:
  journal_list_limit: 10
""")
        config = ConfigManager(path)
        assert config.posting.default_governance_tier == 4
        assert config.posting.amount_precision == 3
        assert config.posting.journal_number_prefix == "GL-"
        assert config.metadata.usage_logging is False
        assert config.metadata.tool_name == "agent.lookup"
        assert config.metadata.default_actor_type == "SYSTEM"
        assert config.logging.level == "DEBUG"
        assert config.logging.audit_to_file is False
        assert config.api.journal_list_limit == 10
        assert config.database.host == "localhost"

    def test_empty_file(self, tmp_path):
        """An empty file is the same as all defaults."""
        config = ConfigManager(write_config(tmp_path, ""))
        assert config.posting.amount_precision == 2

    def test_invalid_yaml(self, tmp_path):
        """Broken YAML is a configuration error."""
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            ConfigManager(write_config(tmp_path, "posting: [unclosed"))

    def test_non_mapping(self, tmp_path):
        """The top level must be a mapping."""
        with pytest.raises(ConfigurationError, match="mapping"):
            ConfigManager(write_config(tmp_path, "- just\n- a list\n"))

    def test_shipped_config_is_valid(self):
        """The config.yaml next to the module loads cleanly."""
        config = ConfigManager()
        assert config.config_path.name == "config.yaml"
        assert config.posting.default_governance_tier == 3


class TestValidation:
    """Tests for value validation."""

    @pytest.mark.parametrize("tier", [0, 6, "3", True])
    def test_default_tier_range(self, tmp_path, tier):
        """The default tier must be an integer from 1 to 5."""
        path = write_config(tmp_path, f"posting:\n  default_governance_tier: {tier!r}\n")
        with pytest.raises(ConfigurationError, match="default_governance_tier"):
            ConfigManager(path)

    def test_negative_precision(self, tmp_path):
        """Precision cannot be negative."""
        path = write_config(tmp_path, "posting:\n  amount_precision: -1\n")
        with pytest.raises(ConfigurationError, match="amount_precision"):
            ConfigManager(path)

    def test_empty_prefix(self, tmp_path):
        """Journal numbers need a prefix."""
        path = write_config(tmp_path, "posting:\n  journal_number_prefix: ''\n")
        with pytest.raises(ConfigurationError, match="journal_number_prefix"):
            ConfigManager(path)

    def test_unknown_actor_type(self, tmp_path):
        """Actor type must be a known value."""
        path = write_config(tmp_path, "metadata:\n  default_actor_type: ROBOT\n")
        with pytest.raises(ConfigurationError, match="default_actor_type"):
            ConfigManager(path)

    def test_unknown_log_level(self, tmp_path):
        """Log level must be a standard level name."""
        path = write_config(tmp_path, "logging:\n  level: LOUD\n")
        with pytest.raises(ConfigurationError, match="logging level"):
            ConfigManager(path)


class TestSingleton:
    """Tests for the shared instance."""

    def test_get_config_returns_same_instance(self, tmp_path):
        """get_config caches the first instance."""
        path = write_config(tmp_path, "posting:\n  journal_number_prefix: 'X-'\n")
        first = get_config(path)
        assert get_config() is first
        assert first.posting.journal_number_prefix == "X-"

    def test_reset_instance(self, tmp_path):
        """reset_instance forces a reload."""
        first = get_config(write_config(tmp_path, ""))
        ConfigManager.reset_instance()
        assert get_config(str(tmp_path / "config.yaml")) is not first

    def test_to_dict_omits_password(self, tmp_path):
        """Exported configuration never contains the database password."""
        data = ConfigManager(write_config(tmp_path, "database:\n  password: secret\n")).to_dict()
        assert "password" not in data["database"]
        assert "secret" not in str(data)
        assert data["api"]["journal_list_limit"] == 50


class TestConfigureLogging:
    """Tests for applying the logging section."""

    def test_console_and_file(self, tmp_path, monkeypatch):
        """Console and file handlers are built from the config."""
        captured = {}
        monkeypatch.setattr(config_manager.logging, "basicConfig", lambda **kw: captured.update(kw))

        log_file = tmp_path / "logs" / "ledger.log"
        path = write_config(tmp_path, f"logging:\n  level: warning\n  file: {log_file}\n  console: true\n")
        configure_logging(ConfigManager(path))

        assert captured["level"] == logging.WARNING
        assert captured["force"] is True
        kinds = {type(h) for h in captured["handlers"]}
        assert kinds == {logging.StreamHandler, logging.FileHandler}
        assert log_file.parent.is_dir()
        for handler in captured["handlers"]:
            handler.close()

    def test_no_handlers(self, tmp_path, monkeypatch):
        """Without console or file, basicConfig picks its own default."""
        captured = {}
        monkeypatch.setattr(config_manager.logging, "basicConfig", lambda **kw: captured.update(kw))

        path = write_config(tmp_path, "logging:\n  file: null\n  console: false\n")
        configure_logging(ConfigManager(path))
        assert captured["handlers"] is None
