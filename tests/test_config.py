"""
Tests for configuration loading and saving.
"""

import json
import tempfile
from pathlib import Path
from unittest.mock import patch

import yaml

from modelview import config


class TestConfigDataclasses:
    """Test configuration defaults and dictionary conversion."""

    def test_execution_defaults(self):
        cfg = config.ExecutionConfig()
        assert cfg.partition_size == 1000
        assert cfg.max_workers is None
        assert cfg.on_partition_error == "raise"

    def test_cli_defaults(self):
        cfg = config.CLIConfig()
        assert cfg.verbose is False
        assert cfg.color is True
        assert cfg.modules == []

    def test_modules_not_shared_between_instances(self):
        first = config.CLIConfig()
        first.modules.append("views")
        assert config.CLIConfig().modules == []

    def test_to_dict(self):
        data = config.ModelViewConfig().to_dict()
        assert set(data) == {"execution", "cli"}
        assert data["execution"]["partition_size"] == 1000

    def test_from_dict(self):
        cfg = config.ModelViewConfig.from_dict({
            "execution": {"partition_size": 10, "on_partition_error": "skip"},
            "cli": {"modules": ["views"]},
        })
        assert cfg.execution.partition_size == 10
        assert cfg.execution.on_partition_error == "skip"
        assert cfg.cli.modules == ["views"]
        assert cfg.cli.color is True

    def test_from_dict_missing_sections(self):
        cfg = config.ModelViewConfig.from_dict({"cli": None})
        assert cfg.execution.partition_size == 1000
        assert cfg.cli.verbose is False

    def test_round_trip(self):
        original = config.ModelViewConfig()
        original.execution.max_workers = 4
        restored = config.ModelViewConfig.from_dict(original.to_dict())
        assert restored == original


class TestGetConfigPath:
    """Test config file path resolution."""

    def test_env_var_wins(self, monkeypatch, tmp_path):
        target = tmp_path / "custom.yaml"
        monkeypatch.setenv(config.CONFIG_ENV_VAR, str(target))
        assert config.get_config_path() == target

    def test_xdg_config_home(self, monkeypatch, tmp_path):
        monkeypatch.delenv(config.CONFIG_ENV_VAR, raising=False)
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
        assert config.get_config_path() == tmp_path / "modelview" / "config.json"

    def test_fallback_when_xdg_missing(self, monkeypatch, tmp_path):
        monkeypatch.delenv(config.CONFIG_ENV_VAR, raising=False)
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "missing"))
        result = config.get_config_path()
        assert result == Path.home() / ".modelview" / "config.json"


class TestLoadConfig:
    """Test configuration loading behavior."""

    def test_returns_defaults_when_file_missing(self):
        with patch.object(config, 'get_config_path') as mock_path:
            mock_path.return_value = Path("/nonexistent/config.json")
            result = config.load_config()
            assert isinstance(result, config.ModelViewConfig)
            assert result.execution.partition_size == 1000

    def test_loads_json(self, tmp_path):
        config_path = tmp_path / "config.json"
        config_path.write_text(json.dumps({"execution": {"partition_size": 50}}))

        with patch.object(config, 'get_config_path', return_value=config_path):
            assert config.load_config().execution.partition_size == 50

    def test_loads_yaml(self, tmp_path):
        config_path = tmp_path / "config.yaml"
        config_path.write_text(yaml.safe_dump({"cli": {"modules": ["my_views"]}}))

        with patch.object(config, 'get_config_path', return_value=config_path):
            assert config.load_config().cli.modules == ["my_views"]

    def test_handles_invalid_json_gracefully(self):
        with tempfile.NamedTemporaryFile(mode='w', suffix='.json', delete=False) as f:
            f.write("not valid json {{{")
            temp_path = Path(f.name)

        try:
            with patch.object(config, 'get_config_path', return_value=temp_path):
                result = config.load_config()
                assert result == config.ModelViewConfig()
        finally:
            temp_path.unlink()

    def test_handles_unknown_keys_gracefully(self, tmp_path):
        config_path = tmp_path / "config.json"
        config_path.write_text(json.dumps({"execution": {"threads": 4}}))

        with patch.object(config, 'get_config_path', return_value=config_path):
            assert config.load_config() == config.ModelViewConfig()


class TestSaveConfig:
    """Test configuration saving behavior."""

    def test_creates_parent_directories(self, tmp_path):
        config_path = tmp_path / "deep" / "nested" / "config.json"

        with patch.object(config, 'get_config_path', return_value=config_path):
            assert config.save_config(config.ModelViewConfig()) == config_path

        with open(config_path) as f:
            data = json.load(f)
        assert "execution" in data

    def test_saves_yaml_for_yaml_path(self, tmp_path):
        config_path = tmp_path / "config.yml"

        with patch.object(config, 'get_config_path', return_value=config_path):
            config.save_config(config.ModelViewConfig())

        data = yaml.safe_load(config_path.read_text())
        assert data["cli"]["color"] is True


class TestUpdateConfig:
    """Test configuration update behavior."""

    def test_updates_specific_fields(self, tmp_path):
        config_path = tmp_path / "config.json"
        initial = config.ModelViewConfig()
        initial.execution.max_workers = 8

        with patch.object(config, 'get_config_path', return_value=config_path):
            config.save_config(initial)
            config.update_config(partition_size=25, cli_modules=["views"])

            result = config.load_config()
            assert result.execution.partition_size == 25
            assert result.execution.max_workers == 8
            assert result.cli.modules == ["views"]
