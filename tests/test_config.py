"""
Test suite for the configuration service
"""

import pytest

from conftest import write_config
from xyscan.core.config import (
    DEFAULT_API_URL,
    DEFAULT_MAX_CONCURRENT,
    DEFAULT_TIMEOUT_SECONDS,
    REPORT_SUFFIX,
    ConfigurationService,
)
from xyscan.core.model import ProxySettings


class TestConfigurationService:
    """YAML-backed settings."""

    def test_reads_values(self, config, tmp_path):
        assert config.get_url() == "https://api.example.test"
        assert config.get_token() == "tok-123"
        assert config.install_base_dir == tmp_path / "home"
        assert config.timeout_seconds == 30.0
        assert config.report_suffix == REPORT_SUFFIX

    def test_defaults_when_file_missing(self, tmp_path):
        config = ConfigurationService(str(tmp_path / "absent.yml"), use_environment=False)
        assert config.get_url() == DEFAULT_API_URL
        assert config.get_token() == ""
        assert config.timeout_seconds == DEFAULT_TIMEOUT_SECONDS
        assert config.max_concurrent == DEFAULT_MAX_CONCURRENT
        assert not config.get_proxy_settings().enabled

    def test_malformed_file_yields_defaults(self, tmp_path):
        path = tmp_path / "config.yml"
        path.write_text("- just\n- a list\n", encoding="utf-8")
        config = ConfigurationService(str(path), use_environment=False)
        assert config.get_url() == DEFAULT_API_URL

    def test_invalid_yaml_yields_defaults(self, tmp_path):
        path = tmp_path / "config.yml"
        path.write_text("api: [unclosed\n", encoding="utf-8")
        config = ConfigurationService(str(path), use_environment=False)
        assert config.get_token() == ""

    def test_environment_overrides_file(self, config_path, monkeypatch):
        monkeypatch.setenv("XYGENI_URL", "https://env.example.test")
        monkeypatch.setenv("XYGENI_TOKEN", "env-token")
        config = ConfigurationService(str(config_path))
        assert config.get_url() == "https://env.example.test"
        assert config.get_token() == "env-token"

    def test_save_persists_and_is_visible_immediately(self, config, config_path):
        config.save_url("https://new.example.test")
        config.save_token("new-token")
        assert config.get_url() == "https://new.example.test"

        reloaded = ConfigurationService(str(config_path), use_environment=False)
        assert reloaded.get_url() == "https://new.example.test"
        assert reloaded.get_token() == "new-token"
        assert reloaded.timeout_seconds == 30.0

    def test_proxy_round_trip(self, config, config_path):
        settings = ProxySettings(
            protocol="https", host="proxy.local", port=3128, authentication="basic",
            username="alice", password="secret", non_proxy_hosts="localhost",
        )
        config.save_proxy_settings(settings)
        loaded = ConfigurationService(str(config_path), use_environment=False).get_proxy_settings()
        assert loaded == settings
        assert loaded.enabled

    def test_invalid_proxy_port(self, tmp_path):
        path = write_config(tmp_path / "config.yml", {"proxy": {"host": "p", "port": "abc"}})
        settings = ConfigurationService(str(path), use_environment=False).get_proxy_settings()
        assert settings.port is None
        assert settings.host == "p"

    @pytest.mark.parametrize("value,expected", [(0, 1), ("2", 2), ("many", DEFAULT_MAX_CONCURRENT)])
    def test_max_concurrent(self, tmp_path, value, expected):
        path = write_config(tmp_path / "config.yml", {"scanner": {"max_concurrent": value}})
        assert ConfigurationService(str(path), use_environment=False).max_concurrent == expected


class TestProjectPaths:
    """Root directory and metadata folders."""

    def test_project_name(self, config, tmp_path):
        assert config.get_project_name() == "unknown"
        config.set_root_directory(str(tmp_path / "my-app"))
        assert config.get_project_name() == "my-app"

    def test_metadata_folder_created_and_cached(self, config, tmp_path):
        folder = config.metadata_folder("my-app")
        assert folder == tmp_path / "metadata" / "my-app"
        assert folder.is_dir()
        assert config.metadata_folder("my-app") is folder

    def test_metadata_folder_defaults_to_root_name(self, config, tmp_path):
        config.set_root_directory(str(tmp_path / "service"))
        assert config.metadata_folder().name == "service"

    def test_clear_cache(self, config, tmp_path):
        config.set_root_directory(str(tmp_path / "service"))
        config.metadata_folder()
        config.clear_cache()
        assert config.root_directory is None
        assert config.get_project_name() == "unknown"
