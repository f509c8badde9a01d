"""Unit tests for utils/config_manager.py"""

import json
import os
import sys
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

_python_dir = Path(__file__).parent.parent / "python"
if str(_python_dir.absolute()) not in sys.path:
    sys.path.insert(0, str(_python_dir.absolute()))

from utils.config_manager import ConfigManager, ConfigValidationError, LegacyConfig, load_legacy_config
from utils.error_utils import ActionableError, ErrorCategory, LegacyConfigError


# Patch the global config_manager creation to avoid validation during import
@pytest.fixture(autouse=True)
def patch_config_manager_import():
    """Patch the config_manager module to avoid auto-validation on import"""
    with patch.dict(os.environ, {"SKIP_CONFIG_VALIDATION": "true"}):
        yield


@pytest.fixture
def clean_env(monkeypatch):
    for name in ("GATEWAY_ADMIN_ADDR", "LEGACY_CONFIG_FILE", "OUTPUT_DIR"):
        monkeypatch.delenv(name, raising=False)


def write_yaml(config):
    with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
        yaml.dump(config, f)
        return f.name


class TestConfigManagerInitialization:
    """Tests for ConfigManager initialization"""

    def test_loads_default_config_when_file_not_found(self, clean_env):
        """Test that defaults are used when config file doesn't exist"""
        cm = ConfigManager(config_file="/nonexistent/config.yaml", validate=False)

        assert cm.get_admin_api_addr() == "127.0.0.1:9092"
        assert cm.get_admin_api_timeout() == 10
        assert cm.get_etcd_timeout() == 30
        assert cm.get_consul_timeout() == 30
        assert cm.get_etcd_api_prefix() == "/v3"
        assert cm.get_legacy_config_file() is None
        assert cm.get_migration_report_path() == os.path.join("reports", "gateway-migration-report.json")

    def test_merges_user_config_with_defaults(self, clean_env):
        """Test that a partial YAML file keeps the remaining defaults"""
        temp_path = write_yaml({"admin_api": {"addr": "gw-admin:9092"}, "legacy": {"etcd_api_prefix": "v3beta/"}})

        try:
            cm = ConfigManager(config_file=temp_path, validate=False)
            assert cm.get_admin_api_addr() == "gw-admin:9092"
            assert cm.get_admin_api_timeout() == 10
            assert cm.get_etcd_api_prefix() == "/v3beta"
            assert cm.get_etcd_timeout() == 30
        finally:
            os.unlink(temp_path)

    def test_config_file_from_environment(self, clean_env, monkeypatch):
        """Test that CONFIG_FILE selects the YAML file"""
        temp_path = write_yaml({"legacy": {"config_file": "/etc/gateway/proxy.json"}})
        monkeypatch.setenv("CONFIG_FILE", temp_path)

        try:
            cm = ConfigManager(validate=False)
            assert cm.config_file == temp_path
            assert cm.get_legacy_config_file() == "/etc/gateway/proxy.json"
        finally:
            os.unlink(temp_path)

    def test_invalid_yaml_falls_back_to_defaults(self, clean_env):
        """Test that an unparsable YAML file is ignored"""
        with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
            f.write("admin_api: [unclosed")
            temp_path = f.name

        try:
            cm = ConfigManager(config_file=temp_path, validate=False)
            assert cm.get_admin_api_addr() == "127.0.0.1:9092"
        finally:
            os.unlink(temp_path)


class TestEnvironmentOverrides:
    """Tests for environment variable overrides"""

    def test_admin_addr_override(self, clean_env, monkeypatch):
        monkeypatch.setenv("GATEWAY_ADMIN_ADDR", "10.0.0.5:9092")
        cm = ConfigManager(config_file="/nonexistent/config.yaml", validate=False)
        assert cm.get_admin_api_addr() == "10.0.0.5:9092"

    def test_legacy_config_file_override(self, clean_env, monkeypatch):
        monkeypatch.setenv("LEGACY_CONFIG_FILE", "/tmp/proxy.json")
        cm = ConfigManager(config_file="/nonexistent/config.yaml", validate=False)
        assert cm.get_legacy_config_file() == "/tmp/proxy.json"

    def test_output_dir_override(self, clean_env, monkeypatch):
        """Test that OUTPUT_DIR moves relative report paths"""
        monkeypatch.setenv("OUTPUT_DIR", "/var/reports")
        cm = ConfigManager(config_file="/nonexistent/config.yaml", validate=False)
        assert cm.get_migration_report_path() == os.path.join("/var/reports", "gateway-migration-report.json")

    def test_absolute_report_path_kept(self, clean_env):
        cm = ConfigManager(config_file="/nonexistent/config.yaml", validate=False)
        cm.config["output"]["migration_report"] = "/abs/report.json"
        assert cm.get_migration_report_path() == "/abs/report.json"


class TestValidation:
    """Tests for validate_config"""

    def test_defaults_are_valid(self, clean_env):
        ConfigManager(config_file="/nonexistent/config.yaml", validate=True)

    @pytest.mark.parametrize(
        "section,key,value",
        [
            ("admin_api", "timeout", 0),
            ("admin_api", "timeout", "soon"),
            ("legacy", "etcd_timeout", -5),
            ("legacy", "consul_timeout", True),
            ("admin_api", "addr", ""),
            ("output", "output_dir", ""),
        ],
    )
    def test_invalid_values_raise(self, clean_env, section, key, value):
        """Test that invalid values fail validation"""
        temp_path = write_yaml({section: {key: value}})

        try:
            with pytest.raises(ConfigValidationError):
                ConfigManager(config_file=temp_path, validate=True)
        finally:
            os.unlink(temp_path)

    def test_high_timeout_only_warns(self, clean_env, caplog):
        """Test that a very long timeout is accepted with a warning"""
        temp_path = write_yaml({"legacy": {"etcd_timeout": 3600}})

        try:
            ConfigManager(config_file=temp_path, validate=True)
            assert any("very high" in r.getMessage() for r in caplog.records)
        finally:
            os.unlink(temp_path)

    @pytest.mark.parametrize(
        "addr,valid",
        [
            ("127.0.0.1:9092", True),
            ("gw-admin", True),
            ("http://gw-admin:9092", True),
            ("bad addr:9092", False),
            ("gw-admin:", False),
        ],
    )
    def test_host_port_format(self, addr, valid):
        assert ConfigManager._is_valid_host_port(addr) is valid

    def test_print_config(self, clean_env, capsys):
        cm = ConfigManager(config_file="/nonexistent/config.yaml", validate=False)
        cm.print_config()
        out = capsys.readouterr().out
        assert "Admin API Address: 127.0.0.1:9092" in out
        assert "Legacy Config File: Not set" in out


class TestLoadLegacyConfig:
    """Tests for load_legacy_config"""

    def write_json(self, tmp_path, content):
        path = tmp_path / "proxy.json"
        path.write_text(content if isinstance(content, str) else json.dumps(content))
        return str(path)

    def test_reads_registry_and_prefix(self, tmp_path):
        path = self.write_json(tmp_path, {"registryAddr": "etcd://h1:2379,h2:2379", "prefix": "/gateway", "addr": ":80"})
        assert load_legacy_config(path) == LegacyConfig(registry_addr="etcd://h1:2379,h2:2379", prefix="/gateway")

    def test_keys_match_case_insensitively(self, tmp_path):
        path = self.write_json(tmp_path, {"RegistryAddr": "consul://c:8500", "Prefix": "gw"})
        assert load_legacy_config(path).registry_addr == "consul://c:8500"

    def test_missing_prefix_is_empty(self, tmp_path):
        path = self.write_json(tmp_path, {"registryAddr": "consul://c:8500"})
        assert load_legacy_config(path).prefix == ""

    def test_missing_file(self, tmp_path):
        with pytest.raises(LegacyConfigError, match="read config file"):
            load_legacy_config(str(tmp_path / "absent.json"))

    @pytest.mark.parametrize("content", ["{not json", "[1, 2]", '{"registryAddr": 5}'])
    def test_malformed_file(self, tmp_path, content):
        with pytest.raises(LegacyConfigError):
            load_legacy_config(self.write_json(tmp_path, content))

    def test_missing_registry_addr(self, tmp_path):
        """Test that an absent registry address is an actionable configuration error"""
        with pytest.raises(ActionableError) as exc_info:
            load_legacy_config(self.write_json(tmp_path, {"prefix": "/gateway"}))
        assert exc_info.value.category == ErrorCategory.CONFIGURATION
        assert exc_info.value.details["field"] == "registryAddr"
