#!/usr/bin/env python3
"""
Configuration Manager for the gateway config migrator

This module handles loading the tool configuration from config.yaml and
environment variables, and reading the legacy gateway's JSON configuration
file that names the registry address and key prefix.
"""

import json
import logging
import os
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional

import yaml

from utils.error_utils import LegacyConfigError, create_config_error


class ConfigValidationError(Exception):
    """Raised when configuration validation fails"""


@dataclass(frozen=True)
class LegacyConfig:
    """The subset of the legacy proxy configuration used by the migration"""

    registry_addr: str  # e.g. consul://127.0.0.1:8500 or etcd://h1:2379,h2:2379
    prefix: str


def load_legacy_config(path: str) -> LegacyConfig:
    """Read the legacy gateway configuration file.

    Args:
        path: Path to the legacy JSON configuration file

    Returns:
        LegacyConfig with the registry address and key prefix

    Raises:
        LegacyConfigError: If the file cannot be read, is not valid JSON,
            or does not hold a JSON object with string fields
    """
    try:
        with open(path, "r") as f:
            data = json.load(f)
    except OSError as e:
        raise LegacyConfigError(f"bootstrap: read config file <{path}> failed: {e}") from e
    except ValueError as e:
        raise LegacyConfigError(f"bootstrap: parse config file <{path}> failed: {e}") from e

    if not isinstance(data, dict):
        raise LegacyConfigError(f"bootstrap: config file <{path}> must hold a JSON object")

    # Key matching follows the legacy proxy, which decoded field names case-insensitively
    fields = {str(k).lower(): v for k, v in data.items()}
    registry_addr = fields.get("registryaddr") or ""
    prefix = fields.get("prefix") or ""
    if not isinstance(registry_addr, str) or not isinstance(prefix, str):
        raise LegacyConfigError(f"bootstrap: registryAddr and prefix in <{path}> must be strings")

    if not registry_addr:
        raise create_config_error("registryAddr", registry_addr, f"missing from {path}")

    return LegacyConfig(registry_addr=registry_addr, prefix=prefix)


class ConfigManager:
    """Manages configuration for the gateway config migrator"""

    def __init__(self, config_file: str = None, validate: bool = True):
        """Initialize ConfigManager

        Args:
            config_file: Path to configuration YAML file (defaults to config.yaml or CONFIG_FILE env var)
            validate: If True, validate configuration on initialization
        """
        if config_file is None:
            config_file = os.environ.get("CONFIG_FILE", "config.yaml")
        self.config_file = config_file
        self.config = self._load_config()

        if validate:
            self.validate_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file with defaults"""
        default_config = {
            "admin_api": {"addr": "127.0.0.1:9092", "timeout": 10},
            "legacy": {
                "config_file": "",
                "consul_timeout": 30,
                "etcd_timeout": 30,  # Bounded wait for a single etcd range listing
                "etcd_api_prefix": "/v3",
            },
            "output": {"output_dir": "reports", "migration_report": "gateway-migration-report.json"},
        }

        try:
            if os.path.exists(self.config_file):
                with open(self.config_file, "r") as f:
                    user_config = yaml.safe_load(f) or {}
                return self._merge_config(default_config, user_config)
            else:
                logging.debug(f"Config file {self.config_file} not found, using defaults")
                return default_config
        except (OSError, yaml.YAMLError) as e:
            logging.error(f"Error loading config file: {e}")
            return default_config

    def _merge_config(self, default: Dict[str, Any], user: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively merge user config with defaults"""
        result = default.copy()
        for key, value in user.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_config(result[key], value)
            else:
                result[key] = value
        return result

    # Admin API configuration
    def get_admin_api_addr(self) -> str:
        """Get the new gateway's admin API address from environment or config"""
        return os.environ.get("GATEWAY_ADMIN_ADDR") or self.config["admin_api"]["addr"]

    def get_admin_api_timeout(self) -> float:
        """Get admin API request timeout in seconds, with type coercion"""
        return self._get_number("admin_api", "timeout")

    # Legacy registry configuration
    def get_legacy_config_file(self) -> Optional[str]:
        """Get path of the legacy gateway configuration file, if configured"""
        return os.environ.get("LEGACY_CONFIG_FILE") or self.config["legacy"].get("config_file") or None

    def get_consul_timeout(self) -> float:
        return self._get_number("legacy", "consul_timeout")

    def get_etcd_timeout(self) -> float:
        return self._get_number("legacy", "etcd_timeout")

    def get_etcd_api_prefix(self) -> str:
        """Get the path prefix of the etcd v3 JSON gateway (/v3, /v3beta or /v3alpha)"""
        return "/" + str(self.config["legacy"]["etcd_api_prefix"]).strip("/")

    # Output configuration
    def get_output_dir(self) -> str:
        """Get output directory from environment or config"""
        return os.environ.get("OUTPUT_DIR") or self.config["output"]["output_dir"]

    def get_migration_report_path(self) -> str:
        """Get migration report path, resolved against the output directory"""
        path = self.config["output"]["migration_report"]
        if os.path.isabs(path):
            return path
        return os.path.join(self.get_output_dir(), path)

    def _get_number(self, section: str, key: str) -> float:
        value = self.config[section][key]
        if isinstance(value, bool):
            raise ConfigValidationError(f"{section}.{key} must be a number, got: {value}")
        try:
            return float(value)
        except (ValueError, TypeError):
            raise ConfigValidationError(
                f"{section}.{key} must be a number, got: {value} (type: {type(value).__name__})"
            )

    def validate_config(self) -> None:
        """Validate configuration values

        Raises:
            ConfigValidationError: If configuration is invalid
        """
        errors = []
        warnings = []

        addr = self.get_admin_api_addr()
        if not addr or not addr.strip():
            errors.append("Admin API address is required and cannot be empty")
        elif not self._is_valid_host_port(addr):
            warnings.append(f"Admin API address '{addr}' may be invalid (expected format: hostname:port)")

        for section, key in (
            ("admin_api", "timeout"),
            ("legacy", "consul_timeout"),
            ("legacy", "etcd_timeout"),
        ):
            try:
                value = self._get_number(section, key)
            except ConfigValidationError as e:
                errors.append(str(e))
                continue
            if value <= 0:
                errors.append(f"{section}.{key} must be a positive number (seconds), got: {value}")
            elif value > 600:
                warnings.append(f"{section}.{key} is very high ({value}s), a stuck call may take a long time")

        if not self.get_output_dir().strip():
            errors.append("output.output_dir is required and cannot be empty")

        for warning in warnings:
            logging.warning(f"Configuration warning: {warning}")

        if errors:
            error_msg = "Configuration validation failed:\n  " + "\n  ".join(errors)
            logging.error(error_msg)
            raise ConfigValidationError(error_msg)

    @staticmethod
    def _is_valid_host_port(addr: str) -> bool:
        """Validate hostname[:port] format"""
        addr = addr.replace("http://", "").replace("https://", "")
        pattern = r"^[a-zA-Z0-9]([a-zA-Z0-9\-\.]*[a-zA-Z0-9])?(:[0-9]{1,5})?$"
        return bool(re.match(pattern, addr))

    def print_config(self):
        """Print current configuration"""
        print("Current Configuration:")
        print(f"  Admin API Address: {self.get_admin_api_addr()}")
        print(f"  Admin API Timeout: {self.get_admin_api_timeout()}")
        print(f"  Legacy Config File: {self.get_legacy_config_file() or 'Not set'}")
        print(f"  Consul Timeout: {self.get_consul_timeout()}")
        print(f"  Etcd Timeout: {self.get_etcd_timeout()}")
        print(f"  Etcd API Prefix: {self.get_etcd_api_prefix()}")
        print(f"  Output Directory: {self.get_output_dir()}")


# Global config manager instance
# Validation can be disabled by setting SKIP_CONFIG_VALIDATION=true environment variable
config_manager = ConfigManager(
    validate=os.environ.get("SKIP_CONFIG_VALIDATION", "").lower() not in ("true", "1", "yes")
)
