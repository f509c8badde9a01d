"""
Error types and actionable error messages for the gateway migration.

Every unrecoverable condition of a migration run is raised as a subclass of
MigrationError and propagates to the driver, which logs it and exits non-zero.
The create_* helpers wrap low-level failures in an ActionableError carrying
suggested fixes for the operator.
"""

from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCategory(Enum):
    """Categories of errors for better error handling"""
    CONNECTION = "connection"
    CONFIGURATION = "configuration"
    DECODE = "decode"
    COMMIT = "commit"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


class MigrationError(Exception):
    """Base class for every fatal migration failure"""


class LegacyConfigError(MigrationError):
    """Raised when the legacy configuration file cannot be read or parsed"""


class UnsupportedRegistryError(MigrationError):
    """Raised when the legacy registry address uses an unknown scheme"""


class RegistryReadError(MigrationError):
    """Raised when listing keys from the legacy registry fails"""


class LegacyDecodeError(MigrationError):
    """Raised when a legacy registry value cannot be decoded into an entity"""

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"cannot decode legacy entry <{key}>: {reason}")


class CommitError(MigrationError):
    """Raised when the admin API rejects or fails to store an entity"""


class ActionableError(MigrationError):
    """Exception with actionable guidance for users"""

    def __init__(self, message: str, category: ErrorCategory = ErrorCategory.UNKNOWN,
                 suggestions: Optional[List[str]] = None, details: Optional[Dict[str, Any]] = None):
        """Initialize actionable error

        Args:
            message: Primary error message
            category: Error category for classification
            suggestions: List of suggested fixes
            details: Additional context information
        """
        self.message = message
        self.category = category
        self.suggestions = suggestions or []
        self.details = details or {}
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format the complete error message with suggestions"""
        lines = [self.message]

        if self.suggestions:
            lines.append("\nSuggested fixes:")
            for i, suggestion in enumerate(self.suggestions, 1):
                lines.append(f"   {i}. {suggestion}")

        if self.details:
            lines.append("\nAdditional details:")
            for key, value in self.details.items():
                lines.append(f"   {key}: {value}")

        return "\n".join(lines)


def create_registry_connection_error(registry_addr: str, error: Exception) -> ActionableError:
    """Create actionable error for legacy registry listing failures"""
    error_str = str(error).lower()

    suggestions = [
        f"Verify the legacy registry address is correct: {registry_addr}",
        "Check network connectivity to the registry",
        "Check that the consul agent or etcd member is running",
        "Verify the key prefix in the legacy configuration file",
    ]

    category = ErrorCategory.CONNECTION
    if "timeout" in error_str or "timed out" in error_str:
        category = ErrorCategory.TIMEOUT
        suggestions.insert(1, "Increase legacy.etcd_timeout / legacy.consul_timeout in config.yaml")

    if "name resolution" in error_str or "dns" in error_str:
        suggestions.insert(1, "Verify DNS resolution for the registry hostname")

    return ActionableError(
        message=f"Failed to read legacy entities from registry at {registry_addr}",
        category=category,
        suggestions=suggestions,
        details={
            "registry_addr": registry_addr,
            "error_type": type(error).__name__,
            "error_message": str(error)
        }
    )


def create_admin_api_error(addr: str, entity: Any, error: Exception) -> ActionableError:
    """Create actionable error for a failed commit against the admin API"""
    error_str = str(error).lower()

    suggestions = [
        f"Verify the new gateway API server is reachable at {addr}",
        "Check the API server logs for the rejected entity",
        "Entities committed before this failure are NOT rolled back; clean them up before re-running",
    ]

    if "refused" in error_str or "connection" in error_str:
        suggestions.insert(0, "Check that the API server process is running and listening")

    return ActionableError(
        message=f"Failed to commit {entity!r} to admin API at {addr}",
        category=ErrorCategory.COMMIT,
        suggestions=suggestions,
        details={
            "addr": addr,
            "error_type": type(error).__name__,
            "error_message": str(error)
        }
    )


def create_legacy_decode_error(registry_addr: str, error: LegacyDecodeError) -> ActionableError:
    """Create actionable error for a legacy entry that cannot be decoded"""
    return ActionableError(
        message=f"Failed to decode legacy entry <{error.key}> from registry at {registry_addr}",
        category=ErrorCategory.DECODE,
        suggestions=[
            f"Inspect the value stored under {error.key}",
            "Fix or remove the malformed entry in the legacy registry, then re-run",
            "Entities committed by earlier phases are NOT rolled back; clean them up before re-running",
        ],
        details={
            "registry_addr": registry_addr,
            "key": error.key,
            "reason": error.reason
        }
    )


def create_config_error(field: str, value: Any, reason: str) -> ActionableError:
    """Create actionable error for configuration validation failures"""
    suggestions = [
        f"Check the '{field}' value in config.yaml or the legacy configuration file",
        "Verify the value matches the expected format",
        "Check config-example.yaml for correct format",
    ]

    if "addr" in field.lower():
        suggestions.insert(1, "Registry address must look like consul://host:port or etcd://host1:port,host2:port")
    elif "timeout" in field.lower():
        suggestions.insert(1, "Time values must be positive numbers")

    return ActionableError(
        message=f"Configuration error: Invalid value for '{field}'",
        category=ErrorCategory.CONFIGURATION,
        suggestions=suggestions,
        details={
            "field": field,
            "value": value,
            "reason": reason
        }
    )
