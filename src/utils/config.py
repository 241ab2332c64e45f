"""Configuration utility for the tenant provisioner.

This module provides centralized configuration management with:
- Environment variables as the only source
- Type-safe access to configuration values
"""

import json
import os
from typing import Any

from src.provisioner.identifiers import DEFAULT_PREFIX
from src.provisioner.passwords import DEFAULT_PASSWORD_BYTES

DEFAULT_APPLICATION_NAME = "pg-tenant-provisioner"
DEFAULT_COMMAND_TIMEOUT = 60.0


def parse_config_value(value: str) -> str | bool | int | float:
    if value.lower() == "true":
        return True
    elif value.lower() == "false":
        return False
    else:
        # Try to parse as a number
        try:
            return int(value)
        except ValueError:
            try:
                return float(value)
            except ValueError:
                # Return as string
                return value


def get_config_value(key: str, default: Any = None) -> Any:
    """Get a configuration value from environment variables.

    Args:
        key: Configuration key name (e.g., "PG_SOURCE")
        default: Default value if key not found

    Returns:
        Configuration value or default
    """
    env_value = os.environ.get(key)
    if env_value is not None:
        return parse_config_value(env_value)

    return default


def get_config_value_str(key: str) -> str | None:
    """
    Get a configuration value from environment variables. But sometimes you just want a string.
    """
    return os.environ.get(key)


def require_config_value(key: str) -> str:
    value = os.environ.get(key)
    if value is None:
        raise ValueError(f"Environment variable {key} is required")
    return value


def get_source_url() -> str:
    """Get the admin PostgreSQL source URL.

    Kept as a raw string: the URL is validated by the connection layer, and
    parse_config_value() must not coerce it.

    Raises:
        ValueError: If PG_SOURCE is not configured
    """
    return require_config_value("PG_SOURCE")


def get_name_prefix() -> str:
    """Namespace prefix for tenant database and role names.

    Raises:
        ValueError: If PG_NAME_PREFIX is set but empty
    """
    value = get_config_value_str("PG_NAME_PREFIX")
    if value is None:
        return DEFAULT_PREFIX
    if not value:
        raise ValueError("PG_NAME_PREFIX must not be empty")
    return value


def get_password_bytes() -> int:
    """Random bytes per generated password.

    Raises:
        ValueError: If PG_PASSWORD_BYTES is not an integer
    """
    value = get_config_value("PG_PASSWORD_BYTES", DEFAULT_PASSWORD_BYTES)
    # bool is an int subclass, and parse_config_value turns "true" into True
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"PG_PASSWORD_BYTES must be an integer, got {value!r}")
    return value


def get_command_timeout() -> float:
    return float(get_config_value("PG_COMMAND_TIMEOUT", DEFAULT_COMMAND_TIMEOUT))


def get_provisioner_environment() -> str:
    """Get provisioner environment from env var."""
    return get_config_value("PROVISIONER_ENVIRONMENT", "local")


def get_application_name() -> str:
    """Determine the application name from Cloud Foundry's VCAP_APPLICATION.

    Falls back to DEFAULT_APPLICATION_NAME when the variable is unset or carries
    no application_name.

    Raises:
        ValueError: If VCAP_APPLICATION is set but is not a JSON object
    """
    vcap = get_config_value_str("VCAP_APPLICATION")
    if not vcap:
        return DEFAULT_APPLICATION_NAME

    try:
        env = json.loads(vcap)
    except json.JSONDecodeError as e:
        raise ValueError(f"VCAP_APPLICATION is not valid JSON: {e}") from e
    if not isinstance(env, dict):
        raise ValueError("VCAP_APPLICATION must be a JSON object")

    return env.get("application_name") or DEFAULT_APPLICATION_NAME
