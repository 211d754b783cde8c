"""
Environment variable support for patent-browser configuration.
"""

import os
from typing import Any, Optional

from .defaults import ENV_PREFIX


def get_env_key(key: str, prefix: str = ENV_PREFIX) -> str:
    """Convert a configuration key to environment variable name.

    Args:
        key: Configuration key (e.g., "browser_path")
        prefix: Environment variable prefix

    Returns:
        Environment variable name (e.g., "PATENT_BROWSER_BROWSER_PATH")
    """
    return f"{prefix}{key.upper().replace('.', '_').replace('-', '_')}"


def parse_bool(value: str) -> bool:
    """Parse string to boolean."""
    return value.strip().lower() in ("true", "1", "yes", "on", "enabled")


def get_env(key: str, default: Optional[str] = None, prefix: str = ENV_PREFIX) -> Optional[str]:
    """Get a raw configuration value from the environment.

    Empty strings count as unset.
    """
    value = os.environ.get(get_env_key(key, prefix))
    if not value:
        return default
    return value


def get_env_bool(key: str, default: bool = False, prefix: str = ENV_PREFIX) -> bool:
    """Get boolean value from environment variable."""
    value = get_env(key, prefix=prefix)
    if value is None:
        return default
    return parse_bool(value)


# Config field -> parser
ENV_MAPPINGS = {
    "browser_path": str,
    "headless": parse_bool,
}


def load_env_overrides(prefix: str = ENV_PREFIX) -> dict[str, Any]:
    """Collect config overrides from PATENT_BROWSER_* variables.

    Returns:
        Mapping of config field names to parsed values, only for variables
        that are set.
    """
    result: dict[str, Any] = {}
    for key, parser in ENV_MAPPINGS.items():
        value = get_env(key, prefix=prefix)
        if value is not None:
            result[key] = parser(value)
    return result
