"""
Configuration file loader for patent-browser.

The configuration lives in a single TOML file, by default
``~/.config/patent-browser/config.toml``. Environment variables override
whatever the file says.
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Union

import tomli_w
from pydantic import ValidationError

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from patent_browser.exceptions import ConfigurationError

from .defaults import DEFAULT_CONFIG_DIR, DEFAULT_CONFIG_FILENAME
from .env import load_env_overrides
from .options import AppConfig

logger = logging.getLogger(__name__)


def default_config_path() -> Path:
    """Return the path of the user's config file."""
    return Path(DEFAULT_CONFIG_DIR).expanduser() / DEFAULT_CONFIG_FILENAME


def load_file(path: Union[str, Path]) -> AppConfig:
    """Load configuration from a TOML file.

    Args:
        path: Path to the config file

    Returns:
        Parsed configuration

    Raises:
        ConfigurationError: If the file cannot be read or is invalid
    """
    path = Path(path)
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except OSError as e:
        raise ConfigurationError(f"Cannot read config file {path}: {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Failed to parse config {path}: {e}") from e

    try:
        return AppConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration in {path}: {e}") from e


def load_config(
    path: Optional[Union[str, Path]] = None,
    *,
    use_env: bool = True,
) -> AppConfig:
    """Load configuration with environment overrides.

    A missing file is not an error; defaults are used instead.

    Args:
        path: Config file path (default: ~/.config/patent-browser/config.toml)
        use_env: Apply PATENT_BROWSER_* environment overrides

    Returns:
        Loaded configuration
    """
    config_path = Path(path) if path is not None else default_config_path()

    if config_path.exists():
        logger.debug(f"Loading config from {config_path}")
        config = load_file(config_path)
    else:
        config = AppConfig()

    if use_env:
        overrides = load_env_overrides()
        if overrides:
            logger.debug(f"Applying environment overrides: {sorted(overrides)}")
            config = config.model_copy(update=overrides)

    return config


def save_config(config: AppConfig, path: Optional[Union[str, Path]] = None) -> Path:
    """Save configuration to a TOML file, creating its directory.

    Returns:
        The path written to
    """
    config_path = Path(path) if path is not None else default_config_path()
    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "wb") as f:
            tomli_w.dump(config.to_dict(), f)
    except OSError as e:
        raise ConfigurationError(f"Failed to write config file {config_path}: {e}") from e

    logger.debug(f"Saved config to {config_path}")
    return config_path
