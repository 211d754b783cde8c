"""
Configuration module for patent-browser.

Example usage:
    from patent_browser.config import load_config, save_config

    config = load_config()
    config = config.model_copy(update={"browser_path": "/usr/bin/chromium"})
    save_config(config)

Environment variables:
    PATENT_BROWSER_BROWSER_PATH=/usr/bin/chromium
    PATENT_BROWSER_HEADLESS=false
    CHROME_BIN=/usr/bin/chromium   (read by the launcher)
"""

from .defaults import (
    BASE_URL,
    DEFAULT_CHROMIUM_ARGS,
    DEFAULT_HEADLESS,
    DEFAULT_LIMIT,
    DEFAULT_LOAD_TIMEOUT,
    DEFAULT_POLL_INTERVAL,
    ENV_PREFIX,
    PAGE_SIZE,
)
from .env import get_env, get_env_bool, get_env_key, load_env_overrides
from .loader import default_config_path, load_config, load_file, save_config
from .options import AppConfig

__all__ = [
    # Defaults
    "BASE_URL",
    "DEFAULT_CHROMIUM_ARGS",
    "DEFAULT_HEADLESS",
    "DEFAULT_LIMIT",
    "DEFAULT_LOAD_TIMEOUT",
    "DEFAULT_POLL_INTERVAL",
    "ENV_PREFIX",
    "PAGE_SIZE",
    # Env
    "get_env",
    "get_env_bool",
    "get_env_key",
    "load_env_overrides",
    # Loader
    "default_config_path",
    "load_config",
    "load_file",
    "save_config",
    # Options
    "AppConfig",
]
