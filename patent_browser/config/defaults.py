"""
Default configuration values for patent-browser.

This module contains all default values used by the launcher, the page
controller and the search orchestrator.
"""

# Browser launch
DEFAULT_HEADLESS = True
CHROME_BIN_ENV = "CHROME_BIN"
DEFAULT_CHROMIUM_ARGS: list[str] = [
    "--disable-blink-features=AutomationControlled",
]

# Port discovery: the browser prints "DevTools listening on ws://..." to stderr
DEVTOOLS_LISTENING_MARKER = "DevTools listening on"
STDERR_LOG_FILENAME = "chrome_stderr.log"
PORT_DISCOVERY_ATTEMPTS = 100
PORT_DISCOVERY_INTERVAL = 0.1

# HTTP discovery endpoint (/json/version)
ENDPOINT_RETRIES = 10
ENDPOINT_RETRY_DELAY = 0.5
ENDPOINT_REQUEST_TIMEOUT = 5.0

# Shutdown
PROCESS_EXIT_TIMEOUT = 5.0

# WebSocket
WS_MAX_MESSAGE_SIZE = 100 * 1024 * 1024

# Page polling
DEFAULT_POLL_INTERVAL = 0.5
DEFAULT_LOAD_TIMEOUT = 15.0

# Search
BASE_URL = "https://patents.google.com"
PAGE_SIZE = 10
DEFAULT_LIMIT = 10
UNKNOWN_TOTAL = "Unknown"
UNKNOWN_PATENT_ID = "Unknown"

# Selectors the orchestrator waits on
PATENT_LOADED_SELECTOR = "meta[name='description']"
PATENT_CONTENT_SELECTOR = (
    "div.description-paragraph[num], div.description-line[num], "
    "div.claim[num], img[src*='patentimages']"
)
LISTING_ITEM_SELECTOR = "search-result-item"

# File config
DEFAULT_CONFIG_DIR = "~/.config/patent-browser"
DEFAULT_CONFIG_FILENAME = "config.toml"

# Environment variable prefix
ENV_PREFIX = "PATENT_BROWSER_"
