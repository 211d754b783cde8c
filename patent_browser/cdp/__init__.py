"""
Chrome DevTools Protocol (CDP) module for patent-browser.

- BrowserProcess: launches Chrome on an OS-assigned port and owns its lifetime
- CDPConnection: one WebSocket, many concurrent request/response pairs
- CDPPage: navigation, element polling and script evaluation for one tab

Example usage:
    ```python
    from patent_browser.cdp import BrowserLaunchOptions, BrowserProcess, CDPPage

    async with BrowserProcess(BrowserLaunchOptions(headless=True)) as browser:
        page = await CDPPage.open(await browser.new_page())
        async with page:
            await page.goto("https://example.com")
            if await page.wait_for_element("h1", timeout=10):
                print(await page.evaluate("document.title"))
    ```
"""

from patent_browser.cdp.connection import (
    CDPConnection,
    ConnectionState,
)
from patent_browser.cdp.launcher import (
    BrowserLaunchOptions,
    BrowserProcess,
    find_browser_executable,
    launch_browser,
    parse_devtools_port,
    resolve_executable,
)
from patent_browser.cdp.page import (
    CDPPage,
    open_page,
)

__all__ = [
    # Connection
    "CDPConnection",
    "ConnectionState",
    # Launcher
    "BrowserLaunchOptions",
    "BrowserProcess",
    "find_browser_executable",
    "launch_browser",
    "parse_devtools_port",
    "resolve_executable",
    # Page
    "CDPPage",
    "open_page",
]
