"""
Page-level automation over a dedicated CDP connection.

Each CDPPage owns its own WebSocket to one tab's DevTools endpoint and only
speaks the Page and Runtime domains.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any

from patent_browser.cdp.connection import CDPConnection
from patent_browser.cdp.launcher import BrowserProcess
from patent_browser.config.defaults import DEFAULT_LOAD_TIMEOUT, DEFAULT_POLL_INTERVAL
from patent_browser.exceptions import CDPError, ScriptError

logger = logging.getLogger(__name__)


class CDPPage:
    """High-level page automation using a CDP connection.

    Example:
        page = await CDPPage.open(page_ws_url)
        await page.goto("https://patents.google.com/patent/US9152718B2")
        if await page.wait_for_element("meta[name='description']", 15):
            title = await page.evaluate("document.title")
        await page.close()
    """

    def __init__(
        self,
        connection: CDPConnection,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        """Initialize page.

        Args:
            connection: Connected CDP connection owned by this page.
            poll_interval: Seconds between element checks in wait_for_element.
        """
        self._connection = connection
        self._poll_interval = poll_interval

    @property
    def connection(self) -> CDPConnection:
        """Get the underlying CDP connection."""
        return self._connection

    @classmethod
    async def open(
        cls,
        page_ws_url: str,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> "CDPPage":
        """Connect to a page's WebSocket URL and enable the domains we need."""
        connection = await CDPConnection.open(page_ws_url)
        page = cls(connection, poll_interval=poll_interval)
        try:
            await page.enable()
        except BaseException:
            await connection.disconnect()
            raise
        logger.debug(f"Opened page {page_ws_url}")
        return page

    async def enable(self) -> None:
        """Enable Page and Runtime domains."""
        await self._connection.send("Page.enable")
        await self._connection.send("Runtime.enable")

    async def goto(self, url: str) -> dict[str, Any]:
        """Start navigating to *url*.

        Does not wait for the load to finish; poll with wait_for_element.
        """
        logger.debug(f"Navigating to {url}")
        result = await self._connection.send("Page.navigate", {"url": url})
        if isinstance(result, dict) and result.get("errorText"):
            logger.warning(f"Navigation to {url} reported {result['errorText']}")
        return result

    async def wait_for_element(
        self,
        selector: str,
        timeout: float = DEFAULT_LOAD_TIMEOUT,
    ) -> bool:
        """Poll until *selector* matches an element or *timeout* seconds pass.

        Returns:
            True as soon as the element exists, False if it never showed up.
            Absence is not an error.
        """
        expression = f"!!document.querySelector({json.dumps(selector)})"
        start = time.monotonic()

        while time.monotonic() - start < timeout:
            try:
                if await self.evaluate(expression):
                    return True
            except (CDPError, ScriptError) as e:
                # Execution context is torn down while a navigation commits
                logger.debug(f"Element check for {selector!r} failed: {e}")
            await asyncio.sleep(self._poll_interval)

        logger.debug(f"Timed out after {timeout}s waiting for {selector!r}")
        return False

    async def evaluate(self, expression: str) -> Any:
        """Evaluate JavaScript by value, awaiting any returned promise.

        Returns:
            The unwrapped result value.

        Raises:
            ScriptError: If the script threw.
        """
        result = await self._connection.send(
            "Runtime.evaluate",
            {
                "expression": expression,
                "returnByValue": True,
                "awaitPromise": True,
            },
        )

        if "exceptionDetails" in result:
            raise ScriptError(result["exceptionDetails"])

        return result.get("result", {}).get("value")

    async def get_html(self) -> str:
        """Get the full document markup."""
        html = await self.evaluate("document.documentElement.outerHTML")
        if not isinstance(html, str):
            raise ScriptError({"text": "Failed to get HTML"})
        return html

    async def close(self) -> None:
        """Close the page's connection."""
        await self._connection.disconnect()

    async def __aenter__(self) -> "CDPPage":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()


async def open_page(browser: BrowserProcess) -> CDPPage:
    """Create a new tab in *browser* and open a CDPPage on it.

    The tab is closed again if the page connection cannot be set up.
    """
    page_ws_url = await browser.new_page()
    try:
        return await CDPPage.open(page_ws_url)
    except BaseException:
        await browser.close_page(page_ws_url)
        raise
