"""
Patent search orchestration.

Turns SearchOptions into one or more page loads and aggregates what the
extraction scripts return into a SearchResult.

Example:
    async with await PatentSearcher.launch(headless=True) as searcher:
        result = await searcher.search(SearchOptions(query="machine learning", limit=25))
        print(result.to_json())
"""

from __future__ import annotations

import logging
import math
from typing import Any, Awaitable, Callable, Optional, TypeVar

from pydantic import BaseModel, ValidationError

from patent_browser.cdp.launcher import BrowserLaunchOptions, BrowserProcess
from patent_browser.cdp.page import CDPPage, open_page
from patent_browser.config.defaults import (
    BASE_URL,
    DEFAULT_CHROMIUM_ARGS,
    DEFAULT_LOAD_TIMEOUT,
    LISTING_ITEM_SELECTOR,
    PAGE_SIZE,
    PATENT_CONTENT_SELECTOR,
    PATENT_LOADED_SELECTOR,
    UNKNOWN_PATENT_ID,
    UNKNOWN_TOTAL,
)
from patent_browser.exceptions import ExtractionError, PageLoadTimeoutError
from patent_browser.models import (
    ListingPageData,
    Patent,
    PatentPageData,
    SearchOptions,
    SearchResult,
)
from patent_browser.scripts import LISTING_SCRIPT, PATENT_SCRIPT, load_script

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

PageOpener = Callable[[], Awaitable[CDPPage]]


def _parse(model: type[M], raw: Any, what: str) -> M:
    if not isinstance(raw, dict):
        raise ExtractionError(f"{what} extraction returned {type(raw).__name__}, expected an object")
    try:
        return model.model_validate(raw)
    except ValidationError as e:
        raise ExtractionError(f"{what} extraction returned unexpected data: {e}") from e


def parse_single_patent_result(raw: Any, patent_number: str, url: str) -> Patent:
    """Map the single-patent script output onto a Patent record."""
    return _parse(PatentPageData, raw, "Patent page").to_patent(patent_number, url)


def parse_listing_page(raw: Any) -> ListingPageData:
    """Validate one listing page's script output."""
    return _parse(ListingPageData, raw, "Search listing")


def pages_needed(limit: int, page_size: int = PAGE_SIZE) -> int:
    """Number of listing pages to visit for *limit* results."""
    return math.ceil(limit / page_size)


def page_url(base_url: str, page_index: int) -> str:
    """URL of listing page *page_index* (0 is the bare search URL)."""
    if page_index == 0:
        return base_url
    return f"{base_url}&page={page_index}"


class PatentSearcher:
    """Runs searches and patent lookups against Google Patents.

    Every call opens a fresh tab and closes its connection when done.
    """

    def __init__(
        self,
        browser: Optional[BrowserProcess] = None,
        *,
        page_opener: Optional[PageOpener] = None,
        load_timeout: float = DEFAULT_LOAD_TIMEOUT,
        page_size: int = PAGE_SIZE,
        deduplicate: bool = True,
    ) -> None:
        """Initialize searcher.

        Args:
            browser: Running browser to open pages in. Closed by close().
            page_opener: Coroutine factory returning a page; defaults to a new
                tab in *browser*.
            load_timeout: Seconds to wait for page markers.
            page_size: Results per listing page.
            deduplicate: Drop records whose id already appeared on an
                earlier listing page.
        """
        if page_opener is None:
            if browser is None:
                raise ValueError("Either browser or page_opener is required")
            page_opener = lambda: open_page(browser)  # noqa: E731

        self._browser = browser
        self._open_page = page_opener
        self._load_timeout = load_timeout
        self._page_size = page_size
        self._deduplicate = deduplicate

    @classmethod
    async def launch(
        cls,
        browser_path: Optional[str] = None,
        *,
        headless: bool = True,
        debug: bool = False,
        extra_args: Optional[list[str]] = None,
    ) -> "PatentSearcher":
        """Launch a browser and return a searcher that owns it."""
        options = BrowserLaunchOptions(
            headless=headless,
            executable_path=browser_path,
            args=list(DEFAULT_CHROMIUM_ARGS) + list(extra_args or []),
            debug=debug,
        )
        browser = BrowserProcess(options)
        await browser.launch()
        return cls(browser)

    async def search(self, options: SearchOptions) -> SearchResult:
        """Search for patents, or fetch one patent if options name it.

        Raises:
            InvalidSearchOptionsError: If options name nothing to fetch.
            PageLoadTimeoutError: If a patent page never finishes loading.
        """
        base_url = options.to_url()

        page = await self._open_page()
        try:
            if options.patent_number:
                return await self._fetch_patent(page, options.patent_number, base_url)
            return await self._fetch_listing(page, base_url, options.effective_limit)
        finally:
            await page.close()

    async def get_raw_html(self, patent_number: str) -> str:
        """Get the rendered markup of a patent page (for debugging selectors)."""
        url = f"{BASE_URL}/patent/{patent_number}"
        page = await self._open_page()
        try:
            await self._load_patent_page(page, url)
            return await page.get_html()
        finally:
            await page.close()

    async def _load_patent_page(self, page: CDPPage, url: str) -> None:
        await page.goto(url)

        if not await page.wait_for_element(PATENT_LOADED_SELECTOR, self._load_timeout):
            raise PageLoadTimeoutError(
                f"Page failed to load within {self._load_timeout}s: {url}"
            )

        # Paragraphs, claims and drawings render after the metadata
        if not await page.wait_for_element(PATENT_CONTENT_SELECTOR, self._load_timeout):
            logger.debug(f"No description, claims or images rendered on {url}")

    async def _fetch_patent(self, page: CDPPage, patent_number: str, url: str) -> SearchResult:
        await self._load_patent_page(page, url)

        raw = await page.evaluate(load_script(PATENT_SCRIPT))
        patent = parse_single_patent_result(raw, patent_number, url)
        return SearchResult(total_results="1", patents=[patent])

    async def _fetch_listing(self, page: CDPPage, base_url: str, limit: int) -> SearchResult:
        total_pages = pages_needed(limit, self._page_size)
        patents: list[Patent] = []
        seen: set[str] = set()
        first: Optional[ListingPageData] = None

        for page_index in range(total_pages):
            url = page_url(base_url, page_index)
            await page.goto(url)

            if not await page.wait_for_element(LISTING_ITEM_SELECTOR, self._load_timeout):
                logger.debug(f"No results on listing page {page_index}, stopping")
                break

            listing = parse_listing_page(await page.evaluate(load_script(LISTING_SCRIPT)))
            if page_index == 0:
                first = listing

            if not listing.patents:
                break

            added = self._accumulate(patents, seen, listing.patents)
            logger.debug(
                f"Listing page {page_index}: {len(listing.patents)} records, "
                f"{added} new, {len(patents)} total"
            )

            if len(patents) >= limit:
                break

        del patents[limit:]

        return SearchResult(
            total_results=first.total_results if first else UNKNOWN_TOTAL,
            patents=patents,
            top_assignees=first.top_assignees if first else None,
            top_cpcs=first.top_cpcs if first else None,
        )

    def _accumulate(self, patents: list[Patent], seen: set[str], page_patents: list[Patent]) -> int:
        added = 0
        for patent in page_patents:
            if self._deduplicate and patent.id != UNKNOWN_PATENT_ID:
                if patent.id in seen:
                    logger.debug(f"Skipping duplicate record {patent.id}")
                    continue
                seen.add(patent.id)
            patents.append(patent)
            added += 1
        return added

    async def close(self) -> None:
        """Close the browser, if this searcher owns one."""
        if self._browser is not None:
            await self._browser.close()

    async def __aenter__(self) -> "PatentSearcher":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
