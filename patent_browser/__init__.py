"""
patent-browser: Google Patents search over the Chrome DevTools Protocol.

Launches a local Chrome/Chromium, drives it over CDP and extracts structured
patent records from the rendered pages.

Basic usage:
    from patent_browser import PatentSearcher, SearchOptions

    searcher = await PatentSearcher.launch(headless=True)
    async with searcher:
        result = await searcher.search(SearchOptions(query="machine learning", limit=25))
        print(result.to_json())

Single patent:
    result = await searcher.search(SearchOptions(patent_number="US9152718B2"))
"""

__version__ = "0.1.0"
__license__ = "MIT"

from patent_browser.exceptions import (
    BrowserLaunchError,
    CDPError,
    ConfigurationError,
    ConnectionFailedError,
    ControlEndpointUnavailableError,
    ExtractionError,
    InvalidSearchOptionsError,
    PageLoadTimeoutError,
    PatentBrowserError,
    PortDiscoveryTimeoutError,
    ProfileDirUnavailableError,
    ResponseChannelClosedError,
    ScriptError,
)
from patent_browser.models import (
    Claim,
    DescriptionParagraph,
    Patent,
    PatentImage,
    RelatedApplication,
    SearchOptions,
    SearchResult,
    SummaryItem,
)
from patent_browser.cdp import (
    BrowserLaunchOptions,
    BrowserProcess,
    CDPConnection,
    CDPPage,
)
from patent_browser.searcher import PatentSearcher

__all__ = [
    # Version
    "__version__",
    # Errors
    "BrowserLaunchError",
    "CDPError",
    "ConfigurationError",
    "ConnectionFailedError",
    "ControlEndpointUnavailableError",
    "ExtractionError",
    "InvalidSearchOptionsError",
    "PageLoadTimeoutError",
    "PatentBrowserError",
    "PortDiscoveryTimeoutError",
    "ProfileDirUnavailableError",
    "ResponseChannelClosedError",
    "ScriptError",
    # Models
    "Claim",
    "DescriptionParagraph",
    "Patent",
    "PatentImage",
    "RelatedApplication",
    "SearchOptions",
    "SearchResult",
    "SummaryItem",
    # CDP
    "BrowserLaunchOptions",
    "BrowserProcess",
    "CDPConnection",
    "CDPPage",
    # Search
    "PatentSearcher",
]
