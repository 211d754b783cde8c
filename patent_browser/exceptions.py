"""
Exception types for patent-browser.

Every error raised by the library derives from PatentBrowserError so callers
(and the CLI) can catch the whole family in one place.
"""

from __future__ import annotations

from typing import Any, Optional


class PatentBrowserError(Exception):
    """Base class for all patent-browser errors."""


class ProfileDirUnavailableError(PatentBrowserError):
    """The temporary browser profile directory could not be created."""


class PortDiscoveryTimeoutError(PatentBrowserError, TimeoutError):
    """The browser never announced its remote debugging port."""


class ControlEndpointUnavailableError(PatentBrowserError):
    """The browser's HTTP discovery endpoint never returned a control URL."""

    def __init__(self, message: str, last_error: Optional[BaseException] = None) -> None:
        self.last_error = last_error
        if last_error is not None:
            message = f"{message}: {last_error}"
        super().__init__(message)


class ConnectionFailedError(PatentBrowserError):
    """The WebSocket control channel could not be opened."""


class CDPError(PatentBrowserError):
    """CDP protocol error returned in a command response."""

    def __init__(self, code: int, message: str, data: Optional[Any] = None) -> None:
        self.code = code
        self.message = message
        self.data = data
        super().__init__(f"CDP Error {code}: {message}")


class ResponseChannelClosedError(PatentBrowserError):
    """The connection went away while a command was awaiting its response."""


class ScriptError(PatentBrowserError):
    """JavaScript evaluated in the page threw an exception."""

    def __init__(self, details: Any) -> None:
        self.details = details
        text = details.get("text", "JavaScript error") if isinstance(details, dict) else str(details)
        exception = details.get("exception") if isinstance(details, dict) else None
        if isinstance(exception, dict) and exception.get("description"):
            text = f"{text} {exception['description']}"
        super().__init__(f"JavaScript error: {text}")


class PageLoadTimeoutError(PatentBrowserError, TimeoutError):
    """A page never showed the element that marks it as loaded."""


class InvalidSearchOptionsError(PatentBrowserError, ValueError):
    """Search options name neither a query, an assignee nor a patent."""


class ExtractionError(PatentBrowserError):
    """An extraction script returned data that does not match its schema."""


class ConfigurationError(PatentBrowserError):
    """Configuration loading or parsing error."""


class BrowserLaunchError(PatentBrowserError):
    """The browser executable could not be started."""
