"""
Browser launcher for CDP connections.

Launches Chrome/Chromium on an OS-assigned debugging port, reads the port back
from the browser's stderr log and resolves the DevTools WebSocket URL.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
import shutil
import subprocess
import sys
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional
from urllib.parse import urlparse

import httpx

from patent_browser.config.defaults import (
    CHROME_BIN_ENV,
    DEVTOOLS_LISTENING_MARKER,
    ENDPOINT_REQUEST_TIMEOUT,
    ENDPOINT_RETRIES,
    ENDPOINT_RETRY_DELAY,
    PORT_DISCOVERY_ATTEMPTS,
    PORT_DISCOVERY_INTERVAL,
    PROCESS_EXIT_TIMEOUT,
    STDERR_LOG_FILENAME,
)
from patent_browser.exceptions import (
    BrowserLaunchError,
    ControlEndpointUnavailableError,
    PortDiscoveryTimeoutError,
    ProfileDirUnavailableError,
)

logger = logging.getLogger(__name__)

_DEVTOOLS_URL_RE = re.compile(re.escape(DEVTOOLS_LISTENING_MARKER) + r"\s+(ws://\S+)")


@dataclass
class BrowserLaunchOptions:
    """Options for launching a browser."""

    headless: bool = True
    """Run browser in headless mode."""

    executable_path: Optional[str] = None
    """Path to browser executable. Falls back to $CHROME_BIN, then a platform default."""

    args: list[str] = field(default_factory=list)
    """Additional browser arguments."""

    debug: bool = False
    """Log the browser's DevTools announcement and keep its stderr log on close."""

    port_discovery_attempts: int = PORT_DISCOVERY_ATTEMPTS
    port_discovery_interval: float = PORT_DISCOVERY_INTERVAL
    endpoint_retries: int = ENDPOINT_RETRIES
    endpoint_retry_delay: float = ENDPOINT_RETRY_DELAY


def default_executable_path() -> str:
    """Return the conventional Chrome location for this platform."""
    if sys.platform.startswith("win"):
        return "C:\\Program Files\\Google\\Chrome\\Application\\chrome.exe"
    if sys.platform == "darwin":
        return "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome"
    if sys.platform.startswith("linux"):
        return "/usr/bin/google-chrome"
    return "chrome"


def find_browser_executable() -> str:
    """Find a Chrome/Chromium executable on PATH.

    Returns:
        Path to the first executable found, or the platform default when
        nothing is on PATH.
    """
    executables = [
        "google-chrome",
        "google-chrome-stable",
        "chromium",
        "chromium-browser",
        "chrome",
    ]
    for exe in executables:
        path = shutil.which(exe)
        if path:
            return path
    return default_executable_path()


def resolve_executable(executable_path: Optional[str] = None) -> str:
    """Pick the browser binary: explicit path, then $CHROME_BIN, then discovery."""
    if executable_path:
        return str(executable_path)
    env_path = os.environ.get(CHROME_BIN_ENV)
    if env_path:
        return env_path
    return find_browser_executable()


def parse_devtools_port(text: str) -> Optional[int]:
    """Extract the debugging port from browser stderr output.

    Looks for a line like
    ``DevTools listening on ws://127.0.0.1:39347/devtools/browser/<uuid>``.
    """
    for line in text.splitlines():
        match = _DEVTOOLS_URL_RE.search(line)
        if not match:
            continue
        try:
            port = urlparse(match.group(1)).port
        except ValueError:
            continue
        if port:
            return port
    return None


def poll_for_port(
    log_path: Path,
    *,
    attempts: int = PORT_DISCOVERY_ATTEMPTS,
    interval: float = PORT_DISCOVERY_INTERVAL,
    should_stop: Optional[Callable[[], bool]] = None,
    debug: bool = False,
) -> Optional[int]:
    """Re-read *log_path* until it announces a port. Blocking.

    Runs on a worker thread; the whole file is read on every attempt since it
    is small and the browser may still be appending to it.

    Returns:
        The port, or None if the attempts ran out (or *should_stop* said so).
    """
    for _ in range(attempts):
        try:
            content = log_path.read_text(encoding="utf-8", errors="replace")
        except FileNotFoundError:
            content = ""

        port = parse_devtools_port(content)
        if port is not None:
            if debug:
                for line in content.splitlines():
                    if DEVTOOLS_LISTENING_MARKER in line:
                        logger.info(f"Chrome: {line}")
            return port

        if should_stop is not None and should_stop():
            return None
        time.sleep(interval)
    return None


class BrowserProcess:
    """Manages a browser subprocess with CDP enabled.

    Use as an async context manager so the process is terminated on every exit
    path:

        async with BrowserProcess(BrowserLaunchOptions(headless=True)) as browser:
            page_ws_url = await browser.new_page()
    """

    def __init__(
        self,
        options: Optional[BrowserLaunchOptions] = None,
    ) -> None:
        """Initialize browser process manager.

        Args:
            options: Launch options for the browser.
        """
        self._options = options or BrowserLaunchOptions()
        self._process: Optional[subprocess.Popen[bytes]] = None
        self._profile_dir: Optional[Path] = None
        self._port: Optional[int] = None
        self._ws_endpoint: Optional[str] = None
        self._closed = False

    @property
    def ws_endpoint(self) -> Optional[str]:
        """Get the browser-level WebSocket debugger URL."""
        return self._ws_endpoint

    @property
    def process(self) -> Optional[subprocess.Popen[bytes]]:
        """Get the browser subprocess."""
        return self._process

    @property
    def port(self) -> Optional[int]:
        """Get the debugging port (None until discovered)."""
        return self._port

    @property
    def profile_dir(self) -> Optional[Path]:
        """Get the temporary profile directory."""
        return self._profile_dir

    def _set_port(self, port: int) -> None:
        if self._port is not None:
            raise RuntimeError(f"Debugging port already discovered ({self._port})")
        self._port = port

    async def launch(self) -> str:
        """Launch the browser and return the WebSocket endpoint URL.

        Returns:
            WebSocket debugger URL.

        Raises:
            ProfileDirUnavailableError: If the profile directory can't be created.
            PortDiscoveryTimeoutError: If the browser never announces its port.
            ControlEndpointUnavailableError: If /json/version never answers.
        """
        if self._process is not None:
            raise RuntimeError("Browser already launched")

        executable = resolve_executable(self._options.executable_path)

        try:
            self._profile_dir = Path(tempfile.mkdtemp(prefix="patent-browser-"))
        except OSError as e:
            raise ProfileDirUnavailableError(f"Cannot create browser profile directory: {e}") from e

        args = self._build_args(executable)
        stderr_path = self._profile_dir / STDERR_LOG_FILENAME

        logger.debug(f"Launching browser: {executable}")
        logger.debug(f"Browser args: {args}")

        try:
            with open(stderr_path, "wb") as stderr_file:
                self._process = subprocess.Popen(
                    args,
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.DEVNULL,
                    stderr=stderr_file,
                )
        except OSError as e:
            shutil.rmtree(self._profile_dir, ignore_errors=True)
            raise BrowserLaunchError(f"Failed to start browser {executable}: {e}") from e

        try:
            port = await self._discover_port(stderr_path)
            self._set_port(port)
            self._ws_endpoint = await self._wait_for_ws_endpoint(port)
        except BaseException:
            await self.close()
            raise

        logger.info(f"Browser launched on port {port}")
        logger.debug(f"Browser WebSocket endpoint: {self._ws_endpoint}")
        return self._ws_endpoint

    def _build_args(self, executable: str) -> list[str]:
        """Build browser launch arguments.

        Args:
            executable: Path to browser executable.

        Returns:
            List of command line arguments.
        """
        args = [
            executable,
            "--remote-debugging-port=0",
            f"--user-data-dir={self._profile_dir}",
        ]
        if self._options.headless:
            args.append("--headless")
        args.extend(self._options.args)
        return args

    def _process_exited(self) -> bool:
        return self._process is None or self._process.poll() is not None

    async def _discover_port(self, stderr_path: Path) -> int:
        """Poll the stderr log on a worker thread until the port shows up."""
        loop = asyncio.get_running_loop()
        port = await loop.run_in_executor(
            None,
            lambda: poll_for_port(
                stderr_path,
                attempts=self._options.port_discovery_attempts,
                interval=self._options.port_discovery_interval,
                should_stop=self._process_exited,
                debug=self._options.debug,
            ),
        )
        if port is None:
            if self._process is not None and self._process.poll() is not None:
                raise PortDiscoveryTimeoutError(
                    f"Browser exited with code {self._process.returncode} "
                    "before announcing its debugging port"
                )
            raise PortDiscoveryTimeoutError("Failed to discover Chrome debugging port")
        logger.debug(f"Discovered debugging port {port}")
        return port

    async def _wait_for_ws_endpoint(self, port: int) -> str:
        """Fetch the browser WebSocket URL, retrying while the HTTP server starts.

        Args:
            port: CDP port number.

        Returns:
            WebSocket debugger URL.
        """
        url = f"http://127.0.0.1:{port}/json/version"
        retries = self._options.endpoint_retries
        last_error: Optional[BaseException] = None

        async with httpx.AsyncClient(timeout=ENDPOINT_REQUEST_TIMEOUT) as client:
            for attempt in range(retries):
                try:
                    return await _fetch_ws_url(client, "GET", url)
                except (httpx.HTTPError, ValueError) as e:
                    last_error = e
                    logger.debug(f"Attempt {attempt + 1}/{retries} for {url} failed: {e}")
                if attempt < retries - 1:
                    await asyncio.sleep(self._options.endpoint_retry_delay)

        raise ControlEndpointUnavailableError(
            f"Failed to get WebSocket URL from port {port} after {retries} attempts",
            last_error,
        )

    async def new_page(self) -> str:
        """Open a new tab and return its WebSocket debugger URL.

        Raises:
            ControlEndpointUnavailableError: If the browser refuses or the
                response has no webSocketDebuggerUrl.
        """
        if self._port is None:
            raise RuntimeError("Browser is not running")

        url = f"http://127.0.0.1:{self._port}/json/new"
        try:
            async with httpx.AsyncClient(timeout=ENDPOINT_REQUEST_TIMEOUT) as client:
                ws_url = await _fetch_ws_url(client, "PUT", url)
        except (httpx.HTTPError, ValueError) as e:
            raise ControlEndpointUnavailableError("Failed to create a new page", e) from e

        logger.debug(f"Opened new page: {ws_url}")
        return ws_url

    async def close_page(self, page_ws_url: str) -> None:
        """Close a tab opened by new_page. Failures are logged, never raised."""
        if self._port is None:
            return

        target_id = urlparse(page_ws_url).path.rstrip("/").rsplit("/", 1)[-1]
        url = f"http://127.0.0.1:{self._port}/json/close/{target_id}"
        try:
            async with httpx.AsyncClient(timeout=ENDPOINT_REQUEST_TIMEOUT) as client:
                response = await client.get(url)
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"Failed to close page {target_id}: {e}")
            return

        logger.debug(f"Closed page {target_id}")

    async def close(self) -> None:
        """Terminate the browser process and remove its profile directory.

        A process still running 5 s after terminate is killed.

        Safe to call more than once; only the first call does anything.
        Failures are logged, never raised.
        """
        if self._closed:
            return
        self._closed = True

        process = self._process
        if process is not None and process.poll() is None:
            try:
                process.terminate()
            except OSError as e:
                logger.warning(f"Failed to terminate browser process: {e}")
            else:
                if not await _wait_for_exit(process):
                    logger.warning(
                        f"Browser process {process.pid} still running "
                        f"{PROCESS_EXIT_TIMEOUT}s after terminate, killing it"
                    )
                    try:
                        process.kill()
                    except OSError as e:
                        logger.warning(f"Failed to kill browser process: {e}")
                    else:
                        if not await _wait_for_exit(process):
                            logger.warning(f"Browser process {process.pid} did not exit after kill")

        if self._profile_dir is not None and not self._options.debug:
            shutil.rmtree(self._profile_dir, ignore_errors=True)

        self._ws_endpoint = None
        logger.debug("Browser process closed")

    async def __aenter__(self) -> "BrowserProcess":
        """Async context manager entry."""
        await self.launch()
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Async context manager exit."""
        await self.close()


async def _wait_for_exit(process: subprocess.Popen[bytes]) -> bool:
    """Wait on a worker thread for *process* to exit. False on timeout."""
    try:
        await asyncio.wait_for(
            asyncio.get_running_loop().run_in_executor(None, process.wait),
            timeout=PROCESS_EXIT_TIMEOUT,
        )
    except asyncio.TimeoutError:
        return False
    return True


async def _fetch_ws_url(client: httpx.AsyncClient, method: str, url: str) -> str:
    response = await client.request(method, url)
    response.raise_for_status()
    data = response.json()
    ws_url = data.get("webSocketDebuggerUrl") if isinstance(data, dict) else None
    if not ws_url:
        raise ValueError(f"Could not find webSocketDebuggerUrl in response from {url}")
    return ws_url


async def launch_browser(
    options: Optional[BrowserLaunchOptions] = None,
) -> BrowserProcess:
    """Launch a browser and return the process manager.

    Example:
        browser = await launch_browser()
        print(browser.ws_endpoint)
        await browser.close()
    """
    process = BrowserProcess(options)
    await process.launch()
    return process
