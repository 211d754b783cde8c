"""
Tests for patent_browser.cdp.launcher module.
"""

import shutil
import threading
from pathlib import Path

import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from patent_browser.cdp.launcher import (
    BrowserLaunchOptions,
    BrowserProcess,
    _fetch_ws_url,
    default_executable_path,
    find_browser_executable,
    launch_browser,
    parse_devtools_port,
    poll_for_port,
    resolve_executable,
)
from patent_browser.exceptions import (
    BrowserLaunchError,
    ControlEndpointUnavailableError,
    PortDiscoveryTimeoutError,
    ProfileDirUnavailableError,
)

DEVTOOLS_LINE = "DevTools listening on ws://127.0.0.1:39347/devtools/browser/0b5e-41c2"
BROWSER_WS_URL = "ws://127.0.0.1:39347/devtools/browser/0b5e-41c2"


def fast_options(**kwargs):
    defaults = dict(
        executable_path="/opt/chrome/chrome",
        port_discovery_attempts=5,
        port_discovery_interval=0.0,
        endpoint_retries=3,
        endpoint_retry_delay=0.0,
    )
    defaults.update(kwargs)
    return BrowserLaunchOptions(**defaults)


def fake_popen(stderr_text=""):
    """Popen replacement that writes *stderr_text* into the redirected stderr."""
    process = MagicMock()
    process.poll.return_value = None
    process.returncode = None
    process.wait.return_value = 0

    def popen(args, stdin=None, stdout=None, stderr=None):
        process.args = args
        if stderr_text:
            stderr.write(stderr_text.encode("utf-8"))
            stderr.flush()
        return process

    return MagicMock(side_effect=popen), process


class TestParseDevtoolsPort:
    """Tests for reading the port from browser stderr."""

    def test_single_line(self):
        assert parse_devtools_port(DEVTOOLS_LINE) == 39347

    def test_line_among_noise(self):
        text = "\n".join([
            "[0101/000000.000:WARNING:sandbox.cc] something",
            DEVTOOLS_LINE,
            "[0101/000000.001:INFO:other.cc] more",
        ])
        assert parse_devtools_port(text) == 39347

    def test_no_announcement(self):
        assert parse_devtools_port("") is None
        assert parse_devtools_port("Fontconfig error: no such file") is None

    def test_announcement_without_port(self):
        assert parse_devtools_port("DevTools listening on ws://localhost/devtools/browser/x") is None


class TestPollForPort:
    """Tests for the blocking port-discovery worker."""

    def test_reads_port_from_file(self, tmp_path):
        log = tmp_path / "chrome_stderr.log"
        log.write_text(DEVTOOLS_LINE + "\n")

        assert poll_for_port(log, attempts=3, interval=0.0) == 39347

    def test_missing_file_times_out(self, tmp_path):
        log = tmp_path / "missing.log"

        assert poll_for_port(log, attempts=3, interval=0.0) is None

    def test_stops_when_told(self, tmp_path):
        log = tmp_path / "chrome_stderr.log"
        log.write_text("starting\n")
        calls = []

        def should_stop():
            calls.append(True)
            return True

        assert poll_for_port(log, attempts=50, interval=0.0, should_stop=should_stop) is None
        assert len(calls) == 1


class TestExecutableResolution:
    """Tests for picking the browser binary."""

    def test_explicit_path_wins(self, monkeypatch):
        monkeypatch.setenv("CHROME_BIN", "/from/env/chrome")
        assert resolve_executable("/explicit/chrome") == "/explicit/chrome"

    def test_env_variable(self, monkeypatch):
        monkeypatch.setenv("CHROME_BIN", "/from/env/chrome")
        assert resolve_executable(None) == "/from/env/chrome"

    def test_discovery_fallback(self, monkeypatch):
        monkeypatch.delenv("CHROME_BIN", raising=False)
        with patch(
            "patent_browser.cdp.launcher.find_browser_executable",
            return_value="/usr/bin/chromium",
        ):
            assert resolve_executable(None) == "/usr/bin/chromium"

    def test_find_uses_path(self):
        with patch("patent_browser.cdp.launcher.shutil.which", return_value="/usr/bin/chromium"):
            assert find_browser_executable() == "/usr/bin/chromium"

    def test_find_falls_back_to_platform_default(self):
        with patch("patent_browser.cdp.launcher.shutil.which", return_value=None):
            assert find_browser_executable() == default_executable_path()


class TestBuildArgs:
    """Tests for the browser command line."""

    def test_headless_args(self, tmp_path):
        browser = BrowserProcess(fast_options(args=["--lang=en-US"]))
        browser._profile_dir = tmp_path

        args = browser._build_args("/opt/chrome/chrome")

        assert args[0] == "/opt/chrome/chrome"
        assert "--remote-debugging-port=0" in args
        assert f"--user-data-dir={tmp_path}" in args
        assert "--headless" in args
        assert args[-1] == "--lang=en-US"

    def test_headed_args(self, tmp_path):
        browser = BrowserProcess(fast_options(headless=False))
        browser._profile_dir = tmp_path

        assert "--headless" not in browser._build_args("/opt/chrome/chrome")

    def test_port_set_only_once(self):
        browser = BrowserProcess(fast_options())
        browser._set_port(9222)

        with pytest.raises(RuntimeError):
            browser._set_port(9333)
        assert browser.port == 9222


class TestFetchWsUrl:
    """Tests for the HTTP discovery request."""

    @pytest.mark.asyncio
    async def test_returns_debugger_url(self):
        def handler(request):
            assert request.method == "GET"
            return httpx.Response(200, json={"webSocketDebuggerUrl": BROWSER_WS_URL})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            url = await _fetch_ws_url(client, "GET", "http://127.0.0.1:39347/json/version")

        assert url == BROWSER_WS_URL

    @pytest.mark.asyncio
    async def test_missing_debugger_url(self):
        def handler(request):
            return httpx.Response(200, json={"Browser": "Chrome/120"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(ValueError):
                await _fetch_ws_url(client, "GET", "http://127.0.0.1:39347/json/version")

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        def handler(request):
            return httpx.Response(500)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(httpx.HTTPStatusError):
                await _fetch_ws_url(client, "PUT", "http://127.0.0.1:39347/json/new")


class TestBrowserProcess:
    """Tests for the browser lifecycle."""

    @pytest.mark.asyncio
    async def test_endpoint_retries_until_ready(self):
        browser = BrowserProcess(fast_options())
        fetch = AsyncMock(side_effect=[httpx.ConnectError("refused"), BROWSER_WS_URL])

        with patch("patent_browser.cdp.launcher._fetch_ws_url", new=fetch):
            url = await browser._wait_for_ws_endpoint(39347)

        assert url == BROWSER_WS_URL
        assert fetch.await_count == 2
        assert fetch.await_args.args[1:] == ("GET", "http://127.0.0.1:39347/json/version")

    @pytest.mark.asyncio
    async def test_endpoint_gives_up(self):
        browser = BrowserProcess(fast_options(endpoint_retries=3))
        error = httpx.ConnectError("refused")
        fetch = AsyncMock(side_effect=error)

        with patch("patent_browser.cdp.launcher._fetch_ws_url", new=fetch):
            with pytest.raises(ControlEndpointUnavailableError) as exc_info:
                await browser._wait_for_ws_endpoint(39347)

        assert fetch.await_count == 3
        assert exc_info.value.last_error is error

    @pytest.mark.asyncio
    async def test_launch_and_close(self):
        popen, process = fake_popen(DEVTOOLS_LINE + "\n")
        fetch = AsyncMock(return_value=BROWSER_WS_URL)

        with patch("patent_browser.cdp.launcher.subprocess.Popen", new=popen), \
                patch("patent_browser.cdp.launcher._fetch_ws_url", new=fetch):
            browser = BrowserProcess(fast_options())
            url = await browser.launch()

        assert url == BROWSER_WS_URL
        assert browser.ws_endpoint == BROWSER_WS_URL
        assert browser.port == 39347
        assert "--remote-debugging-port=0" in process.args

        profile_dir = browser.profile_dir
        assert profile_dir is not None and profile_dir.is_dir()
        assert (profile_dir / "chrome_stderr.log").exists()

        await browser.close()

        process.terminate.assert_called_once()
        process.kill.assert_not_called()
        assert not profile_dir.exists()
        assert browser.ws_endpoint is None

        await browser.close()
        process.terminate.assert_called_once()

    @pytest.mark.asyncio
    async def test_launch_twice_raises(self):
        popen, _ = fake_popen(DEVTOOLS_LINE + "\n")

        with patch("patent_browser.cdp.launcher.subprocess.Popen", new=popen), \
                patch("patent_browser.cdp.launcher._fetch_ws_url", new=AsyncMock(return_value=BROWSER_WS_URL)):
            async with BrowserProcess(fast_options()) as browser:
                with pytest.raises(RuntimeError):
                    await browser.launch()

    @pytest.mark.asyncio
    async def test_debug_keeps_profile_dir(self):
        popen, _ = fake_popen(DEVTOOLS_LINE + "\n")

        with patch("patent_browser.cdp.launcher.subprocess.Popen", new=popen), \
                patch("patent_browser.cdp.launcher._fetch_ws_url", new=AsyncMock(return_value=BROWSER_WS_URL)):
            browser = BrowserProcess(fast_options(debug=True))
            await browser.launch()
            await browser.close()

        profile_dir = browser.profile_dir
        try:
            assert profile_dir.is_dir()
            assert DEVTOOLS_LINE in (profile_dir / "chrome_stderr.log").read_text()
        finally:
            shutil.rmtree(profile_dir, ignore_errors=True)

    @pytest.mark.asyncio
    async def test_port_never_announced(self):
        popen, process = fake_popen("")

        with patch("patent_browser.cdp.launcher.subprocess.Popen", new=popen):
            browser = BrowserProcess(fast_options())
            with pytest.raises(PortDiscoveryTimeoutError):
                await browser.launch()

        process.terminate.assert_called_once()
        assert not browser.profile_dir.exists()

    @pytest.mark.asyncio
    async def test_browser_exits_early(self):
        popen, process = fake_popen("")
        process.poll.return_value = 1
        process.returncode = 1

        with patch("patent_browser.cdp.launcher.subprocess.Popen", new=popen):
            browser = BrowserProcess(fast_options())
            with pytest.raises(PortDiscoveryTimeoutError, match="exited with code 1"):
                await browser.launch()

        process.terminate.assert_not_called()

    @pytest.mark.asyncio
    async def test_endpoint_failure_closes_browser(self):
        popen, process = fake_popen(DEVTOOLS_LINE + "\n")
        fetch = AsyncMock(side_effect=httpx.ConnectError("refused"))

        with patch("patent_browser.cdp.launcher.subprocess.Popen", new=popen), \
                patch("patent_browser.cdp.launcher._fetch_ws_url", new=fetch):
            browser = BrowserProcess(fast_options())
            with pytest.raises(ControlEndpointUnavailableError):
                await browser.launch()

        process.terminate.assert_called_once()
        assert not browser.profile_dir.exists()

    @pytest.mark.asyncio
    async def test_profile_dir_unavailable(self):
        with patch(
            "patent_browser.cdp.launcher.tempfile.mkdtemp",
            side_effect=OSError("read-only file system"),
        ):
            browser = BrowserProcess(fast_options())
            with pytest.raises(ProfileDirUnavailableError):
                await browser.launch()

        assert browser.process is None

    @pytest.mark.asyncio
    async def test_executable_missing(self):
        popen = MagicMock(side_effect=FileNotFoundError("no such file"))

        with patch("patent_browser.cdp.launcher.subprocess.Popen", new=popen):
            browser = BrowserProcess(fast_options())
            with pytest.raises(BrowserLaunchError):
                await browser.launch()

        assert not Path(browser.profile_dir).exists()

    @pytest.mark.asyncio
    async def test_new_page(self):
        browser = BrowserProcess(fast_options())
        browser._set_port(39347)
        fetch = AsyncMock(return_value="ws://127.0.0.1:39347/devtools/page/F00D")

        with patch("patent_browser.cdp.launcher._fetch_ws_url", new=fetch):
            url = await browser.new_page()

        assert url == "ws://127.0.0.1:39347/devtools/page/F00D"
        assert fetch.await_args.args[1:] == ("PUT", "http://127.0.0.1:39347/json/new")

    @pytest.mark.asyncio
    async def test_new_page_failure(self):
        browser = BrowserProcess(fast_options())
        browser._set_port(39347)
        fetch = AsyncMock(side_effect=ValueError("no webSocketDebuggerUrl"))

        with patch("patent_browser.cdp.launcher._fetch_ws_url", new=fetch):
            with pytest.raises(ControlEndpointUnavailableError):
                await browser.new_page()

    @pytest.mark.asyncio
    async def test_new_page_requires_running_browser(self):
        with pytest.raises(RuntimeError):
            await BrowserProcess(fast_options()).new_page()

    @pytest.mark.asyncio
    async def test_launch_browser_helper(self):
        with patch.object(BrowserProcess, "launch", new=AsyncMock(return_value=BROWSER_WS_URL)) as launch:
            browser = await launch_browser(fast_options())

        assert isinstance(browser, BrowserProcess)
        launch.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_close_kills_process_ignoring_terminate(self, tmp_path):
        exited = threading.Event()
        process = MagicMock()
        process.pid = 4242
        process.poll.return_value = None
        process.wait.side_effect = lambda: exited.wait(5)
        process.kill.side_effect = exited.set

        profile_dir = tmp_path / "profile"
        profile_dir.mkdir()
        browser = BrowserProcess(fast_options())
        browser._process = process
        browser._profile_dir = profile_dir

        with patch("patent_browser.cdp.launcher.PROCESS_EXIT_TIMEOUT", 0.05):
            await browser.close()

        process.terminate.assert_called_once()
        process.kill.assert_called_once()
        assert exited.is_set()
        assert not profile_dir.exists()

    @pytest.mark.asyncio
    async def test_close_survives_kill_failure(self):
        process = MagicMock()
        process.poll.return_value = None
        process.wait.side_effect = lambda: threading.Event().wait(0.2)
        process.kill.side_effect = ProcessLookupError("no such process")

        browser = BrowserProcess(fast_options())
        browser._process = process

        with patch("patent_browser.cdp.launcher.PROCESS_EXIT_TIMEOUT", 0.05):
            await browser.close()

        process.kill.assert_called_once()


class TestClosePage:
    """Tests for closing tabs through the HTTP endpoint."""

    @staticmethod
    def client_factory(handler):
        real_client = httpx.AsyncClient

        def factory(**kwargs):
            return real_client(transport=httpx.MockTransport(handler), **kwargs)

        return factory

    @pytest.mark.asyncio
    async def test_close_page(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, text="Target is closing")

        browser = BrowserProcess(fast_options())
        browser._set_port(39347)

        with patch("patent_browser.cdp.launcher.httpx.AsyncClient", new=self.client_factory(handler)):
            await browser.close_page("ws://127.0.0.1:39347/devtools/page/F00D")

        assert len(requests) == 1
        assert requests[0].method == "GET"
        assert str(requests[0].url) == "http://127.0.0.1:39347/json/close/F00D"

    @pytest.mark.asyncio
    async def test_close_page_failure_is_not_raised(self):
        def handler(request):
            return httpx.Response(404, text="No such target id: F00D")

        browser = BrowserProcess(fast_options())
        browser._set_port(39347)

        with patch("patent_browser.cdp.launcher.httpx.AsyncClient", new=self.client_factory(handler)):
            await browser.close_page("ws://127.0.0.1:39347/devtools/page/F00D")

    @pytest.mark.asyncio
    async def test_close_page_without_browser(self):
        await BrowserProcess(fast_options()).close_page("ws://127.0.0.1:1/devtools/page/F00D")
