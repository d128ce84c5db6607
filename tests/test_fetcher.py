"""
FETCHER TESTS - No Network

Playwright and the requests session are replaced with fakes so both
fetchers can be checked for their error mapping and cleanup.
"""

import pytest
import requests
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from new_url_monitor import sitemap_fetcher
from new_url_monitor.errors import FetchError, FetchTimeoutError, NetworkError
from new_url_monitor.sitemap_fetcher import (
    BROWSER_LAUNCH_ARGS,
    BrowserSitemapFetcher,
    HttpSitemapFetcher,
    create_fetcher,
)

SITEMAP_URL = "https://shop.example.com/sitemap.xml"
SITEMAP_XML = "<urlset><url><loc>https://shop.example.com/a</loc></url></urlset>"

# =============================================================================
# 1. BROWSER FETCHER
# =============================================================================


class FakePage:
    def __init__(self, goto_error=None):
        self.goto_error = goto_error
        self.goto_calls = []

    def goto(self, url, **kwargs):
        self.goto_calls.append((url, kwargs))
        if self.goto_error:
            raise self.goto_error

    def content(self):
        return SITEMAP_XML


class FakeContext:
    def __init__(self, page):
        self.page = page

    def new_page(self):
        return self.page


class FakeBrowser:
    def __init__(self, page):
        self.page = page
        self.closed = False

    def new_context(self):
        return FakeContext(self.page)

    def close(self):
        self.closed = True


class FakeChromium:
    def __init__(self, browser):
        self.browser = browser
        self.launch_kwargs = None

    def launch(self, **kwargs):
        self.launch_kwargs = kwargs
        return self.browser


class FakePlaywright:
    def __init__(self, chromium):
        self.chromium = chromium

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


class FakeStealth:
    applied = []

    def apply_stealth_sync(self, page):
        FakeStealth.applied.append(page)


@pytest.fixture()
def fake_browser(monkeypatch):
    """Install a fake Playwright; returns a function building one for a given goto error."""
    FakeStealth.applied = []
    monkeypatch.setattr(sitemap_fetcher, "Stealth", FakeStealth)

    def install(goto_error=None):
        page = FakePage(goto_error)
        browser = FakeBrowser(page)
        chromium = FakeChromium(browser)
        monkeypatch.setattr(sitemap_fetcher, "sync_playwright", lambda: FakePlaywright(chromium))
        return chromium, browser, page

    return install


def test_browser_fetch_returns_rendered_markup(fake_browser):
    chromium, browser, page = fake_browser()
    content = BrowserSitemapFetcher().fetch_sitemap_xml(SITEMAP_URL)

    assert content == SITEMAP_XML
    assert page.goto_calls == [(SITEMAP_URL, {"wait_until": "networkidle", "timeout": 60000})]
    assert chromium.launch_kwargs == {"headless": True, "args": BROWSER_LAUNCH_ARGS}
    assert FakeStealth.applied == [page]
    assert browser.closed


def test_browser_fetch_without_stealth(fake_browser):
    fake_browser()
    BrowserSitemapFetcher({"stealth": False}).fetch_sitemap_xml(SITEMAP_URL)
    assert FakeStealth.applied == []


def test_browser_fetch_timeout_maps_and_closes(fake_browser):
    _, browser, _ = fake_browser(PlaywrightTimeoutError("Timeout 60000ms exceeded."))
    with pytest.raises(FetchTimeoutError) as exc_info:
        BrowserSitemapFetcher().fetch_sitemap_xml(SITEMAP_URL)
    assert exc_info.value.url == SITEMAP_URL
    assert browser.closed


def test_browser_fetch_navigation_error_maps_and_closes(fake_browser):
    _, browser, _ = fake_browser(PlaywrightError("net::ERR_NAME_NOT_RESOLVED"))
    with pytest.raises(NetworkError, match="ERR_NAME_NOT_RESOLVED"):
        BrowserSitemapFetcher().fetch_sitemap_xml(SITEMAP_URL)
    assert browser.closed


def test_browser_fetch_custom_timeout(fake_browser):
    _, _, page = fake_browser()
    BrowserSitemapFetcher({"navigation_timeout_ms": 5000}).fetch_sitemap_xml(SITEMAP_URL)
    assert page.goto_calls[0][1]["timeout"] == 5000


def test_browser_fetch_rejects_non_http_url(fake_browser):
    _, _, page = fake_browser()
    with pytest.raises(NetworkError):
        BrowserSitemapFetcher().fetch_sitemap_xml("ftp://shop.example.com/sitemap.xml")
    assert page.goto_calls == []


# =============================================================================
# 2. HTTP FETCHER
# =============================================================================


class FakeResponse:
    def __init__(self, status_code, text=""):
        self.status_code = status_code
        self.text = text


@pytest.fixture()
def http_fetcher():
    return HttpSitemapFetcher({"download_delay": 0, "max_retries": 0, "timeout": 5})


def test_http_fetch_success(http_fetcher, monkeypatch):
    calls = []

    def fake_get(url, timeout):
        calls.append((url, timeout))
        return FakeResponse(200, SITEMAP_XML)

    monkeypatch.setattr(http_fetcher.session, "get", fake_get)
    assert http_fetcher.fetch_sitemap_xml(SITEMAP_URL) == SITEMAP_XML
    assert calls == [(SITEMAP_URL, 5)]
    assert http_fetcher.session.headers["User-Agent"] == "NewUrlMonitor/1.0"


def test_http_fetch_bad_status_is_network_error(http_fetcher, monkeypatch):
    monkeypatch.setattr(http_fetcher.session, "get", lambda url, timeout: FakeResponse(403))
    with pytest.raises(NetworkError, match="status=403"):
        http_fetcher.fetch_sitemap_xml(SITEMAP_URL)


@pytest.mark.parametrize("raised, expected", [
    (requests.exceptions.ConnectTimeout("slow"), FetchTimeoutError),
    (requests.exceptions.ReadTimeout("slow"), FetchTimeoutError),
    (requests.exceptions.ConnectionError("refused"), NetworkError),
    (requests.exceptions.TooManyRedirects("loop"), NetworkError),
])
def test_http_fetch_error_mapping(http_fetcher, monkeypatch, raised, expected):
    def fake_get(url, timeout):
        raise raised

    monkeypatch.setattr(http_fetcher.session, "get", fake_get)
    with pytest.raises(expected) as exc_info:
        http_fetcher.fetch_sitemap_xml(SITEMAP_URL)
    assert isinstance(exc_info.value, FetchError)


def test_http_fetch_invalid_url_makes_no_request(http_fetcher, monkeypatch):
    def fake_get(url, timeout):
        raise AssertionError("should not be called")

    monkeypatch.setattr(http_fetcher.session, "get", fake_get)
    with pytest.raises(NetworkError):
        http_fetcher.fetch_sitemap_xml("not-a-url")


def test_http_fetcher_blank_user_agent_falls_back():
    fetcher = HttpSitemapFetcher({"user_agent": "  ", "download_delay": 0})
    assert fetcher.user_agent == "NewUrlMonitor/1.0"


def test_http_fetch_spaces_requests_by_download_delay(monkeypatch):
    fetcher = HttpSitemapFetcher({"download_delay": 2.0})
    monkeypatch.setattr(fetcher.session, "get", lambda url, timeout: FakeResponse(200, SITEMAP_XML))
    clock = {"now": 100.0}
    sleeps = []

    def fake_sleep(seconds):
        sleeps.append(seconds)
        clock["now"] += seconds

    monkeypatch.setattr(sitemap_fetcher.time, "monotonic", lambda: clock["now"])
    monkeypatch.setattr(sitemap_fetcher.time, "sleep", fake_sleep)

    fetcher.fetch_sitemap_xml(SITEMAP_URL)
    clock["now"] += 0.5
    fetcher.fetch_sitemap_xml(SITEMAP_URL)
    clock["now"] += 5.0
    fetcher.fetch_sitemap_xml(SITEMAP_URL)

    assert sleeps == [1.5]


def test_http_fetcher_defaults_from_project_config():
    fetcher = HttpSitemapFetcher()
    assert fetcher.timeout == 60
    assert fetcher.max_retries == 3
    assert fetcher.download_delay == 1.5


# =============================================================================
# 3. FACTORY
# =============================================================================


def test_create_fetcher_selects_implementation():
    assert isinstance(create_fetcher({"fetcher": "http", "download_delay": 0}), HttpSitemapFetcher)
    assert isinstance(create_fetcher({"fetcher": "browser"}), BrowserSitemapFetcher)
    assert isinstance(create_fetcher({}), BrowserSitemapFetcher)


def test_create_fetcher_rejects_unknown():
    with pytest.raises(ValueError):
        create_fetcher({"fetcher": "curl"})

