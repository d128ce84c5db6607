"""
1.0 Sitemap Fetcher Module
Retrieves the raw text of sitemap documents.

Two interchangeable fetchers share the same contract,
``fetch_sitemap_xml(url) -> str``, raising NetworkError or FetchTimeoutError:

- BrowserSitemapFetcher: drives headless Chromium through Playwright, one
  browser process per call, and returns the rendered document markup.
  This is the default.
- HttpSitemapFetcher: plain requests session with retry logic.
"""

import logging
import time
from typing import Optional, Dict, Any

import requests
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright
from playwright_stealth import Stealth
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from new_url_monitor.config import DEFAULT_CONFIG, NAVIGATION_TIMEOUT_MS
from new_url_monitor.errors import FetchTimeoutError, NetworkError

logger = logging.getLogger(__name__)

# Chromium refuses to start as root inside most CI containers without these
BROWSER_LAUNCH_ARGS = ["--no-sandbox", "--disable-setuid-sandbox"]


def _validate_url(sitemap_url: str) -> None:
    if not sitemap_url or not sitemap_url.startswith(("http://", "https://")):
        raise NetworkError(sitemap_url, f"Invalid sitemap URL: {sitemap_url!r}")


class BrowserSitemapFetcher:
    """
    2.0 BrowserSitemapFetcher Class
    Fetches sitemap markup by navigating a headless browser to it.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        2.1 Initialize the browser fetcher.

        Args:
            config: Configuration dictionary with optional keys:
                - navigation_timeout_ms: Upper bound for one navigation (default: 60000)
                - headless: Run Chromium without a window (default: True)
                - stealth: Apply playwright-stealth evasions (default: True)
        """
        config = config or {}
        self.timeout_ms = int(config.get("navigation_timeout_ms", NAVIGATION_TIMEOUT_MS))
        self.headless = bool(config.get("headless", True))
        self.stealth = bool(config.get("stealth", True))

        logger.info(
            f"BrowserSitemapFetcher initialized: "
            f"timeout={self.timeout_ms}ms, headless={self.headless}, stealth={self.stealth}"
        )

    def fetch_sitemap_xml(self, sitemap_url: str) -> str:
        """
        2.2 Fetch the rendered markup of a sitemap URL.

        Navigation waits for the network to go idle rather than for every
        request to complete. The browser is closed whether or not the
        navigation succeeds.

        Raises:
            FetchTimeoutError: navigation exceeded timeout_ms
            NetworkError: any other browser or navigation failure
        """
        _validate_url(sitemap_url)
        logger.info(f"Fetching sitemap in browser: {sitemap_url}")

        try:
            with sync_playwright() as p:
                browser = p.chromium.launch(headless=self.headless, args=BROWSER_LAUNCH_ARGS)
                try:
                    context = browser.new_context()
                    page = context.new_page()
                    if self.stealth:
                        Stealth().apply_stealth_sync(page)
                    page.goto(sitemap_url, wait_until="networkidle", timeout=self.timeout_ms)
                    content = page.content()
                finally:
                    browser.close()
        except PlaywrightTimeoutError as e:
            raise FetchTimeoutError(
                sitemap_url, f"Timeout after {self.timeout_ms}ms fetching {sitemap_url}"
            ) from e
        except PlaywrightError as e:
            raise NetworkError(sitemap_url, f"Browser error fetching {sitemap_url}: {e}") from e

        logger.info(f"Successfully fetched {sitemap_url} (size={len(content):,} chars)")
        return content


RETRY_STATUS_CODES = (429, 500, 502, 503, 504)


def build_retry_session(user_agent: str, max_retries: int) -> requests.Session:
    """Session that retries GETs on 429/5xx and connection errors with 1s, 2s, 4s backoff."""
    adapter = HTTPAdapter(max_retries=Retry(
        total=max_retries,
        backoff_factor=1,
        status_forcelist=RETRY_STATUS_CODES,
        allowed_methods=["GET"],
        raise_on_status=False,
    ))
    session = requests.Session()
    for prefix in ("http://", "https://"):
        session.mount(prefix, adapter)
    session.headers["User-Agent"] = user_agent
    return session


class HttpSitemapFetcher:
    """
    3.0 HttpSitemapFetcher Class
    Plain-HTTP alternative to the browser fetcher, selected with fetcher="http".

    Requests are spaced at least download_delay seconds apart.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        settings = {**DEFAULT_CONFIG, **(config or {})}

        user_agent = settings["user_agent"]
        if not isinstance(user_agent, str) or not user_agent.strip():
            logger.warning(f"Invalid user_agent in config. Using default: {DEFAULT_CONFIG['user_agent']}")
            user_agent = DEFAULT_CONFIG["user_agent"]
        self.user_agent = user_agent
        self.timeout = settings["timeout"]
        self.max_retries = settings["max_retries"]
        self.download_delay = float(settings["download_delay"])
        self._next_request_at = 0.0

        self.session = build_retry_session(self.user_agent, self.max_retries)
        logger.info(
            f"HttpSitemapFetcher ready: timeout={self.timeout}s, "
            f"retries={self.max_retries}, delay={self.download_delay}s"
        )

    def _wait_for_slot(self) -> None:
        wait_time = self._next_request_at - time.monotonic()
        if wait_time > 0:
            time.sleep(wait_time)
        self._next_request_at = time.monotonic() + self.download_delay

    def fetch_sitemap_xml(self, sitemap_url: str) -> str:
        """
        3.1 Fetch XML content from a sitemap URL.

        Raises:
            FetchTimeoutError: the request timed out
            NetworkError: connection failure or a non-200 final status
        """
        _validate_url(sitemap_url)
        self._wait_for_slot()
        logger.info(f"Fetching sitemap over HTTP: {sitemap_url}")

        try:
            response = self.session.get(sitemap_url, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            raise FetchTimeoutError(
                sitemap_url, f"Timeout fetching {sitemap_url} after {self.timeout}s"
            ) from e
        except requests.exceptions.RequestException as e:
            raise NetworkError(sitemap_url, f"Request error fetching {sitemap_url}: {e}") from e

        if response.status_code != 200:
            raise NetworkError(
                sitemap_url,
                f"Failed to fetch {sitemap_url}: status={response.status_code} "
                f"after {self.max_retries} retries",
            )

        logger.info(f"Successfully fetched {sitemap_url} (size={len(response.text):,} chars)")
        return response.text


def create_fetcher(config: Dict[str, Any]):
    """4.0 Build the fetcher selected by config['fetcher']."""
    kind = config.get("fetcher", "browser")
    if kind == "http":
        return HttpSitemapFetcher(config=config)
    if kind == "browser":
        return BrowserSitemapFetcher(config=config)
    raise ValueError(f"Unknown fetcher type: {kind}")
