import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from new_url_monitor.config import default_config  # noqa: E402
from new_url_monitor.errors import NetworkError  # noqa: E402

INDEX_URL = "https://shop.example.com/index"
SITEMAP_URLS = [
    "https://shop.example.com/sitemap_content.xml",
    "https://shop.example.com/sitemap_products.xml",
    "https://shop.example.com/sitemap_categories.xml",
    "https://shop.example.com/sitemap_stores.xml",
    "https://shop.example.com/sitemap_facets.xml",
]


class StubFetcher:
    """Deterministic fetcher: maps URL -> markup string or exception to raise."""

    def __init__(self, responses):
        self.responses = dict(responses)
        self.calls = []

    def fetch_sitemap_xml(self, url):
        self.calls.append(url)
        result = self.responses.get(url)
        if result is None:
            raise NetworkError(url, f"No stub response for {url}")
        if isinstance(result, Exception):
            raise result
        return result


def make_urlset(*urls):
    body = "\n".join(f"  <url><loc>{u}</loc></url>" for u in urls)
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">\n'
        f"{body}\n</urlset>"
    )


def make_index(*sitemaps):
    body = "\n".join(f"  <sitemap><loc>{s}</loc></sitemap>" for s in sitemaps)
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        '<sitemapindex xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">\n'
        f"{body}\n</sitemapindex>"
    )


@pytest.fixture()
def stub_fetcher():
    return StubFetcher


@pytest.fixture()
def urlset():
    return make_urlset


@pytest.fixture()
def sitemap_index():
    return make_index


@pytest.fixture()
def run_config(tmp_path):
    """Config pointing at tmp_path with the example index and fallback list."""
    config = default_config()
    config["sitemap_index_url"] = INDEX_URL
    config["fallback_sitemap_urls"] = list(SITEMAP_URLS)
    config["data_directory"] = str(tmp_path)
    return config


@pytest.fixture()
def run_ts():
    return datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)
