import json
import logging
import os
from typing import Dict, List, Optional, Any

logger = logging.getLogger(__name__)

CONFIG_FILE_PATH = "config.json"

# Sitemap index tried first; the fallback list is used when the index
# cannot be fetched or lists no sitemaps.
SITEMAP_INDEX_URL = "https://www.ralphlauren.com/index"
FALLBACK_SITEMAP_URLS: List[str] = [
    "https://www.ralphlauren.com/seocontent?n=contentsitemap_0",
    "https://www.ralphlauren.com/seocontent?n=productsitemap_0",
    "https://www.ralphlauren.com/seocontent?n=categorysitemap",
    "https://www.ralphlauren.com/seocontent?n=StoreSiteMap",
    "https://www.ralphlauren.com/seocontent?n=facetsitemap",
]

NAVIGATION_TIMEOUT_MS = 60000

FETCHER_CHOICES = ("browser", "http")

DEFAULT_CONFIG: Dict[str, Any] = {
    "sitemap_index_url": SITEMAP_INDEX_URL,
    "fallback_sitemap_urls": FALLBACK_SITEMAP_URLS,
    "data_directory": ".",
    "fetcher": "browser",
    "navigation_timeout_ms": NAVIGATION_TIMEOUT_MS,
    "headless": True,
    "stealth": True,
    "user_agent": "NewUrlMonitor/1.0",
    "timeout": 60,
    "max_retries": 3,
    "download_delay": 1.5,
}


def default_config() -> Dict[str, Any]:
    """Returns a fresh copy of the built-in configuration."""
    config = dict(DEFAULT_CONFIG)
    config["fallback_sitemap_urls"] = list(FALLBACK_SITEMAP_URLS)
    return config


def load_config(path: str = CONFIG_FILE_PATH) -> Optional[Dict[str, Any]]:
    """
    Loads the configuration from a JSON file layered over the defaults.

    A missing file is not an error: the built-in constants are used as-is.
    Returns None if the file exists but cannot be decoded or fails validation.
    """
    config = default_config()
    if not os.path.exists(path):
        logger.info(f"Configuration file not found: {path}. Using built-in defaults.")
        return config
    try:
        with open(path, 'r', encoding='utf-8') as f:
            file_data = json.load(f)
    except json.JSONDecodeError as e:
        logger.error(f"Error decoding JSON from {path}: {e}")
        return None
    except OSError as e:
        logger.error(f"Could not read configuration file {path}: {e}")
        return None

    if not isinstance(file_data, dict):
        logger.error("Configuration must be a dictionary.")
        return None

    config.update(file_data)
    logger.info(f"Successfully loaded configuration from {path}")
    if not validate_config(config):
        return None
    return config


def validate_config(config: Dict[str, Any]) -> bool:
    """Validates the structure and content of the configuration."""
    if not isinstance(config, dict):
        logger.error("Configuration must be a dictionary.")
        return False

    for key in ("sitemap_index_url", "data_directory", "fetcher"):
        value = config.get(key)
        if not isinstance(value, str) or not value.strip():
            logger.error(f"'{key}' must be a non-empty string.")
            return False

    fallback = config.get("fallback_sitemap_urls")
    if not isinstance(fallback, list):
        logger.error("'fallback_sitemap_urls' key is missing or not a list in config.")
        return False
    if not fallback:
        logger.warning("'fallback_sitemap_urls' is empty. A failed index fetch will crawl nothing.")
    for i, url in enumerate(fallback):
        if not isinstance(url, str) or not url.strip():
            logger.error(f"Fallback sitemap at index {i} must be a non-empty string.")
            return False

    if config["fetcher"] not in FETCHER_CHOICES:
        logger.error(f"'fetcher' must be one of {FETCHER_CHOICES}, got '{config['fetcher']}'.")
        return False

    # A zero timeout means "wait forever" to Playwright and is rejected by requests
    for key in ("navigation_timeout_ms", "timeout"):
        value = config.get(key)
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
            logger.error(f"'{key}' must be a positive number.")
            return False

    for key in ("max_retries", "download_delay"):
        value = config.get(key)
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
            logger.error(f"'{key}' must be a non-negative number.")
            return False

    for key in ("headless", "stealth"):
        if not isinstance(config.get(key), bool):
            logger.error(f"'{key}' must be true or false.")
            return False

    if not isinstance(config.get("user_agent"), str) or not config["user_agent"].strip():
        logger.warning("'user_agent' key is missing or not a non-empty string. Using a default one is recommended.")

    logger.info("Configuration validation successful.")
    return True
