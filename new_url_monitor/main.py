"""
1.0 Main Orchestrator Module
Runs one crawl: discover sitemaps, collect URLs, diff against the archive,
persist the results.

Flow:
1. Read the sitemap index; fall back to a fixed list if that fails
2. Fetch every sitemap one at a time, skipping any that fail
3. Merge all <loc> entries into one sorted, deduplicated list
4. Diff against all_urls.txt and write the new-URL files, archive and run log
"""

import argparse
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from new_url_monitor.config import CONFIG_FILE_PATH, FETCHER_CHOICES, load_config
from new_url_monitor.data_processor import DataProcessor, RunLogEntry, diff_urls
from new_url_monitor.sitemap_fetcher import create_fetcher
from new_url_monitor.sitemap_parser import extract_locs

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DEFAULT_LOG_FILE = "main_process.log"


def setup_logging(log_file: Optional[str] = DEFAULT_LOG_FILE, level: int = logging.INFO) -> None:
    """1.1 Log to the console and, when log_file is set, to that file."""
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.insert(0, logging.FileHandler(log_file))
    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)


def discover_sitemap_urls(fetcher, index_url: str, fallback_urls: Iterable[str]) -> List[str]:
    """
    2.0 Resolve the list of sitemaps to crawl.

    Reads the <loc> entries of the sitemap index. If the index cannot be
    fetched, or lists nothing, the fallback list is used instead. The index
    fetch is not retried.

    Args:
        fetcher: Any object with fetch_sitemap_xml(url) -> str
        index_url: Address of the sitemap index
        fallback_urls: Sitemaps to crawl when discovery fails

    Returns:
        Sitemap URLs in the order they should be fetched
    """
    try:
        index_xml = fetcher.fetch_sitemap_xml(index_url)
        sitemap_urls = extract_locs(index_xml)
    except Exception as e:
        logger.warning(f"Could not read sitemap index {index_url}: {e}. Using fallback list.")
        return list(fallback_urls)

    if not sitemap_urls:
        logger.warning(f"Sitemap index {index_url} listed no sitemaps. Using fallback list.")
        return list(fallback_urls)

    logger.info(f"Sitemap index {index_url} lists {len(sitemap_urls)} sitemaps")
    return sitemap_urls


def collect_current_urls(fetcher, sitemap_urls: Iterable[str]) -> List[str]:
    """
    3.0 Fetch every sitemap and merge their <loc> entries.

    A sitemap that fails to fetch is logged and contributes nothing; it
    never aborts the run.

    Returns:
        Sorted list of unique, non-empty URLs
    """
    url_set = set()
    for sitemap_url in sitemap_urls:
        try:
            xml_content = fetcher.fetch_sitemap_xml(sitemap_url)
        except Exception as e:
            logger.warning(f"Failed to fetch {sitemap_url}: {e}")
            continue
        locs = extract_locs(xml_content)
        logger.info(f"Sitemap {sitemap_url} contains {len(locs)} URLs")
        url_set.update(loc for loc in locs if loc)

    current_urls = sorted(url_set)
    logger.info(f"Retrieved {len(current_urls)} unique URLs")
    return current_urls


def run(
    config: Dict[str, Any],
    fetcher=None,
    now: Optional[datetime] = None,
) -> RunLogEntry:
    """
    4.0 Execute one full pipeline run.

    Args:
        config: Configuration dictionary (see config.DEFAULT_CONFIG)
        fetcher: Optional fetcher override; built from config when None
        now: Optional run timestamp; defaults to the current UTC time

    Returns:
        The run log entry recorded for this run
    """
    run_ts = now or datetime.now(timezone.utc)
    fetcher = fetcher or create_fetcher(config)
    data_processor = DataProcessor(data_dir=config.get("data_directory", "."))

    # 4.1 Discovery
    sitemap_urls = discover_sitemap_urls(
        fetcher,
        config["sitemap_index_url"],
        config["fallback_sitemap_urls"],
    )

    # 4.2 Aggregation
    current_urls = collect_current_urls(fetcher, sitemap_urls)
    if not current_urls:
        logger.warning("Crawl returned no URLs; the archive will be overwritten with an empty list")

    # 4.3 Diff
    archive = data_processor.load_archive()
    diff = diff_urls(current_urls, archive)

    # 4.4 Persist
    return data_processor.persist_run(diff, run_ts)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Find URLs that are new since the last sitemap crawl"
    )
    parser.add_argument(
        "--config", "-c",
        default=CONFIG_FILE_PATH,
        help=f"Configuration file (default: {CONFIG_FILE_PATH}; built-in defaults if absent)"
    )
    parser.add_argument(
        "--data-dir",
        default=None,
        help="Directory for the archive, run log and output files (overrides config)"
    )
    parser.add_argument(
        "--fetcher",
        choices=FETCHER_CHOICES,
        default=None,
        help="Fetch sitemaps with a headless browser or plain HTTP (overrides config)"
    )
    parser.add_argument(
        "--log-file",
        default=DEFAULT_LOG_FILE,
        help=f"Log file (default: {DEFAULT_LOG_FILE}); pass an empty string to disable"
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """
    5.0 Command-line entry point.

    Returns:
        0 on a completed run, 1 on bad configuration or any fatal error
    """
    args = parse_args(argv)
    setup_logging(args.log_file or None)

    logger.info("=" * 60)
    logger.info("Starting new URL monitor")
    logger.info(f"Run timestamp: {datetime.now(timezone.utc).isoformat()}")
    logger.info("=" * 60)

    config = load_config(args.config)
    if not config:
        logger.error("Failed to load configuration. Exiting.")
        return 1
    if args.data_dir:
        config["data_directory"] = args.data_dir
    if args.fetcher:
        config["fetcher"] = args.fetcher

    try:
        entry = run(config)
    except Exception as e:
        logger.exception(f"Run failed: {type(e).__name__}: {e}")
        return 1

    logger.info("=" * 60)
    logger.info(
        f"Run complete: {entry.new_urls_count} new, "
        f"{entry.existing_urls_count} existing, {entry.total_urls_count} total"
    )
    logger.info("=" * 60)
    return 0


if __name__ == "__main__":
    sys.exit(main())
