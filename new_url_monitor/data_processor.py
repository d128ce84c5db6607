"""
1.0 Data Processor Module
Handles change detection against the URL archive and all run output.

Files written to the data directory:
    all_urls.txt              (archive: every URL from the latest crawl)
    new_urls_YYYY-MM-DD.txt   (URLs first seen on that date)
    latest_new_urls.txt       (copy of the most recent new-URL list)
    run_log.json              (one summary entry per date, newest first)
    changes_YYYY-MM.csv       (monthly log of discovered/removed URLs)

Each file is replaced atomically on its own, but there is no transaction
across files: an interrupted run can leave them out of step.
"""

import json
import logging
import os
import tempfile
from dataclasses import dataclass, asdict, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set, Tuple, Any
from urllib.parse import urlparse

import pandas as pd

from new_url_monitor.errors import PersistenceError

logger = logging.getLogger(__name__)

# 1.1 File name constants
ARCHIVE_FILENAME = "all_urls.txt"
LATEST_NEW_URLS_FILENAME = "latest_new_urls.txt"
RUN_LOG_FILENAME = "run_log.json"
NEW_URLS_FILENAME_TEMPLATE = "new_urls_{date}.txt"
CHANGE_LOG_FILENAME_TEMPLATE = "changes_{month}.csv"

CHANGE_LOG_COLUMNS = ["detected_at", "loc", "change_type", "section", "path_depth"]


@dataclass
class DiffResult:
    """Outcome of comparing one crawl against the archive."""
    current_urls: List[str]
    new_urls: List[str]
    removed_urls: List[str] = field(default_factory=list)

    @property
    def total_count(self) -> int:
        return len(self.current_urls)

    @property
    def existing_count(self) -> int:
        return len(self.current_urls) - len(self.new_urls)


@dataclass
class RunLogEntry:
    """Summary of one run, keyed by its calendar date."""
    date: str
    timestamp: str
    new_urls_count: int
    existing_urls_count: int
    total_urls_count: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# =========================================================================
# 2.0 CHANGE DETECTION
# =========================================================================

def diff_urls(current_urls: Iterable[str], archive: Set[str]) -> DiffResult:
    """
    2.1 Classify each current URL as new or already archived.

    Args:
        current_urls: Deduplicated URLs from this crawl, in the order to report them.
        archive: URLs recorded by the previous run.

    Returns:
        DiffResult whose new_urls keeps the order of current_urls.
    """
    current = list(current_urls)
    current_set = set(current)
    new_urls = [url for url in current if url not in archive]
    removed_urls = sorted(archive - current_set)
    return DiffResult(current_urls=current, new_urls=new_urls, removed_urls=removed_urls)


def categorize_url(url: str) -> Tuple[Optional[str], int]:
    """2.2 Return (section, path_depth) for a URL; section is the first path segment."""
    segments = [s for s in urlparse(url).path.split("/") if s]
    section = segments[0] if segments else None
    return section, len(segments)


def _default_file_mode() -> int:
    # os.umask can only be read by setting it
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask


class DataProcessor:
    """
    3.0 DataProcessor Class
    Reads the archive and writes every artifact of a run.
    """

    def __init__(self, data_dir: str = "."):
        """
        3.1 Initialize the data processor.

        Args:
            data_dir: Directory holding the archive, run log and outputs (default: ".")
        """
        self.data_dir = data_dir
        try:
            os.makedirs(self.data_dir, exist_ok=True)
        except OSError as e:
            raise PersistenceError(f"Could not create data directory {data_dir}: {e}") from e
        logger.info(f"DataProcessor initialized with data directory: {data_dir}")

    # =========================================================================
    # 4.0 FILE HELPERS
    # =========================================================================

    def _path(self, filename: str) -> str:
        return os.path.join(self.data_dir, filename)

    def new_urls_path(self, date_str: str) -> str:
        return self._path(NEW_URLS_FILENAME_TEMPLATE.format(date=date_str))

    def change_log_path(self, run_ts: datetime) -> str:
        return self._path(CHANGE_LOG_FILENAME_TEMPLATE.format(month=run_ts.strftime("%Y-%m")))

    def _write_text_atomic(self, path: str, text: str) -> None:
        """
        4.1 Replace path with text via a temp file in the same directory.

        Readers see either the old file or the new one, never a partial write.
        The result gets the umask-derived mode of a plainly created file.
        """
        tmp_path = None
        try:
            with tempfile.NamedTemporaryFile(
                mode="w",
                encoding="utf-8",
                newline="",
                dir=os.path.dirname(path) or ".",
                prefix=".tmp_",
                delete=False,
            ) as tmp:
                tmp_path = tmp.name
                tmp.write(text)
            os.chmod(tmp_path, _default_file_mode())
            os.replace(tmp_path, path)
        except OSError as e:
            if tmp_path and os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise PersistenceError(f"Could not write {path}: {e}") from e

    # =========================================================================
    # 5.0 ARCHIVE
    # =========================================================================

    def load_archive(self) -> Set[str]:
        """5.1 Load the previous run's URLs as a set. Missing file means an empty archive."""
        path = self._path(ARCHIVE_FILENAME)
        if not os.path.exists(path):
            logger.info(f"No archive at {path}; treating every URL as new")
            return set()
        try:
            with open(path, "r", encoding="utf-8") as f:
                archive = {line for line in f.read().splitlines() if line}
        except OSError as e:
            raise PersistenceError(f"Could not read archive {path}: {e}") from e
        logger.info(f"Loaded archive: {len(archive):,} URLs")
        return archive

    def save_archive(self, current_urls: List[str]) -> None:
        """5.2 Overwrite the archive with the full current crawl, sorted."""
        path = self._path(ARCHIVE_FILENAME)
        self._write_text_atomic(path, "\n".join(sorted(current_urls)))
        logger.info(f"Saved archive: {len(current_urls):,} URLs to {path}")

    # =========================================================================
    # 6.0 NEW URL LISTS
    # =========================================================================

    def save_new_urls(self, new_urls: List[str], date_str: str) -> None:
        """6.1 Write the new-URL list to the dated file and to the 'latest' file."""
        text = "\n".join(new_urls)
        dated_path = self.new_urls_path(date_str)
        self._write_text_atomic(dated_path, text)
        self._write_text_atomic(self._path(LATEST_NEW_URLS_FILENAME), text)
        logger.info(f"Saved {len(new_urls):,} new URLs to {dated_path}")

    # =========================================================================
    # 7.0 RUN LOG
    # =========================================================================

    def load_run_log(self) -> List[Dict[str, Any]]:
        """7.1 Load the run log. Missing file means an empty log."""
        path = self._path(RUN_LOG_FILENAME)
        if not os.path.exists(path):
            return []
        try:
            with open(path, "r", encoding="utf-8") as f:
                run_log = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(f"Could not read run log {path}: {e}") from e
        if not isinstance(run_log, list):
            raise PersistenceError(f"Run log {path} is not a JSON list")
        if not all(isinstance(e, dict) for e in run_log):
            raise PersistenceError(f"Run log {path} contains entries that are not JSON objects")
        return run_log

    def update_run_log(self, entry: RunLogEntry) -> List[Dict[str, Any]]:
        """
        7.2 Put entry at the head of the run log.

        Any existing entry for the same date is dropped, so a date never
        appears twice and a re-run reflects the latest counts.
        """
        run_log = [e for e in self.load_run_log() if e.get("date") != entry.date]
        run_log.insert(0, entry.to_dict())
        path = self._path(RUN_LOG_FILENAME)
        self._write_text_atomic(path, json.dumps(run_log, indent=2))
        logger.info(f"Updated run log {path}: {len(run_log)} entries")
        return run_log

    # =========================================================================
    # 8.0 CHANGE LOG
    # =========================================================================

    def save_change_log(self, diff: DiffResult, run_ts: datetime) -> Optional[str]:
        """
        8.1 Append discovered and removed URLs to the monthly CSV change log.

        Returns the path written, or None when there were no changes.
        """
        rows = []
        for change_type, urls in (("discovered", diff.new_urls), ("removed", diff.removed_urls)):
            for url in urls:
                section, path_depth = categorize_url(url)
                rows.append({
                    "detected_at": run_ts.isoformat(),
                    "loc": url,
                    "change_type": change_type,
                    "section": section,
                    "path_depth": path_depth,
                })
        if not rows:
            return None

        changes_df = pd.DataFrame(rows, columns=CHANGE_LOG_COLUMNS)
        path = self.change_log_path(run_ts)
        file_exists = os.path.exists(path)
        try:
            changes_df.to_csv(path, mode="a", header=not file_exists, index=False)
        except OSError as e:
            raise PersistenceError(f"Could not write change log {path}: {e}") from e

        counts = changes_df["change_type"].value_counts().to_dict()
        logger.info(f"Appended changes to {path}: {counts}")
        return path

    # =========================================================================
    # 9.0 MAIN PERSISTENCE METHOD
    # =========================================================================

    def persist_run(self, diff: DiffResult, run_ts: datetime) -> RunLogEntry:
        """
        9.1 Write every artifact for a run.

        Order: new-URL lists, archive, run log, change log.

        Args:
            diff: Result of diff_urls for this run
            run_ts: Timezone-aware run timestamp; its date names the output files

        Returns:
            The RunLogEntry written to the run log
        """
        date_str = run_ts.date().isoformat()

        self.save_new_urls(diff.new_urls, date_str)
        self.save_archive(diff.current_urls)

        entry = RunLogEntry(
            date=date_str,
            timestamp=run_ts.isoformat(),
            new_urls_count=len(diff.new_urls),
            existing_urls_count=diff.existing_count,
            total_urls_count=diff.total_count,
        )
        self.update_run_log(entry)
        self.save_change_log(diff, run_ts)

        logger.info(
            f"Run {date_str}: {entry.new_urls_count} new, "
            f"{entry.existing_urls_count} existing, {entry.total_urls_count} total"
        )
        return entry
