import logging
import time
from collections.abc import Iterable
from datetime import timedelta
from pathlib import Path

from .interfaces import JobStore, utcnow

logger = logging.getLogger(__name__)


def sweep_files(directories: Iterable[Path], max_age_seconds: float, *, now: float | None = None) -> int:
    """Delete regular files whose mtime is older than max_age_seconds.

    Returns the number of files removed. Only top-level files are touched.
    """
    now = time.time() if now is None else now
    removed = 0
    for directory in directories:
        if not directory.is_dir():
            continue
        for path in directory.iterdir():
            try:
                if not path.is_file():
                    continue
                if now - path.stat().st_mtime > max_age_seconds:
                    path.unlink()
                    removed += 1
            except FileNotFoundError:
                # Removed by someone else between listing and unlinking.
                continue
    return removed


def evict_jobs(store: JobStore, max_age_seconds: float) -> int:
    """Drop terminal job records that have not changed within the window."""
    cutoff = utcnow() - timedelta(seconds=max_age_seconds)
    evicted = 0
    for job in store.list():
        if job.is_terminal and job.updated_at < cutoff:
            if store.delete(job.id):
                evicted += 1
    return evicted


def sweep(store: JobStore, directories: Iterable[Path], max_age_seconds: float) -> tuple[int, int]:
    files = sweep_files(directories, max_age_seconds)
    jobs = evict_jobs(store, max_age_seconds)
    if files or jobs:
        logger.info("Cleanup removed %d files and %d job records", files, jobs)
    return files, jobs
