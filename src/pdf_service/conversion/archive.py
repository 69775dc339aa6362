import io
import logging
import zipfile
from collections.abc import Iterable
from pathlib import Path

from .errors import ArchiveError
from .interfaces import JobStatus, JobStore

logger = logging.getLogger(__name__)

ARCHIVE_NAME = "converted_pdfs.zip"


def build_zip(store: JobStore, job_ids: Iterable[int]) -> bytes:
    """Bundle the outputs of completed jobs into a ZIP archive.

    Ids that are unknown, not completed, or whose file is gone are skipped.
    An archive with no entries is still a valid ZIP.
    """
    buf = io.BytesIO()
    added = 0
    try:
        with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            for job_id in job_ids:
                job = store.get(job_id)
                if job is None or job.status != JobStatus.COMPLETED or not job.output_file_path:
                    logger.debug("Skipping job %s in archive: not completed", job_id)
                    continue
                path = Path(job.output_file_path)
                if not path.is_file():
                    logger.debug("Skipping job %s in archive: %s is gone", job_id, path)
                    continue
                zf.write(path, arcname=path.name)
                added += 1
    except (OSError, zipfile.BadZipFile, zipfile.LargeZipFile) as e:
        logger.exception("Error creating ZIP file")
        raise ArchiveError(str(e)) from e
    logger.info("Built archive with %d entries", added)
    return buf.getvalue()
