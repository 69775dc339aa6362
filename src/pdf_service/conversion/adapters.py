import dataclasses
import itertools
import logging
import shutil
import subprocess
import tempfile
import threading
from pathlib import Path

from .errors import (
    ConversionError,
    ConversionTimeoutError,
    InputNotFoundError,
    InvalidTransitionError,
    JobNotFoundError,
    OutputMoveFailedError,
    OutputNotProducedError,
    ToolNotInstalledError,
)
from .interfaces import ConversionJob, ConverterGateway, JobStatus, JobStore, utcnow

logger = logging.getLogger(__name__)

PRESENTATION_EXTENSIONS = frozenset({".ppt", ".pptx"})
DOCUMENT_EXTENSIONS = frozenset({".doc", ".docx"})
SUPPORTED_EXTENSIONS = PRESENTATION_EXTENSIONS | DOCUMENT_EXTENSIONS

SUPPORTED_MIME_TYPES = frozenset({
    "application/vnd.ms-powerpoint",  # .ppt
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",  # .pptx
    "application/msword",  # .doc
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",  # .docx
})

TOOL_MISSING_MESSAGE = "LibreOffice not installed. Please install LibreOffice to use the converter."


def file_type(filename: str) -> str | None:
    """Classify a filename as "presentation", "document" or None."""
    ext = Path(filename).suffix.lower()
    if ext in PRESENTATION_EXTENSIONS:
        return "presentation"
    if ext in DOCUMENT_EXTENSIONS:
        return "document"
    return None


class MemoryJobStore(JobStore):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._jobs: dict[int, ConversionJob] = {}

    def create(self, original_file_name: str, original_file_path: str, file_size: int) -> ConversionJob:
        with self._lock:
            now = utcnow()
            job = ConversionJob(
                id=next(self._ids),
                original_file_name=original_file_name,
                original_file_path=original_file_path,
                file_size=file_size,
                created_at=now,
                updated_at=now,
            )
            self._jobs[job.id] = job
        logger.info("Created job %s for %s (%d bytes)", job.id, original_file_name, file_size)
        return job

    def get(self, job_id: int) -> ConversionJob | None:
        with self._lock:
            return self._jobs.get(job_id)

    def update(self, job_id: int, **fields: object) -> ConversionJob:
        with self._lock:
            return self._replace(job_id, fields)

    def transition(self, job_id: int, status: str, **fields: object) -> ConversionJob:
        with self._lock:
            current = self._jobs.get(job_id)
            if current is None:
                raise JobNotFoundError(f"Conversion job with id {job_id} not found")
            if current.is_terminal:
                raise InvalidTransitionError(
                    f"Conversion job {job_id} is already {current.status}; cannot move to {status}"
                )
            job = self._replace(job_id, {**fields, "status": status})
        logger.info("Job %s: %s -> %s", job_id, current.status, status)
        return job

    def delete(self, job_id: int) -> bool:
        with self._lock:
            return self._jobs.pop(job_id, None) is not None

    def list(self) -> list[ConversionJob]:
        with self._lock:
            return list(self._jobs.values())

    def _replace(self, job_id: int, fields: dict[str, object]) -> ConversionJob:
        # Caller holds the lock.
        current = self._jobs.get(job_id)
        if current is None:
            raise JobNotFoundError(f"Conversion job with id {job_id} not found")
        job = dataclasses.replace(current, **fields, updated_at=utcnow())
        self._jobs[job_id] = job
        return job


class LibreOfficeConverter(ConverterGateway):
    """Runs LibreOffice headless against a private scratch copy of the input."""

    def __init__(self, scratch_root: str, *, binary: str = "libreoffice", timeout: float = 60) -> None:
        self._scratch_root = Path(scratch_root).resolve()
        self._binary = binary
        self._timeout = timeout

    def convert(self, input_path: str, output_path: str) -> None:
        source = Path(input_path)
        target = Path(output_path)
        if not source.exists():
            raise InputNotFoundError(f"Input file not found: {input_path}")
        target.parent.mkdir(parents=True, exist_ok=True)
        self._scratch_root.mkdir(parents=True, exist_ok=True)

        scratch = Path(tempfile.mkdtemp(prefix="convert-", dir=self._scratch_root))
        try:
            scratch_input = scratch / source.name
            shutil.copyfile(source, scratch_input)
            self._run_tool(scratch, scratch_input)

            produced = scratch / f"{source.stem}.pdf"
            if not produced.exists():
                raise OutputNotProducedError("PDF conversion failed - output file not created")
            shutil.move(str(produced), str(target))
            if not target.exists():
                raise OutputMoveFailedError("Failed to move converted PDF file")
        except Exception:
            target.unlink(missing_ok=True)
            raise
        finally:
            shutil.rmtree(scratch, ignore_errors=True)

    def _run_tool(self, scratch: Path, scratch_input: Path) -> None:
        profile = (scratch / "profile").as_uri()
        command = [
            self._binary,
            f"-env:UserInstallation={profile}",
            "--headless",
            "--convert-to", "pdf",
            "--outdir", str(scratch),
            str(scratch_input),
        ]
        logger.debug("Running %s", " ".join(command))
        try:
            subprocess.run(command, capture_output=True, text=True, errors="replace", timeout=self._timeout, check=True)
        except FileNotFoundError as e:
            raise ToolNotInstalledError(TOOL_MISSING_MESSAGE) from e
        except subprocess.TimeoutExpired as e:
            raise ConversionTimeoutError(f"Conversion timed out after {self._timeout:g} seconds") from e
        except subprocess.CalledProcessError as e:
            if e.returncode == 127:
                raise ToolNotInstalledError(TOOL_MISSING_MESSAGE) from e
            detail = (e.stderr or e.stdout or "").strip()
            raise ConversionError(f"LibreOffice exited with status {e.returncode}: {detail}") from e
