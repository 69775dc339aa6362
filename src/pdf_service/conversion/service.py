import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import quote

from . import cleanup
from .adapters import SUPPORTED_MIME_TYPES, file_type
from .archive import build_zip
from .errors import (
    InvalidTransitionError,
    JobCancelledError,
    JobNotFoundError,
    UnsupportedFileTypeError,
    UploadTooLargeError,
)
from .interfaces import ConversionJob, ConverterGateway, JobStatus, JobStore

logger = logging.getLogger(__name__)

CHUNK = 1024 * 1024

Reader = Callable[[int], Awaitable[bytes]]


@dataclass(frozen=True)
class JobResult:
    id: int
    name: str
    pdf_url: str
    pdf_size: int

    def to_dict(self) -> dict[str, object]:
        return {"id": self.id, "name": self.name, "pdfUrl": self.pdf_url, "pdfSize": self.pdf_size}


def file_url(job_id: int, filename: str) -> str:
    return f"/api/files/{job_id}/{quote(filename, safe='')}"


class ConversionService:
    """Core domain service orchestrating conversion jobs.

    Framework-agnostic: the HTTP layer hands it an upload reader and gets back
    a result descriptor, while the store and converter are injected gateways.
    Each submission is converted inside the calling request; there is no
    background queue.
    """

    def __init__(
        self,
        store: JobStore,
        converter: ConverterGateway,
        *,
        upload_dir: str,
        output_dir: str,
        max_upload_mb: int = 100,
        retention_seconds: float = 24 * 60 * 60,
        cleanup_interval_seconds: float = 60 * 60,
    ) -> None:
        self._store = store
        self._converter = converter
        self._upload_dir = Path(upload_dir).resolve()
        self._output_dir = Path(output_dir).resolve()
        self._max_upload_mb = max_upload_mb
        self._retention = retention_seconds
        self._cleanup_interval = cleanup_interval_seconds
        self._tasks: list[asyncio.Task] = []

    async def start(self) -> None:
        for d in (self._upload_dir, self._output_dir):
            d.mkdir(parents=True, exist_ok=True)
        self._tasks.append(asyncio.create_task(self._cleanup_loop()))

    async def stop(self) -> None:
        for t in self._tasks:
            t.cancel()
        self._tasks.clear()

    async def save_upload(self, filename: str, reader: Reader, content_type: str = "") -> tuple[Path, int]:
        """Stream an upload to the upload directory, enforcing the size limit.

        The file is accepted when either its extension or its MIME type names
        a PowerPoint or Word document.
        """
        if file_type(filename) is None and content_type.strip().lower() not in SUPPORTED_MIME_TYPES:
            raise UnsupportedFileTypeError(
                "Only PowerPoint (.ppt, .pptx) and Word (.doc, .docx) files are allowed"
            )
        self._upload_dir.mkdir(parents=True, exist_ok=True)
        input_path = self._upload_dir / f"{uuid.uuid4().hex}{Path(filename).suffix.lower()}"

        size_bytes = 0
        max_bytes = self._max_upload_mb * 1024 * 1024
        try:
            with input_path.open("wb") as f_out:
                while True:
                    chunk = await reader(CHUNK)
                    if not chunk:
                        break
                    size_bytes += len(chunk)
                    if size_bytes > max_bytes:
                        raise UploadTooLargeError(f"upload exceeds {self._max_upload_mb} MB")
                    f_out.write(chunk)
        except BaseException:
            # Aborted or failed reads leave no partial upload behind.
            input_path.unlink(missing_ok=True)
            raise
        return input_path, input_path.stat().st_size

    async def submit(self, filename: str, reader: Reader, content_type: str = "") -> JobResult:
        original_name = Path(filename or "upload").name
        input_path, size = await self.save_upload(original_name, reader, content_type)
        job = self._store.create(original_name, str(input_path), size)

        output_name = f"{Path(original_name).stem}.pdf"
        output_path = self._output_dir / f"{job.id}_{output_name}"

        try:
            self._store.transition(job.id, JobStatus.PROCESSING, progress=0)
            await asyncio.to_thread(self._converter.convert, str(input_path), str(output_path))
            output_size = output_path.stat().st_size
        except InvalidTransitionError as e:
            raise JobCancelledError(f"Conversion job {job.id} was cancelled") from e
        except Exception as e:
            logger.error("Conversion of job %s (%s) failed: %s", job.id, original_name, e)
            self._fail(job.id, str(e))
            raise

        try:
            self._store.transition(
                job.id,
                JobStatus.COMPLETED,
                progress=100,
                output_file_path=str(output_path),
                output_file_size=output_size,
            )
        except InvalidTransitionError as e:
            # Cancelled while the tool was running; the record stays cancelled.
            output_path.unlink(missing_ok=True)
            raise JobCancelledError(f"Conversion job {job.id} was cancelled") from e

        return JobResult(id=job.id, name=output_name, pdf_url=file_url(job.id, output_name), pdf_size=output_size)

    def _fail(self, job_id: int, message: str) -> None:
        try:
            self._store.transition(job_id, JobStatus.FAILED, error=message)
        except InvalidTransitionError as e:
            raise JobCancelledError(f"Conversion job {job_id} was cancelled") from e

    def cancel(self, job_id: int) -> tuple[ConversionJob, bool]:
        """Mark a job cancelled.

        Advisory only: a running conversion is not interrupted. Terminal jobs
        are returned unchanged with changed=False.
        """
        job = self.get_job(job_id)
        if job.is_terminal:
            return job, False
        try:
            job = self._store.transition(job_id, JobStatus.CANCELLED)
        except InvalidTransitionError:
            # Finished between the read and the transition.
            return self.get_job(job_id), False
        logger.info("Cancelled job %s", job_id)
        return job, True

    def get_job(self, job_id: int) -> ConversionJob:
        job = self._store.get(job_id)
        if job is None:
            raise JobNotFoundError(f"Conversion job with id {job_id} not found")
        return job

    def list_jobs(self) -> list[ConversionJob]:
        return self._store.list()

    def resolve_output(self, job_id: int) -> Path:
        job = self._store.get(job_id)
        if job is None or not job.output_file_path:
            raise JobNotFoundError("File not found")
        path = Path(job.output_file_path)
        if not path.is_file():
            raise JobNotFoundError("File not found")
        return path

    def build_archive(self, job_ids: list[int]) -> bytes:
        return build_zip(self._store, job_ids)

    def sweep(self) -> tuple[int, int]:
        return cleanup.sweep(self._store, (self._upload_dir, self._output_dir), self._retention)

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self._cleanup_interval)
            try:
                await asyncio.to_thread(self.sweep)
            except Exception:
                logger.exception("Error cleaning up old files")
