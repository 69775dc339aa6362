"""Client-side upload queue for the conversion API.

Mirrors the server's job states per selected file and drives batch
submission, cancellation and downloads over HTTP with `requests`. The
Streamlit page keeps one `UploadQueue` per session.
"""

import dataclasses
import logging
import os
import secrets
import string
import threading
import time
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol

import requests

logger = logging.getLogger(__name__)

API_BASE = os.getenv("DOC_SERVICE_API_BASE", os.getenv("API_BASE", "http://localhost:8080")).rstrip("/")
REQUEST_TIMEOUT_SEC = float(os.getenv("DOC_SERVICE_UI_TIMEOUT", "30"))
PACING_SEC = float(os.getenv("DOC_SERVICE_UI_PACING", "0.5"))
CONCURRENCY = int(os.getenv("DOC_SERVICE_UI_CONCURRENCY", "1"))

MAX_FILES = 10
MAX_FILE_SIZE = 100 * 1024 * 1024
ACCEPTED_EXTENSIONS = (".ppt", ".pptx", ".doc", ".docx")


class FileStatus:
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class FileSource(Protocol):
    """What the queue needs from a selected file (Streamlit's UploadedFile fits)."""

    name: str
    size: int
    type: str | None

    def getvalue(self) -> bytes:
        ...


@dataclass(frozen=True)
class UploadedFile:
    id: str
    name: str
    size: int
    source: Any
    created_at: datetime
    content_type: str = "application/octet-stream"
    status: str = FileStatus.QUEUED
    progress: int = 0
    error: str | None = None
    job_id: int | None = None
    pdf_url: str | None = None
    pdf_size: int | None = None


@dataclass(frozen=True)
class ConvertedFile:
    id: int
    name: str
    url: str
    size: int
    date_converted: datetime


@dataclass(frozen=True)
class BatchSummary:
    succeeded: int = 0
    failed: int = 0
    cancelled: int = 0


class ArchiveDownloadError(Exception):
    """Raised when the server cannot produce the ZIP bundle."""


def generate_id() -> str:
    alphabet = string.ascii_lowercase + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(10))


def format_file_size(num_bytes: int) -> str:
    if num_bytes == 0:
        return "0 Bytes"
    size = float(num_bytes)
    for unit in ("Bytes", "KB", "MB"):
        if size < 1024:
            return f"{round(size, 2):g} {unit}"
        size /= 1024
    return f"{round(size, 2):g} GB"


class UploadQueue:
    def __init__(
        self,
        api_base: str = API_BASE,
        *,
        session: requests.Session | None = None,
        timeout: float = REQUEST_TIMEOUT_SEC,
        pacing: float = PACING_SEC,
        concurrency: int = CONCURRENCY,
        on_change: Callable[["UploadQueue"], None] | None = None,
    ) -> None:
        self._api_base = api_base.rstrip("/")
        self._session = session or requests.Session()
        self._timeout = timeout
        self._pacing = pacing
        self._concurrency = max(1, concurrency)
        self._on_change = on_change
        self._lock = threading.RLock()
        self._files: list[UploadedFile] = []
        self._converted: list[ConvertedFile] = []
        self._downloads: dict[int, bytes] = {}

    @property
    def files(self) -> list[UploadedFile]:
        with self._lock:
            return list(self._files)

    @property
    def converted(self) -> list[ConvertedFile]:
        with self._lock:
            return list(self._converted)

    def get(self, file_id: str) -> UploadedFile | None:
        with self._lock:
            return next((f for f in self._files if f.id == file_id), None)

    def add_files(self, sources: Iterable[FileSource]) -> list[str]:
        """Queue the acceptable files and return user-facing warnings.

        Files with other extensions or over the size limit are dropped and at
        most MAX_FILES are kept. Nothing is sent to the server.
        """
        sources = list(sources)
        warnings: list[str] = []

        typed = [s for s in sources if Path(s.name).suffix.lower() in ACCEPTED_EXTENSIONS]
        if len(typed) < len(sources):
            warnings.append("Invalid file type. Please upload only PowerPoint (.ppt, .pptx) or Word (.doc, .docx) files.")

        sized = [s for s in typed if s.size <= MAX_FILE_SIZE]
        if len(sized) < len(typed):
            warnings.append("File size exceeded. Maximum file size is 100MB.")

        accepted = sized[:MAX_FILES]
        if len(accepted) < len(sized):
            warnings.append(
                f"Maximum {MAX_FILES} files can be uploaded at once. Only the first {MAX_FILES} will be processed."
            )

        now = datetime.now()
        new_files = [
            UploadedFile(
                id=generate_id(),
                name=s.name,
                size=s.size,
                source=s,
                created_at=now,
                content_type=getattr(s, "type", None) or "application/octet-stream",
            )
            for s in accepted
        ]
        with self._lock:
            self._files.extend(new_files)
        for w in warnings:
            logger.warning(w)
        if new_files:
            self._changed()
        return warnings

    def remove(self, file_id: str) -> None:
        with self._lock:
            self._files = [f for f in self._files if f.id != file_id]
        self._changed()

    def clear_all(self) -> None:
        """Forget every tracked file. Server-side conversions keep running."""
        with self._lock:
            self._files = []
        self._changed()

    def cancel(self, file_id: str) -> None:
        """Ask the server to cancel, then mark the file cancelled locally whatever it says."""
        file = self.get(file_id)
        if file is None:
            return
        if file.job_id is not None:
            try:
                resp = self._session.post(
                    f"{self._api_base}/api/conversion/{file.job_id}/cancel", timeout=self._timeout
                )
                logger.info("Cancel response status for job %s: %s", file.job_id, resp.status_code)
            except requests.RequestException as e:
                logger.warning("Cancel request for job %s failed: %s", file.job_id, e)
        self._replace(file_id, status=FileStatus.CANCELLED)

    def submit_all(self) -> BatchSummary:
        """Convert every queued file and report how the batch went.

        With the default concurrency of 1, each file's round trip finishes
        before the next upload starts, with `pacing` seconds in between.
        """
        with self._lock:
            batch = [f.id for f in self._files if f.status == FileStatus.QUEUED]
            self._files = [
                dataclasses.replace(f, status=FileStatus.PROCESSING, progress=0) if f.id in batch else f
                for f in self._files
            ]
        if not batch:
            return BatchSummary()
        self._changed()
        logger.info("Submitting %d files (concurrency %d)", len(batch), self._concurrency)

        if self._concurrency == 1:
            outcomes = []
            for i, file_id in enumerate(batch):
                if i and self._pacing > 0:
                    time.sleep(self._pacing)
                outcomes.append(self._submit_one(file_id))
        else:
            with ThreadPoolExecutor(max_workers=self._concurrency) as pool:
                outcomes = list(pool.map(self._submit_one, batch))

        summary = BatchSummary(
            succeeded=outcomes.count(FileStatus.COMPLETED),
            failed=outcomes.count(FileStatus.FAILED),
            cancelled=outcomes.count(FileStatus.CANCELLED),
        )
        logger.info("Batch finished: %d succeeded, %d failed", summary.succeeded, summary.failed)
        return summary

    def _submit_one(self, file_id: str) -> str:
        file = self.get(file_id)
        if file is None or file.status == FileStatus.CANCELLED:
            return FileStatus.CANCELLED
        try:
            files = {"file": (file.name, file.source.getvalue(), file.content_type)}
            resp = self._session.post(f"{self._api_base}/api/conversion", files=files, timeout=self._timeout)
        except requests.Timeout:
            return self._fail(file_id, f"NetworkTimeout: no response within {self._timeout:g} seconds")
        except requests.RequestException as e:
            return self._fail(file_id, f"Failed to connect to API: {e}")

        if not resp.ok:
            return self._fail(file_id, f"Error: {resp.status_code} {_error_message(resp)}")

        try:
            data = resp.json()
            converted = ConvertedFile(
                id=int(data["id"]),
                name=str(data["name"]),
                url=str(data["pdfUrl"]),
                size=int(data["pdfSize"]),
                date_converted=datetime.now(),
            )
        except (ValueError, KeyError, TypeError) as e:
            return self._fail(file_id, f"Unexpected response from API: {e}")
        with self._lock:
            current = self.get(file_id)
            if current is None or current.status == FileStatus.CANCELLED:
                return FileStatus.CANCELLED
            self._replace(
                file_id,
                status=FileStatus.COMPLETED,
                progress=100,
                job_id=converted.id,
                pdf_url=converted.url,
                pdf_size=converted.size,
            )
            self._converted.append(converted)
        return FileStatus.COMPLETED

    def _fail(self, file_id: str, message: str) -> str:
        logger.error("Conversion failed for %s: %s", file_id, message)
        with self._lock:
            current = self.get(file_id)
            if current is None or current.status == FileStatus.CANCELLED:
                return FileStatus.CANCELLED
            self._replace(file_id, status=FileStatus.FAILED, error=message)
        return FileStatus.FAILED

    def download_file(self, converted: ConvertedFile) -> bytes:
        """Fetch a converted PDF once; later calls reuse the stored bytes."""
        with self._lock:
            cached = self._downloads.get(converted.id)
        if cached is not None:
            return cached
        resp = self._session.get(f"{self._api_base}{converted.url}", timeout=self._timeout)
        resp.raise_for_status()
        with self._lock:
            self._downloads[converted.id] = resp.content
        return resp.content

    def download_zip(self) -> bytes:
        ids = [c.id for c in self.converted]
        if not ids:
            raise ArchiveDownloadError("No files to download. Please convert files first.")
        try:
            resp = self._session.post(
                f"{self._api_base}/api/download/zip", json={"fileIds": ids}, timeout=self._timeout
            )
        except requests.RequestException as e:
            raise ArchiveDownloadError(
                f"Failed to create ZIP file ({e}). Download files individually instead."
            ) from e
        if not resp.ok:
            raise ArchiveDownloadError(
                f"Failed to create ZIP file ({resp.status_code}). Download files individually instead."
            )
        return resp.content

    def _replace(self, file_id: str, **changes: object) -> None:
        with self._lock:
            self._files = [dataclasses.replace(f, **changes) if f.id == file_id else f for f in self._files]
        self._changed()

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change(self)


def _error_message(resp: requests.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text
    if isinstance(body, dict):
        return str(body.get("error") or body.get("message") or body)
    return str(body)
