import logging
import os
from pathlib import Path

from fastapi import FastAPI, File, UploadFile, status
from fastapi.responses import FileResponse, JSONResponse, Response
from pydantic import BaseModel

from pdf_service import __version__, log
from pdf_service.conversion import ConversionService, LibreOfficeConverter, MemoryJobStore
from pdf_service.conversion.archive import ARCHIVE_NAME
from pdf_service.conversion.errors import (
    ArchiveError,
    ConversionError,
    JobCancelledError,
    JobNotFoundError,
    UnsupportedFileTypeError,
    UploadTooLargeError,
)

app = FastAPI(
    title="Office to PDF Conversion Service",
    version=os.getenv("DOC_SERVICE_VERSION", __version__),
    description=(
        "RESTful API for converting PowerPoint and Word documents to PDF "
        "and downloading the results individually or as a ZIP archive."
    ),
)

logger = logging.getLogger(__name__)

# Global configuration defaults
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
DATA_DIR = Path(os.getenv("DATA_DIR", "./data")).resolve()
UPLOAD_DIR = Path(os.getenv("UPLOAD_DIR", str(DATA_DIR / "uploads"))).resolve()
OUTPUT_DIR = Path(os.getenv("OUTPUT_DIR", str(DATA_DIR / "converted"))).resolve()
SCRATCH_DIR = Path(os.getenv("SCRATCH_DIR", str(DATA_DIR / "temp"))).resolve()
MAX_UPLOAD_MB = int(os.getenv("MAX_UPLOAD_MB", "100"))
LIBREOFFICE_BIN = os.getenv("LIBREOFFICE_BIN", "libreoffice")
CONVERT_TIMEOUT_SEC = float(os.getenv("CONVERT_TIMEOUT_SEC", "60"))
RETENTION_SEC = float(os.getenv("RETENTION_SEC", str(24 * 60 * 60)))
CLEANUP_INTERVAL_SEC = float(os.getenv("CLEANUP_INTERVAL_SEC", str(60 * 60)))

SERVICE: ConversionService | None = None


class ZipRequest(BaseModel):
    fileIds: list[int]


def _error(status_code: int, message: str, error: object | None = None) -> JSONResponse:
    body: dict[str, object] = {"message": message}
    if error is not None:
        body["error"] = str(error)
    return JSONResponse(status_code=status_code, content=body)


def _service() -> ConversionService:
    assert SERVICE is not None
    return SERVICE


def build_service() -> ConversionService:
    converter = LibreOfficeConverter(str(SCRATCH_DIR), binary=LIBREOFFICE_BIN, timeout=CONVERT_TIMEOUT_SEC)
    return ConversionService(
        store=MemoryJobStore(),
        converter=converter,
        upload_dir=str(UPLOAD_DIR),
        output_dir=str(OUTPUT_DIR),
        max_upload_mb=MAX_UPLOAD_MB,
        retention_seconds=RETENTION_SEC,
        cleanup_interval_seconds=CLEANUP_INTERVAL_SEC,
    )


@app.on_event("startup")
async def _startup() -> None:
    log.configure(LOG_LEVEL)
    global SERVICE
    SERVICE = build_service()
    await SERVICE.start()
    logger.info("Service started; data under %s", DATA_DIR)


@app.on_event("shutdown")
async def _shutdown() -> None:
    global SERVICE
    if SERVICE is not None:
        await SERVICE.stop()


@app.get("/health")
def health() -> dict[str, str]:
    """Basic health check endpoint."""
    return {"status": "ok"}


@app.post("/api/conversion")
async def create_conversion(file: UploadFile | None = File(None)) -> JSONResponse:
    """Convert one uploaded document to PDF.

    Accepts multipart/form-data with a single part named "file". The
    conversion runs to completion inside this request; the response carries
    the job id and the URL of the resulting PDF.
    """
    if file is None or not file.filename:
        return _error(status.HTTP_400_BAD_REQUEST, "No file uploaded")

    async def read_chunk(n: int) -> bytes:
        return await file.read(n)

    service = _service()
    try:
        result = await service.submit(file.filename, read_chunk, file.content_type or "")
    except UnsupportedFileTypeError as e:
        return _error(status.HTTP_415_UNSUPPORTED_MEDIA_TYPE, str(e))
    except UploadTooLargeError as e:
        return _error(status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, "File too large", e)
    except JobCancelledError as e:
        return _error(status.HTTP_409_CONFLICT, "Conversion cancelled", e)
    except ConversionError as e:
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Conversion failed", e)
    except OSError as e:
        logger.exception("Upload error")
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "File upload failed", e)
    except Exception as e:
        logger.exception("Conversion error")
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Conversion failed", e)
    return JSONResponse(content=result.to_dict())


@app.get("/api/conversion")
def list_conversions() -> JSONResponse:
    return JSONResponse(content=[job.to_dict() for job in _service().list_jobs()])


@app.get("/api/conversion/{job_id}")
def get_conversion(job_id: int) -> JSONResponse:
    try:
        job = _service().get_job(job_id)
    except JobNotFoundError as e:
        return _error(status.HTTP_404_NOT_FOUND, "Conversion job not found", e)
    return JSONResponse(content=job.to_dict())


@app.post("/api/conversion/{job_id}/cancel")
def cancel_conversion(job_id: int) -> JSONResponse:
    try:
        job, changed = _service().cancel(job_id)
    except JobNotFoundError as e:
        return _error(status.HTTP_404_NOT_FOUND, "Conversion job not found", e)
    message = "Conversion cancelled" if changed else f"Conversion already {job.status}"
    return JSONResponse(content={"message": message, "status": job.status})


@app.get("/api/files/{job_id}/{filename}")
def get_file(job_id: int, filename: str) -> Response:
    # The filename is only echoed back for display; lookup is by job id.
    try:
        path = _service().resolve_output(job_id)
    except JobNotFoundError:
        return _error(status.HTTP_404_NOT_FOUND, "File not found")
    return FileResponse(path, media_type="application/pdf", filename=filename)


@app.post("/api/download/zip")
def download_zip(request: ZipRequest) -> Response:
    if not request.fileIds:
        return _error(status.HTTP_400_BAD_REQUEST, "No file IDs provided")
    try:
        content = _service().build_archive(request.fileIds)
    except ArchiveError as e:
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Error creating ZIP file", e)
    headers = {"Content-Disposition": f"attachment; filename={ARCHIVE_NAME}"}
    return Response(content=content, media_type="application/zip", headers=headers)


def run() -> None:
    """Run a development ASGI server using uvicorn.

    Exposes the app at host:port (default 0.0.0.0:8080). Set PORT env var to override.
    """
    import uvicorn

    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8080"))
    # Enable reload in dev unless explicitly disabled
    reload = os.getenv("RELOAD", "true").lower() in {"1", "true", "yes", "on"}

    uvicorn.run("pdf_service.webapi:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    run()
