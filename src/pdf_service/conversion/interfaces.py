from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Protocol


class JobStatus:
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    TERMINAL = frozenset({COMPLETED, FAILED, CANCELLED})


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def isoformat(ts: datetime) -> str:
    return ts.isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class ConversionJob:
    id: int
    original_file_name: str
    original_file_path: str
    file_size: int
    created_at: datetime
    updated_at: datetime
    status: str = JobStatus.QUEUED
    progress: int = 0
    output_file_path: str | None = None
    output_file_size: int | None = None
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in JobStatus.TERMINAL

    def to_dict(self) -> dict[str, object]:
        # Filesystem paths stay server-side.
        return {
            "id": self.id,
            "originalFileName": self.original_file_name,
            "fileSize": self.file_size,
            "status": self.status,
            "progress": self.progress,
            "outputFileSize": self.output_file_size,
            "error": self.error,
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
        }


class ConverterGateway(Protocol):
    def convert(self, input_path: str, output_path: str) -> None:
        """Convert the document at input_path into a PDF at output_path.

        This is a blocking call; callers should offload to threads if needed.
        Raises a ConversionError subclass on failure.
        """


class JobStore(Protocol):
    def create(self, original_file_name: str, original_file_path: str, file_size: int) -> ConversionJob:
        ...

    def get(self, job_id: int) -> ConversionJob | None:
        ...

    def update(self, job_id: int, **fields: object) -> ConversionJob:
        ...

    def transition(self, job_id: int, status: str, **fields: object) -> ConversionJob:
        ...

    def list(self) -> list[ConversionJob]:
        ...

    def delete(self, job_id: int) -> bool:
        ...
