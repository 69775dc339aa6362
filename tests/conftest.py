import io
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from pdf_service import webapi
from pdf_service.conversion import ConversionService, MemoryJobStore
from pdf_service.conversion.errors import ConversionError

PDF_BYTES = b"%PDF-1.4\n% fake pdf\n%%EOF\n"


class FakeConverter:
    """Writes a small PDF instead of calling LibreOffice.

    Inputs whose name contains one of `fail_on` raise ConversionError.
    """

    def __init__(self, fail_on: tuple[str, ...] = ()) -> None:
        self.fail_on = fail_on
        self.calls: list[tuple[str, str]] = []
        self.before_write = None

    def convert(self, input_path: str, output_path: str) -> None:
        self.calls.append((input_path, output_path))
        if any(marker in Path(input_path).read_bytes().decode(errors="ignore") for marker in self.fail_on):
            raise ConversionError("PDF conversion failed - output file not created")
        if self.before_write is not None:
            self.before_write()
        Path(output_path).parent.mkdir(parents=True, exist_ok=True)
        Path(output_path).write_bytes(PDF_BYTES)


def make_reader(data: bytes):
    buf = io.BytesIO(data)

    async def reader(n: int) -> bytes:
        return buf.read(n)

    return reader


@pytest.fixture()
def store() -> MemoryJobStore:
    return MemoryJobStore()


@pytest.fixture()
def converter() -> FakeConverter:
    return FakeConverter(fail_on=("BROKEN",))


@pytest.fixture()
def service(tmp_path: Path, store: MemoryJobStore, converter: FakeConverter) -> ConversionService:
    return ConversionService(
        store=store,
        converter=converter,
        upload_dir=str(tmp_path / "uploads"),
        output_dir=str(tmp_path / "converted"),
        max_upload_mb=1,
    )


@pytest.fixture()
def client(service: ConversionService, monkeypatch: pytest.MonkeyPatch) -> TestClient:
    monkeypatch.setattr(webapi, "SERVICE", service)
    return TestClient(webapi.app)
