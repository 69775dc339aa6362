import io
import zipfile

from fastapi.testclient import TestClient

from pdf_service.conversion import ConversionService, JobStatus, MemoryJobStore
from pdf_service.conversion.adapters import TOOL_MISSING_MESSAGE
from pdf_service.conversion.errors import ToolNotInstalledError

from conftest import FakeConverter

PPTX_MIME = "application/vnd.openxmlformats-officedocument.presentationml.presentation"


def _upload(client: TestClient, name: str = "deck.pptx", data: bytes = b"deck", mime: str = PPTX_MIME):
    return client.post("/api/conversion", files={"file": (name, data, mime)})


class TestHealth:
    def test_ok(self, client: TestClient) -> None:
        assert client.get("/health").json() == {"status": "ok"}


class TestConversionEndpoint:
    def test_returns_descriptor(self, client: TestClient) -> None:
        resp = _upload(client)

        assert resp.status_code == 200
        body = resp.json()
        assert body["name"] == "deck.pdf"
        assert body["pdfUrl"] == f"/api/files/{body['id']}/deck.pdf"
        assert body["pdfSize"] > 0

    def test_missing_file_is_400(self, client: TestClient) -> None:
        resp = client.post("/api/conversion", files={"other": ("a.pptx", b"x", PPTX_MIME)})

        assert resp.status_code == 400
        assert resp.json() == {"message": "No file uploaded"}

    def test_unsupported_type_is_415(self, client: TestClient, store: MemoryJobStore) -> None:
        resp = _upload(client, name="photo.png", mime="image/png")

        assert resp.status_code == 415
        assert store.list() == []

    def test_oversized_upload_is_413(self, client: TestClient) -> None:
        resp = _upload(client, data=b"x" * (1024 * 1024 + 10))

        assert resp.status_code == 413

    def test_conversion_failure_is_500_and_recorded(self, client: TestClient, store: MemoryJobStore) -> None:
        resp = _upload(client, name="broken.docx", data=b"BROKEN")

        assert resp.status_code == 500
        body = resp.json()
        assert body["message"] == "Conversion failed"
        job = store.list()[-1]
        assert job.status == JobStatus.FAILED
        assert body["error"] == job.error

    def test_unexpected_converter_error_is_500_json(
        self, client: TestClient, store: MemoryJobStore, converter: FakeConverter, monkeypatch
    ) -> None:
        def garbled_output(input_path: str, output_path: str) -> None:
            raise UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte")

        monkeypatch.setattr(converter, "convert", garbled_output)

        resp = _upload(client)

        assert resp.status_code == 500
        body = resp.json()
        assert body["message"] == "Conversion failed"
        assert "invalid start byte" in body["error"]
        job = store.list()[0]
        assert job.status == JobStatus.FAILED
        assert "invalid start byte" in job.error

    def test_missing_tool_is_500_with_install_hint(
        self, client: TestClient, store: MemoryJobStore, converter: FakeConverter, monkeypatch
    ) -> None:
        def not_installed(input_path: str, output_path: str) -> None:
            raise ToolNotInstalledError(TOOL_MISSING_MESSAGE)

        monkeypatch.setattr(converter, "convert", not_installed)

        resp = _upload(client)

        assert resp.status_code == 500
        assert resp.json() == {"message": "Conversion failed", "error": TOOL_MISSING_MESSAGE}
        assert store.list()[0].status == JobStatus.FAILED

    def test_cancelled_while_converting_is_409(
        self, client: TestClient, service: ConversionService, store: MemoryJobStore, converter: FakeConverter
    ) -> None:
        converter.before_write = lambda: service.cancel(store.list()[-1].id)

        resp = _upload(client)

        assert resp.status_code == 409
        assert resp.json()["message"] == "Conversion cancelled"
        job = store.list()[0]
        assert job.status == JobStatus.CANCELLED
        assert job.output_file_path is None

    def test_job_can_be_inspected(self, client: TestClient) -> None:
        job_id = _upload(client).json()["id"]

        resp = client.get(f"/api/conversion/{job_id}")

        assert resp.status_code == 200
        assert resp.json()["status"] == "completed"
        assert "originalFilePath" not in resp.json()
        assert [j["id"] for j in client.get("/api/conversion").json()] == [job_id]

    def test_unknown_job_is_404(self, client: TestClient) -> None:
        assert client.get("/api/conversion/77").status_code == 404


class TestFileEndpoint:
    def test_streams_pdf_as_attachment(self, client: TestClient) -> None:
        url = _upload(client).json()["pdfUrl"]

        resp = client.get(url)

        assert resp.status_code == 200
        assert resp.headers["content-type"] == "application/pdf"
        assert resp.headers["content-disposition"].startswith("attachment")
        assert "deck.pdf" in resp.headers["content-disposition"]
        assert resp.content.startswith(b"%PDF")

    def test_filename_is_display_only(self, client: TestClient) -> None:
        job_id = _upload(client).json()["id"]

        resp = client.get(f"/api/files/{job_id}/renamed.pdf")

        assert resp.status_code == 200
        assert "renamed.pdf" in resp.headers["content-disposition"]

    def test_unknown_id_is_404(self, client: TestClient) -> None:
        resp = client.get("/api/files/4242/deck.pdf")

        assert resp.status_code == 404
        assert resp.json() == {"message": "File not found"}

    def test_failed_job_is_404(self, client: TestClient, store: MemoryJobStore) -> None:
        _upload(client, name="broken.docx", data=b"BROKEN")
        job_id = store.list()[-1].id

        assert client.get(f"/api/files/{job_id}/broken.pdf").status_code == 404


class TestCancelEndpoint:
    def test_cancels_queued_job(self, client: TestClient, store: MemoryJobStore) -> None:
        job = store.create("deck.pptx", "/uploads/deck.pptx", 4)

        resp = client.post(f"/api/conversion/{job.id}/cancel")

        assert resp.status_code == 200
        assert resp.json() == {"message": "Conversion cancelled", "status": "cancelled"}
        assert store.get(job.id).status == JobStatus.CANCELLED

    def test_completed_job_stays_completed(self, client: TestClient, store: MemoryJobStore) -> None:
        job_id = _upload(client).json()["id"]

        resp = client.post(f"/api/conversion/{job_id}/cancel")

        assert resp.status_code == 200
        assert resp.json()["status"] == "completed"
        assert store.get(job_id).status == JobStatus.COMPLETED

    def test_unknown_job_is_404(self, client: TestClient) -> None:
        assert client.post("/api/conversion/555/cancel").status_code == 404


class TestZipEndpoint:
    def test_bundles_completed_files(self, client: TestClient) -> None:
        first = _upload(client, name="a.pptx").json()["id"]
        second = _upload(client, name="b.docx").json()["id"]

        resp = client.post("/api/download/zip", json={"fileIds": [first, second, 999]})

        assert resp.status_code == 200
        assert resp.headers["content-type"] == "application/zip"
        assert "converted_pdfs.zip" in resp.headers["content-disposition"]
        with zipfile.ZipFile(io.BytesIO(resp.content)) as zf:
            assert zf.namelist() == [f"{first}_a.pdf", f"{second}_b.pdf"]

    def test_all_missing_gives_empty_zip(self, client: TestClient) -> None:
        resp = client.post("/api/download/zip", json={"fileIds": [1, 2]})

        assert resp.status_code == 200
        with zipfile.ZipFile(io.BytesIO(resp.content)) as zf:
            assert zf.namelist() == []

    def test_empty_id_list_is_400(self, client: TestClient) -> None:
        resp = client.post("/api/download/zip", json={"fileIds": []})

        assert resp.status_code == 400
        assert resp.json() == {"message": "No file IDs provided"}

    def test_archive_fault_is_500(self, client: TestClient, service: ConversionService, monkeypatch) -> None:
        from pdf_service.conversion.errors import ArchiveError

        def explode(job_ids):
            raise ArchiveError("disk full")

        monkeypatch.setattr(service, "build_archive", explode)

        resp = client.post("/api/download/zip", json={"fileIds": [1]})

        assert resp.status_code == 500
        assert resp.json() == {"message": "Error creating ZIP file", "error": "disk full"}
