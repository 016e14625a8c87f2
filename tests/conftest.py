"""Shared fixtures: a temporary record store and scripted fakes for the
object store, the OCR conversion service and the generation service."""

from __future__ import annotations

import io
import logging
import sys
import zipfile

import pytest
from PIL import Image

from database import RecordStore
from utils.gemini_client import GenerationResult
from utils.mathpix_client import ConversionStatus

# ---------------------------------------------------------------------------
# Configure verbose logging for test debugging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.DEBUG,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    stream=sys.stderr,
    force=True,
)


def png_bytes(color: str = "red") -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (4, 4), color).save(buf, "PNG")
    return buf.getvalue()


def make_archive(text: str, images: dict[str, bytes] | None = None, text_name: str = "doc/doc.mmd") -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        zf.writestr(text_name, text)
        for name, data in (images or {}).items():
            zf.writestr(f"doc/images/{name}", data)
    return buf.getvalue()


class FakeObjectStore:
    def __init__(self, files: dict[str, bytes] | None = None):
        self.files = dict(files or {})
        self.uploads: dict[str, tuple[bytes, str]] = {}

    def download(self, path: str) -> bytes:
        return self.files[path]

    def upload(self, path: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        self.uploads[path] = (data, content_type)
        return f"https://storage.test/{path}"


class FakeOcrClient:
    """Each external id plays back a list of statuses; the last one repeats."""

    def __init__(self, scripts: dict[str, list[ConversionStatus]], archives: dict[str, bytes] | None = None):
        self.scripts = {key: list(value) for key, value in scripts.items()}
        self.archives = dict(archives or {})
        self.submitted: list[str] = []
        self.status_calls: list[str] = []

    def submit(self, file_bytes: bytes, filename: str) -> str:
        self.submitted.append(filename)
        return "ext-" + filename.split(".")[0]

    def get_status(self, external_id: str) -> ConversionStatus:
        self.status_calls.append(external_id)
        script = self.scripts[external_id]
        result = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(result, Exception):
            raise result
        return result

    def download_result_archive(self, external_id: str) -> bytes:
        return self.archives[external_id]


class FakeGenerationClient:
    """Returns scripted GenerationResults (or raises scripted exceptions) in order."""

    def __init__(self, responses: list):
        self.responses = list(responses)
        self.calls: list[tuple[str, str, dict | None]] = []

    def extract(self, system_prompt: str, user_prompt: str, schema=None) -> GenerationResult:
        self.calls.append((system_prompt, user_prompt, schema))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def store(tmp_path) -> RecordStore:
    record_store = RecordStore(tmp_path / "records.db")
    record_store.init_db()
    return record_store


@pytest.fixture
def object_store() -> FakeObjectStore:
    return FakeObjectStore({
        "uploads/questions.pdf": b"%PDF-questions",
        "uploads/solutions.pdf": b"%PDF-solutions",
    })


@pytest.fixture
def document(store):
    return store.create_document_pair(
        "uploads/questions.pdf",
        "uploads/solutions.pdf",
        expected_titles=["Kinematics"],
    )
