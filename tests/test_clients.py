from __future__ import annotations

import json
from types import SimpleNamespace

import pytest
import requests

from config import ConfigurationError
from utils.gemini_client import GeminiClient, GenerationError
from utils.mathpix_client import MathpixClient, MathpixError


# ======================================================================
# Mathpix
# ======================================================================

class FakeResponse:
    def __init__(self, status_code: int = 200, payload: dict | None = None, content: bytes = b""):
        self.status_code = status_code
        self._payload = payload or {}
        self.content = content
        self.text = json.dumps(self._payload)

    def json(self):
        return self._payload


class FakeSession:
    def __init__(self, routes: dict[tuple[str, str], FakeResponse | Exception]):
        self.routes = routes
        self.headers: dict[str, str] = {}
        self.requests: list[tuple[str, str, dict]] = []

    def request(self, method, url, timeout=None, **kwargs):
        path = url.split("/v3", 1)[1]
        self.requests.append((method, path, kwargs))
        response = self.routes[(method, path)]
        if isinstance(response, Exception):
            raise response
        return response


def mathpix(routes) -> tuple[MathpixClient, FakeSession]:
    session = FakeSession(routes)
    return MathpixClient(app_id="id", app_key="key", session=session), session


class TestMathpixClient:
    def test_missing_credentials(self, monkeypatch):
        monkeypatch.delenv("MATHPIX_APP_ID", raising=False)
        monkeypatch.delenv("MATHPIX_APP_KEY", raising=False)
        with pytest.raises(ConfigurationError):
            MathpixClient()

    def test_submit(self):
        client, session = mathpix({("POST", "/pdf"): FakeResponse(payload={"pdf_id": "abc"})})
        assert client.submit(b"%PDF", "paper.pdf") == "abc"

        _, _, kwargs = session.requests[0]
        assert kwargs["files"]["file"][0] == "paper.pdf"
        assert json.loads(kwargs["data"]["options_json"])["conversion_formats"] == {"mmd.zip": True}
        assert session.headers["app_id"] == "id"

    def test_submit_without_id(self):
        client, _ = mathpix({("POST", "/pdf"): FakeResponse(payload={"error": "bad file"})})
        with pytest.raises(MathpixError):
            client.submit(b"%PDF", "paper.pdf")

    def test_status_mapping(self):
        client, _ = mathpix({("GET", "/pdf/abc"): FakeResponse(payload={"status": "split"})})
        assert client.get_status("abc").status == "processing"

        client, _ = mathpix({("GET", "/pdf/abc"): FakeResponse(payload={"status": "received"})})
        assert client.get_status("abc").status == "queued"

    def test_error_status_carries_detail(self):
        payload = {"status": "error", "error_info": {"id": "pdf_err", "message": "Corrupt PDF"}}
        client, _ = mathpix({("GET", "/pdf/abc"): FakeResponse(payload=payload)})
        status = client.get_status("abc")
        assert status.status == "error"
        assert status.error_detail == "Corrupt PDF"

    def test_completed_waits_for_archive(self):
        routes = {
            ("GET", "/pdf/abc"): FakeResponse(payload={"status": "completed"}),
            ("GET", "/converter/abc"): FakeResponse(
                payload={"conversion_status": {"mmd.zip": {"status": "processing"}}}
            ),
        }
        client, _ = mathpix(routes)
        assert client.get_status("abc").status == "processing"

        routes[("GET", "/converter/abc")] = FakeResponse(
            payload={"conversion_status": {"mmd.zip": {"status": "completed"}}}
        )
        assert client.get_status("abc").status == "completed"

    def test_download_archive(self):
        client, _ = mathpix({("GET", "/pdf/abc.mmd.zip"): FakeResponse(content=b"PK...")})
        assert client.download_result_archive("abc") == b"PK..."

    def test_http_errors(self):
        client, _ = mathpix({
            ("GET", "/pdf/abc"): FakeResponse(status_code=500),
            ("GET", "/pdf/def"): requests.ConnectionError("refused"),
        })
        with pytest.raises(MathpixError) as excinfo:
            client.get_status("abc")
        assert excinfo.value.status_code == 500
        with pytest.raises(MathpixError):
            client.get_status("def")


# ======================================================================
# Gemini
# ======================================================================

class FakeModels:
    def __init__(self, texts: list[str]):
        self.texts = list(texts)
        self.configs = []

    def generate_content(self, model, contents, config=None):
        self.configs.append(config)
        return SimpleNamespace(text=self.texts.pop(0))


def gemini(texts: list[str]) -> tuple[GeminiClient, FakeModels]:
    models = FakeModels(texts)
    return GeminiClient(client=SimpleNamespace(models=models), request_delay=0), models


SCHEMA = {"type": "OBJECT", "properties": {"questions": {"type": "ARRAY", "items": {"type": "STRING"}}}}


class TestGeminiClient:
    def test_missing_api_key(self, monkeypatch):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        with pytest.raises(ConfigurationError):
            GeminiClient()

    def test_schema_mode_returns_tool_arguments(self):
        client, models = gemini(['{"questions": []}'])
        result = client.extract("system", "user", SCHEMA)
        assert result.tool_arguments == {"questions": []}
        assert result.free_text is None
        assert models.configs[0].response_mime_type == "application/json"

    def test_invalid_schema_output_becomes_free_text(self):
        client, _ = gemini(["```json\n{}\n```"])
        result = client.extract("system", "user", SCHEMA)
        assert result.tool_arguments is None
        assert result.free_text == "```json\n{}\n```"

    def test_rejected_schema_falls_back_to_free_text(self, monkeypatch):
        client, _ = gemini([])
        calls = []

        def fake_generate(system_prompt, user_prompt, schema):
            calls.append(schema)
            if schema is not None:
                raise GenerationError("schema not supported", status_code=400)
            return "plain text"

        monkeypatch.setattr(client, "_generate", fake_generate)
        result = client.extract("system", "user", SCHEMA)
        assert calls == [SCHEMA, None]
        assert result.free_text == "plain text"

    def test_rate_limit_is_raised(self, monkeypatch):
        client, _ = gemini([])

        def fake_generate(system_prompt, user_prompt, schema):
            raise GenerationError("quota", status_code=429)

        monkeypatch.setattr(client, "_generate", fake_generate)
        with pytest.raises(GenerationError) as excinfo:
            client.extract("system", "user", SCHEMA)
        assert excinfo.value.is_rate_limited
