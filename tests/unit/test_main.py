"""Tests for the HTTP endpoints."""

import io

import httpx
import pytest
from werkzeug.datastructures import FileStorage

from docqa import config, main
from docqa.errors import StorageError
from docqa.rag.composer import FALLBACK_ANSWER, AnswerComposer
from docqa.rag.ingest import IngestPipeline
from tests.conftest import FailingGenerator, InMemoryStore, ScriptedGenerator, numbered_text


def upload(data: bytes, filename: str, content_type: str) -> FileStorage:
    return FileStorage(stream=io.BytesIO(data), filename=filename, content_type=content_type)


def make_pipeline(store=None) -> IngestPipeline:
    return IngestPipeline(
        store=store or InMemoryStore(),
        generator=ScriptedGenerator("Q: What is X?\nA: X is Y."),
        chunk_words=10,
        overlap_words=0,
    )


@pytest.fixture
def app(temp_db, sample_records):
    pipeline = make_pipeline(InMemoryStore(sample_records))
    composer = AnswerComposer(pipeline.store, generator=ScriptedGenerator("Apples are fruit."))
    return main.create_app(pipeline=pipeline, composer=composer)


@pytest.fixture
def client(app):
    return app.test_client()


class TestUpload:

    @pytest.mark.asyncio
    async def test_text_upload_extracts_pairs(self, client):
        response = await client.post(
            "/api/pdf/upload",
            files={"file": upload(numbered_text(25).encode(), "notes.txt", "text/plain")},
            form={"concurrency": "2"},
        )

        assert response.status_code == 200
        data = await response.get_json()
        assert data["filename"] == "notes.txt"
        assert data["chunk_count"] == 3
        assert data["records_extracted"] == 3
        assert data["records_stored"] == 3
        assert data["failures"] == []
        assert data["storage_error"] is None

    @pytest.mark.asyncio
    async def test_missing_file(self, client):
        response = await client.post("/api/pdf/upload", form={"concurrency": "2"})

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_unsupported_type(self, client):
        response = await client.post(
            "/api/pdf/upload",
            files={"file": upload(b"\x89PNG", "image.png", "image/png")},
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_bad_concurrency(self, client):
        for value in ("two", "0"):
            response = await client.post(
                "/api/pdf/upload",
                files={"file": upload(b"some words", "notes.txt", "text/plain")},
                form={"concurrency": value},
            )

            assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_empty_file(self, client):
        response = await client.post(
            "/api/pdf/upload",
            files={"file": upload(b"", "notes.txt", "text/plain")},
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_storage_error_is_server_error(self, temp_db):
        pipeline = make_pipeline(InMemoryStore(save_error=StorageError("disk full")))
        app = main.create_app(pipeline=pipeline, composer=AnswerComposer(pipeline.store, generator=ScriptedGenerator()))

        response = await app.test_client().post(
            "/api/pdf/upload",
            files={"file": upload(b"some words here", "notes.txt", "text/plain")},
        )

        assert response.status_code == 500
        data = await response.get_json()
        assert data["storage_error"] == "disk full"
        assert data["records_extracted"] == 1


class TestAsk:

    @pytest.mark.asyncio
    async def test_json_question(self, client):
        response = await client.post("/api/chat/ask", json={"question": "What is an apple?"})

        assert response.status_code == 200
        data = await response.get_json()
        assert data["answer"] == "Apples are fruit."
        assert data["degraded"] is False
        assert data["sources"][0]["question"] == "What is an apple?"

    @pytest.mark.asyncio
    async def test_limits_passed_through(self, client):
        response = await client.post(
            "/api/chat/ask", json={"question": "What is an apple?", "max_docs": 1}
        )

        data = await response.get_json()
        assert len(data["sources"]) == 1

    @pytest.mark.asyncio
    async def test_query_string_question(self, client):
        response = await client.post("/api/chat/ask", query_string={"question": "What is an apple?"})

        assert response.status_code == 200

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [{}, {"question": ""}, {"question": "ok", "max_docs": 0}, {"question": "x" * 2001}],
    )
    async def test_invalid_request(self, client, body):
        response = await client.post("/api/chat/ask", json=body)

        assert response.status_code == 400
        data = await response.get_json()
        assert data["error"] == "Invalid request"

    @pytest.mark.asyncio
    async def test_generation_failure_degrades(self, temp_db, sample_records):
        pipeline = make_pipeline(InMemoryStore(sample_records))
        composer = AnswerComposer(pipeline.store, generator=FailingGenerator())
        app = main.create_app(pipeline=pipeline, composer=composer)

        response = await app.test_client().post("/api/chat/ask", json={"question": "What is an apple?"})

        assert response.status_code == 200
        data = await response.get_json()
        assert data["answer"] == FALLBACK_ANSWER
        assert data["degraded"] is True


class TestHealth:

    @pytest.mark.asyncio
    async def test_live(self, client):
        response = await client.get("/health/live")

        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_ready(self, client, monkeypatch):
        async def list_models():
            return [config.CHAT_MODEL]

        monkeypatch.setattr(main.ollama_client, "list_models", list_models)

        response = await client.get("/health/ready")

        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_not_ready_when_ollama_down(self, client, monkeypatch):
        async def list_models():
            raise httpx.ConnectError("connection refused")

        monkeypatch.setattr(main.ollama_client, "list_models", list_models)

        response = await client.get("/health/ready")

        assert response.status_code == 503
        data = await response.get_json()
        assert data["ollama"] is False

    @pytest.mark.asyncio
    async def test_stats(self, client):
        response = await client.get("/api/stats")

        data = await response.get_json()
        assert data["vector_count"] == 3

    @pytest.mark.asyncio
    async def test_unknown_route(self, client):
        response = await client.get("/nope")

        assert response.status_code == 404
