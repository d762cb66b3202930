"""Tests for the FAISS + SQLite QA store."""

import sqlite3

import pytest

from docqa import db
from docqa.errors import RetrievalError, StorageError
from docqa.rag.answer_lines import LineKind
from docqa.rag.qa_store import QAStore
from docqa.rag.records import QARecord
from docqa.rag.vector_index import QAVectorIndex
from tests.conftest import KeywordEmbedder


@pytest.fixture
def qa_store(tmp_path, temp_db, keyword_embedder):
    vector_index = QAVectorIndex(index_dir=tmp_path / "index", embedder=keyword_embedder)
    return QAStore(embedder=keyword_embedder, vector_index=vector_index, top_k=2)


class TestSave:

    @pytest.mark.asyncio
    async def test_save_persists_rows_and_vectors(self, qa_store, sample_records):
        stored = await qa_store.save(sample_records)

        assert stored == 3
        assert qa_store.vector_index.size == 3
        assert db.get_qa_pair_count() == 3
        assert qa_store.vector_index.index_path.exists()

    @pytest.mark.asyncio
    async def test_records_embedded_from_rendered_text(self, qa_store, keyword_embedder, sample_records):
        await qa_store.save(sample_records[:1])

        assert sample_records[0].render() in keyword_embedder.calls

    @pytest.mark.asyncio
    async def test_existing_embedding_reused(self, qa_store, keyword_embedder):
        record = QARecord.from_raw("Q?", "A.").with_embedding([9.0, 0.0, 0.0, 0.0])

        await qa_store.save([record])

        assert record.render() not in keyword_embedder.calls

    @pytest.mark.asyncio
    async def test_save_nothing(self, qa_store):
        assert await qa_store.save([]) == 0

    @pytest.mark.asyncio
    async def test_failed_insert_rolls_back_vectors(self, qa_store, sample_records, monkeypatch):
        await qa_store.save(sample_records[:1])

        def broken_insert(rows):
            raise sqlite3.OperationalError("database is locked")

        monkeypatch.setattr(db, "insert_qa_pairs", broken_insert)

        with pytest.raises(StorageError):
            await qa_store.save(sample_records[1:])

        assert qa_store.vector_index.size == 1

    @pytest.mark.asyncio
    async def test_embedding_failure_is_storage_error(self, tmp_path, temp_db):
        class BrokenEmbedder(KeywordEmbedder):
            async def embed(self, text):
                if text.startswith("Q:"):
                    raise RuntimeError("embedding service down")
                return await super().embed(text)

        embedder = BrokenEmbedder()
        store = QAStore(
            embedder=embedder,
            vector_index=QAVectorIndex(index_dir=tmp_path / "index", embedder=embedder),
        )

        with pytest.raises(StorageError):
            await store.save([QARecord.from_raw("Q?", "A.")])


class TestSearchSimilar:

    @pytest.mark.asyncio
    async def test_ranked_by_similarity(self, qa_store, sample_records):
        await qa_store.save(sample_records)

        results = await qa_store.search_similar("banana")

        assert results[0].question == "What is a banana?"
        assert len(results) == 2

    @pytest.mark.asyncio
    async def test_top_k_override(self, qa_store, sample_records):
        await qa_store.save(sample_records)

        results = await qa_store.search_similar("apple apple", top_k=3)

        assert len(results) == 3
        assert results[0].question == "What is an apple?"

    @pytest.mark.asyncio
    async def test_answer_lines_survive_storage(self, qa_store, sample_records):
        await qa_store.save(sample_records)

        results = await qa_store.search_similar("cherry", top_k=1)

        assert results == [sample_records[2]]
        assert [line.kind for line in results[0].answer_lines] == [LineKind.BULLET, LineKind.BULLET]

    @pytest.mark.asyncio
    async def test_empty_store_returns_nothing(self, qa_store):
        assert await qa_store.search_similar("apple") == []

    @pytest.mark.asyncio
    async def test_blank_query_returns_nothing(self, qa_store, sample_records):
        await qa_store.save(sample_records)

        assert await qa_store.search_similar("   ") == []

    @pytest.mark.asyncio
    async def test_search_failure_is_retrieval_error(self, qa_store, sample_records, monkeypatch):
        await qa_store.save(sample_records)

        def broken_lookup(vector_ids):
            raise sqlite3.OperationalError("no such table: qa_pairs")

        monkeypatch.setattr(db, "get_qa_pairs_by_vector_ids", broken_lookup)

        with pytest.raises(RetrievalError):
            await qa_store.search_similar("apple")


class TestPersistence:

    @pytest.mark.asyncio
    async def test_index_reloaded_by_new_store(self, tmp_path, temp_db, keyword_embedder, sample_records):
        index_dir = tmp_path / "index"
        first = QAStore(
            embedder=keyword_embedder,
            vector_index=QAVectorIndex(index_dir=index_dir, embedder=keyword_embedder),
        )
        await first.save(sample_records)

        second = QAStore(
            embedder=keyword_embedder,
            vector_index=QAVectorIndex(index_dir=index_dir, embedder=keyword_embedder),
        )
        results = await second.search_similar("apple apple", top_k=1)

        assert [r.question for r in results] == ["What is an apple?"]

    @pytest.mark.asyncio
    async def test_rebuild_clears_everything(self, qa_store, sample_records):
        await qa_store.save(sample_records)

        await qa_store.rebuild()

        assert qa_store.vector_index.size == 0
        assert db.get_qa_pair_count() == 0
        assert await qa_store.search_similar("apple") == []

    @pytest.mark.asyncio
    async def test_stats(self, qa_store, sample_records):
        await qa_store.save(sample_records)

        stats = qa_store.get_stats()

        assert stats["vector_count"] == 3
        assert stats["qa_pairs"] == 3
        assert stats["dimension"] == 4


class TestDatabase:

    def test_ingest_run_logged(self, temp_db):
        failures = [{"chunk_index": 2, "stage": "parse", "error": "x", "error_type": "ParseError"}]

        db.insert_ingest_run(
            source="doc.pdf",
            chat_model="llama3.1:8b",
            chunk_count=4,
            records_extracted=7,
            records_stored=7,
            failures=failures,
        )

        run = db.get_latest_ingest_run()
        assert run["source"] == "doc.pdf"
        assert run["records_stored"] == 7
        assert run["failures"] == failures

    def test_no_ingest_runs(self, temp_db):
        assert db.get_latest_ingest_run() is None
