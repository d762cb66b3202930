"""Tests for the FAISS index of QA record embeddings."""

import json

import pytest
import pytest_asyncio

from docqa.rag.vector_index import QAVectorIndex
from tests.conftest import KeywordEmbedder


@pytest_asyncio.fixture
async def vector_index(tmp_path, keyword_embedder):
    index = QAVectorIndex(index_dir=tmp_path / "index", embedder=keyword_embedder)
    await index.open()
    return index


class TestAppend:

    @pytest.mark.asyncio
    async def test_ids_are_dense_positions(self, vector_index):
        first = vector_index.append([[1, 0, 0, 0], [0, 1, 0, 0]])
        second = vector_index.append([[0, 0, 1, 0]])

        assert first == [0, 1]
        assert second == [2]
        assert vector_index.size == 3

    @pytest.mark.asyncio
    async def test_append_nothing(self, vector_index):
        assert vector_index.append([]) == []
        assert vector_index.size == 0

    @pytest.mark.asyncio
    async def test_wrong_dimension_rejected(self, vector_index):
        with pytest.raises(ValueError):
            vector_index.append([[1.0, 2.0]])

    def test_append_before_open(self, tmp_path, keyword_embedder):
        index = QAVectorIndex(index_dir=tmp_path, embedder=keyword_embedder)

        with pytest.raises(RuntimeError):
            index.append([[1, 0, 0, 0]])


class TestTruncate:

    @pytest.mark.asyncio
    async def test_tail_removed_and_ids_reused(self, vector_index):
        vector_index.append([[1, 0, 0, 0], [0, 1, 0, 0], [0, 0, 1, 0]])

        vector_index.truncate(2)

        assert vector_index.size == 1
        assert vector_index.append([[0, 0, 0, 1]]) == [1]

    @pytest.mark.asyncio
    async def test_truncate_more_than_size(self, vector_index):
        vector_index.append([[1, 0, 0, 0]])

        vector_index.truncate(5)

        assert vector_index.size == 0


class TestNearest:

    @pytest.mark.asyncio
    async def test_closest_first(self, vector_index):
        vector_index.append([[1, 0, 0, 0], [0, 3, 0, 0], [0, 1, 0, 0]])

        hits = vector_index.nearest([0, 1, 0, 0], 2)

        assert [vector_id for vector_id, _ in hits] == [2, 1]
        assert hits[0][1] == 0.0

    @pytest.mark.asyncio
    async def test_k_capped_at_size(self, vector_index):
        vector_index.append([[1, 0, 0, 0]])

        assert len(vector_index.nearest([1, 0, 0, 0], 10)) == 1

    @pytest.mark.asyncio
    async def test_empty_index(self, vector_index):
        assert vector_index.nearest([1, 0, 0, 0], 3) == []


class TestPersistence:

    @pytest.mark.asyncio
    async def test_reopen_after_persist(self, tmp_path, vector_index, keyword_embedder):
        vector_index.append([[1, 0, 0, 0], [0, 1, 0, 0]])
        vector_index.persist()

        reopened = QAVectorIndex(index_dir=tmp_path / "index", embedder=keyword_embedder)
        await reopened.open()

        assert reopened.size == 2
        assert reopened.nearest([0, 1, 0, 0], 1)[0][0] == 1

    @pytest.mark.asyncio
    async def test_manifest_written(self, vector_index):
        vector_index.append([[1, 0, 0, 0]])
        vector_index.persist()

        manifest = json.loads(vector_index.manifest_path.read_text(encoding="utf-8"))

        assert manifest["dimension"] == 4
        assert manifest["vector_count"] == 1
        assert manifest["embedding_model"] == vector_index.embedding_model

    @pytest.mark.asyncio
    async def test_dimension_mismatch_on_open(self, tmp_path, vector_index):
        vector_index.append([[1, 0, 0, 0]])
        vector_index.persist()

        other = QAVectorIndex(
            index_dir=tmp_path / "index", embedder=KeywordEmbedder(keywords=("apple", "fig"))
        )

        with pytest.raises(ValueError, match="--rebuild"):
            await other.open()

    @pytest.mark.asyncio
    async def test_reset_deletes_files(self, vector_index):
        vector_index.append([[1, 0, 0, 0]])
        vector_index.persist()

        await vector_index.reset()

        assert vector_index.size == 0
        assert not vector_index.index_path.exists()
        assert not vector_index.manifest_path.exists()
        assert vector_index.stats()["initialized"] is True
