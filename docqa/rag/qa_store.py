"""Persistent QA record store backed by FAISS and SQLite.

Implements both collaborator contracts the core consumes: ``save`` for the
extractor and ``search_similar`` for the composer. Each record is embedded
from its rendered ``Q: ... / A: ...`` text; the vector position in the FAISS
index is the key of its SQLite row.
"""
import asyncio
from typing import Any, Dict, List, Optional, Sequence
import structlog

from docqa import config, db
from docqa.errors import ParseError, RetrievalError, StorageError
from docqa.interfaces import Embedder
from docqa.rag.answer_lines import AnswerLine
from docqa.rag.records import QARecord
from docqa.rag.vector_index import QAVectorIndex

logger = structlog.get_logger()


def record_from_row(row: Dict[str, Any]) -> QARecord:
    """Rebuild a QARecord from a ``qa_pairs`` row.

    Raises:
        ParseError: If the stored row no longer forms a valid record
    """
    return QARecord(
        question=row["question"],
        answer_lines=tuple(AnswerLine.from_dict(line) for line in row["answer_lines"]),
        source=row.get("source"),
    )


class QAStore:
    """Saves QA records and finds the ones most similar to a query."""

    def __init__(
        self,
        embedder: Optional[Embedder] = None,
        vector_index: Optional[QAVectorIndex] = None,
        top_k: int = None,
    ):
        """Initialize the store.

        Args:
            embedder: Embedding backend (defaults to the shared Ollama client)
            vector_index: FAISS index of record embeddings (default built on DATA_DIR)
            top_k: Number of records returned by search_similar (default from config)
        """
        if embedder is None:
            from docqa.llm_client import ollama_client

            embedder = ollama_client

        self.embedder = embedder
        self.vector_index = vector_index or QAVectorIndex(embedder=embedder)
        self.top_k = top_k or config.RETRIEVAL_TOP_K
        self._lock = asyncio.Lock()
        self._ready = False

    async def _ensure_ready(self) -> None:
        if self._ready:
            return
        db.init_database()
        await self.vector_index.open()
        self._ready = True

    async def save(self, records: Sequence[QARecord]) -> int:
        """Embed and persist records.

        Vectors added for a batch whose rows fail to insert are removed again,
        so the index and the database stay aligned.

        Returns:
            Number of records stored

        Raises:
            StorageError: If embedding, indexing or the database write fails
        """
        if not records:
            return 0

        try:
            async with self._lock:
                await self._ensure_ready()

                embeddings = []
                for record in records:
                    if record.embedding is not None:
                        embeddings.append(record.embedding)
                    else:
                        embeddings.append(await self.embedder.embed(record.render()))

                vector_ids = self.vector_index.append(embeddings)

                rows = [
                    {
                        "vector_id": vector_id,
                        "question": record.question,
                        "answer": record.formatted_answer,
                        "answer_lines": [line.to_dict() for line in record.answer_lines],
                        "source": record.source,
                    }
                    for record, vector_id in zip(records, vector_ids)
                ]

                try:
                    db.insert_qa_pairs(rows)
                except Exception:
                    self.vector_index.truncate(len(vector_ids))
                    raise

                self.vector_index.persist()

        except Exception as e:
            logger.error(
                "qa_records_store_failed",
                count=len(records),
                error=str(e),
                error_type=type(e).__name__,
            )
            raise StorageError(f"Failed to store {len(records)} QA records: {e}") from e

        logger.info("qa_records_stored", count=len(records))
        return len(records)

    async def search_similar(
        self, query: str, top_k: Optional[int] = None
    ) -> List[QARecord]:
        """Return stored records ranked by similarity to the query.

        Args:
            query: Free-form question
            top_k: Number of records to return (overrides default)

        Returns:
            Records, most similar first; empty if the store is empty

        Raises:
            RetrievalError: If embedding or search fails
        """
        if not query or not query.strip():
            logger.warning("empty_query_provided")
            return []

        top_k = top_k or self.top_k

        try:
            async with self._lock:
                await self._ensure_ready()

            if self.vector_index.size == 0:
                logger.warning("empty_index_no_results")
                return []

            query_embedding = await self.embedder.embed(query)
            hits = self.vector_index.nearest(query_embedding, top_k)
            rows = db.get_qa_pairs_by_vector_ids([vector_id for vector_id, _ in hits])

        except Exception as e:
            logger.error(
                "retrieval_failed",
                error=str(e),
                error_type=type(e).__name__,
                query_preview=query[:100],
            )
            raise RetrievalError(f"Retrieval failed: {e}") from e

        by_vector_id = {row["vector_id"]: row for row in rows}
        records = []
        for vector_id, _ in hits:
            row = by_vector_id.get(vector_id)
            if row is None:
                logger.warning("vector_id_not_found_in_database", vector_id=vector_id)
                continue
            try:
                records.append(record_from_row(row))
            except ParseError as e:
                logger.warning("stored_qa_pair_invalid", vector_id=vector_id, error=str(e))

        logger.info(
            "retrieval_completed",
            query_length=len(query),
            results_returned=len(records),
            top_distance=hits[0][1] if hits else None,
        )

        return records

    async def rebuild(self) -> None:
        """Drop every stored record and start with an empty index."""
        async with self._lock:
            db.init_database()
            db.clear_all_qa_pairs()
            await self.vector_index.reset()
            self._ready = True

    def get_stats(self) -> Dict[str, Any]:
        stats = self.vector_index.stats()
        stats["qa_pairs"] = db.get_qa_pair_count() if self._ready else None
        return stats
