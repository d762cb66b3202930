"""FAISS index over QA record embeddings.

Position ``i`` in the index is the vector of the ``qa_pairs`` row whose
``vector_id`` is ``i``. Vectors are only ever appended, or dropped from the
tail to undo an append, so positions stay dense and aligned with the rows.
A small JSON manifest next to the index records which embedding model and
dimension built it.
"""
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple
import numpy as np
import faiss
import structlog

from docqa import config
from docqa.interfaces import Embedder

logger = structlog.get_logger()

INDEX_FILENAME = config.VECTOR_INDEX_PATH.name
MANIFEST_FILENAME = config.METADATA_PATH.name


class QAVectorIndex:
    """Dense, append-only L2 index of QA record embeddings."""

    def __init__(
        self,
        index_dir: Path = None,
        embedder: Optional[Embedder] = None,
        embedding_model: str = None,
    ):
        """
        Args:
            index_dir: Directory holding the index and its manifest (default: DATA_DIR)
            embedder: Embeds one string to learn the vector dimension (default: Ollama client)
            embedding_model: Model name written to the manifest
        """
        if embedder is None:
            from docqa.llm_client import ollama_client

            embedder = ollama_client

        self.index_dir = index_dir or config.DATA_DIR
        self.embedder = embedder
        self.embedding_model = embedding_model or config.EMBEDDING_MODEL
        self.index_path = self.index_dir / INDEX_FILENAME
        self.manifest_path = self.index_dir / MANIFEST_FILENAME

        self.index: Optional[faiss.IndexFlatL2] = None
        self.dimension: Optional[int] = None

    @property
    def size(self) -> int:
        return self.index.ntotal if self.index is not None else 0

    async def _embedding_dimension(self) -> int:
        vector = await self.embedder.embed("dimension check")
        if not vector:
            raise RuntimeError(f"Embedding model {self.embedding_model} returned an empty vector")
        return len(vector)

    def _create(self, dimension: int) -> None:
        self.dimension = dimension
        self.index = faiss.IndexFlatL2(dimension)
        logger.info("qa_index_created", dimension=dimension, model=self.embedding_model)

    async def open(self) -> None:
        """Load the index from disk, or start an empty one.

        Raises:
            ValueError: If the stored index was built with a different dimension
        """
        dimension = await self._embedding_dimension()

        if not (self.index_path.exists() and self.manifest_path.exists()):
            self._create(dimension)
            return

        manifest = json.loads(self.manifest_path.read_text(encoding="utf-8"))
        if manifest.get("dimension") != dimension:
            raise ValueError(
                f"QA index at {self.index_path} was built by {manifest.get('embedding_model')} "
                f"with dimension {manifest.get('dimension')}, but {self.embedding_model} "
                f"produces dimension {dimension}; re-ingest with --rebuild"
            )

        self.index = faiss.read_index(str(self.index_path))
        self.dimension = dimension
        logger.info("qa_index_loaded", vectors=self.index.ntotal, dimension=dimension)

    def _as_matrix(self, vectors: Sequence[Sequence[float]]) -> np.ndarray:
        matrix = np.asarray(vectors, dtype=np.float32)
        if matrix.ndim != 2 or matrix.shape[1] != self.dimension:
            raise ValueError(
                f"Expected vectors of dimension {self.dimension}, got shape {matrix.shape}"
            )
        return matrix

    def append(self, vectors: Sequence[Sequence[float]]) -> List[int]:
        """Append vectors and return their positions, which become the rows' vector ids."""
        if self.index is None:
            raise RuntimeError("QA index is not open")
        if not vectors:
            return []

        first = self.index.ntotal
        self.index.add(self._as_matrix(vectors))
        return list(range(first, self.index.ntotal))

    def truncate(self, count: int) -> None:
        """Drop the last ``count`` vectors, undoing an append."""
        if self.index is None or count <= 0:
            return
        total = self.index.ntotal
        self.index.remove_ids(np.arange(max(total - count, 0), total, dtype=np.int64))
        logger.warning("qa_index_truncated", removed=count, vectors=self.index.ntotal)

    def nearest(self, vector: Sequence[float], k: int) -> List[Tuple[int, float]]:
        """Return up to ``k`` ``(vector_id, distance)`` pairs, closest first."""
        if self.index is None:
            raise RuntimeError("QA index is not open")
        k = min(k, self.index.ntotal)
        if k <= 0:
            return []

        distances, ids = self.index.search(self._as_matrix([vector]), k)
        return [
            (int(vector_id), float(distance))
            for vector_id, distance in zip(ids[0], distances[0])
            if vector_id != -1
        ]

    def persist(self) -> None:
        """Write the index and its manifest."""
        if self.index is None:
            raise RuntimeError("QA index is not open")

        self.index_dir.mkdir(parents=True, exist_ok=True)
        faiss.write_index(self.index, str(self.index_path))
        self.manifest_path.write_text(
            json.dumps(
                {
                    "embedding_model": self.embedding_model,
                    "dimension": self.dimension,
                    "vector_count": self.index.ntotal,
                    "updated_at": datetime.now(timezone.utc).isoformat(),
                },
                indent=2,
            ),
            encoding="utf-8",
        )
        logger.debug("qa_index_persisted", vectors=self.index.ntotal)

    async def reset(self) -> None:
        """Delete the files on disk and start over with an empty index."""
        for path in (self.index_path, self.manifest_path):
            path.unlink(missing_ok=True)
        self._create(await self._embedding_dimension())

    def stats(self) -> Dict[str, Any]:
        return {
            "initialized": self.index is not None,
            "vector_count": self.size,
            "dimension": self.dimension,
            "embedding_model": self.embedding_model,
        }
