"""Collaborator contracts consumed by the extractor and the composer.

Any object with matching async methods satisfies these protocols; the
concrete implementations live in ``docqa.llm_client`` and
``docqa.rag.qa_store``.
"""
from typing import List, Optional, Protocol, Sequence, TYPE_CHECKING

if TYPE_CHECKING:
    from docqa.rag.records import QARecord


class Generator(Protocol):
    """Produces a text completion for a prompt."""

    async def generate(self, prompt: str) -> str:
        """Return the completion text.

        Raises:
            GenerationError: On backend unavailability, HTTP errors or timeout
        """
        ...


class Embedder(Protocol):
    """Turns text into a dense vector."""

    async def embed(self, text: str) -> List[float]:
        ...


class Store(Protocol):
    """Persists extracted QA records."""

    async def save(self, records: Sequence["QARecord"]) -> int:
        """Persist records and return how many were stored.

        Raises:
            StorageError: If persisting fails
        """
        ...


class Retriever(Protocol):
    """Returns stored QA records ranked by similarity to a query."""

    async def search_similar(
        self, query: str, top_k: Optional[int] = None
    ) -> List["QARecord"]:
        """Return records, most similar first. May be empty.

        Raises:
            RetrievalError: If the search fails
        """
        ...
