"""Shared fixtures and collaborator stubs for unit tests."""

import asyncio
import re
from typing import Callable, Dict, List, Optional, Sequence, Union

import pytest

from docqa import db
from docqa.errors import GenerationError, RetrievalError, StorageError
from docqa.rag.records import QARecord


WORD_PATTERN = re.compile(r"\bword(\d+)\b")


def numbered_text(word_count: int) -> str:
    """Text of ``word0 word1 ...`` so every word's position is recoverable."""
    return " ".join(f"word{i}" for i in range(word_count))


def first_word_number(prompt: str) -> int:
    """Number of the first ``wordN`` token in a prompt."""
    match = WORD_PATTERN.search(prompt)
    assert match is not None, "prompt carries no chunk text"
    return int(match.group(1))


# =============================================================================
# Collaborator Stubs
# =============================================================================


class ScriptedGenerator:
    """Generator stub that answers from a script and counts concurrent calls.

    ``script`` is either a fixed response or a callable mapping the prompt to
    a response. A callable may raise to simulate a backend failure.
    """

    def __init__(
        self,
        script: Union[str, Callable[[str], str]] = "Q: What is X?\nA: X is Y.",
        delay: float = 0.0,
    ):
        self.script = script
        self.delay = delay
        self.prompts: List[str] = []
        self.in_flight = 0
        self.peak_in_flight = 0
        self.started = asyncio.Event()

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        self.started.set()
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            else:
                await asyncio.sleep(0)
            if callable(self.script):
                return self.script(prompt)
            return self.script
        finally:
            self.in_flight -= 1

    @property
    def call_count(self) -> int:
        return len(self.prompts)


class FailingGenerator:
    """Generator stub that always raises the given error."""

    def __init__(self, error: Exception = None):
        self.error = error or GenerationError("backend unavailable")
        self.call_count = 0

    async def generate(self, prompt: str) -> str:
        self.call_count += 1
        raise self.error


class InMemoryStore:
    """Store and retriever stub holding records in a list."""

    def __init__(
        self,
        records: Optional[Sequence[QARecord]] = None,
        save_error: Optional[Exception] = None,
        search_error: Optional[Exception] = None,
    ):
        self.records: List[QARecord] = list(records or [])
        self.save_error = save_error
        self.search_error = search_error
        self.saved_batches: List[List[QARecord]] = []
        self.queries: List[str] = []

    async def save(self, records: Sequence[QARecord]) -> int:
        if self.save_error is not None:
            raise self.save_error
        self.saved_batches.append(list(records))
        self.records.extend(records)
        return len(records)

    async def search_similar(self, query: str, top_k: Optional[int] = None) -> List[QARecord]:
        self.queries.append(query)
        if self.search_error is not None:
            raise self.search_error
        return list(self.records[:top_k] if top_k else self.records)

    async def rebuild(self) -> None:
        self.records.clear()

    def get_stats(self) -> Dict[str, int]:
        return {"vector_count": len(self.records), "qa_pairs": len(self.records)}


class KeywordEmbedder:
    """Embedder stub: one axis per keyword, value is the keyword count."""

    def __init__(self, keywords: Sequence[str] = ("apple", "banana", "cherry", "date")):
        self.keywords = list(keywords)
        self.calls: List[str] = []

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        lowered = text.lower()
        return [float(lowered.count(keyword)) for keyword in self.keywords]


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def scripted_generator():
    return ScriptedGenerator()


@pytest.fixture
def in_memory_store():
    return InMemoryStore()


@pytest.fixture
def keyword_embedder():
    return KeywordEmbedder()


@pytest.fixture
def failing_store():
    return InMemoryStore(save_error=StorageError("disk full"))


@pytest.fixture
def failing_retriever():
    return InMemoryStore(search_error=RetrievalError("index unavailable"))


@pytest.fixture
def temp_db(tmp_path, monkeypatch):
    """Point the database module at a fresh SQLite file."""
    db_path = tmp_path / "test.sqlite"
    monkeypatch.setattr(db, "DB_PATH", db_path)
    db.init_database()
    return db_path


@pytest.fixture
def sample_records():
    return [
        QARecord.from_raw("What is an apple?", "An apple is a fruit."),
        QARecord.from_raw("What is a banana?", "A banana is a long yellow fruit."),
        QARecord.from_raw(
            "Which fruits are red?",
            "- apple\n- cherry",
        ),
    ]
