"""Word-window chunking with overlap for the extraction pipeline.

Implements word-based chunking so that each generation call sees a bounded
amount of text regardless of the tokenizer used by the backend model.
"""
from typing import List
from dataclasses import dataclass
import structlog

from docqa import config
from docqa.errors import ConfigurationError

logger = structlog.get_logger()


@dataclass(frozen=True)
class TextChunk:
    """Represents a window of words with position information."""

    chunk_index: int
    content: str
    word_start: int
    word_end: int
    overlap_words: int  # words shared with the previous chunk

    @property
    def word_count(self) -> int:
        return self.word_end - self.word_start


def validate_window(target_words: int, overlap_words: int) -> None:
    """Reject window parameters that cannot make progress.

    Raises:
        ConfigurationError: If target is not positive, overlap is negative,
            or overlap is not smaller than target
    """
    if target_words < 1:
        raise ConfigurationError(
            f"Chunk size must be at least 1 word, got {target_words}"
        )
    if overlap_words < 0:
        raise ConfigurationError(
            f"Overlap must not be negative, got {overlap_words}"
        )
    if overlap_words >= target_words:
        raise ConfigurationError(
            f"Overlap ({overlap_words}) must be less than "
            f"chunk size ({target_words})"
        )


def chunk_words(text: str, target_words: int, overlap_words: int) -> List[TextChunk]:
    """Split text into overlapping word windows.

    Each chunk holds ``target_words`` words, except the last, which holds
    whatever remains. Every chunk after the first starts with the last
    ``overlap_words`` words of its predecessor.

    Args:
        text: Raw document text
        target_words: Words per chunk
        overlap_words: Words repeated from the end of the previous chunk

    Returns:
        List of TextChunk objects in document order

    Raises:
        ConfigurationError: If the window parameters are invalid
    """
    validate_window(target_words, overlap_words)

    words = text.split() if text else []
    if not words:
        return []

    chunks: List[TextChunk] = []
    total = len(words)
    start = 0
    overlap = 0

    while True:
        end = min(start + target_words, total)
        chunks.append(
            TextChunk(
                chunk_index=len(chunks),
                content=" ".join(words[start:end]),
                word_start=start,
                word_end=end,
                overlap_words=overlap,
            )
        )
        if end >= total:
            break

        # Seed the next window with the tail of this one
        overlap = min(overlap_words, end - start)
        start = end - overlap

    return chunks


class WordChunker:
    """Word-based text chunker with overlap support."""

    def __init__(
        self,
        chunk_words: int = None,
        overlap_words: int = None,
    ):
        """Initialize the chunker.

        Args:
            chunk_words: Words per chunk (default from config)
            overlap_words: Overlap between chunks in words (default from config)

        Raises:
            ConfigurationError: If overlap is not smaller than chunk size
        """
        self.chunk_words = chunk_words if chunk_words is not None else config.CHUNK_WORDS
        self.overlap_words = (
            overlap_words if overlap_words is not None else config.CHUNK_OVERLAP_WORDS
        )

        validate_window(self.chunk_words, self.overlap_words)

        logger.debug(
            "chunker_initialized",
            chunk_words=self.chunk_words,
            overlap_words=self.overlap_words,
        )

    def chunk_text(self, text: str) -> List[TextChunk]:
        """Split text into overlapping chunks.

        Args:
            text: Text to chunk

        Returns:
            List of TextChunk objects
        """
        chunks = chunk_words(text, self.chunk_words, self.overlap_words)

        if chunks:
            logger.info(
                "text_chunked",
                word_count=chunks[-1].word_end,
                chunk_count=len(chunks),
            )

        return chunks

    def get_chunk_stats(self, chunks: List[TextChunk]) -> dict:
        """Get statistics about a set of chunks.

        Args:
            chunks: List of TextChunk objects

        Returns:
            Dictionary with chunk statistics
        """
        if not chunks:
            return {
                "chunk_count": 0,
                "total_words": 0,
                "avg_chunk_words": 0,
                "min_chunk_words": 0,
                "max_chunk_words": 0,
            }

        sizes = [c.word_count for c in chunks]

        return {
            "chunk_count": len(chunks),
            "total_words": chunks[-1].word_end,
            "avg_chunk_words": sum(sizes) // len(chunks),
            "min_chunk_words": min(sizes),
            "max_chunk_words": max(sizes),
            "overlap": self.overlap_words,
        }
