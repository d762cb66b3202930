"""Bounded-concurrency QA extraction.

Orchestrates:
- Word-window chunking of a document
- One generation call per chunk, at most ``concurrency_limit`` in flight
- Tolerant parsing of each response into QA records
- Aggregation of records and per-chunk failures
- Optional hand-off of the records to a store
"""
import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import structlog

from docqa import config
from docqa.errors import ConfigurationError, GenerationError, StorageError
from docqa.interfaces import Generator, Store
from docqa.rag.chunker import TextChunk, WordChunker
from docqa.rag.qa_parser import parse_records
from docqa.rag.records import QARecord

logger = structlog.get_logger()

EXTRACTION_PROMPT = """You extract question-answer pairs from text.
Only include questions that the text clearly answers. Do not add facts that
are not in the text.

Text:
{text}

Write every pair in exactly this format, with a blank line between pairs:
Q: [question]
A: [answer]

An answer may span several lines or use a bulleted or numbered list.

Pairs:"""

STAGE_GENERATION = "generation"
STAGE_PARSE = "parse"


def build_extraction_prompt(chunk_text: str) -> str:
    return EXTRACTION_PROMPT.format(text=chunk_text)


@dataclass
class ChunkFailure:
    """A chunk that produced no records, and why."""

    chunk_index: int
    stage: str  # STAGE_GENERATION or STAGE_PARSE
    error: str
    error_type: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chunk_index": self.chunk_index,
            "stage": self.stage,
            "error": self.error,
            "error_type": self.error_type,
        }


@dataclass
class ExtractionResult:
    """Records extracted from one document plus everything that went wrong."""

    records: List[QARecord]
    failures: List[ChunkFailure]
    chunk_count: int
    peak_in_flight: int = 0
    stored_count: int = 0
    storage_error: Optional[StorageError] = None

    @property
    def generation_failures(self) -> List[ChunkFailure]:
        return [f for f in self.failures if f.stage == STAGE_GENERATION]

    @property
    def parse_warnings(self) -> List[ChunkFailure]:
        return [f for f in self.failures if f.stage == STAGE_PARSE]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chunk_count": self.chunk_count,
            "records_extracted": len(self.records),
            "records_stored": self.stored_count,
            "failures": [f.to_dict() for f in self.failures],
            "storage_error": str(self.storage_error) if self.storage_error else None,
        }


@dataclass
class _ExtractionRun:
    """State of one extract() call, shared by its chunk tasks."""

    chunks: List[TextChunk]
    source: Optional[str] = None
    results: Dict[int, List[QARecord]] = field(default_factory=dict)
    failures: List[ChunkFailure] = field(default_factory=list)
    in_flight: int = 0
    peak_in_flight: int = 0
    cancelled: bool = False


class QAExtractor:
    """Turns document text into QA records using a generation backend."""

    def __init__(
        self,
        generator: Optional[Generator] = None,
        store: Optional[Store] = None,
        chunker: Optional[WordChunker] = None,
        concurrency_limit: int = None,
        timeout: float = None,
        max_retries: int = None,
        retry_backoff: float = None,
    ):
        """Initialize the extractor.

        Args:
            generator: Generation backend (defaults to the shared Ollama client)
            store: Optional store that receives the extracted records
            chunker: Word chunker (default built from config)
            concurrency_limit: Max generation calls in flight (default from config)
            timeout: Per-call timeout in seconds (default from config)
            max_retries: Retries per failed call (default from config, normally 0)
            retry_backoff: Initial retry delay in seconds, doubled per retry
        """
        if generator is None:
            from docqa.llm_client import ollama_client

            generator = ollama_client

        self.generator = generator
        self.store = store
        self.chunker = chunker or WordChunker()
        self.concurrency_limit = (
            concurrency_limit if concurrency_limit is not None else config.EXTRACTION_CONCURRENCY
        )
        self.timeout = timeout if timeout is not None else config.GENERATION_TIMEOUT
        self.max_retries = (
            max_retries if max_retries is not None else config.GENERATION_MAX_RETRIES
        )
        self.retry_backoff = (
            retry_backoff if retry_backoff is not None else config.GENERATION_RETRY_BACKOFF
        )

    async def extract(
        self,
        document_text: str,
        concurrency_limit: Optional[int] = None,
        source: Optional[str] = None,
    ) -> ExtractionResult:
        """Extract QA records from a document.

        Chunk-level generation and parse failures do not abort the run; they
        are reported in ``ExtractionResult.failures``. A store failure is
        reported in ``ExtractionResult.storage_error``.

        Args:
            document_text: Full document text
            concurrency_limit: Overrides the extractor's default limit
            source: Document name attached to every record

        Returns:
            ExtractionResult with records in chunk order

        Raises:
            ConfigurationError: If the concurrency limit is below 1
            asyncio.CancelledError: If the caller cancels the run
        """
        limit = concurrency_limit if concurrency_limit is not None else self.concurrency_limit
        if limit < 1:
            raise ConfigurationError(f"Concurrency limit must be at least 1, got {limit}")

        chunks = self.chunker.chunk_text(document_text)
        if not chunks:
            logger.warning("no_chunks_created", source=source)
            return ExtractionResult(records=[], failures=[], chunk_count=0)

        run = _ExtractionRun(chunks=chunks, source=source)
        gate = asyncio.Semaphore(limit)

        logger.info(
            "extraction_started",
            source=source,
            chunk_count=len(chunks),
            concurrency_limit=limit,
        )

        tasks = [
            asyncio.create_task(
                self._process_chunk(run, chunk, gate),
                name=f"extract-chunk-{chunk.chunk_index}",
            )
            for chunk in chunks
        ]

        try:
            await asyncio.gather(*tasks)
        except BaseException:
            # Cancelled by the caller, or a task failed; stop the siblings
            run.cancelled = True
            for task in tasks:
                task.cancel()
            logger.warning(
                "extraction_cancelled",
                source=source,
                chunks_done=len(run.results) + len(run.failures),
                chunk_count=len(chunks),
            )
            raise

        records = [
            record
            for chunk in chunks
            for record in run.results.get(chunk.chunk_index, [])
        ]
        failures = sorted(run.failures, key=lambda f: f.chunk_index)

        result = ExtractionResult(
            records=records,
            failures=failures,
            chunk_count=len(chunks),
            peak_in_flight=run.peak_in_flight,
        )

        if self.store is not None and records:
            try:
                result.stored_count = await self.store.save(records)
            except StorageError as e:
                logger.error("extraction_storage_failed", source=source, error=str(e))
                result.storage_error = e

        logger.info(
            "extraction_completed",
            source=source,
            chunk_count=len(chunks),
            records=len(records),
            generation_failures=len(result.generation_failures),
            parse_warnings=len(result.parse_warnings),
            peak_in_flight=run.peak_in_flight,
        )

        return result

    async def _process_chunk(
        self, run: _ExtractionRun, chunk: TextChunk, gate: asyncio.Semaphore
    ) -> None:
        """Generate and parse one chunk, recording the outcome on the run."""
        if run.cancelled:
            logger.debug("chunk_skipped_cancelled", chunk_index=chunk.chunk_index)
            return

        async with gate:
            run.in_flight += 1
            run.peak_in_flight = max(run.peak_in_flight, run.in_flight)
            try:
                response = await self._generate(chunk)
            except GenerationError as e:
                logger.warning(
                    "chunk_generation_failed",
                    chunk_index=chunk.chunk_index,
                    error=str(e),
                )
                run.failures.append(
                    ChunkFailure(chunk.chunk_index, STAGE_GENERATION, str(e), type(e).__name__)
                )
                return
            except Exception as e:
                logger.exception(
                    "chunk_generation_error",
                    chunk_index=chunk.chunk_index,
                    error_type=type(e).__name__,
                )
                run.failures.append(
                    ChunkFailure(chunk.chunk_index, STAGE_GENERATION, str(e), type(e).__name__)
                )
                return
            finally:
                run.in_flight -= 1

        if not isinstance(response, str) or not response.strip():
            logger.warning(
                "chunk_response_empty",
                chunk_index=chunk.chunk_index,
                response_type=type(response).__name__,
            )
            run.failures.append(
                ChunkFailure(
                    chunk.chunk_index,
                    STAGE_PARSE,
                    "Empty response from generation backend",
                    "ParseError",
                )
            )
            run.results[chunk.chunk_index] = []
            return

        try:
            records = parse_records(response, source=run.source)
        except Exception as e:
            logger.exception(
                "chunk_parse_error",
                chunk_index=chunk.chunk_index,
                error_type=type(e).__name__,
            )
            run.failures.append(
                ChunkFailure(chunk.chunk_index, STAGE_PARSE, str(e), type(e).__name__)
            )
            run.results[chunk.chunk_index] = []
            return

        if not records:
            logger.warning(
                "chunk_yielded_no_pairs",
                chunk_index=chunk.chunk_index,
                response_length=len(response),
            )
            run.failures.append(
                ChunkFailure(
                    chunk.chunk_index,
                    STAGE_PARSE,
                    "No question-answer pairs found in response",
                    "ParseError",
                )
            )

        run.results[chunk.chunk_index] = records

    async def _generate(self, chunk: TextChunk) -> str:
        """Call the generator with a timeout, retrying up to ``max_retries`` times.

        Raises:
            GenerationError: On the last failed attempt (timeouts included)
        """
        prompt = build_extraction_prompt(chunk.content)
        attempt = 0

        while True:
            try:
                try:
                    async with asyncio.timeout(self.timeout):
                        return await self.generator.generate(prompt)
                except TimeoutError as e:
                    raise GenerationError(
                        f"Generation timed out after {self.timeout}s"
                    ) from e
            except GenerationError as e:
                if attempt >= self.max_retries:
                    raise
                delay = self.retry_backoff * (2 ** attempt)
                attempt += 1
                logger.warning(
                    "chunk_generation_retry",
                    chunk_index=chunk.chunk_index,
                    attempt=attempt,
                    max_retries=self.max_retries,
                    delay=delay,
                    error=str(e),
                )
                await asyncio.sleep(delay)
