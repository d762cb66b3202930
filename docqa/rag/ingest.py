"""Ingest pipeline for turning documents into stored QA records.

Orchestrates:
- Document discovery and text extraction
- QA extraction under the concurrency limit
- Storage of extracted records
- Per-run bookkeeping in the database
"""
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional
import structlog

from docqa import config, db
from docqa.documents import PDF_SUFFIXES, TEXT_SUFFIXES, read_document
from docqa.interfaces import Generator
from docqa.rag.chunker import WordChunker
from docqa.rag.extractor import ExtractionResult, QAExtractor
from docqa.rag.qa_store import QAStore

logger = structlog.get_logger()

SUPPORTED_SUFFIXES = PDF_SUFFIXES | TEXT_SUFFIXES


class IngestPipeline:
    """Pipeline for ingesting documents into the QA store."""

    def __init__(
        self,
        store: Optional[QAStore] = None,
        generator: Optional[Generator] = None,
        chunk_words: int = None,
        overlap_words: int = None,
        concurrency_limit: int = None,
    ):
        """Initialize the ingest pipeline.

        Args:
            store: QA store receiving the records (default built from config)
            generator: Generation backend (defaults to the shared Ollama client)
            chunk_words: Words per chunk (default from config)
            overlap_words: Overlap between chunks in words (default from config)
            concurrency_limit: Max concurrent generation calls (default from config)

        Raises:
            ConfigurationError: If the chunking parameters are invalid
        """
        self.store = store or QAStore()
        self.chunker = WordChunker(chunk_words=chunk_words, overlap_words=overlap_words)
        self.extractor = QAExtractor(
            generator=generator,
            store=self.store,
            chunker=self.chunker,
            concurrency_limit=concurrency_limit,
        )

        self.stats = self._empty_stats()

        logger.info(
            "ingest_pipeline_initialized",
            chunk_words=self.chunker.chunk_words,
            overlap_words=self.chunker.overlap_words,
            concurrency_limit=self.extractor.concurrency_limit,
        )

    @staticmethod
    def _empty_stats() -> Dict[str, int]:
        return {
            "files_processed": 0,
            "files_failed": 0,
            "chunks_processed": 0,
            "chunks_failed": 0,
            "records_stored": 0,
        }

    async def ingest_text(
        self,
        text: str,
        source: Optional[str] = None,
        concurrency_limit: Optional[int] = None,
    ) -> ExtractionResult:
        """Extract QA records from text and store them.

        Returns:
            The extraction result; a storage failure is on ``storage_error``
        """
        result = await self.extractor.extract(
            text, concurrency_limit=concurrency_limit, source=source
        )

        self.stats["chunks_processed"] += result.chunk_count
        self.stats["chunks_failed"] += len(result.generation_failures)
        self.stats["records_stored"] += result.stored_count

        db.init_database()
        db.insert_ingest_run(
            source=source,
            chat_model=config.CHAT_MODEL,
            chunk_count=result.chunk_count,
            records_extracted=len(result.records),
            records_stored=result.stored_count,
            failures=[f.to_dict() for f in result.failures],
        )

        return result

    async def ingest_file(self, file_path: Path) -> ExtractionResult:
        """Ingest a single PDF, text or markdown file.

        Raises:
            FileNotFoundError: If the file doesn't exist
            DocumentError: If the file can't be read
        """
        logger.info("ingesting_file", path=str(file_path))

        text = read_document(file_path)
        result = await self.ingest_text(text, source=file_path.name)

        logger.info(
            "file_ingested",
            path=str(file_path),
            records_stored=result.stored_count,
            failures=len(result.failures),
        )
        return result

    @staticmethod
    def discover_documents(paths: Iterable[Path]) -> List[Path]:
        """Expand files and directories into a sorted list of supported documents.

        Raises:
            FileNotFoundError: If a path doesn't exist
        """
        found = []
        for path in paths:
            if not path.exists():
                raise FileNotFoundError(f"Path not found: {path}")
            if path.is_dir():
                found.extend(
                    p for p in path.rglob("*")
                    if p.is_file() and p.suffix.lower() in SUPPORTED_SUFFIXES
                )
            else:
                found.append(path)

        logger.info("documents_discovered", count=len(found))
        return sorted(found)

    async def ingest_all(
        self,
        paths: Iterable[Path],
        rebuild: bool = False,
        progress_callback: Optional[Callable[[int, int, Path], None]] = None,
    ) -> Dict[str, Any]:
        """Ingest every supported document under the given paths.

        A file that fails (unreadable, or its records could not be stored)
        is counted and skipped.

        Args:
            paths: Files and/or directories
            rebuild: If True, clear the store before ingesting
            progress_callback: Optional callback function(current, total, file_path)

        Returns:
            Dictionary with ingestion statistics
        """
        logger.info("starting_ingest_all", rebuild=rebuild)

        if rebuild:
            await self.store.rebuild()
            logger.info("store_cleared")

        documents = self.discover_documents(paths)
        self.stats = self._empty_stats()

        for idx, file_path in enumerate(documents, 1):
            if progress_callback:
                progress_callback(idx, len(documents), file_path)

            try:
                result = await self.ingest_file(file_path)
            except Exception as e:
                logger.error(
                    "file_ingestion_failed",
                    path=str(file_path),
                    error=str(e),
                    error_type=type(e).__name__,
                )
                self.stats["files_failed"] += 1
                continue

            if result.storage_error is not None:
                self.stats["files_failed"] += 1
            else:
                self.stats["files_processed"] += 1

        logger.info("ingest_all_completed", stats=self.stats)
        return self.stats
