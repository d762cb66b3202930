#!/usr/bin/env python
"""Extract QA pairs from documents into the QA store.

Usage:
    python scripts/ingest.py docs/                   # Ingest every document under docs/
    python scripts/ingest.py a.pdf b.md --rebuild    # Clear the store, then ingest two files
    python scripts/ingest.py docs/ --concurrency 4   # Allow 4 generation calls in flight
"""
import argparse
import asyncio
import logging
import sys
from pathlib import Path
from datetime import datetime

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from docqa import config
from docqa.rag.ingest import IngestPipeline
from docqa.rag.qa_store import QAStore
import structlog

logger = structlog.get_logger()


def configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else getattr(logging, config.LOG_LEVEL.upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(message)s")
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
    )


class ProgressReporter:
    """Simple progress reporter for CLI."""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose
        self.start_time = None

    def start(self, message: str):
        self.start_time = datetime.now()
        print(f"\n{'=' * 60}")
        print(f"  {message}")
        print(f"{'=' * 60}\n")

    def update(self, current: int, total: int, file_path: Path):
        percentage = (current / total) * 100 if total > 0 else 0
        bar_length = 40
        filled = int(bar_length * current / total) if total > 0 else 0
        bar = "#" * filled + "." * (bar_length - filled)

        print(
            f"\r  [{bar}] {percentage:5.1f}% ({current}/{total}) {file_path.name[:30]:<30}",
            end="",
            flush=True,
        )

        if self.verbose:
            print()

    def finish(self, stats: dict):
        print("\n")
        elapsed_seconds = (datetime.now() - self.start_time).total_seconds()

        print(f"{'=' * 60}")
        print("  Ingestion Complete")
        print(f"{'=' * 60}\n")
        print(f"  Files processed:   {stats['files_processed']}")
        print(f"  Files failed:      {stats['files_failed']}")
        print(f"  Chunks processed:  {stats['chunks_processed']}")
        print(f"  Chunks failed:     {stats['chunks_failed']}")
        print(f"  Records stored:    {stats['records_stored']}")
        print(f"  Time elapsed:      {elapsed_seconds:.1f}s")

        if stats["chunks_processed"] > 0 and elapsed_seconds > 0:
            rate = stats["chunks_processed"] / elapsed_seconds
            print(f"  Extraction rate:   {rate:.2f} chunks/sec")

        print(f"\n{'=' * 60}\n")

        if stats["files_failed"] > 0:
            print(f"Warning: {stats['files_failed']} file(s) failed to ingest.")
            print("   Check logs for details.\n")

        if stats["chunks_failed"] > 0:
            print(f"Warning: {stats['chunks_failed']} chunk(s) produced no model output.\n")

        if stats["files_processed"] > 0:
            print(f"Index ready at: {config.DATA_DIR / config.VECTOR_INDEX_PATH.name}")
            print(f"Database at: {config.DB_PATH}\n")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Extract QA pairs from PDF, text and markdown documents",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/ingest.py docs/                   # Ingest a directory
  python scripts/ingest.py a.pdf --rebuild         # Clear the store first
  python scripts/ingest.py docs/ --concurrency 4   # Raise the concurrency limit
        """,
    )

    parser.add_argument(
        "paths",
        nargs="+",
        type=Path,
        help="Documents or directories to ingest",
    )

    parser.add_argument(
        "--rebuild",
        action="store_true",
        help="Clear the QA store before ingesting",
    )

    parser.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help=f"Max concurrent generation calls (default: {config.EXTRACTION_CONCURRENCY})",
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Show verbose progress output",
    )

    return parser


async def main(argv=None) -> int:
    """Main entry point for the ingest script. Returns the exit code."""
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    progress = ProgressReporter(verbose=args.verbose)

    try:
        print("\nConfiguration:")
        print(f"   Chat model:       {config.CHAT_MODEL}")
        print(f"   Embedding model:  {config.EMBEDDING_MODEL}")
        print(f"   Chunk size:       {config.CHUNK_WORDS} words")
        print(f"   Chunk overlap:    {config.CHUNK_OVERLAP_WORDS} words")
        print(f"   Concurrency:      {args.concurrency or config.EXTRACTION_CONCURRENCY}")

        pipeline = IngestPipeline(store=QAStore(), concurrency_limit=args.concurrency)

        action = "Rebuilding" if args.rebuild else "Ingesting"
        progress.start(f"{action} Documents")

        stats = await pipeline.ingest_all(
            args.paths,
            rebuild=args.rebuild,
            progress_callback=progress.update,
        )

        progress.finish(stats)

        if stats["files_failed"] > 0:
            return 1

    except KeyboardInterrupt:
        print("\n\nIngestion cancelled by user.\n")
        return 1

    except FileNotFoundError as e:
        print(f"\nError: {e}\n")
        return 1

    except Exception as e:
        print(f"\nError: {e}\n")
        logger.error("ingest_script_failed", error=str(e), error_type=type(e).__name__)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
