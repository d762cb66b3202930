"""Database initialization and helpers for docqa.

SQLite database for storing:
- Extracted question-answer pairs
- Mapping between FAISS vector IDs and QA pairs
- A log of document ingestion runs
"""
import sqlite3
import json
from typing import Optional, List, Dict, Any, Sequence
from datetime import datetime, timezone
import structlog

from docqa import config

logger = structlog.get_logger()

DB_PATH = config.DB_PATH


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def get_connection() -> sqlite3.Connection:
    """Get a connection to the SQLite database.

    Returns:
        sqlite3.Connection with row_factory set to sqlite3.Row
    """
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(DB_PATH)
    conn.row_factory = sqlite3.Row
    return conn


def init_database() -> None:
    """Initialize the database schema.

    Creates tables if they don't exist:
    - ingest_runs: one row per ingested document
    - qa_pairs: QA pairs with their answer lines and FAISS vector IDs
    """
    conn = get_connection()
    cursor = conn.cursor()

    try:
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS ingest_runs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                ingested_at TEXT NOT NULL,
                source TEXT,
                chat_model TEXT NOT NULL,
                chunk_count INTEGER NOT NULL,
                records_extracted INTEGER NOT NULL,
                records_stored INTEGER NOT NULL,
                failures_json TEXT
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS qa_pairs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                vector_id INTEGER NOT NULL UNIQUE,
                question TEXT NOT NULL,
                answer TEXT NOT NULL,
                answer_lines_json TEXT NOT NULL,
                source TEXT,
                created_at TEXT NOT NULL
            )
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_qa_pairs_source
            ON qa_pairs(source)
        """)

        conn.commit()
        logger.info("database_initialized", db_path=str(DB_PATH))

    except Exception as e:
        conn.rollback()
        logger.error("database_init_failed", error=str(e))
        raise
    finally:
        conn.close()


def insert_qa_pairs(rows: Sequence[Dict[str, Any]]) -> int:
    """Insert QA pairs in a single transaction.

    Args:
        rows: Dicts with vector_id, question, answer, answer_lines (list of
            dicts) and optional source

    Returns:
        Number of rows inserted
    """
    if not rows:
        return 0

    conn = get_connection()
    cursor = conn.cursor()

    try:
        created_at = _now()
        cursor.executemany("""
            INSERT OR REPLACE INTO qa_pairs (
                vector_id, question, answer, answer_lines_json, source, created_at
            ) VALUES (?, ?, ?, ?, ?, ?)
        """, [
            (
                row["vector_id"],
                row["question"],
                row["answer"],
                json.dumps(row["answer_lines"]),
                row.get("source"),
                created_at,
            )
            for row in rows
        ])

        conn.commit()
        return len(rows)

    except Exception as e:
        conn.rollback()
        logger.error("qa_pairs_insert_failed", error=str(e), count=len(rows))
        raise
    finally:
        conn.close()


def get_qa_pairs_by_vector_ids(vector_ids: List[int]) -> List[Dict[str, Any]]:
    """Retrieve QA pairs by their FAISS vector IDs.

    Args:
        vector_ids: List of FAISS vector IDs to retrieve

    Returns:
        List of QA pair dictionaries, in no particular order, with the
        answer lines decoded under "answer_lines"
    """
    if not vector_ids:
        return []

    conn = get_connection()
    cursor = conn.cursor()

    try:
        placeholders = ",".join("?" * len(vector_ids))
        cursor.execute(f"""
            SELECT
                id, vector_id, question, answer, answer_lines_json,
                source, created_at
            FROM qa_pairs
            WHERE vector_id IN ({placeholders})
        """, vector_ids)

        rows = cursor.fetchall()

        pairs = []
        for row in rows:
            pair = dict(row)
            pair["answer_lines"] = json.loads(pair.pop("answer_lines_json"))
            pairs.append(pair)

        return pairs

    except Exception as e:
        logger.error("qa_pairs_retrieval_failed", error=str(e))
        raise
    finally:
        conn.close()


def insert_ingest_run(
    source: Optional[str],
    chat_model: str,
    chunk_count: int,
    records_extracted: int,
    records_stored: int,
    failures: Optional[List[Dict[str, Any]]] = None,
) -> int:
    """Record a document ingestion run.

    Returns:
        ID of the inserted row
    """
    conn = get_connection()
    cursor = conn.cursor()

    try:
        cursor.execute("""
            INSERT INTO ingest_runs (
                ingested_at, source, chat_model, chunk_count,
                records_extracted, records_stored, failures_json
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (
            _now(),
            source,
            chat_model,
            chunk_count,
            records_extracted,
            records_stored,
            json.dumps(failures) if failures else None,
        ))

        conn.commit()
        row_id = cursor.lastrowid
        logger.info("ingest_run_recorded", id=row_id, source=source)
        return row_id

    except Exception as e:
        conn.rollback()
        logger.error("ingest_run_insert_failed", error=str(e))
        raise
    finally:
        conn.close()


def get_latest_ingest_run() -> Optional[Dict[str, Any]]:
    """Get the most recent ingestion run, or None."""
    conn = get_connection()
    cursor = conn.cursor()

    try:
        cursor.execute("""
            SELECT * FROM ingest_runs
            ORDER BY id DESC
            LIMIT 1
        """)

        row = cursor.fetchone()
        if row:
            run = dict(row)
            if run["failures_json"]:
                run["failures"] = json.loads(run["failures_json"])
            return run
        return None

    except Exception as e:
        logger.error("ingest_run_retrieval_failed", error=str(e))
        raise
    finally:
        conn.close()


def clear_all_qa_pairs() -> int:
    """Delete all QA pairs from the database.

    Used when rebuilding the index from scratch.

    Returns:
        Number of QA pairs deleted
    """
    conn = get_connection()
    cursor = conn.cursor()

    try:
        cursor.execute("SELECT COUNT(*) FROM qa_pairs")
        count = cursor.fetchone()[0]

        cursor.execute("DELETE FROM qa_pairs")
        conn.commit()

        logger.info("qa_pairs_cleared", count=count)
        return count

    except Exception as e:
        conn.rollback()
        logger.error("qa_pairs_clear_failed", error=str(e))
        raise
    finally:
        conn.close()


def get_qa_pair_count() -> int:
    """Get the total number of QA pairs in the database."""
    conn = get_connection()
    cursor = conn.cursor()

    try:
        cursor.execute("SELECT COUNT(*) FROM qa_pairs")
        return cursor.fetchone()[0]

    except Exception as e:
        logger.error("qa_pair_count_failed", error=str(e))
        raise
    finally:
        conn.close()
