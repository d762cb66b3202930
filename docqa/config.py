"""Application configuration with sensible defaults."""
import os
from pathlib import Path

# Paths
BASE_DIR = Path(__file__).parent.parent
DATA_DIR = Path(os.getenv("DATA_DIR", str(BASE_DIR / "data")))

# Ollama configuration
OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
CHAT_MODEL = os.getenv("CHAT_MODEL", "llama3.1:8b")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "mxbai-embed-large:latest")

# Extraction parameters (word-based windows)
CHUNK_WORDS = int(os.getenv("CHUNK_WORDS", "300"))
CHUNK_OVERLAP_WORDS = int(os.getenv("CHUNK_OVERLAP_WORDS", "50"))
EXTRACTION_CONCURRENCY = int(os.getenv("EXTRACTION_CONCURRENCY", "2"))  # local backend, keep low
GENERATION_TIMEOUT = float(os.getenv("GENERATION_TIMEOUT", "120.0"))
GENERATION_MAX_RETRIES = int(os.getenv("GENERATION_MAX_RETRIES", "0"))
GENERATION_RETRY_BACKOFF = float(os.getenv("GENERATION_RETRY_BACKOFF", "1.0"))

# Retrieval parameters
RETRIEVAL_TOP_K = int(os.getenv("RETRIEVAL_TOP_K", "8"))
MAX_RELEVANT_DOCS = int(os.getenv("MAX_RELEVANT_DOCS", "3"))
MAX_CONTEXT_CHARS = int(os.getenv("MAX_CONTEXT_CHARS", "4000"))

# Uploads
MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(20 * 1024 * 1024)))

# Storage
DB_PATH = DATA_DIR / "docqa.sqlite"
VECTOR_INDEX_PATH = DATA_DIR / "qa_vectors.index"
METADATA_PATH = DATA_DIR / "qa_metadata.json"

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
