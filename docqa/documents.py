"""Plain-text extraction from uploaded documents."""
import io
from pathlib import Path
from typing import List, Optional

from pypdf import PdfReader
import structlog

from docqa.errors import DocumentError

logger = structlog.get_logger()

PDF_CONTENT_TYPES = {"application/pdf", "application/x-pdf"}
TEXT_CONTENT_TYPES = {"text/plain", "text/markdown", "text/x-markdown"}
PDF_SUFFIXES = {".pdf"}
TEXT_SUFFIXES = {".txt", ".md", ".markdown"}


def media_type(content_type: Optional[str]) -> str:
    """Strip parameters such as ``; charset=utf-8`` from a MIME type."""
    return (content_type or "").split(";")[0].strip().lower()


def is_supported(filename: str, content_type: Optional[str] = None) -> bool:
    suffix = Path(filename or "").suffix.lower()
    return (
        suffix in PDF_SUFFIXES
        or suffix in TEXT_SUFFIXES
        or media_type(content_type) in PDF_CONTENT_TYPES | TEXT_CONTENT_TYPES
    )


def extract_pdf_pages(data: bytes) -> List[str]:
    reader = PdfReader(io.BytesIO(data))
    return [page.extract_text() or "" for page in reader.pages]


def extract_text(data: bytes, filename: str, content_type: Optional[str] = None) -> str:
    """Return the text of an uploaded PDF, text or markdown file.

    Args:
        data: Raw file bytes
        filename: Original file name, used to pick the reader
        content_type: Optional MIME type reported by the client

    Returns:
        Extracted text (pages of a PDF are separated by blank lines)

    Raises:
        DocumentError: If the file is empty, unsupported or unreadable, or
            is a PDF without a text layer
    """
    if not data:
        raise DocumentError(f"File is empty: {filename}")

    suffix = Path(filename or "").suffix.lower()
    content_type = media_type(content_type)

    if suffix in PDF_SUFFIXES or content_type in PDF_CONTENT_TYPES:
        try:
            pages = extract_pdf_pages(data)
        except Exception as e:
            logger.error("pdf_read_failed", filename=filename, error=str(e))
            raise DocumentError(f"Could not read PDF {filename}: {e}") from e

        text = "\n\n".join(page for page in pages if page.strip())
        if not text:
            raise DocumentError(f"No extractable text in PDF {filename} (scanned images?)")

        logger.info("pdf_text_extracted", filename=filename, pages=len(pages), chars=len(text))
        return text

    if suffix in TEXT_SUFFIXES or content_type in TEXT_CONTENT_TYPES:
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as e:
            logger.error("text_decode_failed", filename=filename, error=str(e))
            raise DocumentError(f"File is not valid UTF-8 text: {filename}") from e

    raise DocumentError(
        f"Unsupported file type for {filename!r} ({content_type or 'unknown type'}); "
        "only PDF, text and markdown files are accepted"
    )


def read_document(path: Path) -> str:
    """Read a document from disk.

    Raises:
        FileNotFoundError: If the file doesn't exist
        DocumentError: If the file can't be read as text
    """
    if not path.exists():
        raise FileNotFoundError(f"Document not found: {path}")
    return extract_text(path.read_bytes(), path.name)
