"""Exception types raised across the extraction and answering pipeline."""


class DocQAError(Exception):
    """Base class for all docqa errors."""


class ConfigurationError(DocQAError, ValueError):
    """Invalid chunking, overlap or concurrency parameters.

    Raised before any work starts.
    """


class GenerationError(DocQAError):
    """The generation backend failed, was unreachable or timed out."""


class ParseError(DocQAError):
    """A response block could not be turned into a valid QA record."""


class StorageError(DocQAError):
    """Persisting QA records failed."""


class RetrievalError(DocQAError):
    """Similarity search over stored QA records failed."""


class DocumentError(DocQAError):
    """An uploaded document could not be read as text."""
